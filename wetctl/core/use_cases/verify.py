"""
Verify use case — run the Health Verifier against deployed services.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from wetctl.core.context import OrchestratorContext
from wetctl.core.errors import UnknownTarget, WetctlError
from wetctl.core.observability.health import CheckResult, HealthReport
from wetctl.core.use_cases.deploy import compose_units

logger = logging.getLogger(__name__)


@dataclass
class VerifyResult:
    environment: str = ""
    reports: list[HealthReport] = field(default_factory=list)
    error: str | None = None
    error_type: str | None = None

    @property
    def exit_code(self) -> int:
        if self.error or any(r.exit_code for r in self.reports):
            return 1
        return 0

    def to_dict(self) -> dict:
        result: dict = {"environment": self.environment, "exit_code": self.exit_code}
        if self.error:
            result["error"] = self.error
            result["error_type"] = self.error_type
        result["reports"] = [r.to_dict() for r in self.reports]
        return result


def verify_services(
    ctx: OrchestratorContext,
    env_id: str | None = None,
    services: list[str] | None = None,
) -> VerifyResult:
    """Verify the named services (default: all) in an environment."""
    result = VerifyResult()
    try:
        env = ctx.environments.resolve(env_id or ctx.config.default_environment)
        result.environment = env.id

        if services:
            unknown = [s for s in services if ctx.config.get_service(s) is None]
            if unknown:
                raise UnknownTarget(unknown[0], ctx.config.service_names)
            targets = [ctx.config.get_service(s) for s in services]
        else:
            targets = list(ctx.config.services)

        ctx.tools.cluster.check_access()
    except WetctlError as e:
        result.error = str(e)
        result.error_type = e.__class__.__name__
        return result

    units, failures = compose_units(ctx, targets, env)
    verifier = ctx.verifier()
    for unit in units:
        result.reports.append(verifier.verify(unit))
    for record in failures:
        report = HealthReport(unit=record.unit, namespace=record.namespace)
        report.add(CheckResult("compose", status="fail", message=record.error or "compose failed"))
        result.reports.append(report)

    return result
