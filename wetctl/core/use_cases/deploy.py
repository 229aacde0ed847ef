"""
Deploy use case — resolve, compose, roll out, optionally verify.

    request → resolve environment → resolve target → prerequisites
            → compose units → concurrent rollouts → health reports

The environment and the target are resolved before anything touches
the cluster; an unknown name ends the request with no side effect.
Composition failures are fatal for their own unit only: the other
services of an ``all`` deploy still roll out.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from wetctl.core.context import OrchestratorContext
from wetctl.core.engine.executor import run_rollouts
from wetctl.core.errors import UnknownTarget, UserInputError, WetctlError
from wetctl.core.models.environment import Environment
from wetctl.core.models.rollout import DeploymentUnit, RolloutRecord, RolloutStatus
from wetctl.core.models.service import ServiceDescriptor
from wetctl.core.models.stack import Stack
from wetctl.core.observability.health import HealthReport
from wetctl.core.services.prereqs import check_prerequisites

logger = logging.getLogger(__name__)

ALL_SERVICES = "all"

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_DEGRADED = 3


@dataclass
class DeployResult:
    """Result of a deploy (or delete) request."""

    environment: str = ""
    target: str = ""
    action: str = "deploy"
    records: list[RolloutRecord] = field(default_factory=list)
    reports: list[HealthReport] = field(default_factory=list)
    access: list[dict] = field(default_factory=list)
    error: str | None = None
    error_type: str | None = None

    @property
    def failed(self) -> list[RolloutRecord]:
        return [r for r in self.records if r.status == RolloutStatus.FAILED]

    @property
    def degraded(self) -> list[RolloutRecord]:
        return [r for r in self.records if r.status == RolloutStatus.PARTIALLY_DEGRADED]

    @property
    def exit_code(self) -> int:
        if self.error or self.failed or any(r.exit_code for r in self.reports):
            return EXIT_FATAL
        if self.degraded:
            return EXIT_DEGRADED
        return EXIT_OK

    def to_dict(self) -> dict:
        result: dict = {
            "environment": self.environment,
            "target": self.target,
            "action": self.action,
            "exit_code": self.exit_code,
        }
        if self.error:
            result["error"] = self.error
            result["error_type"] = self.error_type
        result["records"] = [r.to_dict() for r in self.records]
        if self.reports:
            result["health"] = [r.to_dict() for r in self.reports]
        if self.access:
            result["access"] = self.access
        return result


# ── Shared helpers ──────────────────────────────────────────────


def resolve_target(
    ctx: OrchestratorContext, name: str
) -> tuple[list[ServiceDescriptor], Stack | None]:
    """Map a target name to catalog services or a stack.

    Raises:
        UnknownTarget: neither a service, a stack, nor ``all``.
    """
    if not name:
        raise UserInputError("A service or stack name is required")
    config = ctx.config
    if name == ALL_SERVICES:
        return list(config.services), None
    service = config.get_service(name)
    if service is not None:
        return [service], None
    stack = config.get_stack(name)
    if stack is not None:
        return [], stack
    raise UnknownTarget(name, [*config.service_names, *config.stack_names, ALL_SERVICES])


def failed_record(
    service: str,
    env: Environment,
    exc: BaseException,
    *,
    action: str = "deploy",
) -> RolloutRecord:
    """A Failed record for a unit that never reached the executor."""
    record = RolloutRecord(
        unit=f"{service}@{env.id}",
        service=service,
        environment=env.id,
        namespace=env.namespace,
        action=action,
    )
    record.fail(exc)
    return record.finalize()


def compose_units(
    ctx: OrchestratorContext,
    services: list[ServiceDescriptor],
    env: Environment,
    *,
    action: str = "deploy",
) -> tuple[list[DeploymentUnit], list[RolloutRecord]]:
    """Compose a DeploymentUnit per service; failures become Failed records."""
    engine = ctx.layering()
    units: list[DeploymentUnit] = []
    failures: list[RolloutRecord] = []
    for service in services:
        try:
            resource_set = engine.compose(service, env)
        except WetctlError as e:
            logger.error("Cannot compose %s@%s: %s", service.name, env.id, e)
            failures.append(failed_record(service.name, env, e, action=action))
            continue
        units.append(DeploymentUnit(service=service, environment=env, resource_set=resource_set))
    return units, failures


def access_info(unit: DeploymentUnit) -> dict:
    """URLs and kubectl commands for reaching a deployed service."""
    hosts = []
    for res in unit.resource_set.by_kind("Ingress"):
        for rule in res.body.get("spec", {}).get("rules", []) or []:
            if rule.get("host"):
                hosts.append(rule["host"])
    tls = any(res.body.get("spec", {}).get("tls") for res in unit.resource_set.by_kind("Ingress"))
    scheme = "https" if tls else "http"

    info: dict = {
        "service": unit.service.name,
        "namespace": unit.namespace,
        "urls": [f"{scheme}://{h}" for h in hosts],
        "logs": f"kubectl logs -n {unit.namespace} -l app={unit.service.name} --all-containers -f",
    }
    services = unit.resource_set.by_kind("Service")
    if services:
        info["port_forward"] = f"kubectl port-forward -n {unit.namespace} svc/{services[0].name} 8080:80"
    return info


# ── Use case ────────────────────────────────────────────────────


def deploy(
    ctx: OrchestratorContext,
    target: str,
    env_id: str | None = None,
    *,
    action: str = "deploy",
    verify: bool = False,
) -> DeployResult:
    """Deploy (or delete) a service, a stack, or every service.

    Args:
        ctx: Run context.
        target: Service name, stack name, or ``all``.
        env_id: Environment id or alias (default: the configured default).
        action: ``deploy`` or ``delete``.
        verify: Run the Health Verifier on every unit that rolled out.

    Returns:
        DeployResult; never raises for user or rollout errors.
    """
    result = DeployResult(target=target, action=action)

    try:
        if action not in ("deploy", "delete"):
            raise UserInputError(f"Unknown action '{action}' (expected deploy or delete)")
        env = ctx.environments.resolve(env_id or ctx.config.default_environment)
        result.environment = env.id
        services, stack = resolve_target(ctx, target)

        tools = [ctx.tools.cluster] if stack is None else [ctx.tools.cluster, ctx.tools.installer]
        check_prerequisites(tools, cluster=ctx.tools.cluster)
    except WetctlError as e:
        result.error = str(e)
        result.error_type = e.__class__.__name__
        return result

    executor = ctx.executor()

    if stack is not None:
        if action == "delete":
            record = executor.uninstall_stack(stack, env)
        else:
            record = executor.install_stack(stack, env)
        result.records.append(record)
        return result

    units, failures = compose_units(ctx, services, env, action=action)
    records = run_rollouts(
        executor, units, max_workers=ctx.config.max_workers, action=action
    )
    result.records = records + failures

    if action == "deploy":
        by_name = {r.unit: r for r in records}
        for unit in units:
            record = by_name[unit.name]
            if not record.ok:
                continue
            result.access.append(access_info(unit))
            if verify:
                result.reports.append(ctx.verifier().verify(unit))

    return result
