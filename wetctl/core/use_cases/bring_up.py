"""
Bring-up use case — from an empty (but running) cluster to deployed services.

Flow:
    prerequisites → node readiness gate → namespaces → platform stack
        → image builds (barrier) → secrets → service rollouts
        → monitoring stack (optional) → verification

The cluster itself is never created here; ``--skip-cluster`` only
skips the node readiness gate. A service whose image build failed is
not rolled out and is reported Failed; the other services continue.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from wetctl.core.context import OrchestratorContext
from wetctl.core.engine.executor import run_rollouts
from wetctl.core.errors import ApplyError, WetctlError
from wetctl.core.models.rollout import RolloutRecord, RolloutStatus
from wetctl.core.models.secret import SecretMode
from wetctl.core.observability.health import HealthReport
from wetctl.core.services.images import BuildReport, build_images
from wetctl.core.services.prereqs import check_prerequisites, wait_for_nodes
from wetctl.core.use_cases.deploy import EXIT_DEGRADED, EXIT_FATAL, EXIT_OK, compose_units, failed_record
from wetctl.core.use_cases.environments import ensure_namespaces

logger = logging.getLogger(__name__)

PLATFORM_STACK = "platform"
MONITORING_STACK = "monitoring"


@dataclass
class StepResult:
    name: str
    status: str = "ok"  # ok, skipped, warning, failed
    message: str = ""

    def to_dict(self) -> dict:
        return {"name": self.name, "status": self.status, "message": self.message}


@dataclass
class BringUpResult:
    environment: str = ""
    steps: list[StepResult] = field(default_factory=list)
    builds: BuildReport | None = None
    records: list[RolloutRecord] = field(default_factory=list)
    reports: list[HealthReport] = field(default_factory=list)
    error: str | None = None
    error_type: str | None = None

    def step(self, name: str, status: str = "ok", message: str = "") -> StepResult:
        result = StepResult(name, status, message)
        self.steps.append(result)
        return result

    @property
    def exit_code(self) -> int:
        if self.error or any(r.status == RolloutStatus.FAILED for r in self.records):
            return EXIT_FATAL
        if any(s.status == "warning" for s in self.steps) or any(
            r.status == RolloutStatus.PARTIALLY_DEGRADED for r in self.records
        ):
            return EXIT_DEGRADED
        return EXIT_OK

    def to_dict(self) -> dict:
        result: dict = {
            "environment": self.environment,
            "exit_code": self.exit_code,
            "steps": [s.to_dict() for s in self.steps],
            "records": [r.to_dict() for r in self.records],
            "health": [r.to_dict() for r in self.reports],
        }
        if self.builds is not None:
            result["builds"] = self.builds.to_dict()
        if self.error:
            result["error"] = self.error
            result["error_type"] = self.error_type
        return result


def bring_up(
    ctx: OrchestratorContext,
    env_id: str | None = None,
    *,
    skip_cluster: bool = False,
    skip_build: bool = False,
    with_monitoring: bool = False,
) -> BringUpResult:
    """Bring an environment up end to end.

    Args:
        ctx: Run context.
        env_id: Environment id or alias (default: the configured default).
        skip_cluster: Skip the node readiness gate.
        skip_build: Deploy already-pushed images, build nothing.
        with_monitoring: Install the monitoring stack after the services.
    """
    result = BringUpResult()
    config = ctx.config
    tools = ctx.tools

    # ── Resolve & prerequisites ──────────────────────────────────
    try:
        env = ctx.environments.resolve(env_id or config.default_environment)
        result.environment = env.id

        required = [tools.cluster, tools.installer]
        if not skip_build:
            required.append(tools.builder)
        check_prerequisites(required, cluster=tools.cluster)
        result.step("prerequisites", message=", ".join(a.name for a in required))

        if skip_cluster:
            result.step("cluster", "skipped")
        else:
            wait_for_nodes(
                tools.cluster,
                timeout=config.timeouts.readiness,
                poll_interval=config.timeouts.poll_interval,
            )
            result.step("cluster", message="nodes ready")

        changes = ensure_namespaces(ctx, env)
        result.step("namespaces", message=", ".join(f"{ns} ({c})" for ns, c in changes.items()))
    except WetctlError as e:
        result.error = str(e)
        result.error_type = e.__class__.__name__
        return result

    executor = ctx.executor()

    # ── Platform (ingress controller, cert-manager) ─────────────
    platform = config.get_stack(PLATFORM_STACK)
    if platform is None:
        result.step("platform", "skipped", "no platform stack configured")
    else:
        record = executor.install_stack(platform, env)
        result.records.append(record)
        result.step("platform", "ok" if record.ok else "failed", record.error or "")

    # ── Builds (barrier) ────────────────────────────────────────
    services = list(config.services)
    if skip_build:
        result.step("build", "skipped")
    else:
        result.builds = build_images(tools.builder, config, services, env)
        failed = result.builds.failed_services
        for name in failed:
            result.records.append(failed_record(
                name, env, ApplyError("; ".join(result.builds.errors[name]))
            ))
        services = [s for s in services if s.name not in failed]
        result.step(
            "build",
            "failed" if failed else "ok",
            f"failed: {', '.join(failed)}" if failed else "",
        )

    # ── Secrets ─────────────────────────────────────────────────
    materializer = ctx.materializer()
    ready = []
    for service in services:
        try:
            materializer.ensure_secret(service, env, SecretMode.REUSE_IF_PRESENT)
        except WetctlError as e:
            result.records.append(failed_record(service.name, env, e))
            continue
        ready.append(service)
    result.step("secrets", message=f"{len(ready)} services")

    # ── Rollouts ────────────────────────────────────────────────
    units, failures = compose_units(ctx, ready, env)
    records = run_rollouts(executor, units, max_workers=config.max_workers)
    result.records.extend(records + failures)
    bad = [r.service for r in records + failures if r.status == RolloutStatus.FAILED]
    result.step("rollout", "failed" if bad else "ok", ", ".join(bad))

    # ── Monitoring (optional, never fatal) ──────────────────────
    if with_monitoring:
        stack = config.get_stack(MONITORING_STACK)
        if stack is None:
            result.step("monitoring", "warning", "no monitoring stack configured")
        else:
            record = executor.install_stack(stack, env)
            if record.status == RolloutStatus.SUCCEEDED:
                result.step("monitoring")
            else:
                result.step("monitoring", "warning", record.error or "; ".join(record.warnings))

    # ── Verification ────────────────────────────────────────────
    verifier = ctx.verifier()
    by_name = {r.unit: r for r in records}
    for unit in units:
        if by_name[unit.name].ok:
            result.reports.append(verifier.verify(unit))
    unhealthy = [r.unit for r in result.reports if r.exit_code]
    if unhealthy:
        result.step("verify", "warning", f"unhealthy: {', '.join(unhealthy)}")
    else:
        result.step("verify", message=f"{len(result.reports)} services healthy")

    return result
