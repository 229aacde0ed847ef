"""
Environment use cases — list the registry, provision namespaces.

Namespace provisioning is the only place namespaces are created; a
service rollout refuses to run against a missing namespace.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from wetctl.core.context import OrchestratorContext
from wetctl.core.errors import WetctlError
from wetctl.core.models.environment import Environment
from wetctl.core.services.prereqs import check_prerequisites

logger = logging.getLogger(__name__)


def list_environments(ctx: OrchestratorContext) -> list[dict]:
    return [env.to_dict() for env in ctx.environments.all()]


@dataclass
class ProvisionResult:
    environment: str = ""
    namespaces: dict[str, str] = field(default_factory=dict)   # ns → created/unchanged
    error: str | None = None
    error_type: str | None = None

    @property
    def exit_code(self) -> int:
        return 1 if self.error else 0

    def to_dict(self) -> dict:
        result: dict = {
            "environment": self.environment,
            "namespaces": self.namespaces,
            "exit_code": self.exit_code,
        }
        if self.error:
            result["error"] = self.error
            result["error_type"] = self.error_type
        return result


def ensure_namespaces(ctx: OrchestratorContext, env: Environment) -> dict[str, str]:
    """Create the environment namespace plus the shared system namespaces."""
    changes = {}
    for namespace in (env.namespace, *ctx.config.system_namespaces):
        if namespace in changes:
            continue
        changes[namespace] = ctx.tools.cluster.create_namespace(namespace)
        logger.info("Namespace %s: %s", namespace, changes[namespace])
    return changes


def provision_namespaces(ctx: OrchestratorContext, env_id: str | None = None) -> ProvisionResult:
    result = ProvisionResult()
    try:
        env = ctx.environments.resolve(env_id or ctx.config.default_environment)
        result.environment = env.id
        check_prerequisites([ctx.tools.cluster], cluster=ctx.tools.cluster)
        result.namespaces = ensure_namespaces(ctx, env)
    except WetctlError as e:
        result.error = str(e)
        result.error_type = e.__class__.__name__
    return result
