"""
Generate-secrets use case — materialize the secret store for an environment.

Without ``random`` the request is for convenience defaults; environments
that forbid them fail the whole request up front, before any file is
written for any service.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from wetctl.core.context import OrchestratorContext
from wetctl.core.errors import SecretPolicyViolation, UnknownTarget, WetctlError
from wetctl.core.models.secret import SecretMode, SecretRef

logger = logging.getLogger(__name__)


@dataclass
class SecretsResult:
    """Result of a generate-secrets request. Never carries secret values."""

    environment: str = ""
    refs: list[SecretRef] = field(default_factory=list)
    generated: list[str] = field(default_factory=list)   # services written this run
    error: str | None = None
    error_type: str | None = None

    @property
    def exit_code(self) -> int:
        return 1 if self.error else 0

    def to_dict(self) -> dict:
        result: dict = {"environment": self.environment, "exit_code": self.exit_code}
        if self.error:
            result["error"] = self.error
            result["error_type"] = self.error_type
        result["secrets"] = [
            {**r.to_dict(), "generated": r.service in self.generated} for r in self.refs
        ]
        return result


def generate_secrets(
    ctx: OrchestratorContext,
    env_id: str | None = None,
    *,
    random: bool = False,
    force: bool = False,
    services: list[str] | None = None,
) -> SecretsResult:
    """Create (or with ``force``, regenerate) secret files.

    Args:
        ctx: Run context.
        env_id: Environment id or alias (default: the configured default).
        random: Cryptographically random values instead of defaults.
        force: Overwrite existing material.
        services: Restrict to these service names (default: every
            service that declares secrets).
    """
    result = SecretsResult()
    try:
        env = ctx.environments.resolve(env_id or ctx.config.default_environment)
        result.environment = env.id

        if services:
            unknown = [s for s in services if ctx.config.get_service(s) is None]
            if unknown:
                raise UnknownTarget(unknown[0], ctx.config.service_names)
            targets = [ctx.config.get_service(s) for s in services]
        else:
            targets = [s for s in ctx.config.services if s.secrets]

        if not random and not env.allow_default_credentials:
            raise SecretPolicyViolation(env.id)

        mode = SecretMode.FORCE_REGENERATE if force else SecretMode.REUSE_IF_PRESENT
        materializer = ctx.materializer()
        for service in targets:
            ref, written = materializer.materialize(service, env, mode, random=random)
            result.refs.append(ref)
            if written:
                result.generated.append(service.name)
    except WetctlError as e:
        result.error = str(e)
        result.error_type = e.__class__.__name__

    return result
