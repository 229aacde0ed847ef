"""
Error taxonomy — every failure class the orchestrator can report.

Fatal classes abort the current DeploymentUnit only. Warning classes
(``OptionalCapabilityUnavailable``) are recorded in the RolloutRecord
and never abort anything.

    WetctlError
    ├── UserInputError          (exit 1, no side effects)
    │   ├── UnknownEnvironment
    │   ├── UnknownTarget
    │   └── ConfigError
    ├── PrerequisiteMissing     (raised before any mutating step)
    ├── CompositionError        (fail-closed configuration layering)
    │   ├── UnresolvedPlaceholder
    │   ├── DuplicatePlaceholder
    │   └── TemplateError
    ├── OptionalCapabilityUnavailable
    ├── ApplyError
    ├── ReadinessTimeout
    ├── RolloutInterrupted
    ├── SecretPolicyViolation
    └── SecretStoreError
"""

from __future__ import annotations


class WetctlError(Exception):
    """Base class for all orchestrator errors."""


# ── User input ──────────────────────────────────────────────────


class UserInputError(WetctlError):
    """The request itself is invalid. Reported before any side effect."""


class UnknownEnvironment(UserInputError):
    """The environment identifier is not in the registry."""

    def __init__(self, env_id: str, known: list[str] | None = None):
        self.env_id = env_id
        self.known = sorted(known or [])
        hint = f" (known: {', '.join(self.known)})" if self.known else ""
        super().__init__(f"Unknown environment '{env_id}'{hint}")


class UnknownTarget(UserInputError):
    """Neither a catalog service nor a stack matches the requested name."""

    def __init__(self, name: str, known: list[str] | None = None):
        self.name = name
        self.known = sorted(known or [])
        hint = f" (available: {', '.join(self.known)})" if self.known else ""
        super().__init__(f"Unknown service or stack '{name}'{hint}")


class ConfigError(UserInputError):
    """Raised when wetctl.yml is invalid or unreadable."""


# ── Prerequisites ───────────────────────────────────────────────


class PrerequisiteMissing(WetctlError):
    """A required external tool is missing or cluster access is unauthenticated."""

    def __init__(self, message: str, missing: list[str] | None = None):
        self.missing = list(missing or [])
        super().__init__(message)


# ── Configuration layering ──────────────────────────────────────


class CompositionError(WetctlError):
    """Configuration composition failed. No partial resource is emitted."""


class UnresolvedPlaceholder(CompositionError):
    """A placeholder token survived every overlay stage."""

    def __init__(self, name: str, locations: list[str] | None = None):
        self.name = name
        self.locations = list(locations or [])
        where = f" in {', '.join(self.locations)}" if self.locations else ""
        super().__init__(f"Unresolved placeholder ${{{name}}}{where}")


class DuplicatePlaceholder(CompositionError):
    """Two overlay stages claim the same placeholder key."""

    def __init__(self, name: str, stages: list[str]):
        self.name = name
        self.stages = list(stages)
        super().__init__(
            f"Placeholder ${{{name}}} is provided by more than one overlay stage: "
            + ", ".join(self.stages)
        )


class TemplateError(CompositionError):
    """A base template is missing or is not valid YAML."""


# ── Rollout ─────────────────────────────────────────────────────


class OptionalCapabilityUnavailable(WetctlError):
    """A resource kind whose supporting controller is not installed."""

    def __init__(self, kind: str, name: str, reason: str = ""):
        self.kind = kind
        self.name = name
        self.reason = reason
        msg = f"{kind}/{name} skipped: kind not available in this cluster"
        if reason:
            msg = f"{msg} ({reason})"
        super().__init__(msg)


class ApplyError(WetctlError):
    """The control plane rejected a resource."""


class ReadinessTimeout(WetctlError):
    """A workload did not become ready within its bounded wait.

    Retryable by the operator: rerunning the rollout is idempotent.
    """

    def __init__(self, resources: list[str], timeout: float):
        self.resources = list(resources)
        self.timeout = timeout
        super().__init__(
            f"Not ready after {timeout:g}s: {', '.join(self.resources)}"
        )


class RolloutInterrupted(WetctlError):
    """The operator interrupted a rollout. Applied resources stay in place."""


# ── Secrets ─────────────────────────────────────────────────────


class SecretPolicyViolation(WetctlError):
    """Default credentials were requested where the environment forbids them."""

    def __init__(self, env_id: str, service: str = ""):
        self.env_id = env_id
        self.service = service
        target = f" for '{service}'" if service else ""
        super().__init__(
            f"Environment '{env_id}' forbids default credentials{target}; "
            "rerun with --random"
        )


class SecretStoreError(WetctlError):
    """The on-disk secret store could not be read or written."""
