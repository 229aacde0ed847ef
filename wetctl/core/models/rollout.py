"""
Rollout models — the unit of work and its outcome.

DeploymentUnit is the request ("apply this ResourceSet, wait for
these workloads"). RolloutRecord is the result. The executor
fills the record as it walks the state machine; it never raises
for a rollout failure, the failure is captured in the record.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, Field

from wetctl.core.models.environment import Environment
from wetctl.core.models.resources import ResourceLayer, ResourceSet
from wetctl.core.models.service import ServiceDescriptor


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class RolloutPhase(StrEnum):
    """Per-unit state machine steps, in order."""

    PENDING = "Pending"
    NAMESPACE_CHECK = "NamespaceCheck"
    INFRASTRUCTURE_APPLY = "InfrastructureApply"
    SECRET_APPLY = "SecretApply"
    WORKLOAD_APPLY = "WorkloadApply"
    READINESS_WAIT = "ReadinessWait"
    DONE = "Done"


class RolloutStatus(StrEnum):
    """Terminal states."""

    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    PARTIALLY_DEGRADED = "PartiallyDegraded"


class OutcomeStatus(StrEnum):
    APPLIED = "applied"
    SKIPPED_OPTIONAL = "skipped-optional"
    FAILED_FATAL = "failed-fatal"
    DELETED = "deleted"


class DeploymentUnit(BaseModel):
    """A resolved (service, environment) pair ready to apply.

    Created per invocation and discarded after the run.
    """

    service: ServiceDescriptor
    environment: Environment
    resource_set: ResourceSet

    @property
    def name(self) -> str:
        return f"{self.service.name}@{self.environment.id}"

    @property
    def namespace(self) -> str:
        return self.resource_set.namespace

    def readiness_targets(self, layer: ResourceLayer | None = None) -> list[str]:
        """Workload keys (``Deployment/wiki-web``) whose readiness gates the unit."""
        return [
            r.key
            for r in self.resource_set.resources
            if r.is_workload and (layer is None or r.layer == layer)
        ]


class ResourceOutcome(BaseModel):
    """Apply result for one resource."""

    resource: str
    phase: RolloutPhase
    status: OutcomeStatus
    change: str = ""          # created, configured, unchanged
    message: str = ""


class RolloutRecord(BaseModel):
    """Outcome of applying a DeploymentUnit."""

    unit: str
    service: str
    environment: str
    namespace: str
    action: Literal["deploy", "delete", "install"] = "deploy"

    phase: RolloutPhase = RolloutPhase.PENDING
    status: RolloutStatus | None = None
    phases_completed: list[RolloutPhase] = Field(default_factory=list)
    outcomes: list[ResourceOutcome] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    error: str | None = None
    error_type: str | None = None
    interrupted: bool = False

    started_at: str = Field(default_factory=_now_iso)
    ended_at: str = ""

    # ── Recording ────────────────────────────────────────────────

    def enter(self, phase: RolloutPhase) -> None:
        if self.phase not in (RolloutPhase.PENDING, phase):
            self.phases_completed.append(self.phase)
        self.phase = phase

    def add(
        self,
        resource: str,
        status: OutcomeStatus,
        *,
        change: str = "",
        message: str = "",
    ) -> ResourceOutcome:
        outcome = ResourceOutcome(
            resource=resource,
            phase=self.phase,
            status=status,
            change=change,
            message=message,
        )
        self.outcomes.append(outcome)
        return outcome

    def warn(self, message: str) -> None:
        self.warnings.append(message)

    def fail(self, exc: BaseException, *, message: str | None = None) -> None:
        """Record a fatal error. The first error wins."""
        if self.error is None:
            self.error = message or str(exc) or exc.__class__.__name__
            self.error_type = exc.__class__.__name__

    def finalize(self) -> RolloutRecord:
        """Resolve the terminal status from what was recorded."""
        if self.error is not None:
            self.status = RolloutStatus.FAILED
        elif self.skipped or self.warnings:
            self.status = RolloutStatus.PARTIALLY_DEGRADED
        else:
            self.status = RolloutStatus.SUCCEEDED
            self.enter(RolloutPhase.DONE)
        self.ended_at = _now_iso()
        return self

    # ── Queries ──────────────────────────────────────────────────

    @property
    def applied(self) -> list[ResourceOutcome]:
        return [o for o in self.outcomes if o.status == OutcomeStatus.APPLIED]

    @property
    def skipped(self) -> list[ResourceOutcome]:
        return [o for o in self.outcomes if o.status == OutcomeStatus.SKIPPED_OPTIONAL]

    @property
    def failed(self) -> list[ResourceOutcome]:
        return [o for o in self.outcomes if o.status == OutcomeStatus.FAILED_FATAL]

    @property
    def mutated(self) -> list[ResourceOutcome]:
        """Outcomes that changed cluster state (anything but ``unchanged``)."""
        return [
            o for o in self.outcomes
            if o.status in (OutcomeStatus.APPLIED, OutcomeStatus.DELETED)
            and o.change != "unchanged"
        ]

    @property
    def ok(self) -> bool:
        return self.status in (RolloutStatus.SUCCEEDED, RolloutStatus.PARTIALLY_DEGRADED)

    def to_dict(self) -> dict:
        return self.model_dump(mode="json")
