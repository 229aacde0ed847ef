"""
Adapter base — the protocol contract between engine and tools.

This defines the abstract interfaces the engine talks to. The engine
never shells out to kubectl, helm or docker directly; it only calls
adapters, which lets tests swap in the fakes from ``wetctl.adapters.mock``.

Adapters raise the typed errors from ``wetctl.core.errors``. The Rollout
Executor is the layer that catches them and turns them into a
RolloutRecord.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

from wetctl.core.models.resources import Resource
from wetctl.core.models.stack import ChartRelease


class Adapter(ABC):
    """Abstract base class for all adapters."""

    @property
    @abstractmethod
    def name(self) -> str:
        """The adapter identifier (e.g., 'kubectl', 'helm', 'docker')."""

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this adapter's underlying tool is available.

        Should be fast and never raise.
        """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"


class ClusterClient(Adapter):
    """Declarative control-plane access.

    ``apply`` is idempotent: applying an identical document twice
    reports ``unchanged`` the second time.
    """

    @abstractmethod
    def check_access(self) -> None:
        """Raise PrerequisiteMissing if the cluster is unreachable."""

    @abstractmethod
    def nodes_ready(self) -> bool:
        """True when at least one node reports Ready."""

    @abstractmethod
    def namespace_exists(self, namespace: str) -> bool: ...

    @abstractmethod
    def create_namespace(self, namespace: str) -> str:
        """Create a namespace. Returns ``created`` or ``unchanged``."""

    @abstractmethod
    def available_kinds(self) -> frozenset[str]:
        """Resource kinds registered in the cluster."""

    @abstractmethod
    def apply(self, resource: Resource, *, timeout: int = 60) -> str:
        """Apply one document. Returns ``created``, ``configured`` or ``unchanged``.

        Raises:
            OptionalCapabilityUnavailable: the kind is not registered.
            ApplyError: the control plane rejected the document.
        """

    @abstractmethod
    def delete(self, resource: Resource, *, timeout: int = 60) -> str:
        """Delete one document. Returns ``deleted`` or ``not-found``."""

    @abstractmethod
    def is_ready(self, kind: str, name: str, namespace: str) -> bool:
        """True when the workload's observed state matches its spec."""

    @abstractmethod
    def pods(self, namespace: str) -> list[dict]:
        """Pod summaries: ``{name, phase, ready, restarts, labels}``."""

    @abstractmethod
    def endpoints(self, namespace: str, service: str) -> list[str]:
        """Ready endpoint addresses behind a Service."""

    @abstractmethod
    def ingress_hosts(self, namespace: str) -> list[str]: ...

    @abstractmethod
    def logs(self, namespace: str, pod: str, *, tail: int = 50) -> str: ...


class PackageInstaller(Adapter):
    """Third-party chart installs (monitoring, ingress, cert-manager)."""

    @abstractmethod
    def repo_add(self, name: str, url: str) -> None: ...

    @abstractmethod
    def upgrade_install(
        self,
        release: ChartRelease,
        *,
        values_path: Path | None = None,
        timeout: int = 600,
    ) -> str:
        """Install or upgrade a release. Returns ``installed`` or ``upgraded``.

        Raises:
            ApplyError: the install failed.
        """

    @abstractmethod
    def uninstall(self, release: ChartRelease, *, timeout: int = 300) -> str:
        """Remove a release. Returns ``deleted`` or ``not-found``."""


class ImageBuilder(Adapter):
    """Container image builds for services built from this repository."""

    @abstractmethod
    def build(self, context_dir: Path, dockerfile: str, tag: str, *, timeout: int = 600) -> None:
        """Build an image. Raises ApplyError on failure."""

    @abstractmethod
    def push(self, tag: str, *, timeout: int = 600) -> None:
        """Push an image. Raises ApplyError on failure."""
