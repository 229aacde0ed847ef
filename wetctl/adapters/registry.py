"""
Adapter registry — the set of tool bindings one invocation runs with.

The CLI root builds a Toolchain once (real adapters, or fakes under
test) and every use case receives it explicitly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from wetctl.adapters.base import Adapter, ClusterClient, ImageBuilder, PackageInstaller

logger = logging.getLogger(__name__)


@dataclass
class Toolchain:
    """Cluster client, package installer and image builder."""

    cluster: ClusterClient
    installer: PackageInstaller
    builder: ImageBuilder

    @classmethod
    def default(cls, project_root: Path) -> Toolchain:
        """Real adapters backed by kubectl, helm and docker."""
        from wetctl.adapters.cluster.kubectl import KubectlCluster
        from wetctl.adapters.containers.docker import DockerImageBuilder
        from wetctl.adapters.packages.helm import HelmInstaller

        return cls(
            cluster=KubectlCluster(),
            installer=HelmInstaller(),
            builder=DockerImageBuilder(project_root),
        )

    def adapters(self) -> list[Adapter]:
        return [self.cluster, self.installer, self.builder]

    def availability(self) -> dict[str, bool]:
        """Adapter name → is the underlying tool installed."""
        status = {a.name: a.is_available() for a in self.adapters()}
        logger.debug("Tool availability: %s", status)
        return status
