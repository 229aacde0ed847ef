"""Adapters — tool bindings for external integrations.

Public re-exports for convenient access.
"""

from wetctl.adapters.base import Adapter, ClusterClient, ImageBuilder, PackageInstaller
from wetctl.adapters.mock import FakeCluster, FakeHelm, FakeImageBuilder
from wetctl.adapters.registry import Toolchain

__all__ = [
    "Adapter",
    "ClusterClient",
    "FakeCluster",
    "FakeHelm",
    "FakeImageBuilder",
    "ImageBuilder",
    "PackageInstaller",
    "Toolchain",
]
