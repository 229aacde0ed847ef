"""Helm package installer — repo add, upgrade --install.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path

from wetctl.adapters.base import PackageInstaller
from wetctl.core.errors import ApplyError, PrerequisiteMissing
from wetctl.core.models.stack import ChartRelease

logger = logging.getLogger(__name__)


def _helm_available() -> bool:
    """Check if helm CLI is available."""
    return shutil.which("helm") is not None


def _run_helm(*args: str, timeout: int = 120) -> subprocess.CompletedProcess[str]:
    """Run a helm command and return the result."""
    return subprocess.run(
        ["helm", *args],
        capture_output=True,
        text=True,
        timeout=timeout,
    )


def build_upgrade_cmd(
    release: ChartRelease,
    *,
    values_path: Path | None = None,
    timeout: int = 600,
) -> list[str]:
    """Build the ``helm upgrade --install`` argument list for a release."""
    chart = release.chart
    if release.repo_name and "/" not in chart:
        chart = f"{release.repo_name}/{chart}"
    cmd = [
        "upgrade", release.name, chart, "--install",
        "--namespace", release.namespace,
        "--create-namespace",
        "--wait",
        "--timeout", f"{timeout}s",
    ]
    if release.version:
        cmd.extend(["--version", release.version])
    if values_path is not None:
        cmd.extend(["--values", str(values_path)])
    for k, v in sorted(release.set_values.items()):
        cmd.extend(["--set", f"{k}={v}"])
    return cmd


class HelmInstaller(PackageInstaller):
    """PackageInstaller backed by the helm CLI."""

    def __init__(self) -> None:
        self._repos: set[str] = set()

    @property
    def name(self) -> str:
        return "helm"

    def is_available(self) -> bool:
        return _helm_available()

    def _run(self, *args: str, timeout: int = 120) -> subprocess.CompletedProcess[str]:
        try:
            return _run_helm(*args, timeout=timeout)
        except FileNotFoundError as e:
            raise PrerequisiteMissing("helm CLI not found", ["helm"]) from e
        except subprocess.TimeoutExpired as e:
            raise ApplyError(f"helm {args[0]} timed out after {e.timeout}s") from e

    def repo_add(self, name: str, url: str) -> None:
        if name in self._repos:
            return
        r = self._run("repo", "add", name, url, "--force-update")
        if r.returncode != 0:
            raise ApplyError(r.stderr.strip() or f"helm repo add {name} failed")
        r = self._run("repo", "update", name, timeout=300)
        if r.returncode != 0:
            logger.warning("helm repo update %s: %s", name, r.stderr.strip())
        self._repos.add(name)

    def upgrade_install(
        self,
        release: ChartRelease,
        *,
        values_path: Path | None = None,
        timeout: int = 600,
    ) -> str:
        if release.repo_name and release.repo_url:
            self.repo_add(release.repo_name, release.repo_url)

        cmd = build_upgrade_cmd(release, values_path=values_path, timeout=timeout)
        logger.info("helm upgrade --install %s (%s)", release.name, release.namespace)
        r = self._run(*cmd, timeout=timeout + 30)
        if r.returncode != 0:
            raise ApplyError(r.stderr.strip() or f"Helm install of {release.name} failed")
        return "upgraded" if "has been upgraded" in r.stdout else "installed"

    def uninstall(self, release: ChartRelease, *, timeout: int = 300) -> str:
        r = self._run("uninstall", release.name, "--namespace", release.namespace, timeout=timeout)
        if r.returncode != 0:
            if "not found" in r.stderr.lower():
                return "not-found"
            raise ApplyError(r.stderr.strip() or f"Helm uninstall of {release.name} failed")
        return "deleted"
