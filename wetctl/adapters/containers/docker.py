"""Docker image builder — build and push service images."""

from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path

from wetctl.adapters.base import ImageBuilder
from wetctl.core.errors import ApplyError, PrerequisiteMissing

logger = logging.getLogger(__name__)


def run_docker(
    *args: str,
    cwd: Path,
    timeout: int = 60,
) -> subprocess.CompletedProcess[str]:
    """Run a docker command and return the result."""
    return subprocess.run(
        ["docker", *args],
        cwd=str(cwd),
        capture_output=True,
        text=True,
        timeout=timeout,
    )


class DockerImageBuilder(ImageBuilder):
    """ImageBuilder backed by the docker CLI."""

    def __init__(self, project_root: Path):
        self._root = project_root

    @property
    def name(self) -> str:
        return "docker"

    def is_available(self) -> bool:
        return shutil.which("docker") is not None

    def _run(self, *args: str, cwd: Path, timeout: int) -> subprocess.CompletedProcess[str]:
        try:
            return run_docker(*args, cwd=cwd, timeout=timeout)
        except FileNotFoundError as e:
            raise PrerequisiteMissing("docker CLI not found", ["docker"]) from e
        except subprocess.TimeoutExpired as e:
            raise ApplyError(f"docker {args[0]} timed out after {e.timeout}s") from e

    def build(self, context_dir: Path, dockerfile: str, tag: str, *, timeout: int = 600) -> None:
        if not (context_dir / dockerfile).is_file():
            raise ApplyError(f"Dockerfile not found: {context_dir / dockerfile}")
        logger.info("Building %s from %s", tag, context_dir / dockerfile)
        r = self._run("build", "-f", dockerfile, "-t", tag, ".", cwd=context_dir, timeout=timeout)
        if r.returncode != 0:
            tail = "\n".join((r.stderr or r.stdout).strip().splitlines()[-5:])
            raise ApplyError(f"docker build {tag} failed: {tail}")

    def push(self, tag: str, *, timeout: int = 600) -> None:
        r = self._run("push", tag, cwd=self._root, timeout=timeout)
        if r.returncode != 0:
            raise ApplyError(f"docker push {tag} failed: {r.stderr.strip()}")
