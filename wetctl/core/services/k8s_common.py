"""
K8s shared constants and low-level helpers.

Imported by the kubectl cluster adapter and the rollout executor (stack
manifests). Must NOT import from any adapter module to avoid circular
imports.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════
#  Constants
# ═══════════════════════════════════════════════════════════════════


# kubectl stderr fragments meaning "this kind is not registered"
_NO_KIND_MARKERS = (
    "no matches for kind",
    "ensure crds are installed first",
    "the server doesn't have a resource type",
)

_NOT_FOUND_MARKERS = ("notfound", "not found")


# ═══════════════════════════════════════════════════════════════════
#  Shared Helpers
# ═══════════════════════════════════════════════════════════════════


def _run_kubectl(
    *args: str,
    timeout: int = 15,
    input: str | None = None,
) -> subprocess.CompletedProcess[str]:
    """Run a kubectl command and return the result."""
    return subprocess.run(
        ["kubectl", *args],
        capture_output=True,
        text=True,
        timeout=timeout,
        input=input,
    )


def _is_missing_kind(stderr: str) -> bool:
    text = stderr.lower()
    return any(marker in text for marker in _NO_KIND_MARKERS)


def _is_not_found(stderr: str) -> bool:
    text = stderr.lower().replace(" ", "")
    return any(marker.replace(" ", "") in text for marker in _NOT_FOUND_MARKERS)


def _parse_k8s_yaml(path: Path) -> list[dict]:
    """Parse a YAML file and return K8s resource dicts."""
    try:
        content = path.read_text(encoding="utf-8", errors="ignore")
    except OSError:
        return []

    resources: list[dict] = []
    try:
        for doc in yaml.safe_load_all(content):
            if doc and isinstance(doc, dict):
                if "kind" in doc and "apiVersion" in doc:
                    resources.append(doc)
    except yaml.YAMLError:
        logger.warning("Invalid YAML in %s", path)

    return resources
