"""
Prerequisite checks — run before any mutating step.

Tool presence is asked of each adapter (``is_available``: a PATH lookup
for the real ones); cluster access is one read-only ``kubectl
cluster-info`` through the cluster adapter.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable

from wetctl.adapters.base import Adapter, ClusterClient
from wetctl.core.errors import PrerequisiteMissing

logger = logging.getLogger(__name__)


def check_prerequisites(
    adapters: Iterable[Adapter],
    cluster: ClusterClient | None = None,
) -> None:
    """Fail with PrerequisiteMissing unless every tool (and the cluster) is reachable.

    Args:
        adapters: Adapters whose underlying tool must be installed.
        cluster: If given, cluster access is verified too.
    """
    adapters = list(adapters)
    missing = [a.name for a in adapters if not a.is_available()]
    if missing:
        raise PrerequisiteMissing(
            f"Missing required tools: {', '.join(missing)}", missing
        )
    if cluster is not None:
        cluster.check_access()
    logger.debug("Prerequisites satisfied: %s", ", ".join(a.name for a in adapters) or "-")


def wait_for_nodes(
    cluster: ClusterClient,
    *,
    timeout: float,
    poll_interval: float = 2.0,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """Block until a node reports Ready.

    Raises:
        PrerequisiteMissing: no Ready node within ``timeout``.
    """
    deadline = clock() + timeout
    while not cluster.nodes_ready():
        if clock() >= deadline:
            raise PrerequisiteMissing(
                f"No cluster node became Ready within {timeout:g}s", ["cluster-nodes"]
            )
        sleep(poll_interval)
    logger.info("Cluster nodes ready")
