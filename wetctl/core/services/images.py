"""
Image builds — parallel build+push of every buildable component.

Builds are side-effect isolated (one tag per component), so they run
in a thread pool. ``build_images`` returns only after every task has
finished: it is the barrier the rollout phase waits behind.
"""

from __future__ import annotations

import concurrent.futures
import logging
from dataclasses import dataclass, field

from wetctl.adapters.base import ImageBuilder
from wetctl.core.config.loader import OrchestratorConfig
from wetctl.core.errors import WetctlError
from wetctl.core.models.environment import Environment
from wetctl.core.models.service import ServiceDescriptor

logger = logging.getLogger(__name__)


@dataclass
class BuildReport:
    """Per-service build outcome."""

    built: dict[str, list[str]] = field(default_factory=dict)    # service → tags
    errors: dict[str, list[str]] = field(default_factory=dict)   # service → messages

    @property
    def failed_services(self) -> list[str]:
        return sorted(self.errors)

    def ok(self, service: str) -> bool:
        return service not in self.errors

    def to_dict(self) -> dict:
        return {"built": self.built, "errors": self.errors}


def _build_one(
    builder: ImageBuilder,
    config: OrchestratorConfig,
    service: ServiceDescriptor,
    dockerfile: str,
    tag: str,
) -> str:
    timeout = config.timeouts.build
    builder.build(config.service_dir(service.name), dockerfile, tag, timeout=timeout)
    builder.push(tag, timeout=timeout)
    return tag


def build_images(
    builder: ImageBuilder,
    config: OrchestratorConfig,
    services: list[ServiceDescriptor],
    env: Environment,
) -> BuildReport:
    """Build and push images for ``services``; wait for all of them."""
    report = BuildReport()
    jobs = [
        (service, comp.dockerfile, env.image_ref(service.name, comp.name))
        for service in services
        for comp in service.buildable_components
    ]
    if not jobs:
        return report

    logger.info("Building %d images (%d workers)", len(jobs), config.max_workers)
    with concurrent.futures.ThreadPoolExecutor(
        max_workers=min(config.max_workers, len(jobs)),
    ) as pool:
        futures = {
            pool.submit(_build_one, builder, config, service, dockerfile, tag): (service.name, tag)
            for service, dockerfile, tag in jobs
        }
        for future in concurrent.futures.as_completed(futures):
            service_name, tag = futures[future]
            try:
                report.built.setdefault(service_name, []).append(future.result())
            except WetctlError as e:
                logger.error("Build of %s failed: %s", tag, e)
                report.errors.setdefault(service_name, []).append(str(e))

    return report
