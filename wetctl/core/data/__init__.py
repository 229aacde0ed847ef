"""
Central data registry for the built-in catalogs.

Loads base catalogs from ``wetctl/core/data/catalogs/`` once at first
access and caches them for the lifetime of the instance. The catalogs
are the defaults; ``wetctl.yml`` may add to or override them (see
``wetctl.core.config.loader``).

Usage::

    from wetctl.core.data import DataRegistry

    registry = DataRegistry()
    envs = registry.environments     # list[Environment]
    services = registry.services     # list[ServiceDescriptor]
"""

from __future__ import annotations

import json
import logging
from functools import cached_property
from pathlib import Path

from wetctl.core.models.environment import Environment
from wetctl.core.models.service import ServiceDescriptor
from wetctl.core.models.stack import Stack

logger = logging.getLogger(__name__)

_DATA_DIR = Path(__file__).parent


def _load_json(relative_path: str) -> list | dict:
    """Load a JSON file relative to the data directory."""
    path = _DATA_DIR / relative_path
    if not path.exists():
        logger.warning("Data file not found: %s", path)
        return []
    with open(path, encoding="utf-8") as f:
        return json.load(f)


class DataRegistry:
    """Registry of the built-in environment, service and stack catalogs."""

    @cached_property
    def environments(self) -> list[Environment]:
        """dev / staging / prod environment tuples."""
        data = _load_json("catalogs/environments.json")
        envs = [Environment.model_validate(item) for item in data]
        logger.debug("Loaded %d built-in environments", len(envs))
        return envs

    @cached_property
    def services(self) -> list[ServiceDescriptor]:
        """wiki, home, glitch, click, danger."""
        data = _load_json("catalogs/services.json")
        services = [ServiceDescriptor.model_validate(item) for item in data]
        logger.debug("Loaded %d built-in service descriptors", len(services))
        return services

    @cached_property
    def stacks(self) -> list[Stack]:
        """Chart bundles (platform, monitoring)."""
        data = _load_json("catalogs/stacks.json")
        stacks = [Stack.model_validate(item) for item in data]
        logger.debug("Loaded %d built-in stacks", len(stacks))
        return stacks
