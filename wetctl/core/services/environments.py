"""
Environment Registry — resolves an environment identifier to its tuple.

Pure lookup over a table fixed at construction time. Callers resolve
before any mutating operation; an unknown identifier raises
``UnknownEnvironment`` and nothing else happens.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from types import MappingProxyType

from wetctl.core.errors import ConfigError, UnknownEnvironment
from wetctl.core.models.environment import Environment

logger = logging.getLogger(__name__)


class EnvironmentRegistry:
    """Immutable table of environments, keyed by id and alias."""

    def __init__(self, environments: Iterable[Environment]):
        by_id: dict[str, Environment] = {}
        lookup: dict[str, Environment] = {}

        for env in environments:
            if env.id in by_id:
                raise ConfigError(f"Duplicate environment id: {env.id}")
            by_id[env.id] = env

        for env in by_id.values():
            for key in (env.id, *env.aliases):
                key = key.lower()
                existing = lookup.get(key)
                if existing is not None and existing.id != env.id:
                    raise ConfigError(
                        f"Environment name '{key}' is claimed by both "
                        f"'{existing.id}' and '{env.id}'"
                    )
                lookup[key] = env

        self._by_id = MappingProxyType(by_id)
        self._lookup = MappingProxyType(lookup)

    @classmethod
    def from_config(cls, config) -> EnvironmentRegistry:
        return cls(config.environments)

    def resolve(self, env_id: str | None) -> Environment:
        """Return the environment tuple for an id or alias.

        Raises:
            UnknownEnvironment: for empty or unknown identifiers.
        """
        key = (env_id or "").strip().lower()
        env = self._lookup.get(key)
        if env is None:
            raise UnknownEnvironment(env_id or "", known=list(self._by_id))
        logger.debug("Resolved environment '%s' → %s", env_id, env.namespace)
        return env

    def ids(self) -> list[str]:
        return list(self._by_id)

    def all(self) -> list[Environment]:
        return list(self._by_id.values())

    def __contains__(self, env_id: object) -> bool:
        return isinstance(env_id, str) and env_id.strip().lower() in self._lookup

    def __len__(self) -> int:
        return len(self._by_id)
