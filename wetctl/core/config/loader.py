"""
Configuration loader — reads wetctl.yml into the orchestrator config.

This is the primary entry point for configuration. It reads YAML,
validates it against Pydantic schemas, merges it over the built-in
catalogs, and returns a single ``OrchestratorConfig``.

The config object is built ONCE at process start (by the CLI root)
and passed explicitly to every component. Nothing downstream looks
at the working directory or any other ambient state.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from wetctl.core.data import DataRegistry
from wetctl.core.errors import ConfigError
from wetctl.core.models.environment import Environment, EnvironmentOverride
from wetctl.core.models.service import ServiceDescriptor
from wetctl.core.models.stack import Stack

logger = logging.getLogger(__name__)

# Default config filename
PROJECT_CONFIG_FILE = "wetctl.yml"


class Timeouts(BaseModel):
    """Bounded waits, in seconds. No step waits indefinitely."""

    apply: int = 60
    readiness: float = 300.0
    datastore_readiness: float = 300.0
    poll_interval: float = 2.0
    http: float = 5.0
    helm: int = 600
    build: int = 600


class VerifySettings(BaseModel):
    """Health Verifier thresholds."""

    restart_warn_threshold: int = 5
    log_tail_lines: int = 50
    error_keywords: list[str] = Field(
        default_factory=lambda: ["error", "fatal", "exception", "failed"]
    )
    http_scheme: str = "http"
    http_port: int | None = None


class ProjectFile(BaseModel):
    """Raw shape of wetctl.yml. Every key is optional."""

    version: int = 1
    name: str = "wetfish"
    services_dir: str = "services"
    default_environment: str = "dev"
    environments: dict[str, EnvironmentOverride] = Field(default_factory=dict)
    services: list[ServiceDescriptor] = Field(default_factory=list)
    stacks: list[Stack] = Field(default_factory=list)
    timeouts: Timeouts = Field(default_factory=Timeouts)
    verify: VerifySettings = Field(default_factory=VerifySettings)
    optional_kinds: list[str] = Field(
        default_factory=lambda: ["ServiceMonitor", "PodMonitor", "PrometheusRule"]
    )
    system_namespaces: list[str] = Field(
        default_factory=lambda: ["wetfish-system", "wetfish-monitoring"]
    )
    max_workers: int = Field(default=4, ge=1)


class OrchestratorConfig(BaseModel):
    """Fully resolved configuration, threaded through every component."""

    model_config = ConfigDict(frozen=True)

    project_root: Path
    config_path: Path | None = None
    name: str = "wetfish"
    services_dir: str = "services"
    default_environment: str = "dev"
    environments: tuple[Environment, ...] = ()
    services: tuple[ServiceDescriptor, ...] = ()
    stacks: tuple[Stack, ...] = ()
    timeouts: Timeouts = Field(default_factory=Timeouts)
    verify: VerifySettings = Field(default_factory=VerifySettings)
    optional_kinds: frozenset[str] = frozenset()
    system_namespaces: tuple[str, ...] = ()
    max_workers: int = 4

    # ── Paths ────────────────────────────────────────────────────

    def service_dir(self, service: str) -> Path:
        return self.project_root / self.services_dir / service

    def base_dir(self, service: str) -> Path:
        """Environment-agnostic templates for a service."""
        return self.service_dir(service) / "k8s" / "base"

    def overlay_dir(self, service: str, env_id: str) -> Path:
        """Environment-specific overlay (and secret file) for a service."""
        return self.service_dir(service) / "k8s" / "overlays" / env_id

    # ── Catalog lookups ──────────────────────────────────────────

    def get_service(self, name: str) -> ServiceDescriptor | None:
        for svc in self.services:
            if svc.name == name:
                return svc
        return None

    def get_stack(self, name: str) -> Stack | None:
        for stack in self.stacks:
            if stack.name == name:
                return stack
        return None

    @property
    def service_names(self) -> list[str]:
        return [s.name for s in self.services]

    @property
    def stack_names(self) -> list[str]:
        return [s.name for s in self.stacks]


def find_project_file(start_dir: Path | None = None) -> Path | None:
    """Search for wetctl.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to wetctl.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / PROJECT_CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def _read_project_file(path: Path) -> ProjectFile:
    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    try:
        return ProjectFile.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {path}: {e}") from e


def _merge_environments(
    builtin: list[Environment],
    overrides: dict[str, EnvironmentOverride],
) -> tuple[Environment, ...]:
    table: dict[str, Environment] = {env.id: env for env in builtin}

    for env_id, override in overrides.items():
        updates = override.model_dump(exclude_none=True)
        aliases = updates.pop("aliases", [])
        if aliases:
            updates["aliases"] = tuple(aliases)

        try:
            if env_id in table:
                merged = table[env_id].model_dump()
                merged.update(updates)
                table[env_id] = Environment.model_validate(merged)
            else:
                table[env_id] = Environment.model_validate({"id": env_id, **updates})
        except ValidationError as e:
            raise ConfigError(f"Invalid environment '{env_id}': {e}") from e

    return tuple(table.values())


def _merge_by_name(builtin: list, declared: list) -> tuple:
    merged = {item.name: item for item in builtin}
    for item in declared:
        merged[item.name] = item
    return tuple(merged.values())


def load_config(
    path: Path | None = None,
    *,
    project_root: Path | None = None,
    registry: DataRegistry | None = None,
) -> OrchestratorConfig:
    """Build the orchestrator configuration.

    Args:
        path: Explicit path to wetctl.yml. If None, only the built-in
            catalogs are used.
        project_root: Override the project root (default: the config
            file's directory, or the current directory without one).
        registry: Built-in catalog source (default: a fresh DataRegistry).

    Returns:
        Frozen OrchestratorConfig.

    Raises:
        ConfigError: If the file is missing or invalid.
    """
    registry = registry or DataRegistry()
    project = _read_project_file(path) if path is not None else ProjectFile()

    if project_root is None:
        project_root = path.parent.resolve() if path is not None else Path.cwd().resolve()

    config = OrchestratorConfig(
        project_root=project_root,
        config_path=path,
        name=project.name,
        services_dir=project.services_dir,
        default_environment=project.default_environment,
        environments=_merge_environments(registry.environments, project.environments),
        services=_merge_by_name(registry.services, project.services),
        stacks=_merge_by_name(registry.stacks, project.stacks),
        timeouts=project.timeouts,
        verify=project.verify,
        optional_kinds=frozenset(project.optional_kinds),
        system_namespaces=tuple(project.system_namespaces),
        max_workers=project.max_workers,
    )

    logger.info(
        "Loaded config '%s': %d environments, %d services, %d stacks",
        config.name,
        len(config.environments),
        len(config.services),
        len(config.stacks),
    )
    return config
