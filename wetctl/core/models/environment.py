"""
Environment model — a named deployment target.

Loaded once from the built-in catalog (and optional wetctl.yml
overrides) into the Environment Registry. Frozen: looked up, never
mutated at runtime.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Environment(BaseModel):
    """A concrete deployment target (dev, staging, prod, or any open id)."""

    model_config = ConfigDict(frozen=True)

    id: str
    namespace: str
    registry: str
    hostname_suffix: str
    image_tag_prefix: str = ""
    tls_issuer: str
    storage_class: str
    aliases: tuple[str, ...] = ()
    allow_default_credentials: bool = False
    description: str = ""

    @field_validator("id", "namespace", "registry", "hostname_suffix", "tls_issuer", "storage_class")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must not be empty")
        return value.strip()

    def image_ref(self, service: str, component: str) -> str:
        """Image reference for one component, e.g. ``localhost:5000/wiki:php``."""
        return f"{self.registry}/{service}:{self.image_tag_prefix}{component}"

    def hostname(self, service: str) -> str:
        """Externally reachable host for a service."""
        return f"{service}.{self.hostname_suffix}"

    def to_dict(self) -> dict:
        return self.model_dump(mode="json")


class EnvironmentOverride(BaseModel):
    """An environment declared (or partially overridden) in wetctl.yml."""

    namespace: str | None = None
    registry: str | None = None
    hostname_suffix: str | None = None
    image_tag_prefix: str | None = None
    tls_issuer: str | None = None
    storage_class: str | None = None
    aliases: list[str] = Field(default_factory=list)
    allow_default_credentials: bool | None = None
    description: str | None = None
