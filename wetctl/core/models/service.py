"""
Service model — environment-independent description of a deployable service.

A ServiceDescriptor is static: defined once (built-in catalog or
wetctl.yml) and shared by every environment.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Component(BaseModel):
    """One deployable process of a service (front-end, backend, datastore)."""

    model_config = ConfigDict(frozen=True)

    name: str
    role: Literal["app", "datastore"] = "app"
    # None → upstream image, nothing to build
    dockerfile: str | None = None


class SecretKey(BaseModel):
    """One key inside a generated Secret resource."""

    model_config = ConfigDict(frozen=True)

    name: str
    default: str
    generated: bool = True   # False → fixed value (user/database names)


class SecretSpec(BaseModel):
    """A Secret resource the materializer produces for a service."""

    model_config = ConfigDict(frozen=True)

    name: str
    component: str
    keys: tuple[SecretKey, ...] = ()


class ServiceDescriptor(BaseModel):
    """A service and the components that must be deployed together."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    components: tuple[Component, ...] = Field(default_factory=tuple)
    requires_base_url: bool = False
    secrets: tuple[SecretSpec, ...] = ()

    @model_validator(mode="after")
    def _secret_components_declared(self) -> ServiceDescriptor:
        declared = {c.name for c in self.components}
        for spec in self.secrets:
            if spec.component not in declared:
                raise ValueError(
                    f"secret {spec.name} names unknown component {spec.component!r} "
                    f"(declared: {', '.join(sorted(declared)) or 'none'})"
                )
        return self

    @property
    def owns_datastore(self) -> bool:
        return any(c.role == "datastore" for c in self.components)

    @property
    def datastore_components(self) -> list[Component]:
        return [c for c in self.components if c.role == "datastore"]

    @property
    def app_components(self) -> list[Component]:
        return [c for c in self.components if c.role == "app"]

    @property
    def buildable_components(self) -> list[Component]:
        """Components whose image is built from this repository."""
        return [c for c in self.components if c.dockerfile]

    def get_component(self, name: str) -> Component | None:
        for comp in self.components:
            if comp.name == name:
                return comp
        return None
