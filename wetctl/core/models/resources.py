"""
Resource models — the composed, concrete output of configuration layering.

A ResourceSet is what the Layering Engine emits and the Rollout
Executor consumes. Every resource in it is fully resolved: the engine
fails closed before a placeholder could reach this model.
"""

from __future__ import annotations

import hashlib
from enum import StrEnum
from typing import Any

import yaml
from pydantic import BaseModel, Field


class ResourceLayer(StrEnum):
    """Apply layers, in rollout order."""

    INFRASTRUCTURE = "infrastructure"
    SECRET = "secret"
    DATASTORE = "datastore"
    APPLICATION = "application"


# Kinds whose readiness the executor waits on.
WORKLOAD_KINDS = frozenset({"Deployment", "StatefulSet", "DaemonSet"})


class Resource(BaseModel):
    """A single declarative resource document."""

    kind: str
    name: str
    namespace: str | None = None
    layer: ResourceLayer = ResourceLayer.APPLICATION
    source: str = ""
    body: dict[str, Any] = Field(default_factory=dict)

    @property
    def key(self) -> str:
        return f"{self.kind}/{self.name}"

    @property
    def is_workload(self) -> bool:
        return self.kind in WORKLOAD_KINDS


class ResourceSet(BaseModel):
    """A concrete, ordered resource set for one (service, environment)."""

    service: str
    environment: str
    namespace: str
    resources: list[Resource] = Field(default_factory=list)
    # Secret resource names registered by the Secret Materializer
    secret_refs: list[str] = Field(default_factory=list)

    def by_layer(self, layer: ResourceLayer) -> list[Resource]:
        return [r for r in self.resources if r.layer == layer]

    def by_kind(self, kind: str) -> list[Resource]:
        return [r for r in self.resources if r.kind == kind]

    def get(self, kind: str, name: str) -> Resource | None:
        for res in self.resources:
            if res.kind == kind and res.name == name:
                return res
        return None

    def references_secret(self, name: str) -> bool:
        return name in self.secret_refs

    def render(self) -> str:
        """Serialize to a multi-document YAML stream (stable key order)."""
        return yaml.safe_dump_all(
            [r.body for r in self.resources],
            sort_keys=True,
            default_flow_style=False,
        )

    def fingerprint(self) -> str:
        payload = self.render() + "\n#refs:" + ",".join(self.secret_refs)
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()
