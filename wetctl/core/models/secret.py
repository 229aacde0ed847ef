"""
Secret models — references to environment-scoped credential material.

A SecretRef never carries secret values. The values live only in the
on-disk secret store and in the Secret resource documents handed to
the control plane.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict


class SecretMode(StrEnum):
    """How the materializer treats existing secret material."""

    REUSE_IF_PRESENT = "reuse-if-present"
    FORCE_REGENERATE = "force-regenerate"


class SecretRef(BaseModel):
    """Where a (service, environment) secret lives and what it contains."""

    model_config = ConfigDict(frozen=True)

    service: str
    environment: str
    path: str
    secret_names: tuple[str, ...] = ()
    fingerprint: str = ""

    def to_dict(self) -> dict:
        return self.model_dump(mode="json")
