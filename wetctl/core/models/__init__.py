"""
Domain models — Pydantic types for the orchestrator.

All models are re-exported here for convenient access:

    from wetctl.core.models import Environment, ServiceDescriptor, ResourceSet, RolloutRecord
"""

from wetctl.core.models.environment import Environment, EnvironmentOverride
from wetctl.core.models.resources import Resource, ResourceLayer, ResourceSet
from wetctl.core.models.rollout import (
    DeploymentUnit,
    OutcomeStatus,
    ResourceOutcome,
    RolloutPhase,
    RolloutRecord,
    RolloutStatus,
)
from wetctl.core.models.secret import SecretMode, SecretRef
from wetctl.core.models.service import Component, SecretKey, SecretSpec, ServiceDescriptor
from wetctl.core.models.stack import ChartRelease, Stack

__all__ = [
    # stack.py
    "ChartRelease",
    # service.py
    "Component",
    # rollout.py
    "DeploymentUnit",
    # environment.py
    "Environment",
    "EnvironmentOverride",
    "OutcomeStatus",
    # resources.py
    "Resource",
    "ResourceLayer",
    "ResourceOutcome",
    "ResourceSet",
    "RolloutPhase",
    "RolloutRecord",
    "RolloutStatus",
    "SecretKey",
    # secret.py
    "SecretMode",
    "SecretRef",
    "SecretSpec",
    "ServiceDescriptor",
    "Stack",
]
