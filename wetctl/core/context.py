"""
Run context — everything one invocation works with.

Built ONCE by the entry point and passed explicitly to every use case:

    - CLI:    main.py  → ctx.obj["context"] = OrchestratorContext.create(config)
    - Tests:  conftest → OrchestratorContext(config, registry, fake toolchain)

Nothing below this object reads the working directory, environment
variables or any other process-global state.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass, field

from wetctl.adapters.registry import Toolchain
from wetctl.core.config.loader import OrchestratorConfig
from wetctl.core.engine.executor import RolloutExecutor
from wetctl.core.observability.health import HealthVerifier
from wetctl.core.services.environments import EnvironmentRegistry
from wetctl.core.services.layering import LayeringEngine
from wetctl.core.services.secrets_ops import SecretMaterializer


@dataclass
class OrchestratorContext:
    """Config, environment registry, adapters and the shared cancel flag."""

    config: OrchestratorConfig
    environments: EnvironmentRegistry
    tools: Toolchain
    cancel_event: threading.Event = field(default_factory=threading.Event)
    http_get: Callable[[str, float], int] | None = None
    resolve_host: Callable[[str], bool] | None = None

    @classmethod
    def create(cls, config: OrchestratorConfig, tools: Toolchain | None = None) -> OrchestratorContext:
        return cls(
            config=config,
            environments=EnvironmentRegistry.from_config(config),
            tools=tools or Toolchain.default(config.project_root),
        )

    def layering(self) -> LayeringEngine:
        return LayeringEngine(self.config)

    def materializer(self) -> SecretMaterializer:
        return SecretMaterializer(self.config)

    def executor(self) -> RolloutExecutor:
        return RolloutExecutor(
            self.config,
            self.tools.cluster,
            self.materializer(),
            installer=self.tools.installer,
            cancel_event=self.cancel_event,
        )

    def verifier(self) -> HealthVerifier:
        return HealthVerifier(
            self.config,
            self.tools.cluster,
            http_get=self.http_get,
            resolve_host=self.resolve_host,
        )
