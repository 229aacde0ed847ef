"""
Rollout executor — the per-unit state machine and the concurrent runner.

Each DeploymentUnit walks, strictly in order:

    NamespaceCheck → InfrastructureApply → SecretApply
        → WorkloadApply (datastore, wait, application) → ReadinessWait

and ends ``Succeeded``, ``Failed`` or ``PartiallyDegraded``. The executor
never raises for a rollout failure; every outcome (including an operator
interrupt) is captured in the returned RolloutRecord. Nothing already
applied is ever reverted automatically.

Independent units (different services) run concurrently in a thread
pool; steps within one unit never do.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path

from wetctl.adapters.base import ClusterClient, PackageInstaller
from wetctl.core.config.loader import OrchestratorConfig
from wetctl.core.errors import (
    ApplyError,
    OptionalCapabilityUnavailable,
    ReadinessTimeout,
    RolloutInterrupted,
    WetctlError,
)
from wetctl.core.models.environment import Environment
from wetctl.core.models.resources import Resource, ResourceLayer
from wetctl.core.models.rollout import (
    DeploymentUnit,
    OutcomeStatus,
    RolloutPhase,
    RolloutRecord,
)
from wetctl.core.models.secret import SecretMode
from wetctl.core.models.stack import Stack
from wetctl.core.services.k8s_common import _parse_k8s_yaml
from wetctl.core.services.secrets_ops import SecretMaterializer, register_secret

logger = logging.getLogger(__name__)


class RolloutExecutor:
    """Applies DeploymentUnits against a cluster adapter.

    Args:
        config: Orchestrator configuration (timeouts, optional kinds).
        cluster: Control-plane adapter.
        materializer: Secret Materializer for the SecretApply phase.
        installer: Package installer, only needed for ``install_stack``.
        cancel_event: Shared cancellation flag. Setting it stops every
            readiness wait at its next poll.
        clock: Monotonic time source.
    """

    def __init__(
        self,
        config: OrchestratorConfig,
        cluster: ClusterClient,
        materializer: SecretMaterializer,
        *,
        installer: PackageInstaller | None = None,
        cancel_event: threading.Event | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._config = config
        self._cluster = cluster
        self._materializer = materializer
        self._installer = installer
        self._cancel = cancel_event or threading.Event()
        self._clock = clock

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def cancel(self) -> None:
        """Stop all in-flight waits. Applied resources stay in place."""
        self._cancel.set()

    # ═══════════════════════════════════════════════════════════════
    #  Deploy
    # ═══════════════════════════════════════════════════════════════

    def execute(self, unit: DeploymentUnit) -> RolloutRecord:
        """Run the full state machine for one unit."""
        record = RolloutRecord(
            unit=unit.name,
            service=unit.service.name,
            environment=unit.environment.id,
            namespace=unit.namespace,
        )
        logger.info("Rollout %s → %s", unit.name, unit.namespace)

        try:
            self._check_cancelled(unit)
            self._namespace_check(unit, record)
            self._infrastructure_apply(unit, record)
            self._secret_apply(unit, record)
            self._workload_apply(unit, record)
            self._readiness_wait(unit, record)
        except RolloutInterrupted as e:
            record.interrupted = True
            record.fail(e)
        except KeyboardInterrupt:
            self.cancel()
            record.interrupted = True
            record.fail(RolloutInterrupted(f"{unit.name} interrupted during {record.phase}"))
        except WetctlError as e:
            record.fail(e)

        record.finalize()
        if record.error:
            logger.error("Rollout %s failed in %s: %s", unit.name, record.phase, record.error)
        else:
            logger.info("Rollout %s → %s", unit.name, record.status)
        return record

    # ── Phases ───────────────────────────────────────────────────

    def _namespace_check(self, unit: DeploymentUnit, record: RolloutRecord) -> None:
        record.enter(RolloutPhase.NAMESPACE_CHECK)
        if not self._cluster.namespace_exists(unit.namespace):
            raise ApplyError(
                f"Namespace {unit.namespace} does not exist; "
                f"run 'wetctl env provision --env {unit.environment.id}' first"
            )

    def _infrastructure_apply(self, unit: DeploymentUnit, record: RolloutRecord) -> None:
        record.enter(RolloutPhase.INFRASTRUCTURE_APPLY)
        kinds = self._known_kinds(unit)
        for res in unit.resource_set.by_layer(ResourceLayer.INFRASTRUCTURE):
            self._apply_resource(res, record, kinds)

    def _secret_apply(self, unit: DeploymentUnit, record: RolloutRecord) -> None:
        record.enter(RolloutPhase.SECRET_APPLY)
        ref = self._materializer.ensure_secret(
            unit.service, unit.environment, SecretMode.REUSE_IF_PRESENT
        )
        resources = self._materializer.secret_resources(ref, unit.environment)
        register_secret(unit.resource_set, ref, resources)
        for res in unit.resource_set.by_layer(ResourceLayer.SECRET):
            self._apply_resource(res, record)

    def _workload_apply(self, unit: DeploymentUnit, record: RolloutRecord) -> None:
        record.enter(RolloutPhase.WORKLOAD_APPLY)
        kinds = self._known_kinds(unit)

        datastore = unit.resource_set.by_layer(ResourceLayer.DATASTORE)
        for res in datastore:
            self._apply_resource(res, record, kinds)
        if datastore:
            self._wait_ready(
                unit,
                unit.readiness_targets(ResourceLayer.DATASTORE),
                self._config.timeouts.datastore_readiness,
            )

        for res in unit.resource_set.by_layer(ResourceLayer.APPLICATION):
            self._apply_resource(res, record, kinds)

    def _readiness_wait(self, unit: DeploymentUnit, record: RolloutRecord) -> None:
        record.enter(RolloutPhase.READINESS_WAIT)
        self._wait_ready(unit, unit.readiness_targets(), self._config.timeouts.readiness)

    # ── Helpers ──────────────────────────────────────────────────

    def _check_cancelled(self, unit: DeploymentUnit) -> None:
        if self._cancel.is_set():
            raise RolloutInterrupted(f"{unit.name} cancelled before start")

    def _known_kinds(self, unit: DeploymentUnit) -> frozenset[str] | None:
        """Registered kinds, only looked up when the unit carries an optional kind."""
        if not any(r.kind in self._config.optional_kinds for r in unit.resource_set.resources):
            return None
        try:
            return self._cluster.available_kinds()
        except ApplyError as e:
            logger.debug("Kind discovery failed, relying on apply errors: %s", e)
            return None

    def _apply_resource(
        self,
        res: Resource,
        record: RolloutRecord,
        kinds: frozenset[str] | None = None,
    ) -> None:
        optional = res.kind in self._config.optional_kinds

        if optional and kinds is not None and res.kind not in kinds:
            self._skip(res, record, OptionalCapabilityUnavailable(res.kind, res.name))
            return

        try:
            change = self._cluster.apply(res, timeout=self._config.timeouts.apply)
        except OptionalCapabilityUnavailable as e:
            if optional:
                self._skip(res, record, e)
                return
            record.add(res.key, OutcomeStatus.FAILED_FATAL, message=str(e))
            raise ApplyError(f"{res.key}: required kind {res.kind} is not installed") from e
        except ApplyError as e:
            record.add(res.key, OutcomeStatus.FAILED_FATAL, message=str(e))
            raise

        record.add(res.key, OutcomeStatus.APPLIED, change=change)

    def _skip(self, res: Resource, record: RolloutRecord, exc: OptionalCapabilityUnavailable) -> None:
        logger.warning("%s", exc)
        record.add(res.key, OutcomeStatus.SKIPPED_OPTIONAL, message=str(exc))
        record.warn(str(exc))

    def _wait_ready(self, unit: DeploymentUnit, targets: list[str], timeout: float) -> None:
        """Poll until every target is ready, the timeout expires, or we are cancelled."""
        pending = list(targets)
        if not pending:
            return

        deadline = self._clock() + timeout
        poll = self._config.timeouts.poll_interval
        logger.info("Waiting for %s (timeout %gs)", ", ".join(pending), timeout)

        while True:
            still_pending = []
            for target in pending:
                kind, _, name = target.partition("/")
                try:
                    ready = self._cluster.is_ready(kind, name, unit.namespace)
                except ApplyError as e:
                    logger.debug("Readiness probe for %s failed: %s", target, e)
                    ready = False
                if not ready:
                    still_pending.append(target)
            pending = still_pending
            if not pending:
                return

            remaining = deadline - self._clock()
            if remaining <= 0:
                raise ReadinessTimeout(pending, timeout)
            if self._cancel.wait(min(poll, remaining)):
                raise RolloutInterrupted(
                    f"{unit.name}: wait interrupted, still pending: {', '.join(pending)}"
                )

    # ═══════════════════════════════════════════════════════════════
    #  Delete
    # ═══════════════════════════════════════════════════════════════

    def delete(self, unit: DeploymentUnit) -> RolloutRecord:
        """Remove a unit's resources in reverse layer order.

        Not-found is success. Secret files in the store are left alone.
        """
        record = RolloutRecord(
            unit=unit.name,
            service=unit.service.name,
            environment=unit.environment.id,
            namespace=unit.namespace,
            action="delete",
        )

        try:
            record.enter(RolloutPhase.NAMESPACE_CHECK)
            if not self._cluster.namespace_exists(unit.namespace):
                logger.info("Namespace %s absent, nothing to delete", unit.namespace)
                return record.finalize()

            resources = list(unit.resource_set.resources)
            for spec in unit.service.secrets:
                if unit.resource_set.get("Secret", spec.name) is None:
                    resources.append(Resource(
                        kind="Secret",
                        name=spec.name,
                        namespace=unit.namespace,
                        layer=ResourceLayer.SECRET,
                    ))

            order = {layer: i for i, layer in enumerate(ResourceLayer)}
            resources.sort(key=lambda r: order[r.layer], reverse=True)

            record.enter(RolloutPhase.WORKLOAD_APPLY)
            for res in resources:
                try:
                    change = self._cluster.delete(res, timeout=self._config.timeouts.apply)
                except OptionalCapabilityUnavailable:
                    change = "not-found"
                except ApplyError as e:
                    record.add(res.key, OutcomeStatus.FAILED_FATAL, message=str(e))
                    raise
                record.add(res.key, OutcomeStatus.DELETED, change=change)
        except KeyboardInterrupt:
            self.cancel()
            record.interrupted = True
            record.fail(RolloutInterrupted(f"{unit.name} delete interrupted"))
        except WetctlError as e:
            record.fail(e)

        return record.finalize()

    # ═══════════════════════════════════════════════════════════════
    #  Stacks
    # ═══════════════════════════════════════════════════════════════

    def install_stack(self, stack: Stack, env: Environment) -> RolloutRecord:
        """Install a chart bundle, then its plain manifests.

        A failing release marked ``optional`` is a warning; any other
        failure stops the stack.
        """
        namespace = stack.releases[0].namespace if stack.releases else ""
        record = RolloutRecord(
            unit=f"{stack.name}@{env.id}",
            service=stack.name,
            environment=env.id,
            namespace=namespace,
            action="install",
        )
        if self._installer is None:
            record.fail(ApplyError(f"No package installer configured for stack {stack.name}"))
            return record.finalize()

        root = self._config.project_root
        try:
            record.enter(RolloutPhase.INFRASTRUCTURE_APPLY)
            for release in stack.releases:
                if self._cancel.is_set():
                    raise RolloutInterrupted(f"{stack.name} cancelled before {release.name}")
                values_path = _optional_path(root, release.values_file)
                key = f"HelmRelease/{release.name}"
                try:
                    change = self._installer.upgrade_install(
                        release, values_path=values_path, timeout=self._config.timeouts.helm
                    )
                except ApplyError as e:
                    if release.optional:
                        logger.warning("Optional release %s failed: %s", release.name, e)
                        record.add(key, OutcomeStatus.SKIPPED_OPTIONAL, message=str(e))
                        record.warn(f"{release.name}: {e}")
                        continue
                    record.add(key, OutcomeStatus.FAILED_FATAL, message=str(e))
                    raise
                record.add(key, OutcomeStatus.APPLIED, change=change)

            record.enter(RolloutPhase.WORKLOAD_APPLY)
            for manifest in stack.manifests:
                path = root / manifest
                if not path.is_file():
                    record.warn(f"Manifest not found: {manifest}")
                    continue
                for doc in _parse_k8s_yaml(path):
                    meta = doc.get("metadata", {})
                    res = Resource(
                        kind=doc["kind"],
                        name=meta.get("name", ""),
                        namespace=meta.get("namespace"),
                        layer=ResourceLayer.INFRASTRUCTURE,
                        source=manifest,
                        body=doc,
                    )
                    self._apply_resource(res, record)
        except RolloutInterrupted as e:
            record.interrupted = True
            record.fail(e)
        except KeyboardInterrupt:
            self.cancel()
            record.interrupted = True
            record.fail(RolloutInterrupted(f"{stack.name} install interrupted"))
        except WetctlError as e:
            record.fail(e)

        return record.finalize()

    def uninstall_stack(self, stack: Stack, env: Environment) -> RolloutRecord:
        """Remove a stack's releases in reverse install order. Manifests stay."""
        namespace = stack.releases[0].namespace if stack.releases else ""
        record = RolloutRecord(
            unit=f"{stack.name}@{env.id}",
            service=stack.name,
            environment=env.id,
            namespace=namespace,
            action="delete",
        )
        if self._installer is None:
            record.fail(ApplyError(f"No package installer configured for stack {stack.name}"))
            return record.finalize()

        record.enter(RolloutPhase.WORKLOAD_APPLY)
        try:
            for release in reversed(stack.releases):
                key = f"HelmRelease/{release.name}"
                try:
                    change = self._installer.uninstall(release, timeout=self._config.timeouts.helm)
                except ApplyError as e:
                    record.add(key, OutcomeStatus.FAILED_FATAL, message=str(e))
                    raise
                record.add(key, OutcomeStatus.DELETED, change=change)
        except KeyboardInterrupt:
            self.cancel()
            record.interrupted = True
            record.fail(RolloutInterrupted(f"{stack.name} uninstall interrupted"))
        except WetctlError as e:
            record.fail(e)

        return record.finalize()


def _optional_path(root: Path, relative: str) -> Path | None:
    if not relative:
        return None
    path = root / relative
    if not path.is_file():
        logger.warning("Values file %s not found, using chart defaults", path)
        return None
    return path


# ═══════════════════════════════════════════════════════════════════
#  Concurrent runner
# ═══════════════════════════════════════════════════════════════════


def run_rollouts(
    executor: RolloutExecutor,
    units: list[DeploymentUnit],
    *,
    max_workers: int = 4,
    action: str = "deploy",
) -> list[RolloutRecord]:
    """Run independent units concurrently; records come back in input order.

    A KeyboardInterrupt cancels every in-flight wait; each unit then
    reports ``Failed`` (interrupted) with whatever it had applied.
    """
    run = executor.delete if action == "delete" else executor.execute
    if not units:
        return []
    if len(units) == 1:
        return [run(units[0])]

    records: dict[str, RolloutRecord] = {}
    pool = ThreadPoolExecutor(max_workers=min(max_workers, len(units)))
    futures = {pool.submit(run, unit): unit for unit in units}
    try:
        for future in as_completed(futures):
            unit = futures[future]
            records[unit.name] = future.result()
    except KeyboardInterrupt:
        logger.warning("Interrupted, cancelling %d rollouts", len(futures) - len(records))
        executor.cancel()
        for future, unit in futures.items():
            if unit.name not in records:
                records[unit.name] = future.result()
    finally:
        pool.shutdown(wait=True)

    return [records[u.name] for u in units]
