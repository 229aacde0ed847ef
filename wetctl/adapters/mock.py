"""
Mock adapters — in-memory test doubles for cluster, helm and docker.

The fakes keep just enough state to behave like the real tools:
``FakeCluster.apply`` reports ``created`` / ``configured`` / ``unchanged``
by comparing documents, kinds can be made "not installed", workloads
can be held not-ready. Every call is appended to ``call_log`` so tests
can assert on ordering.
"""

from __future__ import annotations

import copy
import threading
from pathlib import Path

from wetctl.adapters.base import ClusterClient, ImageBuilder, PackageInstaller
from wetctl.core.errors import ApplyError, OptionalCapabilityUnavailable, PrerequisiteMissing
from wetctl.core.models.resources import Resource
from wetctl.core.models.stack import ChartRelease

DEFAULT_KINDS = frozenset({
    "Namespace", "ConfigMap", "Secret", "Service", "PersistentVolumeClaim",
    "Deployment", "StatefulSet", "DaemonSet", "Job", "CronJob", "Ingress",
    "ServiceAccount", "Role", "RoleBinding", "ClusterRole", "ClusterRoleBinding",
    "Certificate", "ClusterIssuer", "IngressRoute", "Middleware",
})


class FakeCluster(ClusterClient):
    """In-memory cluster.

    Args:
        namespaces: Namespaces that already exist.
        kinds: Registered kinds (default: core kinds plus the cert-manager
            and ingress controller kinds, no monitoring kinds).
    """

    def __init__(
        self,
        namespaces: list[str] | None = None,
        kinds: frozenset[str] | None = None,
        *,
        available: bool = True,
        reachable: bool = True,
    ):
        self.namespaces: set[str] = set(namespaces or [])
        self.kinds: frozenset[str] = kinds if kinds is not None else DEFAULT_KINDS
        self.objects: dict[tuple[str, str, str], dict] = {}
        self.not_ready: set[str] = set()       # "Kind/name" held not-ready
        self.rejections: dict[str, str] = {}   # "Kind/name" → error message
        self.nodes_are_ready = True
        self.pod_list: dict[str, list[dict]] = {}
        self.endpoint_map: dict[tuple[str, str], list[str]] = {}
        self.log_map: dict[tuple[str, str], str] = {}
        self.call_log: list[tuple[str, str]] = []
        self._available = available
        self._reachable = reachable
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return "fake-cluster"

    def is_available(self) -> bool:
        return self._available

    def _log(self, op: str, subject: str) -> None:
        with self._lock:
            self.call_log.append((op, subject))

    def ops(self, op: str) -> list[str]:
        """Subjects of every logged call of one kind (``apply``, ``delete``…)."""
        return [subject for o, subject in self.call_log if o == op]

    # ── Access ───────────────────────────────────────────────────

    def check_access(self) -> None:
        self._log("check_access", "")
        if not self._reachable:
            raise PrerequisiteMissing("Cannot reach the cluster", ["cluster-access"])

    def nodes_ready(self) -> bool:
        return self.nodes_are_ready

    # ── Namespaces & kinds ───────────────────────────────────────

    def namespace_exists(self, namespace: str) -> bool:
        self._log("namespace_exists", namespace)
        return namespace in self.namespaces

    def create_namespace(self, namespace: str) -> str:
        self._log("create_namespace", namespace)
        with self._lock:
            if namespace in self.namespaces:
                return "unchanged"
            self.namespaces.add(namespace)
        return "created"

    def available_kinds(self) -> frozenset[str]:
        return self.kinds

    # ── Apply / delete ───────────────────────────────────────────

    def apply(self, resource: Resource, *, timeout: int = 60) -> str:
        self._log("apply", resource.key)
        if resource.kind not in self.kinds:
            raise OptionalCapabilityUnavailable(
                resource.kind, resource.name, f'no matches for kind "{resource.kind}"'
            )
        if resource.key in self.rejections:
            raise ApplyError(f"{resource.key}: {self.rejections[resource.key]}")

        slot = (resource.namespace or "", resource.kind, resource.name)
        with self._lock:
            previous = self.objects.get(slot)
            self.objects[slot] = copy.deepcopy(resource.body)
        if previous is None:
            return "created"
        return "unchanged" if previous == resource.body else "configured"

    def delete(self, resource: Resource, *, timeout: int = 60) -> str:
        self._log("delete", resource.key)
        if resource.kind not in self.kinds:
            raise OptionalCapabilityUnavailable(resource.kind, resource.name)
        slot = (resource.namespace or "", resource.kind, resource.name)
        with self._lock:
            return "deleted" if self.objects.pop(slot, None) is not None else "not-found"

    def has(self, kind: str, name: str, namespace: str = "") -> bool:
        return (namespace, kind, name) in self.objects

    def get(self, kind: str, name: str, namespace: str = "") -> dict | None:
        return self.objects.get((namespace, kind, name))

    # ── Readiness & inspection ───────────────────────────────────

    def is_ready(self, kind: str, name: str, namespace: str) -> bool:
        key = f"{kind}/{name}"
        self._log("is_ready", key)
        return (namespace, kind, name) in self.objects and key not in self.not_ready

    def pods(self, namespace: str) -> list[dict]:
        return list(self.pod_list.get(namespace, []))

    def endpoints(self, namespace: str, service: str) -> list[str]:
        return list(self.endpoint_map.get((namespace, service), []))

    def ingress_hosts(self, namespace: str) -> list[str]:
        hosts = []
        for (ns, kind, _), body in self.objects.items():
            if ns != namespace or kind != "Ingress":
                continue
            for rule in body.get("spec", {}).get("rules", []) or []:
                if rule.get("host") and rule["host"] not in hosts:
                    hosts.append(rule["host"])
        return hosts

    def logs(self, namespace: str, pod: str, *, tail: int = 50) -> str:
        text = self.log_map.get((namespace, pod), "")
        return "\n".join(text.splitlines()[-tail:])


class FakeHelm(PackageInstaller):
    """Records chart installs; releases named in ``failures`` raise ApplyError."""

    def __init__(self, *, available: bool = True):
        self.installed: dict[str, ChartRelease] = {}
        self.repos: dict[str, str] = {}
        self.failures: set[str] = set()
        self.call_log: list[str] = []
        self._available = available

    @property
    def name(self) -> str:
        return "fake-helm"

    def is_available(self) -> bool:
        return self._available

    def repo_add(self, name: str, url: str) -> None:
        self.repos[name] = url

    def upgrade_install(
        self,
        release: ChartRelease,
        *,
        values_path: Path | None = None,
        timeout: int = 600,
    ) -> str:
        self.call_log.append(release.name)
        if release.name in self.failures:
            raise ApplyError(f"Helm install of {release.name} failed")
        existed = release.name in self.installed
        self.installed[release.name] = release
        return "upgraded" if existed else "installed"

    def uninstall(self, release: ChartRelease, *, timeout: int = 300) -> str:
        self.call_log.append(f"uninstall:{release.name}")
        return "deleted" if self.installed.pop(release.name, None) is not None else "not-found"


class FakeImageBuilder(ImageBuilder):
    """Records builds and pushes; tags in ``failures`` raise ApplyError."""

    def __init__(self, *, available: bool = True):
        self.built: list[str] = []
        self.pushed: list[str] = []
        self.failures: set[str] = set()
        self._available = available
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return "fake-docker"

    def is_available(self) -> bool:
        return self._available

    def build(self, context_dir: Path, dockerfile: str, tag: str, *, timeout: int = 600) -> None:
        if tag in self.failures:
            raise ApplyError(f"docker build {tag} failed")
        with self._lock:
            self.built.append(tag)

    def push(self, tag: str, *, timeout: int = 600) -> None:
        with self._lock:
            self.pushed.append(tag)
