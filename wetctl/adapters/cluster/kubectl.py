"""
Kubectl cluster adapter — declarative apply, readiness and inspection.

Every call shells out to ``kubectl`` through ``_run_kubectl`` with a
bounded timeout. Documents are piped on stdin (``apply -f -``); nothing
is written to disk.
"""

from __future__ import annotations

import json
import logging
import shutil
import subprocess
import threading

import yaml

from wetctl.adapters.base import ClusterClient
from wetctl.core.errors import (
    ApplyError,
    OptionalCapabilityUnavailable,
    PrerequisiteMissing,
)
from wetctl.core.models.resources import Resource
from wetctl.core.services.k8s_common import _is_missing_kind, _is_not_found, _run_kubectl

logger = logging.getLogger(__name__)

_CHANGE_WORDS = ("created", "configured", "unchanged")


def _ns_args(namespace: str | None) -> list[str]:
    return ["-n", namespace] if namespace else []


def _stderr(result: subprocess.CompletedProcess[str]) -> str:
    return (result.stderr or result.stdout or "").strip()


def _parse_change(stdout: str) -> str:
    """``deployment.apps/wiki-web configured`` → ``configured``."""
    lines = [ln.strip() for ln in stdout.splitlines() if ln.strip()]
    if not lines:
        return "configured"
    word = lines[-1].split()[-1]
    return word if word in _CHANGE_WORDS else "configured"


def _workload_ready(kind: str, obj: dict) -> bool:
    """Compare a workload's observed status against its spec."""
    meta = obj.get("metadata", {})
    spec = obj.get("spec", {})
    status = obj.get("status", {})

    if status.get("observedGeneration", 0) < meta.get("generation", 0):
        return False

    if kind == "DaemonSet":
        desired = status.get("desiredNumberScheduled", 0)
        return (
            status.get("numberReady", 0) == desired
            and status.get("updatedNumberScheduled", 0) == desired
        )

    replicas = spec.get("replicas", 1)
    ready = status.get("readyReplicas", 0)
    updated = status.get("updatedReplicas", 0)
    if kind == "Deployment":
        return ready >= replicas and updated >= replicas and status.get("replicas", 0) == replicas
    return ready >= replicas and updated >= replicas


class KubectlCluster(ClusterClient):
    """ClusterClient backed by the kubectl CLI."""

    def __init__(self, *, timeout: int = 15):
        self._timeout = timeout
        self._kinds: frozenset[str] | None = None
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return "kubectl"

    def is_available(self) -> bool:
        return shutil.which("kubectl") is not None

    # ── Low-level ────────────────────────────────────────────────

    def _run(self, *args: str, timeout: int | None = None, input: str | None = None):
        try:
            return _run_kubectl(*args, timeout=timeout or self._timeout, input=input)
        except FileNotFoundError as e:
            raise PrerequisiteMissing("kubectl not found on PATH", ["kubectl"]) from e
        except subprocess.TimeoutExpired as e:
            raise ApplyError(f"kubectl {' '.join(args[:2])} timed out after {e.timeout}s") from e

    def _get_json(self, *args: str) -> dict | None:
        result = self._run("get", *args, "-o", "json")
        if result.returncode != 0:
            if _is_not_found(_stderr(result)):
                return None
            raise ApplyError(f"kubectl get {' '.join(args)}: {_stderr(result)}")
        try:
            return json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise ApplyError(f"kubectl get {' '.join(args)}: invalid JSON") from e

    # ── Access ───────────────────────────────────────────────────

    def check_access(self) -> None:
        result = self._run("cluster-info")
        if result.returncode != 0:
            raise PrerequisiteMissing(
                f"Cannot reach the cluster: {_stderr(result)}", ["cluster-access"]
            )

    def nodes_ready(self) -> bool:
        data = self._get_json("nodes") or {}
        for node in data.get("items", []):
            for cond in node.get("status", {}).get("conditions", []):
                if cond.get("type") == "Ready" and cond.get("status") == "True":
                    return True
        return False

    # ── Namespaces & kinds ───────────────────────────────────────

    def namespace_exists(self, namespace: str) -> bool:
        result = self._run("get", "namespace", namespace, "-o", "name")
        return result.returncode == 0

    def create_namespace(self, namespace: str) -> str:
        if self.namespace_exists(namespace):
            return "unchanged"
        result = self._run("create", "namespace", namespace)
        if result.returncode != 0:
            raise ApplyError(f"Cannot create namespace {namespace}: {_stderr(result)}")
        logger.info("Created namespace %s", namespace)
        return "created"

    def available_kinds(self) -> frozenset[str]:
        """Kinds from ``kubectl api-resources`` (cached per adapter instance)."""
        with self._lock:
            if self._kinds is None:
                result = self._run("api-resources", "--no-headers", timeout=30)
                if result.returncode != 0:
                    raise ApplyError(f"kubectl api-resources: {_stderr(result)}")
                kinds = set()
                for line in result.stdout.splitlines():
                    parts = line.split()
                    if parts:
                        kinds.add(parts[-1])
                self._kinds = frozenset(kinds)
            return self._kinds

    # ── Apply / delete ───────────────────────────────────────────

    def apply(self, resource: Resource, *, timeout: int = 60) -> str:
        document = yaml.safe_dump(resource.body, sort_keys=True)
        result = self._run("apply", "-f", "-", timeout=timeout, input=document)
        if result.returncode != 0:
            err = _stderr(result)
            if _is_missing_kind(err):
                raise OptionalCapabilityUnavailable(resource.kind, resource.name, err)
            raise ApplyError(f"{resource.key}: {err}")
        change = _parse_change(result.stdout)
        logger.debug("Applied %s → %s", resource.key, change)
        return change

    def delete(self, resource: Resource, *, timeout: int = 60) -> str:
        result = self._run(
            "delete", resource.kind, resource.name,
            *_ns_args(resource.namespace),
            "--ignore-not-found",
            timeout=timeout,
        )
        if result.returncode != 0:
            err = _stderr(result)
            if _is_missing_kind(err):
                raise OptionalCapabilityUnavailable(resource.kind, resource.name, err)
            raise ApplyError(f"delete {resource.key}: {err}")
        return "deleted" if result.stdout.strip() else "not-found"

    # ── Readiness & inspection ───────────────────────────────────

    def is_ready(self, kind: str, name: str, namespace: str) -> bool:
        obj = self._get_json(kind, name, "-n", namespace)
        if obj is None:
            return False
        return _workload_ready(kind, obj)

    def pods(self, namespace: str) -> list[dict]:
        data = self._get_json("pods", "-n", namespace) or {}
        pods = []
        for item in data.get("items", []):
            statuses = item.get("status", {}).get("containerStatuses", []) or []
            pods.append({
                "name": item.get("metadata", {}).get("name", ""),
                "phase": item.get("status", {}).get("phase", "Unknown"),
                "ready": bool(statuses) and all(s.get("ready") for s in statuses),
                "restarts": sum(s.get("restartCount", 0) for s in statuses),
                "labels": item.get("metadata", {}).get("labels", {}) or {},
            })
        return pods

    def endpoints(self, namespace: str, service: str) -> list[str]:
        data = self._get_json("endpoints", service, "-n", namespace) or {}
        addresses = []
        for subset in data.get("subsets", []) or []:
            for addr in subset.get("addresses", []) or []:
                if addr.get("ip"):
                    addresses.append(addr["ip"])
        return addresses

    def ingress_hosts(self, namespace: str) -> list[str]:
        data = self._get_json("ingress", "-n", namespace) or {}
        hosts = []
        for item in data.get("items", []):
            for rule in item.get("spec", {}).get("rules", []) or []:
                host = rule.get("host")
                if host and host not in hosts:
                    hosts.append(host)
        return hosts

    def logs(self, namespace: str, pod: str, *, tail: int = 50) -> str:
        result = self._run(
            "logs", pod, "-n", namespace, f"--tail={tail}", "--all-containers=true",
        )
        if result.returncode != 0:
            logger.debug("No logs for %s/%s: %s", namespace, pod, _stderr(result))
            return ""
        return result.stdout
