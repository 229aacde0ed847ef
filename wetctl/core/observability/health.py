"""
Health verifier — post-rollout checks for a DeploymentUnit.

Runs, in order:

    pods       (failure)  every pod ready; restart counts above the
                          threshold are a warning
    endpoints  (failure)  every Service has at least one ready endpoint
    ingress    (warning)  rules have a host bound; the host resolves locally
    http       (failure)  each host answers 2xx/3xx within the timeout
    logs       (warning)  recent log lines matched against error keywords

Only failure-class checks affect the report's exit code. Warning-class
findings are carried in the report and printed, nothing more.
"""

from __future__ import annotations

import http.client
import logging
import re
import socket
import urllib.error
import urllib.request
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from wetctl.adapters.base import ClusterClient
from wetctl.core.config.loader import OrchestratorConfig
from wetctl.core.errors import WetctlError
from wetctl.core.models.rollout import DeploymentUnit
from wetctl.core.observability.logging_config import redact

logger = logging.getLogger(__name__)

FAILURE = "failure"
WARNING = "warning"


@dataclass
class CheckResult:
    """Result of a single check."""

    name: str
    severity: str = FAILURE
    status: str = "pass"  # pass, warn, fail, skip
    message: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def failed(self) -> bool:
        return self.status == "fail"

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "severity": self.severity,
            "status": self.status,
            "message": self.message,
            "details": self.details,
        }


@dataclass
class HealthReport:
    """Aggregate health of one deployed unit."""

    unit: str
    namespace: str
    status: str = "healthy"
    timestamp: str = ""
    checks: list[CheckResult] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.timestamp:
            self.timestamp = datetime.now(UTC).isoformat()

    def add(self, check: CheckResult) -> None:
        self.checks.append(check)
        self._recalculate()

    def _recalculate(self) -> None:
        """Recalculate overall status from checks."""
        statuses = [c.status for c in self.checks]
        if any(s == "fail" for s in statuses):
            self.status = "unhealthy"
        elif any(s == "warn" for s in statuses):
            self.status = "degraded"
        else:
            self.status = "healthy"

    @property
    def failures(self) -> list[CheckResult]:
        return [c for c in self.checks if c.failed]

    @property
    def warnings(self) -> list[CheckResult]:
        return [c for c in self.checks if c.status == "warn"]

    @property
    def exit_code(self) -> int:
        return 1 if self.failures else 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "unit": self.unit,
            "namespace": self.namespace,
            "status": self.status,
            "timestamp": self.timestamp,
            "checks": [c.to_dict() for c in self.checks],
        }


# ── HTTP ────────────────────────────────────────────────────────


class _NoRedirect(urllib.request.HTTPRedirectHandler):
    """Report 3xx as-is instead of following it."""

    def redirect_request(self, req, fp, code, msg, headers, newurl):
        return None


def http_status(url: str, timeout: float) -> int:
    """Return the HTTP status code of a GET, without following redirects."""
    opener = urllib.request.build_opener(_NoRedirect)
    try:
        with opener.open(url, timeout=timeout) as resp:
            return resp.status
    except urllib.error.HTTPError as e:
        return e.code


def _host_resolves(host: str) -> bool:
    try:
        socket.gethostbyname(host)
        return True
    except OSError:
        return False


# ── Verifier ────────────────────────────────────────────────────


class HealthVerifier:
    """Runs the post-rollout checks for a unit.

    ``http_get`` and ``resolve_host`` are injectable so tests never
    touch the network.
    """

    def __init__(
        self,
        config: OrchestratorConfig,
        cluster: ClusterClient,
        *,
        http_get: Callable[[str, float], int] | None = None,
        resolve_host: Callable[[str], bool] | None = None,
    ):
        self._config = config
        self._cluster = cluster
        self._http_get = http_get or http_status
        self._resolve = resolve_host or _host_resolves

    def verify(self, unit: DeploymentUnit) -> HealthReport:
        report = HealthReport(unit=unit.name, namespace=unit.namespace)

        try:
            pods = [
                p for p in self._cluster.pods(unit.namespace)
                if p.get("labels", {}).get("app") == unit.service.name
            ]
        except WetctlError as e:
            report.add(CheckResult("pods", status="fail", message=f"Cannot list pods: {e}"))
            return report

        report.add(self.check_pods(pods))
        report.add(self.check_endpoints(unit))
        hosts = self._declared_hosts(unit)
        report.add(self.check_ingress(unit, hosts))
        report.add(self.check_http(hosts))
        report.add(self.check_logs(unit, pods))

        logger.info("Health of %s: %s", unit.name, report.status)
        return report

    # ── Individual checks ────────────────────────────────────────

    def check_pods(self, pods: list[dict]) -> CheckResult:
        if not pods:
            return CheckResult("pods", status="fail", message="No pods found")

        not_ready = [p["name"] for p in pods if not p.get("ready")]
        threshold = self._config.verify.restart_warn_threshold
        restarting = {
            p["name"]: p.get("restarts", 0)
            for p in pods if p.get("restarts", 0) > threshold
        }
        details = {"pods": len(pods), "not_ready": not_ready, "restarts": restarting}

        if not_ready:
            return CheckResult(
                "pods", status="fail",
                message=f"{len(not_ready)}/{len(pods)} pods not ready",
                details=details,
            )
        if restarting:
            return CheckResult(
                "pods", status="warn",
                message=f"{len(restarting)} pods restarted more than {threshold} times",
                details=details,
            )
        return CheckResult("pods", message=f"All {len(pods)} pods ready", details=details)

    def check_endpoints(self, unit: DeploymentUnit) -> CheckResult:
        services = [r.name for r in unit.resource_set.resources if r.kind == "Service"]
        if not services:
            return CheckResult("endpoints", status="skip", message="No services declared")

        empty = []
        for name in services:
            try:
                if not self._cluster.endpoints(unit.namespace, name):
                    empty.append(name)
            except WetctlError:
                empty.append(name)

        if empty:
            return CheckResult(
                "endpoints", status="fail",
                message=f"No endpoints behind: {', '.join(empty)}",
                details={"services": services, "empty": empty},
            )
        return CheckResult("endpoints", message=f"{len(services)} services have endpoints")

    def check_ingress(self, unit: DeploymentUnit, hosts: list[str]) -> CheckResult:
        if not hosts:
            return CheckResult("ingress", severity=WARNING, status="skip", message="No ingress declared")

        try:
            bound = set(self._cluster.ingress_hosts(unit.namespace))
        except WetctlError:
            bound = set()
        unbound = [h for h in hosts if h not in bound]
        unresolved = [h for h in hosts if not self._resolve(h)]
        details = {"hosts": hosts, "unbound": unbound, "unresolved": unresolved}

        if unbound:
            return CheckResult(
                "ingress", severity=WARNING, status="warn",
                message=f"No ingress rule bound for: {', '.join(unbound)}",
                details=details,
            )
        if unresolved:
            return CheckResult(
                "ingress", severity=WARNING, status="warn",
                message=f"Not resolvable locally (hosts file?): {', '.join(unresolved)}",
                details=details,
            )
        return CheckResult("ingress", severity=WARNING, message=", ".join(hosts), details=details)

    def check_http(self, hosts: list[str]) -> CheckResult:
        if not hosts:
            return CheckResult("http", status="skip", message="No hosts to probe")

        settings = self._config.verify
        port = f":{settings.http_port}" if settings.http_port else ""
        codes: dict[str, int | str] = {}
        bad = []
        for host in hosts:
            url = f"{settings.http_scheme}://{host}{port}/"
            try:
                code = self._http_get(url, self._config.timeouts.http)
            except (OSError, http.client.HTTPException) as e:
                codes[url] = str(e)
                bad.append(url)
                continue
            codes[url] = code
            if not 200 <= code < 400:
                bad.append(url)

        if bad:
            return CheckResult(
                "http", status="fail",
                message=f"Unreachable or error status: {', '.join(bad)}",
                details={"responses": codes},
            )
        return CheckResult("http", message=f"{len(hosts)} hosts reachable", details={"responses": codes})

    def check_logs(self, unit: DeploymentUnit, pods: list[dict]) -> CheckResult:
        keywords = self._config.verify.error_keywords
        if not pods or not keywords:
            return CheckResult("logs", severity=WARNING, status="skip", message="Nothing to scan")

        pattern = re.compile("|".join(re.escape(k) for k in keywords), re.IGNORECASE)
        tail = self._config.verify.log_tail_lines
        hits: dict[str, list[str]] = {}
        for pod in pods:
            try:
                text = self._cluster.logs(unit.namespace, pod["name"], tail=tail)
            except WetctlError:
                continue
            matched = [redact(line) for line in text.splitlines() if pattern.search(line)]
            if matched:
                hits[pod["name"]] = matched[:3]

        if hits:
            return CheckResult(
                "logs", severity=WARNING, status="warn",
                message=f"Error keywords in logs of {len(hits)} pods",
                details={"samples": hits},
            )
        return CheckResult("logs", severity=WARNING, message="No error keywords in recent logs")

    # ── Helpers ──────────────────────────────────────────────────

    @staticmethod
    def _declared_hosts(unit: DeploymentUnit) -> list[str]:
        hosts: list[str] = []
        for res in unit.resource_set.by_kind("Ingress"):
            for rule in res.body.get("spec", {}).get("rules", []) or []:
                host = rule.get("host")
                if host and host not in hosts:
                    hosts.append(host)
        return hosts
