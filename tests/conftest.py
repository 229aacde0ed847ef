"""
Shared test fixtures and configuration.

``project`` lays out a throwaway wetfish checkout under ``tmp_path``:
base templates for wiki (nginx + php + MySQL, ingress, metrics monitor),
glitch (stateless) and click (MySQL), plus a ``wetctl.yml`` with short
timeouts so readiness failures surface in well under a second.
"""

from __future__ import annotations

import textwrap
from pathlib import Path

import pytest
import yaml

from wetctl.adapters.mock import DEFAULT_KINDS, FakeCluster, FakeHelm, FakeImageBuilder
from wetctl.adapters.registry import Toolchain
from wetctl.core.config.loader import OrchestratorConfig, load_config
from wetctl.core.context import OrchestratorContext
from wetctl.core.observability.logging_config import clear_secret_values

MONITORING_KINDS = frozenset({"ServiceMonitor", "PodMonitor", "PrometheusRule"})
NAMESPACES = ["wetfish-dev", "wetfish-staging", "wetfish-prod"]


# ── Template builders ────────────────────────────────────────────


def _deployment(app: str, component: str, containers: list[dict]) -> dict:
    labels = {"app": app, "component": component}
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {"name": f"{app}-{component}", "labels": labels},
        "spec": {
            "replicas": 1,
            "selector": {"matchLabels": labels},
            "template": {
                "metadata": {"labels": labels},
                "spec": {"containers": containers},
            },
        },
    }


def _service(name: str, app: str, component: str, port: int = 80) -> dict:
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {"name": name, "labels": {"app": app, "component": component}},
        "spec": {
            "selector": {"app": app, "component": component},
            "ports": [{"port": port}],
        },
    }


def _ingress(app: str) -> dict:
    return {
        "apiVersion": "networking.k8s.io/v1",
        "kind": "Ingress",
        "metadata": {"name": app, "labels": {"app": app}},
        "spec": {
            "tls": [{"hosts": ["${HOSTNAME}"], "secretName": "${TLS_SECRET}"}],
            "rules": [{
                "host": "${HOSTNAME}",
                "http": {"paths": [{
                    "path": "/",
                    "pathType": "Prefix",
                    "backend": {"service": {"name": app, "port": {"number": 80}}},
                }]},
            }],
        },
    }


def _mysql(app: str) -> list[dict]:
    labels = {"app": app, "component": "mysql"}
    statefulset = {
        "apiVersion": "apps/v1",
        "kind": "StatefulSet",
        "metadata": {"name": f"{app}-mysql", "labels": labels},
        "spec": {
            "replicas": 1,
            "serviceName": f"{app}-mysql",
            "selector": {"matchLabels": labels},
            "template": {
                "metadata": {"labels": labels},
                "spec": {"containers": [{
                    "name": "mysql",
                    "image": "mysql:8.0",
                    "envFrom": [{"secretRef": {"name": f"{app}-mysql-secret"}}],
                }]},
            },
            "volumeClaimTemplates": [{
                "metadata": {"name": "data"},
                "spec": {
                    "storageClassName": "${STORAGE_CLASS}",
                    "accessModes": ["ReadWriteOnce"],
                    "resources": {"requests": {"storage": "1Gi"}},
                },
            }],
        },
    }
    return [statefulset, _service(f"{app}-mysql", app, "mysql", 3306)]


def _web(app: str, *, base_url: bool = False) -> list[dict]:
    php = {"name": "php", "image": "${IMAGE_PHP}"}
    if base_url:
        php["env"] = [{"name": "BASE_URL", "value": "${BASE_URL}"}]
    deployment = _deployment(app, "web", [{"name": "nginx", "image": "${IMAGE_NGINX}"}, php])
    return [deployment, _service(app, app, "web")]


def _service_monitor(app: str) -> dict:
    return {
        "apiVersion": "monitoring.coreos.com/v1",
        "kind": "ServiceMonitor",
        "metadata": {"name": app, "labels": {"app": app}},
        "spec": {
            "selector": {"matchLabels": {"app": app}},
            "endpoints": [{"port": "metrics"}],
        },
    }


def write_templates(root: Path, service: str, files: dict[str, list[dict]]) -> Path:
    base = root / "services" / service / "k8s" / "base"
    base.mkdir(parents=True, exist_ok=True)
    for filename, docs in files.items():
        (base / filename).write_text(yaml.safe_dump_all(docs, sort_keys=False))
    return base


WETCTL_YML = textwrap.dedent("""\
    name: wetfish-test
    timeouts:
      readiness: 0.3
      datastore_readiness: 0.3
      poll_interval: 0.01
      http: 1
    max_workers: 4
""")


# ── Fixtures ─────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def _reset_redaction():
    """Secret values registered by one test must not mask another's output."""
    yield
    clear_secret_values()


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """A project root with templates for wiki, glitch and click."""
    write_templates(tmp_path, "wiki", {
        "ingress.yaml": [_ingress("wiki")],
        "monitoring.yaml": [_service_monitor("wiki")],
        "mysql.yaml": _mysql("wiki"),
        "web.yaml": _web("wiki", base_url=True),
    })
    write_templates(tmp_path, "glitch", {
        "ingress.yaml": [_ingress("glitch")],
        "web.yaml": _web("glitch"),
    })
    write_templates(tmp_path, "click", {
        "ingress.yaml": [_ingress("click")],
        "mysql.yaml": _mysql("click"),
        "web.yaml": _web("click"),
    })
    (tmp_path / "wetctl.yml").write_text(WETCTL_YML)
    return tmp_path


@pytest.fixture
def config(project: Path) -> OrchestratorConfig:
    return load_config(project / "wetctl.yml")


@pytest.fixture
def cluster() -> FakeCluster:
    """A cluster with every namespace provisioned and monitoring CRDs installed."""
    return FakeCluster(namespaces=NAMESPACES, kinds=DEFAULT_KINDS | MONITORING_KINDS)


@pytest.fixture
def bare_cluster() -> FakeCluster:
    """A cluster without the monitoring CRDs."""
    return FakeCluster(namespaces=NAMESPACES)


@pytest.fixture
def tools(cluster: FakeCluster) -> Toolchain:
    return Toolchain(cluster=cluster, installer=FakeHelm(), builder=FakeImageBuilder())


@pytest.fixture
def ctx(config: OrchestratorConfig, tools: Toolchain) -> OrchestratorContext:
    run_ctx = OrchestratorContext.create(config, tools=tools)
    run_ctx.http_get = lambda url, timeout: 200
    run_ctx.resolve_host = lambda host: True
    return run_ctx
