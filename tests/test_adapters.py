"""
Tests for the tool adapters — kubectl, helm and docker wrappers.

Every test mocks the module-level subprocess runner (``_run_kubectl``,
``_run_helm``, ``run_docker``). No subprocess, no network.
"""

import json
import subprocess
from unittest.mock import patch

import pytest

from wetctl.adapters.cluster.kubectl import KubectlCluster, _parse_change, _workload_ready
from wetctl.adapters.containers.docker import DockerImageBuilder
from wetctl.adapters.mock import FakeCluster, FakeHelm, FakeImageBuilder
from wetctl.adapters.packages.helm import HelmInstaller, build_upgrade_cmd
from wetctl.adapters.registry import Toolchain
from wetctl.core.errors import ApplyError, OptionalCapabilityUnavailable, PrerequisiteMissing
from wetctl.core.models.resources import Resource
from wetctl.core.models.stack import ChartRelease

_KUBECTL = "wetctl.adapters.cluster.kubectl._run_kubectl"
_HELM = "wetctl.adapters.packages.helm._run_helm"
_DOCKER = "wetctl.adapters.containers.docker.run_docker"


# ── Helpers ──────────────────────────────────────────────────────

def _mock_result(returncode=0, stdout="", stderr=""):
    """Create a mock subprocess.CompletedProcess."""
    return type("Result", (), {
        "returncode": returncode, "stdout": stdout, "stderr": stderr,
    })()


def _deployment():
    return Resource(
        kind="Deployment",
        name="wiki-web",
        namespace="wetfish-dev",
        body={
            "apiVersion": "apps/v1",
            "kind": "Deployment",
            "metadata": {"name": "wiki-web", "namespace": "wetfish-dev"},
        },
    )


def _release(**overrides):
    data = {
        "name": "cert-manager",
        "chart": "cert-manager",
        "repo_name": "jetstack",
        "repo_url": "https://charts.jetstack.io",
        "namespace": "cert-manager",
    }
    data.update(overrides)
    return ChartRelease(**data)


# ═══════════════════════════════════════════════════════════════════
#  kubectl — pure helpers
# ═══════════════════════════════════════════════════════════════════


class TestKubectlHelpers:
    @pytest.mark.parametrize("stdout,expected", [
        ("deployment.apps/wiki-web created\n", "created"),
        ("service/wiki unchanged\n", "unchanged"),
        ("ingress.networking.k8s.io/wiki configured\n", "configured"),
        ("", "configured"),
        ("secret/x serverside-applied\n", "configured"),
    ])
    def test_parse_change(self, stdout, expected):
        assert _parse_change(stdout) == expected

    def test_deployment_ready(self):
        obj = {
            "metadata": {"generation": 2},
            "spec": {"replicas": 2},
            "status": {"observedGeneration": 2, "replicas": 2, "readyReplicas": 2, "updatedReplicas": 2},
        }
        assert _workload_ready("Deployment", obj) is True

    def test_deployment_rolling(self):
        obj = {
            "metadata": {"generation": 2},
            "spec": {"replicas": 2},
            "status": {"observedGeneration": 2, "replicas": 3, "readyReplicas": 2, "updatedReplicas": 1},
        }
        assert _workload_ready("Deployment", obj) is False

    def test_stale_generation(self):
        obj = {
            "metadata": {"generation": 3},
            "spec": {"replicas": 1},
            "status": {"observedGeneration": 2, "readyReplicas": 1, "updatedReplicas": 1},
        }
        assert _workload_ready("StatefulSet", obj) is False

    def test_daemonset(self):
        obj = {"status": {"desiredNumberScheduled": 3, "numberReady": 3, "updatedNumberScheduled": 3}}
        assert _workload_ready("DaemonSet", obj) is True


# ═══════════════════════════════════════════════════════════════════
#  kubectl — apply / delete
# ═══════════════════════════════════════════════════════════════════


class TestKubectlApply:
    @patch(_KUBECTL)
    def test_apply_pipes_document(self, mock_run):
        mock_run.return_value = _mock_result(stdout="deployment.apps/wiki-web created\n")
        assert KubectlCluster().apply(_deployment(), timeout=30) == "created"

        args, kwargs = mock_run.call_args
        assert args == ("apply", "-f", "-")
        assert kwargs["timeout"] == 30
        assert "kind: Deployment" in kwargs["input"]

    @patch(_KUBECTL)
    def test_missing_kind(self, mock_run):
        mock_run.return_value = _mock_result(
            returncode=1,
            stderr='error: resource mapping not found: no matches for kind "ServiceMonitor"',
        )
        with pytest.raises(OptionalCapabilityUnavailable) as exc:
            KubectlCluster().apply(_deployment())
        assert exc.value.kind == "Deployment"

    @patch(_KUBECTL)
    def test_rejected(self, mock_run):
        mock_run.return_value = _mock_result(returncode=1, stderr="The Deployment is invalid")
        with pytest.raises(ApplyError, match="invalid"):
            KubectlCluster().apply(_deployment())

    @patch(_KUBECTL, side_effect=FileNotFoundError)
    def test_kubectl_missing(self, mock_run):
        with pytest.raises(PrerequisiteMissing) as exc:
            KubectlCluster().apply(_deployment())
        assert exc.value.missing == ["kubectl"]

    @patch(_KUBECTL, side_effect=subprocess.TimeoutExpired(cmd="kubectl", timeout=30))
    def test_timeout(self, mock_run):
        with pytest.raises(ApplyError, match="timed out"):
            KubectlCluster().apply(_deployment())

    @patch(_KUBECTL)
    def test_delete(self, mock_run):
        mock_run.return_value = _mock_result(stdout='deployment.apps "wiki-web" deleted\n')
        assert KubectlCluster().delete(_deployment()) == "deleted"
        args, _ = mock_run.call_args
        assert args == ("delete", "Deployment", "wiki-web", "-n", "wetfish-dev", "--ignore-not-found")

    @patch(_KUBECTL)
    def test_delete_not_found(self, mock_run):
        mock_run.return_value = _mock_result(stdout="")
        assert KubectlCluster().delete(_deployment()) == "not-found"


# ═══════════════════════════════════════════════════════════════════
#  kubectl — cluster queries
# ═══════════════════════════════════════════════════════════════════


class TestKubectlQueries:
    @patch(_KUBECTL)
    def test_check_access_fails(self, mock_run):
        mock_run.return_value = _mock_result(returncode=1, stderr="connection refused")
        with pytest.raises(PrerequisiteMissing, match="connection refused"):
            KubectlCluster().check_access()

    @patch(_KUBECTL)
    def test_available_kinds_cached(self, mock_run):
        mock_run.return_value = _mock_result(stdout=(
            "pods          po     v1                        true    Pod\n"
            "deployments   deploy apps/v1                   true    Deployment\n"
            "certificates  cert   cert-manager.io/v1        true    Certificate\n"
        ))
        cluster = KubectlCluster()
        assert cluster.available_kinds() == {"Pod", "Deployment", "Certificate"}
        cluster.available_kinds()
        assert mock_run.call_count == 1

    @patch(_KUBECTL)
    def test_create_namespace(self, mock_run):
        mock_run.side_effect = [
            _mock_result(returncode=1, stderr='namespaces "wetfish-dev" not found'),
            _mock_result(stdout="namespace/wetfish-dev created"),
        ]
        assert KubectlCluster().create_namespace("wetfish-dev") == "created"
        assert mock_run.call_args.args == ("create", "namespace", "wetfish-dev")

    @patch(_KUBECTL)
    def test_create_namespace_existing(self, mock_run):
        mock_run.return_value = _mock_result(stdout="namespace/wetfish-dev")
        assert KubectlCluster().create_namespace("wetfish-dev") == "unchanged"
        assert mock_run.call_count == 1

    @patch(_KUBECTL)
    def test_is_ready_not_found(self, mock_run):
        mock_run.return_value = _mock_result(
            returncode=1, stderr='Error from server (NotFound): deployments.apps "wiki-web" not found',
        )
        assert KubectlCluster().is_ready("Deployment", "wiki-web", "wetfish-dev") is False

    @patch(_KUBECTL)
    def test_is_ready(self, mock_run):
        mock_run.return_value = _mock_result(stdout=json.dumps({
            "metadata": {"generation": 1},
            "spec": {"replicas": 1},
            "status": {"observedGeneration": 1, "replicas": 1, "readyReplicas": 1, "updatedReplicas": 1},
        }))
        assert KubectlCluster().is_ready("Deployment", "wiki-web", "wetfish-dev") is True

    @patch(_KUBECTL)
    def test_pods(self, mock_run):
        mock_run.return_value = _mock_result(stdout=json.dumps({"items": [{
            "metadata": {"name": "wiki-web-abc", "labels": {"app": "wiki"}},
            "status": {
                "phase": "Running",
                "containerStatuses": [
                    {"ready": True, "restartCount": 1},
                    {"ready": False, "restartCount": 2},
                ],
            },
        }]}))
        pods = KubectlCluster().pods("wetfish-dev")
        assert pods == [{
            "name": "wiki-web-abc",
            "phase": "Running",
            "ready": False,
            "restarts": 3,
            "labels": {"app": "wiki"},
        }]

    @patch(_KUBECTL)
    def test_endpoints(self, mock_run):
        mock_run.return_value = _mock_result(stdout=json.dumps({
            "subsets": [{"addresses": [{"ip": "10.0.0.5"}, {"ip": "10.0.0.6"}]}],
        }))
        assert KubectlCluster().endpoints("wetfish-dev", "wiki") == ["10.0.0.5", "10.0.0.6"]

    @patch(_KUBECTL)
    def test_ingress_hosts(self, mock_run):
        mock_run.return_value = _mock_result(stdout=json.dumps({"items": [
            {"spec": {"rules": [{"host": "wiki.wetfish.local"}, {"host": "wiki.wetfish.local"}]}},
            {"spec": {"rules": [{"http": {}}]}},
        ]}))
        assert KubectlCluster().ingress_hosts("wetfish-dev") == ["wiki.wetfish.local"]

    @patch(_KUBECTL)
    def test_logs_failure_is_empty(self, mock_run):
        mock_run.return_value = _mock_result(returncode=1, stderr="container not found")
        assert KubectlCluster().logs("wetfish-dev", "wiki-web-abc") == ""


# ═══════════════════════════════════════════════════════════════════
#  helm
# ═══════════════════════════════════════════════════════════════════


class TestBuildUpgradeCmd:
    def test_full(self, tmp_path):
        release = _release(version="v1.14.0", set_values={"z.key": "1", "crds.enabled": "true"})
        cmd = build_upgrade_cmd(release, values_path=tmp_path / "v.yaml", timeout=300)
        assert cmd == [
            "upgrade", "cert-manager", "jetstack/cert-manager", "--install",
            "--namespace", "cert-manager",
            "--create-namespace",
            "--wait",
            "--timeout", "300s",
            "--version", "v1.14.0",
            "--values", str(tmp_path / "v.yaml"),
            "--set", "crds.enabled=true",
            "--set", "z.key=1",
        ]

    def test_qualified_chart_not_prefixed_twice(self):
        cmd = build_upgrade_cmd(_release(chart="jetstack/cert-manager"))
        assert cmd[2] == "jetstack/cert-manager"

    def test_local_chart(self):
        cmd = build_upgrade_cmd(_release(chart="./charts/wiki", repo_name="", repo_url=""))
        assert cmd[2] == "./charts/wiki"


class TestHelmInstaller:
    @patch(_HELM)
    def test_install_adds_repo_once(self, mock_run):
        mock_run.return_value = _mock_result(stdout='Release "cert-manager" does not exist. Installing it now.')
        helm = HelmInstaller()
        assert helm.upgrade_install(_release()) == "installed"
        assert helm.upgrade_install(_release()) == "installed"

        commands = [c.args[:2] for c in mock_run.call_args_list]
        assert commands.count(("repo", "add")) == 1
        assert commands.count(("repo", "update")) == 1
        assert commands.count(("upgrade", "cert-manager")) == 2

    @patch(_HELM)
    def test_upgraded(self, mock_run):
        mock_run.return_value = _mock_result(stdout='Release "cert-manager" has been upgraded. Happy Helming!')
        assert HelmInstaller().upgrade_install(_release(repo_name="", repo_url="")) == "upgraded"

    @patch(_HELM)
    def test_install_failure(self, mock_run):
        mock_run.return_value = _mock_result(returncode=1, stderr="Error: timed out waiting for the condition")
        with pytest.raises(ApplyError, match="timed out waiting"):
            HelmInstaller().upgrade_install(_release(repo_name="", repo_url=""))

    @patch(_HELM)
    def test_repo_add_failure(self, mock_run):
        mock_run.return_value = _mock_result(returncode=1, stderr="Error: looks like the URL is not a valid chart repository")
        with pytest.raises(ApplyError, match="not a valid chart repository"):
            HelmInstaller().upgrade_install(_release())

    @patch(_HELM)
    def test_uninstall_not_found(self, mock_run):
        mock_run.return_value = _mock_result(returncode=1, stderr="Error: uninstall: Release not loaded: cert-manager: release: not found")
        assert HelmInstaller().uninstall(_release()) == "not-found"

    @patch(_HELM)
    def test_uninstall(self, mock_run):
        mock_run.return_value = _mock_result(stdout='release "cert-manager" uninstalled')
        assert HelmInstaller().uninstall(_release()) == "deleted"
        assert mock_run.call_args.args == ("uninstall", "cert-manager", "--namespace", "cert-manager")

    @patch(_HELM, side_effect=FileNotFoundError)
    def test_helm_missing(self, mock_run):
        with pytest.raises(PrerequisiteMissing):
            HelmInstaller().uninstall(_release())


# ═══════════════════════════════════════════════════════════════════
#  docker
# ═══════════════════════════════════════════════════════════════════


class TestDockerImageBuilder:
    def test_missing_dockerfile(self, tmp_path):
        with patch(_DOCKER) as mock_run:
            with pytest.raises(ApplyError, match="Dockerfile not found"):
                DockerImageBuilder(tmp_path).build(tmp_path, "Dockerfile.php", "reg/wiki:php")
            mock_run.assert_not_called()

    @patch(_DOCKER)
    def test_build(self, mock_run, tmp_path):
        (tmp_path / "Dockerfile.php").write_text("FROM php:8-fpm\n")
        mock_run.return_value = _mock_result()
        DockerImageBuilder(tmp_path).build(tmp_path, "Dockerfile.php", "reg/wiki:php", timeout=120)

        args, kwargs = mock_run.call_args
        assert args == ("build", "-f", "Dockerfile.php", "-t", "reg/wiki:php", ".")
        assert kwargs == {"cwd": tmp_path, "timeout": 120}

    @patch(_DOCKER)
    def test_build_failure_tail(self, mock_run, tmp_path):
        (tmp_path / "Dockerfile").write_text("FROM scratch\n")
        mock_run.return_value = _mock_result(returncode=1, stderr="step 1\nstep 2\nERROR: no such file\n")
        with pytest.raises(ApplyError, match="no such file"):
            DockerImageBuilder(tmp_path).build(tmp_path, "Dockerfile", "reg/home:web")

    @patch(_DOCKER)
    def test_push_failure(self, mock_run, tmp_path):
        mock_run.return_value = _mock_result(returncode=1, stderr="denied: requested access to the resource is denied")
        with pytest.raises(ApplyError, match="denied"):
            DockerImageBuilder(tmp_path).push("reg/wiki:php")


# ═══════════════════════════════════════════════════════════════════
#  Toolchain
# ═══════════════════════════════════════════════════════════════════


class TestToolchain:
    def test_default_uses_real_adapters(self, tmp_path):
        tools = Toolchain.default(tmp_path)
        assert [a.name for a in tools.adapters()] == ["kubectl", "helm", "docker"]

    def test_availability(self):
        tools = Toolchain(
            cluster=FakeCluster(),
            installer=FakeHelm(available=False),
            builder=FakeImageBuilder(),
        )
        assert tools.availability() == {"fake-cluster": True, "fake-helm": False, "fake-docker": True}

    def test_repr(self):
        assert repr(FakeHelm()) == "<FakeHelm name='fake-helm'>"
