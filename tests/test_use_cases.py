"""
Tests for the use cases — deploy, generate-secrets, environments,
verify and bring-up.

Everything runs against the in-memory toolchain from conftest; the
results are asserted through their exit codes and ``to_dict`` payloads,
the same shape the CLI prints.
"""

import pytest
import yaml

from wetctl.adapters.mock import FakeCluster, FakeHelm, FakeImageBuilder
from wetctl.adapters.registry import Toolchain
from wetctl.core.context import OrchestratorContext
from wetctl.core.models.rollout import RolloutStatus
from wetctl.core.use_cases.bring_up import bring_up
from wetctl.core.use_cases.deploy import EXIT_DEGRADED, EXIT_FATAL, EXIT_OK, deploy
from wetctl.core.use_cases.environments import list_environments, provision_namespaces
from wetctl.core.use_cases.generate_secrets import generate_secrets
from wetctl.core.use_cases.verify import verify_services

NS = "wetfish-dev"

CLUSTER_ISSUER = """\
apiVersion: cert-manager.io/v1
kind: ClusterIssuer
metadata:
  name: selfsigned-issuer
spec:
  selfSigned: {}
"""

# Service → Kubernetes Services the templates declare
_ENDPOINTS = {
    "wiki": ["wiki", "wiki-mysql"],
    "glitch": ["glitch"],
    "click": ["click", "click-mysql"],
}


def _context(config, cluster, **tool_overrides):
    tools = Toolchain(
        cluster=cluster,
        installer=tool_overrides.get("installer", FakeHelm()),
        builder=tool_overrides.get("builder", FakeImageBuilder()),
    )
    run_ctx = OrchestratorContext.create(config, tools=tools)
    run_ctx.http_get = lambda url, timeout: 200
    run_ctx.resolve_host = lambda host: True
    return run_ctx


def _healthy(cluster, services):
    """Pods and endpoints for every service, as if the workloads came up."""
    cluster.pod_list[NS] = [
        {"name": f"{s}-web-0", "phase": "Running", "ready": True, "restarts": 0, "labels": {"app": s}}
        for s in services
    ]
    for s in services:
        for name in _ENDPOINTS[s]:
            cluster.endpoint_map[(NS, name)] = ["10.0.0.1"]


def _write_issuer(project):
    path = project / "infrastructure" / "cert-manager" / "cluster-issuer.yaml"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(CLUSTER_ISSUER)


# ═══════════════════════════════════════════════════════════════════
#  deploy
# ═══════════════════════════════════════════════════════════════════


class TestDeployInput:
    def test_unknown_environment(self, ctx, cluster):
        result = deploy(ctx, "wiki", "qa")
        assert result.exit_code == EXIT_FATAL
        assert result.error_type == "UnknownEnvironment"
        assert cluster.call_log == []

    def test_unknown_target(self, ctx, cluster):
        result = deploy(ctx, "nope", "dev")
        assert result.exit_code == EXIT_FATAL
        assert result.error_type == "UnknownTarget"
        assert "wiki" in result.error
        assert cluster.call_log == []

    def test_empty_target(self, ctx):
        result = deploy(ctx, "", "dev")
        assert result.error_type == "UserInputError"

    def test_unknown_action(self, ctx, cluster):
        result = deploy(ctx, "wiki", "dev", action="restart")
        assert result.exit_code == EXIT_FATAL
        assert cluster.call_log == []

    def test_cluster_unreachable(self, config):
        cluster = FakeCluster(namespaces=[NS], reachable=False)
        result = deploy(_context(config, cluster), "wiki", "dev")
        assert result.error_type == "PrerequisiteMissing"
        assert cluster.ops("apply") == []

    def test_missing_tool(self, config):
        cluster = FakeCluster(namespaces=[NS], available=False)
        result = deploy(_context(config, cluster), "wiki", "dev")
        assert result.error_type == "PrerequisiteMissing"
        assert "fake-cluster" in result.error
        assert cluster.call_log == []


class TestDeployService:
    def test_success(self, ctx, cluster):
        result = deploy(ctx, "wiki", "development")
        assert result.exit_code == EXIT_OK
        assert result.environment == "dev"
        [record] = result.records
        assert record.status == RolloutStatus.SUCCEEDED
        assert cluster.has("Deployment", "wiki-web", NS)

        [access] = result.access
        assert access["urls"] == ["https://wiki.wetfish.local"]
        assert access["namespace"] == NS
        assert "kubectl logs -n wetfish-dev -l app=wiki" in access["logs"]

    @pytest.mark.parametrize("env_id", ["dev", "staging"])
    def test_degraded_without_monitoring_crds(self, config, bare_cluster, env_id):
        result = deploy(_context(config, bare_cluster), "wiki", env_id)
        assert result.exit_code == EXIT_DEGRADED
        [record] = result.records
        assert record.status == RolloutStatus.PARTIALLY_DEGRADED
        assert [o.resource for o in record.skipped] == ["ServiceMonitor/wiki"]
        assert bare_cluster.has("Deployment", "wiki-web", f"wetfish-{env_id}")
        assert result.access

    def test_unwritable_secret_store_isolated(self, ctx, project, cluster):
        # A plain file where click's overlays directory should be
        (project / "services" / "click" / "k8s" / "overlays").write_text("x")
        result = deploy(ctx, "all", "dev")
        assert result.exit_code == EXIT_FATAL
        records = {r.service: r for r in result.records}
        assert set(records) == {"wiki", "glitch", "click", "home", "danger"}
        assert records["click"].status == RolloutStatus.FAILED
        assert records["click"].error_type == "SecretStoreError"
        assert records["wiki"].status == RolloutStatus.SUCCEEDED
        assert records["glitch"].status == RolloutStatus.SUCCEEDED
        assert not cluster.has("StatefulSet", "click-mysql", NS)

    def test_prod_generates_random_secret(self, ctx, cluster, config):
        result = deploy(ctx, "wiki", "prod")
        assert result.exit_code == EXIT_OK
        secret = cluster.get("Secret", "wiki-mysql-secret", "wetfish-prod")
        assert secret["stringData"]["mysql-password"] != "wikipass"

    def test_all_reports_compose_failures(self, ctx, cluster):
        result = deploy(ctx, "all", "dev")
        assert result.exit_code == EXIT_FATAL
        by_service = {r.service: r.status for r in result.records}
        assert by_service["wiki"] == RolloutStatus.SUCCEEDED
        assert by_service["glitch"] == RolloutStatus.SUCCEEDED
        assert by_service["click"] == RolloutStatus.SUCCEEDED
        # No templates in the test project for these two
        assert by_service["home"] == RolloutStatus.FAILED
        assert by_service["danger"] == RolloutStatus.FAILED
        assert len(result.access) == 3

    def test_redeploy_is_idempotent(self, ctx, cluster):
        deploy(ctx, "glitch", "dev")
        result = deploy(ctx, "glitch", "dev")
        assert result.exit_code == EXIT_OK
        assert result.records[0].mutated == []

    def test_delete(self, ctx, cluster):
        deploy(ctx, "click", "dev")
        result = deploy(ctx, "click", "dev", action="delete")
        assert result.exit_code == EXIT_OK
        assert result.records[0].action == "delete"
        assert not cluster.has("StatefulSet", "click-mysql", NS)
        assert not cluster.has("Secret", "click-mysql-secret", NS)
        assert result.access == []

    def test_to_dict(self, ctx):
        data = deploy(ctx, "glitch", "dev").to_dict()
        assert data["exit_code"] == 0
        assert data["records"][0]["status"] == "Succeeded"
        assert "error" not in data


class TestDeployVerify:
    def test_healthy(self, ctx, cluster):
        _healthy(cluster, ["wiki"])
        result = deploy(ctx, "wiki", "dev", verify=True)
        assert result.exit_code == EXIT_OK
        [report] = result.reports
        assert report.status == "healthy"

    def test_unhealthy_is_fatal(self, ctx):
        result = deploy(ctx, "wiki", "dev", verify=True)
        assert result.records[0].status == RolloutStatus.SUCCEEDED
        assert result.reports[0].status == "unhealthy"
        assert result.exit_code == EXIT_FATAL
        assert "health" in result.to_dict()


class TestDeployStack:
    def test_install(self, ctx, tools):
        result = deploy(ctx, "monitoring", "dev")
        assert result.exit_code == EXIT_OK
        assert result.records[0].action == "install"
        assert set(tools.installer.installed) == {"prometheus", "loki", "tempo", "promtail"}

    def test_delete_in_reverse(self, ctx, tools):
        deploy(ctx, "monitoring", "dev")
        result = deploy(ctx, "monitoring", "dev", action="delete")
        assert result.exit_code == EXIT_OK
        uninstalls = [c for c in tools.installer.call_log if c.startswith("uninstall:")]
        assert uninstalls == [
            "uninstall:promtail", "uninstall:tempo", "uninstall:loki", "uninstall:prometheus",
        ]
        assert tools.installer.installed == {}

    def test_installer_missing(self, config, cluster):
        run_ctx = _context(config, cluster, installer=FakeHelm(available=False))
        result = deploy(run_ctx, "platform", "dev")
        assert result.error_type == "PrerequisiteMissing"


# ═══════════════════════════════════════════════════════════════════
#  generate-secrets
# ═══════════════════════════════════════════════════════════════════


class TestGenerateSecrets:
    def test_dev_defaults(self, ctx, config):
        result = generate_secrets(ctx, "dev")
        assert result.exit_code == 0
        assert [r.service for r in result.refs] == ["wiki", "click", "danger"]
        assert (config.overlay_dir("wiki", "dev") / "secret.yaml").is_file()

    def test_prod_without_random(self, ctx, config):
        result = generate_secrets(ctx, "prod")
        assert result.exit_code == 1
        assert result.error_type == "SecretPolicyViolation"
        assert "--random" in result.error
        for name in ("wiki", "click", "danger"):
            assert not (config.overlay_dir(name, "prod") / "secret.yaml").exists()

    def test_prod_random(self, ctx, config):
        result = generate_secrets(ctx, "production", random=True, services=["click"])
        assert result.exit_code == 0
        assert result.environment == "prod"
        assert [r.service for r in result.refs] == ["click"]
        assert result.generated == ["click"]

        text = (config.overlay_dir("click", "prod") / "secret.yaml").read_text()
        data = yaml.safe_load(text)["stringData"]
        assert data["mysql-password"] != "clickpass"
        assert data["mysql-user"] == "clickuser"

    def test_reuse_then_force(self, ctx):
        first = generate_secrets(ctx, "staging", random=True, services=["wiki"])
        again = generate_secrets(ctx, "staging", random=True, services=["wiki"])
        forced = generate_secrets(ctx, "staging", random=True, services=["wiki"], force=True)
        for result in (first, again, forced):
            assert result.exit_code == 0, result.error
        assert first.generated == ["wiki"]
        assert again.generated == []
        assert again.refs == first.refs
        assert again.to_dict()["secrets"][0]["generated"] is False
        assert forced.generated == ["wiki"]
        assert forced.refs[0].fingerprint != first.refs[0].fingerprint

    def test_unknown_service(self, ctx):
        result = generate_secrets(ctx, "dev", services=["nope"])
        assert result.error_type == "UnknownTarget"

    def test_payload_has_no_values(self, ctx):
        data = generate_secrets(ctx, "dev", services=["wiki"]).to_dict()
        assert "wikipass" not in str(data)
        assert "changeme" not in str(data)


# ═══════════════════════════════════════════════════════════════════
#  Environments
# ═══════════════════════════════════════════════════════════════════


class TestEnvironments:
    def test_list(self, ctx):
        ids = [e["id"] for e in list_environments(ctx)]
        assert ids == ["dev", "staging", "prod"]

    def test_provision(self, ctx, cluster):
        result = provision_namespaces(ctx, "dev")
        assert result.exit_code == 0
        assert result.namespaces == {
            "wetfish-dev": "unchanged",
            "wetfish-system": "created",
            "wetfish-monitoring": "created",
        }
        assert provision_namespaces(ctx, "dev").namespaces["wetfish-system"] == "unchanged"

    def test_provision_unknown_env(self, ctx, cluster):
        result = provision_namespaces(ctx, "qa")
        assert result.exit_code == 1
        assert cluster.call_log == []

    def test_rollout_needs_namespace(self, config):
        cluster = FakeCluster()
        run_ctx = _context(config, cluster)
        assert deploy(run_ctx, "glitch", "dev").exit_code == EXIT_FATAL
        provision_namespaces(run_ctx, "dev")
        assert deploy(run_ctx, "glitch", "dev").exit_code == EXIT_OK


# ═══════════════════════════════════════════════════════════════════
#  verify
# ═══════════════════════════════════════════════════════════════════


class TestVerifyServices:
    def test_healthy(self, ctx, cluster):
        deploy(ctx, "wiki", "dev")
        _healthy(cluster, ["wiki"])
        result = verify_services(ctx, "dev", ["wiki"])
        assert result.exit_code == 0
        assert result.reports[0].unit == "wiki@dev"

    def test_not_deployed(self, ctx):
        result = verify_services(ctx, "dev", ["glitch"])
        assert result.exit_code == 1

    def test_compose_failure_reported(self, ctx):
        result = verify_services(ctx, "dev", ["home"])
        assert result.exit_code == 1
        assert result.reports[0].checks[0].name == "compose"

    def test_unknown_service(self, ctx):
        assert verify_services(ctx, "dev", ["nope"]).error_type == "UnknownTarget"


# ═══════════════════════════════════════════════════════════════════
#  bring-up
# ═══════════════════════════════════════════════════════════════════


SERVICES = ("wiki", "glitch", "click")


class TestBringUp:
    @pytest.fixture
    def narrowed(self, config, project):
        """Config limited to the services the test project has templates for."""
        _write_issuer(project)
        return config.model_copy(update={
            "services": tuple(s for s in config.services if s.name in SERVICES),
        })

    @pytest.fixture
    def builder(self):
        return FakeImageBuilder()

    @pytest.fixture
    def helm(self):
        return FakeHelm()

    @pytest.fixture
    def run_ctx(self, narrowed, cluster, builder, helm):
        return _context(narrowed, cluster, builder=builder, installer=helm)

    def test_end_to_end(self, run_ctx, cluster, builder, helm):
        _healthy(cluster, SERVICES)
        result = bring_up(run_ctx, "dev")

        assert result.exit_code == EXIT_OK, result.to_dict()
        assert [s.name for s in result.steps] == [
            "prerequisites", "cluster", "namespaces", "platform",
            "build", "secrets", "rollout", "verify",
        ]
        assert helm.call_log == ["cert-manager", "traefik"]
        assert "wetfish-registry:5000/wiki:php" in builder.pushed
        assert len(builder.built) == 6
        assert {r.service for r in result.records} == {"platform", *SERVICES}
        assert len(result.reports) == 3

    def test_build_failure_isolated(self, run_ctx, cluster, builder):
        builder.failures.add("wetfish-registry:5000/glitch:php")
        result = bring_up(run_ctx, "dev")

        assert result.exit_code == EXIT_FATAL
        status = {r.service: r.status for r in result.records}
        assert status["glitch"] == RolloutStatus.FAILED
        assert status["wiki"] == RolloutStatus.SUCCEEDED
        assert status["click"] == RolloutStatus.SUCCEEDED
        assert not cluster.has("Deployment", "glitch-web", NS)
        assert result.builds.failed_services == ["glitch"]

    def test_skip_build(self, run_ctx, cluster, builder):
        _healthy(cluster, SERVICES)
        result = bring_up(run_ctx, "dev", skip_build=True)
        assert result.exit_code == EXIT_OK
        assert builder.built == []
        assert result.builds is None

    def test_nodes_not_ready(self, run_ctx, cluster):
        cluster.nodes_are_ready = False
        result = bring_up(run_ctx, "dev")
        assert result.exit_code == EXIT_FATAL
        assert result.error_type == "PrerequisiteMissing"
        assert cluster.ops("apply") == []

    def test_skip_cluster(self, run_ctx, cluster):
        cluster.nodes_are_ready = False
        _healthy(cluster, SERVICES)
        result = bring_up(run_ctx, "dev", skip_cluster=True)
        assert result.steps[1].status == "skipped"
        assert result.exit_code == EXIT_OK

    def test_monitoring_failure_is_warning(self, run_ctx, cluster, helm):
        _healthy(cluster, SERVICES)
        helm.failures.add("prometheus")
        result = bring_up(run_ctx, "dev", with_monitoring=True)
        monitoring = next(s for s in result.steps if s.name == "monitoring")
        assert monitoring.status == "warning"
        assert result.exit_code == EXIT_DEGRADED

    def test_unhealthy_is_warning(self, run_ctx):
        result = bring_up(run_ctx, "dev")
        assert result.steps[-1].status == "warning"
        assert result.exit_code == EXIT_DEGRADED

    def test_secrets_written(self, run_ctx, narrowed):
        bring_up(run_ctx, "dev", skip_build=True)
        assert (narrowed.overlay_dir("wiki", "dev") / "secret.yaml").is_file()
        assert (narrowed.overlay_dir("click", "dev") / "secret.yaml").is_file()
        assert not (narrowed.overlay_dir("glitch", "dev") / "secret.yaml").exists()
