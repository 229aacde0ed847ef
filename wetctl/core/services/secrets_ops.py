"""
Secret Materializer — per (service, environment) credential material.

The store is one file per pair::

    services/<svc>/k8s/overlays/<env>/secret.yaml

holding the service's Secret documents (``stringData``). The file is
created once; a normal deployment run only ever reuses it. Regeneration
is explicit (``SecretMode.FORCE_REGENERATE``).

Default (non-random) credentials are only produced for environments
whose tuple sets ``allow_default_credentials``; anywhere else a request
for defaults raises ``SecretPolicyViolation`` before anything is written.

Every value read or generated is registered with the logging redaction
filter. Values never leave this module except inside Secret resource
bodies handed to the cluster adapter.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import os
import secrets as _secrets
import tempfile
from pathlib import Path

import yaml

from wetctl.core.config.loader import OrchestratorConfig
from wetctl.core.errors import SecretPolicyViolation, SecretStoreError, TemplateError
from wetctl.core.models.environment import Environment
from wetctl.core.models.resources import Resource, ResourceLayer, ResourceSet
from wetctl.core.models.secret import SecretMode, SecretRef
from wetctl.core.models.service import ServiceDescriptor
from wetctl.core.observability.logging_config import register_secret_values

logger = logging.getLogger(__name__)

SECRET_FILE = "secret.yaml"
KUSTOMIZATION_FILE = "kustomization.yaml"
_BASE_REF = "../../base"

# Same strength as ``openssl rand -base64 18``
_RANDOM_BYTES = 18


# ═══════════════════════════════════════════════════════════════════
#  Value generation
# ═══════════════════════════════════════════════════════════════════


def generate_value() -> str:
    """Cryptographically strong random credential (24 base64 chars)."""
    return base64.b64encode(_secrets.token_bytes(_RANDOM_BYTES)).decode("ascii")


def build_secret_documents(
    service: ServiceDescriptor,
    env: Environment,
    *,
    use_random: bool,
) -> list[dict]:
    """Secret documents for every SecretSpec of a service.

    Generated keys get a fresh random value when ``use_random``;
    fixed keys (user and database names) always keep their default.
    """
    documents = []
    for spec in service.secrets:
        data = {
            key.name: generate_value() if (use_random and key.generated) else key.default
            for key in spec.keys
        }
        documents.append({
            "apiVersion": "v1",
            "kind": "Secret",
            "type": "Opaque",
            "metadata": {
                "name": spec.name,
                "namespace": env.namespace,
                "labels": {
                    "app": service.name,
                    "component": spec.component,
                    "app.kubernetes.io/managed-by": "wetctl",
                },
            },
            "stringData": data,
        })
    return documents


# ═══════════════════════════════════════════════════════════════════
#  Store I/O
# ═══════════════════════════════════════════════════════════════════


def _fingerprint(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def _atomic_write(path: Path, content: str) -> None:
    """Write-to-temp-then-rename, owner-only permissions.

    Raises:
        SecretStoreError: the directory or file could not be written.
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".secret_", suffix=".tmp")
    except OSError as e:
        raise SecretStoreError(f"Cannot write {path}: {e}") from e
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.chmod(tmp_path, 0o600)
        os.replace(tmp_path, path)
    except OSError as e:
        Path(tmp_path).unlink(missing_ok=True)
        raise SecretStoreError(f"Cannot write {path}: {e}") from e
    except BaseException:
        Path(tmp_path).unlink(missing_ok=True)
        raise


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as e:
        raise SecretStoreError(f"Cannot read {path}: {e}") from e


def read_secret_documents(path: Path) -> list[dict]:
    """Load the Secret documents of an existing store file."""
    try:
        docs = [d for d in yaml.safe_load_all(_read_text(path)) if d]
    except yaml.YAMLError as e:
        raise TemplateError(f"Invalid secret file {path}: {e}") from e
    for doc in docs:
        if not isinstance(doc, dict) or doc.get("kind") != "Secret":
            raise TemplateError(f"{path}: only Secret documents are allowed")
    return docs


def _secret_values(documents: list[dict]) -> list[str]:
    values = []
    for doc in documents:
        values.extend(str(v) for v in (doc.get("stringData") or {}).values())
        values.extend(str(v) for v in (doc.get("data") or {}).values())
    return values


def register_in_kustomization(overlay_dir: Path, env: Environment) -> bool:
    """Reference ``secret.yaml`` exactly once from the overlay kustomization.

    Returns:
        True if the kustomization file was written.
    """
    path = overlay_dir / KUSTOMIZATION_FILE
    if path.is_file():
        try:
            data = yaml.safe_load(_read_text(path)) or {}
        except yaml.YAMLError as e:
            raise TemplateError(f"Invalid YAML in {path}: {e}") from e
    else:
        data = {
            "apiVersion": "kustomize.config.k8s.io/v1beta1",
            "kind": "Kustomization",
            "namespace": env.namespace,
        }

    resources = list(data.get("resources") or [])
    if SECRET_FILE in resources:
        return False

    if _BASE_REF in resources:
        resources.insert(resources.index(_BASE_REF) + 1, SECRET_FILE)
    elif not path.is_file():
        resources = [_BASE_REF, SECRET_FILE]
    else:
        resources.append(SECRET_FILE)
    data["resources"] = resources

    _atomic_write(path, yaml.safe_dump(data, sort_keys=False, default_flow_style=False))
    logger.info("Registered %s in %s", SECRET_FILE, path)
    return True


# ═══════════════════════════════════════════════════════════════════
#  Materializer
# ═══════════════════════════════════════════════════════════════════


class SecretMaterializer:
    """Generates or reuses the secret store for (service, environment) pairs."""

    def __init__(self, config: OrchestratorConfig):
        self._config = config

    def secret_path(self, service: ServiceDescriptor, env: Environment) -> Path:
        return self._config.overlay_dir(service.name, env.id) / SECRET_FILE

    def ensure_secret(
        self,
        service: ServiceDescriptor,
        env: Environment,
        mode: SecretMode = SecretMode.REUSE_IF_PRESENT,
        *,
        random: bool | None = None,
    ) -> SecretRef:
        """Return a reference to the pair's secret material, creating it if needed.

        Args:
            service: Service whose SecretSpecs are materialized.
            env: Resolved environment tuple.
            mode: Reuse existing material or regenerate it.
            random: True → random values, False → convenience defaults,
                None → the environment's policy (defaults only where allowed).

        Raises:
            SecretPolicyViolation: defaults requested where the environment
                forbids them. Nothing is written.
            SecretStoreError: the store file could not be read or written.
        """
        return self.materialize(service, env, mode, random=random)[0]

    def materialize(
        self,
        service: ServiceDescriptor,
        env: Environment,
        mode: SecretMode = SecretMode.REUSE_IF_PRESENT,
        *,
        random: bool | None = None,
    ) -> tuple[SecretRef, bool]:
        """Like ``ensure_secret``, also reporting whether material was written."""
        path = self.secret_path(service, env)

        if not service.secrets:
            logger.debug("%s declares no secrets", service.name)
            return SecretRef(service=service.name, environment=env.id, path=str(path)), False

        if path.is_file() and mode == SecretMode.REUSE_IF_PRESENT:
            content = _read_text(path)
            documents = read_secret_documents(path)
            register_secret_values(_secret_values(documents))
            register_in_kustomization(path.parent, env)
            logger.info("Reusing secrets for %s@%s", service.name, env.id)
            return self._ref(service, env, path, documents, content), False

        use_random = (not env.allow_default_credentials) if random is None else random
        if not use_random and not env.allow_default_credentials:
            raise SecretPolicyViolation(env.id, service.name)

        documents = build_secret_documents(service, env, use_random=use_random)
        register_secret_values(_secret_values(documents))
        content = yaml.safe_dump_all(documents, sort_keys=True, default_flow_style=False)

        _atomic_write(path, content)
        register_in_kustomization(path.parent, env)
        logger.info(
            "Generated %s secrets for %s@%s → %s",
            "random" if use_random else "default",
            service.name,
            env.id,
            path,
        )
        return self._ref(service, env, path, documents, content), True

    def _ref(
        self,
        service: ServiceDescriptor,
        env: Environment,
        path: Path,
        documents: list[dict],
        content: str,
    ) -> SecretRef:
        return SecretRef(
            service=service.name,
            environment=env.id,
            path=str(path),
            secret_names=tuple(d["metadata"]["name"] for d in documents),
            fingerprint=_fingerprint(content),
        )

    def secret_resources(self, ref: SecretRef, env: Environment) -> list[Resource]:
        """Secret resources for a reference, read back from the store."""
        if not ref.secret_names:
            return []
        resources = []
        for doc in read_secret_documents(Path(ref.path)):
            doc.setdefault("metadata", {})["namespace"] = env.namespace
            resources.append(Resource(
                kind="Secret",
                name=doc["metadata"]["name"],
                namespace=env.namespace,
                layer=ResourceLayer.SECRET,
                source=SECRET_FILE,
                body=doc,
            ))
        return resources


def register_secret(
    resource_set: ResourceSet,
    ref: SecretRef,
    resources: list[Resource],
) -> int:
    """Add a secret reference (and its Secret resources) to a ResourceSet.

    Re-registering a reference the set already carries is a no-op.

    Returns:
        Number of newly registered secret names.
    """
    added = 0
    for name in ref.secret_names:
        if resource_set.references_secret(name):
            continue
        resource_set.secret_refs.append(name)
        added += 1

    for res in resources:
        if resource_set.get(res.kind, res.name) is None:
            _insert_secret(resource_set, res)
    return added


def _insert_secret(resource_set: ResourceSet, resource: Resource) -> None:
    """Insert after the last infrastructure/secret resource, keeping layer order."""
    index = 0
    for i, existing in enumerate(resource_set.resources):
        if existing.layer in (ResourceLayer.INFRASTRUCTURE, ResourceLayer.SECRET):
            index = i + 1
    resource_set.resources.insert(index, resource)
