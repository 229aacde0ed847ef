"""
Configuration Layering Engine — base templates + environment overlays.

Reads the environment-agnostic templates of a service
(``services/<svc>/k8s/base/*.yaml``), applies the overlay stages in a
fixed order, and emits a fully resolved ResourceSet.

Overlay stages (always in this order):

    1. namespace  — ${NAMESPACE}, ${ENVIRONMENT}; metadata.namespace injection
    2. image      — ${IMAGE_<COMPONENT>} for every buildable component
    3. hostname   — ${HOSTNAME}, ${TLS_ISSUER}, ${TLS_SECRET}, ${BASE_URL};
                    cluster-issuer annotation on TLS ingresses
    4. storage    — ${STORAGE_CLASS} (only for services that own a datastore)
    5. service    — extra values from ``overlays/<env>/values.yaml``

Every placeholder key is provided by exactly one stage. After the last
stage the result is scanned; any ``${...}`` left over fails the whole
compose step (fail closed, nothing is emitted). A stage whose keys do
not appear in the templates is a no-op, not an error.
"""

from __future__ import annotations

import copy
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from wetctl.core.config.loader import OrchestratorConfig
from wetctl.core.errors import DuplicatePlaceholder, TemplateError, UnresolvedPlaceholder
from wetctl.core.models.environment import Environment
from wetctl.core.models.resources import Resource, ResourceLayer, ResourceSet
from wetctl.core.models.service import ServiceDescriptor

logger = logging.getLogger(__name__)


_PLACEHOLDER_RE = re.compile(r"\$\{([A-Z][A-Z0-9_]*)\}")

OVERLAY_ORDER = ("namespace", "image", "hostname", "storage", "service")

_CLUSTER_SCOPED_KINDS = frozenset({
    "Namespace", "ClusterRole", "ClusterRoleBinding", "ClusterIssuer",
    "StorageClass", "PersistentVolume", "CustomResourceDefinition",
    "IngressClass", "PriorityClass",
})

_INFRASTRUCTURE_KINDS = frozenset({
    "Ingress", "IngressRoute", "Middleware", "TLSOption", "Certificate",
    "ServiceMonitor", "PodMonitor", "PrometheusRule",
})

_LAYER_ORDER = {layer: i for i, layer in enumerate(ResourceLayer)}

_ISSUER_ANNOTATION = "cert-manager.io/cluster-issuer"


@dataclass(frozen=True)
class OverlayPatch:
    """One overlay stage: a typed mapping from placeholder key to value."""

    stage: str
    values: Mapping[str, str] = field(default_factory=dict)


def _token(name: str) -> str:
    return re.sub(r"[^A-Z0-9]", "_", name.upper())


# ═══════════════════════════════════════════════════════════════════
#  Overlay construction
# ═══════════════════════════════════════════════════════════════════


def load_service_values(path: Path) -> dict[str, str]:
    """Read extra overlay values (``values:`` mapping) for one environment."""
    if not path.is_file():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise TemplateError(f"Invalid YAML in {path}: {e}") from e

    values = data.get("values", {}) if isinstance(data, dict) else None
    if not isinstance(values, dict):
        raise TemplateError(f"{path}: 'values' must be a mapping")

    result: dict[str, str] = {}
    for key, value in values.items():
        if not isinstance(key, str) or not re.fullmatch(r"[A-Z][A-Z0-9_]*", key):
            raise TemplateError(f"{path}: invalid placeholder key {key!r}")
        result[key] = "" if value is None else str(value)
    return result


def build_overlays(
    service: ServiceDescriptor,
    env: Environment,
    extra: Mapping[str, str] | None = None,
) -> list[OverlayPatch]:
    """Build the overlay stages for a (service, environment) pair."""
    host = env.hostname(service.name)

    hostname_values = {
        "HOSTNAME": host,
        "TLS_ISSUER": env.tls_issuer,
        "TLS_SECRET": f"{service.name}-tls",
    }
    if service.requires_base_url:
        hostname_values["BASE_URL"] = f"https://{host}"

    patches = [
        OverlayPatch("namespace", {"NAMESPACE": env.namespace, "ENVIRONMENT": env.id}),
        OverlayPatch("image", {
            f"IMAGE_{_token(comp.name)}": env.image_ref(service.name, comp.name)
            for comp in service.buildable_components
        }),
        OverlayPatch("hostname", hostname_values),
    ]
    if service.owns_datastore:
        patches.append(OverlayPatch("storage", {"STORAGE_CLASS": env.storage_class}))
    if extra:
        patches.append(OverlayPatch("service", dict(extra)))
    return patches


def merge_overlays(patches: list[OverlayPatch]) -> dict[str, str]:
    """Flatten stages into one mapping, rejecting keys claimed twice."""
    merged: dict[str, str] = {}
    owners: dict[str, str] = {}
    for patch in patches:
        for key, value in patch.values.items():
            if key in owners:
                raise DuplicatePlaceholder(key, [owners[key], patch.stage])
            owners[key] = patch.stage
            merged[key] = value
    return merged


# ═══════════════════════════════════════════════════════════════════
#  Substitution
# ═══════════════════════════════════════════════════════════════════


def _substitute(node: Any, values: Mapping[str, str]) -> Any:
    """Replace known placeholders in every string of a YAML tree."""
    if isinstance(node, str):
        return _PLACEHOLDER_RE.sub(
            lambda m: values.get(m.group(1), m.group(0)), node
        )
    if isinstance(node, dict):
        return {_substitute(k, values): _substitute(v, values) for k, v in node.items()}
    if isinstance(node, list):
        return [_substitute(item, values) for item in node]
    return node


def find_placeholders(node: Any, path: str = "") -> dict[str, list[str]]:
    """Return ``{placeholder: [paths…]}`` for every token left in a tree."""
    found: dict[str, list[str]] = {}

    def _walk(n: Any, p: str) -> None:
        if isinstance(n, str):
            for m in _PLACEHOLDER_RE.finditer(n):
                found.setdefault(m.group(1), []).append(p or "<root>")
        elif isinstance(n, dict):
            for k, v in n.items():
                _walk(k, p)
                _walk(v, f"{p}.{k}" if p else str(k))
        elif isinstance(n, list):
            for i, item in enumerate(n):
                _walk(item, f"{p}[{i}]")

    _walk(node, path)
    return found


def _inject_namespace(doc: dict, namespace: str) -> None:
    if doc.get("kind") in _CLUSTER_SCOPED_KINDS:
        return
    doc.setdefault("metadata", {})["namespace"] = namespace


def _annotate_issuer(doc: dict, issuer: str) -> None:
    if doc.get("kind") != "Ingress":
        return
    if not (doc.get("spec") or {}).get("tls"):
        return
    annotations = doc.setdefault("metadata", {}).setdefault("annotations", {})
    annotations[_ISSUER_ANNOTATION] = issuer


def apply_stage(
    doc: dict,
    patch: OverlayPatch,
    env: Environment,
) -> dict:
    """Apply one overlay stage to one document."""
    result = _substitute(doc, patch.values) if patch.values else doc
    if patch.stage == "namespace":
        _inject_namespace(result, env.namespace)
    elif patch.stage == "hostname":
        _annotate_issuer(result, env.tls_issuer)
    return result


# ═══════════════════════════════════════════════════════════════════
#  Templates
# ═══════════════════════════════════════════════════════════════════


def load_base_templates(base_dir: Path) -> list[tuple[str, dict]]:
    """Read every resource document under a service's base directory.

    Files are read in sorted order; ``kustomization.yaml`` is skipped.

    Returns:
        ``[(source, document), …]`` where source is ``file.yaml#index``.
    """
    if not base_dir.is_dir():
        raise TemplateError(f"Base templates not found at {base_dir}")

    files = sorted(
        p for p in base_dir.iterdir()
        if p.is_file()
        and p.suffix in (".yaml", ".yml")
        and p.stem != "kustomization"
    )
    if not files:
        raise TemplateError(f"No templates in {base_dir}")

    templates: list[tuple[str, dict]] = []
    for path in files:
        try:
            docs = list(yaml.safe_load_all(path.read_text(encoding="utf-8")))
        except yaml.YAMLError as e:
            raise TemplateError(f"Invalid YAML in {path}: {e}") from e

        for index, doc in enumerate(docs):
            if doc is None:
                continue
            source = f"{path.name}#{index}"
            if not isinstance(doc, dict) or "kind" not in doc:
                raise TemplateError(f"{source}: not a resource document")
            if not (doc.get("metadata") or {}).get("name"):
                raise TemplateError(f"{source}: missing metadata.name")
            templates.append((source, doc))

    return templates


def classify(doc: dict, service: ServiceDescriptor) -> ResourceLayer:
    """Decide which rollout layer a resource belongs to."""
    kind = doc.get("kind", "")
    if kind == "Secret":
        return ResourceLayer.SECRET
    if kind in _INFRASTRUCTURE_KINDS:
        return ResourceLayer.INFRASTRUCTURE

    labels = (doc.get("metadata") or {}).get("labels") or {}
    datastores = {c.name for c in service.datastore_components}
    if labels.get("component") in datastores:
        return ResourceLayer.DATASTORE
    return ResourceLayer.APPLICATION


def to_resource(doc: dict, source: str, service: ServiceDescriptor) -> Resource:
    metadata = doc.get("metadata") or {}
    return Resource(
        kind=doc["kind"],
        name=metadata["name"],
        namespace=metadata.get("namespace"),
        layer=classify(doc, service),
        source=source,
        body=doc,
    )


# ═══════════════════════════════════════════════════════════════════
#  Engine
# ═══════════════════════════════════════════════════════════════════


class LayeringEngine:
    """Composes ResourceSets from on-disk templates and overlays."""

    def __init__(self, config: OrchestratorConfig):
        self._config = config

    def overlays_for(self, service: ServiceDescriptor, env: Environment) -> list[OverlayPatch]:
        extra = load_service_values(self._config.overlay_dir(service.name, env.id) / "values.yaml")
        return build_overlays(service, env, extra)

    def compose(self, service: ServiceDescriptor, env: Environment) -> ResourceSet:
        """Compose the concrete ResourceSet for a service in an environment.

        Raises:
            TemplateError: base templates missing or malformed.
            DuplicatePlaceholder: two stages claim the same key.
            UnresolvedPlaceholder: a token survived every stage.
        """
        templates = load_base_templates(self._config.base_dir(service.name))
        patches = self.overlays_for(service, env)
        merge_overlays(patches)  # validates key ownership up front

        composed: list[tuple[str, dict]] = []
        for source, template in templates:
            doc = copy.deepcopy(template)
            for patch in patches:
                doc = apply_stage(doc, patch, env)
            composed.append((source, doc))

        leftovers: dict[str, list[str]] = {}
        for source, doc in composed:
            for name, paths in find_placeholders(doc).items():
                leftovers.setdefault(name, []).extend(f"{source}:{p}" for p in paths)
        if leftovers:
            name = sorted(leftovers)[0]
            logger.debug("Unresolved placeholders for %s@%s: %s", service.name, env.id, sorted(leftovers))
            raise UnresolvedPlaceholder(name, leftovers[name])

        resources = [to_resource(doc, source, service) for source, doc in composed]
        resources.sort(key=lambda r: _LAYER_ORDER[r.layer])  # stable: keeps file order within a layer

        logger.info(
            "Composed %s@%s: %d resources (%s)",
            service.name,
            env.id,
            len(resources),
            ", ".join(p.stage for p in patches),
        )
        return ResourceSet(
            service=service.name,
            environment=env.id,
            namespace=env.namespace,
            resources=resources,
        )
