"""Render a ServiceSpec into the Knative Service custom-resource document."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Mapping

from ..common.models import AutoscalerValue, ServiceSpec

SERVICE_KIND = "Service"
SERVICE_PLURAL = "services"
AUTOSCALER_ANNOTATION_PREFIX = "autoscaling.knative.dev/"


@dataclass(frozen=True, slots=True)
class ServiceManifest:
    """A rendered manifest plus the coordinates needed to address it."""

    group: str
    version: str
    namespace: str
    name: str
    document: Dict[str, Any]
    plural: str = SERVICE_PLURAL

    @property
    def api_version(self) -> str:
        return f"{self.group}/{self.version}"

    def to_json(self) -> str:
        """Serialise with sorted keys so equal specs give identical bytes."""
        return json.dumps(self.document, sort_keys=True, separators=(",", ":"))


def image_reference(spec: ServiceSpec) -> str:
    """Digest beats tag; with neither, fall back to ``latest``."""
    base = f"{spec.registry_address}/{spec.repository}"
    if spec.digest:
        return f"{base}@{spec.digest}"
    if spec.tag:
        return f"{base}:{spec.tag}"
    return f"{base}:latest"


def _annotation_value(value: AutoscalerValue) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (int, float)):
        return str(value)
    return value


def autoscaler_annotations(autoscaler: Mapping[str, AutoscalerValue]) -> Dict[str, Any]:
    return {
        f"{AUTOSCALER_ANNOTATION_PREFIX}{key}": _annotation_value(autoscaler[key])
        for key in sorted(autoscaler)
    }


def build_manifest(spec: ServiceSpec) -> ServiceManifest:
    """
    Build the Service manifest for a spec.

    Never fails on missing optional inputs: they are left out of the document.

    Args:
        spec: Desired service configuration

    Returns:
        ServiceManifest: Freshly built document and its API coordinates
    """
    container: Dict[str, Any] = {}
    if spec.repository:
        container["image"] = image_reference(spec)
    if spec.pull_policy:
        container["imagePullPolicy"] = spec.pull_policy

    template: Dict[str, Any] = {}
    annotations = autoscaler_annotations(spec.autoscaler)
    if annotations:
        template["metadata"] = {"annotations": annotations}
    template["spec"] = {"containers": [container]}

    metadata: Dict[str, Any] = {"namespace": spec.namespace}
    if spec.name:
        metadata = {"name": spec.name, "namespace": spec.namespace}

    document = {
        "apiVersion": spec.api_version,
        "kind": SERVICE_KIND,
        "metadata": metadata,
        "spec": {"template": template},
    }

    return ServiceManifest(
        group=spec.knative_group,
        version=spec.knative_version,
        namespace=spec.namespace,
        name=spec.name or "",
        document=document,
    )
