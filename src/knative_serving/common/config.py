import copy
import os
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, Field

from .models import ServiceSpec


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str) -> Optional[int]:
    value = os.environ.get(name)
    return int(value) if value else None


class DeployerConfig(BaseModel):
    """Runtime settings for talking to the cluster and waiting on it."""

    # Cluster access
    kubeconfig_path: Optional[str] = Field(default_factory=lambda: os.environ.get("KUBECONFIG") or None)
    context: Optional[str] = Field(default=None, description="Kubeconfig context to use (defaults to current-context).")
    endpoint: Optional[str] = Field(default_factory=lambda: os.environ.get("KNATIVE_K8S_ENDPOINT") or None)
    port: Optional[int] = Field(default_factory=lambda: _env_int("KNATIVE_K8S_PORT"))
    token: Optional[str] = Field(default_factory=lambda: os.environ.get("KNATIVE_K8S_TOKEN") or None)
    skip_tls_verify: bool = Field(default_factory=lambda: _env_bool("KNATIVE_K8S_SKIP_TLS_VERIFY"))

    # Status polling
    poll_interval: float = Field(default=2.0, description="Seconds between status fetches.")
    poll_attempts: int = Field(default=150, ge=1, description="Maximum status fetches before giving up.")

    # Ingress gateway lookup
    ingress_service_name: str = "istio-ingressgateway"
    ingress_namespace: str = "istio-system"

    # Service inputs applied underneath every caller's inputs
    defaults: Dict[str, Any] = Field(default_factory=dict)

    def uses_token_auth(self) -> bool:
        return bool(self.endpoint and self.token)

    def get_server_url(self) -> Optional[str]:
        """Return the API server URL built from endpoint and port, if configured."""
        if not self.endpoint:
            return None
        if self.port:
            return f"{self.endpoint}:{self.port}"
        return self.endpoint


def _field_names() -> Dict[str, str]:
    names: Dict[str, str] = {}
    for name, info in ServiceSpec.model_fields.items():
        names[name] = name
        if info.alias:
            names[info.alias] = name
    return names


def normalize_inputs(inputs: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Map caller keys (camelCase or snake_case) onto ServiceSpec field names."""
    names = _field_names()
    normalized: Dict[str, Any] = {}
    for key, value in (inputs or {}).items():
        normalized[names.get(key, key)] = value
    return normalized


def _merge(base: Dict[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if value is None:
            continue
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, Mapping):
            merged[key] = _merge(current, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def resolve_config(defaults: Optional[Mapping[str, Any]], overrides: Optional[Mapping[str, Any]]) -> ServiceSpec:
    """
    Merge default inputs with caller overrides into a ServiceSpec.

    Precedence per field: an override that is present and not None wins, then
    the default, then the model default. Mapping values (``autoscaler``) are
    merged key by key with the same rule. Neither argument is mutated.

    Args:
        defaults: Baseline inputs, e.g. from DeployerConfig.defaults
        overrides: Caller inputs

    Returns:
        ServiceSpec: The resolved, immutable spec
    """
    merged = _merge(_merge({}, normalize_inputs(defaults)), normalize_inputs(overrides))
    return ServiceSpec.model_validate(merged)
