"""Configuration and data models shared across the runtime and the CLI."""

from .config import DeployerConfig, normalize_inputs, resolve_config
from .models import NamespaceStatus, ObservedStatus, ServiceSpec, ServiceStatus

__all__ = [
    "DeployerConfig",
    "normalize_inputs",
    "resolve_config",
    "NamespaceStatus",
    "ObservedStatus",
    "ServiceSpec",
    "ServiceStatus",
]
