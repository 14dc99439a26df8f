"""Deploy container images as Knative services."""

from .common.config import DeployerConfig, resolve_config
from .common.models import NamespaceStatus, ServiceSpec, ServiceStatus
from .service import KnativeServing

__all__ = [
    "DeployerConfig",
    "resolve_config",
    "NamespaceStatus",
    "ServiceSpec",
    "ServiceStatus",
    "KnativeServing",
]
