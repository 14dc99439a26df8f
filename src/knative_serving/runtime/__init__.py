"""Reconciliation runtime: manifest rendering, cluster access, status polling."""

from .cluster import ClusterApiClient, ClusterResult, classify_api_exception, create_cluster_client
from .errors import (
    AccessForbidden,
    ClusterTransportError,
    ConfigurationError,
    OperationCancelled,
    ResourceNotFound,
    ServingError,
    StatusTimeout,
    ValidationRejected,
)
from .manifest import ServiceManifest, build_manifest, image_reference
from .reconciler import Reconciler
from .status import StatusPoller

__all__ = [
    "ClusterApiClient",
    "ClusterResult",
    "classify_api_exception",
    "create_cluster_client",
    "AccessForbidden",
    "ClusterTransportError",
    "ConfigurationError",
    "OperationCancelled",
    "ResourceNotFound",
    "ServingError",
    "StatusTimeout",
    "ValidationRejected",
    "ServiceManifest",
    "build_manifest",
    "image_reference",
    "Reconciler",
    "StatusPoller",
]
