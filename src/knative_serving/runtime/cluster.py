"""Thin adapter over the Kubernetes API for the Knative service custom resource."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict, Literal, Optional

from kubernetes import client, config as kube_config
from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from .errors import (
    AccessForbidden,
    ClusterTransportError,
    ResourceNotFound,
    ServingError,
    ValidationRejected,
)

if TYPE_CHECKING:
    from ..common.config import DeployerConfig

Outcome = Literal["found", "not_found", "error"]

MERGE_PATCH_CONTENT_TYPE = "application/merge-patch+json"


@dataclass(slots=True)
class ClusterResult:
    """Outcome of a read or delete, tagged so callers never inspect exceptions."""

    outcome: Outcome
    document: Optional[Dict[str, Any]] = None
    error: Optional[ServingError] = None

    @classmethod
    def found(cls, document: Optional[Dict[str, Any]]) -> "ClusterResult":
        return cls(outcome="found", document=document or {})

    @classmethod
    def not_found(cls, error: Optional[ServingError] = None) -> "ClusterResult":
        return cls(outcome="not_found", error=error)

    @classmethod
    def failed(cls, error: ServingError) -> "ClusterResult":
        return cls(outcome="error", error=error)

    @property
    def is_found(self) -> bool:
        return self.outcome == "found"

    @property
    def is_not_found(self) -> bool:
        return self.outcome == "not_found"

    def unwrap(self) -> Dict[str, Any]:
        """Return the document, or raise the error this result carries."""
        if self.outcome == "found":
            return self.document or {}
        if self.error is not None:
            raise self.error
        raise ResourceNotFound("resource not found", status=404)


def _error_message(exc: ApiException) -> str:
    body = exc.body
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    if body:
        try:
            payload = json.loads(body)
        except ValueError:
            return str(body).strip()
        if isinstance(payload, dict) and payload.get("message"):
            return str(payload["message"])
    return exc.reason or f"HTTP {exc.status}"


def classify_api_exception(exc: ApiException, resource: Optional[str] = None) -> ServingError:
    """Translate an ApiException into the error taxonomy by HTTP status."""
    status = exc.status or 0
    message = _error_message(exc)
    if status == 404:
        return ResourceNotFound(message, resource=resource, status=status)
    if status in (401, 403):
        return AccessForbidden(message, resource=resource, status=status)
    if status in (400, 409, 422):
        return ValidationRejected(message, resource=resource, status=status)
    return ClusterTransportError(message, resource=resource, status=status or None)


class ClusterApiClient:
    """Expose the handful of cluster calls the reconciler needs.

    Reads and deletes return a ClusterResult; creates and patches return the
    cluster's document and raise a ServingError when rejected.
    """

    def __init__(
        self,
        custom_api: client.CustomObjectsApi,
        core_api: client.CoreV1Api,
        api_client: Optional[client.ApiClient] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.custom_api = custom_api
        self.core_api = core_api
        self.api_client = api_client or client.ApiClient()
        self.logger = logger or logging.getLogger(__name__)

    def get_custom_resource(self, group: str, version: str, namespace: str, plural: str, name: str) -> ClusterResult:
        resource = f"{plural}/{namespace}/{name}"
        self.logger.debug("GET %s/%s %s", group, version, resource)
        return self._lookup(
            lambda: self.custom_api.get_namespaced_custom_object(group, version, namespace, plural, name),
            resource,
        )

    def list_custom_resources(self, group: str, version: str, namespace: str, plural: str) -> ClusterResult:
        resource = f"{plural}/{namespace}"
        self.logger.debug("LIST %s/%s %s", group, version, resource)
        return self._lookup(
            lambda: self.custom_api.list_namespaced_custom_object(group, version, namespace, plural),
            resource,
        )

    def create_custom_resource(
        self, group: str, version: str, namespace: str, plural: str, document: Dict[str, Any]
    ) -> Dict[str, Any]:
        name = document.get("metadata", {}).get("name")
        resource = f"{plural}/{namespace}/{name}"
        self.logger.debug("CREATE %s/%s %s", group, version, resource)
        # Not retried here: a replayed create after an unseen success fails with AlreadyExists.
        return self._write(
            lambda: self.custom_api.create_namespaced_custom_object(group, version, namespace, plural, document),
            resource,
        )

    def patch_custom_resource(
        self, group: str, version: str, namespace: str, plural: str, name: str, document: Dict[str, Any]
    ) -> Dict[str, Any]:
        resource = f"{plural}/{namespace}/{name}"
        self.logger.debug("PATCH %s/%s %s", group, version, resource)
        return self._write(
            lambda: self.custom_api.patch_namespaced_custom_object(
                group,
                version,
                namespace,
                plural,
                name,
                document,
                _content_type=MERGE_PATCH_CONTENT_TYPE,
            ),
            resource,
        )

    def delete_custom_resource(self, group: str, version: str, namespace: str, plural: str, name: str) -> ClusterResult:
        resource = f"{plural}/{namespace}/{name}"
        self.logger.debug("DELETE %s/%s %s", group, version, resource)
        return self._lookup(
            lambda: self.custom_api.delete_namespaced_custom_object(group, version, namespace, plural, name),
            resource,
        )

    def get_core_service(self, namespace: str, name: str) -> ClusterResult:
        resource = f"services/{namespace}/{name}"
        self.logger.debug("GET v1 %s", resource)
        return self._lookup(
            lambda: self.api_client.sanitize_for_serialization(self.core_api.read_namespaced_service(name, namespace)),
            resource,
        )

    def _lookup(self, call: Callable[[], Any], resource: str) -> ClusterResult:
        try:
            return ClusterResult.found(call())
        except ApiException as exc:
            error = classify_api_exception(exc, resource)
            if isinstance(error, ResourceNotFound):
                return ClusterResult.not_found(error)
            return ClusterResult.failed(error)
        except HTTPError as exc:
            return ClusterResult.failed(ClusterTransportError(f"cluster unreachable: {exc}", resource=resource))

    def _write(self, call: Callable[[], Any], resource: str) -> Dict[str, Any]:
        try:
            return call() or {}
        except ApiException as exc:
            raise classify_api_exception(exc, resource) from exc
        except HTTPError as exc:
            raise ClusterTransportError(f"cluster unreachable: {exc}", resource=resource) from exc


def create_cluster_client(config: "DeployerConfig", logger: Optional[logging.Logger] = None) -> ClusterApiClient:
    """
    Build a ClusterApiClient from either token credentials or a kubeconfig file.

    Args:
        config: Deployer settings; endpoint and token take precedence over kubeconfig

    Returns:
        ClusterApiClient: Client bound to the configured cluster
    """
    log = logger or logging.getLogger(__name__)
    if config.uses_token_auth():
        configuration = client.Configuration()
        configuration.host = config.get_server_url()
        configuration.verify_ssl = not config.skip_tls_verify
        configuration.api_key = {"authorization": config.token}
        configuration.api_key_prefix = {"authorization": "Bearer"}
        log.info("Using service account token for %s", configuration.host)
        api_client = client.ApiClient(configuration)
    else:
        log.info("Loading kubeconfig from %s", config.kubeconfig_path or "default location")
        api_client = kube_config.new_client_from_config(config_file=config.kubeconfig_path, context=config.context)

    return ClusterApiClient(
        client.CustomObjectsApi(api_client),
        client.CoreV1Api(api_client),
        api_client=api_client,
        logger=log,
    )
