"""Create-or-update, delete and describe a Knative service."""

from __future__ import annotations

import logging
import threading
from typing import Optional

from ..common.models import NamespaceStatus, ObservedStatus, ServiceSpec, ServiceStatus
from .cluster import ClusterApiClient
from .errors import ConfigurationError, ServingError
from .manifest import SERVICE_PLURAL, ServiceManifest, build_manifest
from .status import StatusPoller


class Reconciler:
    """Drive a Knative service toward its ServiceSpec.

    One converge moves through Probing -> Writing -> Polling -> Done. Any error
    raised on the way carries the phase it happened in, and ``write_applied``
    is set once the cluster has accepted the create or patch.
    """

    def __init__(
        self,
        cluster: ClusterApiClient,
        poller: StatusPoller,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.cluster = cluster
        self.poller = poller
        self.logger = logger or logging.getLogger(__name__)

    def converge(
        self,
        spec: ServiceSpec,
        *,
        deadline: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> ServiceStatus:
        """
        Create the service if it is missing, otherwise merge-patch it, then wait for its URL.

        Args:
            spec: Desired service configuration
            deadline: Absolute ``time.monotonic()`` value bounding the status wait
            cancel: Event that aborts the status wait when set

        Returns:
            ServiceStatus: URL and ingress IP observed after the write

        Raises:
            ServingError: On a failed probe, a rejected write, or a polling failure
        """
        self._require(spec, "name", "repository")
        identity = spec.identity

        self.logger.info("Probing %s", identity)
        probe = self.cluster.get_custom_resource(
            spec.knative_group, spec.knative_version, spec.namespace, SERVICE_PLURAL, spec.name
        )
        if probe.is_found:
            exists = True
        elif probe.is_not_found:
            exists = False
        else:
            raise self._contextualize(probe.error, identity, "probing")

        manifest = build_manifest(spec)

        try:
            if exists:
                self.logger.info("Service %s exists, patching", identity)
                self._patch(manifest)
            else:
                self.logger.info("Service %s not found, creating", identity)
                self._create(manifest)
        except ServingError as exc:
            raise exc.with_context(resource=identity, phase="writing", write_applied=False)

        try:
            service_url = self.poller.resolve_url(
                manifest.group,
                manifest.version,
                manifest.namespace,
                manifest.name,
                deadline=deadline,
                cancel=cancel,
            )
            ingress_ip = self.poller.resolve_ingress_ip()
        except ServingError as exc:
            raise exc.with_context(resource=identity, phase="polling", write_applied=True)

        return ServiceStatus(service_url=service_url, istio_ingress_ip=ingress_ip)

    def remove(self, spec: ServiceSpec) -> None:
        """Delete the service; a service that is already gone counts as removed."""
        self._require(spec, "name")
        manifest = build_manifest(spec)

        self.logger.info("Removing %s", spec.identity)
        result = self.cluster.delete_custom_resource(
            manifest.group, manifest.version, manifest.namespace, manifest.plural, manifest.name
        )
        if result.is_not_found:
            self.logger.info("Service %s already absent", spec.identity)
            return
        if not result.is_found:
            raise self._contextualize(result.error, spec.identity, "removing")
        self.logger.info("Removed %s", spec.identity)

    def info(
        self,
        spec: ServiceSpec,
        *,
        deadline: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> ObservedStatus:
        """Describe one service, or every service in the namespace when ``spec.name`` is unset."""
        if spec.name:
            return self.describe_service(spec, deadline=deadline, cancel=cancel)
        return self.describe_namespace(spec, deadline=deadline, cancel=cancel)

    def describe_service(
        self,
        spec: ServiceSpec,
        *,
        deadline: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> ServiceStatus:
        if not spec.name:
            raise ConfigurationError("a service name is required", resource=spec.identity, phase="reading")
        try:
            service_url = self.poller.resolve_url(
                spec.knative_group,
                spec.knative_version,
                spec.namespace,
                spec.name,
                deadline=deadline,
                cancel=cancel,
            )
            ingress_ip = self.poller.resolve_ingress_ip()
        except ServingError as exc:
            raise exc.with_context(resource=spec.identity, phase="reading")
        return ServiceStatus(service_url=service_url, istio_ingress_ip=ingress_ip)

    def describe_namespace(
        self,
        spec: ServiceSpec,
        *,
        deadline: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> NamespaceStatus:
        try:
            service_urls = self.poller.resolve_urls(
                spec.knative_group,
                spec.knative_version,
                spec.namespace,
                deadline=deadline,
                cancel=cancel,
            )
            ingress_ip = self.poller.resolve_ingress_ip()
        except ServingError as exc:
            raise exc.with_context(resource=spec.identity, phase="reading")
        return NamespaceStatus(service_urls=service_urls, istio_ingress_ip=ingress_ip)

    def _create(self, manifest: ServiceManifest) -> None:
        self.cluster.create_custom_resource(
            manifest.group, manifest.version, manifest.namespace, manifest.plural, manifest.document
        )

    def _patch(self, manifest: ServiceManifest) -> None:
        self.cluster.patch_custom_resource(
            manifest.group, manifest.version, manifest.namespace, manifest.plural, manifest.name, manifest.document
        )

    @staticmethod
    def _require(spec: ServiceSpec, *fields: str) -> None:
        missing = [field for field in fields if not getattr(spec, field)]
        if missing:
            raise ConfigurationError(f"missing required input(s): {', '.join(missing)}", resource=spec.identity)

    @staticmethod
    def _contextualize(error: Optional[ServingError], identity: str, phase) -> ServingError:
        if error is None:
            error = ServingError("unexpected empty cluster result")
        return error.with_context(resource=identity, phase=phase, write_applied=False)
