"""Caller-facing deploy, remove and info operations."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Dict, Mapping, Optional

from pydantic import ValidationError

from .common.config import DeployerConfig, resolve_config
from .common.models import ServiceSpec
from .runtime.cluster import ClusterApiClient, create_cluster_client
from .runtime.errors import ConfigurationError
from .runtime.reconciler import Reconciler
from .runtime.status import StatusPoller


class KnativeServing:
    """Deploy a container image as a Knative service and report where it is served."""

    def __init__(
        self,
        config: Optional[DeployerConfig] = None,
        cluster: Optional[ClusterApiClient] = None,
        *,
        poller: Optional[StatusPoller] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.config = config or DeployerConfig()
        self.logger = logger or logging.getLogger(__name__)
        self._cluster = cluster
        self._poller = poller

    @property
    def cluster(self) -> ClusterApiClient:
        if self._cluster is None:
            self._cluster = create_cluster_client(self.config)
        return self._cluster

    @property
    def reconciler(self) -> Reconciler:
        poller = self._poller or StatusPoller(
            self.cluster,
            interval=self.config.poll_interval,
            max_attempts=self.config.poll_attempts,
            ingress_service=self.config.ingress_service_name,
            ingress_namespace=self.config.ingress_namespace,
        )
        return Reconciler(self.cluster, poller)

    def resolve(self, inputs: Optional[Mapping[str, Any]] = None) -> ServiceSpec:
        """Merge configured defaults with caller inputs."""
        try:
            return resolve_config(self.config.defaults, inputs)
        except ValidationError as exc:
            raise ConfigurationError(f"invalid service inputs: {exc}") from exc

    def deploy(
        self,
        inputs: Optional[Mapping[str, Any]] = None,
        *,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> Dict[str, Any]:
        """
        Create or update the service and wait for its URL.

        Args:
            inputs: Service inputs (camelCase or snake_case keys)
            timeout: Seconds to wait for the URL; the wait also stops at the poll attempt bound, whichever comes first
            cancel: Event that aborts the wait when set

        Returns:
            Dict[str, Any]: Resolved inputs plus ``serviceUrl`` and ``istioIngressIp``
        """
        spec = self.resolve(inputs)
        self.logger.info("Deploying %s from %s", spec.identity, spec.repository)
        status = self.reconciler.converge(spec, deadline=_deadline(timeout), cancel=cancel)
        return {**spec.to_inputs(), **status.to_dict()}

    def remove(self, inputs: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        spec = self.resolve(inputs)
        self.reconciler.remove(spec)
        return {}

    def info(
        self,
        inputs: Optional[Mapping[str, Any]] = None,
        *,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> Dict[str, Any]:
        """Report the URL of one service, or of every service in the namespace when no name is given."""
        spec = self.resolve(inputs)
        status = self.reconciler.info(spec, deadline=_deadline(timeout), cancel=cancel)
        return {**spec.to_inputs(), **status.to_dict()}


def _deadline(timeout: Optional[float]) -> Optional[float]:
    if timeout is None:
        return None
    return time.monotonic() + timeout
