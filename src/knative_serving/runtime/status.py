"""Resolve status the control plane assigns asynchronously: service URLs and the ingress IP."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional

from .cluster import ClusterApiClient
from .errors import AccessForbidden, OperationCancelled, StatusTimeout
from .manifest import SERVICE_PLURAL

DEFAULT_POLL_INTERVAL = 2.0
DEFAULT_POLL_ATTEMPTS = 150
DEFAULT_INGRESS_SERVICE = "istio-ingressgateway"
DEFAULT_INGRESS_NAMESPACE = "istio-system"


def _status_url(document: Optional[Dict[str, Any]]) -> Optional[str]:
    status = (document or {}).get("status") or {}
    return status.get("url") or None


class StatusPoller:
    """Wait, within a bound, for Knative to publish a service's URL."""

    def __init__(
        self,
        cluster: ClusterApiClient,
        *,
        interval: float = DEFAULT_POLL_INTERVAL,
        max_attempts: int = DEFAULT_POLL_ATTEMPTS,
        ingress_service: str = DEFAULT_INGRESS_SERVICE,
        ingress_namespace: str = DEFAULT_INGRESS_NAMESPACE,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.cluster = cluster
        self.interval = interval
        self.max_attempts = max_attempts
        self.ingress_service = ingress_service
        self.ingress_namespace = ingress_namespace
        self.sleep = sleep
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)

    def resolve_url(
        self,
        group: str,
        version: str,
        namespace: str,
        name: str,
        *,
        deadline: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> str:
        """
        Fetch the service until ``status.url`` is set.

        Args:
            group: Custom resource API group
            version: Custom resource API version
            namespace: Service namespace
            name: Service name
            deadline: Absolute ``time.monotonic()`` value after which to give up
            cancel: Event that aborts the wait when set

        Returns:
            str: The URL assigned by the control plane

        Raises:
            StatusTimeout: When the attempt bound or the deadline is exhausted
            OperationCancelled: When ``cancel`` is set while waiting
        """
        resource = f"{namespace}/{name}"

        def fetch() -> Optional[str]:
            document = self.cluster.get_custom_resource(group, version, namespace, SERVICE_PLURAL, name).unwrap()
            return _status_url(document)

        url = self._poll(fetch, resource, deadline, cancel)
        self.logger.info("Service %s is reachable at %s", resource, url)
        return url

    def resolve_urls(
        self,
        group: str,
        version: str,
        namespace: str,
        *,
        deadline: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> Dict[str, str]:
        """List the namespace until every service reports a URL; return name -> URL."""
        resource = f"{namespace}/*"

        def fetch() -> Optional[Dict[str, str]]:
            listing = self.cluster.list_custom_resources(group, version, namespace, SERVICE_PLURAL).unwrap()
            items: List[Dict[str, Any]] = listing.get("items") or []
            urls: Dict[str, str] = {}
            pending: List[str] = []
            for item in items:
                item_name = (item.get("metadata") or {}).get("name")
                if not item_name:
                    continue
                url = _status_url(item)
                if url:
                    urls[item_name] = url
                else:
                    pending.append(item_name)
            if pending:
                self.logger.debug("Waiting for URLs of %s in %s", ", ".join(sorted(pending)), namespace)
                return None
            return urls

        return self._poll(fetch, resource, deadline, cancel)

    def resolve_ingress_ip(self) -> str:
        """
        Return the ingress gateway's load balancer address, or "" when unavailable.

        Forbidden (403) and NotFound are expected on restricted or non-Istio clusters
        and yield "". Every other failure propagates, including 401.
        """
        result = self.cluster.get_core_service(self.ingress_namespace, self.ingress_service)
        if result.is_not_found:
            self.logger.warning(
                "Ingress gateway %s/%s not found, skipping ingress IP", self.ingress_namespace, self.ingress_service
            )
            return ""
        if not result.is_found and isinstance(result.error, AccessForbidden) and result.error.status == 403:
            self.logger.warning(
                "Not allowed to read ingress gateway %s/%s, skipping ingress IP",
                self.ingress_namespace,
                self.ingress_service,
            )
            return ""

        document = result.unwrap()
        ingress = ((document.get("status") or {}).get("loadBalancer") or {}).get("ingress") or []
        if not ingress:
            self.logger.info("Ingress gateway has no load balancer address yet")
            return ""
        first = ingress[0] or {}
        return first.get("ip") or first.get("hostname") or ""

    def _poll(self, fetch, resource: str, deadline: Optional[float], cancel: Optional[threading.Event]):
        for attempt in range(1, self.max_attempts + 1):
            if cancel is not None and cancel.is_set():
                raise OperationCancelled("cancelled while waiting for service URL", resource=resource, phase="polling")

            value = fetch()
            if value is not None:
                return value

            if attempt == self.max_attempts:
                break
            if deadline is not None and self.clock() + self.interval > deadline:
                raise StatusTimeout(
                    f"deadline reached after {attempt} attempts waiting for service URL",
                    resource=resource,
                    phase="polling",
                )

            self.logger.debug("No URL for %s yet (attempt %d/%d)", resource, attempt, self.max_attempts)
            self._wait(cancel, resource)

        raise StatusTimeout(
            f"no service URL after {self.max_attempts} attempts",
            resource=resource,
            phase="polling",
        )

    def _wait(self, cancel: Optional[threading.Event], resource: str) -> None:
        if cancel is None:
            self.sleep(self.interval)
            return
        if cancel.wait(self.interval):
            raise OperationCancelled("cancelled while waiting for service URL", resource=resource, phase="polling")
