"""Shared fixtures: an in-memory cluster standing in for the Kubernetes API."""

from __future__ import annotations

import copy
from typing import Any, Dict, List, Optional, Tuple

import pytest

from knative_serving.runtime.cluster import ClusterResult
from knative_serving.runtime.errors import ResourceNotFound, ServingError
from knative_serving.runtime.reconciler import Reconciler
from knative_serving.runtime.status import StatusPoller


class FakeCluster:
    """Keeps Knative services in a dict and assigns URLs after a few reads."""

    def __init__(self, url_template: str = "https://{name}.{namespace}.example.com", url_after: int = 1) -> None:
        self.url_template = url_template
        self.url_after = url_after
        self.services: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self.calls: List[Tuple[str, Any]] = []
        self.reads: Dict[Tuple[str, str], int] = {}
        self.probe_error: Optional[ServingError] = None
        self.write_error: Optional[ServingError] = None
        self.delete_error: Optional[ServingError] = None
        self.ingress: ClusterResult = ClusterResult.found(
            {"status": {"loadBalancer": {"ingress": [{"ip": "203.0.113.10"}]}}}
        )
        self.never_assign_url = False

    def add_service(self, namespace: str, name: str, url: Optional[str] = None) -> None:
        document: Dict[str, Any] = {"metadata": {"name": name, "namespace": namespace}}
        if url:
            document["status"] = {"url": url}
        self.services[(namespace, name)] = document

    def calls_named(self, method: str) -> List[Any]:
        return [args for name, args in self.calls if name == method]

    def _status_for(self, namespace: str, name: str) -> Dict[str, Any]:
        key = (namespace, name)
        self.reads[key] = self.reads.get(key, 0) + 1
        document = copy.deepcopy(self.services[key])
        if not self.never_assign_url and self.reads[key] > self.url_after and "status" not in document:
            self.services[key]["status"] = {"url": self.url_template.format(name=name, namespace=namespace)}
            document["status"] = dict(self.services[key]["status"])
        return document

    def get_custom_resource(self, group, version, namespace, plural, name) -> ClusterResult:
        self.calls.append(("get", (group, version, namespace, plural, name)))
        if self.probe_error is not None:
            return ClusterResult.failed(self.probe_error)
        if (namespace, name) not in self.services:
            return ClusterResult.not_found(ResourceNotFound("not found", status=404))
        return ClusterResult.found(self._status_for(namespace, name))

    def list_custom_resources(self, group, version, namespace, plural) -> ClusterResult:
        self.calls.append(("list", (group, version, namespace, plural)))
        items = [self._status_for(ns, name) for (ns, name) in sorted(self.services) if ns == namespace]
        return ClusterResult.found({"items": items})

    def create_custom_resource(self, group, version, namespace, plural, document) -> Dict[str, Any]:
        self.calls.append(("create", (group, version, namespace, plural, copy.deepcopy(document))))
        if self.write_error is not None:
            raise self.write_error
        name = document["metadata"]["name"]
        self.services[(namespace, name)] = copy.deepcopy(document)
        self.reads[(namespace, name)] = 0
        return document

    def patch_custom_resource(self, group, version, namespace, plural, name, document) -> Dict[str, Any]:
        self.calls.append(("patch", (group, version, namespace, plural, name, copy.deepcopy(document))))
        if self.write_error is not None:
            raise self.write_error
        existing = self.services[(namespace, name)]
        existing.update({key: copy.deepcopy(value) for key, value in document.items() if key != "status"})
        return existing

    def delete_custom_resource(self, group, version, namespace, plural, name) -> ClusterResult:
        self.calls.append(("delete", (group, version, namespace, plural, name)))
        if self.delete_error is not None:
            return ClusterResult.failed(self.delete_error)
        if self.services.pop((namespace, name), None) is None:
            return ClusterResult.not_found(ResourceNotFound("not found", status=404))
        return ClusterResult.found({"status": "Success"})

    def get_core_service(self, namespace, name) -> ClusterResult:
        self.calls.append(("get_core", (namespace, name)))
        return self.ingress


@pytest.fixture
def cluster() -> FakeCluster:
    return FakeCluster()


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest.fixture
def poller(cluster: FakeCluster, sleeps: List[float]) -> StatusPoller:
    return StatusPoller(cluster, interval=2.0, max_attempts=5, sleep=sleeps.append)


@pytest.fixture
def reconciler(cluster: FakeCluster, poller: StatusPoller) -> Reconciler:
    return Reconciler(cluster, poller)
