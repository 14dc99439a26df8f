"""Tests for the create-or-patch, remove and info flows."""

from __future__ import annotations

import threading

import pytest

from knative_serving.common.models import NamespaceStatus, ServiceSpec, ServiceStatus
from knative_serving.runtime.cluster import ClusterResult
from knative_serving.runtime.errors import (
    AccessForbidden,
    ClusterTransportError,
    ConfigurationError,
    OperationCancelled,
    ResourceNotFound,
    StatusTimeout,
    ValidationRejected,
)
from knative_serving.runtime.manifest import build_manifest
from knative_serving.runtime.reconciler import Reconciler
from knative_serving.runtime.status import StatusPoller

GROUP = "serving.knative.dev"


def api_spec(**overrides) -> ServiceSpec:
    values = {"name": "api", "namespace": "default", "repository": "acme/api", "tag": "v2"}
    values.update(overrides)
    return ServiceSpec(**values)


def test_converge_creates_missing_service_and_waits_for_url(cluster, reconciler, sleeps) -> None:
    status = reconciler.converge(api_spec())

    creates = cluster.calls_named("create")
    assert len(creates) == 1
    group, version, namespace, plural, document = creates[0]
    assert (group, version, namespace, plural) == (GROUP, "v1", "default", "services")
    assert document["spec"]["template"]["spec"]["containers"][0]["image"] == "docker.io/acme/api:v2"
    assert cluster.calls_named("patch") == []

    assert status == ServiceStatus(service_url="https://api.default.example.com", istio_ingress_ip="203.0.113.10")
    assert sleeps == [2.0]


def test_converge_patches_existing_service_with_identical_body(cluster, reconciler) -> None:
    cluster.add_service("default", "api", url="https://api.default.example.com")

    status = reconciler.converge(api_spec())

    assert cluster.calls_named("create") == []
    patches = cluster.calls_named("patch")
    assert len(patches) == 1
    assert patches[0][4] == "api"
    assert patches[0][5] == build_manifest(api_spec()).document
    assert status.service_url == "https://api.default.example.com"


def test_converge_twice_creates_once_then_patches(cluster, reconciler) -> None:
    first = reconciler.converge(api_spec())
    state_after_first = dict(cluster.services[("default", "api")])
    second = reconciler.converge(api_spec())

    assert len(cluster.calls_named("create")) == 1
    patches = cluster.calls_named("patch")
    assert len(patches) == 1
    assert patches[0][5] == cluster.calls_named("create")[0][4]
    assert cluster.services[("default", "api")] == state_after_first
    assert first == second


def test_probe_error_is_fatal_and_nothing_is_written(cluster, reconciler) -> None:
    cluster.probe_error = AccessForbidden("services is forbidden", status=403)

    with pytest.raises(AccessForbidden) as excinfo:
        reconciler.converge(api_spec())

    assert excinfo.value.phase == "probing"
    assert excinfo.value.write_applied is False
    assert cluster.calls_named("create") == []
    assert cluster.calls_named("patch") == []


def test_transport_error_during_probe_propagates(cluster, reconciler) -> None:
    cluster.probe_error = ClusterTransportError("connection refused")

    with pytest.raises(ClusterTransportError):
        reconciler.converge(api_spec())
    assert cluster.calls_named("create") == []


def test_rejected_write_is_reported_before_polling(cluster, reconciler) -> None:
    cluster.write_error = ValidationRejected('admission webhook denied the request: invalid image "x"', status=400)

    with pytest.raises(ValidationRejected) as excinfo:
        reconciler.converge(api_spec())

    assert excinfo.value.phase == "writing"
    assert excinfo.value.write_applied is False
    assert "admission webhook denied the request" in str(excinfo.value)
    assert cluster.calls_named("get_core") == []


def test_polling_timeout_marks_write_as_applied(cluster, sleeps) -> None:
    cluster.never_assign_url = True
    reconciler = Reconciler(cluster, StatusPoller(cluster, interval=2.0, max_attempts=3, sleep=sleeps.append))

    with pytest.raises(StatusTimeout) as excinfo:
        reconciler.converge(api_spec())

    assert excinfo.value.write_applied is True
    assert excinfo.value.phase == "polling"
    assert len(cluster.calls_named("create")) == 1
    assert sleeps == [2.0, 2.0]


def test_cancelled_converge_keeps_the_write(cluster, reconciler) -> None:
    cluster.never_assign_url = True
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(OperationCancelled) as excinfo:
        reconciler.converge(api_spec(), cancel=cancel)

    assert excinfo.value.write_applied is True
    assert len(cluster.calls_named("create")) == 1


@pytest.mark.parametrize(
    "ingress",
    [
        ClusterResult.failed(AccessForbidden("services is forbidden", status=403)),
        ClusterResult.not_found(),
    ],
)
def test_converge_tolerates_missing_or_hidden_ingress_gateway(cluster, reconciler, ingress) -> None:
    cluster.ingress = ingress

    status = reconciler.converge(api_spec())

    assert status.istio_ingress_ip == ""
    assert status.service_url == "https://api.default.example.com"


def test_converge_fails_on_other_ingress_errors(cluster, reconciler) -> None:
    cluster.ingress = ClusterResult.failed(ClusterTransportError("internal error", status=500))

    with pytest.raises(ClusterTransportError) as excinfo:
        reconciler.converge(api_spec())

    assert excinfo.value.write_applied is True


def test_converge_requires_name_and_repository(cluster, reconciler) -> None:
    with pytest.raises(ConfigurationError, match="name, repository"):
        reconciler.converge(ServiceSpec(namespace="default"))
    assert cluster.calls == []


def test_remove_deletes_existing_service(cluster, reconciler) -> None:
    cluster.add_service("default", "api")

    reconciler.remove(api_spec())

    assert cluster.calls_named("delete") == [(GROUP, "v1", "default", "services", "api")]
    assert ("default", "api") not in cluster.services


def test_remove_missing_service_succeeds(cluster, reconciler) -> None:
    assert reconciler.remove(api_spec()) is None
    assert len(cluster.calls_named("delete")) == 1


def test_remove_propagates_other_errors(cluster, reconciler) -> None:
    cluster.delete_error = AccessForbidden("delete is forbidden", status=403)

    with pytest.raises(AccessForbidden) as excinfo:
        reconciler.remove(api_spec())

    assert excinfo.value.phase == "removing"


def test_info_single_service_does_not_write(cluster, reconciler) -> None:
    cluster.add_service("default", "api", url="https://api.default.example.com")

    status = reconciler.info(api_spec())

    assert isinstance(status, ServiceStatus)
    assert status.to_dict() == {"serviceUrl": "https://api.default.example.com", "istioIngressIp": "203.0.113.10"}
    assert cluster.calls_named("create") == []
    assert cluster.calls_named("patch") == []


def test_info_without_name_lists_namespace(cluster, reconciler) -> None:
    cluster.add_service("default", "api", url="https://api.default.example.com")
    cluster.add_service("default", "web", url="https://web.default.example.com")
    cluster.add_service("other", "worker", url="https://worker.other.example.com")

    status = reconciler.info(ServiceSpec(namespace="default"))

    assert isinstance(status, NamespaceStatus)
    assert status.service_urls == {
        "api": "https://api.default.example.com",
        "web": "https://web.default.example.com",
    }
    assert status.to_dict()["istioIngressIp"] == "203.0.113.10"


def test_info_of_missing_service_raises_not_found(cluster, reconciler) -> None:
    with pytest.raises(ResourceNotFound):
        reconciler.info(api_spec())


@pytest.mark.parametrize(
    "ingress",
    [
        ClusterResult.failed(AccessForbidden("services is forbidden", status=403)),
        ClusterResult.not_found(),
    ],
)
@pytest.mark.parametrize("spec", [api_spec(), ServiceSpec(namespace="default")], ids=["service", "namespace"])
def test_info_tolerates_missing_or_hidden_ingress_gateway(cluster, reconciler, ingress, spec) -> None:
    cluster.add_service("default", "api", url="https://api.default.example.com")
    cluster.ingress = ingress

    status = reconciler.info(spec)

    assert status.istio_ingress_ip == ""
    assert status.to_dict()["istioIngressIp"] == ""
    assert cluster.calls_named("create") == []
