"""Desired and observed state shared by the runtime, facade and CLI."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

AutoscalerValue = Union[str, int, float, bool, None]


class ServiceSpec(BaseModel):
    """Desired configuration of one Knative service (or a namespace, for listing)."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    name: Optional[str] = Field(default=None, min_length=1, description="Service name; unset means every service in the namespace")
    namespace: str = Field(default="default", min_length=1)
    registry_address: str = Field(default="docker.io", alias="registryAddress")
    repository: Optional[str] = Field(default=None, description="Image repository, e.g. 'acme/api'")
    tag: Optional[str] = Field(default=None)
    digest: Optional[str] = Field(default=None, description="Content digest; takes precedence over tag")
    pull_policy: Optional[str] = Field(default=None, alias="pullPolicy")
    autoscaler: Dict[str, AutoscalerValue] = Field(default_factory=dict)
    knative_group: str = Field(default="serving.knative.dev", alias="knativeGroup")
    knative_version: str = Field(default="v1", alias="knativeVersion")

    @property
    def api_version(self) -> str:
        return f"{self.knative_group}/{self.knative_version}"

    @property
    def identity(self) -> str:
        """Human readable ``namespace/name`` used in logs and errors."""
        return f"{self.namespace}/{self.name or '*'}"

    def to_inputs(self) -> Dict[str, Any]:
        """Return the spec with its caller-facing (camelCase) keys."""
        return self.model_dump(by_alias=True, exclude_none=True)


@dataclass(slots=True)
class ServiceStatus:
    """Observed status of a single converged service."""

    service_url: Optional[str] = None
    istio_ingress_ip: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"serviceUrl": self.service_url, "istioIngressIp": self.istio_ingress_ip}


@dataclass(slots=True)
class NamespaceStatus:
    """Observed URLs of every service in a namespace."""

    service_urls: Dict[str, str] = field(default_factory=dict)
    istio_ingress_ip: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"serviceUrls": dict(self.service_urls), "istioIngressIp": self.istio_ingress_ip}


ObservedStatus = Union[ServiceStatus, NamespaceStatus]
