"""Typed failures raised by the reconciliation runtime."""
from __future__ import annotations

from typing import Literal, Optional

Phase = Literal["probing", "writing", "polling", "removing", "reading"]


class ServingError(RuntimeError):
    """Base class for every failure surfaced to callers.

    ``write_applied`` tells callers whether the cluster already accepted a
    create or patch before the failure, so a polling timeout is not mistaken
    for a failed deployment.
    """

    def __init__(
        self,
        message: str,
        *,
        resource: Optional[str] = None,
        phase: Optional[Phase] = None,
        status: Optional[int] = None,
        write_applied: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.resource = resource
        self.phase = phase
        self.status = status
        self.write_applied = write_applied

    def with_context(
        self,
        *,
        resource: Optional[str] = None,
        phase: Optional[Phase] = None,
        write_applied: Optional[bool] = None,
    ) -> "ServingError":
        """Fill in resource and phase without replacing what is already known."""
        if self.resource is None:
            self.resource = resource
        if self.phase is None:
            self.phase = phase
        if write_applied is not None:
            self.write_applied = write_applied
        return self

    def __str__(self) -> str:
        prefix = []
        if self.phase:
            prefix.append(self.phase)
        if self.resource:
            prefix.append(self.resource)
        if not prefix:
            return self.message
        return f"[{' '.join(prefix)}] {self.message}"


class ConfigurationError(ServingError):
    """Service inputs are incomplete or inconsistent."""


class ResourceNotFound(ServingError):
    """The requested resource does not exist."""


class AccessForbidden(ServingError):
    """The cluster denied the request."""


class ValidationRejected(ServingError):
    """Admission refused the manifest; the message is the cluster's."""


class ClusterTransportError(ServingError):
    """Connectivity, serialization or server-side failure."""


class StatusTimeout(ServingError):
    """The control plane did not report the expected status in time."""


class OperationCancelled(ServingError):
    """The caller cancelled the operation while it was waiting."""
