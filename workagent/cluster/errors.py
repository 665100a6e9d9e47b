"""Cluster API errors, independent of the client library that raised them."""

from __future__ import annotations

import json


class ClusterAPIError(Exception):
    """A request to a cluster's API server failed.

    ``status`` is the HTTP status code (0 when the request never got a
    response) and ``reason`` the machine-readable Status reason, e.g.
    ``AlreadyExists`` or ``Forbidden``.
    """

    def __init__(self, status: int, reason: str = "", message: str = "") -> None:
        super().__init__(message or reason or f"cluster API error (status {status})")
        self.status = status
        self.reason = reason
        self.message = message

    @property
    def transient(self) -> bool:
        """True for failures a later retry may clear: conflicts, throttling, server and transport errors."""
        return self.status in (0, 409, 429) or self.status >= 500


class NotFoundError(ClusterAPIError):
    pass


class AlreadyExistsError(ClusterAPIError):
    pass


class ConflictError(ClusterAPIError):
    pass


class GoneError(ClusterAPIError):
    """The requested resourceVersion is too old; the watcher must relist."""


def from_status(status: int, body: str | bytes | None = None, default_reason: str = "") -> ClusterAPIError:
    """Build the matching ClusterAPIError for an HTTP status and a Status body."""
    reason = default_reason
    message = ""
    if body:
        try:
            payload = json.loads(body)
        except (TypeError, ValueError):
            message = str(body)[:500]
        else:
            if isinstance(payload, dict):
                reason = str(payload.get("reason") or reason)
                message = str(payload.get("message") or "")
    if status == 404:
        return NotFoundError(status, reason or "NotFound", message)
    if status == 409:
        if reason == "AlreadyExists":
            return AlreadyExistsError(status, reason, message)
        return ConflictError(status, reason or "Conflict", message)
    if status == 410:
        return GoneError(status, reason or "Expired", message)
    return ClusterAPIError(status, reason, message)
