"""
Error types for List Sync.

Errors are distinguished by type rather than by inspecting their shape:
- ConfigurationError: fatal, raised before any cycle starts
- TransportError: a remote call failed; the cycle is abandoned and retried
- SnapshotCorruptError: persisted state unreadable; recovered locally
"""

from __future__ import annotations

import json
from typing import Any, Mapping

import httpx


class SyncError(Exception):
    """Base exception for all List Sync errors."""


class ConfigurationError(SyncError):
    """Raised when required settings are missing or invalid."""

    def __init__(self, problems: list[str]) -> None:
        super().__init__("Invalid configuration: " + "; ".join(problems))
        self.problems = problems


class TransportError(SyncError):
    """
    A network call to the list source, token endpoint or mirror failed.

    Carries whatever response detail was available so failures can be
    reported with status, headers and a body preview.
    """

    def __init__(
        self,
        message: str,
        operation: str = "",
        status: int | None = None,
        reason: str = "",
        headers: Mapping[str, str] | None = None,
        body: Any = None,
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.status = status
        self.reason = reason
        self.headers = dict(headers or {})
        self.body = body

    @property
    def has_response(self) -> bool:
        """True when the remote side answered (as opposed to a connection failure)."""
        return self.status is not None

    def body_preview(self, limit: int = 2000) -> str:
        """Render the response body as text, truncated to ``limit`` characters."""
        if self.body is None:
            return ""
        if isinstance(self.body, (bytes, bytearray)):
            text = bytes(self.body).decode("utf-8", errors="replace")
        elif isinstance(self.body, str):
            text = self.body
        else:
            try:
                text = json.dumps(self.body, indent=2, default=str)
            except (TypeError, ValueError):
                text = str(self.body)

        if len(text) > limit:
            return text[:limit] + f"... [{len(text) - limit} more characters]"
        return text

    @classmethod
    def from_response(
        cls,
        response: httpx.Response,
        operation: str,
    ) -> "TransportError":
        """Build an error from a non-success httpx response."""
        return cls(
            f"{operation} failed with HTTP {response.status_code}",
            operation=operation,
            status=response.status_code,
            reason=response.reason_phrase,
            headers=response.headers,
            body=response.content,
        )


class AuthenticationError(TransportError):
    """Raised when an access token could not be acquired."""


class ObjectNotFoundError(SyncError):
    """Raised when a mirror object does not exist."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Object not found: {key}")
        self.key = key


class SnapshotCorruptError(SyncError):
    """Raised when a persisted snapshot cannot be decoded."""
