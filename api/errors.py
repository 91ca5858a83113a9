"""Typed errors raised by the photo API transport."""

from __future__ import annotations


class ApiError(Exception):
    """A request to the photo backend failed.

    ``status_code`` is the HTTP status for non-2xx responses and ``None``
    when no response was received at all.
    """

    def __init__(self, message: str, status_code: int | None = None, endpoint: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.endpoint = endpoint

    def __str__(self) -> str:
        if self.status_code is None:
            return self.message
        return f"HTTP {self.status_code}: {self.message}"


class NotFoundError(ApiError):
    """The backend answered 404 (deleted photo, face merged away, ...)."""


class TransportError(ApiError):
    """Network-level failure: connection refused, timeout, broken stream."""


def error_for_status(status_code: int, message: str, endpoint: str = "") -> ApiError:
    """Pick the ApiError subclass matching an HTTP status."""
    if status_code == 404:
        return NotFoundError(message, status_code, endpoint)
    return ApiError(message, status_code, endpoint)
