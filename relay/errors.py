"""Relay error taxonomy.

Every failure that reaches a client is one of these. The HTTP layer maps
them to a status code and the ``{"error": message}`` envelope via a single
exception handler registered in ``relay.main``.
"""

from __future__ import annotations

from typing import Any


class RelayError(Exception):
    """Base class for all errors surfaced to API clients."""

    code: str = "internal_error"
    status_code: int = 500

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Render the client-facing error envelope."""
        return {"error": self.message}


class InvalidRequestError(RelayError):
    """Malformed request or missing required fields."""

    code = "invalid_request"
    status_code = 400


class UnauthorizedError(RelayError):
    """Missing or invalid bearer key and no valid capability token."""

    code = "unauthorized"
    status_code = 401

    def __init__(self, message: str = "Unauthorized", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class ForbiddenError(RelayError):
    """Authenticated, but the resource belongs to another scope."""

    code = "forbidden"
    status_code = 403

    def __init__(self, message: str = "Forbidden", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class NotFoundError(RelayError):
    """No matching resource in the caller's scope."""

    code = "not_found"
    status_code = 404


class GoneError(RelayError):
    """Resource existed but can no longer be used (pairing code used/expired)."""

    code = "gone"
    status_code = 410


class InternalError(RelayError):
    """Unexpected store failure. The message is free-text diagnostics only."""

    code = "internal_error"
    status_code = 500
