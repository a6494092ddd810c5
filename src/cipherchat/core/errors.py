"""Error taxonomy shared by the relay core and the API layer.

Every relay operation reports failures by raising one of these. The live
connection layer turns them into ``error`` events for the originating
connection only; the request/response layer maps them onto HTTP status codes.
"""

from __future__ import annotations

from typing import Any


class RelayError(RuntimeError):
    """Base exception for relay failures.

    Attributes:
        code: Short machine-readable error code sent to clients.
    """

    code = "relay_error"
    default_message = "Relay failure"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    def to_payload(self) -> dict[str, Any]:
        """Return the body of the ``error`` event describing this failure."""
        return {"message": self.message, "code": self.code}


class AuthenticationError(RelayError):
    """Raised when a bearer token is missing, malformed, or expired."""

    code = "authentication"
    default_message = "Authentication error"


class AuthorizationError(RelayError):
    """Raised when the caller is not allowed to act on a room or message."""

    code = "authorization"
    default_message = "Access denied"


class ValidationError(RelayError):
    """Raised for malformed or unknown inbound events."""

    code = "validation"
    default_message = "Invalid request"


class TargetOfflineError(RelayError):
    """Raised when a call signal targets a user with no live connection."""

    code = "target_offline"
    default_message = "User is offline"


class PersistenceError(RelayError):
    """Raised when the durable store fails; the operation is aborted."""

    code = "persistence"
    default_message = "Storage operation failed"


class NotFoundError(RelayError):
    """Raised when a referenced room, message, or user does not exist."""

    code = "not_found"
    default_message = "Not found"
