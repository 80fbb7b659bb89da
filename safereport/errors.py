"""Error taxonomy shared by the services, the HTTP API and the WebSocket gateway.

Each error carries the HTTP status and the machine-readable code used in the
``{"error": ..., "message": ...}`` envelope.
"""
from __future__ import annotations


class SafeReportError(Exception):
    status_code = 500
    code = "internal_error"
    default_message = "Something went wrong. Please try again."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(SafeReportError):
    """Malformed input the caller can fix."""
    status_code = 400
    code = "validation_error"
    default_message = "Invalid request data"


class Unauthenticated(SafeReportError):
    status_code = 401
    code = "unauthenticated"
    default_message = "Authentication required"


class AccessDenied(SafeReportError):
    status_code = 403
    code = "access_denied"
    default_message = "Access denied"


class NotFound(SafeReportError):
    status_code = 404
    code = "not_found"
    default_message = "Resource not found"


class Conflict(SafeReportError):
    """Business-rule violation the caller can act on."""
    status_code = 409
    code = "conflict"
    default_message = "Request conflicts with the current state"


class AlreadyAssigned(Conflict):
    code = "already_assigned"
    default_message = "Report is already assigned"


class ChatClosed(Conflict):
    code = "chat_closed"
    default_message = "Chat is closed for this report."


class Unavailable(SafeReportError):
    """Durable backend unreachable. The next request re-probes; never retried in-flight."""
    status_code = 503
    code = "unavailable"
    default_message = "Storage backend unavailable"


class Unexpected(SafeReportError):
    status_code = 500
    code = "internal_error"
