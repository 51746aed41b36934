from dataclasses import dataclass
from typing import Optional


class DiagnexusError(Exception):
    """Base error; carries the HTTP status and the message shown to callers."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, details: dict = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)


class InvalidInput(DiagnexusError):
    status_code = 400
    default_message = "Invalid request"


class Unauthorized(DiagnexusError):
    status_code = 401
    default_message = "Unauthorized"


class InvalidCredentials(Unauthorized):
    default_message = "Invalid email or password"


class AccountInactive(Unauthorized):
    default_message = "Account is inactive"


class Forbidden(DiagnexusError):
    status_code = 403
    default_message = "Forbidden"


class NotFound(DiagnexusError):
    status_code = 404
    default_message = "Not found"


class Conflict(DiagnexusError):
    status_code = 409
    default_message = "Conflict"


class ServiceUnavailable(DiagnexusError):
    status_code = 503
    default_message = "Service temporarily unavailable"


class InternalError(DiagnexusError):
    status_code = 500


@dataclass
class SideEffect:
    """Outcome of a best-effort action (session logging, orphan cleanup)."""
    name: str
    ok: bool
    error: Optional[str] = None
