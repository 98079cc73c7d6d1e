"""
Error taxonomy for the hackbox portal.

Services raise these; the web layer maps them to ``{"error": message}``
responses with the carried HTTP status.
"""

from typing import Optional


class HackboxError(Exception):
    """Base class for expected business errors."""

    status: int = 400
    default_message: str = "Request failed"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message if message is not None else self.default_message
        super().__init__(self.message)


class ValidationError(HackboxError):
    status = 400
    default_message = "Invalid request"


class AuthenticationError(HackboxError):
    status = 401
    default_message = "Authentication required"


class AuthorizationError(HackboxError):
    status = 403
    default_message = "Forbidden"


class NotFoundError(HackboxError):
    status = 404
    default_message = "Not found"


class ConflictError(HackboxError):
    status = 409
    default_message = "Conflict"


class ConfigurationError(Exception):
    """Raised at startup for unusable configuration or seed data."""
