"""
Domain exception taxonomy for the Distributor Onboarding service.

Every error raised by the service layer carries an HTTP status code and a
stable machine-readable code. The API layer maps them onto the response
envelope in api/middleware.py; nothing below imports FastAPI.
"""

from typing import Dict, List, Optional


class AppError(Exception):
    """Base class for errors that map onto a client-facing response.

    Attributes:
        message: Human-readable message
        code: Error code for programmatic handling
        status_code: HTTP status code to answer with
        errors: Optional field -> list of messages map
    """
    status_code: int = 500
    default_code: str = "INTERNAL_SERVER_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        errors: Optional[Dict[str, List[str]]] = None,
    ):
        self.message = message
        self.code = code or self.default_code
        self.errors = errors or {}
        super().__init__(message)


class ValidationError(AppError):
    """Malformed or incomplete input."""
    status_code = 400
    default_code = "VALIDATION_ERROR"


class NotFoundError(AppError):
    """Referenced entity does not exist."""
    status_code = 404
    default_code = "NOT_FOUND"


class ConflictError(AppError):
    """A uniqueness constraint would be violated."""
    status_code = 409
    default_code = "DUPLICATE_ENTRY"


class InvalidStateError(AppError):
    """Operation not permitted in the entity's current state."""
    status_code = 400
    default_code = "INVALID_STATE"


class AuthenticationError(AppError):
    status_code = 401
    default_code = "AUTHENTICATION_REQUIRED"


class AuthorizationError(AppError):
    status_code = 403
    default_code = "INSUFFICIENT_PERMISSIONS"


class DependencyFailure(AppError):
    """An external collaborator (email provider) failed.

    Raised by notification senders and caught by the dispatcher; it is
    never propagated to an HTTP client.
    """
    status_code = 502
    default_code = "DEPENDENCY_FAILURE"
