"""
API key authentication and role-based authorization.

Callers authenticate with the X-API-Key header; each configured key maps to
a staff principal (user id, display name, role). Which roles may run which
operation is a single policy table consulted by require().

Usage:
    @router.get("/applications")
    def list_applications(principal: Principal = Depends(require(Operation.LIST_APPLICATIONS))):
        ...
"""

import logging
import secrets
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Optional

from fastapi import Request, Security
from fastapi.security import APIKeyHeader

from database.models import UserRole
from errors import AuthenticationError, AuthorizationError

logger = logging.getLogger(__name__)

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


class Operation(str, Enum):
    LIST_APPLICATIONS = "list_applications"
    VIEW_APPLICATION = "view_application"
    VIEW_STATS = "view_stats"
    UPDATE_STATUS = "update_status"
    CANCEL_APPLICATION = "cancel_application"
    VIEW_CREDENTIALS = "view_credentials"
    SAVE_CREDENTIALS = "save_credentials"
    RESET_CREDENTIALS = "reset_credentials"
    TOGGLE_ACTIVATION = "toggle_activation"
    FIND_BY_APPLICATION = "find_by_application"
    LIST_CATEGORIES = "list_categories"
    CREATE_CATEGORY = "create_category"
    VIEW_DISTRIBUTOR_PRODUCTS = "view_distributor_products"


STAFF = frozenset({UserRole.ADMIN, UserRole.SALES_MANAGER, UserRole.SALES_REPRESENTATIVE})
MANAGERS = frozenset({UserRole.ADMIN, UserRole.SALES_MANAGER})

POLICY: Dict[Operation, FrozenSet[UserRole]] = {
    Operation.LIST_APPLICATIONS: STAFF,
    Operation.VIEW_APPLICATION: STAFF,
    Operation.VIEW_STATS: MANAGERS,
    Operation.UPDATE_STATUS: STAFF,
    Operation.CANCEL_APPLICATION: MANAGERS,
    Operation.VIEW_CREDENTIALS: MANAGERS,
    Operation.SAVE_CREDENTIALS: MANAGERS,
    Operation.RESET_CREDENTIALS: MANAGERS,
    Operation.TOGGLE_ACTIVATION: MANAGERS,
    Operation.FIND_BY_APPLICATION: STAFF,
    Operation.LIST_CATEGORIES: frozenset(UserRole),
    Operation.CREATE_CATEGORY: MANAGERS,
    # distributors are further limited to their own id by the endpoint
    Operation.VIEW_DISTRIBUTOR_PRODUCTS: MANAGERS | {UserRole.DISTRIBUTOR},
}


@dataclass(frozen=True)
class Principal:
    """Authenticated caller."""
    user_id: str
    name: str
    role: UserRole

    @property
    def visibility_scope(self) -> Optional[str]:
        """User id that limits which applications are visible, or None for all."""
        if self.role == UserRole.SALES_REPRESENTATIVE:
            return self.user_id
        return None


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else ""


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "")


def authenticate(request: Request, api_key: Optional[str]) -> Principal:
    """
    Resolve the caller from the X-API-Key header.

    When no keys are configured, development mode authenticates every
    request as an ADMIN principal; any other environment refuses.

    Raises:
        AuthenticationError: Key missing or not recognized
    """
    config = request.app.state.config
    security = request.app.state.security
    entries = config.auth.api_keys

    if not entries:
        if config.app.is_development:
            return Principal(user_id="dev-admin", name=config.auth.dev_user_name, role=UserRole.ADMIN)
        security.log_auth_failure(
            "AUTHENTICATION_NOT_CONFIGURED", _client_ip(request), _request_id(request), request.url.path
        )
        raise AuthenticationError(
            "Authentication is not configured on this server",
            code="AUTHENTICATION_NOT_CONFIGURED"
        )

    if not api_key:
        security.log_auth_failure(
            "MISSING_API_KEY", _client_ip(request), _request_id(request), request.url.path
        )
        raise AuthenticationError("Missing API key. Provide X-API-Key header.")

    for entry in entries:
        if secrets.compare_digest(entry.key.encode(), api_key.encode()):
            return Principal(user_id=entry.user_id, name=entry.name, role=UserRole(entry.role))

    security.log_auth_failure(
        "INVALID_API_KEY", _client_ip(request), _request_id(request), request.url.path
    )
    raise AuthenticationError("Invalid API key", code="INVALID_API_KEY")


def require(operation: Operation):
    """Dependency factory: authenticate, then check the role against POLICY."""
    allowed = POLICY[operation]

    def dependency(
        request: Request,
        api_key: Optional[str] = Security(api_key_header)
    ) -> Principal:
        principal = authenticate(request, api_key)
        if principal.role not in allowed:
            request.app.state.security.log_access_denied(
                principal.user_id,
                principal.role.value,
                operation.value,
                _client_ip(request),
                _request_id(request),
            )
            raise AuthorizationError(
                "Insufficient permissions for this operation",
                code="INSUFFICIENT_PERMISSIONS"
            )
        return principal

    return dependency


def optional_principal(
    request: Request,
    api_key: Optional[str] = Security(api_key_header)
) -> Optional[Principal]:
    """Principal for public endpoints: None when no key was sent.

    A key that is sent but not recognized is still rejected.
    """
    if not api_key:
        return None
    return authenticate(request, api_key)
