"""Admin principal checks on API Gateway authorizer context."""

from typing import Any

from core.models.errors import AuthenticationError
from core.utils.constants import ADMIN_ROLE

_TRUE_STRINGS = {"true", "1", "yes"}


def get_principal(event: dict[str, Any]) -> dict[str, Any] | None:
    """Return the authorizer context attached by API Gateway, if any."""
    request_context = event.get("requestContext") or {}
    authorizer = request_context.get("authorizer")

    if not isinstance(authorizer, dict) or not authorizer:
        return None

    # JWT authorizers on HTTP APIs nest the claims
    jwt = authorizer.get("jwt")
    if isinstance(jwt, dict) and isinstance(jwt.get("claims"), dict):
        return jwt["claims"]

    return authorizer


def is_admin(principal: dict[str, Any]) -> bool:
    if str(principal.get("role", "")).lower() == ADMIN_ROLE:
        return True

    # Lambda authorizer context values arrive as strings
    flag = principal.get("isAdmin")
    if isinstance(flag, bool):
        return flag
    return str(flag).lower() in _TRUE_STRINGS


def require_admin(event: dict[str, Any]) -> dict[str, Any]:
    """Return the admin principal or raise.

    Raises:
        AuthenticationError: If the request carries no principal
        PermissionError: If the principal is not an administrator
    """
    principal = get_principal(event)

    if principal is None:
        raise AuthenticationError(message="Authentication required")

    if not is_admin(principal):
        raise PermissionError("Administrator access required")

    return principal
