"""
Authentication and Authorization Module

FastAPI dependencies that turn the bearer token on a request into a
``CurrentUser`` ({userId, role}) and enforce role-based access per route.

SECURITY NOTE:
- Development test tokens are ONLY accepted when PYTHON_ENV=development
- Production environments MUST set PYTHON_ENV=production
"""

import enum
import logging
import os
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from uuid import UUID, uuid5

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ta_portal.core.config import settings
from ta_portal.core.security import decode_token

logger = logging.getLogger(__name__)

security = HTTPBearer(
    auto_error=True,
    description="JWT Bearer token for authentication",
)


class UserRole(str, enum.Enum):
    """Roles issued by the portal's auth service."""

    ADMIN = "admin"
    LECTURER = "lecturer"
    UNDERGRADUATE = "undergraduate"
    POSTGRADUATE = "postgraduate"
    CSE_OFFICE = "cse-office"


APPLICANT_ROLES = (UserRole.UNDERGRADUATE, UserRole.POSTGRADUATE)
STAFF_ROLES = (UserRole.ADMIN, UserRole.CSE_OFFICE)


@dataclass
class CurrentUser:
    """
    The authenticated caller, populated from JWT claims.

    Attributes:
        id: User's unique identifier
        email: User's email address
        role: User's portal role
        name: Display name (optional)
    """

    id: UUID
    email: str
    role: UserRole
    name: str | None = None

    def __str__(self) -> str:
        return f"CurrentUser(id={self.id}, role={self.role.value})"


def _is_dev_mode_safe() -> bool:
    """Development tokens require PYTHON_ENV=development and nothing claiming production."""
    env_var = os.getenv("PYTHON_ENV", "").lower()

    is_safe = (
        settings.is_development
        and not settings.is_production
        and env_var not in ("production", "staging")
    )

    if is_safe:
        logger.warning(
            "SECURITY: Development auth mode is ENABLED. This MUST NOT be used in production!"
        )

    return is_safe


_DEVELOPMENT_MODE = _is_dev_mode_safe()

# Stable namespace so "dev-lecturer" always maps to the same user id
_DEV_NAMESPACE = UUID("6f1c7d52-3c0e-4a53-9a7c-1c2f4b1d9e00")


def _dev_user_from_token(token: str) -> CurrentUser | None:
    """
    Accept ``dev-<role>`` or ``dev-<role>:<uuid>`` tokens in development.

    Returns None when the token is not a development token.
    """
    if not token.startswith("dev-"):
        return None

    role_part, _, id_part = token[len("dev-") :].partition(":")
    try:
        role = UserRole(role_part)
    except ValueError:
        return None

    try:
        user_id = UUID(id_part) if id_part else uuid5(_DEV_NAMESPACE, role.value)
    except ValueError:
        return None

    return CurrentUser(
        id=user_id,
        email=f"{role.value}-{str(user_id)[:8]}@ta-portal.dev",
        role=role,
        name=f"Development {role.value}",
    )


def _unauthorized(error: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": error, "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


async def _validate_jwt_token(token: str) -> CurrentUser:
    """
    Validate a JWT and extract the caller.

    Raises:
        HTTPException 401: If the token is invalid, expired or has bad claims
    """
    if _DEVELOPMENT_MODE:
        dev_user = _dev_user_from_token(token)
        if dev_user is not None:
            logger.debug(f"Development mode: using test token for {dev_user.role.value}")
            return dev_user

    payload = decode_token(token)

    if payload is None:
        logger.warning("Invalid or expired JWT token")
        raise _unauthorized("INVALID_TOKEN", "Invalid or expired authentication token.")

    if payload.get("type", "access") != "access":
        logger.warning(f"Invalid token type: {payload.get('type')}")
        raise _unauthorized("INVALID_TOKEN_TYPE", "This endpoint requires an access token.")

    try:
        user_id_str = payload.get("sub")
        if not user_id_str:
            raise ValueError("Missing 'sub' claim in token")

        return CurrentUser(
            id=UUID(user_id_str),
            email=payload.get("email", ""),
            role=UserRole(payload.get("role", "")),
            name=payload.get("name"),
        )
    except (ValueError, KeyError) as e:
        logger.warning(f"Invalid token claims: {e}")
        raise _unauthorized(
            "INVALID_TOKEN_CLAIMS", "Token contains invalid or missing claims."
        ) from e


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> CurrentUser:
    """
    Validate the bearer token and return the caller.

    The user id is also stored on ``request.state`` so rate limit keys can
    be derived from it.
    """
    user = await _validate_jwt_token(credentials.credentials)
    request.state.user_id = user.id
    return user


def require_roles(*roles: UserRole) -> Callable[..., Awaitable[CurrentUser]]:
    """
    Build a dependency that only admits callers holding one of ``roles``.

    Usage:
        @router.get("/lecturer/modules")
        async def my_modules(user: CurrentUser = Depends(require_roles(UserRole.LECTURER))):
            ...

    Raises:
        HTTPException 403: If the caller's role is not allowed
    """
    allowed = frozenset(roles)

    async def dependency(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if user.role not in allowed:
            logger.warning(
                f"Access denied: user {user.id} has role '{user.role.value}', "
                f"required one of {sorted(r.value for r in allowed)}"
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "error": "ROLE_NOT_ALLOWED",
                    "message": "Your role does not have access to this endpoint.",
                },
            )
        return user

    return dependency


require_applicant = require_roles(*APPLICANT_ROLES)
require_lecturer = require_roles(UserRole.LECTURER)
require_admin = require_roles(UserRole.ADMIN)
require_staff = require_roles(*STAFF_ROLES)


__all__ = [
    "APPLICANT_ROLES",
    "CurrentUser",
    "UserRole",
    "get_current_user",
    "require_admin",
    "require_applicant",
    "require_lecturer",
    "require_roles",
    "require_staff",
]
