"""Authentication dependencies for FastAPI routes.

This module verifies the identity provider's HS256 bearer tokens with
PyJWT and turns them into the ``CurrentUser`` session value that every
claim operation receives explicitly.
"""

from typing import Optional

import jwt
from fastapi import Depends, HTTPException, Query, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from cospec_claims.core.config import AuthSettings, settings
from cospec_claims.core.exceptions import PermissionDeniedError
from cospec_claims.schemas.auth import CurrentUser, JWTClaims
from cospec_claims.utils.logging import get_logger

LOGGER = get_logger(__name__)

# HTTP Bearer token scheme
security = HTTPBearer(auto_error=False)


class JWTVerifier:
    """Decodes and validates identity provider tokens."""

    def __init__(self, config: Optional[AuthSettings] = None):
        self.config = config or settings.auth

    def verify_token(self, token: str) -> JWTClaims:
        """Verify the token signature and expiry.

        Raises:
            jwt.InvalidTokenError: If the token is malformed, expired or
                signed with another secret
        """
        if not self.config.jwt_secret:
            raise jwt.InvalidTokenError("AUTH_JWT_SECRET is not configured")

        options = {"require": ["sub"]}
        kwargs = {}
        if self.config.jwt_audience:
            kwargs["audience"] = self.config.jwt_audience
        else:
            options["verify_aud"] = False

        payload = jwt.decode(
            token,
            self.config.jwt_secret,
            algorithms=[self.config.jwt_algorithm],
            options=options,
            **kwargs,
        )
        return JWTClaims.model_validate(payload)


jwt_verifier = JWTVerifier()


def _user_from_token(token: str) -> CurrentUser:
    try:
        claims = jwt_verifier.verify_token(token)
    except jwt.InvalidTokenError as e:
        LOGGER.warning(f"Invalid token: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e

    user = CurrentUser(
        id=claims.sub,
        email=claims.email,
        role=claims.role,
        approved=claims.approved,
        full_name=claims.name,
    )
    LOGGER.debug(f"Authenticated user: {user.id} ({user.email})")
    return user


def _require_approval(user: CurrentUser) -> CurrentUser:
    # Admins are approved by definition
    if user.role != "admin" and not user.approved:
        LOGGER.warning(f"Access denied for user {user.id}: account pending approval")
        raise PermissionDeniedError("Account pending administrator approval")
    return user


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> CurrentUser:
    """Get the current authenticated, approved user from the bearer token.

    Raises:
        HTTPException: If the token is missing or invalid
        PermissionDeniedError: If the account has not been approved yet
    """
    if not credentials:
        LOGGER.warning("No authorization credentials provided")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header missing",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return _require_approval(_user_from_token(credentials.credentials))


async def get_current_user_from_query(
    token: Optional[str] = Query(None, description="Access token for EventSource clients"),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> CurrentUser:
    """Like ``get_current_user`` but also accepts ``?token=``.

    Browsers cannot set headers on an EventSource, so the SSE endpoint
    takes the token from the query string.
    """
    if credentials:
        token = credentials.credentials
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return _require_approval(_user_from_token(token))


def require_role(required_role: str):
    """Create a dependency that requires a specific user role.

    Example:
        admin_only = require_role("admin")

        @router.post("/claims")
        async def create(user: CurrentUser = Depends(admin_only)):
            ...
    """
    async def role_checker(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if user.role != required_role:
            LOGGER.warning(f"Access denied for user {user.id}: insufficient role '{user.role}', required '{required_role}'")
            raise PermissionDeniedError(f"Insufficient permissions. Required role: {required_role}")
        return user

    return role_checker


def require_any_role(*required_roles: str):
    """Create a dependency that requires any of the specified roles."""
    async def role_checker(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if user.role not in required_roles:
            LOGGER.warning(f"Access denied for user {user.id}: role '{user.role}' not in allowed roles {required_roles}")
            raise PermissionDeniedError(f"Insufficient permissions. Required roles: {', '.join(required_roles)}")
        return user

    return role_checker


require_admin = require_role("admin")
require_staff = require_any_role("technician", "admin")
