"""
Steady Vitality - Security Dependencies

FastAPI dependencies for authentication and authorization.
Implements hybrid JWT + session validation with role gating.

Usage:
    @router.get("/protected")
    async def protected_route(auth: AuthContext = Depends(get_current_user)):
        ...

    @router.get("/admin-only")
    async def admin_route(auth: AuthContext = Depends(require_admin)):
        ...

Security:
- Every protected request validates both the JWT AND its server-side session
- A revoked session rejects tokens that are still cryptographically valid
- Failures are logged without token material
"""

from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from sqlmodel.ext.asyncio.session import AsyncSession

from steady_vitality.auth import sessions as session_service
from steady_vitality.auth import users as user_service
from steady_vitality.auth.database import get_db
from steady_vitality.auth.models import Role, Session, User
from steady_vitality.auth.sessions import InvalidSessionError
from steady_vitality.auth.tokens import (
    TokenError,
    TokenPayload,
    extract_bearer_token,
    verify_access_token,
)
from steady_vitality.gateway.rbac import role_allows
from steady_vitality.log import logger


@dataclass
class AuthContext:
    """
    The authenticated caller, attached to ``request.state.auth``.

    Available in route handlers via Depends(get_current_user).
    """
    user: User
    session: Session
    token: TokenPayload


def _unauthorized(code: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"code": code, "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


async def _authenticate(request: Request, db: AsyncSession) -> AuthContext:
    """
    Perform the full check chain:
    1. Extract the bearer token from the Authorization header
    2. Verify signature, expiry and claims
    3. Load the active user
    4. Load the active, unexpired session bound to that user
    5. Touch the session's last access
    """
    raw_token = extract_bearer_token(request.headers.get("Authorization"))
    if raw_token is None:
        raise _unauthorized("AUTH_REQUIRED", "Authentication required")

    try:
        payload = verify_access_token(raw_token)
        user_id = UUID(payload.user_id)
        session_id = UUID(payload.session_id)
    except TokenError as e:
        raise _unauthorized(e.code, e.message)
    except ValueError:
        raise _unauthorized("INVALID_TOKEN", "Invalid token payload structure")

    # One AsyncSession cannot run statements concurrently, so these are sequential
    user = await user_service.get_user_by_id(db, user_id)
    if user is None:
        raise _unauthorized("USER_NOT_FOUND", "User not found or inactive")

    try:
        session = await session_service.validate_session(db, session_id, user_id)
    except InvalidSessionError as e:
        logger.bind(
            event="auth.session.rejected",
            user_id=str(user_id),
            session_id=str(session_id),
        ).info("Rejected token for inactive session")
        raise _unauthorized(e.code, e.message)

    session_service.touch(session)
    db.add(session)
    await db.commit()

    context = AuthContext(user=user, session=session, token=payload)
    request.state.auth = context
    return context


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> AuthContext:
    """
    Validate request authentication and return the caller.

    Raises:
        HTTPException 401: AUTH_REQUIRED, a token error code,
            USER_NOT_FOUND or INVALID_SESSION
    """
    return await _authenticate(request, db)


async def get_optional_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> Optional[AuthContext]:
    """Like get_current_user, but None instead of 401."""
    if extract_bearer_token(request.headers.get("Authorization")) is None:
        return None
    try:
        return await _authenticate(request, db)
    except HTTPException:
        return None


def require_roles(*roles: Role):
    """
    Dependency factory requiring one of ``roles``. Admin always passes.

    Usage:
        @router.get("/coach-area")
        async def coach_area(auth: AuthContext = Depends(require_roles(Role.COACH))):
            ...
    """
    allowed = tuple(roles)
    names = ", ".join(role.value for role in allowed)

    async def dependency(auth: AuthContext = Depends(get_current_user)) -> AuthContext:
        if not role_allows(auth.user.role, allowed):
            logger.bind(
                event="auth.role.denied",
                user_id=str(auth.user.id),
                role=auth.user.role.value,
            ).info("Role requirement not met: {}", names)
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "code": "INSUFFICIENT_PERMISSIONS",
                    "message": f"Access denied. Required roles: {names}",
                },
            )
        return auth

    return dependency


require_admin = require_roles(Role.ADMIN)
require_coach = require_roles(Role.COACH)


async def require_email_verified(
    auth: AuthContext = Depends(get_current_user),
) -> AuthContext:
    if not auth.user.is_email_verified:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "code": "EMAIL_NOT_VERIFIED",
                "message": "Please verify your email address to access this resource",
            },
        )
    return auth
