"""
Steady Vitality - Authentication Routes

API endpoints for authentication:
- POST   /auth/register        - Create client account and session
- POST   /auth/login           - Authenticate and create session
- POST   /auth/logout          - Revoke current session
- POST   /auth/logout-all      - Revoke every session
- POST   /auth/refresh         - Exchange refresh token for a new pair
- GET    /auth/me              - Current user profile
- GET    /auth/sessions        - List active sessions
- DELETE /auth/sessions/{id}   - Revoke a specific session
- POST   /auth/change-password - Change password (other sessions revoked)
- POST   /auth/forgot-password - Request a reset token
- POST   /auth/reset-password  - Redeem a reset token
- POST   /auth/verify-email    - Redeem a verification token
- GET    /auth/status          - Authentication status (optional auth)

Flow logic lives in auth.service; handlers translate AuthResult into
HTTP status codes.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from sqlmodel.ext.asyncio.session import AsyncSession

from steady_vitality.auth import service as auth_service
from steady_vitality.auth import sessions as session_service
from steady_vitality.auth.database import get_db
from steady_vitality.auth.dependencies import (
    AuthContext,
    get_current_user,
    get_optional_user,
)
from steady_vitality.auth.models import Role
from steady_vitality.auth.schemas import (
    ActiveSessionsResponse,
    AuthResult,
    AuthStatusResponse,
    ChangePasswordRequest,
    FailureKind,
    ForgotPasswordRequest,
    LoginRequest,
    MeResponse,
    MessageResponse,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
    SessionInfo,
    UserResponse,
    VerifyEmailRequest,
)
from steady_vitality.log import logger


router = APIRouter(prefix="/auth", tags=["authentication"])


FAILURE_STATUS = {
    FailureKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    FailureKind.CONFLICT: status.HTTP_400_BAD_REQUEST,
    FailureKind.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    FailureKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    FailureKind.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def get_client_ip(request: Request) -> Optional[str]:
    """Extract client IP from request."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def get_user_agent(request: Request) -> Optional[str]:
    """Extract user agent from request."""
    user_agent = request.headers.get("User-Agent")
    return user_agent[:512] if user_agent else None


def _respond(result: AuthResult, success_status: int = status.HTTP_200_OK) -> JSONResponse:
    """Serialize an AuthResult with the status its outcome maps to."""
    status_code = (
        success_status
        if result.success
        else FAILURE_STATUS.get(result.failure, status.HTTP_400_BAD_REQUEST)
    )
    return JSONResponse(
        status_code=status_code,
        content=result.model_dump(mode="json", by_alias=True, exclude_none=True),
    )


def _log_auth_event(
    request: Request,
    event_type: str,
    user_id: Optional[UUID] = None,
    **details,
) -> None:
    """Structured auth event; never carries passwords or tokens."""
    logger.bind(
        event=event_type,
        user_id=str(user_id) if user_id else "anonymous",
        request_id=getattr(request.state, "request_id", None),
        ip=get_client_ip(request),
        **details,
    ).info(event_type)


@router.post(
    "/register",
    response_model=AuthResult,
    status_code=status.HTTP_201_CREATED,
    summary="Create a client account",
)
async def register(
    request: Request,
    body: RegisterRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Register a new account.

    The account starts unverified with role client and is logged in
    immediately.
    """
    result = await auth_service.register(
        db,
        email=body.email,
        username=body.username,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
    )
    return _respond(result, status.HTTP_201_CREATED)


@router.post(
    "/login",
    response_model=AuthResult,
    summary="Authenticate user and create session",
)
async def login(
    request: Request,
    body: LoginRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Authenticate user with email and password.

    On success a server-side session is created and a token pair bound
    to it is returned. ``rememberMe`` extends the session lifetime.
    """
    result = await auth_service.login(
        db,
        email=body.email,
        password=body.password,
        remember_me=body.remember_me,
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
    )
    return _respond(result)


@router.post("/logout", response_model=MessageResponse, summary="Revoke current session")
async def logout(
    request: Request,
    auth: AuthContext = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await auth_service.logout(db, auth.session.id)
    _log_auth_event(request, "auth.logout", auth.user.id, session_id=str(auth.session.id))
    return _respond(result)


@router.post("/logout-all", response_model=MessageResponse, summary="Revoke every session")
async def logout_all(
    request: Request,
    auth: AuthContext = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await auth_service.logout_all(db, auth.user.id)
    _log_auth_event(request, "auth.logout.all", auth.user.id)
    return _respond(result)


@router.post("/refresh", response_model=AuthResult, summary="Refresh access token")
async def refresh(
    body: RefreshRequest,
    db: AsyncSession = Depends(get_db),
):
    result = await auth_service.refresh(db, body.refresh_token)
    return _respond(result)


@router.get("/me", response_model=MeResponse, summary="Get current user information")
async def get_me(
    auth: AuthContext = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    user = await auth_service.get_current_user(db, auth.user.id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": "USER_NOT_FOUND", "message": "User not found"},
        )
    return MeResponse(user=UserResponse.from_user(user))


@router.get(
    "/sessions",
    response_model=ActiveSessionsResponse,
    summary="List active sessions",
)
async def list_sessions(
    auth: AuthContext = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    List all active sessions for the current user.

    Returns device metadata only; raw session tokens are never exposed.
    """
    active = await auth_service.get_user_sessions(db, auth.user.id)
    infos = [SessionInfo.from_session(s, auth.session.id) for s in active]
    return ActiveSessionsResponse(sessions=infos, total=len(infos))


@router.delete(
    "/sessions/{target_session_id}",
    response_model=MessageResponse,
    summary="Revoke a specific session",
)
async def revoke_session(
    request: Request,
    target_session_id: UUID,
    auth: AuthContext = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Revoke a specific session.

    Users can only revoke their own sessions.
    Admins can revoke any session.
    """
    session = await session_service.get_session(db, target_session_id)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": "SESSION_NOT_FOUND", "message": "Session not found"},
        )

    if session.user_id != auth.user.id and auth.user.role != Role.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "code": "INSUFFICIENT_PERMISSIONS",
                "message": "Cannot revoke another user's session",
            },
        )

    revoked_by = "user" if session.user_id == auth.user.id else "admin"
    await session_service.invalidate_session(
        db, target_session_id, reason="Session revoked by request", revoked_by=revoked_by
    )

    _log_auth_event(
        request,
        "auth.session.revoked",
        auth.user.id,
        target_session_id=str(target_session_id),
        target_user_id=str(session.user_id),
    )
    return MessageResponse(message="Session revoked")


@router.post(
    "/change-password",
    response_model=MessageResponse,
    summary="Change password",
)
async def change_password(
    request: Request,
    body: ChangePasswordRequest,
    auth: AuthContext = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Change the caller's password.

    Every other session is revoked; the session used for this request
    stays signed in.
    """
    result = await auth_service.change_password(
        db,
        auth.user.id,
        current_password=body.current_password,
        new_password=body.new_password,
        current_session_id=auth.session.id,
    )
    if result.success:
        _log_auth_event(request, "auth.password.changed", auth.user.id)
    return _respond(result)


@router.post(
    "/forgot-password",
    response_model=MessageResponse,
    summary="Request a password reset",
)
async def forgot_password(
    body: ForgotPasswordRequest,
    db: AsyncSession = Depends(get_db),
):
    """Always answers the same way so account existence is not revealed."""
    result = await auth_service.forgot_password(db, body.email)
    return _respond(result)


@router.post(
    "/reset-password",
    response_model=MessageResponse,
    summary="Reset password with a token",
)
async def reset_password(
    body: ResetPasswordRequest,
    db: AsyncSession = Depends(get_db),
):
    result = await auth_service.reset_password(db, body.token, body.new_password)
    return _respond(result)


@router.post(
    "/verify-email",
    response_model=MessageResponse,
    summary="Verify email address",
)
async def verify_email(
    body: VerifyEmailRequest,
    db: AsyncSession = Depends(get_db),
):
    result = await auth_service.verify_email(db, body.token)
    return _respond(result)


@router.get(
    "/status",
    response_model=AuthStatusResponse,
    summary="Authentication status",
)
async def auth_status(auth: Optional[AuthContext] = Depends(get_optional_user)):
    if auth is None:
        return AuthStatusResponse(is_authenticated=False)
    return AuthStatusResponse(is_authenticated=True, user=UserResponse.from_user(auth.user))
