"""
Steady Vitality - Admin API Routes

Admin-only endpoints for account and session management:
- User listing, activation and role changes
- Session listing and revocation

All routes require ADMIN role.
"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request, status
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from steady_vitality.auth import sessions as session_service
from steady_vitality.auth.database import get_db
from steady_vitality.auth.dependencies import AuthContext, require_admin
from steady_vitality.auth.models import Role, Session, User, utcnow
from steady_vitality.auth.schemas import CamelModel, MessageResponse, UserResponse
from steady_vitality.auth.users import get_user_by_id
from steady_vitality.log import logger


router = APIRouter(prefix="/admin", tags=["admin"])


# =============================================================================
# Request/Response Models
# =============================================================================

class AdminUserItem(UserResponse):
    is_active: bool


class UserListResponse(CamelModel):
    success: bool = True
    users: List[AdminUserItem]
    total: int


class UserUpdateRequest(CamelModel):
    """Request to update user."""
    is_active: Optional[bool] = None
    role: Optional[Role] = None


class AdminSessionItem(CamelModel):
    id: UUID
    user_id: UUID
    user_email: str
    created_at: str
    expires_at: str
    last_accessed_at: Optional[str] = None
    ip_address: Optional[str] = None
    device_type: Optional[str] = None
    browser: Optional[str] = None


class SessionListResponse(CamelModel):
    success: bool = True
    sessions: List[AdminSessionItem]
    total: int


class RevokedResponse(MessageResponse):
    revoked: int


def _admin_item(user: User) -> AdminUserItem:
    return AdminUserItem(
        **UserResponse.from_user(user).model_dump(),
        is_active=user.is_active,
    )


# =============================================================================
# User Management Endpoints
# =============================================================================

@router.get("/users", response_model=UserListResponse, summary="List All Users")
async def list_users(
    role: Optional[Role] = Query(None, description="Filter by role"),
    include_inactive: bool = Query(True),
    admin: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    statement = select(User).order_by(User.created_at.desc())
    if role is not None:
        statement = statement.where(User.role == role)
    if not include_inactive:
        statement = statement.where(User.is_active == True)  # noqa: E712

    users = (await db.exec(statement)).all()
    items = [_admin_item(u) for u in users]
    return UserListResponse(users=items, total=len(items))


@router.put("/users/{target_user_id}", response_model=AdminUserItem, summary="Update User")
async def update_user(
    request: Request,
    update: UserUpdateRequest,
    target_user_id: UUID = Path(..., description="User ID to update"),
    admin: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """
    Update user status or role.

    Deactivating a user revokes every active session they hold.
    """
    user = await get_user_by_id(db, target_user_id, active_only=False)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": "USER_NOT_FOUND", "message": "User not found"},
        )

    if target_user_id == admin.user.id and update.is_active is False:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "SELF_DEACTIVATION", "message": "Cannot deactivate your own account"},
        )

    revoked = 0
    if update.is_active is not None:
        user.is_active = update.is_active
        if not update.is_active:
            revoked = await session_service.invalidate_all_user_sessions(
                db, user.id, reason="Account deactivated", revoked_by="admin", commit=False
            )
    if update.role is not None:
        user.role = update.role

    user.updated_at = utcnow()
    db.add(user)
    await db.commit()

    logger.bind(
        event="admin.user.updated",
        user_id=str(admin.user.id),
        target_user_id=str(user.id),
        request_id=getattr(request.state, "request_id", None),
    ).info("User updated, {} session(s) revoked", revoked)
    return _admin_item(user)


@router.post(
    "/users/{target_user_id}/revoke-sessions",
    response_model=RevokedResponse,
    summary="Revoke User Sessions",
)
async def revoke_user_sessions(
    target_user_id: UUID = Path(..., description="User ID to revoke sessions for"),
    admin: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Revoke all active sessions for a user. Forces re-login."""
    count = await session_service.invalidate_all_user_sessions(
        db, target_user_id, reason="Revoked by administrator", revoked_by="admin"
    )
    return RevokedResponse(message=f"Revoked {count} sessions", revoked=count)


# =============================================================================
# Session Management Endpoints
# =============================================================================

@router.get("/sessions", response_model=SessionListResponse, summary="List Active Sessions")
async def list_active_sessions(
    limit: int = Query(100, ge=1, le=500),
    admin: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Active, unexpired sessions across all users, most recent first."""
    statement = (
        select(Session, User)
        .join(User, Session.user_id == User.id)
        .where(Session.is_active == True)  # noqa: E712
        .where(Session.expires_at > utcnow())
        .order_by(Session.last_accessed_at.desc())
        .limit(limit)
    )
    rows = (await db.exec(statement)).all()

    items = [
        AdminSessionItem(
            id=sess.id,
            user_id=user.id,
            user_email=user.email,
            created_at=sess.created_at.isoformat(),
            expires_at=sess.expires_at.isoformat(),
            last_accessed_at=sess.last_accessed_at.isoformat() if sess.last_accessed_at else None,
            ip_address=sess.ip_address,
            device_type=sess.device_type,
            browser=sess.browser,
        )
        for sess, user in rows
    ]
    return SessionListResponse(sessions=items, total=len(items))


@router.delete(
    "/sessions/{target_session_id}",
    response_model=MessageResponse,
    summary="Revoke Single Session",
)
async def revoke_session(
    target_session_id: UUID = Path(..., description="Session ID to revoke"),
    admin: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    found = await session_service.invalidate_session(
        db, target_session_id, reason="Revoked by administrator", revoked_by="admin"
    )
    if not found:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": "SESSION_NOT_FOUND", "message": "Session not found"},
        )
    return MessageResponse(message="Session revoked")
