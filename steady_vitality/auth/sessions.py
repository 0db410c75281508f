"""
Steady Vitality - Session Management

Server-side sessions make stateless tokens revocable.

The first half of this module is plain rules over a Session record
(validity, refresh eligibility, revocation, extension, user-agent
classification). The second half persists sessions through an
AsyncSession.

Security:
- Sessions are stored server-side (not in JWT only)
- Logout, password change and password reset revoke sessions immediately
- Activity tracking for audit and anomaly detection
"""

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional
from uuid import UUID

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from steady_vitality.auth.models import Session, utcnow
from steady_vitality.config import settings
from steady_vitality.log import logger


DEFAULT_REVOKE_REASON = "Session revoked"
DEFAULT_REVOKED_BY = "system"


class InvalidSessionError(Exception):
    """No active, unexpired session matches the token's session id."""
    code = "INVALID_SESSION"

    def __init__(self, message: str = "Session has expired or been revoked"):
        self.message = message
        super().__init__(message)


@dataclass(frozen=True)
class DeviceInfo:
    device_type: str
    browser: str
    os: str


def generate_session_token() -> str:
    """Opaque 256-bit random token, hex encoded."""
    return secrets.token_hex(32)


# =============================================================================
# Record rules
# =============================================================================

def is_expired(session: Session, now: Optional[datetime] = None) -> bool:
    return (now or utcnow()) >= session.expires_at


def is_refresh_expired(session: Session, now: Optional[datetime] = None) -> bool:
    if session.refresh_token_expires_at is None:
        return True
    return (now or utcnow()) >= session.refresh_token_expires_at


def is_valid(session: Session, now: Optional[datetime] = None) -> bool:
    """Active, not expired and never revoked."""
    return session.is_active and not is_expired(session, now) and session.revoked_at is None


def can_refresh(session: Session, now: Optional[datetime] = None) -> bool:
    """Active, inside the refresh window and never revoked."""
    return (
        session.is_active
        and not is_refresh_expired(session, now)
        and session.revoked_at is None
    )


def touch(session: Session) -> None:
    """Stamp last access; the caller persists."""
    session.last_accessed_at = utcnow()


def revoke(
    session: Session,
    reason: Optional[str] = None,
    revoked_by: Optional[str] = None,
) -> None:
    """Deactivate a session. Repeated calls overwrite reason and actor."""
    session.is_active = False
    session.revoked_at = utcnow()
    session.revoked_by = revoked_by or DEFAULT_REVOKED_BY
    session.revoked_reason = reason or DEFAULT_REVOKE_REASON


def extend(session: Session, hours: int = 24) -> None:
    """Push expiry to now + hours. No-op unless the session is still valid."""
    if is_valid(session):
        session.expires_at = utcnow() + timedelta(hours=hours)


def parse_user_agent(user_agent: Optional[str]) -> DeviceInfo:
    """
    Best-effort device/browser/OS classification by substring.

    Not security relevant; a wrong label is cosmetic.
    """
    ua = user_agent or ""

    if "Mobile" in ua:
        device_type = "mobile"
    elif "Tablet" in ua:
        device_type = "tablet"
    else:
        device_type = "desktop"

    # Edge and Chrome user agents also mention Safari; order matters
    if "Edg" in ua:
        browser = "Edge"
    elif "Chrome" in ua:
        browser = "Chrome"
    elif "Firefox" in ua:
        browser = "Firefox"
    elif "Safari" in ua:
        browser = "Safari"
    else:
        browser = "Other"

    if "Windows" in ua:
        os_name = "Windows"
    elif "Android" in ua:
        os_name = "Android"
    elif "iPhone" in ua or "iPad" in ua or "iOS" in ua:
        os_name = "iOS"
    elif "Mac" in ua:
        os_name = "macOS"
    elif "Linux" in ua:
        os_name = "Linux"
    else:
        os_name = "Other"

    return DeviceInfo(device_type=device_type, browser=browser, os=os_name)


# =============================================================================
# Persistence
# =============================================================================

async def create_session(
    db: AsyncSession,
    user_id: UUID,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    lifetime_hours: Optional[int] = None,
    token: Optional[str] = None,
    refresh_token: Optional[str] = None,
    commit: bool = True,
) -> Session:
    """
    Create a new server-side session.

    Args:
        db: Database session
        user_id: Owning user
        ip_address: Client IP for audit
        user_agent: Client user-agent, classified into device/browser/OS
        lifetime_hours: Session lifetime (settings.SESSION_EXPIRE_HOURS)
        token / refresh_token: Supplied opaque values, generated if omitted
        commit: Commit immediately; pass False to join a larger write

    Returns:
        Created Session object
    """
    now = utcnow()
    hours = lifetime_hours or settings.SESSION_EXPIRE_HOURS

    session = Session(
        user_id=user_id,
        token=token or generate_session_token(),
        refresh_token=refresh_token or generate_session_token(),
        expires_at=now + timedelta(hours=hours),
        refresh_token_expires_at=now + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
        is_active=True,
        last_accessed_at=now,
        ip_address=ip_address,
        created_at=now,
    )

    if user_agent:
        device = parse_user_agent(user_agent)
        session.user_agent = user_agent[:512]
        session.device_type = device.device_type
        session.browser = device.browser
        session.os = device.os

    db.add(session)
    if commit:
        await db.commit()

    return session


async def get_session(db: AsyncSession, session_id: UUID) -> Optional[Session]:
    """Load a session by id regardless of state."""
    return await db.get(Session, session_id)


async def validate_session(db: AsyncSession, session_id: UUID, user_id: UUID) -> Session:
    """
    Load the active session for this user and check it is still valid.

    Raises:
        InvalidSessionError: Missing, belongs to someone else, revoked or expired
    """
    statement = select(Session).where(
        Session.id == session_id,
        Session.user_id == user_id,
        Session.is_active == True,  # noqa: E712
    )
    session = (await db.exec(statement)).first()

    if session is None or not is_valid(session):
        raise InvalidSessionError()

    return session


async def invalidate_session(
    db: AsyncSession,
    session_id: UUID,
    reason: Optional[str] = None,
    revoked_by: Optional[str] = None,
) -> bool:
    """
    Revoke one session (logout).

    Returns:
        True if session was found and revoked, False if not found
    """
    session = await db.get(Session, session_id)
    if session is None:
        return False

    revoke(session, reason, revoked_by)
    db.add(session)
    await db.commit()
    return True


async def invalidate_all_user_sessions(
    db: AsyncSession,
    user_id: UUID,
    reason: str,
    revoked_by: str = "user",
    exclude_session_id: Optional[UUID] = None,
    commit: bool = True,
) -> int:
    """
    Revoke every active session for a user in one commit.

    Use cases:
        - Logout everywhere
        - Password change (excluding the caller's own session)
        - Password reset
        - Admin deactivation

    Returns:
        Number of sessions revoked
    """
    statement = select(Session).where(
        Session.user_id == user_id,
        Session.is_active == True,  # noqa: E712
    )
    if exclude_session_id is not None:
        statement = statement.where(Session.id != exclude_session_id)

    sessions = (await db.exec(statement)).all()
    for session in sessions:
        revoke(session, reason, revoked_by)
        db.add(session)

    if commit:
        await db.commit()

    logger.bind(user_id=str(user_id), reason=reason).debug(
        "Revoked {} session(s)", len(sessions)
    )
    return len(sessions)


async def get_active_sessions(db: AsyncSession, user_id: UUID) -> List[Session]:
    """Active, unexpired sessions for a user, most recently used first."""
    statement = (
        select(Session)
        .where(
            Session.user_id == user_id,
            Session.is_active == True,  # noqa: E712
            Session.expires_at > utcnow(),
        )
        .order_by(Session.last_accessed_at.desc())
    )
    return list((await db.exec(statement)).all())


async def cleanup_expired_sessions(db: AsyncSession) -> int:
    """
    Deactivate every session past its expiry.

    Should be run periodically (scripts/cleanup_sessions.py).

    Returns:
        Number of sessions cleaned up
    """
    statement = select(Session).where(
        Session.is_active == True,  # noqa: E712
        Session.expires_at < utcnow(),
    )
    sessions = (await db.exec(statement)).all()

    for session in sessions:
        session.is_active = False
        session.revoked_reason = "Session expired"
        session.revoked_by = DEFAULT_REVOKED_BY
        db.add(session)

    await db.commit()
    return len(sessions)
