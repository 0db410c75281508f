"""
Steady Vitality - User Lookups and One-Time Tokens

Email verification and password reset use random one-time tokens.
Only the SHA-256 digest is stored, next to its expiry, and the pair is
always written or cleared together. The digest column is indexed so a
presented token is found by a keyed lookup.
"""

import hashlib
import hmac
import secrets
from datetime import datetime, timedelta
from typing import NamedTuple, Optional, Tuple
from uuid import UUID

from sqlmodel import or_, select
from sqlmodel.ext.asyncio.session import AsyncSession

from steady_vitality.auth.models import User, utcnow
from steady_vitality.config import settings


class OneTimeToken(NamedTuple):
    """Stored half of a one-time token."""
    token_hash: str
    expires_at: datetime


def normalize_email(email: str) -> str:
    return email.strip().lower()


def hash_token(raw_token: str) -> str:
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


def issue_one_time_token(lifetime: timedelta) -> Tuple[str, OneTimeToken]:
    """
    Generate a one-time token.

    Returns:
        (raw token for the user, material to store)
    """
    raw = secrets.token_urlsafe(32)
    return raw, OneTimeToken(hash_token(raw), utcnow() + lifetime)


def token_matches(raw_token: str, material: OneTimeToken) -> bool:
    """Constant-time digest check plus expiry."""
    return (
        hmac.compare_digest(hash_token(raw_token), material.token_hash)
        and utcnow() < material.expires_at
    )


# =============================================================================
# Token material on the user record
# =============================================================================

def email_verification_material(user: User) -> Optional[OneTimeToken]:
    if not user.email_verification_token_hash or not user.email_verification_expires_at:
        return None
    return OneTimeToken(user.email_verification_token_hash, user.email_verification_expires_at)


def set_email_verification(user: User, material: Optional[OneTimeToken]) -> None:
    user.email_verification_token_hash = material.token_hash if material else None
    user.email_verification_expires_at = material.expires_at if material else None


def password_reset_material(user: User) -> Optional[OneTimeToken]:
    if not user.password_reset_token_hash or not user.password_reset_expires_at:
        return None
    return OneTimeToken(user.password_reset_token_hash, user.password_reset_expires_at)


def set_password_reset(user: User, material: Optional[OneTimeToken]) -> None:
    user.password_reset_token_hash = material.token_hash if material else None
    user.password_reset_expires_at = material.expires_at if material else None


def issue_email_verification(user: User) -> str:
    """Attach fresh verification material to ``user``; returns the raw token."""
    raw, material = issue_one_time_token(
        timedelta(hours=settings.EMAIL_VERIFICATION_EXPIRE_HOURS)
    )
    set_email_verification(user, material)
    return raw


def issue_password_reset(user: User) -> str:
    """Attach fresh reset material to ``user``; returns the raw token."""
    raw, material = issue_one_time_token(
        timedelta(minutes=settings.PASSWORD_RESET_EXPIRE_MINUTES)
    )
    set_password_reset(user, material)
    return raw


# =============================================================================
# Lookups
# =============================================================================

async def get_user_by_id(
    db: AsyncSession,
    user_id: UUID,
    active_only: bool = True,
) -> Optional[User]:
    statement = select(User).where(User.id == user_id)
    if active_only:
        statement = statement.where(User.is_active == True)  # noqa: E712
    return (await db.exec(statement)).first()


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    statement = select(User).where(User.email == normalize_email(email))
    return (await db.exec(statement)).first()


async def find_conflicting_user(
    db: AsyncSession,
    email: str,
    username: str,
) -> Optional[User]:
    """A user already holding this email or username, email match first."""
    email = normalize_email(email)
    statement = select(User).where(or_(User.email == email, User.username == username))
    users = (await db.exec(statement)).all()
    for user in users:
        if user.email == email:
            return user
    return users[0] if users else None


async def find_user_by_verification_token(db: AsyncSession, raw_token: str) -> Optional[User]:
    statement = select(User).where(
        User.email_verification_token_hash == hash_token(raw_token),
        User.email_verification_expires_at > utcnow(),
    )
    user = (await db.exec(statement)).first()
    if user is None:
        return None
    material = email_verification_material(user)
    return user if material and token_matches(raw_token, material) else None


async def find_user_by_reset_token(db: AsyncSession, raw_token: str) -> Optional[User]:
    statement = select(User).where(
        User.password_reset_token_hash == hash_token(raw_token),
        User.password_reset_expires_at > utcnow(),
    )
    user = (await db.exec(statement)).first()
    if user is None:
        return None
    material = password_reset_material(user)
    return user if material and token_matches(raw_token, material) else None
