"""
Steady Vitality - Authentication Database Models

SQLModel-based models for user accounts and server-side sessions.
Uses PostgreSQL for production, SQLite for local development.

Security:
- Passwords stored as bcrypt hashes only
- One-time tokens (email verification, password reset) stored as SHA-256 digests
- Sessions are server-controlled for immediate revocation
- All timestamps in UTC (naive)
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlmodel import SQLModel, Field
from sqlalchemy import Column, String, Text, Boolean, DateTime, Enum as SQLEnum


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, matching stored columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Role(str, Enum):
    """
    User roles.

    Admin implicitly satisfies any role requirement (see gateway.rbac).
    """
    ADMIN = "admin"
    COACH = "coach"
    CLIENT = "client"


class User(SQLModel, table=True):
    """
    User account.

    Attributes:
        id: Unique identifier (UUIDv4)
        email: Login identifier, always lower-cased (unique, indexed)
        username: Public handle (unique, indexed)
        password_hash: bcrypt hash (never store plaintext)
        role: Role determining access
        is_active: Soft-delete flag; inactive users cannot authenticate
        is_email_verified: Set once the verification token is redeemed
        email_verification_token_hash / _expires_at: Pending verification
        password_reset_token_hash / _expires_at: Pending password reset
        last_login_at: Last successful login (UTC)
    """
    __tablename__ = "users"

    id: UUID = Field(
        default_factory=uuid4,
        primary_key=True,
        description="Unique user identifier"
    )
    email: str = Field(
        sa_column=Column(String(255), unique=True, index=True, nullable=False),
        description="User email address (login identifier)"
    )
    username: str = Field(
        sa_column=Column(String(100), unique=True, index=True, nullable=False),
        description="Unique username"
    )
    password_hash: str = Field(
        sa_column=Column(String(255), nullable=False),
        description="bcrypt password hash"
    )
    first_name: str = Field(sa_column=Column(String(100), nullable=False))
    last_name: str = Field(sa_column=Column(String(100), nullable=False))
    role: Role = Field(
        default=Role.CLIENT,
        sa_column=Column(SQLEnum(Role), nullable=False, default=Role.CLIENT, index=True),
        description="User role"
    )
    is_active: bool = Field(
        default=True,
        sa_column=Column(Boolean, nullable=False, default=True),
        description="Whether user can authenticate"
    )
    is_email_verified: bool = Field(
        default=False,
        sa_column=Column(Boolean, nullable=False, default=False),
    )
    email_verification_token_hash: Optional[str] = Field(
        default=None,
        sa_column=Column(String(64), nullable=True, index=True),
    )
    email_verification_expires_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime, nullable=True),
    )
    password_reset_token_hash: Optional[str] = Field(
        default=None,
        sa_column=Column(String(64), nullable=True, index=True),
    )
    password_reset_expires_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime, nullable=True),
    )
    last_login_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime, nullable=True),
    )
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime, nullable=False, default=utcnow),
        description="Account creation timestamp"
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow),
        description="Last update timestamp"
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class Session(SQLModel, table=True):
    """
    Server-side session, one per login.

    Access and refresh JWTs embed the session id. Revoking the session
    invalidates every token that references it.

    Attributes:
        id: Session identifier (UUIDv4, carried in tokens as sessionId)
        user_id: Owning user (cascade delete)
        token / refresh_token: Opaque random values, never returned to clients
        expires_at: Session expiry
        refresh_token_expires_at: Refresh eligibility window
        is_active: False once revoked or expired by cleanup
        revoked_at / revoked_by / revoked_reason: Revocation metadata
        last_accessed_at: Updated on each authenticated request
        ip_address / user_agent / device_type / browser / os: Client metadata
    """
    __tablename__ = "sessions"

    id: UUID = Field(
        default_factory=uuid4,
        primary_key=True,
        description="Unique session identifier"
    )
    user_id: UUID = Field(
        foreign_key="users.id",
        ondelete="CASCADE",
        nullable=False,
        index=True,
        description="Reference to user"
    )
    token: str = Field(
        sa_column=Column(String(255), unique=True, index=True, nullable=False),
    )
    refresh_token: Optional[str] = Field(
        default=None,
        sa_column=Column(String(255), nullable=True),
    )
    expires_at: datetime = Field(
        sa_column=Column(DateTime, nullable=False, index=True),
    )
    refresh_token_expires_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime, nullable=True),
    )
    is_active: bool = Field(
        default=True,
        sa_column=Column(Boolean, nullable=False, default=True, index=True),
    )
    last_accessed_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime, nullable=True),
    )
    revoked_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime, nullable=True),
    )
    revoked_by: Optional[str] = Field(
        default=None,
        sa_column=Column(String(100), nullable=True),
    )
    revoked_reason: Optional[str] = Field(
        default=None,
        sa_column=Column(Text, nullable=True),
    )
    ip_address: Optional[str] = Field(
        default=None,
        sa_column=Column(String(45), nullable=True),
        description="Client IP address"
    )
    user_agent: Optional[str] = Field(
        default=None,
        sa_column=Column(String(512), nullable=True),
        description="Client user-agent string"
    )
    device_type: Optional[str] = Field(default=None, sa_column=Column(String(100), nullable=True))
    browser: Optional[str] = Field(default=None, sa_column=Column(String(100), nullable=True))
    os: Optional[str] = Field(default=None, sa_column=Column(String(100), nullable=True))
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime, nullable=False, default=utcnow),
    )
