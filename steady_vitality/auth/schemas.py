"""
Steady Vitality - Authentication Request/Response Schemas

Pydantic models for API request validation and response serialization.
Separates API contracts from database models; user and session
projections never carry password hashes, one-time token digests or
raw session tokens.

JSON keys are camelCase; requests also accept snake_case field names.
"""

import re
from datetime import datetime
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from steady_vitality.auth.models import Session, User
from steady_vitality.auth.tokens import TokenPair


EMAIL_RE = re.compile(r"^[a-zA-Z0-9_.+-]+@[a-zA-Z0-9-]+\.[a-zA-Z0-9-.]+$")
USERNAME_RE = re.compile(r"^[a-zA-Z0-9_]{3,30}$")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _normalized_email(value: str) -> str:
    value = value.strip().lower()
    if not EMAIL_RE.match(value):
        raise ValueError("Please provide a valid email address")
    return value


# =============================================================================
# Requests
# =============================================================================

class RegisterRequest(CamelModel):
    """Request body for POST /auth/register."""
    email: str
    username: str
    password: str = Field(..., min_length=1, description="Strength is checked by the service")
    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)

    @field_validator("email")
    @classmethod
    def email_format(cls, v: str) -> str:
        return _normalized_email(v)

    @field_validator("username")
    @classmethod
    def username_format(cls, v: str) -> str:
        if not USERNAME_RE.match(v):
            raise ValueError(
                "Username must be 3-30 characters and contain only letters, numbers, and underscores"
            )
        return v

    @field_validator("first_name", "last_name")
    @classmethod
    def strip_names(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name is required")
        return v


class LoginRequest(CamelModel):
    """Request body for POST /auth/login."""
    email: str
    password: str = Field(..., min_length=1)
    remember_me: bool = False

    @field_validator("email")
    @classmethod
    def email_format(cls, v: str) -> str:
        return _normalized_email(v)


class RefreshRequest(CamelModel):
    """Request body for POST /auth/refresh."""
    refresh_token: str = Field(..., min_length=1)


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=1, description="Strength is checked by the service")


class ForgotPasswordRequest(CamelModel):
    email: str

    @field_validator("email")
    @classmethod
    def email_format(cls, v: str) -> str:
        return _normalized_email(v)


class ResetPasswordRequest(CamelModel):
    token: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=1, description="Strength is checked by the service")


class VerifyEmailRequest(CamelModel):
    token: str = Field(..., min_length=1)


# =============================================================================
# Responses
# =============================================================================

class UserResponse(CamelModel):
    """Public projection of a user."""
    id: UUID
    email: str
    username: str
    first_name: str
    last_name: str
    role: str
    is_email_verified: bool
    last_login_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            email=user.email,
            username=user.username,
            first_name=user.first_name,
            last_name=user.last_name,
            role=user.role.value,
            is_email_verified=user.is_email_verified,
            last_login_at=user.last_login_at,
            created_at=user.created_at,
        )


class FailureKind(str, Enum):
    """Why an orchestrator call failed; routes map this to a status code."""
    VALIDATION = "validation"
    CONFLICT = "conflict"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    INTERNAL = "internal"


class AuthResult(CamelModel):
    """Envelope returned by every auth flow: {success, message, user, tokens}."""
    success: bool
    message: str
    user: Optional[UserResponse] = None
    tokens: Optional[TokenPair] = None
    failure: Optional[FailureKind] = Field(default=None, exclude=True)

    @classmethod
    def ok(cls, message: str, user: Optional[User] = None, tokens: Optional[TokenPair] = None) -> "AuthResult":
        return cls(
            success=True,
            message=message,
            user=UserResponse.from_user(user) if user is not None else None,
            tokens=tokens,
        )

    @classmethod
    def fail(cls, message: str, failure: FailureKind) -> "AuthResult":
        return cls(success=False, message=message, failure=failure)


class MessageResponse(CamelModel):
    success: bool = True
    message: str


class MeResponse(CamelModel):
    success: bool = True
    user: UserResponse


class SessionInfo(CamelModel):
    """Session metadata for display; never includes raw tokens."""
    id: UUID
    device_type: Optional[str] = None
    browser: Optional[str] = None
    os: Optional[str] = None
    ip_address: Optional[str] = None
    last_accessed_at: Optional[datetime] = None
    created_at: datetime
    expires_at: datetime
    is_active: bool
    is_current: bool = False

    @classmethod
    def from_session(cls, session: Session, current_session_id: Optional[UUID] = None) -> "SessionInfo":
        return cls(
            id=session.id,
            device_type=session.device_type,
            browser=session.browser,
            os=session.os,
            ip_address=session.ip_address,
            last_accessed_at=session.last_accessed_at,
            created_at=session.created_at,
            expires_at=session.expires_at,
            is_active=session.is_active,
            is_current=session.id == current_session_id,
        )


class ActiveSessionsResponse(CamelModel):
    """Response body for GET /auth/sessions."""
    success: bool = True
    sessions: List[SessionInfo]
    total: int


class AuthStatusResponse(CamelModel):
    is_authenticated: bool
    user: Optional[UserResponse] = None
