"""
Steady Vitality - JWT Token Management

Creates and validates signed tokens:
- Access tokens carry userId, email, role and sessionId for authorization
- Refresh tokens carry only userId, sessionId and a type="refresh" marker

Security:
- HMAC-SHA256 with a server-held secret (settings.JWT_SECRET)
- Every token is bound to a server-side session, so revoking the session
  invalidates tokens that are still cryptographically valid
"""

import re
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

from jose import jwt, JWTError, ExpiredSignatureError
from pydantic import BaseModel, ConfigDict, Field

from steady_vitality.auth.models import utcnow
from steady_vitality.config import settings


DEFAULT_ACCESS_TOKEN_SECONDS = 3600
REFRESH_TOKEN_TYPE = "refresh"

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhd]?)\s*$")
_UNIT_SECONDS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400}

ACCESS_CLAIMS = ("userId", "email", "role", "sessionId")


class TokenError(Exception):
    """Base class for token failures; ``code`` is machine-readable."""
    code = "INVALID_TOKEN"
    default_message = "Invalid token"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidTokenError(TokenError):
    """Signature, structure or required claims are invalid."""


class TokenExpiredError(TokenError):
    code = "TOKEN_EXPIRED"
    default_message = "Token expired"


class InvalidRefreshTokenError(InvalidTokenError):
    code = "INVALID_REFRESH_TOKEN"
    default_message = "Invalid refresh token"


class RefreshTokenExpiredError(TokenError):
    code = "REFRESH_TOKEN_EXPIRED"
    default_message = "Refresh token expired"


class TokenPayload(BaseModel):
    """
    Decoded access token.

    Attributes:
        user_id: Subject (claim ``userId``)
        email: User email at issue time
        role: User role at issue time
        session_id: Server-side session (claim ``sessionId``)
        iat: Issued-at timestamp
        exp: Expiration timestamp
    """
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="userId")
    email: str
    role: str
    session_id: str = Field(..., alias="sessionId")
    iat: Optional[datetime] = None
    exp: Optional[datetime] = None


class RefreshPayload(BaseModel):
    """Decoded refresh token."""
    user_id: str
    session_id: str


class TokenPair(BaseModel):
    """Access/refresh pair returned to clients."""
    model_config = ConfigDict(populate_by_name=True)

    access_token: str = Field(..., alias="accessToken")
    refresh_token: str = Field(..., alias="refreshToken")
    expires_in: int = Field(..., alias="expiresIn", description="Seconds until access token expires")


def parse_duration(value, default: int) -> int:
    """
    Convert an expiry setting to seconds.

    Accepts an int or a string with an optional s/m/h/d suffix
    ("90", "15m", "1h", "7d"). Anything else yields ``default``.
    """
    if isinstance(value, int) and value > 0:
        return value
    if not isinstance(value, str):
        return default
    match = _DURATION_RE.match(value)
    if not match:
        return default
    amount, unit = match.groups()
    seconds = int(amount) * _UNIT_SECONDS[unit]
    return seconds or default


def get_token_expiry_seconds() -> int:
    """Access token lifetime in seconds, for ``expiresIn`` in responses."""
    return parse_duration(settings.JWT_EXPIRE, DEFAULT_ACCESS_TOKEN_SECONDS)


def get_refresh_token_expiry_seconds() -> int:
    return parse_duration(
        settings.JWT_REFRESH_EXPIRE,
        settings.REFRESH_TOKEN_EXPIRE_DAYS * 86400,
    )


def _encode(claims: dict, lifetime: timedelta) -> str:
    now = utcnow()
    payload = {**claims, "iat": now, "exp": now + lifetime}
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def create_access_token(
    user_id: UUID,
    email: str,
    role: str,
    session_id: UUID,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a signed access token bound to a session.

    Example:
        >>> token = create_access_token(user.id, user.email, "client", session.id)
        >>> verify_access_token(token).session_id == str(session.id)
        True
    """
    claims = {
        "userId": str(user_id),
        "email": email,
        "role": role,
        "sessionId": str(session_id),
    }
    return _encode(claims, expires_delta or timedelta(seconds=get_token_expiry_seconds()))


def create_refresh_token(
    user_id: UUID,
    session_id: UUID,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Create a refresh token carrying only identity, session and type."""
    claims = {
        "userId": str(user_id),
        "sessionId": str(session_id),
        "type": REFRESH_TOKEN_TYPE,
    }
    lifetime = expires_delta or timedelta(seconds=get_refresh_token_expiry_seconds())
    return _encode(claims, lifetime)


def _decode(token: str) -> dict:
    return jwt.decode(
        token,
        settings.JWT_SECRET,
        algorithms=[settings.JWT_ALGORITHM],
    )


def verify_access_token(token: str) -> TokenPayload:
    """
    Verify and decode an access token.

    Raises:
        TokenExpiredError: Token is past its expiry
        InvalidTokenError: Bad signature, malformed, or missing claims
    """
    try:
        payload = _decode(token)
    except ExpiredSignatureError:
        raise TokenExpiredError()
    except JWTError:
        raise InvalidTokenError()

    if any(not payload.get(claim) for claim in ACCESS_CLAIMS):
        raise InvalidTokenError("Invalid token payload structure")

    return TokenPayload(**payload)


def verify_refresh_token(token: str) -> RefreshPayload:
    """
    Verify and decode a refresh token.

    Raises:
        RefreshTokenExpiredError: Token is past its expiry
        InvalidRefreshTokenError: Wrong type marker, malformed, or bad signature
    """
    try:
        payload = _decode(token)
    except ExpiredSignatureError:
        raise RefreshTokenExpiredError()
    except JWTError:
        raise InvalidRefreshTokenError()

    if payload.get("type") != REFRESH_TOKEN_TYPE:
        raise InvalidRefreshTokenError()
    if not payload.get("userId") or not payload.get("sessionId"):
        raise InvalidRefreshTokenError("Invalid refresh token payload")

    return RefreshPayload(user_id=payload["userId"], session_id=payload["sessionId"])


def extract_bearer_token(auth_header: Optional[str]) -> Optional[str]:
    """
    Pull the token out of an ``Authorization: Bearer <token>`` header.

    Returns None for a missing header, another scheme, or the wrong
    number of segments.
    """
    if not auth_header:
        return None
    parts = auth_header.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer" or not parts[1]:
        return None
    return parts[1]
