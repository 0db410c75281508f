"""
Steady Vitality - Authentication Service

Composes credentials, tokens, sessions and user records into the
account flows: register, login, logout, logout-all, refresh,
change/forgot/reset password and email verification.

Every flow returns an AuthResult instead of raising. Storage errors are
logged, rolled back and reported as a generic internal failure; nothing
internal reaches the caller.

Token pairs always embed the session id. Revoking the session row is
what invalidates tokens that are still cryptographically valid.
"""

from typing import List, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel.ext.asyncio.session import AsyncSession

from steady_vitality.auth import sessions as session_service
from steady_vitality.auth import users as user_service
from steady_vitality.auth.models import Role, Session, User, utcnow
from steady_vitality.auth.password import (
    hash_password_async,
    needs_rehash,
    validate_password_strength,
    verify_password_async,
)
from steady_vitality.auth.schemas import AuthResult, FailureKind
from steady_vitality.auth.tokens import (
    TokenError,
    TokenPair,
    create_access_token,
    create_refresh_token,
    get_token_expiry_seconds,
    verify_refresh_token,
)
from steady_vitality.config import settings
from steady_vitality.log import logger


INVALID_CREDENTIALS = "Invalid email or password"
INVALID_REFRESH = "Invalid or expired refresh token"
INVALID_RESET = "Invalid or expired reset token"
INVALID_VERIFICATION = "Invalid or expired verification token"
FORGOT_PASSWORD_MESSAGE = "If the email exists, a password reset link has been sent"


def issue_token_pair(user: User, session: Session) -> TokenPair:
    """Access + refresh tokens bound to ``session``."""
    return TokenPair(
        access_token=create_access_token(
            user_id=user.id,
            email=user.email,
            role=user.role.value,
            session_id=session.id,
        ),
        refresh_token=create_refresh_token(user.id, session.id),
        expires_in=get_token_expiry_seconds(),
    )


async def _internal_failure(db: AsyncSession, action: str, message: str) -> AuthResult:
    logger.exception("{} failed", action)
    await db.rollback()
    return AuthResult.fail(message, FailureKind.INTERNAL)


async def register(
    db: AsyncSession,
    email: str,
    username: str,
    password: str,
    first_name: str,
    last_name: str,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> AuthResult:
    """
    Create a client account and log it in.

    The user row and its first session are written in one commit.
    """
    email = user_service.normalize_email(email)
    try:
        existing = await user_service.find_conflicting_user(db, email, username)
        if existing is not None:
            message = (
                "Email already registered"
                if existing.email == email
                else "Username already taken"
            )
            return AuthResult.fail(message, FailureKind.CONFLICT)

        validation = validate_password_strength(password)
        if not validation.valid:
            return AuthResult.fail(", ".join(validation.errors), FailureKind.VALIDATION)

        user = User(
            email=email,
            username=username,
            password_hash=await hash_password_async(password),
            first_name=first_name,
            last_name=last_name,
            role=Role.CLIENT,
            is_active=True,
            is_email_verified=False,
        )
        # Raw token leaves only through on_email_verification_issued
        verification_token = user_service.issue_email_verification(user)
        db.add(user)
        await db.flush()

        session = await session_service.create_session(
            db,
            user_id=user.id,
            ip_address=ip_address,
            user_agent=user_agent,
        )
    except IntegrityError:
        await db.rollback()
        logger.info("Registration raced on a unique constraint")
        return AuthResult.fail("Email or username already in use", FailureKind.CONFLICT)
    except SQLAlchemyError:
        return await _internal_failure(db, "Registration", "Registration failed. Please try again.")

    await on_email_verification_issued(user, verification_token)
    logger.bind(event="auth.register", user_id=str(user.id)).info("User registered")

    return AuthResult.ok(
        "Registration successful. Please check your email to verify your account.",
        user=user,
        tokens=issue_token_pair(user, session),
    )


async def login(
    db: AsyncSession,
    email: str,
    password: str,
    remember_me: bool = False,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> AuthResult:
    """
    Authenticate with email and password and open a session.

    Unknown email, inactive account and wrong password all produce the
    same message.
    """
    try:
        user = await user_service.get_user_by_email(db, email)

        valid = (
            user is not None
            and user.is_active
            and await verify_password_async(password, user.password_hash)
        )
        if not valid:
            logger.bind(
                event="auth.login.failure",
                user_id=str(user.id) if user else None,
            ).info("Login rejected")
            return AuthResult.fail(INVALID_CREDENTIALS, FailureKind.UNAUTHORIZED)

        if needs_rehash(user.password_hash):
            user.password_hash = await hash_password_async(password)

        user.last_login_at = utcnow()
        db.add(user)

        lifetime = (
            settings.REMEMBER_ME_SESSION_HOURS if remember_me else settings.SESSION_EXPIRE_HOURS
        )
        session = await session_service.create_session(
            db,
            user_id=user.id,
            ip_address=ip_address,
            user_agent=user_agent,
            lifetime_hours=lifetime,
        )
    except SQLAlchemyError:
        return await _internal_failure(db, "Login", "Login failed. Please try again.")

    logger.bind(
        event="auth.login.success",
        user_id=str(user.id),
        session_id=str(session.id),
    ).info("Login succeeded")

    return AuthResult.ok("Login successful", user=user, tokens=issue_token_pair(user, session))


async def logout(db: AsyncSession, session_id: UUID) -> AuthResult:
    """Revoke exactly one session. Succeeds when the session is already gone."""
    try:
        found = await session_service.invalidate_session(
            db, session_id, reason="User logout", revoked_by="user"
        )
    except SQLAlchemyError:
        return await _internal_failure(db, "Logout", "Logout failed")

    if not found:
        logger.bind(event="auth.logout", session_id=str(session_id)).info(
            "Logout for unknown session"
        )
    return AuthResult.ok("Logged out successfully")


async def logout_all(db: AsyncSession, user_id: UUID) -> AuthResult:
    """Revoke every active session for the user."""
    try:
        count = await session_service.invalidate_all_user_sessions(
            db, user_id, reason="User logout all sessions", revoked_by="user"
        )
    except SQLAlchemyError:
        return await _internal_failure(db, "Logout all", "Logout all sessions failed")

    logger.bind(event="auth.logout.all", user_id=str(user_id)).info(
        "Revoked {} session(s)", count
    )
    return AuthResult.ok("All sessions logged out successfully")


async def refresh(db: AsyncSession, refresh_token: str) -> AuthResult:
    """
    Exchange a refresh token for a new token pair on the same session.

    Any token or session problem produces the same generic message.
    """
    try:
        payload = verify_refresh_token(refresh_token)
        user_id = UUID(payload.user_id)
        session_id = UUID(payload.session_id)
    except (TokenError, ValueError) as exc:
        logger.bind(event="auth.refresh.failure").info("Refresh rejected: {}", exc)
        return AuthResult.fail(INVALID_REFRESH, FailureKind.UNAUTHORIZED)

    try:
        user = await user_service.get_user_by_id(db, user_id)
        session = await session_service.get_session(db, session_id)

        if (
            user is None
            or session is None
            or session.user_id != user_id
            or not session_service.can_refresh(session)
        ):
            return AuthResult.fail(INVALID_REFRESH, FailureKind.UNAUTHORIZED)

        session_service.touch(session)
        db.add(session)
        await db.commit()
    except SQLAlchemyError:
        return await _internal_failure(db, "Token refresh", "Token refresh failed")

    return AuthResult.ok(
        "Token refreshed successfully",
        user=user,
        tokens=issue_token_pair(user, session),
    )


async def change_password(
    db: AsyncSession,
    user_id: UUID,
    current_password: str,
    new_password: str,
    current_session_id: Optional[UUID] = None,
) -> AuthResult:
    """
    Replace the password after checking the current one.

    Every other active session is revoked; the session making the
    change (``current_session_id``) stays signed in.
    """
    try:
        user = await user_service.get_user_by_id(db, user_id)
        if user is None:
            return AuthResult.fail("User not found", FailureKind.NOT_FOUND)

        if not await verify_password_async(current_password, user.password_hash):
            return AuthResult.fail("Current password is incorrect", FailureKind.VALIDATION)

        validation = validate_password_strength(new_password)
        if not validation.valid:
            return AuthResult.fail(", ".join(validation.errors), FailureKind.VALIDATION)

        user.password_hash = await hash_password_async(new_password)
        db.add(user)

        revoked = await session_service.invalidate_all_user_sessions(
            db,
            user.id,
            reason="Password changed",
            revoked_by="user",
            exclude_session_id=current_session_id,
            commit=False,
        )
        await db.commit()
    except SQLAlchemyError:
        return await _internal_failure(db, "Change password", "Password change failed")

    logger.bind(event="auth.password.changed", user_id=str(user_id)).info(
        "Password changed, {} other session(s) revoked", revoked
    )
    return AuthResult.ok("Password changed successfully")


async def forgot_password(db: AsyncSession, email: str) -> AuthResult:
    """
    Start a password reset.

    The response is identical whether or not the email exists.
    """
    try:
        user = await user_service.get_user_by_email(db, email)
        if user is None or not user.is_active:
            return AuthResult.ok(FORGOT_PASSWORD_MESSAGE)

        reset_token = user_service.issue_password_reset(user)
        db.add(user)
        await db.commit()
    except SQLAlchemyError:
        return await _internal_failure(db, "Forgot password", "Password reset request failed")

    await on_password_reset_issued(user, reset_token)
    return AuthResult.ok(FORGOT_PASSWORD_MESSAGE)


async def reset_password(db: AsyncSession, token: str, new_password: str) -> AuthResult:
    """
    Set a new password from a reset token and sign the user out everywhere.
    """
    validation = validate_password_strength(new_password)
    if not validation.valid:
        return AuthResult.fail(", ".join(validation.errors), FailureKind.VALIDATION)

    try:
        user = await user_service.find_user_by_reset_token(db, token)
        if user is None:
            return AuthResult.fail(INVALID_RESET, FailureKind.VALIDATION)

        user.password_hash = await hash_password_async(new_password)
        user_service.set_password_reset(user, None)
        db.add(user)

        revoked = await session_service.invalidate_all_user_sessions(
            db,
            user.id,
            reason="Password reset",
            revoked_by="user",
            commit=False,
        )
        await db.commit()
    except SQLAlchemyError:
        return await _internal_failure(db, "Reset password", "Password reset failed")

    logger.bind(event="auth.password.reset", user_id=str(user.id)).info(
        "Password reset, {} session(s) revoked", revoked
    )
    return AuthResult.ok("Password reset successfully")


async def verify_email(db: AsyncSession, token: str) -> AuthResult:
    """Redeem an email verification token."""
    try:
        user = await user_service.find_user_by_verification_token(db, token)
        if user is None:
            return AuthResult.fail(INVALID_VERIFICATION, FailureKind.VALIDATION)

        user.is_email_verified = True
        user_service.set_email_verification(user, None)
        db.add(user)
        await db.commit()
    except SQLAlchemyError:
        return await _internal_failure(db, "Verify email", "Email verification failed")

    logger.bind(event="auth.email.verified", user_id=str(user.id)).info("Email verified")
    return AuthResult.ok("Email verified successfully")


async def get_current_user(db: AsyncSession, user_id: UUID) -> Optional[User]:
    """Active user for /auth/me; None once deactivated."""
    return await user_service.get_user_by_id(db, user_id)


async def get_user_sessions(db: AsyncSession, user_id: UUID) -> List[Session]:
    return await session_service.get_active_sessions(db, user_id)


# =============================================================================
# Token delivery hooks
# =============================================================================

async def on_email_verification_issued(user: User, raw_token: str) -> None:
    """Called with a fresh verification token. Email delivery is not wired up."""
    logger.bind(event="auth.email.verification_issued", user_id=str(user.id)).debug(
        "Email verification token issued"
    )


async def on_password_reset_issued(user: User, raw_token: str) -> None:
    """Called with a fresh reset token. Email delivery is not wired up."""
    logger.bind(event="auth.password.reset_issued", user_id=str(user.id)).debug(
        "Password reset token issued"
    )
