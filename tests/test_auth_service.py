"""
Steady Vitality - Auth Flow Tests

End-to-end checks of the account flows against the in-memory database,
without the HTTP layer.

Run with: pytest tests/test_auth_service.py -v
"""

import asyncio
import time
from datetime import timedelta
from unittest.mock import patch
from uuid import UUID, uuid4

import pytest
from sqlalchemy.exc import OperationalError

from steady_vitality.auth import service as auth_service
from steady_vitality.auth import sessions as session_service
from steady_vitality.auth import users as user_service
from steady_vitality.auth.models import Role, User, utcnow
from steady_vitality.auth.password import hash_password, verify_password
from steady_vitality.auth.schemas import FailureKind
from steady_vitality.auth.tokens import (
    create_refresh_token,
    verify_access_token,
    verify_refresh_token,
)
from tests.conftest import CLIENT_PASSWORD, make_user


async def _register_alice(db):
    return await auth_service.register(
        db,
        email="Alice@Example.com ",
        username="alice",
        password="Passw0rd!",
        first_name="Alice",
        last_name="Smith",
        user_agent="Mozilla/5.0 (X11; Linux x86_64) Firefox/121.0",
    )


@pytest.mark.asyncio
class TestRegister:

    async def test_register_success(self, db_session):
        result = await _register_alice(db_session)

        assert result.success is True
        assert result.user.email == "alice@example.com"
        assert result.user.role == "client"
        assert result.user.is_email_verified is False

        payload = verify_access_token(result.tokens.access_token)
        assert payload.user_id == str(result.user.id)
        assert payload.role == "client"
        refresh = verify_refresh_token(result.tokens.refresh_token)
        assert refresh.session_id == payload.session_id

    async def test_register_creates_session_and_verification(self, db_session):
        result = await _register_alice(db_session)

        user = await user_service.get_user_by_id(db_session, result.user.id)
        assert user.email_verification_token_hash is not None
        assert user.email_verification_expires_at > utcnow() + timedelta(hours=23)

        sessions = await session_service.get_active_sessions(db_session, user.id)
        assert len(sessions) == 1
        assert sessions[0].browser == "Firefox"

    async def test_duplicate_email(self, db_session):
        await _register_alice(db_session)

        result = await auth_service.register(
            db_session, "alice@example.com", "alice2", "Passw0rd!", "A", "S"
        )

        assert result.success is False
        assert result.message == "Email already registered"
        assert result.failure == FailureKind.CONFLICT

    async def test_duplicate_username(self, db_session):
        await _register_alice(db_session)

        result = await auth_service.register(
            db_session, "other@example.com", "alice", "Passw0rd!", "A", "S"
        )

        assert result.message == "Username already taken"

    async def test_weak_password_lists_violations(self, db_session):
        result = await auth_service.register(
            db_session, "bob@example.com", "bob", "weak", "Bob", "B"
        )

        assert result.success is False
        assert result.failure == FailureKind.VALIDATION
        assert "Password must be at least 8 characters long" in result.message
        assert ", " in result.message

    async def test_storage_error_is_internal_failure(self, db_session):
        with patch.object(
            user_service,
            "find_conflicting_user",
            side_effect=OperationalError("SELECT", {}, Exception("db down")),
        ):
            result = await _register_alice(db_session)

        assert result.success is False
        assert result.failure == FailureKind.INTERNAL
        assert result.message == "Registration failed. Please try again."


@pytest.mark.asyncio
class TestLogin:

    async def test_login_success(self, db_session, test_client_user):
        result = await auth_service.login(db_session, "client@test.com", CLIENT_PASSWORD)

        assert result.success is True
        assert result.message == "Login successful"
        assert result.tokens.expires_in == 3600

        user = await user_service.get_user_by_id(db_session, test_client_user.id)
        assert user.last_login_at is not None

    async def test_login_email_case_insensitive(self, db_session, test_client_user):
        result = await auth_service.login(db_session, "  CLIENT@test.com", CLIENT_PASSWORD)

        assert result.success is True

    async def test_wrong_password_generic_message(self, db_session, test_client_user):
        result = await auth_service.login(db_session, "client@test.com", "Wrong123!")

        assert result.success is False
        assert result.message == "Invalid email or password"
        assert result.failure == FailureKind.UNAUTHORIZED

    async def test_unknown_email_same_message(self, db_session):
        result = await auth_service.login(db_session, "nobody@test.com", CLIENT_PASSWORD)

        assert result.message == "Invalid email or password"

    async def test_inactive_user_same_message(self, db_session, inactive_user):
        result = await auth_service.login(db_session, "inactive@test.com", CLIENT_PASSWORD)

        assert result.success is False
        assert result.message == "Invalid email or password"

    async def test_remember_me_extends_session(self, db_session, test_client_user):
        result = await auth_service.login(
            db_session, "client@test.com", CLIENT_PASSWORD, remember_me=True
        )

        session_id = UUID(verify_access_token(result.tokens.access_token).session_id)
        session = await session_service.get_session(db_session, session_id)
        assert session.expires_at > utcnow() + timedelta(hours=167)

    async def test_login_upgrades_stale_hash(self, db_session, test_client_user):
        test_client_user.password_hash = hash_password(CLIENT_PASSWORD, rounds=4)
        db_session.add(test_client_user)
        await db_session.commit()

        with patch("steady_vitality.auth.service.needs_rehash", return_value=True):
            result = await auth_service.login(db_session, "client@test.com", CLIENT_PASSWORD)

        assert result.success is True
        user = await user_service.get_user_by_id(db_session, test_client_user.id)
        assert verify_password(CLIENT_PASSWORD, user.password_hash)

    async def test_login_keeps_event_loop_responsive(self, db_session, test_client_user):
        """Hash checks run on a worker thread; other tasks keep being scheduled."""
        test_client_user.password_hash = hash_password(CLIENT_PASSWORD, rounds=12)
        db_session.add(test_client_user)
        await db_session.commit()

        gaps = []
        done = asyncio.Event()

        async def ticker():
            last = time.perf_counter()
            while not done.is_set():
                await asyncio.sleep(0.01)
                now = time.perf_counter()
                gaps.append(now - last)
                last = now

        task = asyncio.create_task(ticker())
        try:
            result = await auth_service.login(db_session, "client@test.com", CLIENT_PASSWORD)
        finally:
            done.set()
            await task

        assert result.success is True
        assert len(gaps) > 1
        assert max(gaps) < 0.15


@pytest.mark.asyncio
class TestLogout:

    async def test_logout_revokes_only_that_session(self, db_session, test_client_user):
        first = await auth_service.login(db_session, "client@test.com", CLIENT_PASSWORD)
        second = await auth_service.login(db_session, "client@test.com", CLIENT_PASSWORD)
        first_id = UUID(verify_access_token(first.tokens.access_token).session_id)
        second_id = UUID(verify_access_token(second.tokens.access_token).session_id)

        result = await auth_service.logout(db_session, first_id)

        assert result.message == "Logged out successfully"
        revoked = await session_service.get_session(db_session, first_id)
        assert revoked.is_active is False
        assert revoked.revoked_reason == "User logout"
        assert revoked.revoked_by == "user"
        assert (await session_service.get_session(db_session, second_id)).is_active is True

    async def test_logout_is_idempotent(self, db_session):
        result = await auth_service.logout(db_session, uuid4())

        assert result.success is True

    async def test_logout_all(self, db_session, test_client_user):
        for _ in range(3):
            await auth_service.login(db_session, "client@test.com", CLIENT_PASSWORD)

        result = await auth_service.logout_all(db_session, test_client_user.id)

        assert result.message == "All sessions logged out successfully"
        assert await session_service.get_active_sessions(db_session, test_client_user.id) == []


@pytest.mark.asyncio
class TestRefresh:

    async def test_refresh_keeps_session(self, db_session, test_client_user):
        login = await auth_service.login(db_session, "client@test.com", CLIENT_PASSWORD)

        result = await auth_service.refresh(db_session, login.tokens.refresh_token)

        assert result.success is True
        assert result.message == "Token refreshed successfully"
        old_sid = verify_access_token(login.tokens.access_token).session_id
        assert verify_access_token(result.tokens.access_token).session_id == old_sid

    async def test_refresh_after_logout_fails(self, db_session, test_client_user):
        login = await auth_service.login(db_session, "client@test.com", CLIENT_PASSWORD)
        session_id = UUID(verify_access_token(login.tokens.access_token).session_id)
        await auth_service.logout(db_session, session_id)

        result = await auth_service.refresh(db_session, login.tokens.refresh_token)

        assert result.success is False
        assert result.message == "Invalid or expired refresh token"
        assert result.failure == FailureKind.UNAUTHORIZED

    async def test_refresh_with_access_token_fails(self, db_session, test_client_user):
        login = await auth_service.login(db_session, "client@test.com", CLIENT_PASSWORD)

        result = await auth_service.refresh(db_session, login.tokens.access_token)

        assert result.message == "Invalid or expired refresh token"

    async def test_refresh_for_other_users_session_fails(self, db_session, test_client_user):
        login = await auth_service.login(db_session, "client@test.com", CLIENT_PASSWORD)
        session_id = verify_access_token(login.tokens.access_token).session_id
        forged = create_refresh_token(uuid4(), UUID(session_id))

        result = await auth_service.refresh(db_session, forged)

        assert result.success is False

    async def test_refresh_for_deactivated_user_fails(self, db_session, test_client_user):
        login = await auth_service.login(db_session, "client@test.com", CLIENT_PASSWORD)
        test_client_user.is_active = False
        db_session.add(test_client_user)
        await db_session.commit()

        result = await auth_service.refresh(db_session, login.tokens.refresh_token)

        assert result.success is False


@pytest.mark.asyncio
class TestChangePassword:

    async def test_change_password_revokes_other_sessions(self, db_session, test_client_user):
        current = await auth_service.login(db_session, "client@test.com", CLIENT_PASSWORD)
        other = await auth_service.login(db_session, "client@test.com", CLIENT_PASSWORD)
        current_id = UUID(verify_access_token(current.tokens.access_token).session_id)
        other_id = UUID(verify_access_token(other.tokens.access_token).session_id)

        result = await auth_service.change_password(
            db_session,
            test_client_user.id,
            CLIENT_PASSWORD,
            "N3wPassw0rd!",
            current_session_id=current_id,
        )

        assert result.success is True
        assert result.message == "Password changed successfully"
        assert (await session_service.get_session(db_session, current_id)).is_active is True
        other_session = await session_service.get_session(db_session, other_id)
        assert other_session.is_active is False
        assert other_session.revoked_reason == "Password changed"

        old = await auth_service.login(db_session, "client@test.com", CLIENT_PASSWORD)
        new = await auth_service.login(db_session, "client@test.com", "N3wPassw0rd!")
        assert old.success is False
        assert new.success is True

    async def test_wrong_current_password(self, db_session, test_client_user):
        result = await auth_service.change_password(
            db_session, test_client_user.id, "Wrong123!", "N3wPassw0rd!"
        )

        assert result.success is False
        assert result.message == "Current password is incorrect"

    async def test_weak_new_password(self, db_session, test_client_user):
        result = await auth_service.change_password(
            db_session, test_client_user.id, CLIENT_PASSWORD, "weakpassword"
        )

        assert result.success is False
        assert result.failure == FailureKind.VALIDATION

    async def test_unknown_user(self, db_session):
        result = await auth_service.change_password(
            db_session, uuid4(), CLIENT_PASSWORD, "N3wPassw0rd!"
        )

        assert result.failure == FailureKind.NOT_FOUND


@pytest.mark.asyncio
class TestPasswordReset:

    async def _capture_reset_token(self, db, email):
        captured = {}

        async def hook(user, raw_token):
            captured["token"] = raw_token

        with patch.object(auth_service, "on_password_reset_issued", hook):
            result = await auth_service.forgot_password(db, email)
        return result, captured.get("token")

    async def test_forgot_password_same_answer(self, db_session, test_client_user):
        known, token = await self._capture_reset_token(db_session, "client@test.com")
        unknown, missing = await self._capture_reset_token(db_session, "nobody@test.com")

        assert known.model_dump() == unknown.model_dump()
        assert known.message == "If the email exists, a password reset link has been sent"
        assert token is not None
        assert missing is None

    async def test_reset_stores_only_digest(self, db_session, test_client_user):
        _, token = await self._capture_reset_token(db_session, "client@test.com")

        user = await user_service.get_user_by_id(db_session, test_client_user.id)
        assert user.password_reset_token_hash == user_service.hash_token(token)
        assert user.password_reset_token_hash != token

    async def test_reset_password_flow(self, db_session, test_client_user):
        await auth_service.login(db_session, "client@test.com", CLIENT_PASSWORD)
        _, token = await self._capture_reset_token(db_session, "client@test.com")

        result = await auth_service.reset_password(db_session, token, "Fr3shStart!")

        assert result.success is True
        assert result.message == "Password reset successfully"
        assert await session_service.get_active_sessions(db_session, test_client_user.id) == []
        user = await user_service.get_user_by_id(db_session, test_client_user.id)
        assert user.password_reset_token_hash is None
        assert user.password_reset_expires_at is None
        assert (await auth_service.login(db_session, "client@test.com", "Fr3shStart!")).success

    async def test_reset_token_single_use(self, db_session, test_client_user):
        _, token = await self._capture_reset_token(db_session, "client@test.com")
        await auth_service.reset_password(db_session, token, "Fr3shStart!")

        again = await auth_service.reset_password(db_session, token, "An0therOne!")

        assert again.success is False
        assert again.message == "Invalid or expired reset token"

    async def test_expired_reset_token(self, db_session, test_client_user):
        _, token = await self._capture_reset_token(db_session, "client@test.com")
        user = await user_service.get_user_by_id(db_session, test_client_user.id)
        user.password_reset_expires_at = utcnow() - timedelta(seconds=1)
        db_session.add(user)
        await db_session.commit()

        result = await auth_service.reset_password(db_session, token, "Fr3shStart!")

        assert result.success is False

    async def test_weak_password_checked_first(self, db_session):
        result = await auth_service.reset_password(db_session, "whatever", "weak")

        assert result.failure == FailureKind.VALIDATION
        assert result.message != "Invalid or expired reset token"


@pytest.mark.asyncio
class TestVerifyEmail:

    async def _register_capturing_token(self, db):
        captured = {}

        async def hook(user, raw_token):
            captured["token"] = raw_token

        with patch.object(auth_service, "on_email_verification_issued", hook):
            result = await _register_alice(db)
        return result, captured["token"]

    async def test_verify_email(self, db_session):
        registered, token = await self._register_capturing_token(db_session)

        result = await auth_service.verify_email(db_session, token)

        assert result.success is True
        assert result.message == "Email verified successfully"
        user = await user_service.get_user_by_id(db_session, registered.user.id)
        assert user.is_email_verified is True
        assert user.email_verification_token_hash is None
        assert user.email_verification_expires_at is None

    async def test_verify_email_bad_token(self, db_session):
        await self._register_capturing_token(db_session)

        result = await auth_service.verify_email(db_session, "not-the-token")

        assert result.success is False
        assert result.message == "Invalid or expired verification token"

    async def test_verify_email_expired(self, db_session):
        registered, token = await self._register_capturing_token(db_session)
        user = await user_service.get_user_by_id(db_session, registered.user.id)
        user.email_verification_expires_at = utcnow() - timedelta(seconds=1)
        db_session.add(user)
        await db_session.commit()

        result = await auth_service.verify_email(db_session, token)

        assert result.success is False


@pytest.mark.asyncio
class TestReads:

    async def test_get_current_user_hides_inactive(self, db_session, inactive_user):
        assert await auth_service.get_current_user(db_session, inactive_user.id) is None

    async def test_get_user_sessions(self, db_session):
        user = await make_user(db_session, "r@test.com", "reader", CLIENT_PASSWORD, Role.COACH)
        await auth_service.login(db_session, "r@test.com", CLIENT_PASSWORD)

        sessions = await auth_service.get_user_sessions(db_session, user.id)

        assert len(sessions) == 1
        assert isinstance(user, User)
