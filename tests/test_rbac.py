"""
Steady Vitality - RBAC Tests

Unit tests for role-based access control.
Tests capability grants, policy loading, role gates and the
permission decorator.

Run with: pytest tests/test_rbac.py
"""

from types import SimpleNamespace
from uuid import uuid4

import pytest
from fastapi import Depends, FastAPI, HTTPException
from httpx import ASGITransport, AsyncClient

from steady_vitality.auth.dependencies import (
    AuthContext,
    require_admin,
    require_coach,
    require_email_verified,
    require_roles,
)
from steady_vitality.auth.models import Role
from steady_vitality.gateway.rbac import (
    Permission,
    RBACPolicy,
    require_permission,
    role_allows,
)
from tests.conftest import (
    ADMIN_PASSWORD,
    CLIENT_PASSWORD,
    COACH_PASSWORD,
    login_headers,
)


class TestRBACPolicy:
    """Tests for RBAC policy enforcement."""

    def test_admin_has_all_permissions(self):
        """Admin holds every capability without being listed."""
        policy = RBACPolicy()

        for permission in Permission:
            assert policy.has_permission("admin", permission)
            assert policy.has_permission(Role.ADMIN, permission)

        assert policy.get_role_permissions(Role.ADMIN) == {p.value for p in Permission}

    def test_coach_permissions(self):
        policy = RBACPolicy()

        assert policy.has_permission(Role.COACH, Permission.CREATE_ASSIGNMENT)
        assert policy.has_permission(Role.COACH, Permission.MANAGE_ASSIGNMENT)
        assert policy.has_permission(Role.COACH, Permission.VIEW_WORKLOAD)

        assert not policy.has_permission(Role.COACH, Permission.RATE_ASSIGNMENT)

    def test_client_permissions(self):
        """Clients can view and rate, nothing else."""
        policy = RBACPolicy()

        assert policy.get_role_permissions("client") == {
            Permission.VIEW_ASSIGNMENT.value,
            Permission.RATE_ASSIGNMENT.value,
        }
        assert not policy.has_permission("client", Permission.CREATE_ASSIGNMENT)
        assert not policy.has_permission("client", Permission.VIEW_WORKLOAD)

    def test_unknown_role_denied(self):
        """Unknown roles should be denied all permissions."""
        policy = RBACPolicy()

        assert not policy.has_permission("unknown_role", Permission.VIEW_ASSIGNMENT)
        assert policy.get_role_permissions("unknown_role") == set()

    def test_singleton(self):
        assert RBACPolicy() is RBACPolicy()

    def test_missing_policy_file_denies(self, tmp_path):
        policy = RBACPolicy()
        saved = policy._policies
        try:
            policy._load_policies(tmp_path / "absent.yaml")

            assert not policy.has_permission(Role.COACH, Permission.VIEW_ASSIGNMENT)
            assert policy.has_permission(Role.ADMIN, Permission.VIEW_ASSIGNMENT)
        finally:
            policy._policies = saved


class TestRoleAllows:

    @pytest.mark.parametrize(
        "role,allowed,expected",
        [
            (Role.COACH, [Role.COACH], True),
            (Role.CLIENT, [Role.COACH], False),
            (Role.ADMIN, [Role.COACH], True),
            (Role.ADMIN, [], True),
            (Role.CLIENT, [Role.CLIENT, Role.COACH], True),
            (Role.COACH, [], False),
        ],
    )
    def test_role_allows(self, role, allowed, expected):
        assert role_allows(role, allowed) is expected


def _fake_auth(role: Role):
    return SimpleNamespace(user=SimpleNamespace(id=uuid4(), role=role))


@pytest.mark.asyncio
class TestPermissionDecorator:
    """Tests for permission decorator."""

    async def test_authorized_user_allowed(self):
        """Authorized users should pass permission check."""
        @require_permission(Permission.CREATE_ASSIGNMENT)
        async def handler(auth=None):
            return "created"

        assert await handler(auth=_fake_auth(Role.COACH)) == "created"

    async def test_unauthorized_user_denied(self):
        """Unauthorized users should be denied."""
        @require_permission(Permission.CREATE_ASSIGNMENT)
        async def handler(auth=None):
            return "created"

        with pytest.raises(HTTPException) as exc_info:
            await handler(auth=_fake_auth(Role.CLIENT))

        assert exc_info.value.status_code == 403
        assert exc_info.value.detail["code"] == "INSUFFICIENT_PERMISSIONS"

    async def test_missing_auth_is_401(self):
        @require_permission(Permission.VIEW_ASSIGNMENT)
        async def handler(auth=None):
            return "ok"

        with pytest.raises(HTTPException) as exc_info:
            await handler()

        assert exc_info.value.status_code == 401
        assert exc_info.value.detail["code"] == "AUTH_REQUIRED"

    async def test_decorator_keeps_name(self):
        @require_permission(Permission.VIEW_ASSIGNMENT)
        async def list_things(auth=None):
            return []

        assert list_things.__name__ == "list_things"


@pytest.fixture
async def gated_client(client, session_factory):
    """A small app exposing one route per role gate, sharing the test database."""
    gated = FastAPI()
    gated.state.db_session_factory = session_factory

    @gated.get("/admin")
    async def admin_only(auth: AuthContext = Depends(require_admin)):
        return {"role": auth.user.role.value}

    @gated.get("/coach")
    async def coach_only(auth: AuthContext = Depends(require_coach)):
        return {"role": auth.user.role.value}

    @gated.get("/either")
    async def coach_or_client(
        auth: AuthContext = Depends(require_roles(Role.COACH, Role.CLIENT)),
    ):
        return {"role": auth.user.role.value}

    @gated.get("/verified")
    async def verified_only(auth: AuthContext = Depends(require_email_verified)):
        return {"email": auth.user.email}

    transport = ASGITransport(app=gated)
    async with AsyncClient(transport=transport, base_url="http://gated") as c:
        yield c


@pytest.mark.asyncio
class TestRoleGates:

    async def test_coach_route_allows_coach(self, client, gated_client, test_coach):
        headers = await login_headers(client, "coach@test.com", COACH_PASSWORD)

        response = await gated_client.get("/coach", headers=headers)

        assert response.status_code == 200
        assert response.json() == {"role": "coach"}

    async def test_coach_route_rejects_client(self, client, gated_client, test_client_user):
        headers = await login_headers(client, "client@test.com", CLIENT_PASSWORD)

        response = await gated_client.get("/coach", headers=headers)

        assert response.status_code == 403
        assert response.json()["detail"] == {
            "code": "INSUFFICIENT_PERMISSIONS",
            "message": "Access denied. Required roles: coach",
        }

    async def test_admin_passes_every_gate(self, client, gated_client, test_admin):
        headers = await login_headers(client, "admin@test.com", ADMIN_PASSWORD)

        for path in ("/admin", "/coach", "/either"):
            response = await gated_client.get(path, headers=headers)
            assert response.status_code == 200, path

    async def test_admin_route_rejects_coach(self, client, gated_client, test_coach):
        headers = await login_headers(client, "coach@test.com", COACH_PASSWORD)

        response = await gated_client.get("/admin", headers=headers)

        assert response.status_code == 403

    async def test_multi_role_gate(self, client, gated_client, test_client_user):
        headers = await login_headers(client, "client@test.com", CLIENT_PASSWORD)

        response = await gated_client.get("/either", headers=headers)

        assert response.status_code == 200

    async def test_gate_without_token_is_401(self, gated_client):
        response = await gated_client.get("/coach")

        assert response.status_code == 401
        assert response.json()["detail"]["code"] == "AUTH_REQUIRED"

    async def test_unverified_email_rejected(self, client, gated_client, unverified_user):
        headers = await login_headers(client, "unverified@test.com", CLIENT_PASSWORD)

        response = await gated_client.get("/verified", headers=headers)

        assert response.status_code == 403
        assert response.json()["detail"]["code"] == "EMAIL_NOT_VERIFIED"

    async def test_verified_email_allowed(self, client, gated_client, test_client_user):
        headers = await login_headers(client, "client@test.com", CLIENT_PASSWORD)

        response = await gated_client.get("/verified", headers=headers)

        assert response.status_code == 200
        assert response.json() == {"email": "client@test.com"}
