"""
Steady Vitality - Role-Based Access Control (RBAC)

Role checks and capability grants for route handlers.
Capabilities are defined in policies.yaml and enforced at the route level.

Security:
- Deny-by-default: capabilities require an explicit grant
- Admin is the one explicit escalation: it satisfies every role check
  and holds every capability
"""

from enum import Enum
from functools import wraps
from pathlib import Path
from typing import Dict, Iterable, Optional, Set, Union

import yaml
from fastapi import HTTPException, status

from steady_vitality.auth.models import Role
from steady_vitality.log import logger


POLICY_PATH = Path(__file__).parent / "policies.yaml"


class Permission(str, Enum):
    """Capabilities, resource:action."""
    # Assignments
    CREATE_ASSIGNMENT = "assignments:create"
    MANAGE_ASSIGNMENT = "assignments:manage"
    VIEW_ASSIGNMENT = "assignments:view"
    RATE_ASSIGNMENT = "assignments:rate"
    VIEW_WORKLOAD = "workload:view"


def role_allows(role: Role, allowed: Iterable[Role]) -> bool:
    """True if ``role`` is listed or is admin."""
    return role == Role.ADMIN or role in set(allowed)


class RBACPolicy:
    """
    Manages role-to-capability mappings loaded from policies.yaml.

    Singleton; the file is read once per process.
    """

    _instance: Optional["RBACPolicy"] = None
    _policies: Dict[str, Set[str]] = {}

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._load_policies()
        return cls._instance

    def _load_policies(self, path: Path = POLICY_PATH):
        if not path.exists():
            logger.warning("RBAC policy file {} missing, denying all capabilities", path)
            self._policies = {}
            return

        with open(path, "r") as f:
            config = yaml.safe_load(f) or {}

        self._policies = {
            role: set(perms or [])
            for role, perms in config.get("roles", {}).items()
        }

    def has_permission(self, role: Union[Role, str], permission: Permission) -> bool:
        """
        Check if a role holds a capability.

        Args:
            role: User's role (enum or its string value)
            permission: Required capability

        Returns:
            True if permitted, False otherwise (admin always True)
        """
        name = _role_name(role)
        if name == Role.ADMIN.value:
            return True
        return permission.value in self._policies.get(name, set())

    def get_role_permissions(self, role: Union[Role, str]) -> Set[str]:
        name = _role_name(role)
        if name == Role.ADMIN.value:
            return {p.value for p in Permission}
        return set(self._policies.get(name, set()))


def _role_name(role: Union[Role, str]) -> str:
    return role.value if isinstance(role, Role) else role


def require_permission(permission: Permission):
    """
    Decorator to enforce a capability on a route.

    The route must receive the caller as ``auth`` (an AuthContext).

    Usage:
        @router.post("/assignments")
        @require_permission(Permission.CREATE_ASSIGNMENT)
        async def create(..., auth: AuthContext = Depends(get_current_user)):
            ...
    """
    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            auth = kwargs.get("auth")

            if auth is None:
                raise HTTPException(
                    status_code=status.HTTP_401_UNAUTHORIZED,
                    detail={"code": "AUTH_REQUIRED", "message": "Authentication required"},
                )

            if not RBACPolicy().has_permission(auth.user.role, permission):
                logger.bind(
                    event="auth.permission.denied",
                    user_id=str(auth.user.id),
                    permission=permission.value,
                ).info("Permission denied")
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail={
                        "code": "INSUFFICIENT_PERMISSIONS",
                        "message": f"Permission denied: {permission.value}",
                    },
                )

            return await func(*args, **kwargs)
        return wrapper
    return decorator
