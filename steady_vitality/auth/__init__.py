"""
Steady Vitality - Authentication Package

Authentication and session lifecycle with:
- Hybrid JWT + server-side sessions
- bcrypt password hashing with strength policy
- Email verification and password reset via hashed one-time tokens
- Role gating with admin escalation (auth.dependencies)
"""

from steady_vitality.auth.models import User, Session, Role
from steady_vitality.auth.tokens import create_access_token, verify_access_token

__all__ = [
    "User",
    "Session",
    "Role",
    "create_access_token",
    "verify_access_token",
]
