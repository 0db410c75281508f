"""
Steady Vitality - Database Seed Script

Creates the default admin account and, optionally, demo coach/client
accounts with a sample assignment for development.

Usage:
    python -m scripts.seed_users
    python -m scripts.seed_users --demo
"""

import argparse
import asyncio

from sqlmodel import select

from steady_vitality.assignments import service as assignment_service
from steady_vitality.assignments.models import AssignmentType
from steady_vitality.auth.database import get_engine, get_session_factory, init_db
from steady_vitality.auth.models import Role, User
from steady_vitality.auth.password import hash_password
from steady_vitality.config import settings
from steady_vitality.log import logger


DEMO_USERS = [
    ("coach@steadyvitality.com", "coach", "Casey", "Coach", "Coach123!", Role.COACH),
    ("client@steadyvitality.com", "client", "Jordan", "Client", "Client123!", Role.CLIENT),
]


async def _ensure_user(db, email, username, first_name, last_name, password, role) -> User:
    existing = (await db.exec(select(User).where(User.email == email))).first()
    if existing:
        logger.info("User {} already exists", email)
        return existing

    user = User(
        email=email,
        username=username,
        first_name=first_name,
        last_name=last_name,
        password_hash=hash_password(password),
        role=role,
        is_active=True,
        is_email_verified=True,
    )
    db.add(user)
    await db.commit()
    logger.info("Created user {} ({})", email, role.value)
    return user


async def seed(demo: bool) -> None:
    engine = get_engine(settings.DATABASE_URL)
    await init_db(engine)
    factory = get_session_factory(engine)

    async with factory() as db:
        admin = await _ensure_user(
            db,
            settings.DEFAULT_ADMIN_EMAIL,
            settings.DEFAULT_ADMIN_USERNAME,
            "System",
            "Administrator",
            settings.DEFAULT_ADMIN_PASSWORD,
            Role.ADMIN,
        )

        if demo:
            coach, client = [await _ensure_user(db, *row) for row in DEMO_USERS]
            if not await assignment_service.is_coach_of(db, coach.id, client.id):
                await assignment_service.create_assignment(
                    db,
                    coach_id=coach.id,
                    trainee_id=client.id,
                    assignment_type=AssignmentType.FULL_PROGRAM,
                    assigned_by=admin.id,
                    reason="Demo assignment",
                )

    await engine.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed Steady Vitality accounts")
    parser.add_argument("--demo", action="store_true", help="Also create demo coach and client")
    args = parser.parse_args()
    asyncio.run(seed(args.demo))


if __name__ == "__main__":
    main()
