"""
Steady Vitality - Expired Session Cleanup

Deactivates sessions past their expiry. Intended for a periodic job.

Usage:
    python -m scripts.cleanup_sessions
"""

import asyncio

from steady_vitality.auth.database import get_engine, get_session_factory
from steady_vitality.auth.sessions import cleanup_expired_sessions
from steady_vitality.config import settings
from steady_vitality.log import logger


async def cleanup() -> int:
    engine = get_engine(settings.DATABASE_URL)
    factory = get_session_factory(engine)

    async with factory() as db:
        count = await cleanup_expired_sessions(db)

    await engine.dispose()
    logger.info("Deactivated {} expired session(s)", count)
    return count


if __name__ == "__main__":
    asyncio.run(cleanup())
