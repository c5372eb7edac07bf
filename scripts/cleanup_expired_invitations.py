"""
Invitation cleanup - expire stale pending invitations once and exit

Intended for an external scheduler (cron, Cloud Scheduler, pg_cron shell
hook). A non-zero exit code tells the scheduler to retry.

Usage:
    python scripts/cleanup_expired_invitations.py

Environment Variables Required:
    DATABASE_URL - asyncpg connection string for the invitations database
"""

import asyncio
import logging
import sys
from datetime import timedelta
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parent.parent))

from app.config import get_settings  # noqa: E402
from app.core.exceptions import SweepFailure  # noqa: E402
from app.db import session as db_session  # noqa: E402
from app.services.invitations.store import InvitationStore  # noqa: E402
from app.services.invitations.sweeper import ExpirySweeper  # noqa: E402

logger = logging.getLogger("cleanup_expired_invitations")


async def main() -> int:
    if db_session.async_session is None:
        logger.error("Database engine could not be created; check DATABASE_URL")
        return 1

    settings = get_settings()
    window = timedelta(hours=settings.expiring_soon_hours)

    try:
        async with db_session.async_session() as db:
            sweeper = ExpirySweeper(
                InvitationStore(db, expiring_soon_window=window),
                expiring_soon_window=window,
            )
            summary = await sweeper.run()
    except SweepFailure as e:
        logger.error("Sweep failed: %s (%s)", e.message, e.detail)
        return 1
    finally:
        if db_session.engine is not None:
            await db_session.engine.dispose()

    print(f"Expired: {summary.expired_count}")
    print(f"Expiring soon: {summary.expiring_soon_count}")
    return 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    sys.exit(asyncio.run(main()))
