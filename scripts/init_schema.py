"""
Create the team_invitations table (and its indexes) if it does not exist.

Usage:
    python scripts/init_schema.py
"""

import asyncio
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parent.parent))

from app.db import session as db_session  # noqa: E402
from app.models import Base  # noqa: E402


async def main() -> int:
    if db_session.engine is None:
        print("Database engine could not be created; check DATABASE_URL", file=sys.stderr)
        return 1

    async with db_session.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await db_session.engine.dispose()

    print("Tables ready:", ", ".join(sorted(Base.metadata.tables)))
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
