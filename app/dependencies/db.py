"""
This module contains the database dependencies.
"""
import logging
from typing import AsyncGenerator

from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.db import session as db_session

logger = logging.getLogger(__name__)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for getting async database session.
    """
    if db_session.async_session is None:
        raise HTTPException(status_code=503, detail="Database is not configured")

    db = db_session.async_session()
    try:
        yield db
    except Exception as e:
        logger.error("Database operation failed: %s", e)
        raise
    finally:
        try:
            await db.close()
        except Exception as e:
            logger.error("Failed to close DB session: %s", e)
