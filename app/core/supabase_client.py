"""
Supabase client
"""

import asyncio
import logging
from typing import Optional

from supabase import AsyncClient, acreate_client

from app.config import get_settings

logger = logging.getLogger(__name__)


class SupabaseClient:
    """Singleton holder for the async Supabase client (used for realtime channels)"""

    _instance: Optional[AsyncClient] = None
    _lock: Optional[asyncio.Lock] = None

    @classmethod
    async def get_client(cls) -> AsyncClient:
        """Get the async Supabase client singleton"""
        if cls._instance is not None:
            return cls._instance

        if cls._lock is None:
            cls._lock = asyncio.Lock()

        async with cls._lock:
            if cls._instance is None:
                settings = get_settings()
                url = settings.supabase_url
                key = settings.supabase_service_key

                if not url or not key:
                    logger.error("Supabase URL or key not set in environment variables.")
                    raise ValueError("Supabase URL or key not set in environment variables.")

                cls._instance = await acreate_client(url, key)
                logger.info("Supabase realtime client created for %s", url)

        return cls._instance


async def supabase_client() -> AsyncClient:
    """Get the async Supabase client"""
    return await SupabaseClient.get_client()
