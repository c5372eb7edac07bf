"""
Main application file
"""

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from redis.asyncio import Redis

from app.api.routes.api.invitations import router as invitations_router
from app.api.routes.functions import router as functions_router
from app.config import get_settings

# Load environment variables from .env file
load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# --- Lifespan handler ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    redis_client = None
    settings = get_settings()

    try:
        # --- 1) Connect to Redis (ticket stash) ---
        if settings.redis_url:
            logger.info("Initializing Redis…")
            try:
                redis_client = Redis.from_url(settings.redis_url, decode_responses=True)
                await redis_client.ping()
                app.state.redis_client = redis_client
                logger.info("Redis connection successful.")
            except Exception as e:
                logger.error("Redis connection failed: %s", e)
                raise RuntimeError("Failed to connect to Redis") from e
        else:
            logger.warning("REDIS_URL not set; invitation tickets cannot be stashed.")

        yield

    finally:
        # --- 2) Shutdown cleanup ---
        if redis_client:
            try:
                await redis_client.aclose()
                logger.info("Redis connection closed.")
            except Exception as e:
                logger.error("Error closing Redis connection: %s", e)


app = FastAPI(lifespan=lifespan)

allowed_origins = [
    "http://localhost:3000",
    "http://localhost:5173",
]

# Add FRONTEND_URL from environment if set
frontend_url = get_settings().frontend_url
if frontend_url and frontend_url not in allowed_origins:
    allowed_origins.append(frontend_url)

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
def root():
    return {"status": "ok"}

app.include_router(
    invitations_router,
    prefix="/api/invitations",
    tags=["invitations"],
)

app.include_router(
    functions_router,
    prefix="/functions",
    tags=["functions"],
)
