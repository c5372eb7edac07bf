from fastapi import HTTPException, Request
from redis.asyncio import Redis


def get_redis_client(request: Request) -> Redis:
    redis = getattr(request.app.state, "redis_client", None)
    if redis is None:
        raise HTTPException(status_code=503, detail="Redis client not initialized.")
    return redis
