"""
Scheduled function routes — POST /cleanup-expired-invitations
"""

import logging

from fastapi import APIRouter, Depends, Header, HTTPException
from fastapi.responses import JSONResponse

from app.config import get_settings
from app.contracts.invitation import SweepResponse
from app.core.exceptions import SweepFailure
from app.dependencies.invitations import get_expiry_sweeper
from app.services.invitations.sweeper import ExpirySweeper

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/cleanup-expired-invitations", response_model=SweepResponse)
async def cleanup_expired_invitations(
    sweeper: ExpirySweeper = Depends(get_expiry_sweeper),
    x_api_key: str = Header(...),
):
    """
    Expire stale pending invitations. Idempotent; the external scheduler owns retries.
    """
    settings = get_settings()
    if not settings.cron_api_key or x_api_key != settings.cron_api_key:
        raise HTTPException(status_code=401, detail="Invalid API key")

    try:
        summary = await sweeper.run()
    except SweepFailure as e:
        logger.error("Error in cleanup-expired-invitations: %s (%s)", e.message, e.detail)
        return JSONResponse(status_code=500, content={"error": e.detail or e.message})

    return SweepResponse(
        success=True,
        expired=summary.expired_count,
        expiring_soon=summary.expiring_soon_count,
        message="Successfully processed invitation cleanup",
    )
