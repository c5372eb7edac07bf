"""
Invitation routes — GET /pending, GET /status, POST /{id}/cancel, POST /resend,
POST /tickets, POST /session/resolve, POST /session/reset, WS /live
"""

import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from app.config import get_settings
from app.contracts.invitation import (
    AcceptanceDecision,
    CancelResponse,
    InvitationStatusInfo,
    InviteResponse,
    PendingInvitation,
    ResendRequest,
    TicketStashRequest,
)
from app.core.exceptions import MutationFailure, PartialInviteFailure, QueryFailure, ResendFailure
from app.core.supabase_client import supabase_client
from app.db import session as db_session
from app.dependencies.auth import get_current_user, get_websocket_user
from app.dependencies.invitations import (
    get_acceptance_redirector,
    get_invitation_query_client,
    get_ticket_stash,
)
from app.services.invitations.acceptance import AcceptanceRedirector
from app.services.invitations.live_view import PendingInvitationsView
from app.services.invitations.query_client import InvitationQueryClient
from app.services.invitations.realtime import RealtimeChangeListener
from app.services.invitations.ticket_stash import TicketStash

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/pending", response_model=List[PendingInvitation])
async def list_pending_invitations(
    client: InvitationQueryClient = Depends(get_invitation_query_client),
):
    try:
        return await client.list_pending()
    except QueryFailure as e:
        raise HTTPException(status_code=503, detail=e.message)


@router.get("/status", response_model=Optional[InvitationStatusInfo])
async def get_invitation_status(
    email: str = Query(..., min_length=3),
    client: InvitationQueryClient = Depends(get_invitation_query_client),
):
    """Status of the pending invitation for ``email``, or null when there is none."""
    try:
        await client.list_pending()
    except QueryFailure as e:
        raise HTTPException(status_code=503, detail=e.message)
    return client.get_invitation_status(email)


@router.post("/{invitation_id}/cancel", response_model=CancelResponse)
async def cancel_invitation(
    invitation_id: UUID,
    client: InvitationQueryClient = Depends(get_invitation_query_client),
):
    try:
        cancelled = await client.cancel(invitation_id)
    except (QueryFailure, MutationFailure) as e:
        raise HTTPException(status_code=503, detail=e.message)
    return CancelResponse(cancelled=cancelled)


@router.post("/resend", response_model=InviteResponse)
async def resend_invitation(
    payload: ResendRequest,
    client: InvitationQueryClient = Depends(get_invitation_query_client),
):
    try:
        return await client.resend(payload.email, payload.role)
    except PartialInviteFailure as e:
        body = InviteResponse(
            success=bool(e.results),
            results=e.results,
            errors=e.errors,
            message=e.message,
        )
        return JSONResponse(status_code=207, content=jsonable_encoder(body))
    except ResendFailure as e:
        logger.error("Resend to %s failed: %s (%s)", payload.email, e.message, e.detail)
        raise HTTPException(status_code=502, detail={"message": e.message, "upstream": e.detail})
    except QueryFailure as e:
        raise HTTPException(status_code=503, detail=e.message)


@router.post("/tickets", status_code=204)
async def stash_invitation_ticket(
    payload: TicketStashRequest,
    x_session_id: str = Header(..., min_length=8),
    stash: TicketStash = Depends(get_ticket_stash),
):
    """Hold an invitation ticket for this browser session until sign-in completes."""
    await stash.stash(x_session_id, payload.ticket, payload.status)


@router.post("/session/resolve", response_model=AcceptanceDecision)
async def resolve_invitation_session(
    current_path: str = Query("/"),
    x_session_id: Optional[str] = Header(None),
    user: Dict[str, Any] = Depends(get_current_user),
    redirector: AcceptanceRedirector = Depends(get_acceptance_redirector),
):
    """Called once after sign-in; tells the client where to go next, if anywhere."""
    return await redirector.on_sign_in(user, x_session_id, current_path)


@router.post("/session/reset", status_code=204)
async def reset_invitation_session(
    x_session_id: str = Header(..., min_length=8),
    user: Dict[str, Any] = Depends(get_current_user),
    redirector: AcceptanceRedirector = Depends(get_acceptance_redirector),
):
    """Forget how this session's sign-in was resolved; called on sign-out."""
    await redirector.reset(x_session_id)


async def _listener_factory():
    settings = get_settings()
    if not settings.supabase_url or not settings.supabase_service_key:
        return None
    client = await supabase_client()
    return lambda on_change: RealtimeChangeListener(client, on_change)


@router.websocket("/live")
async def live_pending_invitations(websocket: WebSocket, token: Optional[str] = None):
    """Push the pending set to the client whenever it changes."""
    user = await get_websocket_user(token)
    if not user or not user.get("organization_id"):
        await websocket.close(code=1008)
        return
    if db_session.async_session is None:
        await websocket.close(code=1011)
        return

    await websocket.accept()

    async def push(invitations: List[PendingInvitation]) -> None:
        await websocket.send_json(jsonable_encoder(invitations))

    settings = get_settings()
    view = PendingInvitationsView(
        session_factory=db_session.async_session,
        organization_id=user["organization_id"],
        on_update=push,
        listener_factory=await _listener_factory(),
        refresh_interval=settings.pending_refresh_seconds,
    )
    try:
        await view.open()
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info("Live invitation socket closed for %s", user["organization_id"])
    finally:
        await view.close()
