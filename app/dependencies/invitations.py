"""
Invitation service dependency injection.
"""

from datetime import timedelta
from typing import Any, Dict

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.dependencies.auth import get_current_organization
from app.dependencies.db import get_db
from app.dependencies.redis_client import get_redis_client
from app.services.invitations.acceptance import AcceptanceRedirector
from app.services.invitations.identity import StoreIdentityProvider
from app.services.invitations.issuer import InviteIssuerClient
from app.services.invitations.query_client import InvitationQueryClient
from app.services.invitations.store import InvitationStore
from app.services.invitations.sweeper import ExpirySweeper
from app.services.invitations.ticket_stash import TicketStash


def get_invitation_store(db: AsyncSession = Depends(get_db)) -> InvitationStore:
    """Provide InvitationStore with the configured expiring-soon window."""
    settings = get_settings()
    return InvitationStore(db, expiring_soon_window=timedelta(hours=settings.expiring_soon_hours))


def get_invite_issuer() -> InviteIssuerClient:
    settings = get_settings()
    return InviteIssuerClient(settings.invite_function_url, timeout=settings.invite_function_timeout)


def get_invitation_query_client(
    user: Dict[str, Any] = Depends(get_current_organization),
    store: InvitationStore = Depends(get_invitation_store),
    issuer: InviteIssuerClient = Depends(get_invite_issuer),
) -> InvitationQueryClient:
    """Provide a query client scoped to the caller's organization."""
    return InvitationQueryClient(
        store=store,
        organization_id=user["organization_id"],
        issuer=issuer,
        organization_name=user.get("organization_name"),
        bearer_token=user.get("token"),
    )


def get_expiry_sweeper(store: InvitationStore = Depends(get_invitation_store)) -> ExpirySweeper:
    settings = get_settings()
    return ExpirySweeper(store, expiring_soon_window=timedelta(hours=settings.expiring_soon_hours))


def get_ticket_stash(redis=Depends(get_redis_client)) -> TicketStash:
    settings = get_settings()
    return TicketStash(
        redis,
        ttl_seconds=settings.ticket_stash_ttl_seconds,
        resolution_ttl_seconds=settings.session_resolution_ttl_seconds,
    )


def get_acceptance_redirector(
    store: InvitationStore = Depends(get_invitation_store),
    stash: TicketStash = Depends(get_ticket_stash),
) -> AcceptanceRedirector:
    """A fresh redirector per sign-in event."""
    settings = get_settings()
    return AcceptanceRedirector(
        identity=StoreIdentityProvider(store),
        stash=stash,
        acceptance_path=settings.acceptance_path,
        post_accept_redirect=settings.post_accept_redirect,
        ticket_ttl_seconds=settings.ticket_stash_ttl_seconds,
    )
