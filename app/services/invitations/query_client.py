"""
Query/mutation client over one organization's invitations.
"""

import logging
from datetime import datetime
from typing import Callable, List, Optional
from uuid import UUID

from app.contracts.invitation import (
    InvitationStatusInfo,
    InviteItem,
    InviteRequest,
    InviteResponse,
    PendingInvitation,
)
from app.core.exceptions import PartialInviteFailure, QueryFailure, ResendFailure
from app.models.enums import InvitationRole
from app.services.invitations.issuer import InviteIssuerClient
from app.services.invitations.store import InvitationStore, utcnow

logger = logging.getLogger(__name__)

REFRESH_INTERVAL_SECONDS = 60


class InvitationQueryClient:
    """
    Presents the caller's pending invitations and mediates cancel/resend.

    ``pending_invitations`` is the last-fetched set. It is replaced wholesale
    on every successful fetch and left untouched when a fetch fails, so a
    failure never reads as "no invitations".
    """

    def __init__(
        self,
        store: InvitationStore,
        organization_id: Optional[str],
        issuer: Optional[InviteIssuerClient] = None,
        organization_name: Optional[str] = None,
        bearer_token: Optional[str] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.organization_id = organization_id
        self.organization_name = organization_name
        self.issuer = issuer
        self.bearer_token = bearer_token
        self.clock = clock
        self.pending_invitations: List[PendingInvitation] = []

    def _require_scope(self) -> str:
        if not self.organization_id:
            raise QueryFailure("No organization in scope")
        return self.organization_id

    async def list_pending(self, organization_id: Optional[str] = None) -> List[PendingInvitation]:
        """Fetch the tenant's pending invitations and cache them."""
        if organization_id is not None and organization_id != self.organization_id:
            raise QueryFailure("Organization is outside the caller's scope")
        org_id = self._require_scope()

        invitations = await self.store.get_pending_invitations(org_id, now=self.clock())
        self.pending_invitations = invitations
        return invitations

    async def cancel(self, invitation_id: UUID) -> bool:
        """
        Cancel a pending invitation in the caller's tenant.

        Returns False when nothing changed (unknown id, foreign tenant or an
        already terminal row). The cache is re-fetched either way.
        """
        org_id = self._require_scope()
        affected = await self.store.cancel(invitation_id, org_id, now=self.clock())
        if not affected:
            logger.info("Cancel of invitation %s in %s affected no rows", invitation_id, org_id)
        await self.list_pending()
        return affected > 0

    async def resend(self, email: str, role: InvitationRole) -> InviteResponse:
        """
        Ask the invite-issuing function to send ``email`` a fresh invitation.

        Raises:
            ResendFailure: the issuing function could not be reached or refused.
            PartialInviteFailure: the function answered but reported errors.
        """
        org_id = self._require_scope()
        if self.issuer is None:
            raise ResendFailure("Invite function is not configured")

        request = InviteRequest(
            organization_id=org_id,
            organization_name=self.organization_name,
            invitations=[InviteItem(email=email, role=role)],
            is_resend=True,
        )
        response = await self.issuer.issue(request, self.bearer_token or "")

        try:
            await self.list_pending()
        except QueryFailure as e:
            logger.warning("Refresh after resend failed: %s", e)

        if response.errors:
            raise PartialInviteFailure(
                response.message or "Some invitations could not be sent",
                results=response.results,
                errors=response.errors,
            )
        return response

    def _find(self, email: str) -> Optional[PendingInvitation]:
        needle = email.strip().lower()
        for invitation in self.pending_invitations:
            if invitation.email.lower() == needle:
                return invitation
        return None

    def has_pending_invitation(self, email: str) -> bool:
        return self._find(email) is not None

    def get_invitation_status(self, email: str) -> Optional[InvitationStatusInfo]:
        invitation = self._find(email)
        if invitation is None:
            return None
        return InvitationStatusInfo(
            is_pending=True,
            is_expiring_soon=invitation.is_expiring_soon,
            hours_until_expiration=invitation.hours_until_expiration,
            expires_at=invitation.expires_at,
        )
