"""
Identity provider seam for invitation acceptance.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List
from uuid import UUID

from app.services.invitations.store import InvitationStore, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutstandingInvitation:
    id: UUID
    organization_id: str
    email: str
    role: str


class IIdentityProvider(ABC):
    @abstractmethod
    async def list_outstanding_invitations(self, user: Dict[str, Any]) -> List[OutstandingInvitation]:
        """Invitations addressed to the signed-in user that are still open, oldest first."""
        pass

    @abstractmethod
    async def accept(self, invitation: OutstandingInvitation, user: Dict[str, Any]) -> bool:
        """Accept one invitation. False means another writer got there first."""
        pass


class StoreIdentityProvider(IIdentityProvider):
    """
    Resolves outstanding invitations from team_invitations by the user's
    email and accepts them with the store's guarded transition.
    """

    def __init__(self, store: InvitationStore, clock: Callable[[], datetime] = utcnow) -> None:
        self.store = store
        self.clock = clock

    async def list_outstanding_invitations(self, user: Dict[str, Any]) -> List[OutstandingInvitation]:
        email = (user.get("email") or "").strip()
        if not email:
            return []
        rows = await self.store.find_pending_for_email(email, now=self.clock())
        return [
            OutstandingInvitation(
                id=row.id,
                organization_id=row.organization_id,
                email=row.email,
                role=row.role,
            )
            for row in rows
        ]

    async def accept(self, invitation: OutstandingInvitation, user: Dict[str, Any]) -> bool:
        affected = await self.store.accept(
            invitation.id, accepted_by=str(user.get("id") or ""), now=self.clock()
        )
        if not affected:
            logger.info("Invitation %s was no longer pending at accept time", invitation.id)
        return affected > 0
