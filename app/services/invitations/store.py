"""
Async access to the team_invitations table.

Every status transition is a conditional UPDATE guarded by
``status = 'pending'``: whichever writer reaches the row first wins and the
other sees a row count of zero.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.contracts.invitation import PendingInvitation
from app.core.exceptions import MutationFailure, QueryFailure
from app.models.enums import InvitationStatus
from app.models.team_invitations import TeamInvitation

logger = logging.getLogger(__name__)

EXPIRING_SOON_WINDOW = timedelta(hours=24)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive timestamps coming back from the driver as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def enrich_pending(
    invitation: TeamInvitation,
    now: datetime,
    window: timedelta = EXPIRING_SOON_WINDOW,
) -> PendingInvitation:
    """Compute the expiration countdown for a pending row against ``now``."""
    remaining = as_utc(invitation.expires_at) - now
    return PendingInvitation(
        id=invitation.id,
        organization_id=invitation.organization_id,
        email=invitation.email,
        role=invitation.role,
        invited_by=invitation.invited_by,
        created_at=as_utc(invitation.created_at),
        expires_at=as_utc(invitation.expires_at),
        is_expiring_soon=remaining < window,
        hours_until_expiration=remaining.total_seconds() / 3600,
    )


class InvitationStore:
    """
    Tenant-scoped reads and guarded writes over team_invitations.

    Usage::

        store = InvitationStore(db)
        pending = await store.get_pending_invitations("org_123")
        expired = await store.mark_expired_invitations()
    """

    def __init__(
        self,
        db: AsyncSession,
        expiring_soon_window: timedelta = EXPIRING_SOON_WINDOW,
    ) -> None:
        self.db = db
        self.expiring_soon_window = expiring_soon_window

    # --------------------------
    # Reads
    # --------------------------
    async def get_pending_invitations(
        self, organization_id: str, now: Optional[datetime] = None
    ) -> List[PendingInvitation]:
        now = now or utcnow()
        stmt = (
            select(TeamInvitation)
            .where(
                TeamInvitation.organization_id == organization_id,
                TeamInvitation.status == InvitationStatus.pending.value,
            )
            .order_by(TeamInvitation.created_at.desc())
            .execution_options(populate_existing=True)
        )
        try:
            result = await self.db.execute(stmt)
        except (SQLAlchemyError, OSError) as e:
            logger.error("Failed to load pending invitations for %s: %s", organization_id, e)
            raise QueryFailure("Could not load pending invitations", detail=str(e)) from e

        return [
            enrich_pending(inv, now, self.expiring_soon_window)
            for inv in result.scalars().all()
        ]

    async def list_expiring_soon(
        self,
        now: Optional[datetime] = None,
        window: Optional[timedelta] = None,
    ) -> List[TeamInvitation]:
        """Pending rows with ``now < expires_at <= now + window``, across tenants."""
        now = now or utcnow()
        horizon = now + (window or self.expiring_soon_window)
        stmt = (
            select(TeamInvitation)
            .where(
                TeamInvitation.status == InvitationStatus.pending.value,
                TeamInvitation.expires_at > now,
                TeamInvitation.expires_at <= horizon,
            )
            .order_by(TeamInvitation.expires_at.asc())
            .execution_options(populate_existing=True)
        )
        try:
            result = await self.db.execute(stmt)
        except (SQLAlchemyError, OSError) as e:
            logger.error("Failed to load expiring invitations: %s", e)
            raise QueryFailure("Could not load expiring invitations", detail=str(e)) from e
        return list(result.scalars().all())

    async def find_pending_for_email(
        self, email: str, now: Optional[datetime] = None
    ) -> List[TeamInvitation]:
        """Unexpired pending rows addressed to ``email`` in any tenant, oldest first."""
        now = now or utcnow()
        stmt = (
            select(TeamInvitation)
            .where(
                func.lower(TeamInvitation.email) == email.strip().lower(),
                TeamInvitation.status == InvitationStatus.pending.value,
                TeamInvitation.expires_at > now,
            )
            .order_by(TeamInvitation.created_at.asc())
            .execution_options(populate_existing=True)
        )
        try:
            result = await self.db.execute(stmt)
        except (SQLAlchemyError, OSError) as e:
            logger.error("Failed to load invitations for %s: %s", email, e)
            raise QueryFailure("Could not load invitations", detail=str(e)) from e
        return list(result.scalars().all())

    # --------------------------
    # Guarded transitions
    # --------------------------
    async def _transition(self, stmt, action: str) -> int:
        try:
            result = await self.db.execute(
                stmt.execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except (SQLAlchemyError, OSError) as e:
            await self.db.rollback()
            logger.error("Failed to %s invitations: %s", action, e)
            raise MutationFailure(f"Could not {action} invitation", detail=str(e)) from e
        return result.rowcount or 0

    async def cancel(
        self,
        invitation_id: UUID,
        organization_id: str,
        now: Optional[datetime] = None,
    ) -> int:
        """Cancel a pending row owned by ``organization_id``; 0 if not found, foreign or terminal."""
        now = now or utcnow()
        stmt = (
            update(TeamInvitation)
            .where(
                TeamInvitation.id == invitation_id,
                TeamInvitation.organization_id == organization_id,
                TeamInvitation.status == InvitationStatus.pending.value,
            )
            .values(status=InvitationStatus.cancelled.value, updated_at=now)
        )
        return await self._transition(stmt, "cancel")

    async def accept(
        self,
        invitation_id: UUID,
        accepted_by: str,
        now: Optional[datetime] = None,
    ) -> int:
        now = now or utcnow()
        stmt = (
            update(TeamInvitation)
            .where(
                TeamInvitation.id == invitation_id,
                TeamInvitation.status == InvitationStatus.pending.value,
                TeamInvitation.expires_at > now,
            )
            .values(
                status=InvitationStatus.accepted.value,
                accepted_at=now,
                accepted_by=accepted_by,
                updated_at=now,
            )
        )
        return await self._transition(stmt, "accept")

    async def mark_expired_invitations(self, now: Optional[datetime] = None) -> int:
        """
        Expire every pending row whose ``expires_at`` has passed, in one
        set-based statement. Only ``status`` and ``updated_at`` change.
        """
        now = now or utcnow()
        stmt = (
            update(TeamInvitation)
            .where(
                TeamInvitation.status == InvitationStatus.pending.value,
                TeamInvitation.expires_at <= now,
            )
            .values(status=InvitationStatus.expired.value, updated_at=now)
        )
        return await self._transition(stmt, "expire")
