"""
Expiry sweep for team invitations.

Runs on an external schedule. Expiry is one set-based conditional UPDATE,
so a run either commits completely or not at all; retries belong to the
scheduler.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Callable, Optional

from app.contracts.invitation import SweepSummary
from app.core.exceptions import InvitationError, SweepFailure
from app.models.team_invitations import TeamInvitation
from app.services.invitations.store import EXPIRING_SOON_WINDOW, InvitationStore, as_utc, utcnow

logger = logging.getLogger(__name__)


class IReminderNotifier(ABC):
    @abstractmethod
    async def notify_expiring(self, invitation: TeamInvitation) -> None:
        """Send a reminder for an invitation that expires soon."""
        pass


class LoggingReminderNotifier(IReminderNotifier):
    """Default notifier: records each expiring invitation in the log."""

    async def notify_expiring(self, invitation: TeamInvitation) -> None:
        logger.info(
            "Invitation to %s expires at %s",
            invitation.email,
            as_utc(invitation.expires_at).isoformat(),
        )


class ExpirySweeper:
    def __init__(
        self,
        store: InvitationStore,
        notifier: Optional[IReminderNotifier] = None,
        expiring_soon_window: timedelta = EXPIRING_SOON_WINDOW,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.notifier = notifier or LoggingReminderNotifier()
        self.expiring_soon_window = expiring_soon_window
        self.clock = clock

    async def run(self, now: Optional[datetime] = None) -> SweepSummary:
        """
        Expire stale pending invitations and report those expiring soon.

        Raises:
            SweepFailure: the store could not be reached; nothing was committed
                or the report could not be produced.
        """
        now = now or self.clock()

        try:
            expired_count = await self.store.mark_expired_invitations(now=now)
            logger.info("Marked %d invitations as expired", expired_count)

            expiring_soon = await self.store.list_expiring_soon(
                now=now, window=self.expiring_soon_window
            )
        except InvitationError as e:
            logger.error("Invitation sweep failed: %s", e)
            raise SweepFailure("Invitation sweep failed", detail=e.detail or str(e)) from e

        if expiring_soon:
            logger.info("Found %d invitations expiring soon", len(expiring_soon))
        for invitation in expiring_soon:
            try:
                await self.notifier.notify_expiring(invitation)
            except Exception as e:
                logger.error("Reminder for invitation %s failed: %s", invitation.id, e)

        return SweepSummary(
            expired_count=expired_count,
            expiring_soon_count=len(expiring_soon),
        )
