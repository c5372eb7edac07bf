"""
Live view of one organization's pending invitations.

Realtime events are a best-effort invalidation signal; a fixed-interval
poll is the backstop that keeps expiration countdowns current and catches
anything the channel dropped. Both trigger the same refresh.
"""

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, List, Optional, Set

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.contracts.invitation import PendingInvitation
from app.core.exceptions import QueryFailure
from app.services.invitations.query_client import REFRESH_INTERVAL_SECONDS
from app.services.invitations.realtime import RealtimeChangeListener
from app.services.invitations.store import InvitationStore, utcnow

logger = logging.getLogger(__name__)

UpdateCallback = Callable[[List[PendingInvitation]], Awaitable[None]]
ListenerFactory = Callable[[Callable[[dict], None]], RealtimeChangeListener]


class PendingInvitationsView:
    """
    Keeps ``snapshot`` in sync with the store for ``organization_id``.

    Overlapping refreshes (poll tick + realtime event) are keyed by a
    request counter: only the most recently started refresh may publish, so
    out-of-order completions never roll the snapshot back. After ``close()``
    nothing is published and the realtime channel is released.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        organization_id: str,
        on_update: UpdateCallback,
        listener_factory: Optional[ListenerFactory] = None,
        refresh_interval: float = REFRESH_INTERVAL_SECONDS,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.session_factory = session_factory
        self.organization_id = organization_id
        self.on_update = on_update
        self.refresh_interval = refresh_interval
        self.clock = clock
        self.snapshot: List[PendingInvitation] = []
        self.last_error: Optional[QueryFailure] = None

        self._listener = listener_factory(self._on_change) if listener_factory else None
        self._latest_request = 0
        self._closed = False
        self._poll_task: Optional[asyncio.Task] = None
        self._refresh_tasks: Set[asyncio.Task] = set()

    @property
    def closed(self) -> bool:
        return self._closed

    async def open(self) -> None:
        if self._listener is not None:
            await self._listener.subscribe(self.organization_id)
        else:
            logger.warning("Realtime disabled; %s relies on polling only", self.organization_id)
        self._poll_task = asyncio.create_task(self._poll_loop())
        await self.refresh()

    async def refresh(self) -> bool:
        """
        Fetch the pending set. Returns True if this fetch was published.
        A failed fetch leaves the previous snapshot in place.
        """
        if self._closed:
            return False

        self._latest_request += 1
        request_id = self._latest_request
        organization_id = self.organization_id

        try:
            async with self.session_factory() as db:
                invitations = await InvitationStore(db).get_pending_invitations(
                    organization_id, now=self.clock()
                )
        except QueryFailure as e:
            if request_id == self._latest_request:
                self.last_error = e
            logger.warning("Pending invitation refresh for %s failed: %s", organization_id, e)
            return False

        if self._closed or request_id != self._latest_request:
            return False

        self.snapshot = invitations
        self.last_error = None
        await self.on_update(invitations)
        return True

    async def switch_organization(self, organization_id: str) -> None:
        if organization_id == self.organization_id:
            return
        # In-flight refreshes for the old tenant must not publish
        self._latest_request += 1
        self.organization_id = organization_id
        self.snapshot = []
        if self._listener is not None:
            await self._listener.switch_organization(organization_id)
        await self.refresh()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True

        tasks = list(self._refresh_tasks)
        if self._poll_task is not None:
            tasks.append(self._poll_task)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._refresh_tasks.clear()
        self._poll_task = None

        if self._listener is not None:
            await self._listener.close()
        logger.info("Closed pending invitation view for %s", self.organization_id)

    def _on_change(self, payload: dict) -> None:
        if self._closed:
            return
        task = asyncio.get_running_loop().create_task(self.refresh())
        self._refresh_tasks.add(task)
        task.add_done_callback(self._refresh_tasks.discard)

    async def _poll_loop(self) -> None:
        while not self._closed:
            await asyncio.sleep(self.refresh_interval)
            await self.refresh()
