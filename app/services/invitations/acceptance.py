"""
Post-sign-in invitation acceptance.

Two entry paths lead to an accepted invitation:

1. The identity provider already knows about open invitations for the
   signed-in user. The first one (snapshot order) is accepted and the user
   is sent to the landing page flagged as arriving from an invite. Any
   others stay pending for manual handling.
2. An invitation link was opened before sign-in and its ticket was stashed.
   If the ticket is still fresh the user is forwarded to the acceptance page
   with it; stale or unreadable tickets are dropped without telling the user.

The machine settles once per sign-in and does not fire again until ``reset``.
The settled decision is also recorded per session in the stash, so a fresh
redirector for a later request on the same session replays it.
"""

import logging
import time
from enum import Enum
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlencode

from app.contracts.invitation import AcceptanceDecision
from app.core.exceptions import InvitationError, StaleAcceptance
from app.services.invitations.identity import IIdentityProvider
from app.services.invitations.ticket_stash import TICKET_TTL_SECONDS, TicketStash

logger = logging.getLogger(__name__)

ACCEPTANCE_PATH = "/accept-org-invite"
POST_ACCEPT_REDIRECT = "/?from_invite=true"


class AcceptanceState(str, Enum):
    idle = "idle"
    auto_accepting = "auto_accepting"
    redirecting = "redirecting"
    redirecting_to_accept = "redirecting_to_accept"


class AcceptanceRedirector:
    def __init__(
        self,
        identity: IIdentityProvider,
        stash: TicketStash,
        acceptance_path: str = ACCEPTANCE_PATH,
        post_accept_redirect: str = POST_ACCEPT_REDIRECT,
        ticket_ttl_seconds: float = TICKET_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.identity = identity
        self.stash = stash
        self.acceptance_path = acceptance_path
        self.post_accept_redirect = post_accept_redirect
        self.ticket_ttl_seconds = ticket_ttl_seconds
        self.clock = clock

        self.state = AcceptanceState.idle
        self._decision: Optional[AcceptanceDecision] = None

    @property
    def settled(self) -> bool:
        return self._decision is not None

    async def reset(self, session_id: Optional[str] = None) -> None:
        """Forget the previous sign-in so the next one is processed."""
        self.state = AcceptanceState.idle
        self._decision = None
        if session_id:
            await self.stash.forget_decision(session_id)

    def _settle(self, state: AcceptanceState, redirect_to: Optional[str] = None) -> AcceptanceDecision:
        self.state = state
        self._decision = AcceptanceDecision(state=state.value, redirect_to=redirect_to)
        return self._decision

    async def on_sign_in(
        self,
        user: Dict[str, Any],
        session_id: Optional[str],
        current_path: str = "/",
    ) -> AcceptanceDecision:
        if self._decision is not None:
            return self._decision

        if session_id:
            previous = await self.stash.recall_decision(session_id)
            if previous is not None:
                logger.info("Session %s already resolved as %s", session_id, previous.state)
                self.state = AcceptanceState(previous.state)
                self._decision = previous
                return previous

        decision = await self._auto_accept(user)
        if decision is not None:
            if session_id:
                # A ticket stashed for this sign-in must not be forwarded later
                await self.stash.discard(session_id)
        else:
            decision = await self._forward_stashed_ticket(session_id, current_path)

        if session_id:
            await self.stash.remember_decision(session_id, decision)
        return decision

    async def _auto_accept(self, user: Dict[str, Any]) -> Optional[AcceptanceDecision]:
        try:
            outstanding = await self.identity.list_outstanding_invitations(user)
        except InvitationError as e:
            logger.error("Could not list outstanding invitations for %s: %s", user.get("id"), e)
            return None

        if not outstanding:
            return None

        logger.info("Found %d outstanding invitations for %s", len(outstanding), user.get("id"))
        self.state = AcceptanceState.auto_accepting
        first = outstanding[0]
        try:
            accepted = await self.identity.accept(first, user)
        except InvitationError as e:
            logger.error("Auto-accepting invitation %s failed: %s", first.id, e)
            accepted = False

        if not accepted:
            self.state = AcceptanceState.idle
            return None

        logger.info("Accepted invitation %s for organization %s", first.id, first.organization_id)
        return self._settle(AcceptanceState.redirecting, self.post_accept_redirect)

    async def _forward_stashed_ticket(
        self, session_id: Optional[str], current_path: str
    ) -> AcceptanceDecision:
        if not session_id:
            return self._settle(AcceptanceState.idle)

        try:
            stashed = await self.stash.consume(session_id)
            if stashed is None:
                return self._settle(AcceptanceState.idle)

            stashed.ensure_fresh(self.clock(), self.ticket_ttl_seconds)
            if self.acceptance_path in current_path:
                raise StaleAcceptance("Already on the acceptance page")
        except StaleAcceptance as e:
            logger.info("Discarded stashed invitation ticket: %s", e)
            return self._settle(AcceptanceState.idle)

        params = {"ticket": stashed.ticket}
        if stashed.status:
            params["status"] = stashed.status
        target = f"{self.acceptance_path}?{urlencode(params)}"
        logger.info("Forwarding stashed invitation ticket to %s", self.acceptance_path)
        return self._settle(AcceptanceState.redirecting_to_accept, target)
