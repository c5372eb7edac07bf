"""
Single-use, time-boxed invitation tickets carried across the sign-in redirect.

A ticket is stashed before sign-in (e.g. an email link opened while signed
out) and consumed once after sign-in. Consumption is a Redis GETDEL, so the
read and the clear are one atomic step and a ticket can never be replayed.

The outcome of a session's sign-in is kept alongside, so repeat resolves
for the same session replay it instead of accepting anything else.
"""

import json
import logging
import time
from dataclasses import dataclass
from typing import Optional

from pydantic import ValidationError
from redis.asyncio import Redis

from app.contracts.invitation import AcceptanceDecision
from app.core.exceptions import StaleAcceptance

logger = logging.getLogger(__name__)

TICKET_TTL_SECONDS = 600  # 10 minutes
RESOLUTION_TTL_SECONDS = 12 * 60 * 60


@dataclass(frozen=True)
class StashedTicket:
    ticket: str
    status: Optional[str]
    timestamp: float  # seconds since epoch

    def age(self, now: float) -> float:
        return now - self.timestamp

    def ensure_fresh(self, now: float, ttl: float = TICKET_TTL_SECONDS) -> None:
        if self.age(now) >= ttl:
            raise StaleAcceptance("Invitation ticket is older than the stash window")


class TicketStash:
    """
    Key Pattern:
    - invite_ticket:{session_id}    ->  {"ticket", "status", "timestamp"}
    - invite_resolved:{session_id}  ->  AcceptanceDecision JSON for the session's sign-in
    """

    PREFIX = "invite_ticket"
    RESOLVED_PREFIX = "invite_resolved"

    def __init__(
        self,
        redis: Redis,
        ttl_seconds: int = TICKET_TTL_SECONDS,
        resolution_ttl_seconds: int = RESOLUTION_TTL_SECONDS,
    ):
        self.redis = redis
        self.ttl_seconds = ttl_seconds
        self.resolution_ttl_seconds = resolution_ttl_seconds

    def _key(self, session_id: str) -> str:
        return f"{self.PREFIX}:{session_id}"

    def _resolved_key(self, session_id: str) -> str:
        return f"{self.RESOLVED_PREFIX}:{session_id}"

    async def stash(
        self,
        session_id: str,
        ticket: str,
        status: Optional[str] = None,
        now: Optional[float] = None,
    ) -> StashedTicket:
        """
        Store a ticket for ``session_id``, replacing any earlier one.

        A ticket arriving means a new sign-in is about to happen, so any
        earlier resolution for the session is forgotten.
        """
        stashed = StashedTicket(
            ticket=ticket,
            status=status,
            timestamp=now if now is not None else time.time(),
        )
        await self.redis.set(
            self._key(session_id),
            json.dumps({
                "ticket": stashed.ticket,
                "status": stashed.status,
                "timestamp": stashed.timestamp,
            }),
            ex=self.ttl_seconds,
        )
        await self.forget_decision(session_id)
        return stashed

    async def consume(self, session_id: str) -> Optional[StashedTicket]:
        """
        Read and clear the stash in one step.

        Returns None when nothing is stashed.

        Raises:
            StaleAcceptance: the stash existed but could not be parsed. It is
                already cleared.
        """
        raw = await self.redis.getdel(self._key(session_id))
        if raw is None:
            return None

        try:
            data = json.loads(raw)
            return StashedTicket(
                ticket=str(data["ticket"]),
                status=data.get("status"),
                timestamp=float(data["timestamp"]),
            )
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("Discarding unreadable invitation ticket for session %s", session_id)
            raise StaleAcceptance("Unreadable invitation ticket") from e

    async def discard(self, session_id: str) -> None:
        """Drop whatever is stashed for ``session_id``."""
        await self.redis.getdel(self._key(session_id))

    # --------------------------
    # Per-session resolution
    # --------------------------
    async def remember_decision(self, session_id: str, decision: AcceptanceDecision) -> None:
        await self.redis.set(
            self._resolved_key(session_id),
            decision.model_dump_json(),
            ex=self.resolution_ttl_seconds,
        )

    async def recall_decision(self, session_id: str) -> Optional[AcceptanceDecision]:
        raw = await self.redis.get(self._resolved_key(session_id))
        if raw is None:
            return None
        try:
            return AcceptanceDecision.model_validate_json(raw)
        except ValidationError:
            logger.warning("Ignoring unreadable invitation resolution for session %s", session_id)
            return None

    async def forget_decision(self, session_id: str) -> None:
        await self.redis.delete(self._resolved_key(session_id))
