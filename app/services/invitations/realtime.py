"""
Realtime change listener for team_invitations.

Subscribes to Postgres change notifications for one organization at a time
through a Supabase realtime channel. Events are treated as invalidation
signals only; the payload is never trusted as data.
"""

import logging
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

INVITATIONS_TABLE = "team_invitations"


def channel_name(organization_id: str) -> str:
    return f"invitations-{organization_id}"


def _payload_organization(payload: Any) -> Optional[str]:
    """Best-effort extraction of the row's organization_id from a change payload."""
    if not isinstance(payload, dict):
        return None
    data = payload.get("data", payload)
    if not isinstance(data, dict):
        return None
    for key in ("record", "new", "old_record", "old"):
        row = data.get(key)
        if isinstance(row, dict) and row.get("organization_id"):
            return row["organization_id"]
    return None


class RealtimeChangeListener:
    """
    One realtime subscription scoped to the current organization.

    ``on_change`` is called synchronously from the realtime client's event
    loop for every insert/update/delete on the organization's rows.
    Switching organizations tears the old channel down before opening the
    new one, and deliveries tagged with a previous subscription are dropped.
    """

    def __init__(self, client, on_change: Callable[[Dict[str, Any]], None]) -> None:
        self.client = client
        self.on_change = on_change
        self.organization_id: Optional[str] = None
        self._channel = None
        self._generation = 0

    @property
    def is_subscribed(self) -> bool:
        return self._channel is not None

    async def subscribe(self, organization_id: str) -> None:
        if self._channel is not None:
            await self.close()

        self._generation += 1
        generation = self._generation

        def _callback(payload: Dict[str, Any]) -> None:
            self._dispatch(generation, organization_id, payload)

        channel = self.client.channel(channel_name(organization_id))
        channel.on_postgres_changes(
            "*",
            schema="public",
            table=INVITATIONS_TABLE,
            filter=f"organization_id=eq.{organization_id}",
            callback=_callback,
        )
        try:
            await channel.subscribe()
        except Exception:
            logger.error("Subscribing to invitation changes for %s failed", organization_id)
            self._generation += 1
            await self.client.remove_channel(channel)
            raise

        self._channel = channel
        self.organization_id = organization_id
        logger.info("Subscribed to invitation changes for %s", organization_id)

    async def switch_organization(self, organization_id: str) -> None:
        if organization_id == self.organization_id and self._channel is not None:
            return
        await self.subscribe(organization_id)

    async def close(self) -> None:
        """Release the channel. Safe to call more than once."""
        channel, self._channel = self._channel, None
        # Invalidate callbacks still in flight for the released channel
        self._generation += 1
        if channel is None:
            return
        previous = self.organization_id
        self.organization_id = None
        try:
            await self.client.remove_channel(channel)
        finally:
            logger.info("Released invitation channel for %s", previous)

    def _dispatch(self, generation: int, organization_id: str, payload: Dict[str, Any]) -> None:
        if generation != self._generation:
            logger.debug("Dropping change from released channel for %s", organization_id)
            return
        row_org = _payload_organization(payload)
        if row_org is not None and row_org != organization_id:
            logger.warning("Dropping cross-tenant change for %s on %s channel", row_org, organization_id)
            return
        self.on_change(payload)
