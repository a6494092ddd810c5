"""Online/offline notifications for a user's contacts."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from cipherchat.core.errors import RelayError
from cipherchat.services.membership import MembershipResolver
from cipherchat.services.registry import ConnectionRegistry

# Configure logger for this module
logger = logging.getLogger(__name__)

USER_STATUS_CHANGED = "user_status_changed"


class PresenceBroadcaster:
    """Emits ``user_status_changed`` to every online contact of a user."""

    def __init__(self, registry: ConnectionRegistry, membership: MembershipResolver) -> None:
        self._registry = registry
        self._membership = membership

    async def broadcast(
        self,
        user_id: int,
        online: bool,
        last_seen: datetime | None = None,
    ) -> int:
        """Notify online contacts of ``user_id`` about a presence change.

        Contacts are the distinct partners across the user's chats, so each
        contact receives at most one event per call.

        Returns:
            Number of contacts the event was delivered to.
        """
        try:
            contacts = await self._membership.contacts_of(user_id)
        except RelayError as exc:
            logger.error("Could not resolve contacts of user %s: %s", user_id, exc)
            return 0
        if not online and self._registry.is_online(user_id):
            # Reconnected while contacts were loading.
            logger.debug("User %s is back online; offline notice dropped", user_id)
            return 0

        payload = {
            "userId": user_id,
            "isOnline": online,
            "lastSeen": None if online or last_seen is None else last_seen.isoformat(),
        }
        targets = [
            handle
            for contact_id in contacts - {user_id}
            if (handle := self._registry.get(contact_id)) is not None
        ]
        if not targets:
            return 0

        results = await asyncio.gather(
            *(handle.emit(USER_STATUS_CHANGED, payload) for handle in targets)
        )
        return sum(1 for delivered in results if delivered)
