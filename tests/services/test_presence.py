"""Tests for presence notifications."""

from datetime import UTC, datetime

import pytest

from cipherchat.core.errors import PersistenceError
from cipherchat.services.connection import Connection
from cipherchat.services.presence import PresenceBroadcaster
from cipherchat.services.registry import ConnectionRegistry


class _Inbox(Connection):
    def __init__(self) -> None:
        super().__init__()
        self.received: list[tuple[str, dict]] = []

    async def _send(self, frame: dict) -> None:
        self.received.append((frame["event"], frame["data"]))


@pytest.fixture()
def membership(mocker):
    resolver = mocker.MagicMock()
    resolver.contacts_of = mocker.AsyncMock(return_value={2, 3, 4})
    return resolver


@pytest.mark.asyncio
async def test_only_online_contacts_are_notified(membership) -> None:
    registry = ConnectionRegistry()
    online, bystander = _Inbox(), _Inbox()
    registry.put(2, online)
    registry.put(99, bystander)
    broadcaster = PresenceBroadcaster(registry, membership)

    delivered = await broadcaster.broadcast(1, True)

    assert delivered == 1
    assert online.received == [
        ("user_status_changed", {"userId": 1, "isOnline": True, "lastSeen": None})
    ]
    assert bystander.received == []


@pytest.mark.asyncio
async def test_repeated_broadcast_sends_one_event_per_contact_each_time(membership) -> None:
    registry = ConnectionRegistry()
    contact = _Inbox()
    registry.put(3, contact)
    broadcaster = PresenceBroadcaster(registry, membership)

    await broadcaster.broadcast(1, True)
    await broadcaster.broadcast(1, True)

    assert len(contact.received) == 2


@pytest.mark.asyncio
async def test_offline_event_carries_last_seen(membership) -> None:
    registry = ConnectionRegistry()
    contact = _Inbox()
    registry.put(4, contact)
    broadcaster = PresenceBroadcaster(registry, membership)
    seen = datetime(2026, 1, 2, 3, 4, 5, tzinfo=UTC)

    await broadcaster.broadcast(1, False, seen)

    _, payload = contact.received[0]
    assert payload == {"userId": 1, "isOnline": False, "lastSeen": seen.isoformat()}


@pytest.mark.asyncio
async def test_storage_failure_is_contained(mocker) -> None:
    membership = mocker.MagicMock()
    membership.contacts_of = mocker.AsyncMock(side_effect=PersistenceError())
    broadcaster = PresenceBroadcaster(ConnectionRegistry(), membership)

    assert await broadcaster.broadcast(1, True) == 0


@pytest.mark.asyncio
async def test_offline_notice_dropped_after_reconnect(membership) -> None:
    registry = ConnectionRegistry()
    contact = _Inbox()
    registry.put(2, contact)
    registry.put(1, _Inbox())
    broadcaster = PresenceBroadcaster(registry, membership)

    delivered = await broadcaster.broadcast(1, False, datetime(2026, 1, 1, tzinfo=UTC))

    assert delivered == 0
    assert contact.received == []
