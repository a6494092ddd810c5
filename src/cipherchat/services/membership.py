"""Chat membership lookups backed by durable storage."""

from __future__ import annotations

import asyncio

from cipherchat.services.store import ChatStore


class MembershipResolver:
    """Async facade over the membership queries of :class:`ChatStore`.

    Nothing is cached; every call reads the store from a worker thread so the
    event loop keeps serving other connections.
    """

    def __init__(self, store: ChatStore) -> None:
        self._store = store

    async def rooms_of(self, user_id: int) -> set[int]:
        return await asyncio.to_thread(self._store.rooms_of, user_id)

    async def contacts_of(self, user_id: int) -> set[int]:
        return await asyncio.to_thread(self._store.contacts_of, user_id)

    async def other_member_of(self, room_id: int, user_id: int) -> int:
        return await asyncio.to_thread(self._store.other_member_of, room_id, user_id)

    async def is_member(self, room_id: int, user_id: int) -> bool:
        return await asyncio.to_thread(self._store.is_member, room_id, user_id)

    async def members_of(self, room_id: int) -> tuple[int, int]:
        return await asyncio.to_thread(self._store.members_of, room_id)
