"""In-memory connection registry and delivery rooms.

Both structures are shared by every connection handler. All operations take
an internal lock and never await while holding it, so each call is atomic
with respect to the others whether it comes from the event loop or a worker
thread.
"""

from __future__ import annotations

import threading
from collections import defaultdict

from cipherchat.services.connection import Connection


class ConnectionRegistry:
    """Maps a user id to the single connection currently claiming it.

    The last connection to register wins. Removal is guarded so that the
    teardown of an older connection never evicts a newer one.
    """

    def __init__(self) -> None:
        self._handles: dict[int, Connection] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)

    def put(self, user_id: int, handle: Connection) -> Connection | None:
        """Install ``handle`` for ``user_id`` and return the handle it displaced."""
        with self._lock:
            previous = self._handles.get(user_id)
            self._handles[user_id] = handle
        if previous is handle:
            return None
        return previous

    def get(self, user_id: int) -> Connection | None:
        with self._lock:
            return self._handles.get(user_id)

    def remove(self, user_id: int, handle: Connection) -> bool:
        """Remove the entry only if it still points at ``handle``."""
        with self._lock:
            if self._handles.get(user_id) is not handle:
                return False
            del self._handles[user_id]
            return True

    def is_online(self, user_id: int) -> bool:
        with self._lock:
            return user_id in self._handles

    def online_user_ids(self) -> set[int]:
        with self._lock:
            return set(self._handles)


class RoomDirectory:
    """Tracks which live connections are joined to which chat rooms."""

    def __init__(self) -> None:
        self._members: dict[int, set[Connection]] = defaultdict(set)
        self._rooms: dict[Connection, set[int]] = defaultdict(set)
        self._lock = threading.Lock()

    def join(self, room_id: int, connection: Connection) -> bool:
        """Join ``connection`` to ``room_id``; return False if already joined."""
        with self._lock:
            if connection in self._members[room_id]:
                return False
            self._members[room_id].add(connection)
            self._rooms[connection].add(room_id)
            return True

    def leave(self, room_id: int, connection: Connection) -> None:
        with self._lock:
            members = self._members.get(room_id)
            if members is not None:
                members.discard(connection)
                if not members:
                    del self._members[room_id]
            rooms = self._rooms.get(connection)
            if rooms is not None:
                rooms.discard(room_id)

    def leave_all(self, connection: Connection) -> set[int]:
        """Remove ``connection`` from every room and return the rooms it left."""
        with self._lock:
            rooms = self._rooms.pop(connection, set())
            for room_id in rooms:
                members = self._members.get(room_id)
                if members is None:
                    continue
                members.discard(connection)
                if not members:
                    del self._members[room_id]
            return rooms

    def drop_room(self, room_id: int) -> set[Connection]:
        """Forget a room entirely, returning the connections that were joined."""
        with self._lock:
            members = self._members.pop(room_id, set())
            for connection in members:
                rooms = self._rooms.get(connection)
                if rooms is not None:
                    rooms.discard(room_id)
            return members

    def members(self, room_id: int) -> list[Connection]:
        """Return a snapshot of the connections joined to ``room_id``."""
        with self._lock:
            return list(self._members.get(room_id, ()))

    def rooms_for(self, connection: Connection) -> set[int]:
        with self._lock:
            return set(self._rooms.get(connection, ()))
