"""Live connection handles and their lifecycle states.

A :class:`Connection` is the relay's view of one duplex event channel. The
relay only needs to emit named events and track the connection's state; the
wire encoding belongs to the concrete subclass.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from fastapi import WebSocket
from fastapi.websockets import WebSocketDisconnect, WebSocketState

# Configure logger for this module
logger = logging.getLogger(__name__)

_SID_COUNTER = itertools.count(1)


class ConnectionState(Enum):
    """Lifecycle states of a live connection."""

    CONNECTING = "connecting"
    AUTHENTICATED = "authenticated"
    JOINED = "joined"
    ACTIVE = "active"
    DISCONNECTED = "disconnected"


_ALLOWED_TRANSITIONS: dict[ConnectionState, frozenset[ConnectionState]] = {
    ConnectionState.CONNECTING: frozenset(
        {ConnectionState.AUTHENTICATED, ConnectionState.DISCONNECTED}
    ),
    ConnectionState.AUTHENTICATED: frozenset(
        {ConnectionState.JOINED, ConnectionState.DISCONNECTED}
    ),
    ConnectionState.JOINED: frozenset({ConnectionState.ACTIVE, ConnectionState.DISCONNECTED}),
    ConnectionState.ACTIVE: frozenset({ConnectionState.DISCONNECTED}),
    ConnectionState.DISCONNECTED: frozenset(),
}


class InvalidTransitionError(RuntimeError):
    """Raised when a connection is moved to a state it cannot reach."""


@dataclass(frozen=True)
class Identity:
    """Authenticated user attached to a connection."""

    user_id: int
    nickname: str


class Connection:
    """Base class for a live, per-user event channel."""

    def __init__(self) -> None:
        self.sid = f"conn-{next(_SID_COUNTER)}"
        self.state = ConnectionState.CONNECTING
        self.identity: Identity | None = None

    def __repr__(self) -> str:
        user = self.identity.user_id if self.identity else None
        return f"<{type(self).__name__} {self.sid} user={user} state={self.state.value}>"

    @property
    def user_id(self) -> int:
        if self.identity is None:
            raise InvalidTransitionError(f"{self.sid} has no authenticated identity")
        return self.identity.user_id

    @property
    def nickname(self) -> str:
        if self.identity is None:
            raise InvalidTransitionError(f"{self.sid} has no authenticated identity")
        return self.identity.nickname

    @property
    def is_open(self) -> bool:
        return self.state is not ConnectionState.DISCONNECTED

    def transition(self, target: ConnectionState) -> None:
        """Move to ``target``, enforcing the lifecycle order."""
        if target not in _ALLOWED_TRANSITIONS[self.state]:
            raise InvalidTransitionError(
                f"{self.sid}: cannot move from {self.state.value} to {target.value}"
            )
        self.state = target

    async def emit(self, event: str, data: dict[str, Any]) -> bool:
        """Send a named event; return False if the channel is gone."""
        if not self.is_open:
            return False
        try:
            await self._send({"event": event, "data": data})
        except (RuntimeError, OSError, WebSocketDisconnect) as exc:
            logger.warning("Dropping %s for %s: %s", event, self.sid, exc)
            return False
        return True

    async def _send(self, frame: dict[str, Any]) -> None:
        raise NotImplementedError

    async def close(self, code: int = 1000) -> None:
        """Close the underlying channel if it is still open."""


class WebSocketConnection(Connection):
    """Connection carried over a FastAPI WebSocket with JSON frames."""

    def __init__(self, websocket: WebSocket) -> None:
        super().__init__()
        self.websocket = websocket

    async def _send(self, frame: dict[str, Any]) -> None:
        if self.websocket.application_state != WebSocketState.CONNECTED:
            raise RuntimeError("WebSocket is not connected")
        await self.websocket.send_json(frame)

    async def close(self, code: int = 1000) -> None:
        if self.websocket.application_state == WebSocketState.CONNECTED:
            try:
                await self.websocket.close(code=code)
            except RuntimeError:
                # Already closed by the peer.
                pass
