"""Relay engine: the coordination point of the live-connection layer.

The engine owns the connection registry and the delivery rooms. It admits
authenticated connections, dispatches their inbound events, fans events out
to the right subset of live connections, and tears connections down.
Storage is only reached through :class:`ChatStore`, always from a worker
thread, and fan-out only ever happens after the store call returned.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from datetime import datetime
from typing import Any

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from cipherchat.core.errors import (
    AuthorizationError,
    NotFoundError,
    PersistenceError,
    RelayError,
    TargetOfflineError,
    ValidationError,
)
from cipherchat.db.time import utcnow
from cipherchat.schemas.events import (
    AnswerCallPayload,
    CallUserPayload,
    DisconnectPayload,
    EndCallPayload,
    GetChatsPayload,
    IceCandidatePayload,
    InboundEvent,
    OutboundEvent,
    SendMessagePayload,
)
from cipherchat.services.connection import Connection, ConnectionState, Identity
from cipherchat.services.membership import MembershipResolver
from cipherchat.services.presence import PresenceBroadcaster
from cipherchat.services.registry import ConnectionRegistry, RoomDirectory
from cipherchat.services.session_gate import SessionGate
from cipherchat.services.store import ChatStore, MessageRecord

# Configure logger for this module
logger = logging.getLogger(__name__)

Handler = Callable[[Connection, Any], Awaitable[None]]

# Outbound event and payload key for each relayed call signal.
_SIGNALS: dict[InboundEvent, tuple[OutboundEvent, str | None]] = {
    InboundEvent.CALL_USER: (OutboundEvent.INCOMING_CALL, "offer"),
    InboundEvent.ANSWER_CALL: (OutboundEvent.CALL_ANSWERED, "answer"),
    InboundEvent.ICE_CANDIDATE: (OutboundEvent.ICE_CANDIDATE, "candidate"),
    InboundEvent.END_CALL: (OutboundEvent.CALL_ENDED, None),
}


def _describe_validation(exc: PydanticValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ())) or "payload"
    return f"Invalid {location}: {first.get('msg', 'invalid value')}"


class RelayEngine:
    """Admits connections, relays chat and call events, and tracks presence."""

    def __init__(
        self,
        store: ChatStore | None = None,
        registry: ConnectionRegistry | None = None,
        rooms: RoomDirectory | None = None,
        gate: SessionGate | None = None,
    ) -> None:
        self.store = store or ChatStore()
        self.registry = registry or ConnectionRegistry()
        self.rooms = rooms or RoomDirectory()
        self.gate = gate or SessionGate()
        self.membership = MembershipResolver(self.store)
        self.presence = PresenceBroadcaster(self.registry, self.membership)
        self._handlers: dict[InboundEvent, tuple[type[BaseModel], Handler]] = {
            InboundEvent.SEND_MESSAGE: (SendMessagePayload, self._on_send_message),
            InboundEvent.CALL_USER: (CallUserPayload, self._on_signal(InboundEvent.CALL_USER)),
            InboundEvent.ANSWER_CALL: (AnswerCallPayload, self._on_signal(InboundEvent.ANSWER_CALL)),
            InboundEvent.ICE_CANDIDATE: (
                IceCandidatePayload,
                self._on_signal(InboundEvent.ICE_CANDIDATE),
            ),
            InboundEvent.END_CALL: (EndCallPayload, self._on_signal(InboundEvent.END_CALL)),
            InboundEvent.GET_CHATS: (GetChatsPayload, self._on_get_chats),
            InboundEvent.DISCONNECT: (DisconnectPayload, self._on_disconnect),
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def admit(self, connection: Connection) -> None:
        """Join an authenticated connection to its rooms and announce it online."""
        user_id = connection.user_id

        try:
            room_ids = await self.membership.rooms_of(user_id)
        except RelayError as exc:
            logger.error("Error joining chat rooms for user %s: %s", user_id, exc)
            room_ids = set()
            await connection.emit(
                OutboundEvent.ERROR.value,
                {"message": "Failed to load chats", "code": exc.code},
            )

        if not connection.is_open:
            # Torn down while membership was loading.
            return

        for room_id in room_ids:
            self.rooms.join(room_id, connection)
        displaced = self.registry.put(user_id, connection)
        if displaced is not None:
            logger.warning(
                "User %s reconnected; %s supersedes %s", user_id, connection.sid, displaced.sid
            )
        connection.transition(ConnectionState.JOINED)
        connection.transition(ConnectionState.ACTIVE)
        logger.info("User connected: %s (%s) via %s", connection.nickname, user_id, connection.sid)

        await self._touch_last_seen(user_id)
        await self.presence.broadcast(user_id, True)

    async def disconnect(self, connection: Connection) -> None:
        """Tear a connection down; safe to call more than once."""
        if connection.state is ConnectionState.DISCONNECTED:
            return
        connection.transition(ConnectionState.DISCONNECTED)
        self.rooms.leave_all(connection)

        if connection.identity is None:
            return

        user_id = connection.user_id
        removed = self.registry.remove(user_id, connection)
        logger.info("User disconnected: %s (%s) via %s", connection.nickname, user_id, connection.sid)

        last_seen = await self._touch_last_seen(user_id)
        if removed and not self.registry.is_online(user_id):
            await self.presence.broadcast(user_id, False, last_seen)
        else:
            logger.debug("Stale %s closed; user %s still connected", connection.sid, user_id)

    async def _touch_last_seen(self, user_id: int) -> datetime:
        try:
            return await asyncio.to_thread(self.store.touch_last_seen, user_id)
        except RelayError as exc:
            logger.error("Could not update last_seen for user %s: %s", user_id, exc)
            return utcnow()

    # ------------------------------------------------------------------
    # Inbound dispatch
    # ------------------------------------------------------------------

    async def dispatch(self, connection: Connection, event: str, data: dict[str, Any]) -> None:
        """Handle one inbound event; failures are reported to ``connection`` only."""
        if connection.state is not ConnectionState.ACTIVE:
            logger.debug("Ignoring %s from %s in state %s", event, connection.sid, connection.state)
            return

        try:
            kind = InboundEvent(event)
        except ValueError:
            await self._report(connection, ValidationError(f"Unknown event: {event}"))
            return

        payload_model, handler = self._handlers[kind]
        try:
            payload = payload_model.model_validate(data)
        except PydanticValidationError as exc:
            await self._report(connection, ValidationError(_describe_validation(exc)))
            return

        try:
            await handler(connection, payload)
        except TargetOfflineError as exc:
            await connection.emit(OutboundEvent.CALL_FAILED.value, {"message": exc.message})
        except RelayError as exc:
            await self._report(connection, exc)
        except Exception:
            logger.exception("Unhandled error processing %s from %s", event, connection.sid)
            await self._report(connection, RelayError())

    async def _report(self, connection: Connection, error: RelayError) -> None:
        await connection.emit(OutboundEvent.ERROR.value, error.to_payload())

    async def _on_send_message(self, connection: Connection, payload: SendMessagePayload) -> None:
        await self.send_message(
            connection.identity,  # type: ignore[arg-type]
            payload.chat_id,
            payload.content,
            payload.encrypted_keys,
        )

    def _on_signal(self, kind: InboundEvent) -> Handler:
        async def handle(connection: Connection, payload: Any) -> None:
            _, body_key = _SIGNALS[kind]
            body = getattr(payload, body_key) if body_key else None
            await self.relay_signal(
                connection.identity,  # type: ignore[arg-type]
                kind,
                payload.target_user_id,
                body,
            )

        return handle

    async def _on_get_chats(self, connection: Connection, payload: GetChatsPayload) -> None:
        summaries = await self.chat_snapshot(connection.user_id)
        current = {summary["id"] for summary in summaries}
        for room_id in current:
            self.rooms.join(room_id, connection)
        for stale in self.rooms.rooms_for(connection) - current:
            self.rooms.leave(stale, connection)
        await connection.emit(
            OutboundEvent.CHAT_UPDATE.value,
            {"chats": summaries, "snapshot": True},
        )

    async def _on_disconnect(self, connection: Connection, payload: DisconnectPayload) -> None:
        await self.disconnect(connection)
        await connection.close()

    # ------------------------------------------------------------------
    # Operations shared with the request/response layer
    # ------------------------------------------------------------------

    async def send_message(
        self,
        sender: Identity,
        chat_id: int,
        content: str,
        encrypted_keys: dict[str, str],
    ) -> MessageRecord:
        """Persist a message, then relay it to every connection in the room."""
        try:
            allowed = await self.membership.is_member(chat_id, sender.user_id)
            if not allowed:
                raise AuthorizationError("Access denied to this chat")
            record = await asyncio.to_thread(
                self.store.persist_message,
                chat_id,
                sender.user_id,
                content,
                encrypted_keys,
            )
        except PersistenceError as exc:
            raise PersistenceError("Failed to send message") from exc

        await self._emit_room(chat_id, OutboundEvent.NEW_MESSAGE, record.to_event(sender.nickname))
        return record

    async def relay_signal(
        self,
        sender: Identity,
        kind: InboundEvent,
        target_user_id: int,
        body: Any = None,
    ) -> bool:
        """Forward a call signal to the target's registered connection.

        Raises:
            TargetOfflineError: Only for call offers when the target is offline;
                other signal kinds to an offline target are dropped.
        """
        event, body_key = _SIGNALS[kind]
        target = self.registry.get(target_user_id)
        if target is None:
            if kind is InboundEvent.CALL_USER:
                raise TargetOfflineError("User is offline")
            return False

        payload: dict[str, Any] = {"from": sender.user_id}
        if kind is InboundEvent.CALL_USER:
            payload["fromNickname"] = sender.nickname
        if body_key:
            payload[body_key] = body
        return await target.emit(event.value, payload)

    async def delete_message(self, actor_id: int, message_id: int) -> MessageRecord:
        """Flag a message deleted on behalf of its sender and notify the room."""
        record = await asyncio.to_thread(self.store.get_message, message_id)
        if record is None:
            raise NotFoundError("Message not found")
        if record.sender_id != actor_id:
            raise AuthorizationError("Only the sender can delete this message")
        if not await asyncio.to_thread(self.store.mark_deleted, message_id, actor_id):
            raise AuthorizationError("Only the sender can delete this message")

        await self._emit_room(
            record.chat_id,
            OutboundEvent.MESSAGE_DELETED,
            {"messageId": record.id, "chatId": record.chat_id},
        )
        return record

    async def delete_chat(self, actor_id: int, chat_id: int) -> None:
        """Remove a chat with its messages and notify both members."""
        await self._purge(actor_id, chat_id, delete_room=True)

    async def clear_chat(self, actor_id: int, chat_id: int) -> None:
        """Remove every message of a chat and notify both members."""
        await self._purge(actor_id, chat_id, delete_room=False)

    async def _purge(self, actor_id: int, chat_id: int, delete_room: bool) -> None:
        try:
            members = await self.membership.members_of(chat_id)
        except NotFoundError as exc:
            raise AuthorizationError("Access denied to this chat") from exc
        if actor_id not in members:
            raise AuthorizationError("Access denied to this chat")

        await asyncio.to_thread(self.store.purge_room, chat_id, delete_room)

        event = OutboundEvent.CHAT_DELETED if delete_room else OutboundEvent.MESSAGES_CLEARED
        payload = {"chatId": chat_id}
        # Room broadcast plus a direct notice to each member: a member may be
        # online without being joined to this room.
        await self._emit_room(chat_id, event, payload)
        await self._emit_users(members, event, payload)
        if delete_room:
            self.rooms.drop_room(chat_id)

    async def announce_chat(self, chat_id: int) -> None:
        """Join both members' live connections to a new chat and push it to them."""
        members = await self.membership.members_of(chat_id)
        for member_id in members:
            handle = self.registry.get(member_id)
            if handle is None:
                continue
            self.rooms.join(chat_id, handle)
            summary = await asyncio.to_thread(self.store.get_chat_summary, chat_id, member_id)
            await handle.emit(
                OutboundEvent.CHAT_UPDATE.value,
                {
                    "chats": [summary.to_dict(self.registry.is_online(summary.partner_id))],
                    "snapshot": False,
                },
            )

    async def chat_snapshot(self, user_id: int) -> list[dict[str, Any]]:
        """Return the user's chats with the partner's live presence filled in."""
        summaries = await asyncio.to_thread(self.store.chats_of, user_id)
        return [
            summary.to_dict(self.registry.is_online(summary.partner_id)) for summary in summaries
        ]

    # ------------------------------------------------------------------
    # Fan-out
    # ------------------------------------------------------------------

    async def _emit_room(self, room_id: int, event: OutboundEvent, payload: dict[str, Any]) -> int:
        return await self._emit_all(self.rooms.members(room_id), event, payload)

    async def _emit_users(
        self, user_ids: Iterable[int], event: OutboundEvent, payload: dict[str, Any]
    ) -> int:
        handles = [
            handle for user_id in set(user_ids) if (handle := self.registry.get(user_id)) is not None
        ]
        return await self._emit_all(handles, event, payload)

    async def _emit_all(
        self, targets: list[Connection], event: OutboundEvent, payload: dict[str, Any]
    ) -> int:
        if not targets:
            return 0
        results = await asyncio.gather(*(target.emit(event.value, payload) for target in targets))
        return sum(1 for delivered in results if delivered)


class _RelayEngineSingleton:
    """Singleton wrapper for RelayEngine."""

    _instance: RelayEngine | None = None

    @classmethod
    def get_instance(cls) -> RelayEngine:
        """Get or create the process-wide RelayEngine instance."""
        if cls._instance is None:
            cls._instance = RelayEngine()
        return cls._instance


def get_relay_engine() -> RelayEngine:
    """Return the process-wide relay engine."""
    return _RelayEngineSingleton.get_instance()
