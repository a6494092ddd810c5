"""Durable storage access for chats, messages and user presence columns.

``ChatStore`` is the only component that talks to the database. Every method
opens its own short-lived session so it can be called from worker threads
(the relay engine runs it through ``asyncio.to_thread``). Driver failures are
logged and surfaced as :class:`PersistenceError`.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from cipherchat.core.errors import (
    AuthorizationError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from cipherchat.db.session import SessionLocal
from cipherchat.db.time import as_utc, utcnow
from cipherchat.models import Chat, Message, User

# Configure logger for this module
logger = logging.getLogger(__name__)


def _isoformat(value: datetime | None) -> str | None:
    return as_utc(value).isoformat() if value is not None else None


@dataclass(frozen=True)
class UserRecord:
    """Detached snapshot of a user row."""

    id: int
    nickname: str
    public_key: str | None
    created_at: datetime
    last_seen: datetime

    @classmethod
    def from_model(cls, user: User) -> UserRecord:
        return cls(
            id=user.id,
            nickname=user.nickname,
            public_key=user.public_key,
            created_at=as_utc(user.created_at),
            last_seen=as_utc(user.last_seen),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "nickname": self.nickname,
            "created_at": _isoformat(self.created_at),
            "last_seen": _isoformat(self.last_seen),
        }


@dataclass(frozen=True)
class MessageRecord:
    """Detached snapshot of a stored message."""

    id: int
    chat_id: int
    sender_id: int
    content: str
    encrypted_keys: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime | None = None
    is_deleted: bool = False
    sender_nickname: str | None = None

    @classmethod
    def from_model(cls, message: Message, sender_nickname: str | None = None) -> MessageRecord:
        return cls(
            id=message.id,
            chat_id=message.chat_id,
            sender_id=message.sender_id,
            content=message.content,
            encrypted_keys=dict(message.encrypted_keys or {}),
            timestamp=as_utc(message.timestamp),
            is_deleted=message.is_deleted,
            sender_nickname=sender_nickname,
        )

    def to_event(self, sender_nickname: str | None = None) -> dict[str, Any]:
        """Serialize into the ``new_message`` payload shape."""
        return {
            "id": self.id,
            "chat_id": self.chat_id,
            "sender_id": self.sender_id,
            "content": self.content,
            "encrypted_keys": self.encrypted_keys,
            "timestamp": _isoformat(self.timestamp),
            "is_deleted": self.is_deleted,
            "sender_nickname": sender_nickname or self.sender_nickname,
        }


@dataclass(frozen=True)
class ChatSummary:
    """A chat as seen by one of its two members."""

    id: int
    partner_id: int
    partner_nickname: str
    partner_last_seen: datetime | None
    created_at: datetime
    last_message: str | None = None
    last_message_time: datetime | None = None

    @property
    def activity_time(self) -> datetime:
        return self.last_message_time or self.created_at

    def to_dict(self, partner_online: bool = False) -> dict[str, Any]:
        return {
            "id": self.id,
            "partner_id": self.partner_id,
            "partner_nickname": self.partner_nickname,
            "partner_last_seen": _isoformat(self.partner_last_seen),
            "partner_online": partner_online,
            "created_at": _isoformat(self.created_at),
            "last_message": self.last_message,
            "last_message_time": _isoformat(self.last_message_time),
        }


class ChatStore:
    """SQLAlchemy-backed storage collaborator used by the relay."""

    def __init__(self, session_factory: Callable[[], Session] | None = None) -> None:
        self._session_factory = session_factory or SessionLocal

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Chat store operation failed: %s", exc, exc_info=True)
            raise PersistenceError() from exc
        finally:
            db.close()

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    @staticmethod
    def _chats_for(db: Session, user_id: int) -> list[Chat]:
        stmt = select(Chat).where(or_(Chat.user1_id == user_id, Chat.user2_id == user_id))
        return list(db.scalars(stmt))

    def rooms_of(self, user_id: int) -> set[int]:
        """Return the ids of every chat ``user_id`` belongs to."""
        with self._session() as db:
            return {chat.id for chat in self._chats_for(db, user_id)}

    def contacts_of(self, user_id: int) -> set[int]:
        """Return the distinct partners of ``user_id`` across all chats."""
        with self._session() as db:
            return {chat.other_member(user_id) for chat in self._chats_for(db, user_id)}

    def members_of(self, room_id: int) -> tuple[int, int]:
        with self._session() as db:
            chat = db.get(Chat, room_id)
            if chat is None:
                raise NotFoundError("Chat not found")
            return chat.user1_id, chat.user2_id

    def other_member_of(self, room_id: int, user_id: int) -> int:
        with self._session() as db:
            chat = db.get(Chat, room_id)
            if chat is None or not chat.has_member(user_id):
                raise NotFoundError("Chat not found")
            return chat.other_member(user_id)

    def is_member(self, room_id: int, user_id: int) -> bool:
        with self._session() as db:
            chat = db.get(Chat, room_id)
            return chat is not None and chat.has_member(user_id)

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def persist_message(
        self,
        room_id: int,
        sender_id: int,
        content: str,
        encrypted_keys: dict[str, Any],
    ) -> MessageRecord:
        """Insert a message and return it with its id and timestamp."""
        with self._session() as db:
            message = Message(
                chat_id=room_id,
                sender_id=sender_id,
                content=content,
                encrypted_keys=dict(encrypted_keys),
                timestamp=utcnow(),
                is_deleted=False,
            )
            db.add(message)
            db.commit()
            db.refresh(message)
            return MessageRecord.from_model(message)

    def get_message(self, message_id: int) -> MessageRecord | None:
        with self._session() as db:
            message = db.get(Message, message_id)
            return MessageRecord.from_model(message) if message is not None else None

    def mark_deleted(self, message_id: int, by_user_id: int) -> bool:
        """Flag a message deleted if ``by_user_id`` sent it.

        Returns:
            True if the message exists and belongs to ``by_user_id``.
        """
        with self._session() as db:
            result = db.execute(
                update(Message)
                .where(Message.id == message_id, Message.sender_id == by_user_id)
                .values(is_deleted=True)
            )
            db.commit()
            return bool(result.rowcount)

    def purge_room(self, room_id: int, delete_room: bool = False) -> None:
        """Delete every message of a chat, and the chat itself when requested."""
        with self._session() as db:
            db.execute(delete(Message).where(Message.chat_id == room_id))
            if delete_room:
                db.execute(delete(Chat).where(Chat.id == room_id))
            db.commit()

    def history(
        self,
        room_id: int,
        user_id: int,
        limit: int,
        before: datetime | None = None,
    ) -> list[MessageRecord]:
        """Return up to ``limit`` non-deleted messages, oldest first."""
        with self._session() as db:
            chat = db.get(Chat, room_id)
            if chat is None or not chat.has_member(user_id):
                raise AuthorizationError("Access denied to this chat")

            stmt = (
                select(Message, User.nickname)
                .join(User, Message.sender_id == User.id)
                .where(Message.chat_id == room_id, Message.is_deleted.is_(False))
            )
            if before is not None:
                # Stored times are UTC; SQLite drops the offset when binding.
                stmt = stmt.where(Message.timestamp < as_utc(before).astimezone(UTC))
            stmt = stmt.order_by(Message.timestamp.desc(), Message.id.desc()).limit(limit)

            rows = db.execute(stmt).all()
            return [MessageRecord.from_model(message, nickname) for message, nickname in reversed(rows)]

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def touch_last_seen(self, user_id: int) -> datetime:
        """Record ``now`` as the user's last-seen time and return it."""
        seen_at = utcnow()
        with self._session() as db:
            db.execute(update(User).where(User.id == user_id).values(last_seen=seen_at))
            db.commit()
        return seen_at

    def get_user(self, user_id: int) -> UserRecord | None:
        with self._session() as db:
            user = db.get(User, user_id)
            return UserRecord.from_model(user) if user is not None else None

    def get_user_by_nickname(self, nickname: str) -> UserRecord | None:
        with self._session() as db:
            user = db.scalars(select(User).where(User.nickname == nickname)).first()
            return UserRecord.from_model(user) if user is not None else None

    def create_user(self, nickname: str) -> UserRecord:
        with self._session() as db:
            user = User(nickname=nickname)
            db.add(user)
            db.commit()
            db.refresh(user)
            return UserRecord.from_model(user)

    def set_public_key(self, user_id: int, public_key: str) -> None:
        with self._session() as db:
            user = db.get(User, user_id)
            if user is None:
                raise NotFoundError("User not found")
            user.public_key = public_key
            db.commit()

    def get_public_key(self, user_id: int) -> str | None:
        with self._session() as db:
            user = db.get(User, user_id)
            if user is None:
                raise NotFoundError("User not found")
            return user.public_key

    # ------------------------------------------------------------------
    # Chats
    # ------------------------------------------------------------------

    @staticmethod
    def _summarize(db: Session, chat: Chat, viewer_id: int) -> ChatSummary:
        partner = db.get(User, chat.other_member(viewer_id))
        last = db.scalars(
            select(Message)
            .where(Message.chat_id == chat.id, Message.is_deleted.is_(False))
            .order_by(Message.timestamp.desc(), Message.id.desc())
            .limit(1)
        ).first()
        return ChatSummary(
            id=chat.id,
            partner_id=chat.other_member(viewer_id),
            partner_nickname=partner.nickname if partner is not None else "",
            partner_last_seen=as_utc(partner.last_seen) if partner is not None else None,
            created_at=as_utc(chat.created_at),
            last_message=last.content if last is not None else None,
            last_message_time=as_utc(last.timestamp) if last is not None else None,
        )

    def chats_of(self, user_id: int) -> list[ChatSummary]:
        """Return the user's chats, most recent activity first."""
        with self._session() as db:
            summaries = [self._summarize(db, chat, user_id) for chat in self._chats_for(db, user_id)]
        return sorted(summaries, key=lambda summary: summary.activity_time, reverse=True)

    def get_chat_summary(self, room_id: int, viewer_id: int) -> ChatSummary:
        with self._session() as db:
            chat = db.get(Chat, room_id)
            if chat is None or not chat.has_member(viewer_id):
                raise NotFoundError("Chat not found")
            return self._summarize(db, chat, viewer_id)

    @staticmethod
    def _find_pair(db: Session, first: int, second: int) -> Chat | None:
        low, high = sorted((first, second))
        return db.scalars(
            select(Chat).where(Chat.user1_id == low, Chat.user2_id == high)
        ).first()

    def start_chat(self, user_id: int, target_id: int) -> tuple[ChatSummary, bool]:
        """Return the chat between two users, creating it if needed.

        Returns:
            The chat as seen by ``user_id`` and whether it was created by this call.
        """
        if user_id == target_id:
            raise ValidationError("Cannot chat with yourself")

        with self._session() as db:
            if db.get(User, target_id) is None:
                raise NotFoundError("User not found")

            existing = self._find_pair(db, user_id, target_id)
            if existing is not None:
                return self._summarize(db, existing, user_id), False

            low, high = sorted((user_id, target_id))
            chat = Chat(user1_id=low, user2_id=high, created_at=utcnow())
            db.add(chat)
            try:
                db.commit()
            except IntegrityError:
                # Concurrent creation of the same pair; the other insert won.
                db.rollback()
                existing = self._find_pair(db, user_id, target_id)
                if existing is None:
                    raise
                return self._summarize(db, existing, user_id), False

            db.refresh(chat)
            return self._summarize(db, chat, user_id), True
