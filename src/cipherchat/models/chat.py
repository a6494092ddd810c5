# src/cipherchat/models/chat.py
"""Models describing two-party chat rooms and their messages."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from cipherchat.db.session import Base
from cipherchat.db.time import utcnow


class Chat(Base):
    """Room pairing exactly two distinct users.

    The pair is stored with ``user1_id < user2_id`` so the unique constraint
    covers the unordered pair.
    """

    __tablename__ = "chats"
    __table_args__ = (
        UniqueConstraint("user1_id", "user2_id", name="uq_chats_pair"),
        CheckConstraint("user1_id < user2_id", name="ck_chats_ordered_pair"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user1_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    user2_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    def other_member(self, user_id: int) -> int:
        """Return the member of this chat that is not ``user_id``."""
        return self.user2_id if self.user1_id == user_id else self.user1_id

    def has_member(self, user_id: int) -> bool:
        """Return True if ``user_id`` is one of the two members."""
        return user_id in (self.user1_id, self.user2_id)


class Message(Base):
    """End-to-end encrypted message stored in a chat.

    ``content`` and ``encrypted_keys`` are opaque to the server.
    """

    __tablename__ = "messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    chat_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("chats.id", ondelete="CASCADE"), nullable=False, index=True
    )
    sender_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    # Per-recipient wrapped message keys, keyed by user id.
    encrypted_keys: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False, index=True
    )
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
