# src/cipherchat/models/user.py
"""SQLAlchemy model for chat user identities."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from cipherchat.db.session import Base
from cipherchat.db.time import utcnow


class User(Base):
    """User identity issued by the authentication subsystem.

    The relay only reads identities; ``last_seen`` is the single column it writes.
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    nickname: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    # Opaque client public key used by peers to wrap per-recipient message keys.
    public_key: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    last_seen: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
