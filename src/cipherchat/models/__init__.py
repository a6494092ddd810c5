# src/cipherchat/models/__init__.py
"""SQLAlchemy models for the CipherChat relay."""

from .chat import Chat, Message
from .user import User

__all__ = [
    "Chat", "Message",
    "User",
]
