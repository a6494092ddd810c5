# src/cipherchat/api/v1/__init__.py
"""Version 1 API endpoints."""

from .endpoints import (
    chats_router,
    messages_router,
    realtime_router,
    users_router,
)

__all__ = [
    "chats_router",
    "messages_router",
    "realtime_router",
    "users_router",
]
