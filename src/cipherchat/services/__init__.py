# src/cipherchat/services/__init__.py
"""Relay services for the CipherChat application."""

from .connection import Connection, ConnectionState, Identity, WebSocketConnection
from .membership import MembershipResolver
from .presence import PresenceBroadcaster
from .registry import ConnectionRegistry, RoomDirectory
from .relay import RelayEngine, get_relay_engine
from .session_gate import SessionGate
from .store import ChatStore

__all__ = [
    "ChatStore",
    "Connection", "ConnectionState", "Identity", "WebSocketConnection",
    "ConnectionRegistry", "RoomDirectory",
    "MembershipResolver",
    "PresenceBroadcaster",
    "RelayEngine", "get_relay_engine",
    "SessionGate",
]
