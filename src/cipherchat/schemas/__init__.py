"""
Pydantic schemas for API request/response models and live event payloads.

These schemas define the structure of API data for serialization and validation.
"""

from .chat import ChatStartRequest
from .events import EventFrame, InboundEvent, OutboundEvent, SendMessagePayload
from .user import PublicKeyUpdate

__all__ = [
    "ChatStartRequest",
    "EventFrame", "InboundEvent", "OutboundEvent", "SendMessagePayload",
    "PublicKeyUpdate",
]
