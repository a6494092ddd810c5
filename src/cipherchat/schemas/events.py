# src/cipherchat/schemas/events.py
"""Pydantic schemas for live-connection event frames."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from cipherchat.core.settings import settings


class InboundEvent(str, Enum):
    """Events a client may send over a live connection."""

    SEND_MESSAGE = "send_message"
    CALL_USER = "call_user"
    ANSWER_CALL = "answer_call"
    ICE_CANDIDATE = "ice_candidate"
    END_CALL = "end_call"
    GET_CHATS = "get_chats"
    DISCONNECT = "disconnect"


class OutboundEvent(str, Enum):
    """Events the relay emits to clients."""

    NEW_MESSAGE = "new_message"
    MESSAGE_DELETED = "message_deleted"
    CHAT_DELETED = "chat_deleted"
    MESSAGES_CLEARED = "messages_cleared"
    CHAT_UPDATE = "chat_update"
    USER_STATUS_CHANGED = "user_status_changed"
    INCOMING_CALL = "incoming_call"
    CALL_ANSWERED = "call_answered"
    ICE_CANDIDATE = "ice_candidate"
    CALL_ENDED = "call_ended"
    CALL_FAILED = "call_failed"
    ERROR = "error"


class EventFrame(BaseModel):
    """Envelope of every frame on the wire: ``{"event": ..., "data": {...}}``."""

    event: str = Field(..., min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)

    @field_validator("data", mode="before")
    @classmethod
    def _default_data(cls, value: Any) -> Any:
        return {} if value is None else value


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class SendMessagePayload(_Payload):
    """Ciphertext for a chat plus the per-recipient wrapped keys."""

    chat_id: int = Field(..., alias="chatId")
    content: str = Field(..., min_length=1)
    encrypted_keys: dict[str, str] = Field(default_factory=dict, alias="encryptedKeys")

    @field_validator("content")
    @classmethod
    def _limit_content(cls, value: str) -> str:
        if len(value) > settings.max_ciphertext_length:
            raise ValueError("Message content too large")
        return value

    @field_validator("encrypted_keys", mode="before")
    @classmethod
    def _default_keys(cls, value: Any) -> Any:
        return {} if value is None else value


class CallUserPayload(_Payload):
    target_user_id: int = Field(..., alias="targetUserId")
    offer: Any = None


class AnswerCallPayload(_Payload):
    target_user_id: int = Field(..., alias="targetUserId")
    answer: Any = None


class IceCandidatePayload(_Payload):
    target_user_id: int = Field(..., alias="targetUserId")
    candidate: Any = None


class EndCallPayload(_Payload):
    target_user_id: int = Field(..., alias="targetUserId")


class GetChatsPayload(_Payload):
    """Snapshot refresh request; carries no fields."""


class DisconnectPayload(_Payload):
    """Client-initiated close; carries no fields."""
