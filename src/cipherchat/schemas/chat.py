# src/cipherchat/schemas/chat.py
"""Chat-related Pydantic schemas."""

from pydantic import BaseModel, ConfigDict, Field


class ChatStartRequest(BaseModel):
    """Request to open (or reopen) the chat with another user."""

    target_user_id: int = Field(..., alias="targetUserId", description="Partner user id")

    model_config = ConfigDict(populate_by_name=True)
