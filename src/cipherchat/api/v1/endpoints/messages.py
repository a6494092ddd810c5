# src/cipherchat/api/v1/endpoints/messages.py
"""Message endpoints for the CipherChat API."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from cipherchat.api.v1.dependencies import CurrentUserDep, RelayEngineDep, http_error
from cipherchat.core.errors import RelayError

router = APIRouter(prefix="/messages", tags=["messages"])


@router.delete("/{message_id}")
async def delete_message(
    message_id: int,
    current_user: CurrentUserDep,
    engine: RelayEngineDep,
) -> dict[str, Any]:
    """Delete one of the caller's own messages and notify the chat."""
    try:
        await engine.delete_message(current_user.id, message_id)
    except RelayError as exc:
        raise http_error(exc) from exc
    return {"success": True, "message": "Message deleted"}
