# src/cipherchat/api/v1/endpoints/chats.py
"""Chat endpoints for the CipherChat API."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Query, Response, status

from cipherchat.api.v1.dependencies import CurrentUserDep, RelayEngineDep, http_error
from cipherchat.core.errors import RelayError
from cipherchat.core.settings import settings
from cipherchat.schemas.chat import ChatStartRequest

# Configure logger for this module
logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chats", tags=["chats"])


@router.get("")
async def list_chats(current_user: CurrentUserDep, engine: RelayEngineDep) -> dict[str, Any]:
    """List the caller's chats, most recent activity first."""
    try:
        chats = await engine.chat_snapshot(current_user.id)
    except RelayError as exc:
        raise http_error(exc) from exc
    return {"success": True, "chats": chats}


@router.post("/start")
async def start_chat(
    request: ChatStartRequest,
    response: Response,
    current_user: CurrentUserDep,
    engine: RelayEngineDep,
) -> dict[str, Any]:
    """Return the chat with another user, creating it when it does not exist."""
    try:
        summary, created = await asyncio.to_thread(
            engine.store.start_chat, current_user.id, request.target_user_id
        )
    except RelayError as exc:
        raise http_error(exc) from exc

    if created:
        response.status_code = status.HTTP_201_CREATED
        try:
            await engine.announce_chat(summary.id)
        except RelayError as exc:
            logger.error("Could not announce chat %s: %s", summary.id, exc)

    return {
        "success": True,
        "chat": summary.to_dict(engine.registry.is_online(summary.partner_id)),
    }


@router.get("/{chat_id}/messages")
async def get_messages(
    chat_id: int,
    current_user: CurrentUserDep,
    engine: RelayEngineDep,
    limit: int = Query(settings.history_page_size, ge=1, le=settings.history_page_max),
    before: datetime | None = Query(None),
) -> dict[str, Any]:
    """Return a page of non-deleted messages, oldest first."""
    try:
        records = await asyncio.to_thread(
            engine.store.history, chat_id, current_user.id, limit, before
        )
    except RelayError as exc:
        raise http_error(exc) from exc
    return {"success": True, "messages": [record.to_event() for record in records]}


@router.delete("/{chat_id}")
async def delete_chat(
    chat_id: int,
    current_user: CurrentUserDep,
    engine: RelayEngineDep,
) -> dict[str, Any]:
    """Delete a chat and all of its messages."""
    try:
        await engine.delete_chat(current_user.id, chat_id)
    except RelayError as exc:
        raise http_error(exc) from exc
    return {"success": True, "message": "Chat deleted"}


@router.delete("/{chat_id}/messages")
async def clear_chat(
    chat_id: int,
    current_user: CurrentUserDep,
    engine: RelayEngineDep,
) -> dict[str, Any]:
    """Delete every message of a chat, keeping the chat itself."""
    try:
        await engine.clear_chat(current_user.id, chat_id)
    except RelayError as exc:
        raise http_error(exc) from exc
    return {"success": True, "message": "Messages cleared"}
