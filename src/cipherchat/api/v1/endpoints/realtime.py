# src/cipherchat/api/v1/endpoints/realtime.py
"""WebSocket endpoint carrying the live relay connection."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError as PydanticValidationError

from cipherchat.api.v1.dependencies import RelayEngineDep
from cipherchat.core.errors import AuthenticationError, ValidationError
from cipherchat.schemas.events import EventFrame, OutboundEvent
from cipherchat.services.connection import WebSocketConnection

# Configure logger for this module
logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


def _bearer_token(websocket: WebSocket, token: str | None) -> str | None:
    """Prefer the ``token`` query parameter, then an Authorization header."""
    if token:
        return token
    scheme, _, credentials = websocket.headers.get("authorization", "").partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return None


def _frame_text(message: dict[str, Any]) -> str:
    """Return the JSON text of a frame; binary frames must be UTF-8."""
    if message.get("text") is not None:
        return message["text"]
    return (message.get("bytes") or b"").decode("utf-8")


@router.websocket("/ws")
async def relay_socket(
    websocket: WebSocket,
    engine: RelayEngineDep,
    token: str | None = Query(None),
) -> None:
    """Authenticate, then pump JSON event frames into the relay engine."""
    connection = WebSocketConnection(websocket)
    try:
        engine.gate.admit(connection, _bearer_token(websocket, token))
    except AuthenticationError as exc:
        logger.info("Refused connection: %s", exc.message)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=exc.message)
        return

    await websocket.accept()
    try:
        await engine.admit(connection)
        while connection.is_open:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000), message.get("reason"))
            try:
                frame = EventFrame.model_validate_json(_frame_text(message))
            except (PydanticValidationError, UnicodeDecodeError):
                await connection.emit(
                    OutboundEvent.ERROR.value,
                    ValidationError("Malformed event frame").to_payload(),
                )
                continue
            await engine.dispatch(connection, frame.event, frame.data)
    except WebSocketDisconnect:
        pass
    finally:
        # Teardown must finish even if this task is being cancelled.
        await asyncio.shield(engine.disconnect(connection))
