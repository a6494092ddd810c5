# src/cipherchat/api/v1/endpoints/users.py
"""User profile and public key endpoints."""

from __future__ import annotations

import asyncio
from typing import Any

from fastapi import APIRouter

from cipherchat.api.v1.dependencies import CurrentUserDep, RelayEngineDep, http_error
from cipherchat.core.errors import RelayError, ValidationError
from cipherchat.db.time import as_utc
from cipherchat.schemas.user import PublicKeyUpdate

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me")
async def get_me(current_user: CurrentUserDep) -> dict[str, Any]:
    """Return the caller's profile."""
    return {
        "id": current_user.id,
        "nickname": current_user.nickname,
        "created_at": as_utc(current_user.created_at).isoformat(),
        "has_public_key": current_user.public_key is not None,
    }


@router.post("/public-key")
async def save_public_key(
    update: PublicKeyUpdate,
    current_user: CurrentUserDep,
    engine: RelayEngineDep,
) -> dict[str, bool]:
    """Store the caller's public key."""
    if not update.public_key.strip():
        raise http_error(ValidationError("Public key required"))
    try:
        await asyncio.to_thread(engine.store.set_public_key, current_user.id, update.public_key)
    except RelayError as exc:
        raise http_error(exc) from exc
    return {"success": True}


@router.get("/{user_id}/public-key")
async def get_public_key(
    user_id: int,
    current_user: CurrentUserDep,
    engine: RelayEngineDep,
) -> dict[str, Any]:
    """Return another user's public key."""
    try:
        public_key = await asyncio.to_thread(engine.store.get_public_key, user_id)
    except RelayError as exc:
        raise http_error(exc) from exc
    return {"success": True, "publicKey": public_key}
