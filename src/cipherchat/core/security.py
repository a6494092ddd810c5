"""Bearer token issuing and verification built on JWT."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt

from cipherchat.core.errors import AuthenticationError
from cipherchat.core.settings import settings


@dataclass(frozen=True)
class TokenClaims:
    """Identity carried by a verified access token."""

    user_id: int
    nickname: str


def create_access_token(
    user_id: int,
    nickname: str,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed JWT access token for ``user_id``.

    Args:
        user_id: Identifier of the user the token is issued to.
        nickname: Display nickname embedded in the token.
        expires_delta: Optional lifetime override; defaults to the configured expiry.

    Returns:
        The encoded token string.
    """
    lifetime = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    to_encode: dict[str, object] = {
        "sub": str(user_id),
        "nickname": nickname,
        "exp": datetime.now(UTC) + lifetime,
    }
    encoded_jwt: str = jwt.encode(
        to_encode,
        settings.secret_key,
        algorithm=settings.jwt_algorithm,
    )
    return encoded_jwt


def decode_access_token(token: str | None) -> TokenClaims:
    """Verify signature and expiry of ``token`` and return its claims.

    Raises:
        AuthenticationError: If the token is missing, invalid, expired, or
            does not carry an integer subject and a nickname.
    """
    if not token:
        raise AuthenticationError("Access token required")

    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError as err:
        raise AuthenticationError("Invalid or expired token") from err

    subject = payload.get("sub")
    nickname = payload.get("nickname")
    if subject is None or not isinstance(nickname, str) or not nickname:
        raise AuthenticationError("Could not validate credentials")

    try:
        user_id = int(subject)
    except (TypeError, ValueError) as err:
        raise AuthenticationError("Could not validate credentials") from err

    return TokenClaims(user_id=user_id, nickname=nickname)
