"""Admission control for live connections."""

from __future__ import annotations

import logging

from cipherchat.core.security import decode_access_token
from cipherchat.services.connection import Connection, ConnectionState, Identity

# Configure logger for this module
logger = logging.getLogger(__name__)


class SessionGate:
    """Verifies bearer tokens before a connection may join rooms or send events."""

    def authenticate(self, token: str | None) -> Identity:
        """Return the identity carried by ``token``.

        Raises:
            AuthenticationError: If the token is missing, invalid or expired.
        """
        claims = decode_access_token(token)
        return Identity(user_id=claims.user_id, nickname=claims.nickname)

    def admit(self, connection: Connection, token: str | None) -> Identity:
        """Authenticate ``token`` and bind the identity to ``connection``.

        On failure the connection is left untouched.
        """
        identity = self.authenticate(token)
        connection.identity = identity
        connection.transition(ConnectionState.AUTHENTICATED)
        logger.debug("Admitted %s as user %s", connection.sid, identity.user_id)
        return identity
