# src/cipherchat/scripts/tokens.py
"""
Issue development bearer tokens for the relay.

Registration and login live outside this service. For local testing this
script ensures a user with the given nickname exists and prints a token that
the WebSocket endpoint and the REST API accept.

    python -m cipherchat.scripts.tokens wolf --ttl-minutes 60
"""

import argparse
from datetime import timedelta

from cipherchat.core.security import create_access_token
from cipherchat.db.session import create_tables
from cipherchat.services.store import ChatStore, UserRecord


def ensure_user(store: ChatStore, nickname: str) -> UserRecord:
    """Return the user called ``nickname``, creating it if necessary.

    Args:
        store: Storage collaborator to read and write users through
        nickname: Nickname to look up or register
    """
    existing = store.get_user_by_nickname(nickname)
    if existing is not None:
        return existing
    return store.create_user(nickname)


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Issue a CipherChat access token")
    p.add_argument("nickname", help="Nickname of the user to issue the token for")
    p.add_argument("--ttl-minutes", type=int, default=None,
                   help="Token lifetime in minutes (default: configured expiry)")
    return p.parse_args()


def main() -> int:
    args = parse_args()
    create_tables()
    user = ensure_user(ChatStore(), args.nickname)
    lifetime = timedelta(minutes=args.ttl_minutes) if args.ttl_minutes else None
    print(f"user_id={user.id} nickname={user.nickname}")
    print(create_access_token(user.id, user.nickname, expires_delta=lifetime))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
