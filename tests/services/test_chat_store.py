"""Tests for the SQLAlchemy-backed chat store."""

from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from cipherchat.core.errors import (
    AuthorizationError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from cipherchat.services.store import ChatStore


def test_start_chat_creates_once(store, alice, bob) -> None:
    summary, created = store.start_chat(bob.id, alice.id)
    again, created_again = store.start_chat(alice.id, bob.id)

    assert created is True
    assert created_again is False
    assert again.id == summary.id
    assert summary.partner_id == alice.id
    assert again.partner_id == bob.id
    assert again.partner_nickname == "bob"


def test_start_chat_rejects_self_and_unknown(store, alice) -> None:
    with pytest.raises(ValidationError):
        store.start_chat(alice.id, alice.id)
    with pytest.raises(NotFoundError):
        store.start_chat(alice.id, 9999)


def test_membership_queries(store, alice, bob, carol, chat_ab) -> None:
    chat_ac, _ = store.start_chat(alice.id, carol.id)

    assert store.rooms_of(alice.id) == {chat_ab.id, chat_ac.id}
    assert store.rooms_of(bob.id) == {chat_ab.id}
    assert store.contacts_of(alice.id) == {bob.id, carol.id}
    assert store.other_member_of(chat_ab.id, bob.id) == alice.id
    assert store.is_member(chat_ab.id, alice.id)
    assert not store.is_member(chat_ab.id, carol.id)
    assert set(store.members_of(chat_ab.id)) == {alice.id, bob.id}

    with pytest.raises(NotFoundError):
        store.other_member_of(chat_ab.id, carol.id)
    with pytest.raises(NotFoundError):
        store.members_of(12345)


def test_persist_and_history(store, alice, bob, chat_ab) -> None:
    first = store.persist_message(chat_ab.id, alice.id, "c1", {str(bob.id): "k1"})
    second = store.persist_message(chat_ab.id, bob.id, "c2", {})

    history = store.history(chat_ab.id, bob.id, limit=50)

    assert [m.id for m in history] == [first.id, second.id]
    assert history[0].encrypted_keys == {str(bob.id): "k1"}
    assert history[0].sender_nickname == "alice"
    assert first.timestamp is not None
    assert first.is_deleted is False


def test_history_limit_and_before(store, alice, chat_ab) -> None:
    records = [store.persist_message(chat_ab.id, alice.id, f"c{i}", {}) for i in range(3)]

    latest_two = store.history(chat_ab.id, alice.id, limit=2)
    assert [m.content for m in latest_two] == ["c1", "c2"]

    earlier = store.history(
        chat_ab.id, alice.id, limit=50, before=records[0].timestamp + timedelta(microseconds=1)
    )
    assert [m.content for m in earlier] == ["c0"]


def test_history_requires_membership(store, carol, chat_ab) -> None:
    with pytest.raises(AuthorizationError):
        store.history(chat_ab.id, carol.id, limit=10)


def test_mark_deleted_only_by_sender(store, alice, bob, chat_ab) -> None:
    record = store.persist_message(chat_ab.id, alice.id, "secret", {})

    assert store.mark_deleted(record.id, bob.id) is False
    assert store.get_message(record.id).is_deleted is False

    assert store.mark_deleted(record.id, alice.id) is True
    assert store.get_message(record.id).is_deleted is True
    assert store.history(chat_ab.id, alice.id, limit=10) == []


def test_purge_room(store, alice, bob, chat_ab) -> None:
    store.persist_message(chat_ab.id, alice.id, "one", {})

    store.purge_room(chat_ab.id)
    assert store.history(chat_ab.id, alice.id, limit=10) == []
    assert store.is_member(chat_ab.id, alice.id)

    store.purge_room(chat_ab.id, delete_room=True)
    assert not store.is_member(chat_ab.id, alice.id)
    assert store.rooms_of(bob.id) == set()


def test_chats_of_orders_by_activity(store, alice, bob, carol) -> None:
    chat_ab, _ = store.start_chat(alice.id, bob.id)
    chat_ac, _ = store.start_chat(alice.id, carol.id)
    store.persist_message(chat_ab.id, bob.id, "latest", {})

    chats = store.chats_of(alice.id)

    assert [c.id for c in chats] == [chat_ab.id, chat_ac.id]
    assert chats[0].last_message == "latest"
    assert chats[1].last_message is None


def test_touch_last_seen(store, alice) -> None:
    before = store.get_user(alice.id).last_seen

    seen_at = store.touch_last_seen(alice.id)

    assert seen_at >= before
    assert store.get_user(alice.id).last_seen == seen_at


def test_public_key(store, alice) -> None:
    assert store.get_public_key(alice.id) is None
    store.set_public_key(alice.id, "pk-alice")
    assert store.get_public_key(alice.id) == "pk-alice"

    with pytest.raises(NotFoundError):
        store.get_public_key(4242)


def test_driver_failures_become_persistence_errors(mocker) -> None:
    session = mocker.MagicMock()
    session.scalars.side_effect = OperationalError("SELECT", {}, Exception("database is locked"))
    store = ChatStore(lambda: session)

    with pytest.raises(PersistenceError):
        store.rooms_of(1)

    session.rollback.assert_called_once()
    session.close.assert_called_once()
