from datetime import datetime
from datetime import timedelta

import pytest
from sqlalchemy.orm import Session

from chatsync.crud import crud
from chatsync.models.models import Chat

T0 = datetime(2024, 5, 1, 10, 0, 0)


def _new_chat(db: Session, user_id: str = "user-1", contact_id: str = "ada") -> Chat:
    chat, created = crud.create_chat(db, user_id, contact_id, "Ada", contact_emoji="👩", contact_purpose="math")
    assert created
    return chat


def test_create_chat_is_create_if_absent(db_session: Session):
    """Creating twice for the same contact returns the first chat"""
    first = _new_chat(db_session)
    second, created = crud.create_chat(db_session, "user-1", "ada", "Someone else")

    assert created is False
    assert second.id == first.id
    assert second.contact_name == "Ada"
    assert db_session.query(Chat).count() == 1


def test_same_contact_for_other_user_is_separate(db_session: Session):
    mine = _new_chat(db_session, user_id="user-1")
    theirs = _new_chat(db_session, user_id="user-2")
    assert mine.id != theirs.id


def test_losing_insert_race_returns_winner(db_session: Session, monkeypatch):
    """The partial unique index rejects a duplicate insert; the winner comes back"""
    winner = _new_chat(db_session)

    real_lookup = crud.get_chat_by_contact_id
    calls = {"n": 0}

    def miss_once(db, user_id, contact_id, include_deleted=False):
        calls["n"] += 1
        if calls["n"] == 1:
            return None  # pretend the other writer has not committed yet
        return real_lookup(db, user_id, contact_id, include_deleted=include_deleted)

    monkeypatch.setattr(crud, "get_chat_by_contact_id", miss_once)

    chat, created = crud.create_chat(db_session, "user-1", "ada", "Ada again")

    assert created is False
    assert chat.id == winner.id
    assert db_session.query(Chat).filter(Chat.contact_id == "ada").count() == 1


def test_recreate_after_soft_delete(db_session: Session):
    old = _new_chat(db_session)
    crud.soft_delete_chat(db_session, "user-1", old.id)

    new, created = crud.create_chat(db_session, "user-1", "ada", "Ada")

    assert created is True
    assert new.id != old.id
    assert db_session.query(Chat).filter(Chat.contact_id == "ada").count() == 2


def test_soft_delete_is_idempotent(db_session: Session):
    chat = _new_chat(db_session)

    deleted = crud.soft_delete_chat(db_session, "user-1", chat.id)
    first_deleted_at = deleted.deleted_at
    again = crud.soft_delete_chat(db_session, "user-1", chat.id)

    assert again.is_deleted is True
    assert again.deleted_at == first_deleted_at
    assert crud.soft_delete_chat(db_session, "user-1", "missing") is None


def test_listings_exclude_tombstones(db_session: Session):
    keep = _new_chat(db_session, contact_id="ada")
    gone = _new_chat(db_session, contact_id="bob")
    crud.soft_delete_chat(db_session, "user-1", gone.id)

    assert [c.id for c in crud.get_active_chats(db_session, "user-1")] == [keep.id]

    # still addressable for idempotent re-delete
    assert crud.get_chat(db_session, "user-1", gone.id).is_deleted is True
    assert crud.get_chat_by_contact_id(db_session, "user-1", "bob") is None
    assert crud.get_chat_by_contact_id(db_session, "user-1", "bob", include_deleted=True).id == gone.id


def test_updated_since_includes_tombstones(db_session: Session):
    chat = _new_chat(db_session)
    before = chat.updated_at - timedelta(seconds=1)
    crud.soft_delete_chat(db_session, "user-1", chat.id)

    changed = crud.get_chats_updated_since(db_session, "user-1", before)
    assert [c.id for c in changed] == [chat.id]
    assert changed[0].is_deleted is True


def test_active_chats_ordered_by_last_activity(db_session: Session):
    older = _new_chat(db_session, contact_id="ada")
    newer = _new_chat(db_session, contact_id="bob")
    crud.create_chat_message(db_session, older, "user", "hi", created_at=T0)
    crud.create_chat_message(db_session, newer, "user", "hi", created_at=T0 + timedelta(minutes=1))

    assert [c.id for c in crud.get_active_chats(db_session, "user-1")] == [newer.id, older.id]


def test_update_chat_only_touches_editable_fields(db_session: Session):
    chat = _new_chat(db_session)
    updated = crud.update_chat(db_session, "user-1", chat.id, contact_name="Ada L.", contact_image="ada.png")

    assert updated.contact_name == "Ada L."
    assert updated.contact_image == "ada.png"
    assert updated.contact_emoji == "👩"

    with pytest.raises(ValueError, match="message_count"):
        crud.update_chat(db_session, "user-1", chat.id, message_count=99)


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


def test_append_refreshes_chat_preview(db_session: Session):
    chat = _new_chat(db_session)
    long_text = "x" * 250

    crud.create_chat_message(db_session, chat, "user", "first", created_at=T0)
    crud.create_chat_message(db_session, chat, "assistant", long_text, created_at=T0 + timedelta(seconds=2))

    db_session.refresh(chat)
    assert chat.message_count == 2
    assert chat.last_message == "x" * 100
    assert chat.last_message_at == T0 + timedelta(seconds=2)


def test_appending_older_message_keeps_newest_preview(db_session: Session):
    chat = _new_chat(db_session)
    crud.create_chat_message(db_session, chat, "user", "newest", created_at=T0 + timedelta(minutes=5))
    crud.create_chat_message(db_session, chat, "user", "backfilled", created_at=T0)

    db_session.refresh(chat)
    assert chat.last_message == "newest"
    assert chat.message_count == 2


def test_messages_ordered_by_time_then_insertion(db_session: Session):
    chat = _new_chat(db_session)
    crud.create_chat_message(db_session, chat, "user", "b", created_at=T0 + timedelta(seconds=1))
    crud.create_chat_message(db_session, chat, "user", "a1", created_at=T0)
    crud.create_chat_message(db_session, chat, "assistant", "a2", created_at=T0)

    contents = [m.content for m in crud.get_chat_messages(db_session, chat.id)]
    assert contents == ["a1", "a2", "b"]


def test_delete_message_recomputes_preview(db_session: Session):
    chat = _new_chat(db_session)
    crud.create_chat_message(db_session, chat, "user", "first", created_at=T0)
    last = crud.create_chat_message(db_session, chat, "assistant", "second", created_at=T0 + timedelta(seconds=1))

    assert crud.delete_chat_message(db_session, chat, last.id) is True
    db_session.refresh(chat)
    assert chat.last_message == "first"
    assert chat.message_count == 1

    assert crud.delete_chat_message(db_session, chat, "missing") is False


def test_audio_backfill(db_session: Session):
    chat = _new_chat(db_session)
    message = crud.create_chat_message(db_session, chat, "assistant", "spoken", created_at=T0)

    updated = crud.update_chat_message(db_session, chat.id, message.id, "https://cdn.example/a.mp3")
    assert updated.audio_url == "https://cdn.example/a.mp3"
    assert updated.content == "spoken"
    assert crud.update_chat_message(db_session, chat.id, "missing", "x") is None


def test_message_pagination_walks_backwards(db_session: Session):
    chat = _new_chat(db_session)
    for i in range(5):
        crud.create_chat_message(db_session, chat, "user", f"m{i}", created_at=T0 + timedelta(seconds=i))

    page, has_more = crud.get_chat_messages_page(db_session, chat.id, limit=2)
    assert [m.content for m in page] == ["m3", "m4"]
    assert has_more is True

    page, has_more = crud.get_chat_messages_page(db_session, chat.id, limit=2, cursor=page[0].id)
    assert [m.content for m in page] == ["m1", "m2"]
    assert has_more is True

    page, has_more = crud.get_chat_messages_page(db_session, chat.id, limit=2, cursor=page[0].id)
    assert [m.content for m in page] == ["m0"]
    assert has_more is False


def test_unknown_cursor_yields_empty_page(db_session: Session):
    chat = _new_chat(db_session)
    crud.create_chat_message(db_session, chat, "user", "m0", created_at=T0)

    assert crud.get_chat_messages_page(db_session, chat.id, limit=10, cursor="nope") == ([], False)


# ---------------------------------------------------------------------------
# Usage & subscriptions
# ---------------------------------------------------------------------------


def test_daily_usage_counter(db_session: Session):
    assert crud.get_daily_usage(db_session, "user-1", "2024-05-01") == 0
    assert crud.increment_daily_usage(db_session, "user-1", "2024-05-01") == 1
    assert crud.increment_daily_usage(db_session, "user-1", "2024-05-01", amount=2) == 3
    assert crud.get_daily_usage(db_session, "user-1", "2024-05-02") == 0


def test_subscription_upsert(db_session: Session):
    created = crud.update_subscription(db_session, "user-1", tier="pro", status="active")
    assert created.tier == "pro"

    updated = crud.update_subscription(db_session, "user-1", status="canceled")
    assert updated.tier == "pro"
    assert updated.status == "canceled"
