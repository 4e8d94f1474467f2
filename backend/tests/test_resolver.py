from datetime import datetime
from datetime import timedelta
from types import SimpleNamespace

from chatsync.schemas.records import ChatRecord
from chatsync.services.resolver import DEDUP_WINDOW
from chatsync.services.resolver import ChatAction
from chatsync.services.resolver import is_duplicate_message
from chatsync.services.resolver import resolve_chat

T0 = datetime(2024, 5, 1, 10, 0, 0)


def _msg(content, created_at):
    return SimpleNamespace(content=content, created_at=created_at)


def _chat(is_deleted=False, deleted_at=None):
    return ChatRecord(
        id="chat-1",
        user_id="user-1",
        contact_id="ada",
        contact_name="Ada",
        last_message_at=T0,
        created_at=T0,
        updated_at=deleted_at or T0,
        is_deleted=is_deleted,
        deleted_at=deleted_at,
    )


# ---------------------------------------------------------------------------
# Message dedup window
# ---------------------------------------------------------------------------


def test_window_is_one_second():
    assert DEDUP_WINDOW == timedelta(milliseconds=1000)


def test_same_content_999ms_apart_is_duplicate():
    existing = [_msg("hello", T0)]
    assert is_duplicate_message("hello", T0 + timedelta(milliseconds=999), existing)


def test_same_content_exactly_1000ms_apart_is_distinct():
    existing = [_msg("hello", T0)]
    assert not is_duplicate_message("hello", T0 + timedelta(milliseconds=1000), existing)


def test_same_content_1001ms_apart_is_distinct():
    existing = [_msg("hello", T0)]
    assert not is_duplicate_message("hello", T0 + timedelta(milliseconds=1001), existing)


def test_window_applies_in_both_directions():
    """A candidate that is slightly *older* than the stored copy still matches."""
    existing = [_msg("hello", T0)]
    assert is_duplicate_message("hello", T0 - timedelta(milliseconds=500), existing)


def test_different_content_is_never_duplicate():
    existing = [_msg("hello", T0)]
    assert not is_duplicate_message("hello!", T0, existing)


def test_empty_history_has_no_duplicates():
    assert not is_duplicate_message("hello", T0, [])


# ---------------------------------------------------------------------------
# Chat resolution
# ---------------------------------------------------------------------------


def test_unknown_contact_is_created():
    resolution = resolve_chat(False, None, [T0])
    assert resolution.action is ChatAction.CREATE
    assert resolution.replay_after is None


def test_live_server_chat_wins():
    server = _chat()
    resolution = resolve_chat(False, server, [T0])
    assert resolution.action is ChatAction.MERGE
    assert resolution.target is server


def test_local_delete_of_live_chat():
    server = _chat()
    resolution = resolve_chat(True, server)
    assert resolution.action is ChatAction.DELETE
    assert resolution.target is server


def test_local_delete_of_unknown_chat_is_noop():
    assert resolve_chat(True, None).action is ChatAction.NOOP


def test_local_delete_of_tombstone_is_noop():
    tombstone = _chat(is_deleted=True, deleted_at=T0)
    assert resolve_chat(True, tombstone).action is ChatAction.NOOP


def test_stale_replica_of_deleted_chat_is_skipped():
    tombstone = _chat(is_deleted=True, deleted_at=T0 + timedelta(hours=1))
    resolution = resolve_chat(False, tombstone, [T0, T0 + timedelta(minutes=5)])
    assert resolution.action is ChatAction.SKIP_STALE


def test_replica_without_messages_is_skipped():
    tombstone = _chat(is_deleted=True, deleted_at=T0)
    assert resolve_chat(False, tombstone, []).action is ChatAction.SKIP_STALE


def test_activity_after_deletion_recreates_chat():
    deleted_at = T0 + timedelta(hours=1)
    tombstone = _chat(is_deleted=True, deleted_at=deleted_at)
    resolution = resolve_chat(False, tombstone, [T0, deleted_at + timedelta(seconds=1)])
    assert resolution.action is ChatAction.CREATE
    assert resolution.replay_after == deleted_at
