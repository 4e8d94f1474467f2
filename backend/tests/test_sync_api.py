from datetime import timedelta

from fastapi.testclient import TestClient

from chatsync.core.implementations import SQLAlchemyChatStore
from chatsync.main import create_app
from tests.conftest import TestingSessionLocal
from tests.helpers.auth import bearer
from tests.helpers.stores import FlakyChatStore
from tests.helpers.stores import SnapshotFailingStore

SYNC_URL = "/api/v2/sync"


def _payload(*chats, last_sync_at=None):
    body = {"localChats": list(chats)}
    if last_sync_at is not None:
        body["lastSyncAt"] = last_sync_at
    return body


def _chat(contact_id, name="Ada", messages=(), **extra):
    return {"contactId": contact_id, "contactName": name, "messages": list(messages), **extra}


def _msg(content, created_at, role="user"):
    return {"role": role, "content": content, "createdAt": created_at}


# ---------------------------------------------------------------------------
# Authentication & limits
# ---------------------------------------------------------------------------


def test_sync_requires_token(client):
    response = client.post(SYNC_URL, json=_payload())
    assert response.status_code == 401
    assert response.headers["WWW-Authenticate"] == "Bearer"


def test_snapshot_requires_token(client):
    assert client.get(SYNC_URL).status_code == 401


def test_rejects_token_signed_with_other_secret(client):
    headers = bearer("user-1", secret="a-completely-different-secret")
    response = client.post(SYNC_URL, json=_payload(), headers=headers)
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid token"


def test_rejects_expired_token(client):
    headers = bearer("user-1", expires_in=timedelta(minutes=-5))
    assert client.post(SYNC_URL, json=_payload(), headers=headers).status_code == 401


def test_rejects_malformed_authorization_header(client):
    response = client.get(SYNC_URL, headers={"Authorization": "Token abc"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Unauthorized"


def test_sync_is_rate_limited_per_user(settings, make_container, auth_headers, other_auth_headers):
    settings.override(sync_rate_limit_per_minute=2)
    client = TestClient(create_app(make_container()))

    assert client.get(SYNC_URL, headers=auth_headers).status_code == 200
    assert client.post(SYNC_URL, json=_payload(), headers=auth_headers).status_code == 200

    limited = client.get(SYNC_URL, headers=auth_headers)
    assert limited.status_code == 429
    assert int(limited.headers["Retry-After"]) >= 1

    # Budgets are per user
    assert client.get(SYNC_URL, headers=other_auth_headers).status_code == 200


# ---------------------------------------------------------------------------
# Exchange
# ---------------------------------------------------------------------------


def test_sync_returns_converged_snapshot(client, auth_headers):
    body = _payload(
        _chat(
            "c1",
            messages=[
                _msg("hi", "2024-05-01T10:00:00.000Z"),
                _msg("hello!", "2024-05-01T10:00:02.000Z", role="assistant"),
            ],
        ),
        _chat("c2", "Bob", isDeleted=True),
    )

    response = client.post(SYNC_URL, json=body, headers=auth_headers)

    assert response.status_code == 200
    data = response.json()
    assert "errors" not in data
    assert data["syncedAt"].endswith("Z")

    assert len(data["chats"]) == 1
    chat = data["chats"][0]
    assert chat["contactId"] == "c1"
    assert chat["contactName"] == "Ada"
    assert chat["lastMessage"] == "hello!"
    assert chat["lastMessageAt"] == "2024-05-01T10:00:02.000Z"
    assert chat["messageCount"] == 2
    assert [m["content"] for m in chat["messages"]] == ["hi", "hello!"]
    assert chat["messages"][0]["createdAt"] == "2024-05-01T10:00:00.000Z"
    assert chat["messages"][1]["role"] == "assistant"
    assert all(m["chatId"] == chat["id"] for m in chat["messages"])


def test_offset_timestamps_are_normalised_to_utc(client, auth_headers):
    body = _payload(_chat("c1", messages=[_msg("hi", "2024-05-01T12:00:00.250+02:00")]))

    data = client.post(SYNC_URL, json=body, headers=auth_headers).json()

    assert data["chats"][0]["messages"][0]["createdAt"] == "2024-05-01T10:00:00.250Z"


def test_replayed_request_changes_nothing(client, auth_headers):
    body = _payload(_chat("c1", messages=[_msg("hi", "2024-05-01T10:00:00.000Z")]))

    first = client.post(SYNC_URL, json=body, headers=auth_headers).json()
    second = client.post(SYNC_URL, json=body, headers=auth_headers).json()

    assert first["chats"] == second["chats"]


def test_get_is_read_only(client, auth_headers):
    client.post(SYNC_URL, json=_payload(_chat("c1")), headers=auth_headers)

    before = client.get(SYNC_URL, headers=auth_headers).json()
    after = client.get(SYNC_URL, headers=auth_headers).json()

    assert before["chats"] == after["chats"]
    assert len(before["chats"]) == 1
    assert "errors" not in before


def test_deleted_chat_disappears_from_snapshot(client, auth_headers):
    client.post(SYNC_URL, json=_payload(_chat("c1")), headers=auth_headers)

    data = client.post(SYNC_URL, json=_payload({"contactId": "c1", "isDeleted": True}), headers=auth_headers).json()

    assert data["chats"] == []


def test_last_sync_at_still_returns_full_snapshot(client, auth_headers):
    client.post(SYNC_URL, json=_payload(_chat("c1")), headers=auth_headers)

    data = client.post(
        SYNC_URL, json=_payload(last_sync_at="2999-01-01T00:00:00.000Z"), headers=auth_headers
    ).json()

    assert len(data["chats"]) == 1


def test_users_are_isolated(client, auth_headers, other_auth_headers):
    client.post(SYNC_URL, json=_payload(_chat("c1")), headers=auth_headers)

    assert client.get(SYNC_URL, headers=other_auth_headers).json()["chats"] == []


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


def test_partial_failure_reports_errors(make_container, auth_headers):
    store = FlakyChatStore(SQLAlchemyChatStore(TestingSessionLocal), failing_contacts={"bob"})
    client = TestClient(create_app(make_container(chat_store=store)))

    body = _payload(_chat("ada"), _chat("bob", "Bob"), _chat("cy", "Cy"))
    response = client.post(SYNC_URL, json=body, headers=auth_headers)

    assert response.status_code == 200
    data = response.json()
    assert sorted(c["contactId"] for c in data["chats"]) == ["ada", "cy"]
    assert len(data["errors"]) == 1
    assert data["errors"][0].startswith("chat[1] contactId=bob")


def test_malformed_entry_is_reported_not_rejected(client, auth_headers):
    body = _payload(42, _chat("ada"))

    response = client.post(SYNC_URL, json=body, headers=auth_headers)

    assert response.status_code == 200
    data = response.json()
    assert [c["contactId"] for c in data["chats"]] == ["ada"]
    assert data["errors"][0].startswith("chat[0]")


def test_malformed_envelope_is_rejected(client, auth_headers):
    response = client.post(SYNC_URL, json={"localChats": "nope"}, headers=auth_headers)
    assert response.status_code == 422


def test_too_many_local_chats_is_rejected(client, auth_headers):
    body = _payload(*[_chat(f"c{i}") for i in range(101)])
    assert client.post(SYNC_URL, json=body, headers=auth_headers).status_code == 422


def test_snapshot_failure_is_a_server_error(make_container, auth_headers):
    store = SnapshotFailingStore(SQLAlchemyChatStore(TestingSessionLocal))
    client = TestClient(create_app(make_container(chat_store=store)))

    response = client.post(SYNC_URL, json=_payload(_chat("c1")), headers=auth_headers)

    assert response.status_code == 500
    assert response.json()["detail"] == "Failed to sync"
