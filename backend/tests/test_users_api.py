from datetime import datetime

from chatsync.utils.time import utc_day

PROFILE_URL = "/api/user/profile"
SUBSCRIPTION_URL = "/api/user/subscription"


def test_profile_missing_until_created(client, auth_headers):
    assert client.get(PROFILE_URL, headers=auth_headers).status_code == 404

    response = client.put(
        PROFILE_URL,
        json={"email": "ada@example.com", "displayName": "Ada"},
        headers=auth_headers,
    )
    assert response.status_code == 200
    assert response.json()["id"] == "user-1"

    profile = client.get(PROFILE_URL, headers=auth_headers).json()
    assert profile["email"] == "ada@example.com"
    assert profile["displayName"] == "Ada"
    assert "photoUrl" not in profile


def test_profile_update_keeps_unsent_fields(client, auth_headers):
    client.put(PROFILE_URL, json={"email": "ada@example.com", "displayName": "Ada"}, headers=auth_headers)

    response = client.put(PROFILE_URL, json={"photoUrl": "https://cdn.example/ada.png"}, headers=auth_headers)

    body = response.json()
    assert body["email"] == "ada@example.com"
    assert body["photoUrl"] == "https://cdn.example/ada.png"


def test_profiles_are_per_user(client, auth_headers, other_auth_headers):
    client.put(PROFILE_URL, json={"displayName": "Ada"}, headers=auth_headers)
    assert client.get(PROFILE_URL, headers=other_auth_headers).status_code == 404


def test_default_subscription_is_free(client, auth_headers):
    response = client.get(SUBSCRIPTION_URL, headers=auth_headers)

    assert response.status_code == 200
    assert response.json() == {
        "tier": "free",
        "status": "none",
        "usage": {"day": utc_day(), "messageCount": 0},
    }


def test_subscription_reflects_store(client, user_store, auth_headers):
    user_store.update_subscription("user-1", tier="pro", status="active", current_period_end=datetime(2030, 1, 1))

    body = client.get(SUBSCRIPTION_URL, headers=auth_headers).json()

    assert body["tier"] == "pro"
    assert body["status"] == "active"
    assert body["currentPeriodEnd"] == "2030-01-01T00:00:00.000Z"


def test_user_endpoints_require_auth(client):
    assert client.get(PROFILE_URL).status_code == 401
    assert client.get(SUBSCRIPTION_URL).status_code == 401
