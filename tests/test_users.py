from pathlib import Path

from bson import ObjectId
from pymongo.errors import DuplicateKeyError

from vidnest.config import settings
from vidnest.routers import users
from vidnest.routers.users import WATCH_HISTORY_LIMIT, record_watch

from conftest import PNG_BYTES, auth_headers, login, register, upload_video, user_id


def test_register_creates_user_without_secrets(client):
    resp = register(client, "Alice")
    assert resp.status_code == 201
    body = resp.json()
    assert body["success"] is True
    user = body["data"]
    assert user["username"] == "alice"
    assert user["email"] == "alice@example.com"
    assert user["avatar"].startswith("/stream/")
    assert "password" not in user
    assert "refresh_token" not in user


def test_registered_avatar_is_served(client):
    avatar = register(client, "alice").json()["data"]["avatar"]
    resp = client.get(avatar)
    assert resp.status_code == 200
    assert resp.content == PNG_BYTES


def test_register_rejects_duplicates(client):
    register(client, "alice")
    resp = register(client, "ALICE", email="other@example.com")
    assert resp.status_code == 409
    assert resp.json() == {"success": False, "message": "User already exists", "errors": []}


def test_register_requires_every_field(client):
    resp = client.post(
        "/api/v1/users/register",
        data={"full_name": "Bob", "email": "bob@example.com", "username": "bob", "password": "  "},
        files={"avatar": ("a.png", PNG_BYTES, "image/png")},
    )
    assert resp.status_code == 400
    assert resp.json()["message"] == "All fields are required"


def test_register_requires_image_avatar(client):
    data = {"full_name": "Bob", "email": "bob@example.com", "username": "bob", "password": "pw123456"}
    resp = client.post("/api/v1/users/register", data=data)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Avatar file is required"

    resp = client.post("/api/v1/users/register", data=data, files={"avatar": ("a.txt", b"hi", "text/plain")})
    assert resp.status_code == 400


def test_register_rejects_bad_email(client):
    resp = register(client, "bob", email="not-an-email")
    assert resp.status_code == 400
    assert resp.json()["message"] == "Validation Error"


def test_login_sets_cookies_and_returns_tokens(client):
    register(client, "alice")
    resp = client.post("/api/v1/users/login", json={"email": "Alice@Example.com", "password": "s3cure-Pass!"})
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["user"]["username"] == "alice"
    assert data["access_token"] and data["refresh_token"]
    assert "access_token" in resp.cookies
    assert "refresh_token" in resp.cookies

    me = client.get("/api/v1/users/current-user")
    assert me.status_code == 200
    assert me.json()["data"]["username"] == "alice"


def test_login_failures(client):
    register(client, "alice")
    assert client.post("/api/v1/users/login", json={"password": "x"}).status_code == 400
    assert client.post("/api/v1/users/login", json={"username": "nobody", "password": "x"}).status_code == 404
    resp = client.post("/api/v1/users/login", json={"username": "alice", "password": "wrong"})
    assert resp.status_code == 401
    assert resp.json()["message"] == "Invalid user credentials"


def test_protected_route_without_token(client):
    resp = client.get("/api/v1/users/current-user")
    assert resp.status_code == 401
    assert resp.json()["message"] == "Unauthorized access - No token provided"

    resp = client.get("/api/v1/users/current-user", headers={"Authorization": "Bearer garbage"})
    assert resp.status_code == 401
    assert resp.json()["message"] == "Invalid access token"


def test_refresh_rotates_and_rejects_reuse(client):
    register(client, "alice")
    old_refresh = login(client, "alice").json()["data"]["refresh_token"]

    resp = client.post("/api/v1/users/refresh-token", json={"refresh_token": old_refresh})
    assert resp.status_code == 200
    new_tokens = resp.json()["data"]
    assert new_tokens["refresh_token"] != old_refresh
    client.cookies.clear()

    resp = client.post("/api/v1/users/refresh-token", json={"refresh_token": old_refresh})
    assert resp.status_code == 401
    assert resp.json()["message"] == "Refresh token is expired or used"


def test_refresh_requires_token(client):
    resp = client.post("/api/v1/users/refresh-token")
    assert resp.status_code == 401


def test_access_token_is_not_a_refresh_token(client):
    register(client, "alice")
    access = login(client, "alice").json()["data"]["access_token"]
    resp = client.post("/api/v1/users/refresh-token", json={"refresh_token": access})
    assert resp.status_code == 401
    assert resp.json()["message"] == "Invalid refresh token"


def test_logout_invalidates_refresh_token(client, db):
    register(client, "alice")
    tokens = login(client, "alice").json()["data"]
    headers = {"Authorization": f"Bearer {tokens['access_token']}"}
    assert client.post("/api/v1/users/logout", headers=headers).status_code == 200
    assert db["user"].find_one({"username": "alice"})["refresh_token"] is None

    resp = client.post("/api/v1/users/refresh-token", json={"refresh_token": tokens["refresh_token"]})
    assert resp.status_code == 401


def test_change_password(client):
    headers = auth_headers(client, "alice")
    resp = client.post(
        "/api/v1/users/change-password",
        json={"old_password": "wrong", "new_password": "n3w-Pass!"},
        headers=headers,
    )
    assert resp.status_code == 400
    assert resp.json()["message"] == "Invalid old password"

    resp = client.post(
        "/api/v1/users/change-password",
        json={"old_password": "s3cure-Pass!", "new_password": "n3w-Pass!"},
        headers=headers,
    )
    assert resp.status_code == 200
    assert login(client, "alice", "n3w-Pass!").status_code == 200
    assert login(client, "alice").status_code == 401


def test_update_account(client):
    headers = auth_headers(client, "alice")
    register(client, "bob")

    resp = client.patch(
        "/api/v1/users/update-account",
        json={"full_name": "Alice Liddell", "email": "BOB@example.com"},
        headers=headers,
    )
    assert resp.status_code == 409

    resp = client.patch(
        "/api/v1/users/update-account",
        json={"full_name": "Alice Liddell", "email": "liddell@example.com"},
        headers=headers,
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["full_name"] == "Alice Liddell"
    assert data["email"] == "liddell@example.com"
    assert "password" not in data


def test_update_avatar_replaces_old_file(client):
    headers = auth_headers(client, "alice")
    old_avatar = client.get("/api/v1/users/current-user", headers=headers).json()["data"]["avatar"]

    resp = client.patch(
        "/api/v1/users/avatar",
        files={"avatar": ("new.png", PNG_BYTES, "image/png")},
        headers=headers,
    )
    assert resp.status_code == 200
    new_avatar = resp.json()["data"]["avatar"]
    assert new_avatar != old_avatar
    assert client.get(old_avatar).status_code == 404
    assert client.get(new_avatar).status_code == 200


def test_update_cover_image_requires_file(client):
    headers = auth_headers(client, "alice")
    resp = client.patch("/api/v1/users/cover-image", headers=headers)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Cover image file is missing"


def test_channel_profile(client):
    alice = auth_headers(client, "alice")
    bob = auth_headers(client, "bob")
    alice_id = user_id(client, alice)
    client.post(f"/api/v1/subscription/c/{alice_id}", headers=bob)

    resp = client.get("/api/v1/users/c/alice", headers=bob)
    assert resp.status_code == 200
    profile = resp.json()["data"]
    assert profile["subscribers_count"] == 1
    assert profile["channels_subscribed_to_count"] == 0
    assert profile["is_subscribed"] is True
    assert "password" not in profile

    anonymous = client.get("/api/v1/users/c/alice").json()["data"]
    assert anonymous["is_subscribed"] is False

    assert client.get("/api/v1/users/c/nobody").status_code == 404


def test_watch_history_most_recent_first(client):
    alice = auth_headers(client, "alice")
    bob = auth_headers(client, "bob")
    first = upload_video(client, alice, title="First")
    second = upload_video(client, alice, title="Second")

    client.get(f"/api/v1/videos/{first['id']}", headers=bob)
    client.get(f"/api/v1/videos/{second['id']}", headers=bob)
    client.get(f"/api/v1/videos/{first['id']}", headers=bob)

    history = client.get("/api/v1/users/history", headers=bob).json()["data"]
    assert [v["title"] for v in history] == ["First", "Second"]
    assert history[0]["owner"]["username"] == "alice"

    assert client.delete("/api/v1/users/history", headers=bob).status_code == 200
    assert client.get("/api/v1/users/history", headers=bob).json()["data"] == []


def test_watch_history_is_capped_and_deduplicated(client, db):
    bob = auth_headers(client, "bob")
    bob_id = ObjectId(user_id(client, bob))
    watched = [ObjectId() for _ in range(WATCH_HISTORY_LIMIT + 5)]
    for video_id in watched:
        record_watch(bob_id, video_id)

    history = db["user"].find_one({"_id": bob_id})["watch_history"]
    assert len(history) == WATCH_HISTORY_LIMIT
    assert history[0] == watched[-1]
    assert watched[4] not in history

    record_watch(bob_id, watched[50])
    history = db["user"].find_one({"_id": bob_id})["watch_history"]
    assert len(history) == WATCH_HISTORY_LIMIT
    assert history[0] == watched[50]
    assert history.count(watched[50]) == 1
    assert history[1] == watched[-1]


def test_register_race_returns_conflict_and_drops_uploads(client, monkeypatch):
    def lose_race(collection, document):
        raise DuplicateKeyError("E11000 duplicate key error", 11000, {"keyPattern": {"username": 1}})

    monkeypatch.setattr(users, "create_document", lose_race)
    resp = register(client, "alice")
    assert resp.status_code == 409
    assert resp.json()["message"] == "User already exists"
    storage_dir = Path(settings.storage_dir)
    assert not storage_dir.exists() or list(storage_dir.iterdir()) == []
