import pytest
from limits import parse
from starlette.requests import Request

from vidnest.rate_limit import RATE_LIMIT_AUTH, RATE_LIMIT_LIKE, limiter, user_or_ip

from conftest import auth_headers, upload_video, user_id


@pytest.fixture
def limited(monkeypatch):
    monkeypatch.setattr(limiter, "enabled", True)
    limiter.reset()
    yield limiter
    limiter.reset()


def _remaining(limit, key, path):
    return limiter.limiter.get_window_stats(parse(limit), key, path).remaining


def test_login_limit_returns_429_envelope(client, limited):
    allowed = parse(RATE_LIMIT_AUTH).amount
    for _ in range(allowed):
        resp = client.post("/api/v1/users/login", json={"username": "ghost", "password": "x"})
        assert resp.status_code == 404

    resp = client.post("/api/v1/users/login", json={"username": "ghost", "password": "x"})
    assert resp.status_code == 429
    body = resp.json()
    assert body["success"] is False
    assert body["message"] == "Too many requests, please try again later."
    assert body["errors"]


def test_like_limit_is_per_user(client, limited):
    alice = auth_headers(client, "alice")
    bob = auth_headers(client, "bob")
    video = upload_video(client, alice)
    path = f"/api/v1/like/video/{video['id']}"

    for _ in range(3):
        assert client.post(path, headers=alice).status_code == 200
    assert client.post(path, headers=bob).status_code == 200

    total = parse(RATE_LIMIT_LIKE).amount
    assert _remaining(RATE_LIMIT_LIKE, f"user:{user_id(client, alice)}", path) == total - 3
    assert _remaining(RATE_LIMIT_LIKE, f"user:{user_id(client, bob)}", path) == total - 1
    assert _remaining(RATE_LIMIT_LIKE, "testclient", path) == total


def _request(user=None):
    request = Request({"type": "http", "method": "GET", "path": "/", "headers": [], "client": ("10.0.0.7", 5000)})
    if user is not None:
        request.state.user = user
    return request


def test_user_or_ip():
    assert user_or_ip(_request()) == "10.0.0.7"
    assert user_or_ip(_request({"_id": "abc"})) == "user:abc"
