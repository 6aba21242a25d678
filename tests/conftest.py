import mongomock
import pytest
from fastapi.testclient import TestClient

from vidnest import database
from vidnest.config import settings
from vidnest.main import app
from vidnest.rate_limit import limiter

ACCESS_KEY = "Vq7LxP9zR4tK8wB3mH6jD1fG5sA0cEnYuJiOk2Ml" * 2
REFRESH_KEY = "Zb4Nc8Xv2Qw6Er1Ty5Ui9Op3As7Df0GhJkLmTrSe" * 2

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32

# the only user fields that may be embedded next to content
OWNER_KEYS = {"id", "username", "full_name", "avatar"}


@pytest.fixture(autouse=True)
def app_env(monkeypatch, tmp_path):
    monkeypatch.setattr(settings, "access_token_secret", ACCESS_KEY)
    monkeypatch.setattr(settings, "refresh_token_secret", REFRESH_KEY)
    monkeypatch.setattr(settings, "cookie_secure", False)
    monkeypatch.setattr(settings, "storage_dir", str(tmp_path / "uploads"))
    monkeypatch.setattr(settings, "temp_dir", str(tmp_path / "temp"))
    monkeypatch.setattr(settings, "cloudinary_cloud_name", None)
    monkeypatch.setattr(limiter, "enabled", False)
    database.init_db(name="vidnest_test", client_override=mongomock.MongoClient())
    yield
    database.db = None
    database.client = None


@pytest.fixture
def db():
    return database.get_db()


@pytest.fixture
def client():
    return TestClient(app)


def register(client, username, password="s3cure-Pass!", **extra):
    data = {
        "full_name": extra.pop("full_name", username.title()),
        "email": extra.pop("email", f"{username}@example.com"),
        "username": username,
        "password": password,
    }
    files = {"avatar": ("avatar.png", PNG_BYTES, "image/png")}
    return client.post("/api/v1/users/register", data=data, files=files)


def login(client, username, password="s3cure-Pass!"):
    resp = client.post("/api/v1/users/login", json={"username": username, "password": password})
    # keep callers on explicit bearer headers so several users can share a client
    client.cookies.clear()
    return resp


def auth_headers(client, username, password="s3cure-Pass!"):
    register(client, username, password)
    resp = login(client, username, password)
    assert resp.status_code == 200, resp.text
    data = resp.json()["data"]
    return {"Authorization": f"Bearer {data['access_token']}"}


def user_id(client, headers):
    return client.get("/api/v1/users/current-user", headers=headers).json()["data"]["id"]


def upload_video(client, headers, title="Intro to FastAPI", category="Education", tags="python, fastapi", **extra):
    data = {"title": title, "category": category, "tags": tags}
    data.update(extra)
    files = {
        "video": ("clip.mp4", b"not really a video", "video/mp4"),
        "thumbnail": ("thumb.png", PNG_BYTES, "image/png"),
    }
    resp = client.post("/api/v1/videos", data=data, files=files, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]
