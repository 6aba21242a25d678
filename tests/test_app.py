from vidnest import database
from vidnest.responses import api_response
from vidnest.helpers import serialize_doc


def test_root(client):
    resp = client.get("/")
    assert resp.status_code == 200
    assert "running" in resp.json()["message"]


def test_health(client, monkeypatch):
    monkeypatch.setattr(database, "ping", lambda: True)
    resp = client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["database"] == "connected"
    assert data["database_name"] == "vidnest_test"
    assert data["storage"] == "local"


def test_unknown_route_uses_error_envelope(client):
    resp = client.get("/api/v1/nowhere")
    assert resp.status_code == 404
    assert resp.json() == {"success": False, "message": "Route /api/v1/nowhere not found", "errors": []}


def test_validation_errors_are_400(client):
    resp = client.get("/api/v1/videos", params={"page": 0})
    assert resp.status_code == 400
    body = resp.json()
    assert body["message"] == "Validation Error"
    assert body["errors"]


def test_stream_missing_file(client):
    resp = client.get("/stream/nothing.mp4")
    assert resp.status_code == 404
    assert resp.json()["message"] == "File not found"


def test_serialize_doc_and_envelope():
    from bson import ObjectId

    oid = ObjectId()
    doc = {"_id": oid, "owner": {"_id": oid}, "videos": [oid]}
    assert serialize_doc(doc) == {"id": str(oid), "owner": {"id": str(oid)}, "videos": [str(oid)]}

    resp = api_response({"_id": oid}, "Created", 201)
    assert resp.status_code == 201
    assert b'"success":true' in resp.body


def test_collection_routes_accept_trailing_slash(client):
    for path in ("/api/v1/videos/", "/api/v1/tweets/", "/api/v1/search/"):
        resp = client.get(path, follow_redirects=False)
        assert resp.status_code == 200, path
    assert client.post("/api/v1/tweets/", data={"content": "hi"}, follow_redirects=False).status_code == 401
