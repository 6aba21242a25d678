from conftest import OWNER_KEYS, auth_headers, upload_video, user_id


def _create(client, headers, **body):
    body.setdefault("name", "Favourites")
    return client.post("/api/v1/playlists", json=body, headers=headers)


def test_create_playlist(client):
    alice = auth_headers(client, "alice")
    resp = _create(client, alice, description="  best of  ")
    assert resp.status_code == 201
    playlist = resp.json()["data"]
    assert playlist["name"] == "Favourites"
    assert playlist["description"] == "best of"
    assert playlist["is_public"] is True
    assert playlist["video_count"] == 0


def test_create_playlist_validation(client):
    alice = auth_headers(client, "alice")
    assert _create(client, alice, name="  ").json()["message"] == "Playlist name is required"
    assert _create(client, alice, name="n" * 101).status_code == 400
    assert _create(client, alice, description="d" * 501).status_code == 400
    assert _create(client, alice, name="n" * 100).status_code == 201


def test_user_playlists_hide_private_ones(client):
    alice = auth_headers(client, "alice")
    bob = auth_headers(client, "bob")
    _create(client, alice, name="Public")
    _create(client, alice, name="Secret stash", is_public=False)
    alice_id = user_id(client, alice)

    own = client.get(f"/api/v1/playlists/user/{alice_id}", headers=alice).json()["data"]
    assert own["total_playlists"] == 2
    assert own["playlists"][0]["video_count"] == 0

    others = client.get(f"/api/v1/playlists/user/{alice_id}", headers=bob).json()["data"]
    assert [p["name"] for p in others["playlists"]] == ["Public"]
    assert set(others["playlists"][0]["owner"]) == OWNER_KEYS
    anonymous = client.get(f"/api/v1/playlists/user/{alice_id}").json()["data"]
    assert anonymous["total_playlists"] == 1


def test_private_playlist_access(client):
    alice = auth_headers(client, "alice")
    bob = auth_headers(client, "bob")
    playlist = _create(client, alice, is_public=False).json()["data"]

    assert client.get(f"/api/v1/playlists/{playlist['id']}").status_code == 401
    assert client.get(f"/api/v1/playlists/{playlist['id']}", headers=bob).status_code == 403
    assert client.get(f"/api/v1/playlists/{playlist['id']}", headers=alice).status_code == 200


def test_add_and_remove_videos(client):
    alice = auth_headers(client, "alice")
    bob = auth_headers(client, "bob")
    video = upload_video(client, alice)
    playlist = _create(client, alice).json()["data"]
    add_url = f"/api/v1/playlists/add/{playlist['id']}/{video['id']}"
    remove_url = f"/api/v1/playlists/remove/{playlist['id']}/{video['id']}"

    assert client.patch(add_url, headers=bob).status_code == 403
    resp = client.patch(add_url, headers=alice)
    assert resp.status_code == 200
    assert resp.json()["data"]["video_count"] == 1

    resp = client.patch(add_url, headers=alice)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Video already exists in playlist"

    detail = client.get(f"/api/v1/playlists/{playlist['id']}").json()["data"]
    assert detail["videos"][0]["title"] == video["title"]
    assert detail["videos"][0]["owner"]["username"] == "alice"
    assert detail["owner"]["username"] == "alice"

    assert client.patch(remove_url, headers=alice).json()["data"]["video_count"] == 0
    resp = client.patch(remove_url, headers=alice)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Video not found in playlist"


def test_cannot_add_unpublished_video(client):
    alice = auth_headers(client, "alice")
    video = upload_video(client, alice)
    client.patch(f"/api/v1/videos/toggle/publish/{video['id']}", headers=alice)
    playlist = _create(client, alice).json()["data"]
    resp = client.patch(f"/api/v1/playlists/add/{playlist['id']}/{video['id']}", headers=alice)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Cannot add unpublished video to playlist"


def test_update_and_delete_playlist(client, db):
    alice = auth_headers(client, "alice")
    bob = auth_headers(client, "bob")
    playlist = _create(client, alice).json()["data"]
    url = f"/api/v1/playlists/{playlist['id']}"

    assert client.patch(url, json={}, headers=alice).status_code == 400
    assert client.patch(url, json={"name": "Mine"}, headers=bob).status_code == 403

    resp = client.patch(url, json={"name": "Renamed", "is_public": False}, headers=alice)
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["name"] == "Renamed"
    assert data["is_public"] is False

    assert client.delete(url, headers=bob).status_code == 403
    assert client.delete(url, headers=alice).status_code == 200
    assert db["playlist"].count_documents({}) == 0
    assert client.get(url, headers=alice).status_code == 404
