import mongomock
from bson import ObjectId

from vidnest.routers import likes

from conftest import auth_headers, upload_video, user_id


def test_toggle_video_like(client, db):
    alice = auth_headers(client, "alice")
    bob = auth_headers(client, "bob")
    video = upload_video(client, alice)

    resp = client.post(f"/api/v1/like/video/{video['id']}", headers=bob)
    assert resp.status_code == 200
    assert resp.json()["data"] == {"is_liked": True}
    assert db["video"].find_one()["likes"] == 1
    assert db["notification"].count_documents({"type": "LIKE"}) == 1

    status = client.get(f"/api/v1/like/status/video/{video['id']}", headers=bob).json()["data"]
    assert status == {"is_liked": True}
    assert client.get(f"/api/v1/like/status/video/{video['id']}").json()["data"] == {"is_liked": False}

    resp = client.post(f"/api/v1/like/video/{video['id']}", headers=bob)
    assert resp.json()["data"] == {"is_liked": False}
    assert db["video"].find_one()["likes"] == 0
    assert db["like"].count_documents({}) == 0


def test_racing_unlikes_decrement_once(client, db, monkeypatch):
    alice = auth_headers(client, "alice")
    bob = auth_headers(client, "bob")
    carol = auth_headers(client, "carol")
    video = upload_video(client, alice)
    client.post(f"/api/v1/like/video/{video['id']}", headers=bob)
    client.post(f"/api/v1/like/video/{video['id']}", headers=carol)

    video_id = ObjectId(video["id"])
    bob_id = ObjectId(user_id(client, bob))
    seen = db["like"].find_one({"video": video_id, "liked_by": bob_id})
    real_find_one = mongomock.Collection.find_one

    # both unlike requests read the like before either deletes it
    def stale_find_one(self, filter=None, *args, **kwargs):
        if self.name == "like" and filter == {"video": video_id, "liked_by": bob_id}:
            return seen
        return real_find_one(self, filter, *args, **kwargs)

    with monkeypatch.context() as m:
        m.setattr(mongomock.Collection, "find_one", stale_find_one)
        assert likes.toggle_like("video", video_id, bob_id) is False
        assert likes.toggle_like("video", video_id, bob_id) is False

    assert db["like"].count_documents({"video": video_id}) == 1
    assert db["video"].find_one({"_id": video_id})["likes"] == 1


def test_liking_own_video_does_not_notify(client, db):
    alice = auth_headers(client, "alice")
    video = upload_video(client, alice)
    client.post(f"/api/v1/like/video/{video['id']}", headers=alice)
    assert db["notification"].count_documents({}) == 0


def test_like_missing_target(client):
    alice = auth_headers(client, "alice")
    resp = client.post("/api/v1/like/video/64b7f0c2a1b2c3d4e5f60718", headers=alice)
    assert resp.status_code == 404
    assert resp.json()["message"] == "Video not found"
    assert client.post("/api/v1/like/tweet/nope", headers=alice).status_code == 400


def test_like_requires_login(client):
    assert client.post("/api/v1/like/video/64b7f0c2a1b2c3d4e5f60718").status_code == 401


def test_toggle_tweet_and_comment_likes(client, db):
    alice = auth_headers(client, "alice")
    tweet = client.post("/api/v1/tweets", data={"content": "hello"}, headers=alice).json()["data"]
    comment = client.post("/api/v1/comments", json={"content": "hey", "tweet_id": tweet["id"]}, headers=alice).json()["data"]

    assert client.post(f"/api/v1/like/tweet/{tweet['id']}", headers=alice).json()["data"]["is_liked"] is True
    assert client.post(f"/api/v1/like/comment/{comment['id']}", headers=alice).json()["data"]["is_liked"] is True
    assert db["tweet"].find_one()["likes"] == 1
    assert db["comment"].find_one()["likes"] == 1
    assert client.get(f"/api/v1/like/status/tweet/{tweet['id']}", headers=alice).json()["data"]["is_liked"] is True


def test_liked_videos_most_recent_first(client):
    alice = auth_headers(client, "alice")
    bob = auth_headers(client, "bob")
    first = upload_video(client, alice, title="First")
    second = upload_video(client, alice, title="Second")
    client.post(f"/api/v1/like/video/{second['id']}", headers=bob)
    client.post(f"/api/v1/like/video/{first['id']}", headers=bob)

    data = client.get("/api/v1/like/videos", headers=bob).json()["data"]
    assert data["total_videos"] == 2
    assert [v["title"] for v in data["videos"]] == ["First", "Second"]
    assert data["videos"][0]["owner"]["username"] == "alice"
    assert data["videos"][0]["liked_at"]

    bob_id = user_id(client, bob)
    other = client.get(f"/api/v1/like/user/{bob_id}/videos", headers=alice).json()["data"]
    assert other["total_videos"] == 2

    client.delete(f"/api/v1/videos/{first['id']}", headers=alice)
    data = client.get("/api/v1/like/videos", headers=bob).json()["data"]
    assert [v["title"] for v in data["videos"]] == ["Second"]


def test_liked_comments_and_tweets(client):
    alice = auth_headers(client, "alice")
    video = upload_video(client, alice)
    comment = client.post("/api/v1/comments", json={"content": "hey", "video_id": video["id"]}, headers=alice).json()["data"]
    tweet = client.post("/api/v1/tweets", data={"content": "hello"}, headers=alice).json()["data"]
    client.post(f"/api/v1/like/comment/{comment['id']}", headers=alice)
    client.post(f"/api/v1/like/tweet/{tweet['id']}", headers=alice)

    comments = client.get("/api/v1/like/comments", headers=alice).json()["data"]
    assert [c["content"] for c in comments["comments"]] == ["hey"]
    tweets = client.get("/api/v1/like/tweets", headers=alice).json()["data"]
    assert [t["content"] for t in tweets["tweets"]] == ["hello"]

    alice_id = user_id(client, alice)
    data = client.get(f"/api/v1/like/user/{alice_id}/comments", headers=alice).json()["data"]
    assert data["total_comments"] == 1
