"""
Likes

A like document points at exactly one video, comment or tweet. Toggling
inserts or removes it and moves the target's `likes` counter with it.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from pymongo.errors import DuplicateKeyError

from vidnest.auth import get_current_user, get_optional_user
from vidnest.database import create_document, get_db
from vidnest.helpers import attach_owners, get_or_404, paginate, parse_object_id
from vidnest.notifier import notify
from vidnest.rate_limit import RATE_LIMIT_LIKE, limiter, user_or_ip
from vidnest.responses import api_response
from vidnest.schemas import Like, NotificationType

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/like", tags=["likes"])

LABELS = {"video": "Video", "comment": "Comment", "tweet": "Tweet"}


def toggle_like(target: str, target_id, user_id) -> bool:
    """Flip the like of user_id on a target. Returns True when it is now liked."""
    likes = get_db()["like"]
    existing = likes.find_one({target: target_id, "liked_by": user_id})
    if existing:
        removed = likes.delete_one({"_id": existing["_id"]})
        # another request may have removed it since the read
        if removed.deleted_count:
            get_db()[target].update_one({"_id": target_id, "likes": {"$gt": 0}}, {"$inc": {"likes": -1}})
        return False

    like = Like(liked_by=user_id, **{target: target_id})
    try:
        create_document("like", like.model_dump(exclude_none=True))
    except DuplicateKeyError:
        # a concurrent request got there first
        logger.info("Duplicate like on %s %s by %s", target, target_id, user_id)
        return True
    get_db()[target].update_one({"_id": target_id}, {"$inc": {"likes": 1}})
    return True


def is_liked(target: str, target_id, user: Optional[dict]) -> bool:
    if not user:
        return False
    return get_db()["like"].find_one({target: target_id, "liked_by": user["_id"]}) is not None


def _toggle_response(target: str, target_id: str, user: dict):
    _id = parse_object_id(target_id, target)
    doc = get_or_404(target, _id, LABELS[target])
    liked = toggle_like(target, _id, user["_id"])
    if liked and target == "video":
        notify(
            doc["owner"],
            user["_id"],
            NotificationType.LIKE,
            f"{user['username']} liked your video: {doc['title']}",
            video=_id,
        )
    action = "liked" if liked else "unliked"
    return api_response({"is_liked": liked}, f"{LABELS[target]} {action} successfully")


@router.post("/video/{video_id}")
@limiter.limit(RATE_LIMIT_LIKE, key_func=user_or_ip)
def toggle_video_like(request: Request, video_id: str, user: dict = Depends(get_current_user)):
    return _toggle_response("video", video_id, user)


@router.post("/comment/{comment_id}")
@limiter.limit(RATE_LIMIT_LIKE, key_func=user_or_ip)
def toggle_comment_like(request: Request, comment_id: str, user: dict = Depends(get_current_user)):
    return _toggle_response("comment", comment_id, user)


@router.post("/tweet/{tweet_id}")
@limiter.limit(RATE_LIMIT_LIKE, key_func=user_or_ip)
def toggle_tweet_like(request: Request, tweet_id: str, user: dict = Depends(get_current_user)):
    return _toggle_response("tweet", tweet_id, user)


@router.get("/status/video/{video_id}")
def get_video_like_status(video_id: str, user: Optional[dict] = Depends(get_optional_user)):
    _id = parse_object_id(video_id, "video")
    return api_response({"is_liked": is_liked("video", _id, user)}, "Like status fetched successfully")


@router.get("/status/tweet/{tweet_id}")
def get_tweet_like_status(tweet_id: str, user: Optional[dict] = Depends(get_optional_user)):
    _id = parse_object_id(tweet_id, "tweet")
    return api_response({"is_liked": is_liked("tweet", _id, user)}, "Like status fetched successfully")


def liked_items(target: str, user_id, page: int, limit: int):
    """Page through what user_id liked, most recent like first. Deleted targets drop out."""
    pipeline = [
        {"$match": {"liked_by": user_id, target: {"$exists": True}}},
        {"$sort": {"created_at": -1, "_id": -1}},
        {"$lookup": {"from": target, "localField": target, "foreignField": "_id", "as": "item"}},
        {"$unwind": "$item"},
    ]
    key = f"{target}s"
    result = paginate("like", pipeline, page, limit, key, f"total_{key}")
    items = []
    for like in result[key]:
        item = like["item"]
        item["liked_at"] = like.get("created_at")
        items.append(item)
    result[key] = attach_owners(items)
    return result


@router.get("/videos")
def get_liked_videos(
    page: int = Query(1, ge=1), limit: int = Query(10, ge=1, le=100), user: dict = Depends(get_current_user)
):
    return api_response(liked_items("video", user["_id"], page, limit), "Liked videos fetched successfully")


@router.get("/comments")
def get_liked_comments(
    page: int = Query(1, ge=1), limit: int = Query(10, ge=1, le=100), user: dict = Depends(get_current_user)
):
    return api_response(liked_items("comment", user["_id"], page, limit), "Liked comments fetched successfully")


@router.get("/tweets")
def get_liked_tweets(
    page: int = Query(1, ge=1), limit: int = Query(10, ge=1, le=100), user: dict = Depends(get_current_user)
):
    return api_response(liked_items("tweet", user["_id"], page, limit), "Liked tweets fetched successfully")


@router.get("/user/{user_id}/videos")
def get_user_liked_videos(
    user_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user: dict = Depends(get_current_user),
):
    _id = parse_object_id(user_id, "user")
    get_or_404("user", _id, "User")
    return api_response(liked_items("video", _id, page, limit), "Liked videos fetched successfully")


@router.get("/user/{user_id}/comments")
def get_user_liked_comments(
    user_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user: dict = Depends(get_current_user),
):
    _id = parse_object_id(user_id, "user")
    get_or_404("user", _id, "User")
    return api_response(liked_items("comment", _id, page, limit), "Liked comments fetched successfully")
