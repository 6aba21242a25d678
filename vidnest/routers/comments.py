from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pymongo import ReturnDocument

from vidnest.auth import get_current_user
from vidnest.database import create_document, get_db, utcnow
from vidnest.helpers import attach_owners, get_or_404, owner_lookup, paginate, parse_object_id, require_owner
from vidnest.notifier import notify
from vidnest.rate_limit import RATE_LIMIT_COMMENT, limiter, user_or_ip
from vidnest.responses import api_response
from vidnest.schemas import Comment, CommentCreate, CommentUpdate, NotificationType

router = APIRouter(prefix="/comments", tags=["comments"])

MAX_COMMENT_LENGTH = 500


def clean_content(content: str) -> str:
    content = (content or "").strip()
    if not content:
        raise HTTPException(status_code=400, detail="Comment content is required")
    if len(content) > MAX_COMMENT_LENGTH:
        raise HTTPException(status_code=400, detail=f"Comment cannot be longer than {MAX_COMMENT_LENGTH} characters")
    return content


def with_reply_counts(comments):
    ids = [c["_id"] for c in comments]
    if not ids:
        return comments
    pipeline = [
        {"$match": {"parent_comment": {"$in": ids}}},
        {"$group": {"_id": "$parent_comment", "count": {"$sum": 1}}},
    ]
    counts = {row["_id"]: row["count"] for row in get_db()["comment"].aggregate(pipeline)}
    for comment in comments:
        comment["reply_count"] = counts.get(comment["_id"], 0)
    return comments


def _list_comments(target_field: str, target_id, page: int, limit: int):
    pipeline = [
        {"$match": {target_field: target_id, "parent_comment": None}},
        {"$sort": {"created_at": -1, "_id": -1}},
    ] + owner_lookup()
    result = paginate("comment", pipeline, page, limit, "comments", "total_comments")
    with_reply_counts(result["comments"])
    return result


@router.get("/t/{tweet_id}")
def get_tweet_comments(tweet_id: str, page: int = Query(1, ge=1), limit: int = Query(10, ge=1, le=100)):
    _id = parse_object_id(tweet_id, "tweet")
    get_or_404("tweet", _id, "Tweet")
    return api_response(_list_comments("tweet", _id, page, limit), "Comments fetched successfully")


@router.get("/{video_id}")
def get_video_comments(video_id: str, page: int = Query(1, ge=1), limit: int = Query(10, ge=1, le=100)):
    _id = parse_object_id(video_id, "video")
    get_or_404("video", _id, "Video")
    return api_response(_list_comments("video", _id, page, limit), "Comments fetched successfully")


@router.post("")
@router.post("/", include_in_schema=False)
@limiter.limit(RATE_LIMIT_COMMENT, key_func=user_or_ip)
def add_comment(request: Request, body: CommentCreate, user: dict = Depends(get_current_user)):
    """
    Comment on a video or a tweet, optionally as a reply to another comment.
    Exactly one of video_id and tweet_id must be given.
    """
    content = clean_content(body.content)
    if bool(body.video_id) == bool(body.tweet_id):
        raise HTTPException(status_code=400, detail="Provide either video_id or tweet_id")

    video = tweet = None
    if body.video_id:
        video = get_or_404("video", parse_object_id(body.video_id, "video"), "Video")
        if not video.get("is_published"):
            raise HTTPException(status_code=403, detail="Cannot comment on unpublished video")
    else:
        tweet = get_or_404("tweet", parse_object_id(body.tweet_id, "tweet"), "Tweet")

    parent_id = None
    if body.parent_comment_id:
        parent = get_or_404("comment", parse_object_id(body.parent_comment_id, "comment"), "Parent comment")
        if parent.get("video") != (video["_id"] if video else None) or parent.get("tweet") != (tweet["_id"] if tweet else None):
            raise HTTPException(status_code=400, detail="Parent comment belongs to a different post")
        parent_id = parent["_id"]

    comment = Comment(
        content=content,
        owner=user["_id"],
        video=video["_id"] if video else None,
        tweet=tweet["_id"] if tweet else None,
        parent_comment=parent_id,
    )
    inserted_id = create_document("comment", comment)
    created = get_db()["comment"].find_one({"_id": parse_object_id(inserted_id, "comment")})

    if video:
        notify(
            video["owner"],
            user["_id"],
            NotificationType.COMMENT,
            f"{user['username']} commented on your video: {video['title']}",
            video=video["_id"],
            comment=created["_id"],
        )
    created["reply_count"] = 0
    return api_response(attach_owners([created])[0], "Comment added successfully", 201)


@router.patch("/{comment_id}")
def update_comment(comment_id: str, body: CommentUpdate, user: dict = Depends(get_current_user)):
    _id = parse_object_id(comment_id, "comment")
    content = clean_content(body.content)
    comment = get_or_404("comment", _id, "Comment")
    require_owner(comment, user, "update", "comment")

    updated = get_db()["comment"].find_one_and_update(
        {"_id": _id},
        {"$set": {"content": content, "updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    return api_response(attach_owners([updated])[0], "Comment updated successfully")


def _thread_ids(root_id):
    """The comment and every reply below it."""
    collected = [root_id]
    frontier = [root_id]
    comments = get_db()["comment"]
    while frontier:
        children = [c["_id"] for c in comments.find({"parent_comment": {"$in": frontier}}, {"_id": 1})]
        collected.extend(children)
        frontier = children
    return collected


@router.delete("/{comment_id}")
def delete_comment(comment_id: str, user: dict = Depends(get_current_user)):
    _id = parse_object_id(comment_id, "comment")
    comment = get_or_404("comment", _id, "Comment")
    require_owner(comment, user, "delete", "comment")

    db = get_db()
    ids = _thread_ids(_id)
    db["like"].delete_many({"comment": {"$in": ids}})
    db["notification"].delete_many({"comment": {"$in": ids}})
    result = db["comment"].delete_many({"_id": {"$in": ids}})
    return api_response(
        {"deleted_comment_id": comment_id, "deleted_count": result.deleted_count},
        "Comment deleted successfully",
    )
