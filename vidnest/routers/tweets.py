from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, UploadFile
from pymongo import ReturnDocument

from vidnest import storage
from vidnest.auth import get_current_user
from vidnest.database import create_document, get_db, utcnow
from vidnest.helpers import attach_owners, get_or_404, owner_lookup, paginate, parse_object_id, require_owner
from vidnest.rate_limit import RATE_LIMIT_UPLOAD, limiter, user_or_ip
from vidnest.responses import api_response
from vidnest.schemas import Tweet, TweetUpdate

router = APIRouter(prefix="/tweets", tags=["tweets"])


@router.get("")
@router.get("/", include_in_schema=False)
def get_all_tweets(page: int = Query(1, ge=1), limit: int = Query(10, ge=1, le=100)):
    pipeline = [{"$match": {}}, {"$sort": {"created_at": -1, "_id": -1}}] + owner_lookup()
    return api_response(paginate("tweet", pipeline, page, limit, "tweets", "total_tweets"), "Tweets fetched successfully")


@router.get("/user/{user_id}")
def get_user_tweets(user_id: str, page: int = Query(1, ge=1), limit: int = Query(10, ge=1, le=100)):
    owner = parse_object_id(user_id, "user")
    get_or_404("user", owner, "User")
    pipeline = [{"$match": {"owner": owner}}, {"$sort": {"created_at": -1, "_id": -1}}] + owner_lookup()
    return api_response(paginate("tweet", pipeline, page, limit, "tweets", "total_tweets"), "User tweets fetched successfully")


@router.get("/{tweet_id}")
def get_tweet_by_id(tweet_id: str):
    tweet = get_or_404("tweet", parse_object_id(tweet_id, "tweet"), "Tweet")
    return api_response(attach_owners([tweet])[0], "Tweet fetched successfully")


@router.post("")
@router.post("/", include_in_schema=False)
@limiter.limit(RATE_LIMIT_UPLOAD, key_func=user_or_ip)
async def create_tweet(
    request: Request,
    content: str = Form(""),
    image: Optional[UploadFile] = File(None),
    user: dict = Depends(get_current_user),
):
    if not content.strip():
        raise HTTPException(status_code=400, detail="Tweet content is required")

    image_url = None
    if storage.has_file(image):
        storage.require_content_type(image, "image", "Image")
        uploaded = await storage.upload_media(image, "image")
        if not uploaded:
            raise HTTPException(status_code=500, detail="Image upload failed")
        image_url = uploaded["url"]

    inserted_id = create_document("tweet", Tweet(content=content.strip(), owner=user["_id"], image=image_url))
    created = get_db()["tweet"].find_one({"_id": parse_object_id(inserted_id, "tweet")})
    return api_response(attach_owners([created])[0], "Tweet created successfully", 201)


@router.patch("/{tweet_id}")
def update_tweet(tweet_id: str, body: TweetUpdate, user: dict = Depends(get_current_user)):
    _id = parse_object_id(tweet_id, "tweet")
    if not body.content.strip():
        raise HTTPException(status_code=400, detail="Tweet content is required")
    tweet = get_or_404("tweet", _id, "Tweet")
    require_owner(tweet, user, "update", "tweet")

    updated = get_db()["tweet"].find_one_and_update(
        {"_id": _id},
        {"$set": {"content": body.content.strip(), "updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    return api_response(attach_owners([updated])[0], "Tweet updated successfully")


@router.delete("/{tweet_id}")
async def delete_tweet(tweet_id: str, user: dict = Depends(get_current_user)):
    _id = parse_object_id(tweet_id, "tweet")
    tweet = get_or_404("tweet", _id, "Tweet")
    require_owner(tweet, user, "delete", "tweet")

    db = get_db()
    comment_ids = [c["_id"] for c in db["comment"].find({"tweet": _id}, {"_id": 1})]
    db["like"].delete_many({"$or": [{"tweet": _id}, {"comment": {"$in": comment_ids}}]})
    db["comment"].delete_many({"tweet": _id})
    db["tweet"].delete_one({"_id": _id})
    if tweet.get("image"):
        await storage.delete_media(tweet["image"], "image")
    return api_response({"deleted_tweet_id": tweet_id}, "Tweet deleted successfully")
