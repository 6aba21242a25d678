import re
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, UploadFile
from pymongo import ReturnDocument

from vidnest import storage
from vidnest.auth import get_current_user, get_optional_user
from vidnest.database import create_document, get_db, utcnow
from vidnest.helpers import (
    attach_owners,
    get_or_404,
    owner_lookup,
    paginate,
    parse_object_id,
    require_owner,
)
from vidnest.notifier import notify_subscribers
from vidnest.rate_limit import RATE_LIMIT_UPLOAD, limiter, user_or_ip
from vidnest.responses import api_response
from vidnest.routers.users import record_watch
from vidnest.schemas import NotificationType, Video

router = APIRouter(prefix="/videos", tags=["videos"])

SORTABLE_FIELDS = ("created_at", "views", "likes", "duration", "title")


def split_tags(tags: Optional[str]) -> List[str]:
    return [t.strip().lower() for t in (tags or "").split(",") if t.strip()]


def _contains(text: str):
    return {"$regex": re.escape(text), "$options": "i"}


@router.get("")
@router.get("/", include_in_schema=False)
def get_all_videos(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    category: Optional[str] = None,
    tags: Optional[str] = None,
    owner: Optional[str] = None,
    search: Optional[str] = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
):
    """List published videos with optional filters, newest first by default."""
    if sort_by not in SORTABLE_FIELDS:
        raise HTTPException(status_code=400, detail=f"sort_by must be one of: {', '.join(SORTABLE_FIELDS)}")

    filter_dict = {"is_published": True}
    if category:
        filter_dict["category"] = category
    if tags:
        filter_dict["tags"] = _contains(tags.strip())
    if owner:
        filter_dict["owner"] = parse_object_id(owner, "owner")
    if search and search.strip():
        regex = _contains(search.strip())
        filter_dict["$or"] = [{"title": regex}, {"description": regex}]

    direction = 1 if sort_order == "asc" else -1
    pipeline = [
        {"$match": filter_dict},
        {"$sort": {sort_by: direction, "_id": direction}},
    ] + owner_lookup()
    result = paginate("video", pipeline, page, limit, "videos", "total_videos")
    return api_response(result, "Videos fetched successfully")


@router.get("/categories")
def get_video_categories():
    categories = get_db()["video"].distinct("category", {"is_published": True})
    return api_response(sorted(c for c in categories if c), "Categories fetched successfully")


@router.get("/tags/popular")
def get_most_used_tags(limit: int = Query(10, ge=1, le=100)):
    pipeline = [
        {"$match": {"is_published": True}},
        {"$unwind": "$tags"},
        {"$group": {"_id": "$tags", "count": {"$sum": 1}}},
        {"$sort": {"count": -1, "_id": 1}},
        {"$limit": limit},
    ]
    tags = [{"tag": t["_id"], "count": t["count"]} for t in get_db()["video"].aggregate(pipeline)]
    return api_response(tags, "Popular tags fetched successfully")


@router.get("/{video_id}")
def get_video_by_id(video_id: str, viewer: Optional[dict] = Depends(get_optional_user)):
    """Fetch one video, counting the view and remembering it in the viewer's history."""
    _id = parse_object_id(video_id, "video")
    video = get_or_404("video", _id, "Video")
    if not video.get("is_published") and (not viewer or video.get("owner") != viewer["_id"]):
        raise HTTPException(status_code=403, detail="This video is private")

    doc = get_db()["video"].find_one_and_update(
        {"_id": _id},
        {"$inc": {"views": 1}},
        return_document=ReturnDocument.AFTER,
    )
    if not doc:
        raise HTTPException(status_code=404, detail="Video not found")
    if viewer:
        record_watch(viewer["_id"], _id)
    return api_response(attach_owners([doc])[0], "Video fetched successfully")


@router.post("")
@router.post("/", include_in_schema=False)
@limiter.limit(RATE_LIMIT_UPLOAD, key_func=user_or_ip)
async def upload_video(
    request: Request,
    title: str = Form(""),
    category: str = Form(""),
    description: str = Form(""),
    tags: str = Form(""),
    duration: Optional[float] = Form(None),
    video: Optional[UploadFile] = File(None),
    thumbnail: Optional[UploadFile] = File(None),
    user: dict = Depends(get_current_user),
):
    """
    Upload a video file with its thumbnail and store the metadata.
    - title and category are required, tags are comma separated
    - both files are required; video must be video/*, thumbnail image/*
    - subscribers of the uploader get a VIDEO_UPLOAD notification
    """
    if not title.strip():
        raise HTTPException(status_code=400, detail="Title is required")
    if not category.strip():
        raise HTTPException(status_code=400, detail="Category is required")
    if not storage.has_file(video):
        raise HTTPException(status_code=400, detail="Video file is required")
    if not storage.has_file(thumbnail):
        raise HTTPException(status_code=400, detail="Thumbnail file is required")
    storage.require_content_type(video, "video", "Video")
    storage.require_content_type(thumbnail, "image", "Thumbnail")

    video_file = await storage.upload_media(video, "video")
    if not video_file:
        raise HTTPException(status_code=500, detail="Video upload failed")
    thumbnail_file = await storage.upload_media(thumbnail, "image")
    if not thumbnail_file:
        await storage.delete_media(video_file["url"], "video")
        raise HTTPException(status_code=500, detail="Thumbnail upload failed")

    video_doc = Video(
        video_file=video_file["url"],
        thumbnail=thumbnail_file["url"],
        owner=user["_id"],
        title=title.strip(),
        description=description.strip(),
        category=category.strip(),
        tags=split_tags(tags),
        duration=video_file.get("duration") or duration or 0,
    )
    inserted_id = create_document("video", video_doc)
    created = get_db()["video"].find_one({"_id": parse_object_id(inserted_id, "video")})

    notify_subscribers(
        user["_id"],
        NotificationType.VIDEO_UPLOAD,
        f"{user['username']} uploaded a new video: {created['title']}",
        video=created["_id"],
    )
    return api_response(attach_owners([created])[0], "Video uploaded successfully", 201)


@router.patch("/toggle/publish/{video_id}")
def toggle_publish_status(video_id: str, user: dict = Depends(get_current_user)):
    _id = parse_object_id(video_id, "video")
    video = get_or_404("video", _id, "Video")
    require_owner(video, user, "update", "video")
    updated = get_db()["video"].find_one_and_update(
        {"_id": _id},
        {"$set": {"is_published": not video.get("is_published", True), "updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    return api_response({"is_published": updated["is_published"]}, "Publish status toggled successfully")


@router.patch("/{video_id}")
async def update_video(
    video_id: str,
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    thumbnail: Optional[UploadFile] = File(None),
    user: dict = Depends(get_current_user),
):
    _id = parse_object_id(video_id, "video")
    video = get_or_404("video", _id, "Video")
    require_owner(video, user, "update", "video")

    has_thumbnail = storage.has_file(thumbnail)
    if title is None and description is None and not has_thumbnail:
        raise HTTPException(status_code=400, detail="Provide at least one field: title, description, or thumbnail")
    if title is not None and not title.strip():
        raise HTTPException(status_code=400, detail="Title cannot be empty")

    update = {"updated_at": utcnow()}
    if title is not None:
        update["title"] = title.strip()
    if description is not None:
        update["description"] = description.strip()
    if has_thumbnail:
        storage.require_content_type(thumbnail, "image", "Thumbnail")
        uploaded = await storage.upload_media(thumbnail, "image")
        if not uploaded:
            raise HTTPException(status_code=500, detail="Thumbnail upload failed")
        update["thumbnail"] = uploaded["url"]

    updated = get_db()["video"].find_one_and_update(
        {"_id": _id}, {"$set": update}, return_document=ReturnDocument.AFTER
    )
    if has_thumbnail and video.get("thumbnail"):
        await storage.delete_media(video["thumbnail"], "image")
    return api_response(attach_owners([updated])[0], "Video updated successfully")


@router.delete("/{video_id}")
async def delete_video(video_id: str, user: dict = Depends(get_current_user)):
    """Delete a video with its files, comments, likes and playlist/history entries."""
    _id = parse_object_id(video_id, "video")
    video = get_or_404("video", _id, "Video")
    require_owner(video, user, "delete", "video")

    db = get_db()
    comment_ids = [c["_id"] for c in db["comment"].find({"video": _id}, {"_id": 1})]
    db["like"].delete_many({"$or": [{"video": _id}, {"comment": {"$in": comment_ids}}]})
    db["comment"].delete_many({"video": _id})
    db["playlist"].update_many({"videos": _id}, {"$pull": {"videos": _id}})
    db["user"].update_many({"watch_history": _id}, {"$pull": {"watch_history": _id}})
    db["notification"].delete_many({"video": _id})
    db["video"].delete_one({"_id": _id})

    await storage.delete_media(video.get("video_file"), "video")
    await storage.delete_media(video.get("thumbnail"), "image")
    return api_response({"deleted_video_id": video_id}, "Video deleted successfully")
