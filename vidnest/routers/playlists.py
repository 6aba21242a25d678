from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pymongo import ReturnDocument

from vidnest.auth import get_current_user, get_optional_user
from vidnest.database import create_document, get_db, utcnow
from vidnest.helpers import attach_owners, get_or_404, owner_lookup, paginate, parse_object_id, require_owner
from vidnest.responses import api_response
from vidnest.schemas import Playlist, PlaylistCreate, PlaylistUpdate

router = APIRouter(prefix="/playlists", tags=["playlists"])

MAX_NAME_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 500


def _check_name(name: str) -> str:
    name = name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Playlist name is required")
    if len(name) > MAX_NAME_LENGTH:
        raise HTTPException(status_code=400, detail=f"Name cannot be more than {MAX_NAME_LENGTH} characters")
    return name


def _check_description(description: str) -> str:
    description = description.strip()
    if len(description) > MAX_DESCRIPTION_LENGTH:
        raise HTTPException(status_code=400, detail=f"Description cannot exceed {MAX_DESCRIPTION_LENGTH} characters")
    return description


def _with_count(playlist: dict) -> dict:
    playlist["video_count"] = len(playlist.get("videos", []))
    return playlist


@router.post("")
@router.post("/", include_in_schema=False)
def create_playlist(body: PlaylistCreate, user: dict = Depends(get_current_user)):
    playlist = Playlist(
        name=_check_name(body.name),
        description=_check_description(body.description or ""),
        owner=user["_id"],
        is_public=body.is_public,
    )
    inserted_id = create_document("playlist", playlist)
    created = get_db()["playlist"].find_one({"_id": parse_object_id(inserted_id, "playlist")})
    return api_response(_with_count(created), "Playlist created successfully", 201)


@router.get("/user/{user_id}")
def get_user_playlists(
    user_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    viewer: Optional[dict] = Depends(get_optional_user),
):
    owner = parse_object_id(user_id, "user")
    get_or_404("user", owner, "User")

    match = {"owner": owner}
    if not viewer or viewer["_id"] != owner:
        match["is_public"] = True
    pipeline = [
        {"$match": match},
        {"$sort": {"created_at": -1, "_id": -1}},
        {"$addFields": {"video_count": {"$size": "$videos"}}},
    ] + owner_lookup()
    result = paginate("playlist", pipeline, page, limit, "playlists", "total_playlists")
    return api_response(result, "User playlists fetched successfully")


def _visible_playlist(playlist_id: str, viewer: Optional[dict]) -> dict:
    playlist = get_or_404("playlist", parse_object_id(playlist_id, "playlist"), "Playlist")
    if not playlist.get("is_public", True):
        if not viewer:
            raise HTTPException(status_code=401, detail="Authentication required to view this playlist")
        if playlist["owner"] != viewer["_id"]:
            raise HTTPException(status_code=403, detail="You don't have permission to view this playlist")
    return playlist


@router.get("/{playlist_id}")
def get_playlist_by_id(playlist_id: str, viewer: Optional[dict] = Depends(get_optional_user)):
    playlist = _visible_playlist(playlist_id, viewer)
    ids = playlist.get("videos", [])
    found = {v["_id"]: v for v in get_db()["video"].find({"_id": {"$in": ids}})}
    playlist["videos"] = attach_owners([found[v] for v in ids if v in found])
    attach_owners([playlist])
    return api_response(_with_count(playlist), "Playlist fetched successfully")


def _owned_playlist(playlist_id: str, user: dict, action: str) -> dict:
    playlist = get_or_404("playlist", parse_object_id(playlist_id, "playlist"), "Playlist")
    require_owner(playlist, user, action, "playlist")
    return playlist


@router.patch("/add/{playlist_id}/{video_id}")
def add_video_to_playlist(playlist_id: str, video_id: str, user: dict = Depends(get_current_user)):
    video_oid = parse_object_id(video_id, "video")
    playlist = _owned_playlist(playlist_id, user, "update")
    video = get_or_404("video", video_oid, "Video")
    if not video.get("is_published"):
        raise HTTPException(status_code=400, detail="Cannot add unpublished video to playlist")
    if video_oid in playlist.get("videos", []):
        raise HTTPException(status_code=400, detail="Video already exists in playlist")

    updated = get_db()["playlist"].find_one_and_update(
        {"_id": playlist["_id"]},
        {"$push": {"videos": video_oid}, "$set": {"updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    return api_response(_with_count(updated), "Video added to playlist successfully")


@router.patch("/remove/{playlist_id}/{video_id}")
def remove_video_from_playlist(playlist_id: str, video_id: str, user: dict = Depends(get_current_user)):
    video_oid = parse_object_id(video_id, "video")
    playlist = _owned_playlist(playlist_id, user, "update")
    if video_oid not in playlist.get("videos", []):
        raise HTTPException(status_code=400, detail="Video not found in playlist")

    updated = get_db()["playlist"].find_one_and_update(
        {"_id": playlist["_id"]},
        {"$pull": {"videos": video_oid}, "$set": {"updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    return api_response(_with_count(updated), "Video removed from playlist successfully")


@router.patch("/{playlist_id}")
def update_playlist(playlist_id: str, body: PlaylistUpdate, user: dict = Depends(get_current_user)):
    if body.name is None and body.description is None and body.is_public is None:
        raise HTTPException(
            status_code=400,
            detail="At least one field (name, description, or is_public) must be provided",
        )
    playlist = _owned_playlist(playlist_id, user, "update")

    update = {"updated_at": utcnow()}
    if body.name is not None:
        update["name"] = _check_name(body.name)
    if body.description is not None:
        update["description"] = _check_description(body.description)
    if body.is_public is not None:
        update["is_public"] = body.is_public

    updated = get_db()["playlist"].find_one_and_update(
        {"_id": playlist["_id"]}, {"$set": update}, return_document=ReturnDocument.AFTER
    )
    return api_response(_with_count(updated), "Playlist updated successfully")


@router.delete("/{playlist_id}")
def delete_playlist(playlist_id: str, user: dict = Depends(get_current_user)):
    playlist = _owned_playlist(playlist_id, user, "delete")
    get_db()["playlist"].delete_one({"_id": playlist["_id"]})
    return api_response({"deleted_playlist_id": playlist_id}, "Playlist deleted successfully")
