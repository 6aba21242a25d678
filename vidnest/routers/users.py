from typing import Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile
from jwt.exceptions import ExpiredSignatureError, PyJWTError
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from vidnest import storage
from vidnest.auth import (
    REFRESH_COOKIE,
    SAFE_USER_PROJECTION,
    clear_auth_cookies,
    decode_token,
    get_current_user,
    get_optional_user,
    hash_password,
    issue_tokens,
    set_auth_cookies,
    verify_password,
)
from vidnest.config import settings
from vidnest.database import create_document, get_db, utcnow
from vidnest.helpers import attach_owners, public_user
from vidnest.rate_limit import RATE_LIMIT_AUTH, limiter
from vidnest.responses import api_response
from vidnest.schemas import (
    ChangePasswordRequest,
    LoginRequest,
    RefreshRequest,
    UpdateAccountRequest,
    User,
)

router = APIRouter(prefix="/users", tags=["users"])

WATCH_HISTORY_LIMIT = 100


def _blank(value: Optional[str]) -> bool:
    return value is None or value.strip() == ""


@router.post("/register")
@limiter.limit(RATE_LIMIT_AUTH)
async def register_user(
    request: Request,
    full_name: str = Form(""),
    email: str = Form(""),
    username: str = Form(""),
    password: str = Form(""),
    avatar: Optional[UploadFile] = File(None),
    cover_image: Optional[UploadFile] = File(None),
):
    if any(_blank(field) for field in (full_name, email, username, password)):
        raise HTTPException(status_code=400, detail="All fields are required")

    username = username.strip().lower()
    email = email.strip().lower()
    users = get_db()["user"]
    if users.find_one({"$or": [{"username": username}, {"email": email}]}):
        raise HTTPException(status_code=409, detail="User already exists")

    if not storage.has_file(avatar):
        raise HTTPException(status_code=400, detail="Avatar file is required")
    storage.require_content_type(avatar, "image", "Avatar")
    if storage.has_file(cover_image):
        storage.require_content_type(cover_image, "image", "Cover image")

    # validate before anything is uploaded
    user_doc = User(
        username=username,
        email=email,
        full_name=full_name.strip(),
        password=hash_password(password),
        avatar="pending",
    )

    uploaded_avatar = await storage.upload_media(avatar, "image")
    if not uploaded_avatar:
        raise HTTPException(status_code=400, detail="Avatar upload failed")
    uploaded_cover = await storage.upload_media(cover_image, "image")

    user_doc.avatar = uploaded_avatar["url"]
    user_doc.cover_image = uploaded_cover["url"] if uploaded_cover else ""
    try:
        inserted_id = create_document("user", user_doc)
    except DuplicateKeyError:
        # lost a race with a concurrent registration
        await storage.delete_media(user_doc.avatar, "image")
        if user_doc.cover_image:
            await storage.delete_media(user_doc.cover_image, "image")
        raise HTTPException(status_code=409, detail="User already exists")

    created = users.find_one({"_id": ObjectId(inserted_id)}, SAFE_USER_PROJECTION)
    if not created:
        raise HTTPException(status_code=500, detail="Something went wrong while registering the user")
    return api_response(created, "User registered successfully", 201)


@router.post("/login")
@limiter.limit(RATE_LIMIT_AUTH)
def login_user(request: Request, body: LoginRequest):
    if _blank(body.username) and _blank(body.email):
        raise HTTPException(status_code=400, detail="Username or email is required")

    conditions = []
    if not _blank(body.username):
        conditions.append({"username": body.username.strip().lower()})
    if not _blank(body.email):
        conditions.append({"email": body.email.strip().lower()})
    user = get_db()["user"].find_one({"$or": conditions})
    if not user:
        raise HTTPException(status_code=404, detail="User does not exist")

    if not verify_password(body.password, user.get("password")):
        raise HTTPException(status_code=401, detail="Invalid user credentials")

    tokens = issue_tokens(user["_id"])
    logged_in = public_user(get_db()["user"].find_one({"_id": user["_id"]}))
    response = api_response({"user": logged_in, **tokens}, "User logged in successfully")
    set_auth_cookies(response, tokens)
    return response


@router.post("/logout")
def logout_user(user: dict = Depends(get_current_user)):
    get_db()["user"].update_one({"_id": user["_id"]}, {"$set": {"refresh_token": None}})
    response = api_response({}, "User logged out successfully")
    clear_auth_cookies(response)
    return response


@router.post("/refresh-token")
@limiter.limit(RATE_LIMIT_AUTH)
def refresh_access_token(request: Request, body: Optional[RefreshRequest] = None):
    incoming = request.cookies.get(REFRESH_COOKIE) or (body.refresh_token if body else None)
    if not incoming:
        raise HTTPException(status_code=401, detail="Unauthorized request - Refresh token required")

    try:
        payload = decode_token(incoming, settings.refresh_token_secret, "refresh")
    except ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Refresh token expired")
    except PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid refresh token")

    user = get_db()["user"].find_one({"_id": ObjectId(payload["sub"])})
    if not user:
        raise HTTPException(status_code=401, detail="Invalid refresh token - User not found")
    if incoming != user.get("refresh_token"):
        raise HTTPException(status_code=401, detail="Refresh token is expired or used")

    tokens = issue_tokens(user["_id"])
    response = api_response(tokens, "Access token refreshed successfully")
    set_auth_cookies(response, tokens)
    return response


@router.post("/change-password")
def change_current_password(body: ChangePasswordRequest, user: dict = Depends(get_current_user)):
    if not body.old_password or not body.new_password:
        raise HTTPException(status_code=400, detail="Both old and new passwords are required")

    users = get_db()["user"]
    stored = users.find_one({"_id": user["_id"]}, {"password": 1})
    if not verify_password(body.old_password, stored.get("password") if stored else None):
        raise HTTPException(status_code=400, detail="Invalid old password")

    users.update_one(
        {"_id": user["_id"]},
        {"$set": {"password": hash_password(body.new_password), "updated_at": utcnow()}},
    )
    return api_response({}, "Password changed successfully")


@router.get("/current-user")
def get_current_user_profile(user: dict = Depends(get_current_user)):
    return api_response(user, "Current user fetched successfully")


@router.patch("/update-account")
def update_account_details(body: UpdateAccountRequest, user: dict = Depends(get_current_user)):
    if _blank(body.full_name) or _blank(body.email):
        raise HTTPException(status_code=400, detail="All fields are required")

    email = body.email.strip().lower()
    users = get_db()["user"]
    if users.find_one({"email": email, "_id": {"$ne": user["_id"]}}):
        raise HTTPException(status_code=409, detail="Email is already in use")

    updated = users.find_one_and_update(
        {"_id": user["_id"]},
        {"$set": {"full_name": body.full_name.strip(), "email": email, "updated_at": utcnow()}},
        projection=SAFE_USER_PROJECTION,
        return_document=ReturnDocument.AFTER,
    )
    return api_response(updated, "Account details updated successfully")


async def _replace_image(user: dict, upload: Optional[UploadFile], field: str, label: str):
    if not storage.has_file(upload):
        raise HTTPException(status_code=400, detail=f"{label} file is missing")
    storage.require_content_type(upload, "image", label)

    uploaded = await storage.upload_media(upload, "image")
    if not uploaded:
        raise HTTPException(status_code=400, detail=f"Error while uploading {label.lower()}")

    previous = get_db()["user"].find_one({"_id": user["_id"]}, {field: 1}).get(field)
    updated = get_db()["user"].find_one_and_update(
        {"_id": user["_id"]},
        {"$set": {field: uploaded["url"], "updated_at": utcnow()}},
        projection=SAFE_USER_PROJECTION,
        return_document=ReturnDocument.AFTER,
    )
    if previous:
        await storage.delete_media(previous, "image")
    return updated


@router.patch("/avatar")
async def update_user_avatar(avatar: Optional[UploadFile] = File(None), user: dict = Depends(get_current_user)):
    updated = await _replace_image(user, avatar, "avatar", "Avatar")
    return api_response(updated, "Avatar updated successfully")


@router.patch("/cover-image")
async def update_user_cover_image(cover_image: Optional[UploadFile] = File(None), user: dict = Depends(get_current_user)):
    updated = await _replace_image(user, cover_image, "cover_image", "Cover image")
    return api_response(updated, "Cover image updated successfully")


@router.get("/c/{username}")
def get_user_channel_profile(username: str, viewer: Optional[dict] = Depends(get_optional_user)):
    if _blank(username):
        raise HTTPException(status_code=400, detail="Username is missing")

    pipeline = [
        {"$match": {"username": username.strip().lower()}},
        {"$lookup": {"from": "subscription", "localField": "_id", "foreignField": "channel", "as": "subscribers"}},
        {"$lookup": {"from": "subscription", "localField": "_id", "foreignField": "subscriber", "as": "subscribed_to"}},
        {"$addFields": {
            "subscribers_count": {"$size": "$subscribers"},
            "channels_subscribed_to_count": {"$size": "$subscribed_to"},
        }},
    ]
    channels = list(get_db()["user"].aggregate(pipeline))
    if not channels:
        raise HTTPException(status_code=404, detail="Channel does not exist")

    channel = channels[0]
    viewer_id = viewer["_id"] if viewer else None
    profile = {
        "_id": channel["_id"],
        "full_name": channel.get("full_name"),
        "username": channel.get("username"),
        "email": channel.get("email"),
        "avatar": channel.get("avatar"),
        "cover_image": channel.get("cover_image"),
        "created_at": channel.get("created_at"),
        "subscribers_count": channel["subscribers_count"],
        "channels_subscribed_to_count": channel["channels_subscribed_to_count"],
        "is_subscribed": any(s.get("subscriber") == viewer_id for s in channel["subscribers"]),
    }
    return api_response(profile, "User channel fetched successfully")


def record_watch(user_id, video_id):
    """Move video_id to the front of the user's watch history."""
    users = get_db()["user"]
    users.update_one({"_id": user_id}, {"$pull": {"watch_history": video_id}})
    users.update_one(
        {"_id": user_id},
        {"$push": {"watch_history": {"$each": [video_id], "$position": 0, "$slice": WATCH_HISTORY_LIMIT}}},
    )


@router.get("/history")
def get_watch_history(user: dict = Depends(get_current_user)):
    history = user.get("watch_history", [])
    videos = {v["_id"]: v for v in get_db()["video"].find({"_id": {"$in": history}})}
    ordered = [videos[v] for v in history if v in videos]
    return api_response(attach_owners(ordered), "Watch history fetched successfully")


@router.delete("/history")
def clear_watch_history(user: dict = Depends(get_current_user)):
    get_db()["user"].update_one({"_id": user["_id"]}, {"$set": {"watch_history": []}})
    return api_response({}, "Watch history cleared successfully")
