from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pymongo import ReturnDocument

from vidnest.auth import get_current_user
from vidnest.database import get_db, utcnow
from vidnest.helpers import attach_owners, page_meta, page_params, parse_object_id
from vidnest.responses import api_response

router = APIRouter(prefix="/notifications", tags=["notifications"])

VIDEO_SUMMARY = {"title": 1, "thumbnail": 1, "duration": 1}
COMMENT_SUMMARY = {"content": 1, "created_at": 1}


def _populate(notifications):
    """Swap sender, video and comment ids for short summaries."""
    db = get_db()
    attach_owners(notifications, field="sender")
    for field, projection in (("video", VIDEO_SUMMARY), ("comment", COMMENT_SUMMARY)):
        ids = [n[field] for n in notifications if n.get(field)]
        found = {d["_id"]: d for d in db[field].find({"_id": {"$in": ids}}, projection)} if ids else {}
        for n in notifications:
            n[field] = found.get(n.get(field))
    return notifications


@router.get("")
@router.get("/", include_in_schema=False)
def get_notifications(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    is_read: Optional[bool] = None,
    user: dict = Depends(get_current_user),
):
    page, limit, skip = page_params(page, limit)
    coll = get_db()["notification"]
    filter_dict = {"recipient": user["_id"]}
    if is_read is not None:
        filter_dict["is_read"] = is_read

    cursor = coll.find(filter_dict).sort([("created_at", -1), ("_id", -1)]).skip(skip).limit(limit)
    notifications = _populate(list(cursor))
    total = coll.count_documents(filter_dict)
    pagination = page_meta(total, page, limit)
    pagination["total_notifications"] = total

    data = {
        "notifications": notifications,
        "pagination": pagination,
        "unread_count": coll.count_documents({"recipient": user["_id"], "is_read": False}),
    }
    return api_response(data, "Notifications fetched successfully")


@router.patch("/read-all")
def mark_all_as_read(user: dict = Depends(get_current_user)):
    result = get_db()["notification"].update_many(
        {"recipient": user["_id"], "is_read": False},
        {"$set": {"is_read": True, "updated_at": utcnow()}},
    )
    return api_response({"modified_count": result.modified_count}, "All notifications marked as read")


@router.patch("/{notification_id}/read")
def mark_as_read(notification_id: str, user: dict = Depends(get_current_user)):
    _id = parse_object_id(notification_id, "notification")
    updated = get_db()["notification"].find_one_and_update(
        {"_id": _id, "recipient": user["_id"]},
        {"$set": {"is_read": True, "updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if not updated:
        raise HTTPException(status_code=404, detail="Notification not found")
    return api_response(updated, "Notification marked as read")


@router.delete("/{notification_id}")
def delete_notification(notification_id: str, user: dict = Depends(get_current_user)):
    _id = parse_object_id(notification_id, "notification")
    result = get_db()["notification"].delete_one({"_id": _id, "recipient": user["_id"]})
    if not result.deleted_count:
        raise HTTPException(status_code=404, detail="Notification not found")
    return api_response({"deleted_notification_id": notification_id}, "Notification deleted successfully")
