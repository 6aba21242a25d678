import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from pymongo.errors import DuplicateKeyError

from vidnest.auth import get_current_user
from vidnest.database import create_document, get_db
from vidnest.helpers import get_or_404, owner_summary, paginate, parse_object_id
from vidnest.notifier import notify
from vidnest.responses import api_response
from vidnest.schemas import NotificationType, Subscription

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/subscription", tags=["subscriptions"])


def toggle_subscription(subscriber_id, channel_id) -> bool:
    """Follow or unfollow a channel. Returns True when now subscribed."""
    db = get_db()
    removed = db["subscription"].delete_one({"subscriber": subscriber_id, "channel": channel_id})
    if removed.deleted_count:
        db["user"].update_one({"_id": channel_id, "subscriber_count": {"$gt": 0}}, {"$inc": {"subscriber_count": -1}})
        return False

    try:
        create_document("subscription", Subscription(subscriber=subscriber_id, channel=channel_id))
    except DuplicateKeyError:
        logger.info("Duplicate subscription %s -> %s", subscriber_id, channel_id)
        return True
    db["user"].update_one({"_id": channel_id}, {"$inc": {"subscriber_count": 1}})
    return True


@router.post("/c/{channel_id}")
def toggle_channel_subscription(channel_id: str, user: dict = Depends(get_current_user)):
    _id = parse_object_id(channel_id, "channel")
    if _id == user["_id"]:
        raise HTTPException(status_code=400, detail="You cannot subscribe to yourself")
    if not get_db()["user"].find_one({"_id": _id}, {"_id": 1}):
        raise HTTPException(status_code=404, detail="Channel does not exist")

    subscribed = toggle_subscription(user["_id"], _id)
    if subscribed:
        notify(_id, user["_id"], NotificationType.SUBSCRIPTION, f"{user['username']} subscribed to your channel")
        message = "Subscribed successfully"
    else:
        message = "Unsubscribed successfully"
    return api_response({"is_subscribed": subscribed}, message)


def _subscription_page(match: dict, join_field: str, page: int, limit: int, label: str):
    pipeline = [
        {"$match": match},
        {"$sort": {"created_at": -1, "_id": -1}},
        {"$lookup": {"from": "user", "localField": join_field, "foreignField": "_id", "as": "account"}},
        {"$unwind": "$account"},
    ]
    result = paginate("subscription", pipeline, page, limit, label, f"total_{label}")
    entries = []
    for sub in result[label]:
        entry = owner_summary(sub["account"])
        entry["subscriber_count"] = sub["account"].get("subscriber_count", 0)
        entry["subscribed_at"] = sub.get("created_at")
        entries.append(entry)
    result[label] = entries
    return result


@router.get("/c/{channel_id}/subscribers")
def get_channel_subscribers(channel_id: str, page: int = Query(1, ge=1), limit: int = Query(10, ge=1, le=100)):
    _id = parse_object_id(channel_id, "channel")
    get_or_404("user", _id, "Channel")
    result = _subscription_page({"channel": _id}, "subscriber", page, limit, "subscribers")
    return api_response(result, "Subscribers fetched successfully")


@router.get("/subscribed")
def get_subscribed_channels(
    page: int = Query(1, ge=1), limit: int = Query(10, ge=1, le=100), user: dict = Depends(get_current_user)
):
    result = _subscription_page({"subscriber": user["_id"]}, "channel", page, limit, "channels")
    return api_response(result, "Subscribed channels fetched successfully")
