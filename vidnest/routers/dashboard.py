"""
Channel dashboard

Totals, monthly growth and engagement for a single channel. Monthly buckets
are computed in Python from created_at so they work against any backend.
"""

from collections import OrderedDict
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from vidnest.auth import get_current_user, get_optional_user
from vidnest.database import get_db, utcnow
from vidnest.helpers import attach_owners, get_or_404, month_key, page_meta, page_params, parse_object_id
from vidnest.responses import api_response

router = APIRouter(prefix="/dashboard", tags=["dashboard"])

PERIOD = timedelta(days=30)
CHANNEL_VIDEO_SORTS = ("created_at", "views", "likes", "duration", "title")


def percent_change(current: float, previous: float) -> float:
    if previous <= 0:
        return 0.0
    return round((current - previous) / previous * 100, 2)


def monthly(docs, value=None):
    """Group docs by YYYY-MM of created_at, oldest month first."""
    buckets = OrderedDict()
    for doc in sorted(docs, key=lambda d: d.get("created_at") or utcnow()):
        key = month_key(doc.get("created_at"))
        if key is None:
            continue
        buckets[key] = buckets.get(key, 0) + (value(doc) if value else 1)
    return buckets


def channel_stats(channel_id, now=None):
    now = now or utcnow()
    db = get_db()
    videos = list(db["video"].find({"owner": channel_id, "is_published": True}))
    video_ids = [v["_id"] for v in videos]
    subscriptions = list(db["subscription"].find({"channel": channel_id}, {"created_at": 1}))

    total_videos = len(videos)
    total_views = sum(v.get("views", 0) for v in videos)
    total_likes = db["like"].count_documents({"video": {"$in": video_ids}}) if video_ids else 0
    total_comments = db["comment"].count_documents({"video": {"$in": video_ids}}) if video_ids else 0

    recent_start, previous_start = now - PERIOD, now - 2 * PERIOD

    def in_window(doc, start, end):
        created = doc.get("created_at")
        return created is not None and start <= created < end

    recent_views = sum(v.get("views", 0) for v in videos if in_window(v, recent_start, now + timedelta(seconds=1)))
    previous_views = sum(v.get("views", 0) for v in videos if in_window(v, previous_start, recent_start))
    recent_subs = sum(1 for s in subscriptions if in_window(s, recent_start, now + timedelta(seconds=1)))
    previous_subs = sum(1 for s in subscriptions if in_window(s, previous_start, recent_start))

    views_by_month = monthly(videos, lambda v: v.get("views", 0))
    videos_by_month = monthly(videos)
    subs_by_month = monthly(subscriptions)

    most_popular = None
    if videos:
        top = max(videos, key=lambda v: (v.get("views", 0), v.get("created_at") or now))
        most_popular = {k: top.get(k) for k in ("_id", "title", "thumbnail", "views", "created_at")}

    return {
        "channel_stats": {
            "total_videos": total_videos,
            "total_views": total_views,
            "total_likes": total_likes,
            "total_subscribers": len(subscriptions),
            "total_comments": total_comments,
        },
        "growth_metrics": {
            "views_growth": [
                {"month": month, "total_views": views, "video_count": videos_by_month[month]}
                for month, views in views_by_month.items()
            ],
            "subscribers_growth": [
                {"month": month, "new_subscribers": count} for month, count in subs_by_month.items()
            ],
            "last_30_days": {
                "views": recent_views,
                "views_growth_percentage": percent_change(recent_views, previous_views),
                "new_subscribers": recent_subs,
                "subscriber_growth_percentage": percent_change(recent_subs, previous_subs),
            },
        },
        "additional_metrics": {
            "average_views_per_video": round(total_views / total_videos, 2) if total_videos else 0.0,
            "engagement_rate": round(total_likes / total_views * 100, 2) if total_views else 0.0,
            "most_popular_video": most_popular,
        },
    }


@router.get("/stats/{channel_id}")
def get_channel_stats(channel_id: str, user: dict = Depends(get_current_user)):
    _id = parse_object_id(channel_id, "channel")
    get_or_404("user", _id, "Channel")
    if _id != user["_id"]:
        raise HTTPException(status_code=403, detail="You are not authorized to view stats of this channel")
    return api_response(channel_stats(_id), "Channel statistics fetched successfully")


@router.get("/videos/{channel_id}")
def get_channel_videos(
    channel_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort_by: str = "created_at",
    sort_order: str = "desc",
    viewer: Optional[dict] = Depends(get_optional_user),
):
    _id = parse_object_id(channel_id, "channel")
    get_or_404("user", _id, "Channel")
    if sort_by not in CHANNEL_VIDEO_SORTS:
        raise HTTPException(status_code=400, detail=f"sort_by must be one of: {', '.join(CHANNEL_VIDEO_SORTS)}")

    filter_dict = {"owner": _id}
    if not viewer or viewer["_id"] != _id:
        filter_dict["is_published"] = True

    page, limit, skip = page_params(page, limit)
    direction = 1 if sort_order == "asc" else -1
    coll = get_db()["video"]
    videos = list(coll.find(filter_dict).sort([(sort_by, direction), ("_id", direction)]).skip(skip).limit(limit))
    total = coll.count_documents(filter_dict)
    pagination = page_meta(total, page, limit)
    pagination["total_videos"] = total
    return api_response(
        {"videos": attach_owners(videos), "pagination": pagination},
        "Channel videos fetched successfully",
    )
