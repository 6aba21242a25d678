import logging
import re
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from vidnest.auth import get_current_user, get_optional_user
from vidnest.database import create_document, get_db, get_documents, utcnow
from vidnest.helpers import owner_lookup, paginate
from vidnest.rate_limit import RATE_LIMIT_SEARCH, limiter, user_or_ip
from vidnest.responses import api_response
from vidnest.schemas import Search

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/search", tags=["search"])

# relevance falls back to popularity, then recency
SORT_OPTIONS = {
    "relevance": {"views": -1, "created_at": -1, "_id": -1},
    "views": {"views": -1, "_id": -1},
    "date": {"created_at": -1, "_id": -1},
    "likes": {"likes": -1, "_id": -1},
}
HISTORY_LIMIT = 20


def parse_date(value: Optional[str], label: str) -> Optional[datetime]:
    """Parse an ISO date/datetime into naive UTC, as stored in Mongo."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {label}")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def build_search_filter(query, category, start_date, end_date, min_duration, max_duration):
    filter_dict = {"is_published": True}
    if query:
        regex = {"$regex": re.escape(query), "$options": "i"}
        filter_dict["$or"] = [{"title": regex}, {"description": regex}, {"tags": regex}]
    if category:
        filter_dict["category"] = category

    created = {}
    start = parse_date(start_date, "start_date")
    end = parse_date(end_date, "end_date")
    if start:
        created["$gte"] = start
    if end:
        created["$lte"] = end
    if created:
        filter_dict["created_at"] = created

    duration = {}
    if min_duration is not None:
        duration["$gte"] = min_duration
    if max_duration is not None:
        duration["$lte"] = max_duration
    if duration:
        filter_dict["duration"] = duration
    return filter_dict


@router.get("")
@router.get("/", include_in_schema=False)
@limiter.limit(RATE_LIMIT_SEARCH, key_func=user_or_ip)
def search_videos(
    request: Request,
    query: str = "",
    category: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    min_duration: Optional[float] = Query(None, ge=0),
    max_duration: Optional[float] = Query(None, ge=0),
    sort_by: str = "relevance",
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user: Optional[dict] = Depends(get_optional_user),
):
    """
    Search published videos.

    query is matched case-insensitively against title, description and tags.
    Without a query, relevance ordering is simply newest first.
    """
    if sort_by not in SORT_OPTIONS:
        raise HTTPException(status_code=400, detail=f"sort_by must be one of: {', '.join(SORT_OPTIONS)}")
    query = query.strip()
    filter_dict = build_search_filter(query, category, start_date, end_date, min_duration, max_duration)

    sort = SORT_OPTIONS[sort_by]
    if sort_by == "relevance" and not query:
        sort = SORT_OPTIONS["date"]
    pipeline = [{"$match": filter_dict}, {"$sort": sort}] + owner_lookup()
    result = paginate("video", pipeline, page, limit, "videos", "total_results")

    if user and query:
        create_document(
            "search",
            Search(query=query, user=user["_id"], results_count=result["total_results"], searched_at=utcnow()),
        )
    logger.debug("Search %r matched %d videos", query, result["total_results"])

    data = {
        "videos": result["videos"],
        "total_results": result["total_results"],
        "total_pages": result["total_pages"],
        "current_page": result["page"],
        "has_next_page": result["has_next_page"],
        "has_prev_page": result["has_prev_page"],
    }
    return api_response(data, "Videos fetched successfully")


@router.get("/history")
def get_search_history(limit: int = Query(HISTORY_LIMIT, ge=1, le=100), user: dict = Depends(get_current_user)):
    searches = get_documents("search", {"user": user["_id"]}, limit=limit, sort=[("searched_at", -1), ("_id", -1)])
    return api_response(searches, "Search history fetched successfully")


@router.delete("/history")
def clear_search_history(user: dict = Depends(get_current_user)):
    result = get_db()["search"].delete_many({"user": user["_id"]})
    return api_response({"deleted_count": result.deleted_count}, "Search history cleared successfully")
