import math
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from bson import ObjectId
from fastapi import HTTPException

from vidnest.database import get_db

# Fields of a user that are safe to embed next to content they own
OWNER_FIELDS = ("username", "full_name", "avatar")
PRIVATE_USER_FIELDS = ("password", "refresh_token")

MAX_PAGE_SIZE = 100


def parse_object_id(value: Optional[str], label: str) -> ObjectId:
    if not value or not ObjectId.is_valid(value):
        raise HTTPException(status_code=400, detail=f"Invalid {label} ID")
    return ObjectId(value)


def get_or_404(collection: str, _id: ObjectId, label: str) -> Dict[str, Any]:
    doc = get_db()[collection].find_one({"_id": _id})
    if not doc:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return doc


def require_owner(doc: Dict[str, Any], user: Dict[str, Any], action: str, label: str):
    if doc.get("owner") != user["_id"]:
        raise HTTPException(status_code=403, detail=f"You are not allowed to {action} this {label}")


def serialize_doc(value: Any) -> Any:
    """Make a Mongo document JSON friendly: _id -> id, ObjectId -> str."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        out = {}
        for key, item in value.items():
            out["id" if key == "_id" else key] = serialize_doc(item)
        return out
    if isinstance(value, (list, tuple)):
        return [serialize_doc(v) for v in value]
    return value


def public_user(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if doc is None:
        return None
    return {k: v for k, v in doc.items() if k not in PRIVATE_USER_FIELDS}


def owner_summary(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if doc is None:
        return None
    summary = {"_id": doc["_id"]}
    for field in OWNER_FIELDS:
        summary[field] = doc.get(field)
    return summary


def load_owners(ids: Iterable[ObjectId]) -> Dict[ObjectId, Dict[str, Any]]:
    """Fetch owner summaries for a batch of user ids."""
    unique_ids = list({i for i in ids if i is not None})
    if not unique_ids:
        return {}
    projection = {field: 1 for field in OWNER_FIELDS}
    users = get_db()["user"].find({"_id": {"$in": unique_ids}}, projection)
    return {u["_id"]: owner_summary(u) for u in users}


def attach_owners(docs: List[Dict[str, Any]], field: str = "owner") -> List[Dict[str, Any]]:
    """Replace the owner id of each document with the owner summary."""
    owners = load_owners(d.get(field) for d in docs)
    for doc in docs:
        doc[field] = owners.get(doc.get(field))
    return docs


def owner_lookup(local_field: str = "owner", as_field: str = "owner") -> List[Dict[str, Any]]:
    """$lookup + $unwind stages that join an owner summary onto each document."""
    summary = {"_id": f"${as_field}._id"}
    summary.update({field: f"${as_field}.{field}" for field in OWNER_FIELDS})
    return [
        {"$lookup": {"from": "user", "localField": local_field, "foreignField": "_id", "as": as_field}},
        {"$unwind": f"${as_field}"},
        {"$addFields": {as_field: summary}},
    ]


def page_params(page: int, limit: int):
    page = max(int(page or 1), 1)
    limit = min(max(int(limit or 10), 1), MAX_PAGE_SIZE)
    return page, limit, (page - 1) * limit


def page_meta(total: int, page: int, limit: int) -> Dict[str, Any]:
    total_pages = math.ceil(total / limit) if limit else 0
    return {
        "page": page,
        "limit": limit,
        "total_pages": total_pages,
        "has_next_page": page < total_pages,
        "has_prev_page": page > 1,
    }


def paginate(
    collection: str,
    pipeline: List[Dict[str, Any]],
    page: int,
    limit: int,
    docs_label: str = "docs",
    total_label: str = "total_docs",
) -> Dict[str, Any]:
    """Run an aggregation pipeline one page at a time, reporting totals alongside."""
    page, limit, skip = page_params(page, limit)
    coll = get_db()[collection]
    counted = list(coll.aggregate(pipeline + [{"$count": "total"}]))
    total = counted[0]["total"] if counted else 0
    docs = list(coll.aggregate(pipeline + [{"$skip": skip}, {"$limit": limit}]))
    result = {docs_label: docs, total_label: total}
    result.update(page_meta(total, page, limit))
    return result


def month_key(value: Optional[datetime]) -> Optional[str]:
    return value.strftime("%Y-%m") if value else None
