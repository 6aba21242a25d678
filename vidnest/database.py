"""
Database helpers

Thin layer over pymongo. The rest of the app reaches the database through
get_db() and the small create/get helpers below.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, IndexModel, MongoClient

from vidnest.config import settings

logger = logging.getLogger(__name__)

client = None
db = None


def utcnow() -> datetime:
    # pymongo hands back naive UTC datetimes, so store them the same way
    return datetime.now(timezone.utc).replace(tzinfo=None)


def init_db(url: Optional[str] = None, name: Optional[str] = None, client_override=None):
    global client, db
    if client_override is not None:
        client = client_override
    else:
        client = MongoClient(url or settings.database_url, serverSelectionTimeoutMS=10000)
    db = client[name or settings.database_name]
    logger.info("Using database %s", db.name)
    return db


def get_db():
    if db is None:
        raise RuntimeError("Database is not initialized; call init_db() first")
    return db


def ping() -> bool:
    get_db().command("ping")
    return True


def create_document(collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    """Insert a document, stamping created_at/updated_at. Returns the new id as a string."""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = dict(data)
    now = utcnow()
    data_dict.setdefault("created_at", now)
    data_dict["updated_at"] = now
    result = get_db()[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
    sort: Optional[List] = None,
) -> List[Dict[str, Any]]:
    cursor = get_db()[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def ensure_indexes():
    database = get_db()
    database["user"].create_index([("username", ASCENDING)], unique=True)
    database["user"].create_index([("email", ASCENDING)], unique=True)

    database["video"].create_index([("owner", ASCENDING)])
    database["video"].create_index([("created_at", DESCENDING)])
    database["video"].create_index([("is_published", ASCENDING), ("category", ASCENDING)])

    # A like targets exactly one of video/comment/tweet, so each pair is only
    # unique among the likes that actually carry that target.
    database["like"].create_indexes([
        IndexModel(
            [(target, ASCENDING), ("liked_by", ASCENDING)],
            unique=True,
            name=f"{target}_1_liked_by_1",
            partialFilterExpression={target: {"$type": "objectId"}},
        )
        for target in ("video", "comment", "tweet")
    ])

    database["subscription"].create_index(
        [("subscriber", ASCENDING), ("channel", ASCENDING)], unique=True
    )
    database["subscription"].create_index([("channel", ASCENDING), ("created_at", DESCENDING)])

    database["comment"].create_index([("video", ASCENDING), ("created_at", DESCENDING)])
    database["comment"].create_index([("tweet", ASCENDING), ("created_at", DESCENDING)])
    database["comment"].create_index([("parent_comment", ASCENDING)])

    database["tweet"].create_index([("owner", ASCENDING), ("created_at", DESCENDING)])
    database["playlist"].create_index([("owner", ASCENDING), ("created_at", DESCENDING)])
    database["notification"].create_index([("recipient", ASCENDING), ("created_at", DESCENDING)])
    database["search"].create_index([("query", ASCENDING), ("searched_at", DESCENDING)])
    database["search"].create_index([("user", ASCENDING), ("searched_at", DESCENDING)])
    logger.info("Database indexes ensured")
