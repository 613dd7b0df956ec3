"""
Database helpers

MongoDB access for the storefront. ``db`` is ``None`` until DATABASE_URL is
configured; request handlers get the handle through ``main.get_db`` so tests
can swap in an in-memory database.

Collections:
- product, user, order, customrequest, session
- counter: one document per named sequence ({"_id": "order", "seq": 41})
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient, ReturnDocument
from pymongo.database import Database

from config import DATABASE_NAME, DATABASE_URL
from errors import ValidationError

logger = logging.getLogger(__name__)

db: Optional[Database] = None

if DATABASE_URL:
    _client = MongoClient(DATABASE_URL, tz_aware=True, serverSelectionTimeoutMS=10_000)
    db = _client[DATABASE_NAME]


def to_object_id(id_str: str) -> ObjectId:
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise ValidationError("Invalid id format")


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """BSON dates carry no zone; stored values are always UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _resolve(using: Optional[Database]) -> Database:
    target = using if using is not None else db
    if target is None:
        raise RuntimeError("Database not configured")
    return target


def create_document(collection_name: str, data: Union[BaseModel, dict], *, using: Optional[Database] = None) -> str:
    """Insert a document, stamping created_at/updated_at. Returns the id as a string."""
    target = _resolve(using)
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = dict(data)
    now = datetime.now(timezone.utc)
    data_dict.setdefault("created_at", now)
    data_dict["updated_at"] = now
    result = target[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
    *,
    sort: Optional[List[tuple]] = None,
    projection: Optional[Dict[str, Any]] = None,
    using: Optional[Database] = None,
) -> List[dict]:
    target = _resolve(using)
    cursor = target[collection_name].find(filter_dict or {}, projection)
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def next_sequence(name: str, *, using: Optional[Database] = None) -> int:
    """Atomically increment and return the named counter (first value is 1)."""
    target = _resolve(using)
    doc = target["counter"].find_one_and_update(
        {"_id": name},
        {"$inc": {"seq": 1}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return int(doc["seq"])


def ensure_indexes(using: Optional[Database] = None) -> None:
    target = _resolve(using)
    target["user"].create_index([("email", ASCENDING)], unique=True)
    target["user"].create_index([("username", ASCENDING)], unique=True)
    target["order"].create_index([("order_id", ASCENDING)], unique=True)
    target["session"].create_index([("expires_at", ASCENDING)], expireAfterSeconds=0)
    logger.info("Indexes ensured on %s", target.name)
