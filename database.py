"""
MongoDB access helpers.

The client is created lazily from settings and handed to route handlers
through the ``get_db`` dependency, so tests can swap in a mongomock database.
Collection names are the lowercased schema class names (Product -> "product").
"""

import logging
from datetime import datetime, timezone
from typing import Optional, Union

from bson import ObjectId
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

from config import settings

logger = logging.getLogger(__name__)

_client: Optional[MongoClient] = None


def get_db() -> Database:
    global _client
    if _client is None:
        _client = MongoClient(settings.DATABASE_URL)
        logger.info("MongoDB client created for database %s", settings.DATABASE_NAME)
    return _client[settings.DATABASE_NAME]


def ensure_indexes(db: Database) -> None:
    db["admin"].create_index([("username", ASCENDING)], unique=True)
    db["category"].create_index([("name", ASCENDING)], unique=True)
    db["product"].create_index([("slug", ASCENDING)])
    db["product"].create_index([("category", ASCENDING), ("subcategory", ASCENDING)])
    db["enquiry"].create_index([("created_at", ASCENDING)])


def now() -> datetime:
    return datetime.now(timezone.utc)


def create_document(db: Database, collection_name: str, data: Union[BaseModel, dict]) -> str:
    """Insert a document stamped with created_at/updated_at and return its id as a string."""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = dict(data)
    stamp = now()
    data_dict["created_at"] = stamp
    data_dict["updated_at"] = stamp
    result = db[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(db: Database, collection_name: str, filter_dict: dict = None, limit: int = None, sort=None):
    cursor = db[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def update_document(db: Database, collection_name: str, _id: ObjectId, fields: dict):
    """$set the given fields (plus updated_at) and return the updated document, or None."""
    changes = dict(fields)
    changes["updated_at"] = now()
    res = db[collection_name].update_one({"_id": _id}, {"$set": changes})
    if res.matched_count == 0:
        return None
    return db[collection_name].find_one({"_id": _id})


def serialize(value):
    """Make a Mongo document JSON friendly: ObjectId -> str and _id -> id."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, list):
        return [serialize(v) for v in value]
    if isinstance(value, dict):
        out = {}
        for k, v in value.items():
            if k == "_id":
                out["id"] = serialize(v)
            else:
                out[k] = serialize(v)
        return out
    return value
