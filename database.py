"""
Database helpers

A single MongoDB connection is opened at import time from DATABASE_URL /
DATABASE_NAME and shared by the whole process. Collections are named after
the lowercase schema class (User -> "user", Revenue -> "revenue").
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

import settings
from errors import ValidationError

client: Optional[MongoClient] = None
db: Optional[Database] = None

if settings.DATABASE_URL and settings.DATABASE_NAME:
    client = MongoClient(settings.DATABASE_URL)
    db = client[settings.DATABASE_NAME]


def get_db() -> Database:
    if db is None:
        raise RuntimeError("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")
    return db


def utcnow() -> datetime:
    # Mongo hands back naive UTC datetimes, so everything is kept naive UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def to_object_id(value: Union[str, ObjectId], field: str = "id") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    raise ValidationError(f"Invalid {field}")


def serialize_doc(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Convert ObjectIds to strings (recursively) and expose ``_id`` as ``id``."""
    if doc is None:
        return doc

    def convert(value):
        if isinstance(value, ObjectId):
            return str(value)
        if isinstance(value, dict):
            return {k: convert(v) for k, v in value.items()}
        if isinstance(value, list):
            return [convert(v) for v in value]
        return value

    out = convert(doc)
    if "_id" in out:
        out["id"] = out.pop("_id")
    return out


def create_document(database: Database, collection_name: str, data: Union[BaseModel, dict]) -> ObjectId:
    """Insert a document, stamping createdAt/updatedAt."""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump(by_alias=True)
    else:
        data_dict = data.copy()
    now = utcnow()
    data_dict.setdefault("createdAt", now)
    data_dict["updatedAt"] = now
    result = database[collection_name].insert_one(data_dict)
    return result.inserted_id


def get_documents(database: Database, collection_name: str, filter_dict: Optional[dict] = None,
                  limit: Optional[int] = None, sort: Optional[list] = None) -> List[dict]:
    cursor = database[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def ensure_indexes(database: Database) -> None:
    database["revenue"].create_index(
        [("userId", ASCENDING), ("year", ASCENDING), ("month", ASCENDING)], unique=True
    )
    database["dashboard"].create_index([("userId", ASCENDING)], unique=True)
    database["user"].create_index([("email", ASCENDING)], unique=True)
    # At most one selected estimate per project
    database["estimate"].create_index(
        [("projectId", ASCENDING)],
        unique=True,
        partialFilterExpression={"isSelected": True},
        name="one_selected_estimate_per_project",
    )
    database["project"].create_index([("userId", ASCENDING), ("clientId", ASCENDING)])
    database["project"].create_index([("milestones._id", ASCENDING)])
    database["expense"].create_index([("userId", ASCENDING)])
