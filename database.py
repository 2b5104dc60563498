"""
MongoDB access helpers

The database handle and the settings live on ``app.state`` and are handed to
endpoints through the ``get_db`` / ``get_settings`` dependencies, so tests can
build the app around an in-memory database.
"""
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from bson import ObjectId
from fastapi import HTTPException, Request
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient, ReturnDocument
from pymongo.database import Database

from config import Settings

logger = logging.getLogger(__name__)

OBJECT_ID_RE = re.compile(r"^[0-9a-fA-F]{24}$")

# Fields never returned unless a query asks for them explicitly
USER_HIDDEN_FIELDS = ("password", "passwordResetOtp", "passwordResetOtpExpiresAt")
USER_PUBLIC_PROJECTION = {field: 0 for field in USER_HIDDEN_FIELDS}


def connect(settings: Settings) -> Database:
    client = MongoClient(settings.database_url)
    logger.info("Using MongoDB database %s", settings.database_name)
    return client[settings.database_name]


def get_db(request: Request) -> Database:
    db = getattr(request.app.state, "db", None)
    if db is None:
        raise HTTPException(status_code=500, detail="Database not configured")
    return db


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def ensure_indexes(db: Database):
    db["user"].create_index([("email", ASCENDING)], unique=True)
    db["user"].create_index([("status", ASCENDING)])
    db["user"].create_index([("role", ASCENDING)])
    db["user"].create_index([("managerId", ASCENDING)])

    db["product"].create_index([("admin", ASCENDING)])
    db["product"].create_index([("category", ASCENDING)])
    db["product"].create_index([("status", ASCENDING)])
    db["product"].create_index([("price", ASCENDING)])

    db["order"].create_index([("user", ASCENDING)])
    db["order"].create_index([("status", ASCENDING)])
    db["order"].create_index([("createdAt", DESCENDING)])
    logger.info("Indexes ensured for user, product and order collections")


def utcnow() -> datetime:
    # Mongo keeps naive UTC datetimes at millisecond precision
    now = datetime.now(timezone.utc).replace(tzinfo=None)
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


def to_obj_id(id_str: Any) -> ObjectId:
    if isinstance(id_str, ObjectId):
        return id_str
    if not isinstance(id_str, str) or not OBJECT_ID_RE.match(id_str):
        raise HTTPException(status_code=400, detail="Invalid ID format")
    return ObjectId(id_str)


def create_document(db: Database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> Dict[str, Any]:
    """Insert a document with timestamps and return it, ``_id`` included."""
    if isinstance(data, BaseModel):
        doc = data.model_dump()
    else:
        doc = dict(data)
    now = utcnow()
    doc["createdAt"] = now
    doc["updatedAt"] = now
    result = db[collection_name].insert_one(doc)
    doc["_id"] = result.inserted_id
    return doc


def update_document(
    db: Database,
    collection_name: str,
    filter_dict: Dict[str, Any],
    updates: Dict[str, Any],
    projection: Optional[Dict[str, int]] = None,
    unset: Optional[Dict[str, Any]] = None,
) -> Optional[Dict[str, Any]]:
    """Apply ``$set`` (and optionally ``$unset``) and return the updated document."""
    operation: Dict[str, Any] = {"$set": {**updates, "updatedAt": utcnow()}}
    if unset:
        operation["$unset"] = unset
    return db[collection_name].find_one_and_update(
        filter_dict,
        operation,
        projection=projection,
        return_document=ReturnDocument.AFTER,
    )


def serialize_doc(doc: Any) -> Any:
    """Render a Mongo document as JSON-friendly data (``_id`` becomes ``id``)."""
    if isinstance(doc, dict):
        out = {}
        for key, value in doc.items():
            if key == "_id":
                out["id"] = str(value)
            else:
                out[key] = serialize_doc(value)
        return out
    if isinstance(doc, list):
        return [serialize_doc(v) for v in doc]
    if isinstance(doc, ObjectId):
        return str(doc)
    if isinstance(doc, datetime):
        return doc.isoformat()
    return doc


def serialize_user(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not doc:
        return doc
    visible = {k: v for k, v in doc.items() if k not in USER_HIDDEN_FIELDS}
    return serialize_doc(visible)
