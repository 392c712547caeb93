"""
MongoDB access helpers.

One MongoClient per process; components receive the Database by reference.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError

from config import Settings
from errors import InvalidIdentifier, StorageUnavailable

logger = logging.getLogger(__name__)


def get_database(settings: Settings) -> Optional[Database]:
    if not settings.database_url:
        logger.warning("DATABASE_URL not set; storage-backed routes will report 503")
        return None
    client = MongoClient(settings.database_url, serverSelectionTimeoutMS=5000)
    return client[settings.database_name]


def require_db(db: Optional[Database]) -> Database:
    if db is None:
        raise StorageUnavailable()
    return db


def parse_object_id(value: str) -> ObjectId:
    if not ObjectId.is_valid(value):
        raise InvalidIdentifier(f"Invalid identifier: {value!r}")
    return ObjectId(value)


def serialize(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Normalize _id to a string id."""
    out = dict(doc)
    out["id"] = str(out.pop("_id"))
    return out


def create_document(db: Optional[Database], collection: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    payload = data.model_dump() if isinstance(data, BaseModel) else dict(data)
    now = datetime.now(timezone.utc)
    payload["created_at"] = now
    payload["updated_at"] = now
    try:
        result = require_db(db)[collection].insert_one(payload)
    except PyMongoError as exc:
        logger.error("insert into %s failed: %s", collection, exc)
        raise StorageUnavailable() from exc
    return str(result.inserted_id)


def get_documents(
    db: Optional[Database],
    collection: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
) -> List[Dict[str, Any]]:
    try:
        cursor = require_db(db)[collection].find(filter_dict or {}).sort("created_at", -1)
        if limit:
            cursor = cursor.limit(limit)
        return [serialize(doc) for doc in cursor]
    except PyMongoError as exc:
        logger.error("query on %s failed: %s", collection, exc)
        raise StorageUnavailable() from exc
