import logging
from typing import Optional

from pymongo.database import Database
from pymongo.errors import PyMongoError

from database import parse_object_id, require_db
from errors import NotFound, StorageUnavailable

logger = logging.getLogger(__name__)

# route kind -> collection
COUNTABLE = {
    "posts": "posts",
    "projects": "projects",
    "certifications": "certifications",
}


class CounterService:
    """View counters on content documents.

    Increments go through the store's atomic $inc so concurrent callers never
    lose updates. Nothing here reads the current count.
    """

    def __init__(self, db: Optional[Database]):
        self.db = db

    def increment(self, kind: str, item_id: str) -> bool:
        collection = COUNTABLE.get(kind)
        if collection is None:
            raise NotFound(f"Unknown collection: {kind}")
        oid = parse_object_id(item_id)

        try:
            result = require_db(self.db)[collection].update_one({"_id": oid}, {"$inc": {"views": 1}})
        except PyMongoError as exc:
            logger.error("view increment on %s failed: %s", collection, exc)
            raise StorageUnavailable() from exc
        return result.modified_count == 1
