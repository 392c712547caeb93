import logging
from typing import Optional

from pymongo.database import Database
from pymongo.errors import PyMongoError

from database import require_db, serialize
from errors import StorageUnavailable
from schemas import ContactStatus

logger = logging.getLogger(__name__)

PUBLISHED_POSTS = {"published": True}
RECENT_CONTACTS = 5
RECENT_POSTS = 3


class DashboardStats:
    """Read-only aggregates for the admin dashboard."""

    def __init__(self, db: Optional[Database]):
        self.db = db

    def _total_views(self, db: Database, collection: str, match: dict) -> int:
        pipeline = [
            {"$match": match},
            {"$group": {"_id": None, "totalViews": {"$sum": "$views"}}},
        ]
        rows = list(db[collection].aggregate(pipeline))
        return rows[0]["totalViews"] if rows else 0

    def overview(self) -> dict:
        db = require_db(self.db)
        try:
            overview = {
                "projects": db["projects"].count_documents({}),
                "posts": db["posts"].count_documents(PUBLISHED_POSTS),
                "certifications": db["certifications"].count_documents({}),
                "testimonials": db["testimonials"].count_documents({}),
                "contacts": db["contacts"].count_documents({}),
                "newContacts": db["contacts"].count_documents({"status": ContactStatus.NEW.value}),
                "totalViews": self._total_views(db, "projects", {})
                + self._total_views(db, "posts", PUBLISHED_POSTS),
            }
            recent_contacts = db["contacts"].find({}).sort("created_at", -1).limit(RECENT_CONTACTS)
            recent_posts = db["posts"].find(PUBLISHED_POSTS).sort("created_at", -1).limit(RECENT_POSTS)
            recent = {
                "contacts": [serialize(doc) for doc in recent_contacts],
                "posts": [serialize(doc) for doc in recent_posts],
            }
        except PyMongoError as exc:
            logger.error("dashboard stats failed: %s", exc)
            raise StorageUnavailable() from exc
        return {"overview": overview, "recent": recent}
