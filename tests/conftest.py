"""
Shared fixtures: an in-memory store with the pymongo surface the services use,
a stub reply drafter, and clients for the FastAPI app.
"""
import copy
import sys
import threading
from datetime import datetime, timezone
from pathlib import Path

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient
from pymongo.errors import ServerSelectionTimeoutError
from pymongo.results import DeleteResult, InsertOneResult, UpdateResult

_project_root = Path(__file__).parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

from config import Settings, pwd_context  # noqa: E402
from errors import DraftUnavailable  # noqa: E402
from main import create_app  # noqa: E402

ADMIN_ORIGIN = "http://localhost:3001"
SITE_ORIGIN = "http://localhost:3000"
ADMIN_EMAIL = "admin@portfolio.dev"
ADMIN_PASSWORD = "admin123"


# ============================================================
# In-memory document store
# ============================================================

def _matches(doc, query):
    for key, expected in query.items():
        if isinstance(expected, dict) and "$in" in expected:
            if doc.get(key) not in expected["$in"]:
                return False
        elif doc.get(key) != expected:
            return False
    return True


class FakeCursor:
    def __init__(self, docs):
        self.docs = docs

    def sort(self, key, direction=1):
        self.docs.sort(key=lambda d: d.get(key) or datetime.min.replace(tzinfo=timezone.utc), reverse=direction < 0)
        return self

    def limit(self, n):
        self.docs = self.docs[:n]
        return self

    def __iter__(self):
        return iter(self.docs)


class FakeCollection:
    """Single-document operations are atomic under one lock, like a mongod."""

    def __init__(self, name):
        self.name = name
        self.docs = {}
        self.lock = threading.Lock()
        self.calls = []
        self.fail = False

    def _check(self, op):
        self.calls.append(op)
        if self.fail:
            raise ServerSelectionTimeoutError("no servers available")

    def insert_one(self, doc):
        self._check("insert_one")
        with self.lock:
            doc = copy.deepcopy(doc)
            doc.setdefault("_id", ObjectId())
            self.docs[doc["_id"]] = doc
        return InsertOneResult(doc["_id"], True)

    def find_one(self, query):
        self._check("find_one")
        with self.lock:
            for doc in self.docs.values():
                if _matches(doc, query):
                    return copy.deepcopy(doc)
        return None

    def find(self, query=None):
        self._check("find")
        with self.lock:
            return FakeCursor([copy.deepcopy(d) for d in self.docs.values() if _matches(d, query or {})])

    def count_documents(self, query):
        self._check("count_documents")
        with self.lock:
            return sum(1 for d in self.docs.values() if _matches(d, query))

    def aggregate(self, pipeline):
        """Supports $match followed by a single-bucket $group of $sum fields."""
        self._check("aggregate")
        with self.lock:
            docs = [copy.deepcopy(d) for d in self.docs.values()]
        for stage in pipeline:
            if "$match" in stage:
                docs = [d for d in docs if _matches(d, stage["$match"])]
            elif "$group" in stage:
                if not docs:
                    return []
                row = {"_id": stage["$group"]["_id"]}
                for name, spec in stage["$group"].items():
                    if name != "_id":
                        field = spec["$sum"].lstrip("$")
                        row[name] = sum(d.get(field, 0) for d in docs)
                docs = [row]
        return docs

    def update_one(self, query, update):
        self._check("update_one")
        with self.lock:
            for doc in self.docs.values():
                if _matches(doc, query):
                    for field, amount in update.get("$inc", {}).items():
                        doc[field] = doc.get(field, 0) + amount
                    for field, value in update.get("$set", {}).items():
                        doc[field] = copy.deepcopy(value)
                    return UpdateResult({"n": 1, "nModified": 1, "updatedExisting": True}, True)
        return UpdateResult({"n": 0, "nModified": 0, "updatedExisting": False}, True)

    def delete_one(self, query):
        self._check("delete_one")
        with self.lock:
            for key, doc in list(self.docs.items()):
                if _matches(doc, query):
                    del self.docs[key]
                    return DeleteResult({"n": 1}, True)
        return DeleteResult({"n": 0}, True)

    def delete_many(self, query):
        self._check("delete_many")
        with self.lock:
            keys = [k for k, d in self.docs.items() if _matches(d, query)]
            for key in keys:
                del self.docs[key]
        return DeleteResult({"n": len(keys)}, True)


class FakeDatabase:
    def __init__(self):
        self.collections = {}
        self.healthy = True

    def __getitem__(self, name):
        return self.collections.setdefault(name, FakeCollection(name))

    def command(self, name):
        if not self.healthy:
            raise ServerSelectionTimeoutError("no servers available")
        return {"ok": 1.0}


class StubDrafter:
    def __init__(self, reply="Thank you for your message. I'd be glad to discuss the project."):
        self.reply = reply
        self.prompts = []
        self.fail = False

    def draft(self, content):
        self.prompts.append(content)
        if self.fail:
            raise DraftUnavailable("Reply generation is not configured")
        return self.reply


# ============================================================
# Fixtures
# ============================================================

@pytest.fixture
def settings(tmp_path):
    return Settings(
        allowed_origins=[SITE_ORIGIN, ADMIN_ORIGIN],
        jwt_secret="test-secret",
        admin_email=ADMIN_EMAIL,
        admin_password_hash=pwd_context.hash(ADMIN_PASSWORD),
        uploads_dir=str(tmp_path),
    )


@pytest.fixture
def db():
    return FakeDatabase()


@pytest.fixture
def drafter():
    return StubDrafter()


@pytest.fixture
def app(settings, db, drafter):
    return create_app(settings, db=db, drafter=drafter)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def admin_client(app):
    """Client holding a valid auth-token cookie."""
    client = TestClient(app)
    response = client.post("/api/auth/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    assert response.status_code == 200
    return client


@pytest.fixture
def contact_id(db):
    result = db["contacts"].insert_one(
        {
            "name": "Jane Doe",
            "email": "jane@example.com",
            "message": "I'd like to hire you for a project.",
            "project_type": "freelance",
            "status": "new",
            "created_at": datetime.now(timezone.utc),
        }
    )
    return str(result.inserted_id)
