# MongoDB-backed grievance and user stores

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Any, Dict, List, Optional

from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.errors import DuplicateKeyError, PyMongoError

from . import config
from .errors import ConflictError, DependencyError, NotFoundError, ValidationError
from .models import GrievanceRecord, UserRecord

logger = logging.getLogger(__name__)

executor = ThreadPoolExecutor(max_workers=10)


async def run_blocking(fn, *args):
    """Run a blocking store call on the shared executor."""
    loop = asyncio.get_event_loop()
    return await loop.run_in_executor(executor, lambda: fn(*args))

# ---------------------------------------------------------------------------
# Document conversion
# ---------------------------------------------------------------------------
def _plain(value):
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value

def to_document(model) -> dict:
    doc = _plain(model.model_dump())
    doc["_id"] = doc.pop("id")
    return doc

def grievance_from_document(doc: dict) -> GrievanceRecord:
    data = dict(doc)
    data["id"] = data.pop("_id")
    return GrievanceRecord(**data)

def user_from_document(doc: dict) -> UserRecord:
    data = dict(doc)
    data["id"] = data.pop("_id")
    return UserRecord(**data)

# ---------------------------------------------------------------------------
# Connection
# ---------------------------------------------------------------------------
def connect(url: Optional[str] = None, db_name: Optional[str] = None):
    client = MongoClient(url or config.MONGODB_URL, tz_aware=True)
    return client, client[db_name or config.MONGODB_DB]

def ensure_indexes(db) -> None:
    db.grievances.create_index([("created_at", DESCENDING)])
    db.grievances.create_index("status")
    db.grievances.create_index([("department", ASCENDING), ("current_level", ASCENDING)])
    db.grievances.create_index("submitted_by")
    db.users.create_index([("email", ASCENDING)], unique=True)
    db.users.create_index("email_verification_token", sparse=True)
    logger.info("Database indexes ensured")

# ---------------------------------------------------------------------------
# Grievances
# ---------------------------------------------------------------------------
class MongoGrievanceStore:
    """Grievance documents with embedded sub-collections and a revision counter."""

    def __init__(self, db) -> None:
        self._coll = db.grievances

    def insert(self, record: GrievanceRecord) -> GrievanceRecord:
        try:
            self._coll.insert_one(to_document(record))
        except PyMongoError as e:
            raise DependencyError(f"Failed to store grievance: {e}") from e
        return record

    def get(self, grievance_id: str) -> Optional[GrievanceRecord]:
        try:
            doc = self._coll.find_one({"_id": grievance_id})
        except PyMongoError as e:
            raise DependencyError(f"Failed to load grievance: {e}") from e
        return grievance_from_document(doc) if doc else None

    def find(self, query: Dict[str, Any]) -> List[GrievanceRecord]:
        try:
            docs = list(self._coll.find(query).sort("created_at", DESCENDING))
        except PyMongoError as e:
            raise DependencyError(f"Failed to query grievances: {e}") from e
        return [grievance_from_document(d) for d in docs]

    def save(self, record: GrievanceRecord, expected_revision: int) -> GrievanceRecord:
        saved = record.model_copy(update={"revision": expected_revision + 1})
        try:
            result = self._coll.replace_one(
                {"_id": record.id, "revision": expected_revision}, to_document(saved))
            if result.matched_count == 0:
                if self._coll.count_documents({"_id": record.id}, limit=1) == 0:
                    raise NotFoundError("Grievance not found")
                raise ConflictError("Grievance was modified concurrently; reload and retry")
        except PyMongoError as e:
            raise DependencyError(f"Failed to save grievance: {e}") from e
        return saved

# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------
class MongoUserStore:
    def __init__(self, db) -> None:
        self._coll = db.users

    def insert(self, user: UserRecord) -> UserRecord:
        try:
            self._coll.insert_one(to_document(user))
        except DuplicateKeyError:
            raise ValidationError("User already exists")
        except PyMongoError as e:
            raise DependencyError(f"Failed to store user: {e}") from e
        return user

    def _find_one(self, query: dict) -> Optional[UserRecord]:
        try:
            doc = self._coll.find_one(query)
        except PyMongoError as e:
            raise DependencyError(f"Failed to load user: {e}") from e
        return user_from_document(doc) if doc else None

    def get(self, user_id: str) -> Optional[UserRecord]:
        return self._find_one({"_id": user_id})

    def find_by_email(self, email: str) -> Optional[UserRecord]:
        return self._find_one({"email": email})

    def find_by_verification_token(self, token, now):
        return self._find_one({"email_verification_token": token,
                               "email_verification_expires": {"$gt": now}})

    def update(self, user_id: str, fields: Dict[str, Any]) -> None:
        try:
            result = self._coll.update_one({"_id": user_id}, {"$set": _plain(fields)})
        except PyMongoError as e:
            raise DependencyError(f"Failed to update user: {e}") from e
        if result.matched_count == 0:
            raise NotFoundError("User not found")

    def delete(self, user_id: str) -> None:
        try:
            self._coll.delete_one({"_id": user_id})
        except PyMongoError as e:
            raise DependencyError(f"Failed to delete user: {e}") from e

    def list_all(self) -> List[UserRecord]:
        try:
            docs = list(self._coll.find({}).sort("created_at", DESCENDING))
        except PyMongoError as e:
            raise DependencyError(f"Failed to list users: {e}") from e
        return [user_from_document(d) for d in docs]
