"""In-memory stores with the same document semantics as the MongoDB ones.

Records are kept as plain documents and copied on every read and write, so
callers never share state with the store. Used by the test-suite and for
running the API without a database.
"""

import threading
from typing import Any, Dict, List, Optional

from .errors import ConflictError, NotFoundError, ValidationError
from .models import GrievanceRecord, UserRecord
from .store import _plain, grievance_from_document, to_document, user_from_document

_MISSING = object()


def _matches_condition(value, condition) -> bool:
    if isinstance(condition, dict) and any(k.startswith("$") for k in condition):
        for op, arg in condition.items():
            if op == "$in" and value not in arg:
                return False
            if op == "$nin" and value in arg:
                return False
            if op == "$ne" and value == arg:
                return False
            if op in ("$gt", "$lt") and (value is _MISSING or value is None):
                return False
            if op == "$gt" and not value > arg:
                return False
            if op == "$lt" and not value < arg:
                return False
        return True
    return value == condition


def matches(doc: dict, query: Dict[str, Any]) -> bool:
    """Evaluate the subset of MongoDB filter syntax the portal issues."""
    return all(_matches_condition(doc.get(key, _MISSING), cond) for key, cond in _plain(query).items())


class MemoryGrievanceStore:
    def __init__(self) -> None:
        self._docs: Dict[str, dict] = {}
        self._lock = threading.Lock()

    def insert(self, record: GrievanceRecord) -> GrievanceRecord:
        with self._lock:
            if record.id in self._docs:
                raise ConflictError("Grievance already exists")
            self._docs[record.id] = to_document(record)
        return record

    def get(self, grievance_id: str) -> Optional[GrievanceRecord]:
        with self._lock:
            doc = self._docs.get(grievance_id)
            return grievance_from_document(doc) if doc else None

    def find(self, query: Dict[str, Any]) -> List[GrievanceRecord]:
        with self._lock:
            found = [grievance_from_document(d) for d in self._docs.values() if matches(d, query)]
        return sorted(found, key=lambda r: r.created_at, reverse=True)

    def save(self, record: GrievanceRecord, expected_revision: int) -> GrievanceRecord:
        saved = record.model_copy(update={"revision": expected_revision + 1})
        with self._lock:
            current = self._docs.get(record.id)
            if current is None:
                raise NotFoundError("Grievance not found")
            if current.get("revision", 0) != expected_revision:
                raise ConflictError("Grievance was modified concurrently; reload and retry")
            self._docs[record.id] = to_document(saved)
        return saved


class MemoryUserStore:
    def __init__(self) -> None:
        self._docs: Dict[str, dict] = {}
        self._lock = threading.Lock()

    def insert(self, user: UserRecord) -> UserRecord:
        with self._lock:
            if any(d["email"] == user.email for d in self._docs.values()):
                raise ValidationError("User already exists")
            self._docs[user.id] = to_document(user)
        return user

    def _find_one(self, query: dict) -> Optional[UserRecord]:
        with self._lock:
            for doc in self._docs.values():
                if matches(doc, query):
                    return user_from_document(doc)
        return None

    def get(self, user_id: str) -> Optional[UserRecord]:
        return self._find_one({"_id": user_id})

    def find_by_email(self, email: str) -> Optional[UserRecord]:
        return self._find_one({"email": email})

    def find_by_verification_token(self, token, now):
        return self._find_one({"email_verification_token": token,
                               "email_verification_expires": {"$gt": now}})

    def update(self, user_id: str, fields: Dict[str, Any]) -> None:
        with self._lock:
            doc = self._docs.get(user_id)
            if doc is None:
                raise NotFoundError("User not found")
            doc.update(_plain(fields))

    def delete(self, user_id: str) -> None:
        with self._lock:
            self._docs.pop(user_id, None)

    def list_all(self) -> List[UserRecord]:
        with self._lock:
            users = [user_from_document(d) for d in self._docs.values()]
        return sorted(users, key=lambda u: u.created_at, reverse=True)
