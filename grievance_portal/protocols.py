"""Structural interfaces for the stores the service layer depends on."""

from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from .models import GrievanceRecord, UserRecord


@runtime_checkable
class GrievanceStore(Protocol):
    def insert(self, record: GrievanceRecord) -> GrievanceRecord: ...

    def get(self, grievance_id: str) -> Optional[GrievanceRecord]: ...

    def find(self, query: Dict[str, Any]) -> List[GrievanceRecord]: ...

    def save(self, record: GrievanceRecord, expected_revision: int) -> GrievanceRecord: ...


@runtime_checkable
class UserStore(Protocol):
    def insert(self, user: UserRecord) -> UserRecord: ...

    def get(self, user_id: str) -> Optional[UserRecord]: ...

    def find_by_email(self, email: str) -> Optional[UserRecord]: ...

    def find_by_verification_token(self, token: str, now: datetime) -> Optional[UserRecord]: ...

    def update(self, user_id: str, fields: Dict[str, Any]) -> None: ...

    def delete(self, user_id: str) -> None: ...

    def list_all(self) -> List[UserRecord]: ...
