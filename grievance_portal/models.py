# Domain enums and pydantic models for grievances, users and API payloads

from datetime import datetime
from enum import Enum
from pathlib import PurePath
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class Role(str, Enum):
    STUDENT = "student"
    DEPARTMENT_ADMIN = "department_admin"
    HOD = "hod"
    DIRECTOR = "director"

class Level(str, Enum):
    DEPARTMENT_ADMIN = "department_admin"
    HOD = "hod"
    DIRECTOR = "director"

class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

class GrievanceStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    ESCALATED = "escalated"
    RESOLVED = "resolved"
    REJECTED = "rejected"

TERMINAL_STATUSES = (GrievanceStatus.RESOLVED, GrievanceStatus.REJECTED)
LEVEL_ORDER = (Level.DEPARTMENT_ADMIN, Level.HOD, Level.DIRECTOR)
LEVEL_LABELS = {"department_admin": "Department Admin", "hod": "HOD", "director": "Director"}

MAX_ATTACHMENTS = 5
ATTACHMENT_EXTENSIONS = (".jpeg", ".jpg", ".png", ".pdf", ".doc", ".docx")

# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class CamelModel(BaseModel):
    """Stored with snake_case keys, exchanged over HTTP with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

# ---------------------------------------------------------------------------
# Grievance record and embedded sub-documents
# ---------------------------------------------------------------------------
class Attachment(CamelModel):
    filename: str = Field(..., max_length=255)
    storage_path: str = Field(..., max_length=1024)
    uploaded_at: Optional[datetime] = None

    @field_validator("filename")
    @classmethod
    def validate_extension(cls, v):
        if PurePath(v).suffix.lower() not in ATTACHMENT_EXTENSIONS:
            raise ValueError("Invalid file type: allowed types are jpeg, jpg, png, pdf, doc, docx")
        return v

class StepActor(CamelModel):
    name: str
    role: str
    id: str

class ResolutionStep(CamelModel):
    status: GrievanceStatus
    actor: StepActor
    comment: str = ""
    date: datetime

class EscalationEntry(CamelModel):
    from_level: Level
    from_user: Optional[str] = None
    to_level: Level
    reason: str
    is_automatic: bool = False
    date: datetime

class Comment(CamelModel):
    text: str
    posted_by: str
    posted_at: datetime

class GrievanceRecord(CamelModel):
    id: str
    title: str
    description: str
    department: str
    category: str
    priority: Priority = Priority.MEDIUM
    is_anonymous: bool = False
    status: GrievanceStatus = GrievanceStatus.PENDING
    current_level: Level = Level.DEPARTMENT_ADMIN
    due_date: Optional[datetime] = None
    submitted_by: str
    attachments: List[Attachment] = Field(default_factory=list)
    comments: List[Comment] = Field(default_factory=list)
    resolution_steps: List[ResolutionStep] = Field(default_factory=list)
    escalation_history: List[EscalationEntry] = Field(default_factory=list)
    created_at: datetime
    last_updated_at: datetime
    revision: int = 0

# ---------------------------------------------------------------------------
# Caller identity
# ---------------------------------------------------------------------------
class Actor(BaseModel):
    id: str
    name: str
    role: str
    department: Optional[str] = None

# ---------------------------------------------------------------------------
# Request payloads
# ---------------------------------------------------------------------------
class GrievanceCreate(CamelModel):
    title: str = Field(..., max_length=200)
    description: str = Field(..., max_length=5000)
    department: str = Field(..., max_length=100)
    category: str = Field(..., max_length=100)
    priority: Priority = Priority.MEDIUM
    is_anonymous: bool = False
    attachments: List[Attachment] = Field(default_factory=list, max_length=MAX_ATTACHMENTS)

class StatusUpdate(CamelModel):
    status: Optional[GrievanceStatus] = None
    comment: Optional[str] = Field(None, max_length=5000)

class EscalationRequest(CamelModel):
    reason: Optional[str] = Field(None, max_length=2000)

class CommentCreate(CamelModel):
    text: Optional[str] = Field(None, max_length=5000)

# ---------------------------------------------------------------------------
# Read views (populated and redacted)
# ---------------------------------------------------------------------------
class PersonSummary(CamelModel):
    id: Optional[str] = None
    name: str
    email: Optional[str] = None
    department: Optional[str] = None
    role: Optional[str] = None

class CommentView(CamelModel):
    text: str
    posted_by: PersonSummary
    posted_at: datetime

class GrievanceView(CamelModel):
    id: str
    title: str
    description: str
    department: str
    category: str
    priority: Priority
    is_anonymous: bool
    status: GrievanceStatus
    current_level: Level
    due_date: Optional[datetime] = None
    submitted_by: PersonSummary
    attachments: List[Attachment] = Field(default_factory=list)
    comments: List[CommentView] = Field(default_factory=list)
    resolution_steps: List[ResolutionStep] = Field(default_factory=list)
    escalation_history: List[EscalationEntry] = Field(default_factory=list)
    created_at: datetime
    last_updated_at: datetime

class StatusCounts(CamelModel):
    pending: int = 0
    in_progress: int = 0
    escalated: int = 0
    resolved: int = 0
    rejected: int = 0

class PriorityCounts(CamelModel):
    high: int = 0
    medium: int = 0
    low: int = 0

class GrievanceStatistics(CamelModel):
    total: int = 0
    by_status: StatusCounts = Field(default_factory=StatusCounts)
    by_priority: PriorityCounts = Field(default_factory=PriorityCounts)
    overdue: int = 0

# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------
class UserRecord(CamelModel):
    id: str
    name: str
    email: str
    username: str
    role: Role
    department: Optional[str] = None
    email_verified: bool = False
    hashed_password: str
    email_verification_token: Optional[str] = None
    email_verification_expires: Optional[datetime] = None
    password_reset_otp: Optional[str] = None
    password_reset_otp_expires: Optional[datetime] = None
    created_at: datetime

    def to_actor(self) -> Actor:
        return Actor(id=self.id, name=self.name, role=self.role.value, department=self.department)

class UserCreate(CamelModel):
    name: str = Field(..., max_length=200)
    email: str = Field(..., max_length=320)
    password: str = Field(..., min_length=6, max_length=72)
    role: Role = Role.STUDENT
    department: Optional[str] = Field(None, max_length=100)

class UserLogin(CamelModel):
    email: str
    password: str

class EmailRequest(CamelModel):
    email: str = Field(..., max_length=320)

class PasswordReset(CamelModel):
    email: str = Field(..., max_length=320)
    otp: str = Field(..., min_length=6, max_length=6)
    new_password: str = Field(..., min_length=6, max_length=72)

class UserResponse(CamelModel):
    id: str
    name: str
    email: str
    username: str
    role: Role
    department: Optional[str] = None
    email_verified: bool = False
    created_at: datetime

class TokenResponse(CamelModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse

class MessageResponse(CamelModel):
    detail: str

def user_to_response(user: UserRecord) -> UserResponse:
    return UserResponse(
        id=user.id, name=user.name, email=user.email, username=user.username,
        role=user.role, department=user.department, email_verified=user.email_verified,
        created_at=user.created_at)
