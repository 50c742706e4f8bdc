"""Anonymous-submitter redaction applied to every record leaving the service."""

from typing import List

from . import config
from .access import normalize_role
from .models import CommentView, GrievanceView, PersonSummary, Role

ANONYMOUS_NAME = "Anonymous Student"


def anonymous_identity(department: str) -> PersonSummary:
    return PersonSummary(
        name=ANONYMOUS_NAME,
        email=f"anonymous@{config.STUDENT_EMAIL_DOMAIN}",
        department=department,
        role=Role.STUDENT.value,
    )


def should_redact(view: GrievanceView, viewer_role: str) -> bool:
    return view.is_anonymous and normalize_role(viewer_role) != Role.STUDENT.value


def redact(view: GrievanceView, viewer_role: str) -> GrievanceView:
    if not should_redact(view, viewer_role):
        return view
    owner_id = view.submitted_by.id
    redacted = view.model_copy(deep=True)
    redacted.submitted_by = anonymous_identity(view.department)
    redacted.comments = redact_comments(view.comments, owner_id, view.department)
    for step in redacted.resolution_steps:
        if owner_id is not None and step.actor.id == owner_id:
            step.actor.name = ANONYMOUS_NAME
            step.actor.id = "anonymous"
    return redacted


def redact_comments(comments: List[CommentView], owner_id, department: str) -> List[CommentView]:
    out = []
    for c in comments:
        if owner_id is not None and c.posted_by.id == owner_id:
            c = c.model_copy(update={"posted_by": anonymous_identity(department)})
        out.append(c)
    return out
