"""Anonymous-submitter redaction."""

from datetime import datetime, timezone

from grievance_portal.models import (
    CommentView, GrievanceStatus, GrievanceView, Level, PersonSummary, Priority,
    ResolutionStep, StepActor,
)
from grievance_portal.visibility import ANONYMOUS_NAME, redact

NOW = datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)
OWNER = PersonSummary(id="s-1", name="Asha Verma", email="asha@stu.manit.ac.in",
                      department="CSE", role="student")
STAFF = PersonSummary(id="a-1", name="CSE Admin", email="cse.admin@manit.ac.in",
                      department="CSE", role="department_admin")


def view(is_anonymous=True):
    return GrievanceView(
        id="g-1", title="t", description="d", department="CSE", category="c",
        priority=Priority.MEDIUM, is_anonymous=is_anonymous, status=GrievanceStatus.PENDING,
        current_level=Level.DEPARTMENT_ADMIN, submitted_by=OWNER,
        comments=[
            CommentView(text="any update?", posted_by=OWNER, posted_at=NOW),
            CommentView(text="looking into it", posted_by=STAFF, posted_at=NOW),
        ],
        resolution_steps=[ResolutionStep(
            status=GrievanceStatus.PENDING, comment="Grievance submitted", date=NOW,
            actor=StepActor(name="Asha Verma", role="student", id="s-1"))],
        created_at=NOW, last_updated_at=NOW)


def test_staff_sees_anonymous_identity():
    out = redact(view(), "department_admin")
    assert out.submitted_by.name == ANONYMOUS_NAME
    assert out.submitted_by.email == "anonymous@stu.manit.ac.in"
    assert out.submitted_by.department == "CSE"
    assert out.submitted_by.id is None


def test_owner_traces_are_scrubbed_everywhere():
    out = redact(view(), "director")
    payload = out.model_dump_json(by_alias=True)
    assert "Asha" not in payload
    assert "asha@stu.manit.ac.in" not in payload
    assert out.comments[0].posted_by.name == ANONYMOUS_NAME
    assert out.comments[1].posted_by.name == "CSE Admin"
    assert out.resolution_steps[0].actor.id == "anonymous"


def test_student_viewer_is_not_redacted():
    out = redact(view(), "student")
    assert out.submitted_by.name == "Asha Verma"


def test_non_anonymous_record_untouched():
    out = redact(view(is_anonymous=False), "hod")
    assert out.submitted_by.email == "asha@stu.manit.ac.in"


def test_redaction_does_not_mutate_input():
    original = view()
    redact(original, "hod")
    assert original.submitted_by.name == "Asha Verma"
    assert original.resolution_steps[0].actor.id == "s-1"
