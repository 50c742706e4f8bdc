"""Role table: listing queries and per-record view/manage checks."""

from datetime import datetime, timezone

import pytest

from grievance_portal import access
from grievance_portal.errors import AuthorizationError
from grievance_portal.models import Actor, GrievanceRecord, Level

NOW = datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)

STUDENT = Actor(id="s-1", name="Asha", role="student", department="CSE")
ADMIN = Actor(id="a-1", name="CSE Admin", role="department_admin", department="CSE")
HOD = Actor(id="h-1", name="CSE HOD", role="hod", department="CSE")
DIRECTOR = Actor(id="d-1", name="Director", role="director")


def record(level=Level.DEPARTMENT_ADMIN, department="CSE", submitted_by="s-1"):
    return GrievanceRecord(
        id="g-1", title="t", description="d", department=department, category="c",
        current_level=level, submitted_by=submitted_by, created_at=NOW, last_updated_at=NOW)


class TestListingQuery:
    def test_student_sees_own(self):
        assert access.listing_query(STUDENT) == {"submitted_by": "s-1"}

    def test_department_roles_see_their_level(self):
        assert access.listing_query(ADMIN) == {"department": "CSE", "current_level": "department_admin"}
        assert access.listing_query(HOD) == {"department": "CSE", "current_level": "hod"}

    def test_director_sees_director_level(self):
        assert access.listing_query(DIRECTOR) == {"current_level": "director"}

    def test_dean_is_a_director(self):
        dean = Actor(id="x", name="Dean", role="dean")
        assert access.listing_query(dean) == {"current_level": "director"}
        assert access.can_manage(dean, record(level=Level.DIRECTOR))

    def test_unknown_role_rejected(self):
        with pytest.raises(AuthorizationError):
            access.listing_query(Actor(id="x", name="Guest", role="guest"))


class TestRecordChecks:
    def test_student_views_only_own(self):
        assert access.can_view(STUDENT, record())
        assert not access.can_view(STUDENT, record(submitted_by="someone-else"))
        assert not access.can_manage(STUDENT, record())

    def test_department_admin_limited_to_department_and_level(self):
        assert access.can_manage(ADMIN, record())
        assert not access.can_manage(ADMIN, record(level=Level.HOD))
        assert not access.can_view(ADMIN, record(department="ECE"))

    def test_hod_follows_escalated_record(self):
        assert not access.can_view(HOD, record())
        assert access.can_manage(HOD, record(level=Level.HOD))

    def test_staff_without_department_sees_nothing(self):
        floating = Actor(id="a-2", name="No Dept", role="department_admin")
        assert not access.can_view(floating, record())

    def test_director_limited_to_director_level(self):
        assert access.can_view(DIRECTOR, record(level=Level.DIRECTOR, department="ECE"))
        assert not access.can_view(DIRECTOR, record(level=Level.HOD))

    def test_only_students_submit(self):
        assert access.can_submit(STUDENT)
        assert not access.can_submit(ADMIN)
        assert not access.can_submit(DIRECTOR)
