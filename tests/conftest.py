"""
Shared pytest fixtures for the grievance portal test suite.

Everything runs in-process: in-memory stores, a frozen clock, a mailer that
records instead of sending, and an httpx AsyncClient over ASGITransport with
the API's dependencies overridden. No MongoDB or SMTP server is needed.
"""

import os
import uuid

# config refuses to import without a strong secret
os.environ["JWT_SECRET"] = "test-secret-for-the-grievance-portal-suite-0123456789"
os.environ["SMTP_HOST"] = ""

import httpx
import pytest
import pytest_asyncio

from grievance_portal import api
from grievance_portal.accounts import AccountService
from grievance_portal.clock import FrozenClock
from grievance_portal.errors import DependencyError
from grievance_portal.mailer import Mailer
from grievance_portal.memory_store import MemoryGrievanceStore, MemoryUserStore
from grievance_portal.models import GrievanceCreate, Role, UserRecord
from grievance_portal.security import create_access_token, hash_password
from grievance_portal.service import GrievanceService

PASSWORD = "secret123"


class RecordingMailer(Mailer):
    """Mailer that keeps outgoing messages in memory; ``fail`` simulates an SMTP outage."""

    def __init__(self):
        super().__init__()
        self.sent = []
        self.fail = False

    async def send(self, to, subject, html):
        if self.fail:
            raise DependencyError(f"Failed to send email to {to}")
        self.sent.append({"to": to, "subject": subject, "html": html})


@pytest.fixture(scope="session")
def password_hash():
    """bcrypt is slow; hash the shared test password once."""
    return hash_password(PASSWORD)


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def grievance_store():
    return MemoryGrievanceStore()


@pytest.fixture
def user_store():
    return MemoryUserStore()


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def make_user(user_store, clock, password_hash):
    def _make(name, email, role, department=None, verified=True):
        user = UserRecord(
            id=str(uuid.uuid4()), name=name, email=email, username=email.split("@")[0],
            role=role, department=department, email_verified=verified,
            hashed_password=password_hash, created_at=clock.now())
        user_store.insert(user)
        return user
    return _make


@pytest.fixture
def people(make_user):
    """One verified account per role, plus a second student and an admin from another department."""
    users = {
        "student": make_user("Asha Verma", "asha@stu.manit.ac.in", Role.STUDENT, "CSE"),
        "other_student": make_user("Ravi Singh", "ravi@stu.manit.ac.in", Role.STUDENT, "CSE"),
        "dept_admin": make_user("CSE Admin", "cse.admin@manit.ac.in", Role.DEPARTMENT_ADMIN, "CSE"),
        "hod": make_user("CSE HOD", "cse.hod@manit.ac.in", Role.HOD, "CSE"),
        "director": make_user("Director", "director@manit.ac.in", Role.DIRECTOR),
        "ece_admin": make_user("ECE Admin", "ece.admin@manit.ac.in", Role.DEPARTMENT_ADMIN, "ECE"),
    }
    return users


@pytest.fixture
def actors(people):
    return {key: user.to_actor() for key, user in people.items()}


@pytest.fixture
def service(grievance_store, user_store, clock):
    return GrievanceService(grievance_store, user_store, clock)


@pytest.fixture
def accounts(user_store, mailer, clock):
    return AccountService(user_store, mailer, clock)


@pytest.fixture
def grievance_data():
    def _data(**overrides):
        data = {
            "title": "Hostel Wi-Fi down",
            "description": "No connectivity in block C since Monday",
            "department": "CSE",
            "category": "infrastructure",
            "priority": "medium",
        }
        data.update(overrides)
        return GrievanceCreate(**data)
    return _data


@pytest.fixture
def headers(people):
    def _headers(key):
        user = people[key]
        return {"Authorization": f"Bearer {create_access_token(user.id, user.role.value)}"}
    return _headers


@pytest_asyncio.fixture
async def client(service, accounts, mailer):
    """In-process httpx AsyncClient with the API wired to the in-memory fixtures."""
    api.limiter.enabled = False
    api.app.dependency_overrides[api.get_service] = lambda: service
    api.app.dependency_overrides[api.get_accounts] = lambda: accounts
    api.app.dependency_overrides[api.get_mailer] = lambda: mailer

    transport = httpx.ASGITransport(app=api.app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c
    api.app.dependency_overrides.clear()
