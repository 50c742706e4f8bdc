"""Registration, verification, login and password reset."""

from datetime import timedelta

import pytest

from grievance_portal.errors import (
    AuthenticationError, AuthorizationError, DependencyError, NotFoundError, ValidationError,
)
from grievance_portal.models import Role, UserCreate
from grievance_portal.security import verify_password

pytestmark = pytest.mark.asyncio


def signup(**overrides):
    data = {"name": "Asha Verma", "email": "asha@stu.manit.ac.in", "password": "secret123",
            "role": "student", "department": "CSE"}
    data.update(overrides)
    return UserCreate(**data)


# ═══════════════════════════════════════════════════════════════════════════════
# REGISTRATION
# ═══════════════════════════════════════════════════════════════════════════════

class TestRegister:
    async def test_register_sends_verification_link(self, accounts, mailer, user_store):
        user = await accounts.register(signup())

        assert user.username == "asha"
        assert user.email_verified is False
        stored = user_store.get(user.id)
        assert verify_password("secret123", stored.hashed_password)
        assert len(mailer.sent) == 1
        assert mailer.sent[0]["to"] == "asha@stu.manit.ac.in"
        assert f"/verify-email/{stored.email_verification_token}" in mailer.sent[0]["html"]

    async def test_email_is_normalised(self, accounts):
        user = await accounts.register(signup(email="  Asha@STU.manit.ac.in "))
        assert user.email == "asha@stu.manit.ac.in"

    async def test_student_needs_student_domain(self, accounts):
        with pytest.raises(ValidationError):
            await accounts.register(signup(email="asha@gmail.com"))

    async def test_staff_needs_staff_domain(self, accounts):
        with pytest.raises(ValidationError):
            await accounts.register(signup(email="admin@stu.manit.ac.in", role="department_admin"))

    async def test_department_required(self, accounts):
        with pytest.raises(ValidationError, match="Department is required"):
            await accounts.register(signup(email="cse.hod@manit.ac.in", role="hod", department=None))

    async def test_director_has_no_department(self, accounts):
        user = await accounts.register(signup(email="director@manit.ac.in", role="director"))
        assert user.department is None

    async def test_duplicate_rejected(self, accounts):
        await accounts.register(signup())
        with pytest.raises(ValidationError, match="User already exists"):
            await accounts.register(signup())

    async def test_mail_failure_rolls_back(self, accounts, mailer, user_store):
        mailer.fail = True
        with pytest.raises(DependencyError, match="Failed to send verification email"):
            await accounts.register(signup())
        assert user_store.find_by_email("asha@stu.manit.ac.in") is None


# ═══════════════════════════════════════════════════════════════════════════════
# VERIFICATION AND LOGIN
# ═══════════════════════════════════════════════════════════════════════════════

class TestVerifyAndLogin:
    async def test_login_requires_verification(self, accounts, user_store):
        user = await accounts.register(signup())
        with pytest.raises(AuthenticationError, match="not verified"):
            await accounts.authenticate("asha@stu.manit.ac.in", "secret123")

        token = user_store.get(user.id).email_verification_token
        verified = await accounts.verify_email(token)
        assert verified.email_verified is True
        assert user_store.get(user.id).email_verification_token is None

        logged_in = await accounts.authenticate("asha@stu.manit.ac.in", "secret123")
        assert logged_in.id == user.id

    async def test_wrong_password(self, accounts, people):
        with pytest.raises(AuthenticationError):
            await accounts.authenticate("asha@stu.manit.ac.in", "not-the-password")

    async def test_expired_token(self, accounts, user_store, clock):
        user = await accounts.register(signup())
        token = user_store.get(user.id).email_verification_token
        clock.advance(hours=25)
        with pytest.raises(ValidationError):
            await accounts.verify_email(token)

    async def test_resend_issues_new_token(self, accounts, user_store, mailer):
        user = await accounts.register(signup())
        old = user_store.get(user.id).email_verification_token
        await accounts.resend_verification("asha@stu.manit.ac.in")
        new = user_store.get(user.id).email_verification_token
        assert new != old
        assert len(mailer.sent) == 2

    async def test_resend_for_verified_account(self, accounts, people):
        with pytest.raises(ValidationError, match="already verified"):
            await accounts.resend_verification("asha@stu.manit.ac.in")

    async def test_resend_for_unknown_account(self, accounts):
        with pytest.raises(NotFoundError):
            await accounts.resend_verification("nobody@stu.manit.ac.in")


# ═══════════════════════════════════════════════════════════════════════════════
# PASSWORD RESET
# ═══════════════════════════════════════════════════════════════════════════════

class TestPasswordReset:
    async def test_otp_flow(self, accounts, people, mailer, user_store):
        await accounts.request_password_reset("asha@stu.manit.ac.in")
        otp = user_store.get(people["student"].id).password_reset_otp
        assert len(otp) == 6 and otp.isdigit()
        assert otp in mailer.sent[-1]["html"]

        await accounts.reset_password("asha@stu.manit.ac.in", otp, "brand-new-pass")

        assert (await accounts.authenticate("asha@stu.manit.ac.in", "brand-new-pass")).id == people["student"].id
        assert user_store.get(people["student"].id).password_reset_otp is None

    async def test_wrong_otp(self, accounts, people):
        await accounts.request_password_reset("asha@stu.manit.ac.in")
        with pytest.raises(ValidationError, match="Invalid or expired OTP"):
            await accounts.reset_password("asha@stu.manit.ac.in", "000000x", "brand-new-pass")

    async def test_expired_otp(self, accounts, people, user_store, clock):
        await accounts.request_password_reset("asha@stu.manit.ac.in")
        otp = user_store.get(people["student"].id).password_reset_otp
        clock.advance(minutes=16)
        with pytest.raises(ValidationError):
            await accounts.reset_password("asha@stu.manit.ac.in", otp, "brand-new-pass")

    async def test_unverified_account_cannot_reset(self, accounts, make_user):
        make_user("New", "new@stu.manit.ac.in", Role.STUDENT, "CSE", verified=False)
        with pytest.raises(ValidationError):
            await accounts.request_password_reset("new@stu.manit.ac.in")


class TestListUsers:
    async def test_director_lists_everyone(self, accounts, actors):
        users = await accounts.list_users(actors["director"])
        assert len(users) == len(actors)

    async def test_others_forbidden(self, accounts, actors):
        with pytest.raises(AuthorizationError):
            await accounts.list_users(actors["hod"])
