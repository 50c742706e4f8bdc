"""User accounts: registration with email verification, login checks and password reset."""

import logging
import re
import secrets
import uuid
from datetime import timedelta
from typing import List, Optional

from . import access, config
from .clock import Clock, SystemClock
from .errors import AuthenticationError, AuthorizationError, DependencyError, NotFoundError, ValidationError
from .mailer import Mailer
from .models import Actor, Role, UserCreate, UserRecord
from .protocols import UserStore
from .security import hash_password, verify_password
from .store import run_blocking

logger = logging.getLogger(__name__)

VERIFICATION_TTL = timedelta(hours=24)
RESET_OTP_TTL = timedelta(minutes=15)
DEPARTMENT_ROLES = (Role.STUDENT, Role.DEPARTMENT_ADMIN, Role.HOD)


def email_pattern(role: Role) -> "re.Pattern":
    domain = config.STUDENT_EMAIL_DOMAIN if role == Role.STUDENT else config.STAFF_EMAIL_DOMAIN
    return re.compile(r"^[^@\s]+@" + re.escape(domain) + r"$", re.IGNORECASE)


def validate_registration(data: UserCreate) -> UserCreate:
    if not data.name.strip():
        raise ValidationError("Name is required")
    email = data.email.strip().lower()
    if not email_pattern(data.role).match(email):
        raise ValidationError(f"{email} is not a valid institute email address for role {data.role.value}")
    department = (data.department or "").strip() or None
    if data.role in DEPARTMENT_ROLES and department is None:
        raise ValidationError(f"Department is required for role {data.role.value}")
    if data.role == Role.DIRECTOR:
        department = None
    return data.model_copy(update={"name": data.name.strip(), "email": email, "department": department})


class AccountService:
    def __init__(self, users: UserStore, mailer: Mailer, clock: Optional[Clock] = None) -> None:
        self._users = users
        self._mailer = mailer
        self._clock = clock or SystemClock()

    async def register(self, data: UserCreate) -> UserRecord:
        data = validate_registration(data)
        if await run_blocking(self._users.find_by_email, data.email):
            raise ValidationError("User already exists")

        now = self._clock.now()
        token = secrets.token_hex(32)
        user = UserRecord(
            id=str(uuid.uuid4()), name=data.name, email=data.email,
            username=data.email.split("@")[0], role=data.role, department=data.department,
            hashed_password=hash_password(data.password),
            email_verification_token=token, email_verification_expires=now + VERIFICATION_TTL,
            created_at=now)
        await run_blocking(self._users.insert, user)

        try:
            await self._mailer.send_verification_email(user.email, token)
        except DependencyError:
            # account must not outlive a verification mail that never went out
            await run_blocking(self._users.delete, user.id)
            logger.error("Registration of %s rolled back: verification email failed", user.email)
            raise DependencyError("Failed to send verification email")
        logger.info("Registered %s (%s)", user.email, user.role.value)
        return user

    async def verify_email(self, token: str) -> UserRecord:
        user = await run_blocking(self._users.find_by_verification_token, token, self._clock.now())
        if user is None:
            raise ValidationError("Invalid or expired verification token")
        await run_blocking(self._users.update, user.id, {
            "email_verified": True, "email_verification_token": None,
            "email_verification_expires": None})
        logger.info("Email verified for %s", user.email)
        return user.model_copy(update={"email_verified": True, "email_verification_token": None,
                                       "email_verification_expires": None})

    async def resend_verification(self, email: str) -> None:
        user = await self._require_user(email)
        if user.email_verified:
            raise ValidationError("Email already verified")
        token = secrets.token_hex(32)
        await run_blocking(self._users.update, user.id, {
            "email_verification_token": token,
            "email_verification_expires": self._clock.now() + VERIFICATION_TTL})
        await self._mailer.send_verification_email(user.email, token)

    async def authenticate(self, email: str, password: str) -> UserRecord:
        user = await run_blocking(self._users.find_by_email, email.strip().lower())
        if user is None or not user.email_verified:
            raise AuthenticationError("Invalid credentials or email not verified")
        if not verify_password(password, user.hashed_password):
            raise AuthenticationError("Invalid credentials")
        return user

    async def request_password_reset(self, email: str) -> None:
        user = await self._require_user(email)
        if not user.email_verified:
            raise ValidationError("Email not verified. Please verify your email first.")
        otp = str(100000 + secrets.randbelow(900000))
        await run_blocking(self._users.update, user.id, {
            "password_reset_otp": otp,
            "password_reset_otp_expires": self._clock.now() + RESET_OTP_TTL})
        await self._mailer.send_password_reset_otp(user.email, otp)

    async def reset_password(self, email: str, otp: str, new_password: str) -> None:
        user = await run_blocking(self._users.find_by_email, email.strip().lower())
        if (user is None or user.password_reset_otp is None
                or user.password_reset_otp_expires is None
                or user.password_reset_otp_expires <= self._clock.now()
                or not secrets.compare_digest(user.password_reset_otp, otp)):
            raise ValidationError("Invalid or expired OTP")
        await run_blocking(self._users.update, user.id, {
            "hashed_password": hash_password(new_password),
            "password_reset_otp": None, "password_reset_otp_expires": None})
        logger.info("Password reset for %s", user.email)

    async def get_user(self, user_id: str) -> UserRecord:
        user = await run_blocking(self._users.get, user_id)
        if user is None:
            raise AuthenticationError("User not found")
        return user

    async def resolve_actor(self, user_id: str) -> Actor:
        return (await self.get_user(user_id)).to_actor()

    async def list_users(self, actor: Actor) -> List[UserRecord]:
        if access.normalize_role(actor.role) != Role.DIRECTOR.value:
            raise AuthorizationError("Not authorized")
        return await run_blocking(self._users.list_all)

    async def _require_user(self, email: str) -> UserRecord:
        user = await run_blocking(self._users.find_by_email, email.strip().lower())
        if user is None:
            raise NotFoundError("User not found")
        return user
