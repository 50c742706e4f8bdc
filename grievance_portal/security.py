# Password hashing and bearer-token helpers

from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from . import config
from .errors import AuthenticationError, ValidationError

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    if len(password.encode("utf-8")) > 72:
        raise ValidationError("Password cannot exceed 72 bytes")
    return pwd_context.hash(password)

def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)

def create_access_token(user_id: str, role: str, now: Optional[datetime] = None) -> str:
    issued = now or datetime.now(timezone.utc)
    to_encode = {"sub": user_id, "role": role, "exp": issued + timedelta(hours=config.JWT_EXPIRE_HOURS)}
    return jwt.encode(to_encode, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)

def decode_access_token(token: str) -> str:
    """Return the user id carried by ``token``."""
    try:
        payload = jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    except JWTError:
        raise AuthenticationError("Invalid token")
    user_id = payload.get("sub")
    if user_id is None:
        raise AuthenticationError("Invalid token")
    return user_id
