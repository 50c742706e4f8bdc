# Environment-driven configuration for the grievance portal

import os
import logging
from pathlib import Path

from dotenv import load_dotenv

# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------
# Try multiple .env locations: next to the package, one level up, then cwd
_package_dir = Path(__file__).resolve().parent
_env_candidates = [
    _package_dir / ".env",
    _package_dir.parent / ".env",
    Path.cwd() / ".env",
]
_env_loaded = False
for _env_path in _env_candidates:
    if _env_path.is_file():
        load_dotenv(_env_path, override=False)
        _env_loaded = True
        break
if not _env_loaded:
    load_dotenv(override=False)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(level=getattr(logging, LOG_LEVEL, logging.INFO))

# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------
MONGODB_URL = os.getenv("MONGODB_URL", "mongodb://localhost:27017")
MONGODB_DB = os.getenv("MONGODB_DB", "grievance_portal")

# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------
JWT_SECRET = os.getenv("JWT_SECRET", "")
if not JWT_SECRET or len(JWT_SECRET) < 32:
    raise RuntimeError(
        "FATAL: JWT_SECRET must be set in the environment and be at least 32 characters. "
        "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(48))\""
    )
JWT_ALGORITHM = "HS256"
JWT_EXPIRE_HOURS = int(os.getenv("JWT_EXPIRE_HOURS", "24"))

STUDENT_EMAIL_DOMAIN = os.getenv("STUDENT_EMAIL_DOMAIN", "stu.manit.ac.in")
STAFF_EMAIL_DOMAIN = os.getenv("STAFF_EMAIL_DOMAIN", "manit.ac.in")

# ---------------------------------------------------------------------------
# Mail
# ---------------------------------------------------------------------------
CLIENT_URL = os.getenv("CLIENT_URL", "http://localhost:3000")
SMTP_HOST = os.getenv("SMTP_HOST")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USER = os.getenv("SMTP_USER")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
SMTP_FROM = os.getenv("SMTP_FROM", SMTP_USER or "noreply@manit.ac.in")
SMTP_USE_TLS = os.getenv("SMTP_USE_TLS", "false").lower() in ("1", "true", "yes")
