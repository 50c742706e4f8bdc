# Grievance Portal HTTP API
# FastAPI + MongoDB

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

import uvicorn
from fastapi import BackgroundTasks, Depends, FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordBearer
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from . import store
from .accounts import AccountService
from .errors import AuthenticationError, DependencyError, GrievancePortalError
from .mailer import Mailer
from .models import (
    Actor, CommentCreate, CommentView, EmailRequest, EscalationRequest, GrievanceCreate,
    GrievanceStatistics, GrievanceView, MessageResponse, PasswordReset, StatusUpdate,
    TokenResponse, UserCreate, UserLogin, UserResponse, user_to_response,
)
from .security import create_access_token, decode_access_token
from .service import GrievanceService
from .store import run_blocking

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)

db_client = None
grievance_service: Optional[GrievanceService] = None
account_service: Optional[AccountService] = None
mailer: Optional[Mailer] = None

# ---------------------------------------------------------------------------
# Startup / Shutdown
# ---------------------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    await startup_db()
    yield
    if db_client:
        db_client.close()

async def startup_db():
    global db_client, grievance_service, account_service, mailer
    db_client, db = store.connect()
    await run_blocking(store.ensure_indexes, db)
    users = store.MongoUserStore(db)
    mailer = Mailer.from_config()
    grievance_service = GrievanceService(store.MongoGrievanceStore(db), users)
    account_service = AccountService(users, mailer)
    logger.info("Database initialized")

app = FastAPI(title="Grievance Portal", lifespan=lifespan)
limiter = Limiter(key_func=get_remote_address)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# ---------------------------------------------------------------------------
# Security Headers Middleware
# ---------------------------------------------------------------------------
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"
        response.headers["Cache-Control"] = "no-store"
        return response

app.add_middleware(SecurityHeadersMiddleware)

# ---------------------------------------------------------------------------
# Error rendering
# ---------------------------------------------------------------------------
@app.exception_handler(GrievancePortalError)
async def portal_error_handler(request: Request, exc: GrievancePortalError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    else:
        message = "Invalid request"
    return JSONResponse(status_code=400, content={"kind": "validation", "message": message})

@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"kind": "internal", "message": "Internal server error"})

# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------
async def get_service() -> GrievanceService:
    if grievance_service is None:
        raise DependencyError("Database not initialized")
    return grievance_service

async def get_accounts() -> AccountService:
    if account_service is None:
        raise DependencyError("Database not initialized")
    return account_service

async def get_mailer() -> Mailer:
    return mailer or Mailer.from_config()

async def get_current_user(token: Optional[str] = Depends(oauth2_scheme),
                           accounts: AccountService = Depends(get_accounts)) -> Actor:
    if token is None:
        raise AuthenticationError("Not authenticated")
    user_id = decode_access_token(token)
    return await accounts.resolve_actor(user_id)

# ---------------------------------------------------------------------------
# AUTH ENDPOINTS
# ---------------------------------------------------------------------------
@app.post("/auth/register", response_model=TokenResponse)
@limiter.limit("3/minute")
async def register(request: Request, user_data: UserCreate,
                   accounts: AccountService = Depends(get_accounts)):
    user = await accounts.register(user_data)
    token = create_access_token(user.id, user.role.value)
    return TokenResponse(access_token=token, user=user_to_response(user))

@app.post("/auth/login", response_model=TokenResponse)
@limiter.limit("5/minute")
async def login(request: Request, form: UserLogin, accounts: AccountService = Depends(get_accounts)):
    user = await accounts.authenticate(form.email, form.password)
    token = create_access_token(user.id, user.role.value)
    return TokenResponse(access_token=token, user=user_to_response(user))

@app.get("/auth/me", response_model=UserResponse)
async def get_me(user: Actor = Depends(get_current_user),
                 accounts: AccountService = Depends(get_accounts)):
    return user_to_response(await accounts.get_user(user.id))

@app.get("/auth/verify-email/{token}", response_model=MessageResponse)
@limiter.limit("10/minute")
async def verify_email(request: Request, token: str, accounts: AccountService = Depends(get_accounts)):
    await accounts.verify_email(token)
    return MessageResponse(detail="Email verified successfully")

@app.post("/auth/resend-verification", response_model=MessageResponse)
@limiter.limit("3/minute")
async def resend_verification(request: Request, body: EmailRequest,
                              accounts: AccountService = Depends(get_accounts)):
    await accounts.resend_verification(body.email)
    return MessageResponse(detail="Verification email sent")

@app.post("/auth/forgot-password", response_model=MessageResponse)
@limiter.limit("3/minute")
async def forgot_password(request: Request, body: EmailRequest,
                          accounts: AccountService = Depends(get_accounts)):
    await accounts.request_password_reset(body.email)
    return MessageResponse(detail="OTP sent to your email")

@app.post("/auth/reset-password", response_model=MessageResponse)
@limiter.limit("5/minute")
async def reset_password(request: Request, body: PasswordReset,
                         accounts: AccountService = Depends(get_accounts)):
    await accounts.reset_password(body.email, body.otp, body.new_password)
    return MessageResponse(detail="Password reset successfully")

@app.get("/users", response_model=List[UserResponse])
async def list_users(user: Actor = Depends(get_current_user),
                     accounts: AccountService = Depends(get_accounts)):
    return [user_to_response(u) for u in await accounts.list_users(user)]

# ---------------------------------------------------------------------------
# GRIEVANCE ENDPOINTS
# ---------------------------------------------------------------------------
@app.post("/grievances", response_model=GrievanceView)
async def create_grievance(data: GrievanceCreate, user: Actor = Depends(get_current_user),
                           service: GrievanceService = Depends(get_service)):
    return await run_blocking(service.submit, data, user)

@app.get("/grievances", response_model=List[GrievanceView])
async def get_grievances(user: Actor = Depends(get_current_user),
                         service: GrievanceService = Depends(get_service)):
    return await run_blocking(service.list_for, user)

# declared before /grievances/{grievance_id} so "statistics" is not taken as an id
@app.get("/grievances/statistics", response_model=GrievanceStatistics)
async def get_statistics(user: Actor = Depends(get_current_user),
                         service: GrievanceService = Depends(get_service)):
    return await run_blocking(service.statistics, user)

@app.get("/grievances/{grievance_id}", response_model=GrievanceView)
async def get_grievance(grievance_id: str, user: Actor = Depends(get_current_user),
                        service: GrievanceService = Depends(get_service)):
    return await run_blocking(service.get_by_id, grievance_id, user)

@app.put("/grievances/{grievance_id}", response_model=GrievanceView)
async def update_grievance_status(grievance_id: str, update: StatusUpdate,
                                  user: Actor = Depends(get_current_user),
                                  service: GrievanceService = Depends(get_service)):
    return await run_blocking(service.update_status, grievance_id, update.status, update.comment, user)

@app.post("/grievances/{grievance_id}/escalate", response_model=GrievanceView)
async def escalate_grievance(grievance_id: str, body: EscalationRequest, background_tasks: BackgroundTasks,
                             user: Actor = Depends(get_current_user),
                             service: GrievanceService = Depends(get_service),
                             notifier: Mailer = Depends(get_mailer)):
    view = await run_blocking(service.escalate, grievance_id, body.reason, user)
    submitter = await run_blocking(service.submitter_of, grievance_id)
    if submitter is not None:
        background_tasks.add_task(notifier.notify_escalation, submitter.email, view)
    return view

@app.post("/grievances/{grievance_id}/comments", response_model=List[CommentView])
async def add_comment(grievance_id: str, body: CommentCreate, user: Actor = Depends(get_current_user),
                      service: GrievanceService = Depends(get_service)):
    return await run_blocking(service.add_comment, grievance_id, body.text, user)

# ---------------------------------------------------------------------------
# HEALTH
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc)}

def main():
    uvicorn.run(app, host="0.0.0.0", port=8000)

if __name__ == "__main__":
    main()
