"""
api/routes/v1/auth.py -- Login, registration, token refresh and identity endpoints.

Routes:
  POST /api/v1/auth/login               -- username/email + password -> token
  POST /api/v1/auth/register/client     -- public self-registration as a client
  POST /api/v1/auth/register/employee   -- employee accounts, created by employees
  POST /api/v1/auth/refresh-token       -- new token for the current bearer
  GET  /api/v1/auth/me                  -- the authenticated user's record

Security:
  [H2] POST /login is rate-limited per IP (LOGIN_RATE_LIMIT).
  [C1] authenticate_user() provides timing equalization -- use it, never inline.
  [M5] Cache-Control: no-store on every response that carries a token.
  Failures raise core.errors types; api/main.py maps them to 401 envelopes.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from accounts.models import User
from accounts.store import AccountStore
from api.limiter import limiter
from api.models import LoginRequest, RegisterRequest, RegistrationConfirmation, TokenResponse, UserResponse
from auth.dependencies import get_current_claims, require_employee
from auth.models import ROLE_CLIENT, ROLE_EMPLOYEE, TokenClaims
from auth.tokens import authenticate_user, get_token_authority, hash_password
from core.config import get_settings
from core.errors import NotFoundError

logger = logging.getLogger("userportal.api")

# Auth policy:
# - POST /auth/login:             public
# - POST /auth/register/client:   public
# - POST /auth/register/employee: requires employee (require_employee)
# - POST /auth/refresh-token:     requires a valid token (get_current_claims)
# - GET  /auth/me:                requires a valid token (get_current_claims)
router = APIRouter()


def _token_response(token: str, username: str, roles) -> JSONResponse:
    resp = JSONResponse(
        status_code=200,
        content=TokenResponse(
            access_token=token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=get_token_authority().expire_seconds,
            username=username,
            roles=sorted(roles),
        ).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(get_settings().login_rate_limit)  # [H2] must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=TokenResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with username (or email) and password; return a bearer token.

    Wrong login and wrong password raise the same AuthenticationError so the
    response never reveals whether an account exists.
    """
    store: AccountStore = request.app.state.account_store
    user = authenticate_user(store, body.username, body.password)
    token = get_token_authority().issue(user)
    logger.info("Login succeeded for user_id=%s", user.id)
    return _token_response(token, user.username, user.roles)


@router.post("/auth/register/client", response_model=RegistrationConfirmation, status_code=201)
def register_client(request: Request, body: RegisterRequest) -> RegistrationConfirmation:
    """Create a client account. Returns the stored record; no token is issued."""
    return _register(request.app.state.account_store, body, ROLE_CLIENT)


@router.post("/auth/register/employee", response_model=RegistrationConfirmation, status_code=201)
def register_employee(
    request: Request,
    body: RegisterRequest,
    claims: TokenClaims = Depends(require_employee),
) -> RegistrationConfirmation:
    """Create an employee account. Only existing employees may do this."""
    return _register(request.app.state.account_store, body, ROLE_EMPLOYEE)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/refresh-token", response_model=TokenResponse)
def refresh_token(claims: TokenClaims = Depends(get_current_claims)) -> JSONResponse:
    """Issue a new token for the current caller. The presented token is not extended."""
    token = get_token_authority().refresh(claims)
    return _token_response(token, claims.username, claims.roles)


@router.get("/auth/me", response_model=UserResponse)
def me(request: Request, claims: TokenClaims = Depends(get_current_claims)) -> UserResponse:
    """Return the stored record of the authenticated user."""
    store: AccountStore = request.app.state.account_store
    user = store.get_by_id(claims.user_id)
    if user is None:
        raise NotFoundError("Authenticated user no longer exists.")
    return UserResponse.from_user(user)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _register(store: AccountStore, body: RegisterRequest, role: str) -> RegistrationConfirmation:
    new_user = User(
        username=body.username,
        email=body.email,
        roles={role},
        hashed_password=hash_password(body.password),
        full_name=body.full_name,
        phone=body.phone,
        address=body.address,
    )
    try:
        user_id = store.create_user(new_user)
    except IntegrityError as exc:
        raise HTTPException(
            status_code=409,
            detail={"code": "conflict", "message": "A user with that username or email already exists."},
        ) from exc

    created = store.get_by_id(user_id)
    if created is None:
        raise HTTPException(
            status_code=500,
            detail={"code": "internal_error", "message": "User not found after write."},
        )
    return RegistrationConfirmation(
        user=UserResponse.from_user(created),
        message=f"Registered {role} account {created.username}.",
    )
