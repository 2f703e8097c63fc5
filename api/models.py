"""
API request and response models for UserPortal REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in accounts/models.py and
auth/models.py, which own the internal domain representation. Route handlers
map between the two.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from accounts.models import Alert, User

# ---------------------------------------------------------------------------
# Auth -- request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login. `username` also accepts an email."""

    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=72)


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register/{client,employee}."""

    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(min_length=3, max_length=255)
    email: EmailStr
    # 72 = bcrypt's input limit
    password: str = Field(min_length=8, max_length=72)
    full_name: Optional[str] = Field(default=None, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=50)
    address: Optional[str] = Field(default=None, max_length=1000)


# ---------------------------------------------------------------------------
# Auth -- response models
# ---------------------------------------------------------------------------


class TokenResponse(BaseModel):
    """Response for login and refresh-token."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    username: str
    roles: list[str]


class RoleInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str


class UserResponse(BaseModel):
    """One user record. Never includes the password hash."""

    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    email: str
    roles: list[RoleInfo]
    full_name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    is_active: bool = True
    created_at: str = ""

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            roles=[RoleInfo(name=r) for r in sorted(user.roles)],
            full_name=user.full_name,
            phone=user.phone,
            address=user.address,
            is_active=user.is_active,
            created_at=user.created_at or "",
        )


class ServiceUserRow(BaseModel):
    """The slim user shape returned to the serverless caller on GET /users."""

    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    email: str
    roles: list[RoleInfo]

    @classmethod
    def from_user(cls, user: User) -> "ServiceUserRow":
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            roles=[RoleInfo(name=r) for r in sorted(user.roles)],
        )


class RegistrationConfirmation(BaseModel):
    """Response for a successful registration."""

    model_config = ConfigDict(frozen=True)

    user: UserResponse
    message: str


# ---------------------------------------------------------------------------
# Profile update and alerts
# ---------------------------------------------------------------------------


class ProfileUpdate(BaseModel):
    """Request body for PUT /api/v1/users/{client,employee}.

    id names the target account. Omitted fields are left unchanged.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    id: int
    username: Optional[str] = Field(default=None, min_length=3, max_length=255)
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(default=None, min_length=8, max_length=72)
    full_name: Optional[str] = Field(default=None, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=50)
    address: Optional[str] = Field(default=None, max_length=1000)


class AlertResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    user_id: int
    category: str
    message: str
    is_read: bool
    created_at: str

    @classmethod
    def from_alert(cls, alert: Alert) -> "AlertResponse":
        return cls(
            id=alert.id,
            user_id=alert.user_id,
            category=alert.category,
            message=alert.message,
            is_read=alert.is_read,
            created_at=alert.created_at or "",
        )


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
