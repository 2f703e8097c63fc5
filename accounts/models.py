"""
accounts/models.py -- Domain dataclasses for the Account Directory.

Pattern: Data class (pure data container, zero logic). The store owns
persistence; routes map these to Pydantic transport models in api/models.py.

Layer rule: no imports from api/, auth/, or serverless/.
"""

from __future__ import annotations

from dataclasses import dataclass, field

# Profile fields a PUT /users/{kind} request may change. "password" is accepted
# on input but stored only as hashed_password.
PROFILE_FIELDS = ("username", "email", "full_name", "phone", "address")


@dataclass
class User:
    """A client or employee account.

    roles is a set of role names ("client", "employee"). A user normally holds
    exactly one of them; the set shape leaves room for both.
    """

    username: str
    email: str
    roles: set[str] = field(default_factory=set)
    id: int | None = None
    hashed_password: str | None = None
    full_name: str | None = None
    phone: str | None = None
    address: str | None = None
    created_at: str | None = None
    is_active: bool = True


@dataclass
class AlertDraft:
    """What the alert policy decides to emit, before the store assigns an id."""

    user_id: int
    category: str
    message: str


@dataclass
class Alert:
    """A persisted notification produced by a profile update.

    Immutable except for is_read, which only ever moves from False to True.
    """

    user_id: int
    category: str
    message: str
    id: int | None = None
    is_read: bool = False
    created_at: str | None = None
