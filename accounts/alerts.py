"""
accounts/alerts.py -- Which profile changes produce an alert.

The store calls AlertEmitter.emit() inside the update transaction with the
record before and after the change. Returning None means "no alert" and is a
normal outcome, not an error.

Rules:
  - email, username or password changed -> one "security" alert listing them
    (field names only; old and new values stay out of the stored message)
  - anything else (full_name, phone, address) -> no alert
"""

from __future__ import annotations

from accounts.models import AlertDraft, User

CATEGORY_SECURITY = "security"

# Field name -> label used in the alert message
_WATCHED_FIELDS = {
    "email": "email address",
    "username": "username",
    "hashed_password": "password",
}


class AlertEmitter:
    """Default alert policy for client and employee profile updates."""

    def emit(self, kind: str, before: User, after: User) -> AlertDraft | None:
        changed = [name for name in _WATCHED_FIELDS if getattr(before, name) != getattr(after, name)]
        if not changed:
            return None
        labels = " and ".join(_WATCHED_FIELDS[name] for name in changed)
        message = f"The {labels} on your {kind} account changed."
        return AlertDraft(user_id=after.id, category=CATEGORY_SECURITY, message=message)
