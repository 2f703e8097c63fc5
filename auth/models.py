"""
auth/models.py -- Claims carried inside a session token.

Pattern: Data class (pure data container, zero logic). The identity itself
(accounts.models.User) belongs to the Account Directory; auth/ only ever sees
it at issue time and afterwards works from these claims.

Layer rule: no imports from api/, accounts/, or serverless/.
"""

from __future__ import annotations

from dataclasses import dataclass

ROLE_CLIENT = "client"
ROLE_EMPLOYEE = "employee"
ROLES = frozenset({ROLE_CLIENT, ROLE_EMPLOYEE})


@dataclass(frozen=True)
class TokenClaims:
    """Verified contents of a session token.

    Passed explicitly through route dependencies instead of living in any
    request-global security context. issued_at / expires_at are Unix seconds.
    """

    user_id: int
    username: str
    roles: frozenset[str]
    issued_at: int
    expires_at: int

    def has_role(self, role: str) -> bool:
        return role in self.roles
