"""
auth/tokens.py -- Session tokens and password hashing.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       user_id, username (sub), the role set, iat, exp and a random jti.
       TokenAuthority.validate() raises InvalidTokenError for anything that
       fails signature or structure checks and ExpiredTokenError only for a
       genuine token whose exp has passed -- the API layer maps the two to
       different error codes.

  Expiry is checked here against an injectable clock rather than inside
       jose, so the authority stays a pure function of (token, key, time) and
       the expiry boundary is testable without sleeping.

  Refresh: re-mints from verified claims. The jti makes every refresh a new
       token value even inside the same second; the old token is never
       extended and simply runs out.

  Passwords: bcrypt directly (no passlib wrapper). The _DUMMY_HASH constant
       enables timing equalization in authenticate_user() so response time
       does not reveal whether a login exists [C1].

Layer rule: no imports from api/ or serverless/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import secrets
import time
from collections.abc import Callable
from functools import lru_cache
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt
from jose.utils import base64url_decode, base64url_encode

from auth.models import TokenClaims
from core.config import get_settings
from core.errors import AuthenticationError, ExpiredTokenError, InvalidTokenError

if TYPE_CHECKING:
    from accounts.models import User
    from accounts.store import AccountStore

logger = logging.getLogger("userportal.auth")

_ALGORITHM = "HS256"


def _has_canonical_signature(token: str) -> bool:
    """Return True if the signature segment is the exact encoding of its bytes.

    A 32-byte HS256 MAC leaves two spare bits in the last base64url character,
    and the decoder ignores them, so several spellings decode to the same MAC.
    Only the spelling jwt.encode() produces is accepted.
    """
    signature = token.rsplit(".", 1)[-1]
    try:
        decoded = base64url_decode(signature.encode("ascii"))
    except ValueError:
        return False
    return base64url_encode(decoded).decode("ascii") == signature


# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt truncates input beyond 72 bytes; the API layer caps passwords at
    72 characters (Pydantic field) to stay clear of that.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed hash in the store
        return False


# Timing equalization dummy hash [C1]. Computed once at module load so the
# first login attempt is not measurably slower than subsequent ones.
_DUMMY_HASH: str = hash_password("userportal_timing_dummy")


def authenticate_user(store: AccountStore, login: str, password: str) -> User:
    """Authenticate a username-or-email / password pair with timing equalization.

    Always runs bcrypt whether or not the login exists:
    - Unknown login: bcrypt runs against _DUMMY_HASH (same cost as real check)
    - Wrong password: bcrypt runs against the real hash (same cost)

    Raises AuthenticationError on any failure. The message is the same for
    every cause so callers cannot leak which one it was.
    """
    user = store.get_by_login(login)
    if user is None or user.hashed_password is None:
        verify_password(password, _DUMMY_HASH)
        logger.info("Login rejected: unknown login")
        raise AuthenticationError("Invalid username or password.")
    if not verify_password(password, user.hashed_password):
        logger.info("Login rejected: bad password for user_id=%s", user.id)
        raise AuthenticationError("Invalid username or password.")
    if not user.is_active:
        logger.info("Login rejected: inactive user_id=%s", user.id)
        raise AuthenticationError("Invalid username or password.")
    return user


# ---------------------------------------------------------------------------
# Token Authority
# ---------------------------------------------------------------------------


class TokenAuthority:
    """Issues, validates and refreshes signed session tokens.

    Holds no mutable state after construction, so one instance is shared by
    every request thread.

    Usage:
        authority = TokenAuthority(secret_key, expire_seconds=3600)
        token = authority.issue(user)
        claims = authority.validate(token)
        fresh = authority.refresh(claims)
    """

    def __init__(
        self,
        secret_key: str,
        expire_seconds: int,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not secret_key:
            raise ValueError("TokenAuthority requires a signing key.")
        if expire_seconds <= 0:
            raise ValueError("expire_seconds must be positive.")
        self._secret_key = secret_key
        self.expire_seconds = expire_seconds
        self._clock = clock

    def issue(self, identity: User) -> str:
        """Mint a token for an identity the Account Directory has authenticated."""
        if identity.id is None:
            raise ValueError("Cannot issue a token for an unsaved identity.")
        return self._mint(identity.id, identity.username, identity.roles)

    def refresh(self, claims: TokenClaims) -> str:
        """Mint a new token for a caller whose current token was already validated.

        Same subject and role claims, new iat / exp / jti.
        """
        return self._mint(claims.user_id, claims.username, claims.roles)

    def validate(self, token: str) -> TokenClaims:
        """Verify signature, structure and expiry; return the claims."""
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[_ALGORITHM],
                options={"verify_exp": False},
            )
        except JWTError as exc:
            raise InvalidTokenError("Token signature or structure is invalid.") from exc
        if not _has_canonical_signature(token):
            raise InvalidTokenError("Token signature or structure is invalid.")

        try:
            claims = TokenClaims(
                user_id=int(payload["user_id"]),
                username=str(payload["sub"]),
                roles=frozenset(payload["roles"]),
                issued_at=int(payload["iat"]),
                expires_at=int(payload["exp"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidTokenError("Token is missing required claims.") from exc

        if self._clock() >= claims.expires_at:
            raise ExpiredTokenError("Token has expired.")
        return claims

    def _mint(self, user_id: int, username: str, roles) -> str:
        issued_at = int(self._clock())
        payload = {
            "sub": username,
            "user_id": user_id,
            "roles": sorted(roles),
            "iat": issued_at,
            "exp": issued_at + self.expire_seconds,
            "jti": secrets.token_hex(8),
        }
        return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)


@lru_cache
def get_token_authority() -> TokenAuthority:
    """Return the process-wide TokenAuthority built from Settings."""
    settings = get_settings()
    return TokenAuthority(settings.secret_key, settings.token_expire_seconds)
