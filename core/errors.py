"""
core/errors.py -- Error taxonomy shared by every layer.

Each error carries a stable machine-readable `code`. api/main.py maps the
classes to HTTP statuses; nothing below the API layer knows about HTTP.

Layer rule: no project imports.
"""

from __future__ import annotations


class UserPortalError(Exception):
    """Base class for all expected UserPortal failures."""

    code = "error"

    def __init__(self, message: str = "", detail: str | None = None) -> None:
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        self.detail = detail


class AuthenticationError(UserPortalError):
    """Bad credentials at login (unknown login, wrong password, inactive account)."""

    code = "bad_credentials"


class InvalidTokenError(UserPortalError):
    """Session token missing, malformed, or signed with another key."""

    code = "invalid_token"


class ExpiredTokenError(UserPortalError):
    """Session token whose signature is fine but whose expiry has passed."""

    code = "token_expired"


class SignatureRejected(UserPortalError):
    """Service-to-service call failed the HMAC or the skew check."""

    code = "signature_rejected"


class NotFoundError(UserPortalError):
    code = "not_found"


class UpstreamUnavailableError(UserPortalError):
    """A collaborator (account store, backend API) could not be reached."""

    code = "upstream_unavailable"


class ConfigurationError(UserPortalError):
    """Fatal at startup: a component cannot run with the configuration given."""

    code = "configuration_error"
