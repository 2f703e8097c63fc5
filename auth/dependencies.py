"""
auth/dependencies.py -- FastAPI Depends() helpers for both authentication paths.

Interactive users: Authorization: Bearer <token>. get_current_claims() turns
the header into TokenClaims or raises InvalidTokenError / ExpiredTokenError;
api/main.py maps those to 401 with distinct error codes.

Serverless caller: the header named by SIGNATURE_HEADER carries a
"<timestamp>:<digest>" service signature. require_service_signature() verifies
it against the configured context and raises SignatureRejected otherwise.
Any unexpected fault while verifying is logged and reported as a rejection,
never as a 500.

Layer rule: no imports from api/ or serverless/.
  auth/dependencies.py may import from fastapi (for Depends/HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

import logging

from fastapi import Depends, HTTPException, Request

from auth.models import ROLE_EMPLOYEE, TokenClaims
from auth.signatures import get_service_signer, signature_context
from auth.tokens import get_token_authority
from core.config import get_settings
from core.errors import InvalidTokenError, SignatureRejected

logger = logging.getLogger("userportal.auth")


def get_current_claims(request: Request) -> TokenClaims:
    """Require a valid bearer token and return its claims.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(claims: TokenClaims = Depends(get_current_claims)): ...
    """
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise InvalidTokenError("Authentication required.")
    return get_token_authority().validate(auth_header[7:].strip())


def require_employee(claims: TokenClaims = Depends(get_current_claims)) -> TokenClaims:
    """Require the employee role. 401 if unauthenticated, 403 if not an employee."""
    if not claims.has_role(ROLE_EMPLOYEE):
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "Employee access required."},
        )
    return claims


def require_self_or_employee(claims: TokenClaims, user_id: int) -> None:
    """Raise 403 unless the caller is user_id or holds the employee role."""
    if claims.user_id != user_id and not claims.has_role(ROLE_EMPLOYEE):
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "You can only access your own records."},
        )


def require_service_signature(request: Request) -> None:
    """Require a valid service signature on the request.

    Use as a route dependency:
        @router.get("/users", dependencies=[Depends(require_service_signature)])
    """
    settings = get_settings()
    presented = request.headers.get(settings.signature_header)
    context = signature_context(settings.backend_url, request.url.path, settings.signature_bind_path)
    try:
        get_service_signer().check(context, presented)
    except SignatureRejected:
        raise
    except Exception as exc:
        logger.exception("Unexpected error while verifying a service signature")
        raise SignatureRejected("Service signature could not be verified.") from exc
