"""
api/routes/v1/users.py -- Profile updates and the service-facing user listing.

Routes:
  PUT /api/v1/users/client    -- update a client profile; 200 + alert or 204
  PUT /api/v1/users/employee  -- update an employee profile; 200 + alert or 204
  GET /api/v1/users           -- all users, for the serverless caller only

Profile updates return whatever the alert policy produced. "No alert" is a
normal outcome and maps to 204 No Content, never to an error.

GET /users carries no user session. It is guarded by require_service_signature
and rejects missing, stale or forged signatures with 401 signature_rejected.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.exc import IntegrityError

from accounts.store import AccountStore
from api.models import AlertResponse, ProfileUpdate, ServiceUserRow
from auth.dependencies import get_current_claims, require_self_or_employee, require_service_signature
from auth.models import ROLE_CLIENT, ROLE_EMPLOYEE, TokenClaims
from auth.tokens import hash_password

# Auth policy:
# - PUT /users/client:   requires a token; own profile, or any profile for employees
# - PUT /users/employee: requires a token; own profile, or any profile for employees
# - GET /users:          requires a service signature (require_service_signature)
router = APIRouter()


@router.put("/users/client", response_model=AlertResponse, responses={204: {"description": "No alert"}})
def update_client(
    request: Request,
    body: ProfileUpdate,
    claims: TokenClaims = Depends(get_current_claims),
) -> Response:
    """Update a client profile and return the alert it produced, if any."""
    return _update_profile(request, body, claims, ROLE_CLIENT)


@router.put("/users/employee", response_model=AlertResponse, responses={204: {"description": "No alert"}})
def update_employee(
    request: Request,
    body: ProfileUpdate,
    claims: TokenClaims = Depends(get_current_claims),
) -> Response:
    """Update an employee profile and return the alert it produced, if any."""
    return _update_profile(request, body, claims, ROLE_EMPLOYEE)


@router.get("/users", response_model=list[ServiceUserRow], dependencies=[Depends(require_service_signature)])
def list_users(request: Request) -> list[ServiceUserRow]:
    """Return every account in the slim shape the serverless caller consumes."""
    store: AccountStore = request.app.state.account_store
    return [ServiceUserRow.from_user(u) for u in store.list_users()]


def _update_profile(
    request: Request, body: ProfileUpdate, claims: TokenClaims, kind: str
) -> Response | AlertResponse:
    require_self_or_employee(claims, body.id)
    store: AccountStore = request.app.state.account_store

    changes = body.model_dump(exclude_unset=True, exclude={"id", "password"})
    changes = {k: v for k, v in changes.items() if v is not None}
    if body.password:
        changes["hashed_password"] = hash_password(body.password)

    try:
        alert = store.update_profile(body.id, changes, kind=kind)
    except IntegrityError as exc:
        raise HTTPException(
            status_code=409,
            detail={"code": "conflict", "message": "That username or email is already in use."},
        ) from exc

    if alert is None:
        return Response(status_code=204)
    return AlertResponse.from_alert(alert)
