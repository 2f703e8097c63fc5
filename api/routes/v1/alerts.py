"""
api/routes/v1/alerts.py -- Reading and acknowledging profile-change alerts.

Routes:
  GET /api/v1/alerts/user/{user_id}   -- one user's alerts (owner or employee)
  GET /api/v1/alerts                  -- every alert (employee only)
  PUT /api/v1/alerts/{alert_id}/read  -- mark read; idempotent; 404 if unknown
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from accounts.store import AccountStore
from api.models import AlertResponse, MessageResponse
from auth.dependencies import get_current_claims, require_employee, require_self_or_employee
from auth.models import TokenClaims
from core.errors import NotFoundError

router = APIRouter()


@router.get("/alerts/user/{user_id}", response_model=list[AlertResponse])
def list_user_alerts(
    request: Request,
    user_id: int,
    claims: TokenClaims = Depends(get_current_claims),
) -> list[AlertResponse]:
    require_self_or_employee(claims, user_id)
    store: AccountStore = request.app.state.account_store
    return [AlertResponse.from_alert(a) for a in store.list_alerts(user_id)]


@router.get("/alerts", response_model=list[AlertResponse])
def list_all_alerts(
    request: Request,
    claims: TokenClaims = Depends(require_employee),
) -> list[AlertResponse]:
    store: AccountStore = request.app.state.account_store
    return [AlertResponse.from_alert(a) for a in store.list_alerts()]


@router.put("/alerts/{alert_id}/read", response_model=MessageResponse)
def mark_alert_read(
    request: Request,
    alert_id: int,
    claims: TokenClaims = Depends(get_current_claims),
) -> MessageResponse:
    """Mark an alert as read. Repeating the call succeeds and changes nothing.

    The ownership check runs before the write; a caller who is neither the
    owner nor an employee gets 403, an unknown id gets 404.
    """
    store: AccountStore = request.app.state.account_store
    alert = store.get_alert(alert_id)
    if alert is None:
        raise NotFoundError(f"No alert with id {alert_id}.")
    require_self_or_employee(claims, alert.user_id)
    store.mark_alert_read(alert_id)
    return MessageResponse(message="Alert marked as read.")
