"""API routes exposing subscription, portal, and entitlement lookups."""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status

from ..billing import BillingError, Unauthenticated, User, UserNotFound
from ..schemas.billing import EntitlementResponse, PortalSessionResponse, SubscriptionResponse
from ..services.billing import get_account_service, get_billing_config, get_billing_repository, get_entitlement_service
from ..services.identity import get_current_identity


logger = logging.getLogger("billing")

router = APIRouter(tags=["billing"])


def _user_not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail={"error": UserNotFound.code})


def _require_user(caller_id: Optional[str]) -> User:
    if not caller_id:
        raise Unauthenticated("Not authenticated").to_http_exception()
    user = get_billing_repository().get_user_by_external_id(caller_id)
    if user is None:
        raise _user_not_found()
    return user


@router.get("/api/entitlements/{content_item_id}", response_model=EntitlementResponse)
def get_entitlement(
    content_item_id: str,
    *,
    caller_id: Optional[str] = Depends(get_current_identity),
) -> EntitlementResponse:
    service = get_entitlement_service()
    try:
        decision = service.resolve_for_caller(caller_id, content_item_id)
    except UserNotFound as exc:
        raise _user_not_found() from exc
    except BillingError as exc:
        raise exc.to_http_exception() from exc
    return EntitlementResponse.from_decision(content_item_id, decision)


@router.get("/api/billing/subscription", response_model=SubscriptionResponse)
def get_subscription(
    *,
    caller_id: Optional[str] = Depends(get_current_identity),
) -> SubscriptionResponse:
    user = _require_user(caller_id)
    subscription = None
    if user.current_subscription_id:
        subscription = get_billing_repository().get_subscription(user.current_subscription_id)
    return SubscriptionResponse(subscription=subscription)


@router.post("/api/billing/portal-session", response_model=PortalSessionResponse)
def create_portal_session(
    *,
    caller_id: Optional[str] = Depends(get_current_identity),
) -> PortalSessionResponse:
    if not caller_id:
        raise Unauthenticated("Not authenticated").to_http_exception()

    service = get_account_service()
    try:
        user = service.get_user_by_external_id(caller_id)
        url = service.create_portal_session(user, return_url=get_billing_config().portal_return_url)
    except UserNotFound as exc:
        raise _user_not_found() from exc
    except BillingError as exc:
        logger.warning("Portal session failed for %s: %s", caller_id, exc.message)
        raise exc.to_http_exception() from exc
    return PortalSessionResponse(url=url)
