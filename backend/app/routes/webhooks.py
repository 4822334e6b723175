"""Webhook endpoints for the payment processor and identity provider."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Request, Response, status
from starlette.concurrency import run_in_threadpool

from ..billing import BillingError, ConfigurationError
from ..services.billing import (
    get_account_service,
    get_event_dispatcher,
    get_identity_verifier,
    get_stripe_verifier,
)


logger = logging.getLogger("billing.webhooks")

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


def _status_response(status_code: int, content: str = "") -> Response:
    return Response(content=content, media_type="text/plain", status_code=status_code)


def _rejected(source: str, exc: BillingError) -> Response:
    if isinstance(exc, ConfigurationError):
        logger.error("%s webhook cannot be verified: %s", source, exc.message)
    else:
        logger.warning("Rejected %s webhook: %s", source, exc.message)
    return _status_response(exc.status_code, exc.code)


@router.post("/stripe")
async def receive_stripe_webhook(request: Request) -> Response:
    body = await request.body()
    try:
        event = get_stripe_verifier().verify(body, request.headers.get("stripe-signature"))
    except BillingError as exc:
        return _rejected("Stripe", exc)

    result = await run_in_threadpool(get_event_dispatcher().dispatch, event)
    return _status_response(result.status_code, result.outcome.value)


@router.post("/identity")
async def receive_identity_webhook(request: Request) -> Response:
    body = await request.body()
    try:
        payload = get_identity_verifier().verify(body, request.headers)
    except BillingError as exc:
        return _rejected("Identity", exc)

    try:
        user = await run_in_threadpool(get_account_service().handle_identity_event, payload)
    except BillingError as exc:
        logger.warning("Error processing identity webhook: %s", dict(exc.payload))
        return _status_response(exc.status_code, exc.code)
    except Exception:
        logger.exception("Unexpected error processing identity webhook")
        return _status_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "internal_error")

    return _status_response(status.HTTP_200_OK, "processed" if user else "ignored")
