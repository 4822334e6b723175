"""Routes verified processor events to the billing services."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from fastapi import status
from pydantic import BaseModel, ConfigDict

from ..billing.exceptions import BillingError, MalformedEvent, SubscriptionNotFound
from ..billing.service import PurchaseRecorder, SubscriptionSynchronizer
from .events import ProviderEvent, ProviderEventType


logger = logging.getLogger("billing.webhooks")


class DispatchOutcome(str, Enum):
    PROCESSED = "processed"
    IGNORED = "ignored"
    FAILED = "failed"


class DispatchResult(BaseModel):
    """Outcome of dispatching a single event."""

    event_id: str
    event_type: str
    outcome: DispatchOutcome
    retryable: bool = False
    error_code: Optional[str] = None
    status_code: int = status.HTTP_200_OK

    model_config = ConfigDict(frozen=True)

    @property
    def acknowledged(self) -> bool:
        return self.outcome != DispatchOutcome.FAILED


@dataclass
class EventDispatcher:
    """Dispatches each event type to exactly one handler.

    Handler failures are logged and returned as a failed result instead of
    propagating to the endpoint.
    """

    synchronizer: SubscriptionSynchronizer
    purchase_recorder: PurchaseRecorder
    content_item_metadata_key: str = "content_item_id"

    def dispatch(self, event: ProviderEvent) -> DispatchResult:
        event_type = event.event_type
        if event_type is None:
            logger.debug("Ignoring unhandled event type %s (%s)", event.type, event.id)
            return self._result(event, DispatchOutcome.IGNORED)

        try:
            outcome = self._handle(event_type, event)
        except SubscriptionNotFound as exc:
            logger.info("Event %s (%s): %s, nothing to cancel", event.type, event.id, exc.message)
            return self._result(event, DispatchOutcome.PROCESSED)
        except BillingError as exc:
            log = logger.warning if isinstance(exc, MalformedEvent) or exc.retryable else logger.error
            log("Error processing webhook %s (%s): %s", event.type, event.id, dict(exc.payload))
            return self._result(
                event,
                DispatchOutcome.FAILED,
                retryable=exc.retryable,
                error_code=exc.code,
                status_code=exc.status_code,
            )
        except Exception:
            logger.exception("Unexpected error processing webhook %s (%s)", event.type, event.id)
            return self._result(
                event,
                DispatchOutcome.FAILED,
                retryable=True,
                error_code="internal_error",
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )

        return self._result(event, outcome)

    def _handle(self, event_type: ProviderEventType, event: ProviderEvent) -> DispatchOutcome:
        if event_type in {
            ProviderEventType.CHECKOUT_SESSION_COMPLETED,
            ProviderEventType.CHECKOUT_ASYNC_PAYMENT_SUCCEEDED,
        }:
            return self._handle_checkout_completed(event)
        if event_type in {ProviderEventType.SUBSCRIPTION_CREATED, ProviderEventType.SUBSCRIPTION_UPDATED}:
            snapshot = event.subscription().to_snapshot()
            stored = self.synchronizer.upsert(snapshot)
            if stored is None:
                return DispatchOutcome.IGNORED
            logger.info(
                "Synchronized subscription %s status=%s via %s",
                stored.provider_subscription_id,
                stored.status,
                event.type,
            )
            return DispatchOutcome.PROCESSED
        if event_type == ProviderEventType.SUBSCRIPTION_DELETED:
            deleted = event.deleted_subscription()
            self.synchronizer.cancel(deleted.id)
            logger.info("Canceled subscription %s", deleted.id)
            return DispatchOutcome.PROCESSED
        raise AssertionError(f"Unhandled event type {event_type}")

    def _handle_checkout_completed(self, event: ProviderEvent) -> DispatchOutcome:
        session = event.checkout_session()
        if session.mode == "subscription":
            logger.debug("Checkout %s started a subscription, waiting for subscription events", session.id)
            return DispatchOutcome.IGNORED
        if not session.is_paid:
            logger.info(
                "Checkout %s has payment_status=%s, waiting for the payment to clear",
                session.id,
                session.payment_status,
            )
            return DispatchOutcome.IGNORED
        if session.amount_total is None:
            raise MalformedEvent("Checkout is missing amount_total", detail={"checkout_id": session.id})

        purchase = self.purchase_recorder.record(
            customer_id=session.customer,
            content_item_id=session.metadata_value(self.content_item_metadata_key),
            amount=session.amount_total,
            checkout_id=session.id,
        )
        logger.info(
            "Recorded purchase %s of %s for user %s",
            purchase.id,
            purchase.content_item_id,
            purchase.user_id,
        )
        return DispatchOutcome.PROCESSED

    @staticmethod
    def _result(
        event: ProviderEvent,
        outcome: DispatchOutcome,
        *,
        retryable: bool = False,
        error_code: Optional[str] = None,
        status_code: int = status.HTTP_200_OK,
    ) -> DispatchResult:
        return DispatchResult(
            event_id=event.id,
            event_type=event.type,
            outcome=outcome,
            retryable=retryable,
            error_code=error_code,
            status_code=status_code,
        )


__all__ = ["DispatchOutcome", "DispatchResult", "EventDispatcher"]
