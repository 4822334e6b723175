"""Versioned schema for payment processor events consumed by the webhook."""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..billing.exceptions import MalformedEvent
from ..billing.models import PlanInterval, SubscriptionSnapshot


class ProviderEventType(str, Enum):
    """Event types acted upon. Anything else is acknowledged and ignored."""

    CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
    CHECKOUT_ASYNC_PAYMENT_SUCCEEDED = "checkout.session.async_payment_succeeded"
    SUBSCRIPTION_CREATED = "customer.subscription.created"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"

    @classmethod
    def parse(cls, value: str) -> Optional["ProviderEventType"]:
        try:
            return cls(value)
        except ValueError:
            return None


class _ProviderObject(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class RecurringPrice(_ProviderObject):
    interval: PlanInterval


class Price(_ProviderObject):
    recurring: Optional[RecurringPrice] = None


class SubscriptionItem(_ProviderObject):
    price: Price
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None


class SubscriptionItemList(_ProviderObject):
    data: List[SubscriptionItem] = Field(min_length=1)


class SubscriptionObject(_ProviderObject):
    """Subscription object carried by ``customer.subscription.*`` events."""

    id: str = Field(min_length=1)
    customer: str = Field(min_length=1)
    status: str = Field(min_length=1)
    cancel_at_period_end: bool
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    items: SubscriptionItemList

    def to_snapshot(self) -> SubscriptionSnapshot:
        item = self.items.data[0]
        if item.price.recurring is None:
            raise MalformedEvent(
                "Subscription price is not recurring",
                detail={"provider_subscription_id": self.id},
            )
        # Newer API versions report billing periods per item.
        period_start = self.current_period_start or item.current_period_start
        period_end = self.current_period_end or item.current_period_end
        if period_start is None or period_end is None:
            raise MalformedEvent(
                "Subscription is missing its billing period",
                detail={"provider_subscription_id": self.id},
            )
        return SubscriptionSnapshot(
            provider_subscription_id=self.id,
            customer_id=self.customer,
            status=self.status,
            plan_interval=item.price.recurring.interval,
            current_period_start=period_start,
            current_period_end=period_end,
            cancel_at_period_end=self.cancel_at_period_end,
        )


class DeletedSubscriptionObject(_ProviderObject):
    id: str = Field(min_length=1)


class CheckoutSessionObject(_ProviderObject):
    """Checkout session carried by ``checkout.session.completed`` events."""

    id: str = Field(min_length=1)
    customer: Optional[str] = None
    amount_total: Optional[int] = Field(default=None, ge=0)
    mode: str = "payment"
    payment_status: Optional[str] = None
    metadata: Optional[Dict[str, str]] = None

    @property
    def is_paid(self) -> bool:
        # Delayed payment methods complete the session before funds arrive.
        return self.payment_status != "unpaid"

    def metadata_value(self, key: str) -> Optional[str]:
        value = (self.metadata or {}).get(key)
        return value or None


class EventData(_ProviderObject):
    object: Dict[str, Any]


class ProviderEvent(_ProviderObject):
    """Envelope shared by every processor event."""

    id: str = Field(min_length=1)
    type: str = Field(min_length=1)
    created: Optional[datetime] = None
    data: EventData

    @property
    def event_type(self) -> Optional[ProviderEventType]:
        return ProviderEventType.parse(self.type)

    def subscription(self) -> SubscriptionObject:
        return _parse(SubscriptionObject, self)

    def deleted_subscription(self) -> DeletedSubscriptionObject:
        return _parse(DeletedSubscriptionObject, self)

    def checkout_session(self) -> CheckoutSessionObject:
        return _parse(CheckoutSessionObject, self)


def _parse(model: type[_ProviderObject], event: ProviderEvent) -> Any:
    try:
        return model.model_validate(event.data.object)
    except ValidationError as exc:
        raise MalformedEvent(
            f"Invalid {event.type} payload",
            detail={"event_id": event.id, "errors": str(exc.error_count())},
        ) from exc


def decode_event(payload: Dict[str, Any]) -> ProviderEvent:
    """Validate a verified, JSON-decoded body against the event envelope."""

    try:
        return ProviderEvent.model_validate(payload)
    except ValidationError as exc:
        raise MalformedEvent("Invalid event envelope") from exc


__all__ = [
    "CheckoutSessionObject",
    "DeletedSubscriptionObject",
    "ProviderEvent",
    "ProviderEventType",
    "SubscriptionObject",
    "decode_event",
]
