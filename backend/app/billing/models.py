"""Domain models for the billing system."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class SubscriptionStatus(str, Enum):
    """Subscription statuses reported by the payment processor.

    Statuses are stored verbatim, so values outside this set are kept as-is.
    Only ``ACTIVE`` grants access.
    """

    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    UNPAID = "unpaid"
    PAUSED = "paused"


class PlanInterval(str, Enum):
    """Supported billing frequencies."""

    MONTH = "month"
    YEAR = "year"


class BillingAuditEventType(str, Enum):
    """Audit event categories emitted by the billing subsystem."""

    USER_CREATED = "user_created"
    SUBSCRIPTION_CREATED = "subscription_created"
    SUBSCRIPTION_UPDATED = "subscription_updated"
    SUBSCRIPTION_CANCELED = "subscription_canceled"
    PURCHASE_RECORDED = "purchase_recorded"


class User(BaseModel):
    """Account linked to an identity provider user and a processor customer."""

    id: str
    external_id: str = Field(description="Identifier issued by the identity provider")
    customer_id: str = Field(description="Payment processor customer identifier")
    name: str = ""
    email: str
    current_subscription_id: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class SubscriptionSnapshot(BaseModel):
    """Full subscription state as carried by a single provider delivery."""

    provider_subscription_id: str
    customer_id: str
    status: str
    plan_interval: PlanInterval
    current_period_start: datetime
    current_period_end: datetime
    cancel_at_period_end: bool = False

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class Subscription(BaseModel):
    """Recurring plan synchronized from the payment processor."""

    id: str
    provider_subscription_id: str
    status: str
    plan_interval: PlanInterval
    current_period_start: datetime
    current_period_end: datetime
    cancel_at_period_end: bool = False
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @property
    def is_active(self) -> bool:
        return self.status == SubscriptionStatus.ACTIVE.value


class Purchase(BaseModel):
    """One-off purchase of a single content item."""

    id: str
    user_id: str
    content_item_id: str
    amount: int = Field(ge=0, description="Amount charged in minor currency units")
    checkout_id: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class BillingAuditEvent(BaseModel):
    """Structured audit event for analytics and notifications."""

    event_type: BillingAuditEventType
    user_id: Optional[str] = None
    subscription_id: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)
