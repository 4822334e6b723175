"""Billing domain package: users, subscriptions, and one-off purchases."""

from .config import BillingConfig, load_billing_config
from .exceptions import (
    BillingError,
    ConfigurationError,
    InvalidState,
    MalformedEvent,
    MissingMetadata,
    ProviderError,
    SubscriptionNotFound,
    Unauthenticated,
    UserNotFound,
    VerificationError,
)
from .models import (
    BillingAuditEvent,
    BillingAuditEventType,
    PlanInterval,
    Purchase,
    Subscription,
    SubscriptionSnapshot,
    SubscriptionStatus,
    User,
)
from .service import (
    BillingEventLogger,
    BillingRepository,
    PurchaseRecorder,
    SubscriptionSynchronizer,
)

__all__ = [
    "BillingAuditEvent",
    "BillingAuditEventType",
    "BillingConfig",
    "BillingError",
    "BillingEventLogger",
    "BillingRepository",
    "ConfigurationError",
    "InvalidState",
    "MalformedEvent",
    "MissingMetadata",
    "PlanInterval",
    "ProviderError",
    "Purchase",
    "PurchaseRecorder",
    "Subscription",
    "SubscriptionNotFound",
    "SubscriptionSnapshot",
    "SubscriptionStatus",
    "SubscriptionSynchronizer",
    "Unauthenticated",
    "User",
    "UserNotFound",
    "VerificationError",
    "load_billing_config",
]
