"""Application wiring for the billing services."""
from __future__ import annotations

import logging
from functools import lru_cache

from ..accounts import AccountService, StripeCustomerProvider
from ..billing import (
    BillingAuditEvent,
    BillingConfig,
    BillingEventLogger,
    PurchaseRecorder,
    SubscriptionSynchronizer,
    load_billing_config,
)
from ..billing.repository import PostgresBillingRepository
from ..entitlements import EntitlementService
from ..webhooks import EventDispatcher, IdentityWebhookVerifier, StripeSignatureVerifier


logger = logging.getLogger("billing")


class LoggingBillingEventLogger(BillingEventLogger):
    """Simple event logger forwarding billing audit events to logging."""

    def log(self, event: BillingAuditEvent) -> None:
        logger.info(
            "Billing event %s user=%s subscription=%s metadata=%s",
            event.event_type.value,
            event.user_id,
            event.subscription_id,
            event.metadata,
        )


@lru_cache(maxsize=1)
def get_billing_config() -> BillingConfig:
    return load_billing_config()


@lru_cache(maxsize=1)
def get_billing_repository() -> PostgresBillingRepository:
    return PostgresBillingRepository()


@lru_cache(maxsize=1)
def get_event_logger() -> BillingEventLogger:
    return LoggingBillingEventLogger()


@lru_cache(maxsize=1)
def get_stripe_verifier() -> StripeSignatureVerifier:
    config = get_billing_config()
    return StripeSignatureVerifier(
        config.stripe_webhook_secret,
        tolerance=config.webhook_tolerance_seconds,
    )


@lru_cache(maxsize=1)
def get_identity_verifier() -> IdentityWebhookVerifier:
    config = get_billing_config()
    return IdentityWebhookVerifier(
        config.identity_webhook_secret,
        tolerance=config.webhook_tolerance_seconds,
    )


@lru_cache(maxsize=1)
def get_event_dispatcher() -> EventDispatcher:
    repository = get_billing_repository()
    event_logger = get_event_logger()
    return EventDispatcher(
        synchronizer=SubscriptionSynchronizer(repository=repository, event_logger=event_logger),
        purchase_recorder=PurchaseRecorder(repository=repository, event_logger=event_logger),
        content_item_metadata_key=get_billing_config().content_item_metadata_key,
    )


@lru_cache(maxsize=1)
def get_account_service() -> AccountService:
    config = get_billing_config()
    return AccountService(
        repository=get_billing_repository(),
        customers=StripeCustomerProvider(config.stripe_secret_key),
        event_logger=get_event_logger(),
    )


@lru_cache(maxsize=1)
def get_entitlement_service() -> EntitlementService:
    return EntitlementService(get_billing_repository())


def validate_configuration() -> None:
    """Build every secret-dependent component so missing settings fail at startup."""

    config = get_billing_config()
    config.require("session_jwt_secret")
    get_stripe_verifier()
    get_identity_verifier()
    get_account_service()
    logger.info("Billing configuration loaded, portal return url %s", config.portal_return_url)


__all__ = [
    "LoggingBillingEventLogger",
    "get_account_service",
    "get_billing_config",
    "get_billing_repository",
    "get_entitlement_service",
    "get_event_dispatcher",
    "get_identity_verifier",
    "get_stripe_verifier",
    "validate_configuration",
]
