"""Payment processor customer operations backed by Stripe."""
from __future__ import annotations

import logging
from typing import Optional

import stripe

from ..billing.exceptions import ConfigurationError, ProviderError


logger = logging.getLogger("billing")


class StripeCustomerProvider:
    """Creates Stripe customers and billing portal sessions."""

    def __init__(self, api_key: Optional[str]) -> None:
        if not api_key:
            raise ConfigurationError("STRIPE_SECRET_KEY is not configured")
        self._api_key = api_key

    def create_customer(self, *, email: str, name: str, external_id: str) -> str:
        try:
            customer = stripe.Customer.create(
                api_key=self._api_key,
                email=email,
                name=name,
                metadata={"external_id": external_id},
                idempotency_key=f"customer-create-{external_id}",
            )
        except stripe.StripeError as exc:
            logger.error("Stripe customer creation failed for %s: %s", external_id, exc)
            raise ProviderError("Customer creation failed", detail={"external_id": external_id}) from exc
        return customer.id

    def create_portal_session(self, *, customer_id: str, return_url: str) -> str:
        try:
            session = stripe.billing_portal.Session.create(
                api_key=self._api_key,
                customer=customer_id,
                return_url=return_url,
            )
        except stripe.StripeError as exc:
            logger.error("Stripe portal session creation failed for %s: %s", customer_id, exc)
            raise ProviderError("Portal session creation failed", detail={"customer_id": customer_id}) from exc
        return session.url


__all__ = ["StripeCustomerProvider"]
