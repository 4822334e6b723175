"""Account provisioning driven by identity provider notifications."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Protocol
from uuid import uuid4

from pydantic import ValidationError

from ..billing.exceptions import MalformedEvent, UserNotFound
from ..billing.models import BillingAuditEvent, BillingAuditEventType, User
from ..billing.service import BillingEventLogger, BillingRepository
from .models import USER_CREATED_EVENT, IdentityEvent, IdentityUser


logger = logging.getLogger("billing")


class CustomerProvider(Protocol):
    """Payment processor customer management."""

    def create_customer(self, *, email: str, name: str, external_id: str) -> str:
        """Create a processor customer and return its identifier."""

    def create_portal_session(self, *, customer_id: str, return_url: str) -> str:
        """Create a processor managed billing portal session and return its URL."""


@dataclass
class AccountService:
    """Creates users and looks them up by their external identifiers."""

    repository: BillingRepository
    customers: CustomerProvider
    event_logger: BillingEventLogger

    def handle_identity_event(self, payload: Mapping[str, Any]) -> Optional[User]:
        """Apply a verified identity provider event.

        Only account creation is acted upon; other event types return ``None``.
        """

        try:
            event = IdentityEvent.model_validate(payload)
        except ValidationError as exc:
            raise MalformedEvent("Invalid identity event envelope") from exc

        if event.type != USER_CREATED_EVENT:
            logger.debug("Ignoring identity event %s", event.type)
            return None

        try:
            identity_user = IdentityUser.model_validate(event.data)
        except ValidationError as exc:
            raise MalformedEvent("Invalid identity user payload") from exc

        return self.create_user(
            email=identity_user.primary_email,
            name=identity_user.display_name,
            external_id=identity_user.id,
        )

    def create_user(self, *, email: str, name: str, external_id: str) -> User:
        existing = self.repository.get_user_by_external_id(external_id)
        if existing is not None:
            logger.info("User for %s already exists as %s", external_id, existing.id)
            return existing

        customer_id = self.customers.create_customer(email=email, name=name, external_id=external_id)
        user = self.repository.create_user(
            User(
                id=f"usr_{uuid4().hex}",
                external_id=external_id,
                customer_id=customer_id,
                name=name,
                email=email,
            )
        )
        self.event_logger.log(
            BillingAuditEvent(
                event_type=BillingAuditEventType.USER_CREATED,
                user_id=user.id,
                metadata={"external_id": external_id, "customer_id": user.customer_id},
            )
        )
        return user

    def get_user_by_external_id(self, external_id: str) -> User:
        user = self.repository.get_user_by_external_id(external_id)
        if user is None:
            raise UserNotFound("User not found", detail={"external_id": external_id})
        return user

    def create_portal_session(self, user: User, *, return_url: str) -> str:
        return self.customers.create_portal_session(customer_id=user.customer_id, return_url=return_url)


__all__ = ["AccountService", "CustomerProvider"]
