"""Service resolving whether a user may access a content item."""
from __future__ import annotations

import logging
from typing import Optional, Protocol

from ..billing.exceptions import Unauthenticated, UserNotFound
from ..billing.models import Purchase, Subscription, User
from .models import AccessVia, EntitlementDecision


logger = logging.getLogger("entitlements")


class EntitlementRepository(Protocol):
    """Read-only data access needed to resolve entitlements."""

    def get_user(self, user_id: str) -> Optional[User]:
        ...

    def get_user_by_external_id(self, external_id: str) -> Optional[User]:
        ...

    def get_subscription(self, subscription_id: str) -> Optional[Subscription]:
        ...

    def find_purchase(self, user_id: str, content_item_id: str) -> Optional[Purchase]:
        ...


class EntitlementService:
    """Derives access from current stored state on every call.

    An active subscription grants every content item; otherwise a purchase of
    the specific item is required. Nothing is cached here.
    """

    def __init__(self, repository: EntitlementRepository) -> None:
        self._repository = repository

    def resolve(
        self,
        user_id: str,
        content_item_id: str,
        *,
        caller_id: Optional[str],
    ) -> EntitlementDecision:
        if not caller_id:
            raise Unauthenticated("Caller identity could not be established")

        user = self._repository.get_user(user_id)
        if user is None:
            raise UserNotFound("User not found", detail={"user_id": user_id})

        if self._has_active_subscription(user):
            return EntitlementDecision.granted_via(AccessVia.SUBSCRIPTION)

        if self._repository.find_purchase(user.id, content_item_id) is not None:
            return EntitlementDecision.granted_via(AccessVia.PURCHASE)

        return EntitlementDecision.denied()

    def resolve_for_caller(self, caller_id: Optional[str], content_item_id: str) -> EntitlementDecision:
        """Resolve access for the user behind an authenticated identity."""

        if not caller_id:
            raise Unauthenticated("Caller identity could not be established")
        user = self._repository.get_user_by_external_id(caller_id)
        if user is None:
            raise UserNotFound("User not found", detail={"external_id": caller_id})
        return self.resolve(user.id, content_item_id, caller_id=caller_id)

    def _has_active_subscription(self, user: User) -> bool:
        if not user.current_subscription_id:
            return False
        subscription = self._repository.get_subscription(user.current_subscription_id)
        if subscription is None:
            logger.warning(
                "User %s references missing subscription %s",
                user.id,
                user.current_subscription_id,
            )
            return False
        return subscription.is_active
