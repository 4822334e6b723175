"""Services projecting payment processor events into stored billing state."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Protocol, Tuple
from uuid import uuid4

from .exceptions import InvalidState, MissingMetadata, SubscriptionNotFound, UserNotFound
from .models import (
    BillingAuditEvent,
    BillingAuditEventType,
    Purchase,
    Subscription,
    SubscriptionSnapshot,
    SubscriptionStatus,
    User,
)


logger = logging.getLogger("billing")


class BillingRepository(Protocol):
    """Persistence operations for users, subscriptions, and purchases.

    Every method is a single atomic unit against the datastore.
    """

    def create_user(self, user: User) -> User:
        """Insert ``user`` or return the row already stored for its external id."""

    def get_user(self, user_id: str) -> Optional[User]:
        ...

    def get_user_by_external_id(self, external_id: str) -> Optional[User]:
        ...

    def get_user_by_customer_id(self, customer_id: str) -> Optional[User]:
        ...

    def get_user_by_subscription_id(self, subscription_id: str) -> Optional[User]:
        ...

    def set_current_subscription(self, user_id: str, subscription_id: Optional[str]) -> Optional[User]:
        ...

    def get_subscription(self, subscription_id: str) -> Optional[Subscription]:
        ...

    def get_subscription_by_provider_id(self, provider_subscription_id: str) -> Optional[Subscription]:
        ...

    def upsert_subscription(self, subscription: Subscription) -> Subscription:
        """Insert or fully replace the row keyed by provider subscription id.

        An existing row keeps its internal id.
        """

    def unlink_and_delete_subscription(self, user_id: str, subscription_id: str) -> bool:
        """Clear the user's pointer and delete the subscription in one transaction.

        Returns ``False`` when the subscription no longer exists and raises
        :class:`InvalidState` when the user no longer holds it.
        """

    def record_purchase(self, purchase: Purchase) -> Tuple[Purchase, bool]:
        """Insert a purchase; returns the stored row and whether it was new."""

    def find_purchase(self, user_id: str, content_item_id: str) -> Optional[Purchase]:
        ...


class BillingEventLogger(Protocol):
    """Captures structured billing audit events."""

    def log(self, event: BillingAuditEvent) -> None:
        ...


@dataclass
class SubscriptionSynchronizer:
    """Keeps stored subscriptions in step with the payment processor."""

    repository: BillingRepository
    event_logger: BillingEventLogger

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)

    def upsert(self, snapshot: SubscriptionSnapshot) -> Optional[Subscription]:
        """Create or fully replace the subscription described by ``snapshot``.

        Deliveries are applied in arrival order; a stale snapshot arriving last
        overwrites a newer one. A user holds one current subscription: a new
        subscription supersedes the current one, which is unlinked and deleted,
        unless the current one is active and the new one is not. In that case
        nothing is stored and ``None`` is returned.
        """

        existing = self.repository.get_subscription_by_provider_id(snapshot.provider_subscription_id)
        if existing is not None:
            owner = self.repository.get_user_by_subscription_id(existing.id)
            if owner is None:
                # Left behind between storing the row and linking it.
                owner = self._require_user(snapshot.customer_id)
                current = self._current_subscription(owner)
                if current is not None:
                    logger.error(
                        "Subscription %s has no owner while user %s holds %s",
                        snapshot.provider_subscription_id,
                        owner.id,
                        current.id,
                    )
                    raise InvalidState(
                        "Subscription has no owning user",
                        detail={"provider_subscription_id": snapshot.provider_subscription_id},
                    )
                logger.warning(
                    "Subscription %s had no owner, linking to user %s",
                    snapshot.provider_subscription_id,
                    owner.id,
                )
                stored = self.repository.upsert_subscription(self._from_snapshot(snapshot, existing.id))
                self._link(owner.id, stored)
            else:
                stored = self.repository.upsert_subscription(self._from_snapshot(snapshot, existing.id))
            self._audit(BillingAuditEventType.SUBSCRIPTION_UPDATED, stored, user_id=owner.id)
            return stored

        user = self._require_user(snapshot.customer_id)
        current = self._current_subscription(user)
        if current is not None:
            if current.is_active and snapshot.status != SubscriptionStatus.ACTIVE.value:
                logger.info(
                    "Not storing %s subscription %s, user %s holds active subscription %s",
                    snapshot.status,
                    snapshot.provider_subscription_id,
                    user.id,
                    current.provider_subscription_id,
                )
                return None
            self._supersede(user, current, snapshot.provider_subscription_id)

        stored = self.repository.upsert_subscription(self._from_snapshot(snapshot, f"bsub_{uuid4().hex}"))
        self._link(user.id, stored)
        self._audit(BillingAuditEventType.SUBSCRIPTION_CREATED, stored, user_id=user.id)
        return stored

    def cancel(self, provider_subscription_id: str) -> Subscription:
        """Unlink the owning user and delete the subscription."""

        existing = self.repository.get_subscription_by_provider_id(provider_subscription_id)
        if existing is None:
            raise SubscriptionNotFound(
                "Subscription not found",
                detail={"provider_subscription_id": provider_subscription_id},
            )

        owner = self.repository.get_user_by_subscription_id(existing.id)
        if owner is None:
            logger.error(
                "No user references subscription %s (%s)",
                existing.id,
                provider_subscription_id,
            )
            raise InvalidState(
                "Subscription has no owning user",
                detail={"provider_subscription_id": provider_subscription_id},
            )

        if not self.repository.unlink_and_delete_subscription(owner.id, existing.id):
            raise SubscriptionNotFound(
                "Subscription not found",
                detail={"provider_subscription_id": provider_subscription_id},
            )

        self._audit(BillingAuditEventType.SUBSCRIPTION_CANCELED, existing, user_id=owner.id)
        return existing

    def _require_user(self, customer_id: str) -> User:
        user = self.repository.get_user_by_customer_id(customer_id)
        if user is None:
            raise UserNotFound("User not found", detail={"customer_id": customer_id})
        return user

    def _current_subscription(self, user: User) -> Optional[Subscription]:
        if not user.current_subscription_id:
            return None
        return self.repository.get_subscription(user.current_subscription_id)

    def _supersede(self, user: User, current: Subscription, provider_subscription_id: str) -> None:
        if not self.repository.unlink_and_delete_subscription(user.id, current.id):
            return
        logger.info(
            "Subscription %s of user %s superseded by %s",
            current.provider_subscription_id,
            user.id,
            provider_subscription_id,
        )
        self._audit(BillingAuditEventType.SUBSCRIPTION_CANCELED, current, user_id=user.id)

    def _link(self, user_id: str, subscription: Subscription) -> None:
        if self.repository.set_current_subscription(user_id, subscription.id) is None:
            raise UserNotFound("User not found", detail={"user_id": user_id})

    def _from_snapshot(self, snapshot: SubscriptionSnapshot, subscription_id: str) -> Subscription:
        return Subscription(
            id=subscription_id,
            provider_subscription_id=snapshot.provider_subscription_id,
            status=snapshot.status,
            plan_interval=snapshot.plan_interval,
            current_period_start=snapshot.current_period_start,
            current_period_end=snapshot.current_period_end,
            cancel_at_period_end=snapshot.cancel_at_period_end,
            updated_at=self._now(),
        )

    def _audit(
        self,
        event_type: BillingAuditEventType,
        subscription: Subscription,
        *,
        user_id: Optional[str] = None,
    ) -> None:
        self.event_logger.log(
            BillingAuditEvent(
                event_type=event_type,
                user_id=user_id,
                subscription_id=subscription.id,
                metadata={
                    "provider_subscription_id": subscription.provider_subscription_id,
                    "status": subscription.status,
                },
            )
        )


@dataclass
class PurchaseRecorder:
    """Records completed one-off checkouts."""

    repository: BillingRepository
    event_logger: BillingEventLogger

    def record(
        self,
        *,
        customer_id: Optional[str],
        content_item_id: Optional[str],
        amount: int,
        checkout_id: str,
    ) -> Purchase:
        if not content_item_id or not customer_id:
            raise MissingMetadata(
                "Checkout is missing the content item or customer",
                detail={"checkout_id": checkout_id},
            )

        user = self.repository.get_user_by_customer_id(customer_id)
        if user is None:
            raise UserNotFound("User not found", detail={"customer_id": customer_id})

        purchase = Purchase(
            id=f"pur_{uuid4().hex}",
            user_id=user.id,
            content_item_id=content_item_id,
            amount=amount,
            checkout_id=checkout_id,
        )
        stored, created = self.repository.record_purchase(purchase)
        if not created:
            logger.info("Checkout %s already recorded as purchase %s", checkout_id, stored.id)
            return stored

        self.event_logger.log(
            BillingAuditEvent(
                event_type=BillingAuditEventType.PURCHASE_RECORDED,
                user_id=user.id,
                metadata={
                    "content_item_id": content_item_id,
                    "checkout_id": checkout_id,
                    "amount": str(amount),
                },
            )
        )
        return stored


__all__ = [
    "BillingEventLogger",
    "BillingRepository",
    "PurchaseRecorder",
    "SubscriptionSynchronizer",
]
