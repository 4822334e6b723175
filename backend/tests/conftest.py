"""Shared in-memory doubles for the billing test suite."""
from __future__ import annotations

from typing import Dict, List, Optional, Tuple

import pytest

from backend.app.accounts import AccountService
from backend.app.billing import (
    BillingAuditEvent,
    BillingAuditEventType,
    InvalidState,
    Purchase,
    PurchaseRecorder,
    Subscription,
    SubscriptionSynchronizer,
    User,
)
from backend.app.billing.service import BillingEventLogger, BillingRepository
from backend.app.entitlements import EntitlementService
from backend.app.webhooks import EventDispatcher


class InMemoryBillingRepository(BillingRepository):
    """Dictionary backed repository enforcing the same uniqueness rules as the schema."""

    def __init__(self) -> None:
        self.users: Dict[str, User] = {}
        self.subscriptions: Dict[str, Subscription] = {}
        self.purchases: Dict[str, Purchase] = {}

    def create_user(self, user: User) -> User:
        existing = self.get_user_by_external_id(user.external_id)
        if existing is not None:
            return existing
        self.users[user.id] = user
        return user

    def get_user(self, user_id: str) -> Optional[User]:
        return self.users.get(user_id)

    def get_user_by_external_id(self, external_id: str) -> Optional[User]:
        return next((u for u in self.users.values() if u.external_id == external_id), None)

    def get_user_by_customer_id(self, customer_id: str) -> Optional[User]:
        return next((u for u in self.users.values() if u.customer_id == customer_id), None)

    def get_user_by_subscription_id(self, subscription_id: str) -> Optional[User]:
        return next(
            (u for u in self.users.values() if u.current_subscription_id == subscription_id),
            None,
        )

    def set_current_subscription(self, user_id: str, subscription_id: Optional[str]) -> Optional[User]:
        user = self.users.get(user_id)
        if user is None:
            return None
        if subscription_id is not None:
            if subscription_id not in self.subscriptions:
                raise InvalidState("Unknown subscription", detail={"subscription_id": subscription_id})
            owner = self.get_user_by_subscription_id(subscription_id)
            if owner is not None and owner.id != user_id:
                raise InvalidState("Subscription already linked", detail={"subscription_id": subscription_id})
        updated = user.model_copy(update={"current_subscription_id": subscription_id})
        self.users[user_id] = updated
        return updated

    def get_subscription(self, subscription_id: str) -> Optional[Subscription]:
        return self.subscriptions.get(subscription_id)

    def get_subscription_by_provider_id(self, provider_subscription_id: str) -> Optional[Subscription]:
        return next(
            (s for s in self.subscriptions.values() if s.provider_subscription_id == provider_subscription_id),
            None,
        )

    def upsert_subscription(self, subscription: Subscription) -> Subscription:
        existing = self.get_subscription_by_provider_id(subscription.provider_subscription_id)
        if existing is not None:
            subscription = subscription.model_copy(update={"id": existing.id})
        self.subscriptions[subscription.id] = subscription
        return subscription

    def unlink_and_delete_subscription(self, user_id: str, subscription_id: str) -> bool:
        if subscription_id not in self.subscriptions:
            return False
        user = self.users.get(user_id)
        if user is None or user.current_subscription_id != subscription_id:
            raise InvalidState("Subscription owner changed before deletion", detail={"user_id": user_id})
        self.users[user_id] = user.model_copy(update={"current_subscription_id": None})
        del self.subscriptions[subscription_id]
        return True

    def record_purchase(self, purchase: Purchase) -> Tuple[Purchase, bool]:
        existing = next(
            (p for p in self.purchases.values() if p.checkout_id == purchase.checkout_id),
            None,
        )
        if existing is not None:
            return existing, False
        self.purchases[purchase.id] = purchase
        return purchase, True

    def find_purchase(self, user_id: str, content_item_id: str) -> Optional[Purchase]:
        return next(
            (
                p
                for p in self.purchases.values()
                if p.user_id == user_id and p.content_item_id == content_item_id
            ),
            None,
        )

    def add_user(
        self,
        user_id: str,
        *,
        customer_id: str,
        external_id: Optional[str] = None,
        current_subscription_id: Optional[str] = None,
    ) -> User:
        user = User(
            id=user_id,
            external_id=external_id or f"ext_{user_id}",
            customer_id=customer_id,
            name="Test User",
            email=f"{user_id}@example.com",
            current_subscription_id=current_subscription_id,
        )
        self.users[user.id] = user
        return user


class RecordingEventLogger(BillingEventLogger):
    def __init__(self) -> None:
        self.events: List[BillingAuditEvent] = []

    def log(self, event: BillingAuditEvent) -> None:
        self.events.append(event)

    def types(self) -> List[BillingAuditEventType]:
        return [event.event_type for event in self.events]


class FakeCustomerProvider:
    def __init__(self) -> None:
        self.customers: List[Dict[str, str]] = []
        self.portal_sessions: List[Dict[str, str]] = []
        self.error: Optional[Exception] = None

    def create_customer(self, *, email: str, name: str, external_id: str) -> str:
        if self.error is not None:
            raise self.error
        customer_id = f"cus_{len(self.customers) + 1}"
        self.customers.append(
            {"id": customer_id, "email": email, "name": name, "external_id": external_id}
        )
        return customer_id

    def create_portal_session(self, *, customer_id: str, return_url: str) -> str:
        if self.error is not None:
            raise self.error
        self.portal_sessions.append({"customer_id": customer_id, "return_url": return_url})
        return f"https://billing.example.com/session/{customer_id}"


def build_subscription_payload(
    provider_subscription_id: str = "sub_1",
    *,
    customer: str = "cus_1",
    status: str = "active",
    interval: str = "month",
    cancel_at_period_end: bool = False,
    period_start: int = 1_700_000_000,
    period_end: int = 1_702_592_000,
    periods_on_item: bool = False,
) -> Dict[str, object]:
    item: Dict[str, object] = {"price": {"recurring": {"interval": interval}}}
    payload: Dict[str, object] = {
        "id": provider_subscription_id,
        "object": "subscription",
        "customer": customer,
        "status": status,
        "cancel_at_period_end": cancel_at_period_end,
        "items": {"object": "list", "data": [item]},
    }
    periods = {"current_period_start": period_start, "current_period_end": period_end}
    if periods_on_item:
        item.update(periods)
    else:
        payload.update(periods)
    return payload


def build_provider_event(event_type: str, obj: Dict[str, object], *, event_id: str = "evt_1") -> Dict[str, object]:
    return {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "created": 1_700_000_100,
        "data": {"object": obj},
    }


@pytest.fixture
def repository() -> InMemoryBillingRepository:
    return InMemoryBillingRepository()


@pytest.fixture
def event_logger() -> RecordingEventLogger:
    return RecordingEventLogger()


@pytest.fixture
def customers() -> FakeCustomerProvider:
    return FakeCustomerProvider()


@pytest.fixture
def synchronizer(repository, event_logger) -> SubscriptionSynchronizer:
    return SubscriptionSynchronizer(repository=repository, event_logger=event_logger)


@pytest.fixture
def purchase_recorder(repository, event_logger) -> PurchaseRecorder:
    return PurchaseRecorder(repository=repository, event_logger=event_logger)


@pytest.fixture
def dispatcher(synchronizer, purchase_recorder) -> EventDispatcher:
    return EventDispatcher(synchronizer=synchronizer, purchase_recorder=purchase_recorder)


@pytest.fixture
def entitlements(repository) -> EntitlementService:
    return EntitlementService(repository)


@pytest.fixture
def accounts(repository, customers, event_logger) -> AccountService:
    return AccountService(repository=repository, customers=customers, event_logger=event_logger)


@pytest.fixture
def subscription_payload():
    return build_subscription_payload


@pytest.fixture
def provider_event():
    return build_provider_event
