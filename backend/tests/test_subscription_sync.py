"""Tests for projecting processor subscription events into stored state."""
from __future__ import annotations

from datetime import datetime, timezone

import pytest

from backend.app.billing import (
    BillingAuditEventType,
    InvalidState,
    PlanInterval,
    Subscription,
    SubscriptionNotFound,
    SubscriptionSnapshot,
    UserNotFound,
)


def _snapshot(
    provider_subscription_id: str = "sub_1",
    *,
    customer_id: str = "cus_1",
    status: str = "active",
    interval: PlanInterval = PlanInterval.MONTH,
    cancel_at_period_end: bool = False,
) -> SubscriptionSnapshot:
    return SubscriptionSnapshot(
        provider_subscription_id=provider_subscription_id,
        customer_id=customer_id,
        status=status,
        plan_interval=interval,
        current_period_start=datetime(2024, 1, 1, tzinfo=timezone.utc),
        current_period_end=datetime(2024, 2, 1, tzinfo=timezone.utc),
        cancel_at_period_end=cancel_at_period_end,
    )


def test_upsert_creates_subscription_and_links_user(repository, synchronizer, event_logger):
    repository.add_user("usr_1", customer_id="cus_1")

    stored = synchronizer.upsert(_snapshot())

    assert stored.id.startswith("bsub_")
    assert stored.status == "active"
    assert stored.plan_interval == PlanInterval.MONTH
    assert repository.get_user("usr_1").current_subscription_id == stored.id
    assert event_logger.types() == [BillingAuditEventType.SUBSCRIPTION_CREATED]
    assert event_logger.events[0].user_id == "usr_1"


def test_upsert_replaces_every_field_and_keeps_internal_id(repository, synchronizer):
    repository.add_user("usr_1", customer_id="cus_1")
    created = synchronizer.upsert(_snapshot())

    updated = synchronizer.upsert(
        _snapshot(status="past_due", interval=PlanInterval.YEAR, cancel_at_period_end=True)
    )

    assert updated.id == created.id
    assert updated.status == "past_due"
    assert updated.plan_interval == PlanInterval.YEAR
    assert updated.cancel_at_period_end is True
    assert len(repository.subscriptions) == 1
    assert repository.get_user("usr_1").current_subscription_id == created.id


def test_upsert_is_idempotent_for_repeated_delivery(repository, synchronizer, event_logger):
    repository.add_user("usr_1", customer_id="cus_1")

    first = synchronizer.upsert(_snapshot())
    second = synchronizer.upsert(_snapshot())

    assert first.id == second.id
    assert len(repository.subscriptions) == 1
    assert event_logger.types() == [
        BillingAuditEventType.SUBSCRIPTION_CREATED,
        BillingAuditEventType.SUBSCRIPTION_UPDATED,
    ]


def test_last_delivery_wins_even_when_stale(repository, synchronizer):
    repository.add_user("usr_1", customer_id="cus_1")

    synchronizer.upsert(_snapshot(status="active"))
    synchronizer.upsert(_snapshot(status="incomplete"))

    assert repository.get_subscription_by_provider_id("sub_1").status == "incomplete"


def test_upsert_unknown_customer_creates_nothing(repository, synchronizer, event_logger):
    with pytest.raises(UserNotFound) as excinfo:
        synchronizer.upsert(_snapshot(customer_id="cus_unknown"))

    assert excinfo.value.retryable is True
    assert repository.subscriptions == {}
    assert event_logger.events == []


def test_upsert_relinks_subscription_left_without_owner(repository, synchronizer, caplog):
    repository.add_user("usr_1", customer_id="cus_1")
    orphan = Subscription(
        id="bsub_orphan",
        provider_subscription_id="sub_1",
        status="incomplete",
        plan_interval=PlanInterval.MONTH,
        current_period_start=datetime(2024, 1, 1, tzinfo=timezone.utc),
        current_period_end=datetime(2024, 2, 1, tzinfo=timezone.utc),
    )
    repository.subscriptions[orphan.id] = orphan

    with caplog.at_level("WARNING", logger="billing"):
        stored = synchronizer.upsert(_snapshot())

    assert stored.id == "bsub_orphan"
    assert repository.get_user("usr_1").current_subscription_id == "bsub_orphan"
    assert "had no owner" in caplog.text


def test_cancel_unlinks_user_and_deletes_subscription(repository, synchronizer, event_logger):
    repository.add_user("usr_1", customer_id="cus_1")
    stored = synchronizer.upsert(_snapshot())

    canceled = synchronizer.cancel("sub_1")

    assert canceled.id == stored.id
    assert repository.get_subscription(stored.id) is None
    assert repository.get_user("usr_1").current_subscription_id is None
    assert event_logger.types()[-1] == BillingAuditEventType.SUBSCRIPTION_CANCELED


def test_cancel_unknown_subscription_raises_not_found(repository, synchronizer):
    with pytest.raises(SubscriptionNotFound):
        synchronizer.cancel("sub_missing")


def test_cancel_twice_reports_not_found_second_time(repository, synchronizer):
    repository.add_user("usr_1", customer_id="cus_1")
    synchronizer.upsert(_snapshot())
    synchronizer.cancel("sub_1")

    with pytest.raises(SubscriptionNotFound):
        synchronizer.cancel("sub_1")


def test_cancel_subscription_without_owner_is_invalid_state(repository, synchronizer):
    repository.subscriptions["bsub_orphan"] = Subscription(
        id="bsub_orphan",
        provider_subscription_id="sub_1",
        status="active",
        plan_interval=PlanInterval.MONTH,
        current_period_start=datetime(2024, 1, 1, tzinfo=timezone.utc),
        current_period_end=datetime(2024, 2, 1, tzinfo=timezone.utc),
    )

    with pytest.raises(InvalidState):
        synchronizer.cancel("sub_1")

    assert "bsub_orphan" in repository.subscriptions


def test_update_after_cancel_recreates_subscription(repository, synchronizer, event_logger):
    repository.add_user("usr_1", customer_id="cus_1")
    first = synchronizer.upsert(_snapshot())
    synchronizer.cancel("sub_1")

    recreated = synchronizer.upsert(_snapshot(status="canceled"))

    assert recreated.id != first.id
    assert recreated.status == "canceled"
    assert repository.get_user("usr_1").current_subscription_id == recreated.id
    assert event_logger.types()[-1] == BillingAuditEventType.SUBSCRIPTION_CREATED


def test_every_user_pointer_references_an_existing_subscription(repository, synchronizer):
    repository.add_user("usr_1", customer_id="cus_1")
    repository.add_user("usr_2", customer_id="cus_2")

    synchronizer.upsert(_snapshot("sub_1", customer_id="cus_1"))
    synchronizer.upsert(_snapshot("sub_2", customer_id="cus_2"))
    synchronizer.cancel("sub_1")
    synchronizer.upsert(_snapshot("sub_2", customer_id="cus_2", status="past_due"))

    for user in repository.users.values():
        if user.current_subscription_id is not None:
            assert user.current_subscription_id in repository.subscriptions
    owners = [u.current_subscription_id for u in repository.users.values() if u.current_subscription_id]
    assert len(owners) == len(set(owners))


def test_new_subscription_supersedes_current_one(repository, synchronizer, event_logger):
    repository.add_user("usr_1", customer_id="cus_1")
    first = synchronizer.upsert(_snapshot("sub_1"))

    second = synchronizer.upsert(_snapshot("sub_2"))

    assert second.id != first.id
    assert repository.get_user("usr_1").current_subscription_id == second.id
    assert repository.get_subscription(first.id) is None
    assert event_logger.types() == [
        BillingAuditEventType.SUBSCRIPTION_CREATED,
        BillingAuditEventType.SUBSCRIPTION_CANCELED,
        BillingAuditEventType.SUBSCRIPTION_CREATED,
    ]


def test_late_update_for_superseded_subscription_keeps_new_plan(repository, synchronizer, entitlements):
    repository.add_user("usr_1", customer_id="cus_1", external_id="ext_1")
    synchronizer.upsert(_snapshot("sub_old"))
    current = synchronizer.upsert(_snapshot("sub_new"))

    assert synchronizer.upsert(_snapshot("sub_old", status="canceled")) is None

    assert repository.get_user("usr_1").current_subscription_id == current.id
    assert repository.get_subscription_by_provider_id("sub_old") is None
    assert entitlements.resolve("usr_1", "item_1", caller_id="ext_1").granted is True

    synchronizer.cancel("sub_new")

    assert repository.get_user("usr_1").current_subscription_id is None
    assert repository.subscriptions == {}
    with pytest.raises(SubscriptionNotFound):
        synchronizer.cancel("sub_old")


def test_inactive_subscription_supersedes_inactive_current_one(repository, synchronizer):
    repository.add_user("usr_1", customer_id="cus_1")
    first = synchronizer.upsert(_snapshot("sub_1", status="past_due"))

    second = synchronizer.upsert(_snapshot("sub_2", status="incomplete"))

    assert repository.get_user("usr_1").current_subscription_id == second.id
    assert repository.get_subscription(first.id) is None


def test_subscription_replaces_dangling_pointer(repository, synchronizer):
    repository.add_user("usr_1", customer_id="cus_1", current_subscription_id="bsub_gone")

    stored = synchronizer.upsert(_snapshot(status="incomplete"))

    assert repository.get_user("usr_1").current_subscription_id == stored.id


def test_ownerless_subscription_is_not_relinked_over_another_subscription(repository, synchronizer):
    repository.add_user("usr_1", customer_id="cus_1")
    current = synchronizer.upsert(_snapshot("sub_1"))
    repository.subscriptions["bsub_orphan"] = Subscription(
        id="bsub_orphan",
        provider_subscription_id="sub_2",
        status="active",
        plan_interval=PlanInterval.MONTH,
        current_period_start=datetime(2024, 1, 1, tzinfo=timezone.utc),
        current_period_end=datetime(2024, 2, 1, tzinfo=timezone.utc),
    )

    with pytest.raises(InvalidState):
        synchronizer.upsert(_snapshot("sub_2", status="past_due"))

    assert repository.get_user("usr_1").current_subscription_id == current.id
    assert repository.get_subscription("bsub_orphan").status == "active"


def test_cancel_fails_when_owner_changed_concurrently(repository, synchronizer, monkeypatch):
    repository.add_user("usr_1", customer_id="cus_1")
    stored = synchronizer.upsert(_snapshot())
    owner = repository.get_user("usr_1")
    repository.users["usr_1"] = owner.model_copy(update={"current_subscription_id": None})
    monkeypatch.setattr(repository, "get_user_by_subscription_id", lambda subscription_id: owner)

    with pytest.raises(InvalidState):
        synchronizer.cancel("sub_1")

    assert repository.get_subscription(stored.id) is not None
