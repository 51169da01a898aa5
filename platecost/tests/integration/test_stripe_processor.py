from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from uuid import uuid4

import pytest
from sqlalchemy import update

from platecost.domain.models import Subscription
from platecost.persistence.db import SessionLocal
from platecost.persistence.repos import processed_events as processed_events_repo
from platecost.persistence.repos import subscriptions as subscriptions_repo
from platecost.services.stripe_events import StripeEventProcessor
from platecost.services.telemetry import get_counter
from platecost.tests.utils.auth import (
    count_processed_events,
    get_subscription,
    list_audit,
    seed_restaurant,
)


FIXED_NOW = datetime(2026, 10, 18, 9, 0, tzinfo=timezone.utc)


def _subscription_event(
    *,
    event_id: str,
    customer: object,
    lookup_key: str | None = "plan_pro_monthly",
    status: str = "active",
    event_type: str = "customer.subscription.updated",
    subscription_id: str = "sub_123",
) -> dict:
    return {
        "id": event_id,
        "type": event_type,
        "data": {
            "object": {
                "id": subscription_id,
                "object": "subscription",
                "customer": customer,
                "status": status,
                "current_period_start": 1_760_000_000,
                "current_period_end": 1_762_592_000,
                "items": {"data": [{"price": {"lookup_key": lookup_key}}]},
            }
        },
    }


def _processor() -> StripeEventProcessor:
    return StripeEventProcessor(time_provider=lambda: FIXED_NOW)


@pytest.mark.asyncio
async def test_subscription_update_applies_plan_status_and_period() -> None:
    restaurant_id = await seed_restaurant(owner_id="owner-a", customer_id="cus_A")

    result = await _processor().process(_subscription_event(event_id="evt_1", customer="cus_A"))

    assert result.to_payload() == {"received": True}
    subscription = await get_subscription(restaurant_id)
    assert subscription.plan == "pro"
    assert subscription.status == "active"
    assert subscription.stripe_subscription_id == "sub_123"
    assert subscription.current_period_start is not None
    assert subscription.current_period_end is not None
    assert await count_processed_events() == 1
    audits = await list_audit("stripe_webhook_customer.subscription.updated")
    assert len(audits) == 1
    assert audits[0].actor_id is None
    assert audits[0].entity_type == "subscription"
    assert audits[0].entity_id == "sub_123"
    assert audits[0].metadata_json == {
        "event_id": "evt_1",
        "event_type": "customer.subscription.updated",
    }


@pytest.mark.asyncio
async def test_expanded_customer_object_and_non_active_status() -> None:
    restaurant_id = await seed_restaurant(owner_id="owner-a", customer_id="cus_B")

    await _processor().process(
        _subscription_event(
            event_id="evt_2",
            customer={"id": "cus_B", "object": "customer"},
            lookup_key="elite_yearly",
            status="incomplete",
        )
    )

    subscription = await get_subscription(restaurant_id)
    assert subscription.plan == "elite"
    assert subscription.status == "past_due"


@pytest.mark.asyncio
async def test_replay_is_duplicate_and_writes_nothing() -> None:
    restaurant_id = await seed_restaurant(owner_id="owner-a", customer_id="cus_A")
    processor = _processor()
    event = _subscription_event(event_id="evt_dup", customer="cus_A")

    first = await processor.process(event)
    # Reset the row so a second application would be visible.
    async with SessionLocal() as session:
        await session.execute(
            update(Subscription)
            .where(Subscription.restaurant_id == restaurant_id)
            .values(plan="free")
        )
        await session.commit()
    second = await processor.process(event)

    assert first.duplicate is False
    assert second.to_payload() == {"received": True, "duplicate": True}
    assert (await get_subscription(restaurant_id)).plan == "free"
    assert await count_processed_events() == 1
    assert len(await list_audit("stripe_webhook_customer.subscription.updated")) == 1
    assert get_counter("stripe_webhook.duplicate") == 1


@pytest.mark.asyncio
async def test_lost_claim_race_is_reported_as_duplicate(monkeypatch) -> None:
    restaurant_id = await seed_restaurant(owner_id="owner-a", customer_id="cus_A")
    event = _subscription_event(event_id="evt_race", customer="cus_A")
    await _processor().process(event)

    async with SessionLocal() as session:
        await session.execute(
            update(Subscription)
            .where(Subscription.restaurant_id == restaurant_id)
            .values(plan="free")
        )
        await session.commit()

    # A concurrent delivery read "not processed" before the winner committed.
    async def stale_lookup(session, event_id):
        return None

    monkeypatch.setattr(processed_events_repo, "get_processed_event", stale_lookup)

    result = await _processor().process(event)

    assert result.duplicate is True
    assert (await get_subscription(restaurant_id)).plan == "free"
    assert await count_processed_events() == 1


@pytest.mark.asyncio
async def test_failed_mutation_rolls_back_claim_so_retry_applies(monkeypatch) -> None:
    restaurant_id = await seed_restaurant(owner_id="owner-a", customer_id="cus_A")
    event = _subscription_event(event_id="evt_retry", customer="cus_A")
    original_update = subscriptions_repo.update_by_customer

    async def broken_update(session, customer_id, values):
        raise RuntimeError("store unavailable")

    monkeypatch.setattr(subscriptions_repo, "update_by_customer", broken_update)
    with pytest.raises(RuntimeError):
        await _processor().process(event)
    assert await count_processed_events() == 0

    monkeypatch.setattr(subscriptions_repo, "update_by_customer", original_update)
    result = await _processor().process(event)

    assert result.duplicate is False
    assert (await get_subscription(restaurant_id)).plan == "pro"


@pytest.mark.asyncio
async def test_subscription_deleted_downgrades_to_free() -> None:
    restaurant_id = await seed_restaurant(
        owner_id="owner-a", plan="elite", customer_id="cus_A", subscription_id="sub_del"
    )

    await _processor().process(
        {
            "id": "evt_del",
            "type": "customer.subscription.deleted",
            "data": {"object": {"id": "sub_del", "customer": "cus_A"}},
        }
    )

    subscription = await get_subscription(restaurant_id)
    assert subscription.plan == "free"
    assert subscription.status == "canceled"


@pytest.mark.asyncio
async def test_payment_failed_marks_past_due_and_keeps_plan() -> None:
    restaurant_id = await seed_restaurant(owner_id="owner-a", plan="pro", customer_id="cus_A")

    await _processor().process(
        {
            "id": "evt_inv",
            "type": "invoice.payment_failed",
            "data": {"object": {"id": "in_1", "customer": "cus_A"}},
        }
    )

    subscription = await get_subscription(restaurant_id)
    assert subscription.plan == "pro"
    assert subscription.status == "past_due"
    audits = await list_audit("stripe_webhook_invoice.payment_failed")
    assert audits[0].entity_id == "in_1"


@pytest.mark.asyncio
async def test_unknown_event_type_is_claimed_and_acknowledged() -> None:
    restaurant_id = await seed_restaurant(owner_id="owner-a", plan="pro", customer_id="cus_A")

    result = await _processor().process(
        {"id": f"evt_{uuid4().hex}", "type": "charge.refunded", "data": {"object": {}}}
    )

    assert result.to_payload() == {"received": True}
    assert (await get_subscription(restaurant_id)).plan == "pro"
    assert await count_processed_events() == 1
    audits = await list_audit("stripe_webhook_charge.refunded")
    assert audits[0].entity_id.startswith("evt_")


@pytest.mark.asyncio
async def test_unmatched_customer_still_acknowledges() -> None:
    result = await _processor().process(_subscription_event(event_id="evt_orphan", customer="cus_none"))

    assert result.to_payload() == {"received": True}
    assert await count_processed_events() == 1


@pytest.mark.asyncio
async def test_concurrent_deliveries_apply_once() -> None:
    restaurant_id = await seed_restaurant(owner_id="owner-a", customer_id="cus_A")
    event = _subscription_event(event_id="evt_concurrent", customer="cus_A")

    results = await asyncio.gather(_processor().process(event), _processor().process(event))

    assert sorted(result.duplicate for result in results) == [False, True]
    assert await count_processed_events() == 1
    assert (await get_subscription(restaurant_id)).plan == "pro"
    assert len(await list_audit("stripe_webhook_customer.subscription.updated")) == 1


class _UnreachableAuditSession:
    async def __aenter__(self) -> "_UnreachableAuditSession":
        return self

    async def __aexit__(self, *exc_info) -> bool:
        return False

    def add(self, entry) -> None:
        return None

    async def commit(self) -> None:
        raise ConnectionRefusedError(111, "Connection refused")


@pytest.mark.asyncio
async def test_audit_driver_error_after_commit_keeps_success() -> None:
    restaurant_id = await seed_restaurant(owner_id="owner-a", customer_id="cus_A")
    opened: list[str] = []

    # First session carries the claim and mutation; the second is the audit write.
    def session_factory():
        opened.append("session")
        if len(opened) == 1:
            return SessionLocal()
        return _UnreachableAuditSession()

    processor = StripeEventProcessor(session_factory=session_factory, time_provider=lambda: FIXED_NOW)
    result = await processor.process(_subscription_event(event_id="evt_audit_down", customer="cus_A"))

    assert result.to_payload() == {"received": True}
    assert len(opened) == 2
    assert (await get_subscription(restaurant_id)).plan == "pro"
    assert await count_processed_events() == 1
    assert await list_audit("stripe_webhook_customer.subscription.updated") == []
