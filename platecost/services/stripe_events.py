from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from typing import Any, Awaitable, Callable

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from platecost.core.errors import WebhookPayloadError
from platecost.persistence.db import SessionLocal
from platecost.persistence.repos import processed_events as processed_events_repo
from platecost.persistence.repos import subscriptions as subscriptions_repo
from platecost.services.audit import record_audit
from platecost.services.entitlements import PLAN_ELITE, PLAN_FREE, PLAN_PRO
from platecost.services.telemetry import increment_counter


logger = logging.getLogger(__name__)

EVENT_SUBSCRIPTION_CREATED = "customer.subscription.created"
EVENT_SUBSCRIPTION_UPDATED = "customer.subscription.updated"
EVENT_SUBSCRIPTION_DELETED = "customer.subscription.deleted"
EVENT_INVOICE_PAYMENT_FAILED = "invoice.payment_failed"

STATUS_ACTIVE = "active"
STATUS_PAST_DUE = "past_due"
STATUS_CANCELED = "canceled"


@dataclass(frozen=True)
class ProcessResult:
    received: bool
    duplicate: bool

    def to_payload(self) -> dict[str, bool]:
        # Only replays carry the duplicate marker.
        if self.duplicate:
            return {"received": self.received, "duplicate": True}
        return {"received": self.received}


def map_stripe_plan(lookup_key: str | None) -> str:
    # First match wins: elite is checked before pro so "elite_pro" stays elite.
    if not isinstance(lookup_key, str) or not lookup_key:
        return PLAN_FREE
    if "elite" in lookup_key:
        return PLAN_ELITE
    if "pro" in lookup_key:
        return PLAN_PRO
    return PLAN_FREE


def map_stripe_status(status: str | None) -> str:
    return STATUS_ACTIVE if status == STATUS_ACTIVE else STATUS_PAST_DUE


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _epoch_to_datetime(value: Any) -> datetime | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


def _ref_id(value: Any) -> str | None:
    # Provider references arrive as plain ids or as expanded objects.
    if isinstance(value, str) and value:
        return value
    if isinstance(value, dict):
        nested = value.get("id")
        if isinstance(nested, str) and nested:
            return nested
    return None


def _first_item(subject: dict[str, Any]) -> dict[str, Any]:
    items = subject.get("items")
    data = items.get("data") if isinstance(items, dict) else None
    if isinstance(data, list) and data and isinstance(data[0], dict):
        return data[0]
    return {}


def _lookup_key(subject: dict[str, Any]) -> str | None:
    price = _first_item(subject).get("price")
    if isinstance(price, dict):
        value = price.get("lookup_key")
        return value if isinstance(value, str) else None
    return None


def event_subject(event: dict[str, Any]) -> dict[str, Any]:
    data = event.get("data")
    subject = data.get("object") if isinstance(data, dict) else None
    return subject if isinstance(subject, dict) else {}


def parse_event(event: Any) -> tuple[str, str]:
    if not isinstance(event, dict):
        raise WebhookPayloadError("event must be a JSON object")
    event_id = event.get("id")
    event_type = event.get("type")
    if not isinstance(event_id, str) or not event_id:
        raise WebhookPayloadError("event id is required")
    if not isinstance(event_type, str) or not event_type:
        raise WebhookPayloadError("event type is required")
    return event_id, event_type


class StripeEventProcessor:
    def __init__(
        self,
        *,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        time_provider: Callable[[], datetime] | None = None,
    ) -> None:
        # Allow session/time injection for deterministic tests.
        self._session_factory = session_factory or SessionLocal
        self._time_provider = time_provider or _utc_now
        self._handlers: dict[str, Callable[[AsyncSession, dict[str, Any], datetime], Awaitable[int]]] = {
            EVENT_SUBSCRIPTION_CREATED: self._apply_subscription_upsert,
            EVENT_SUBSCRIPTION_UPDATED: self._apply_subscription_upsert,
            EVENT_SUBSCRIPTION_DELETED: self._apply_subscription_deleted,
            EVENT_INVOICE_PAYMENT_FAILED: self._apply_payment_failed,
        }

    async def process(self, event: dict[str, Any]) -> ProcessResult:
        event_id, event_type = parse_event(event)
        subject = event_subject(event)
        now = self._time_provider()

        async with self._session_factory() as session:
            try:
                claimed = await self._claim(session, event_id=event_id, event_type=event_type, now=now)
                if not claimed:
                    increment_counter("stripe_webhook.duplicate")
                    logger.info("stripe_webhook_duplicate event_id=%s event_type=%s", event_id, event_type)
                    return ProcessResult(received=True, duplicate=True)
                # Claim and state change commit together so a failure lets the provider retry.
                handler = self._handlers.get(event_type)
                if handler is None:
                    logger.info("stripe_webhook_ignored event_id=%s event_type=%s", event_id, event_type)
                else:
                    matched = await handler(session, subject, now)
                    if matched == 0:
                        logger.warning(
                            "stripe_webhook_no_matching_subscription event_id=%s event_type=%s",
                            event_id,
                            event_type,
                        )
                await session.commit()
            except Exception:
                await session.rollback()
                raise

        increment_counter("stripe_webhook.processed")
        await record_audit(
            actor_id=None,
            action=f"stripe_webhook_{event_type}",
            entity_type="subscription",
            entity_id=_ref_id(subject.get("id")) or event_id,
            metadata={"event_id": event_id, "event_type": event_type},
            session_factory=self._session_factory,
        )
        return ProcessResult(received=True, duplicate=False)

    async def _claim(
        self,
        session: AsyncSession,
        *,
        event_id: str,
        event_type: str,
        now: datetime,
    ) -> bool:
        # Existing record means a prior delivery already applied this event.
        existing = await processed_events_repo.get_processed_event(session, event_id)
        if existing is not None:
            return False
        try:
            await processed_events_repo.insert_processed_event(
                session, event_id=event_id, event_type=event_type, processed_at=now
            )
        except IntegrityError:
            # A concurrent delivery won the insert; treat exactly like a replay.
            await session.rollback()
            return False
        return True

    async def _apply_subscription_upsert(
        self, session: AsyncSession, subject: dict[str, Any], now: datetime
    ) -> int:
        customer_id = _ref_id(subject.get("customer"))
        if customer_id is None:
            return 0
        item = _first_item(subject)
        values: dict[str, Any] = {
            "plan": map_stripe_plan(_lookup_key(subject)),
            "status": map_stripe_status(subject.get("status")),
            "stripe_subscription_id": _ref_id(subject.get("id")),
            "stripe_customer_id": customer_id,
            "updated_at": now,
        }
        # Newer API versions carry billing periods on the subscription item only.
        period_start = _epoch_to_datetime(
            subject.get("current_period_start", item.get("current_period_start"))
        )
        period_end = _epoch_to_datetime(subject.get("current_period_end", item.get("current_period_end")))
        if period_start is not None:
            values["current_period_start"] = period_start
        if period_end is not None:
            values["current_period_end"] = period_end
        return await subscriptions_repo.update_by_customer(session, customer_id, values)

    async def _apply_subscription_deleted(
        self, session: AsyncSession, subject: dict[str, Any], now: datetime
    ) -> int:
        subscription_id = _ref_id(subject.get("id"))
        if subscription_id is None:
            return 0
        return await subscriptions_repo.update_by_subscription(
            session,
            subscription_id,
            {"plan": PLAN_FREE, "status": STATUS_CANCELED, "updated_at": now},
        )

    async def _apply_payment_failed(
        self, session: AsyncSession, subject: dict[str, Any], now: datetime
    ) -> int:
        customer_id = _ref_id(subject.get("customer"))
        if customer_id is None:
            return 0
        return await subscriptions_repo.update_by_customer(
            session, customer_id, {"status": STATUS_PAST_DUE, "updated_at": now}
        )
