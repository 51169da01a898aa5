from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from platecost.domain.models import StripeProcessedEvent


async def get_processed_event(session: AsyncSession, event_id: str) -> StripeProcessedEvent | None:
    result = await session.execute(
        select(StripeProcessedEvent).where(StripeProcessedEvent.event_id == event_id)
    )
    return result.scalar_one_or_none()


async def insert_processed_event(
    session: AsyncSession,
    *,
    event_id: str,
    event_type: str,
    processed_at: datetime,
) -> None:
    # Flush immediately so a concurrent claim surfaces as IntegrityError here, not at commit.
    session.add(
        StripeProcessedEvent(
            event_id=event_id,
            event_type=event_type,
            processed_at=processed_at,
        )
    )
    await session.flush()
