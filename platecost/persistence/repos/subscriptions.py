from __future__ import annotations

from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from platecost.domain.models import Subscription


async def get_subscription_for_restaurant(
    session: AsyncSession, restaurant_id: str
) -> Subscription | None:
    result = await session.execute(
        select(Subscription).where(Subscription.restaurant_id == restaurant_id)
    )
    return result.scalar_one_or_none()


async def update_by_customer(session: AsyncSession, customer_id: str, values: dict[str, Any]) -> int:
    # Return the matched row count so callers can log unmatched provider customers.
    result = await session.execute(
        update(Subscription)
        .where(Subscription.stripe_customer_id == customer_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return int(result.rowcount or 0)


async def update_by_subscription(
    session: AsyncSession, subscription_id: str, values: dict[str, Any]
) -> int:
    result = await session.execute(
        update(Subscription)
        .where(Subscription.stripe_subscription_id == subscription_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return int(result.rowcount or 0)
