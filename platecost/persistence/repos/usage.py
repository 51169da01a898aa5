from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from platecost.domain.models import AiUsageLog


async def sum_tokens_between(
    session: AsyncSession,
    *,
    restaurant_id: str,
    start: datetime,
    end: datetime,
) -> int:
    result = await session.execute(
        select(func.coalesce(func.sum(AiUsageLog.tokens_used), 0)).where(
            AiUsageLog.restaurant_id == restaurant_id,
            AiUsageLog.created_at >= start,
            AiUsageLog.created_at < end,
        )
    )
    return int(result.scalar_one() or 0)
