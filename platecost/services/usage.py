from __future__ import annotations

from datetime import datetime, timezone
import logging
import math
from typing import Any, Iterable
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from platecost.domain.models import AiUsageLog
from platecost.persistence.db import SessionLocal
from platecost.persistence.repos import usage as usage_repo


logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    # Use UTC for consistent month boundaries.
    return datetime.now(timezone.utc)


def month_bounds(now: datetime) -> tuple[datetime, datetime]:
    # Calendar month in UTC: [first day 00:00, first day of next month 00:00).
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    start = datetime(now.year, now.month, 1, tzinfo=timezone.utc)
    if now.month == 12:
        end = datetime(now.year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        end = datetime(now.year, now.month + 1, 1, tzinfo=timezone.utc)
    return start, end


async def get_monthly_tokens(
    session: AsyncSession,
    restaurant_id: str,
    now: datetime | None = None,
) -> int:
    start, end = month_bounds(now or _utc_now())
    return await usage_repo.sum_tokens_between(
        session, restaurant_id=restaurant_id, start=start, end=end
    )


def estimate_chat_tokens(
    messages: Iterable[dict[str, Any]],
    *,
    chars_per_token: int = 4,
    overhead: int = 500,
) -> int:
    # Input-only estimate; counting streamed output would require buffering the response.
    chars = 0
    for message in messages:
        content = message.get("content")
        if isinstance(content, str):
            chars += len(content)
    return int(math.ceil(chars / max(chars_per_token, 1) + overhead))


async def record_usage(
    *,
    restaurant_id: str,
    user_id: str,
    tokens_used: int,
    model: str | None,
    occurred_at: datetime | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> bool:
    # Append-only ledger write in its own session; failures never reach the caller.
    entry = AiUsageLog(
        id=uuid4().hex,
        restaurant_id=restaurant_id,
        user_id=user_id,
        tokens_used=max(0, int(tokens_used)),
        model=model,
        created_at=occurred_at or _utc_now(),
    )
    factory = session_factory or SessionLocal
    # Driver errors such as OSError reach here unwrapped by SQLAlchemy.
    try:
        async with factory() as session:
            session.add(entry)
            await session.commit()
    except Exception as exc:  # noqa: BLE001 - ledger writes never fail the caller
        logger.warning(
            "usage_write_failed restaurant_id=%s tokens=%s", restaurant_id, tokens_used, exc_info=exc
        )
        return False
    return True
