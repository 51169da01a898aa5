from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable
from uuid import uuid4

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from platecost.domain.models import Recipe, SalesImport, SalesRow


async def create_import(
    session: AsyncSession,
    *,
    restaurant_id: str,
    file_name: str,
    uploaded_at: datetime,
) -> SalesImport:
    record = SalesImport(
        id=uuid4().hex,
        restaurant_id=restaurant_id,
        file_name=file_name,
        uploaded_at=uploaded_at,
    )
    session.add(record)
    await session.flush()
    return record


async def get_import_for_restaurant(
    session: AsyncSession, import_id: str, restaurant_id: str
) -> SalesImport | None:
    result = await session.execute(
        select(SalesImport).where(
            SalesImport.id == import_id,
            SalesImport.restaurant_id == restaurant_id,
        )
    )
    return result.scalar_one_or_none()


async def recipe_ids_by_name(session: AsyncSession, restaurant_id: str) -> dict[str, str]:
    result = await session.execute(
        select(Recipe.name, Recipe.id).where(Recipe.restaurant_id == restaurant_id)
    )
    # First recipe wins when a tenant has duplicate names.
    mapping: dict[str, str] = {}
    for name, recipe_id in result.all():
        mapping.setdefault(name, recipe_id)
    return mapping


async def tenant_recipe_ids(
    session: AsyncSession, restaurant_id: str, recipe_ids: Iterable[str]
) -> set[str]:
    wanted = {rid for rid in recipe_ids if rid}
    if not wanted:
        return set()
    result = await session.execute(
        select(Recipe.id).where(Recipe.restaurant_id == restaurant_id, Recipe.id.in_(wanted))
    )
    return set(result.scalars().all())


async def insert_rows(session: AsyncSession, rows: list[dict[str, Any]], *, batch_size: int = 500) -> int:
    # Insert in batches so large imports stay within statement limits.
    inserted = 0
    for offset in range(0, len(rows), batch_size):
        batch = rows[offset : offset + batch_size]
        session.add_all(SalesRow(id=uuid4().hex, **row) for row in batch)
        await session.flush()
        inserted += len(batch)
    return inserted


async def match_dish(
    session: AsyncSession, *, import_id: str, dish_name: str, recipe_id: str
) -> int:
    result = await session.execute(
        update(SalesRow)
        .where(SalesRow.sales_import_id == import_id, SalesRow.dish_name == dish_name)
        .values(matched_recipe_id=recipe_id)
        .execution_options(synchronize_session=False)
    )
    return int(result.rowcount or 0)
