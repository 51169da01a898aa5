from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_CEILING, Decimal
from typing import Iterable


@dataclass(frozen=True)
class DishCost:
    # Per-dish cost breakdown used by the assistant context and dashboards.
    name: str
    category: str
    selling_price: Decimal
    ingredient_cost: Decimal
    true_cost: Decimal
    margin_pct: Decimal


def _to_decimal(value: float | int | str | Decimal | None) -> Decimal:
    # Normalize numeric values to Decimal for consistent rounding.
    if value is None:
        return Decimal("0")
    return value if isinstance(value, Decimal) else Decimal(str(value))


def ingredient_cost(lines: Iterable[tuple[Decimal | float, Decimal | float]]) -> Decimal:
    # Lines are (quantity, unit_price) pairs.
    total = Decimal("0")
    for quantity, unit_price in lines:
        total += _to_decimal(quantity) * _to_decimal(unit_price)
    return total


def overhead_per_dish(total_operating_cost: Decimal | float, dish_count: int) -> Decimal:
    # Monthly overhead spread evenly across the menu; an empty menu counts as one dish.
    return _to_decimal(total_operating_cost) / Decimal(max(1, int(dish_count)))


def true_cost(ingredient_total: Decimal | float, overhead: Decimal | float) -> Decimal:
    return _to_decimal(ingredient_total) + _to_decimal(overhead)


def margin_pct(selling_price: Decimal | float, cost: Decimal | float) -> Decimal:
    price = _to_decimal(selling_price)
    if price <= 0:
        return Decimal("0")
    return (price - _to_decimal(cost)) / price * Decimal("100")


def breakeven_units(total_overhead: Decimal | float, profit_per_dish: Decimal | float) -> int | None:
    # Dishes sold at a loss never break even.
    profit = _to_decimal(profit_per_dish)
    if profit <= 0:
        return None
    units = (_to_decimal(total_overhead) / profit).to_integral_value(rounding=ROUND_CEILING)
    return int(units)


def cost_dishes(
    dishes: Iterable[tuple[str, str, Decimal | float, Iterable[tuple[Decimal | float, Decimal | float]]]],
    total_operating_cost: Decimal | float,
) -> list[DishCost]:
    """Compute cost breakdowns for a whole menu.

    Each dish is ``(name, category, selling_price, lines)``. Overhead is shared
    across every dish in the menu, including dishes without ingredient lines.
    """
    materialized = list(dishes)
    overhead = overhead_per_dish(total_operating_cost, len(materialized))
    results: list[DishCost] = []
    for name, category, selling_price, lines in materialized:
        ingredients_total = ingredient_cost(lines)
        cost = true_cost(ingredients_total, overhead)
        results.append(
            DishCost(
                name=name,
                category=category,
                selling_price=_to_decimal(selling_price),
                ingredient_cost=ingredients_total,
                true_cost=cost,
                margin_pct=margin_pct(selling_price, cost),
            )
        )
    return results
