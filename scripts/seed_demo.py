from __future__ import annotations

import argparse
import asyncio
from dataclasses import dataclass
from decimal import Decimal
import sys

from platecost.domain.models import (
    Ingredient,
    OperatingCost,
    Recipe,
    RecipeIngredient,
    Restaurant,
    Subscription,
)
from platecost.persistence.db import SessionLocal


DEMO_RESTAURANT_ID = "demo-restaurant"
DEMO_RESTAURANT_NAME = "Demo Kitchen"


@dataclass(frozen=True)
class DemoDish:
    # Keep seed content deterministic so costing output is repeatable.
    recipe_id: str
    name: str
    category: str
    selling_price: Decimal
    lines: tuple[tuple[str, Decimal], ...]


DEMO_INGREDIENTS: dict[str, tuple[str, str, Decimal]] = {
    "demo-ing-rice": ("Rice", "kg", Decimal("2000")),
    "demo-ing-chicken": ("Chicken", "kg", Decimal("7000")),
    "demo-ing-lamb": ("Lamb", "kg", Decimal("16000")),
    "demo-ing-tea": ("Black tea", "kg", Decimal("12000")),
}

DEMO_DISHES: tuple[DemoDish, ...] = (
    DemoDish(
        recipe_id="demo-rec-biryani",
        name="Chicken biryani",
        category="Mains",
        selling_price=Decimal("9000"),
        lines=(("demo-ing-rice", Decimal("0.25")), ("demo-ing-chicken", Decimal("0.3"))),
    ),
    DemoDish(
        recipe_id="demo-rec-quzi",
        name="Quzi",
        category="Mains",
        selling_price=Decimal("15000"),
        lines=(("demo-ing-rice", Decimal("0.3")), ("demo-ing-lamb", Decimal("0.4"))),
    ),
    DemoDish(
        recipe_id="demo-rec-tea",
        name="Tea",
        category="Drinks",
        selling_price=Decimal("500"),
        lines=(("demo-ing-tea", Decimal("0.005")),),
    ),
)

DEMO_COSTS: tuple[tuple[str, str, str, Decimal], ...] = (
    ("demo-cost-rent", "Rent", "fixed", Decimal("1500000")),
    ("demo-cost-salaries", "Salaries", "fixed", Decimal("3000000")),
    ("demo-cost-gas", "Gas", "variable", Decimal("250000")),
)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Seed a demo restaurant with a costed menu")
    parser.add_argument("--owner-id", required=True, help="Identity subject that owns the demo restaurant")
    parser.add_argument("--plan", default="elite", help="Plan tier: free|pro|elite")
    return parser


async def seed_demo(owner_id: str, plan: str) -> int:
    async with SessionLocal() as session:
        if await session.get(Restaurant, DEMO_RESTAURANT_ID) is not None:
            print("Demo restaurant already seeded; skipping.")
            return 0
        session.add(
            Restaurant(
                id=DEMO_RESTAURANT_ID,
                name=DEMO_RESTAURANT_NAME,
                city="Baghdad",
                default_currency="IQD",
                target_margin_pct=Decimal("35"),
                owner_id=owner_id,
            )
        )
        # Flush the restaurant before dependent rows to satisfy FK constraints.
        await session.flush()
        session.add(
            Subscription(id=f"{DEMO_RESTAURANT_ID}-sub", restaurant_id=DEMO_RESTAURANT_ID, plan=plan)
        )
        for ingredient_id, (name, unit, price) in DEMO_INGREDIENTS.items():
            session.add(
                Ingredient(
                    id=ingredient_id,
                    restaurant_id=DEMO_RESTAURANT_ID,
                    name=name,
                    unit=unit,
                    unit_price=price,
                )
            )
        for dish in DEMO_DISHES:
            session.add(
                Recipe(
                    id=dish.recipe_id,
                    restaurant_id=DEMO_RESTAURANT_ID,
                    name=dish.name,
                    category=dish.category,
                    selling_price=dish.selling_price,
                )
            )
        await session.flush()
        for dish in DEMO_DISHES:
            for index, (ingredient_id, quantity) in enumerate(dish.lines):
                session.add(
                    RecipeIngredient(
                        id=f"{dish.recipe_id}-{index}",
                        recipe_id=dish.recipe_id,
                        ingredient_id=ingredient_id,
                        quantity=quantity,
                    )
                )
        for cost_id, name, cost_type, amount in DEMO_COSTS:
            session.add(
                OperatingCost(
                    id=cost_id,
                    restaurant_id=DEMO_RESTAURANT_ID,
                    name=name,
                    cost_type=cost_type,
                    monthly_amount=amount,
                )
            )
        await session.commit()
    print(f"Seeded {DEMO_RESTAURANT_NAME} with {len(DEMO_DISHES)} dishes on plan={plan}.")
    return 0


def main() -> int:
    args = _build_parser().parse_args()
    # Surface clear failures and exit non-zero so dev scripts can detect issues.
    try:
        return asyncio.run(seed_demo(args.owner_id, args.plan))
    except Exception as exc:  # noqa: BLE001 - surface any setup or DB errors
        print(f"seed_demo failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
