from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from platecost.domain.models import Ingredient, OperatingCost, Recipe, RecipeIngredient, Restaurant


@dataclass(frozen=True)
class RecipeLines:
    # Recipe with its ingredient lines resolved to priced ingredients.
    recipe: Recipe
    lines: list[tuple[RecipeIngredient, Ingredient]]


async def get_restaurant(session: AsyncSession, restaurant_id: str) -> Restaurant | None:
    result = await session.execute(select(Restaurant).where(Restaurant.id == restaurant_id))
    return result.scalar_one_or_none()


async def list_recipes_with_lines(session: AsyncSession, restaurant_id: str) -> list[RecipeLines]:
    recipes = (
        await session.execute(
            select(Recipe).where(Recipe.restaurant_id == restaurant_id).order_by(Recipe.name)
        )
    ).scalars().all()
    if not recipes:
        return []
    recipe_ids = [recipe.id for recipe in recipes]
    # Join on the tenant's own ingredients only so a foreign ingredient id never leaks a price.
    rows = (
        await session.execute(
            select(RecipeIngredient, Ingredient)
            .join(Ingredient, Ingredient.id == RecipeIngredient.ingredient_id)
            .where(
                RecipeIngredient.recipe_id.in_(recipe_ids),
                Ingredient.restaurant_id == restaurant_id,
            )
        )
    ).all()
    lines_by_recipe: dict[str, list[tuple[RecipeIngredient, Ingredient]]] = {rid: [] for rid in recipe_ids}
    for line, ingredient in rows:
        lines_by_recipe[line.recipe_id].append((line, ingredient))
    return [RecipeLines(recipe=recipe, lines=lines_by_recipe[recipe.id]) for recipe in recipes]


async def list_operating_costs(session: AsyncSession, restaurant_id: str) -> list[OperatingCost]:
    result = await session.execute(
        select(OperatingCost)
        .where(OperatingCost.restaurant_id == restaurant_id)
        .order_by(OperatingCost.name)
    )
    return list(result.scalars().all())
