from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from platecost.persistence.repos import subscriptions as subscriptions_repo


logger = logging.getLogger(__name__)

PLAN_FREE = "free"
PLAN_PRO = "pro"
PLAN_ELITE = "elite"
PLAN_TIERS = (PLAN_FREE, PLAN_PRO, PLAN_ELITE)
DEFAULT_PLAN = PLAN_FREE

FEATURE_DASHBOARD = "dashboard"
FEATURE_COSTS = "costs"
FEATURE_INGREDIENTS = "ingredients"
FEATURE_RECIPES = "recipes"
FEATURE_DISCOUNT_RULES = "discount-rules"
FEATURE_SALES = "sales"
FEATURE_AI_ASSISTANT = "ai-assistant"
FEATURE_SETUP = "setup"

# Plan tier is the sole input to feature gating.
PLAN_FEATURES: dict[str, tuple[str, ...]] = {
    FEATURE_DASHBOARD: (PLAN_FREE, PLAN_PRO, PLAN_ELITE),
    FEATURE_COSTS: (PLAN_FREE, PLAN_PRO, PLAN_ELITE),
    FEATURE_INGREDIENTS: (PLAN_FREE, PLAN_PRO, PLAN_ELITE),
    FEATURE_RECIPES: (PLAN_FREE, PLAN_PRO, PLAN_ELITE),
    FEATURE_DISCOUNT_RULES: (PLAN_PRO, PLAN_ELITE),
    FEATURE_SALES: (PLAN_PRO, PLAN_ELITE),
    FEATURE_AI_ASSISTANT: (PLAN_ELITE,),
    FEATURE_SETUP: (PLAN_FREE, PLAN_PRO, PLAN_ELITE),
}


def normalize_plan(value: str | None) -> str:
    # Unknown or missing tiers gate as free.
    cleaned = (value or "").strip().lower()
    return cleaned if cleaned in PLAN_TIERS else DEFAULT_PLAN


def can_access_feature(feature: str, plan: str) -> bool:
    allowed = PLAN_FEATURES.get(feature)
    # Unknown feature keys deny so a mistyped constant cannot open a gate.
    if allowed is None:
        return False
    return normalize_plan(plan) in allowed


async def get_restaurant_plan(session: AsyncSession, restaurant_id: str) -> str:
    subscription = await subscriptions_repo.get_subscription_for_restaurant(session, restaurant_id)
    if subscription is None:
        return DEFAULT_PLAN
    plan = normalize_plan(subscription.plan)
    if plan != subscription.plan:
        logger.warning(
            "subscription_plan_unknown restaurant_id=%s plan=%s", restaurant_id, subscription.plan
        )
    return plan
