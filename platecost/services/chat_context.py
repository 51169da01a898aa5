from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable

from sqlalchemy.ext.asyncio import AsyncSession

from platecost.core.messages import resolve_locale
from platecost.domain.models import OperatingCost, Restaurant
from platecost.persistence.repos import restaurants as restaurants_repo
from platecost.services.costing import DishCost, cost_dishes


ROLE_ASSISTANT = "assistant"
ROLE_USER = "user"
ROLE_SYSTEM = "system"


@dataclass(frozen=True)
class RestaurantContext:
    restaurant: Restaurant
    dishes: list[DishCost] = field(default_factory=list)
    operating_costs: list[OperatingCost] = field(default_factory=list)
    total_operating_cost: Decimal = Decimal("0")


def sanitize_messages(messages: Any, max_chars: int) -> list[dict[str, str]]:
    # Callers may only speak as user or assistant; a forged system role is demoted.
    if not isinstance(messages, list):
        return []
    sanitized: list[dict[str, str]] = []
    for message in messages:
        if not isinstance(message, dict):
            message = {}
        role = ROLE_ASSISTANT if message.get("role") == ROLE_ASSISTANT else ROLE_USER
        content = message.get("content")
        text = content[:max_chars] if isinstance(content, str) else ""
        sanitized.append({"role": role, "content": text})
    return sanitized


async def load_restaurant_context(session: AsyncSession, restaurant: Restaurant) -> RestaurantContext:
    recipes = await restaurants_repo.list_recipes_with_lines(session, restaurant.id)
    costs = await restaurants_repo.list_operating_costs(session, restaurant.id)
    total = sum((Decimal(cost.monthly_amount or 0) for cost in costs), Decimal("0"))
    dishes = cost_dishes(
        (
            (
                entry.recipe.name,
                entry.recipe.category or "",
                entry.recipe.selling_price,
                [(line.quantity, ingredient.unit_price) for line, ingredient in entry.lines],
            )
            for entry in recipes
        ),
        total,
    )
    return RestaurantContext(
        restaurant=restaurant,
        dishes=dishes,
        operating_costs=costs,
        total_operating_cost=total,
    )


def currency_symbol(currency: str | None, locale: str) -> str:
    if currency == "USD":
        return "$"
    return "د.ع" if locale == "ar" else "IQD"


def _whole(value: Decimal | float | int | None) -> str:
    # Whole-unit rendering keeps the prompt compact.
    number = Decimal(str(value if value is not None else 0))
    return str(number.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


_PROMPTS = {
    "en": {
        "intro": (
            "You are an assistant specialised in restaurant cost analysis and dish pricing.\n\n"
            "Your tasks:\n"
            "1. Analyse dish costs and suggest improvements\n"
            "2. Suggest selling prices based on true cost and the target margin\n"
            "3. Identify low-margin dishes and propose fixes\n"
            "4. Give advice on cutting costs and improving profitability\n\n"
            "Rules:\n"
            "- Use the actual data below in your analysis\n"
            "- Give specific, clear numbers\n"
            "- Propose practical solutions\n"
            "- Answer briefly and clearly\n"
            "- Every suggestion is a recommendation only and is never applied automatically\n"
            "- Always state which data you used"
        ),
        "header": "Restaurant data:",
        "name": "Name",
        "city": "City",
        "currency": "Currency",
        "target": "Target margin",
        "costs": "Operating costs (total: {total}{cur}):",
        "no_costs": "No operating costs",
        "dishes": "Dishes:",
        "no_dishes": "No dishes",
        "fixed": "fixed",
        "variable": "variable",
        "per_month": "/month",
        "dish": "- {name} ({category}): cost={cost}{cur}, true={true}{cur}, price={price}{cur}, margin={margin}%",
    },
    "ar": {
        "intro": (
            "أنت مساعد ذكي متخصص في تحليل تكاليف المطاعم وتسعير الأطباق. تتحدث بالعربية.\n\n"
            "مهامك:\n"
            "1. تحليل تكاليف الأطباق واقتراح تحسينات\n"
            "2. اقتراح أسعار بيع مناسبة بناءً على التكلفة الحقيقية وهامش الربح المستهدف\n"
            "3. تحديد الأطباق ذات الهوامش المنخفضة واقتراح حلول\n"
            "4. تقديم نصائح لتقليل التكاليف وزيادة الربحية\n\n"
            "قواعد مهمة:\n"
            "- استخدم البيانات الفعلية في تحليلاتك\n"
            "- قدم أرقاماً محددة وواضحة\n"
            "- اقترح حلولاً عملية\n"
            "- أجب بإيجاز ووضوح\n"
            '- كل اقتراح هو "توصية فقط" ولا يُطبق تلقائياً\n'
            "- اذكر دائماً البيانات المستخدمة في تحليلك"
        ),
        "header": "بيانات المطعم:",
        "name": "الاسم",
        "city": "المدينة",
        "currency": "العملة",
        "target": "هامش الربح المستهدف",
        "costs": "المصاريف (إجمالي: {total}{cur}):",
        "no_costs": "لا توجد مصاريف",
        "dishes": "الأطباق:",
        "no_dishes": "لا توجد أطباق",
        "fixed": "ثابت",
        "variable": "متغير",
        "per_month": "/شهر",
        "dish": "- {name} ({category}): تكلفة={cost}{cur}, حقيقية={true}{cur}, بيع={price}{cur}, هامش={margin}%",
    },
}


def _cost_lines(costs: Iterable[OperatingCost], strings: dict[str, str], cur: str) -> list[str]:
    lines = []
    for cost in costs:
        kind = strings["fixed"] if cost.cost_type == "fixed" else strings["variable"]
        lines.append(f"- {cost.name} ({kind}): {_whole(cost.monthly_amount)}{cur}{strings['per_month']}")
    return lines


def build_system_prompt(context: RestaurantContext, locale: str | None = None) -> str:
    lang = resolve_locale(locale)
    strings = _PROMPTS.get(lang, _PROMPTS["en"])
    restaurant = context.restaurant
    cur = currency_symbol(restaurant.default_currency, lang)

    cost_lines = _cost_lines(context.operating_costs, strings, cur)
    dish_lines = [
        strings["dish"].format(
            name=dish.name,
            category=dish.category,
            cost=_whole(dish.ingredient_cost),
            true=_whole(dish.true_cost),
            price=_whole(dish.selling_price),
            margin=_whole(dish.margin_pct),
            cur=cur,
        )
        for dish in context.dishes
    ]

    sections = [
        strings["intro"],
        "",
        strings["header"],
        f"- {strings['name']}: {restaurant.name}",
        f"- {strings['city']}: {restaurant.city or ''}",
        f"- {strings['currency']}: {cur}",
        f"- {strings['target']}: {_whole(restaurant.target_margin_pct)}%",
        "",
        strings["costs"].format(total=_whole(context.total_operating_cost), cur=cur),
        "\n".join(cost_lines) or strings["no_costs"],
        "",
        strings["dishes"],
        "\n".join(dish_lines) or strings["no_dishes"],
    ]
    return "\n".join(sections)


def build_completion_messages(system_prompt: str, messages: list[dict[str, str]]) -> list[dict[str, str]]:
    # The system prompt is always first and always server-authored.
    return [{"role": ROLE_SYSTEM, "content": system_prompt}, *messages]
