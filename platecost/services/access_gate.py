from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from platecost.core.errors import GateError, IdentityVerificationError
from platecost.core.messages import get_message
from platecost.domain.models import Restaurant
from platecost.persistence.repos import restaurants as restaurants_repo
from platecost.services.auth.identity import IdentityVerifier, parse_bearer_token
from platecost.services.entitlements import (
    FEATURE_AI_ASSISTANT,
    FEATURE_SALES,
    can_access_feature,
    get_restaurant_plan,
)
from platecost.services.usage import get_monthly_tokens


logger = logging.getLogger(__name__)

# Feature-specific upgrade copy; other features share the assistant wording.
_PLAN_MESSAGE_KEYS = {
    FEATURE_AI_ASSISTANT: "plan_upgrade_ai",
    FEATURE_SALES: "plan_upgrade_sales",
}


@dataclass(frozen=True)
class AccessGrant:
    user_id: str
    restaurant: Restaurant
    plan: str
    monthly_tokens: int


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AccessGate:
    """Ordered access checks for tenant-scoped, plan-gated endpoints.

    Checks run in a fixed order and stop at the first failure: bearer present,
    bearer valid, restaurant id present, caller owns the restaurant, plan grants
    the feature, and (when a cap is set) monthly usage is under the cap.
    """

    def __init__(
        self,
        *,
        identity_verifier: IdentityVerifier,
        feature: str,
        monthly_token_cap: int | None = None,
        time_provider: Callable[[], datetime] | None = None,
        locale: str | None = None,
    ) -> None:
        self._identity_verifier = identity_verifier
        self._feature = feature
        self._monthly_token_cap = monthly_token_cap
        self._time_provider = time_provider or _utc_now
        self._locale = locale

    def _deny(self, status_code: int, code: str, message_key: str) -> GateError:
        return GateError(status_code, code, get_message(message_key, self._locale))

    async def authorize(
        self,
        session: AsyncSession,
        authorization_header: str | None,
        restaurant_id: str | None,
    ) -> AccessGrant:
        token = parse_bearer_token(authorization_header)
        if token is None:
            raise self._deny(401, "AUTH_MISSING", "auth_missing")
        try:
            identity = await self._identity_verifier.verify(token)
        except IdentityVerificationError as exc:
            raise self._deny(401, "AUTH_INVALID", "auth_invalid") from exc

        if not isinstance(restaurant_id, str) or not restaurant_id.strip():
            raise self._deny(400, "RESTAURANT_ID_REQUIRED", "restaurant_id_required")

        # Unknown tenants and foreign tenants are indistinguishable to the caller.
        restaurant = await restaurants_repo.get_restaurant(session, restaurant_id)
        if restaurant is None or restaurant.owner_id != identity.user_id:
            logger.info(
                "access_denied_tenant user_id=%s restaurant_id=%s feature=%s",
                identity.user_id,
                restaurant_id,
                self._feature,
            )
            raise self._deny(403, "RESTAURANT_FORBIDDEN", "restaurant_forbidden")

        plan = await get_restaurant_plan(session, restaurant.id)
        if not can_access_feature(self._feature, plan):
            message_key = _PLAN_MESSAGE_KEYS.get(self._feature, "plan_upgrade_ai")
            raise self._deny(403, "PLAN_UPGRADE_REQUIRED", message_key)

        monthly_tokens = 0
        if self._monthly_token_cap is not None:
            # Advisory cap: concurrent requests may each pass this read before any usage lands.
            monthly_tokens = await get_monthly_tokens(session, restaurant.id, self._time_provider())
            if monthly_tokens >= self._monthly_token_cap:
                logger.info(
                    "access_denied_monthly_cap restaurant_id=%s tokens=%s cap=%s",
                    restaurant.id,
                    monthly_tokens,
                    self._monthly_token_cap,
                )
                raise self._deny(429, "MONTHLY_CAP_EXCEEDED", "monthly_cap_exceeded")

        return AccessGrant(
            user_id=identity.user_id,
            restaurant=restaurant,
            plan=plan,
            monthly_tokens=monthly_tokens,
        )
