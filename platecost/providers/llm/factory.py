from __future__ import annotations

from platecost.core.config import get_settings
from platecost.core.errors import ConfigurationError
from platecost.providers.llm.base import CompletionProvider
from platecost.providers.llm.fake import FakeCompletionProvider
from platecost.providers.llm.gateway import GatewayCompletionProvider


def get_completion_provider() -> CompletionProvider:
    settings = get_settings()
    provider = (settings.llm_provider or "gateway").lower()

    if provider == "fake":
        return FakeCompletionProvider(model=settings.ai_model)
    if not settings.ai_gateway_api_key:
        raise ConfigurationError("AI_GATEWAY_API_KEY is not configured")
    return GatewayCompletionProvider(
        url=settings.ai_gateway_url,
        api_key=settings.ai_gateway_api_key,
        model=settings.ai_model,
        timeout_s=settings.ai_gateway_timeout_s,
    )
