from __future__ import annotations

import logging
from typing import AsyncGenerator

from fastapi import APIRouter, Depends, Header, Request, Response
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.background import BackgroundTask

from platecost.apps.api.cors import CLIENT_ALLOW_HEADERS, preflight_response
from platecost.apps.api.deps import completion_provider, get_db, identity_verifier
from platecost.apps.api.payloads import read_json_object
from platecost.core.config import get_settings
from platecost.core.errors import UpstreamError
from platecost.providers.llm.base import CompletionProvider, CompletionStream
from platecost.services.access_gate import AccessGate, AccessGrant
from platecost.services.audit import record_audit
from platecost.services.auth.identity import IdentityVerifier
from platecost.services.chat_context import (
    build_completion_messages,
    build_system_prompt,
    load_restaurant_context,
    sanitize_messages,
)
from platecost.services.entitlements import FEATURE_AI_ASSISTANT
from platecost.services.usage import estimate_chat_tokens, record_usage


logger = logging.getLogger(__name__)
router = APIRouter(tags=["assistant"])

# Upstream error bodies are logged, truncated, for diagnosis only.
_MAX_LOGGED_ERROR_BODY = 1000


async def _proxy(stream: CompletionStream) -> AsyncGenerator[bytes, None]:
    # Relay upstream bytes unmodified; closing here also covers client disconnects.
    try:
        async for chunk in stream.aiter_bytes():
            yield chunk
    finally:
        await stream.aclose()


@router.options("/ai-chat", include_in_schema=False)
async def ai_chat_preflight() -> Response:
    return preflight_response(allow_headers=CLIENT_ALLOW_HEADERS, allow_methods="POST, OPTIONS")


@router.post("/ai-chat")
async def ai_chat(
    request: Request,
    authorization: str | None = Header(default=None),
    db: AsyncSession = Depends(get_db),
    verifier: IdentityVerifier = Depends(identity_verifier),
    provider: CompletionProvider = Depends(completion_provider),
) -> StreamingResponse:
    settings = get_settings()
    payload = await read_json_object(request)

    gate = AccessGate(
        identity_verifier=verifier,
        feature=FEATURE_AI_ASSISTANT,
        monthly_token_cap=settings.ai_monthly_token_cap,
    )
    grant = await gate.authorize(db, authorization, payload.get("restaurantId"))

    messages = sanitize_messages(payload.get("messages") or [], settings.ai_max_input_chars)
    context = await load_restaurant_context(db, grant.restaurant)
    system_prompt = build_system_prompt(context, settings.messages_locale)
    # End the read transaction so the pooled connection is not held while the stream is relayed.
    await db.commit()

    stream = await provider.open_stream(build_completion_messages(system_prompt, messages))
    try:
        return await _start_relay(stream, grant, messages, provider.model)
    except BaseException:
        # The response never took ownership of the stream; close it here.
        await stream.aclose()
        raise


async def _start_relay(
    stream: CompletionStream,
    grant: AccessGrant,
    messages: list[dict[str, str]],
    model: str,
) -> StreamingResponse:
    settings = get_settings()
    if stream.status_code >= 400:
        body = await stream.aread()
        logger.error(
            "ai_gateway_error status=%s restaurant_id=%s body=%s",
            stream.status_code,
            grant.restaurant.id,
            body[:_MAX_LOGGED_ERROR_BODY].decode("utf-8", errors="replace"),
        )
        raise UpstreamError(stream.status_code)

    # Usage and audit writes are best effort; each handles its own failures.
    estimated_tokens = estimate_chat_tokens(
        messages,
        chars_per_token=settings.ai_chars_per_token,
        overhead=settings.ai_token_overhead,
    )
    await record_usage(
        restaurant_id=grant.restaurant.id,
        user_id=grant.user_id,
        tokens_used=estimated_tokens,
        model=model,
    )
    await record_audit(
        actor_id=grant.user_id,
        action="ai_chat",
        entity_type="restaurant",
        entity_id=grant.restaurant.id,
        metadata={"message_count": len(messages)},
    )
    logger.info(
        "ai_chat_stream_started restaurant_id=%s messages=%s estimated_tokens=%s",
        grant.restaurant.id,
        len(messages),
        estimated_tokens,
    )
    return StreamingResponse(
        _proxy(stream),
        media_type="text/event-stream",
        background=BackgroundTask(stream.aclose),
    )
