from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import SQLAlchemyError

from platecost.apps.api.deps import completion_provider
from platecost.apps.api.main import create_app
from platecost.core.config import get_settings
from platecost.persistence.db import engine
from platecost.providers.llm.fake import FakeCompletionProvider, FakeCompletionStream, sse_chunks
from platecost.services import audit as audit_service
from platecost.services import usage as usage_service
from platecost.tests.utils.auth import (
    add_usage,
    auth_headers,
    list_audit,
    list_usage,
    seed_menu,
    seed_restaurant,
)


async def _chat(payload: dict, headers: dict, provider: FakeCompletionProvider):
    app = create_app()
    app.dependency_overrides[completion_provider] = lambda: provider
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        return await client.post("/ai-chat", json=payload, headers=headers)


def _messages(text: str = "How do I price biryani?") -> list[dict]:
    return [{"role": "user", "content": text}]


@pytest.mark.asyncio
async def test_elite_owner_streams_completion_and_logs_usage() -> None:
    restaurant_id = await seed_restaurant(owner_id="owner-a", plan="elite")
    await seed_menu(restaurant_id)
    provider = FakeCompletionProvider(response="Raise the price")

    response = await _chat(
        {"restaurantId": restaurant_id, "messages": _messages("x" * 40)},
        auth_headers("owner-a"),
        provider,
    )

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.headers["access-control-allow-origin"] == "*"
    assert response.content.endswith(b"data: [DONE]\n\n")
    assert b'"Raise "' in response.content

    sent = provider.calls[0]
    assert sent[0]["role"] == "system"
    assert "Biryani" in sent[0]["content"]
    assert sent[1:] == [{"role": "user", "content": "x" * 40}]
    assert provider.streams[0].closed is True

    usage = await list_usage(restaurant_id)
    assert [entry.tokens_used for entry in usage] == [510]
    assert usage[0].user_id == "owner-a"
    assert usage[0].model == provider.model
    audits = await list_audit("ai_chat")
    assert len(audits) == 1
    assert audits[0].entity_id == restaurant_id
    assert audits[0].metadata_json == {"message_count": 1}


@pytest.mark.asyncio
async def test_free_owner_gets_upgrade_message_without_upstream_call() -> None:
    restaurant_id = await seed_restaurant(owner_id="owner-a", plan="free")
    provider = FakeCompletionProvider()

    response = await _chat(
        {"restaurantId": restaurant_id, "messages": _messages()},
        auth_headers("owner-a"),
        provider,
    )

    assert response.status_code == 403
    assert response.json()["code"] == "PLAN_UPGRADE_REQUIRED"
    assert "Elite" in response.json()["error"]
    assert provider.calls == []
    assert await list_usage(restaurant_id) == []


@pytest.mark.asyncio
async def test_elite_owner_over_cap_is_rate_limited() -> None:
    restaurant_id = await seed_restaurant(owner_id="owner-a", plan="elite")
    await add_usage(restaurant_id, tokens=100_500)
    provider = FakeCompletionProvider()

    response = await _chat(
        {"restaurantId": restaurant_id, "messages": _messages()},
        auth_headers("owner-a"),
        provider,
    )

    assert response.status_code == 429
    assert response.json()["code"] == "MONTHLY_CAP_EXCEEDED"
    assert "next month" in response.json()["error"]
    assert provider.calls == []


@pytest.mark.asyncio
async def test_elite_owner_just_under_cap_is_allowed() -> None:
    restaurant_id = await seed_restaurant(owner_id="owner-a", plan="elite")
    await add_usage(restaurant_id, tokens=99_999)
    provider = FakeCompletionProvider()

    response = await _chat(
        {"restaurantId": restaurant_id, "messages": _messages()},
        auth_headers("owner-a"),
        provider,
    )

    assert response.status_code == 200
    assert len(provider.calls) == 1


@pytest.mark.asyncio
async def test_other_tenant_is_forbidden_and_sees_no_data() -> None:
    victim_id = await seed_restaurant(owner_id="owner-b", plan="elite")
    await seed_menu(victim_id)
    provider = FakeCompletionProvider()

    response = await _chat(
        {"restaurantId": victim_id, "messages": _messages()},
        auth_headers("owner-a"),
        provider,
    )

    assert response.status_code == 403
    assert response.json()["code"] == "RESTAURANT_FORBIDDEN"
    assert "Biryani" not in response.text
    assert provider.calls == []


@pytest.mark.asyncio
async def test_auth_and_tenant_errors() -> None:
    provider = FakeCompletionProvider()

    missing = await _chat({"restaurantId": "r", "messages": _messages()}, {}, provider)
    expired = await _chat(
        {"restaurantId": "r", "messages": _messages()},
        auth_headers("owner-a", expires_in_s=-60),
        provider,
    )
    no_restaurant = await _chat({"messages": _messages()}, auth_headers("owner-a"), provider)

    assert (missing.status_code, missing.json()["code"]) == (401, "AUTH_MISSING")
    assert (expired.status_code, expired.json()["code"]) == (401, "AUTH_INVALID")
    assert (no_restaurant.status_code, no_restaurant.json()["code"]) == (400, "RESTAURANT_ID_REQUIRED")
    assert provider.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("upstream_status", "expected_status", "expected_code"),
    [
        (429, 429, "UPSTREAM_RATE_LIMITED"),
        (402, 402, "UPSTREAM_PAYMENT_REQUIRED"),
        (500, 500, "UPSTREAM_ERROR"),
        (503, 500, "UPSTREAM_ERROR"),
    ],
)
async def test_upstream_failures_are_translated(upstream_status, expected_status, expected_code) -> None:
    restaurant_id = await seed_restaurant(owner_id="owner-a", plan="elite")
    provider = FakeCompletionProvider(
        status_code=upstream_status, error_body=b'{"error":"internal upstream detail"}'
    )

    response = await _chat(
        {"restaurantId": restaurant_id, "messages": _messages()},
        auth_headers("owner-a"),
        provider,
    )

    assert response.status_code == expected_status
    assert response.json()["code"] == expected_code
    assert "internal upstream detail" not in response.text
    assert provider.streams[0].closed is True
    assert await list_usage(restaurant_id) == []


class _FailingSession:
    # Stands in for a session whose commit hits a store error.
    async def __aenter__(self) -> "_FailingSession":
        return self

    async def __aexit__(self, *exc_info) -> bool:
        return False

    def add(self, entry) -> None:
        return None

    async def commit(self) -> None:
        raise SQLAlchemyError("usage store unavailable")

    async def rollback(self) -> None:
        return None


@pytest.mark.asyncio
async def test_usage_write_failure_does_not_break_stream(monkeypatch) -> None:
    restaurant_id = await seed_restaurant(owner_id="owner-a", plan="elite")
    provider = FakeCompletionProvider(response="still streaming")
    monkeypatch.setattr(usage_service, "SessionLocal", lambda: _FailingSession())

    response = await _chat(
        {"restaurantId": restaurant_id, "messages": _messages()},
        auth_headers("owner-a"),
        provider,
    )

    assert response.status_code == 200
    assert b'"still "' in response.content
    assert await list_usage(restaurant_id) == []
    assert len(await list_audit("ai_chat")) == 1


class _UnreachableDriverSession(_FailingSession):
    # Connection failures from the driver are raised unwrapped.
    async def commit(self) -> None:
        raise ConnectionRefusedError(111, "Connection refused")


@pytest.mark.asyncio
async def test_driver_errors_in_usage_and_audit_keep_the_stream(monkeypatch) -> None:
    restaurant_id = await seed_restaurant(owner_id="owner-a", plan="elite")
    provider = FakeCompletionProvider(response="still streaming")
    monkeypatch.setattr(usage_service, "SessionLocal", lambda: _UnreachableDriverSession())
    monkeypatch.setattr(audit_service, "SessionLocal", lambda: _UnreachableDriverSession())

    response = await _chat(
        {"restaurantId": restaurant_id, "messages": _messages()},
        auth_headers("owner-a"),
        provider,
    )

    assert response.status_code == 200
    assert response.content.endswith(b"data: [DONE]\n\n")
    assert provider.streams[0].closed is True
    assert await list_usage(restaurant_id) == []


class _PoolSamplingStream(FakeCompletionStream):
    def __init__(self, chunks: list[bytes]) -> None:
        super().__init__(chunks)
        self.checked_out: list[int] = []

    async def aiter_bytes(self):
        for chunk in self._chunks:
            self.checked_out.append(engine.sync_engine.pool.checkedout())
            yield chunk


class _PoolSamplingProvider(FakeCompletionProvider):
    async def open_stream(self, messages: list[dict]) -> _PoolSamplingStream:
        self.calls.append(messages)
        stream = _PoolSamplingStream(sse_chunks("one two three"))
        self.streams.append(stream)
        return stream


@pytest.mark.asyncio
async def test_request_session_releases_connection_before_streaming() -> None:
    restaurant_id = await seed_restaurant(owner_id="owner-a", plan="elite")
    await seed_menu(restaurant_id)
    provider = _PoolSamplingProvider()

    response = await _chat(
        {"restaurantId": restaurant_id, "messages": _messages()},
        auth_headers("owner-a"),
        provider,
    )

    assert response.status_code == 200
    samples = provider.streams[0].checked_out
    assert len(samples) == 4
    assert samples == [0, 0, 0, 0]


@pytest.mark.asyncio
async def test_missing_gateway_key_is_configuration_error(monkeypatch) -> None:
    monkeypatch.setenv("LLM_PROVIDER", "gateway")
    monkeypatch.delenv("AI_GATEWAY_API_KEY", raising=False)
    get_settings.cache_clear()
    restaurant_id = await seed_restaurant(owner_id="owner-a", plan="elite")

    app = create_app()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.post(
            "/ai-chat",
            json={"restaurantId": restaurant_id, "messages": _messages()},
            headers=auth_headers("owner-a"),
        )

    assert response.status_code == 500
    assert response.json()["code"] == "CONFIG_MISSING"


@pytest.mark.asyncio
async def test_preflight_lists_client_headers() -> None:
    app = create_app()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.options("/ai-chat")

    assert response.status_code == 200
    assert "authorization" in response.headers["access-control-allow-headers"]
    assert response.headers["access-control-allow-origin"] == "*"
