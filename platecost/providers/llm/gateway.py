from __future__ import annotations

import logging
import time
from typing import AsyncIterator

import httpx

from platecost.core.errors import UpstreamError
from platecost.services.telemetry import record_external_call


logger = logging.getLogger(__name__)

INTEGRATION_NAME = "ai_gateway"


class GatewayCompletionStream:
    def __init__(self, client: httpx.AsyncClient, response: httpx.Response) -> None:
        self._client = client
        self._response = response
        self.status_code = response.status_code

    async def aiter_bytes(self) -> AsyncIterator[bytes]:
        # Forward body bytes as received; the client parses the SSE framing.
        async for chunk in self._response.aiter_bytes():
            yield chunk

    async def aread(self) -> bytes:
        return await self._response.aread()

    async def aclose(self) -> None:
        try:
            await self._response.aclose()
        finally:
            await self._client.aclose()


class GatewayCompletionProvider:
    def __init__(
        self,
        *,
        url: str,
        api_key: str,
        model: str,
        timeout_s: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url
        self._api_key = api_key
        self.model = model
        self._timeout_s = timeout_s
        # Injectable transport keeps tests off the network.
        self._transport = transport

    async def open_stream(self, messages: list[dict]) -> GatewayCompletionStream:
        client = httpx.AsyncClient(timeout=self._timeout_s, transport=self._transport)
        request = client.build_request(
            "POST",
            self._url,
            headers={"Authorization": f"Bearer {self._api_key}", "Content-Type": "application/json"},
            json={"model": self.model, "messages": messages, "stream": True},
        )
        started = time.monotonic()
        try:
            # Single attempt: a retried stream could double-bill the tenant.
            response = await client.send(request, stream=True)
        except httpx.HTTPError as exc:
            await client.aclose()
            record_external_call(
                integration=INTEGRATION_NAME,
                latency_ms=(time.monotonic() - started) * 1000.0,
                success=False,
            )
            logger.warning("ai_gateway_unreachable error=%s", type(exc).__name__)
            raise UpstreamError(502, "completion gateway unreachable") from exc
        record_external_call(
            integration=INTEGRATION_NAME,
            latency_ms=(time.monotonic() - started) * 1000.0,
            success=response.status_code < 400,
            status_code=response.status_code,
        )
        return GatewayCompletionStream(client, response)
