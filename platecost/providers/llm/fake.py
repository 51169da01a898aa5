from __future__ import annotations

import json
from typing import AsyncIterator


class FakeCompletionStream:
    def __init__(self, chunks: list[bytes], status_code: int = 200) -> None:
        self.status_code = status_code
        self._chunks = chunks
        self.closed = False

    async def aiter_bytes(self) -> AsyncIterator[bytes]:
        for chunk in self._chunks:
            yield chunk

    async def aread(self) -> bytes:
        return b"".join(self._chunks)

    async def aclose(self) -> None:
        self.closed = True


def sse_chunks(response: str) -> list[bytes]:
    # Mirror the gateway's OpenAI-style SSE framing, one delta per word.
    chunks = []
    for token in response.split():
        payload = {"choices": [{"delta": {"content": f"{token} "}}]}
        chunks.append(f"data: {json.dumps(payload)}\n\n".encode("utf-8"))
    chunks.append(b"data: [DONE]\n\n")
    return chunks


class FakeCompletionProvider:
    def __init__(
        self,
        response: str = "This is a fake response.",
        *,
        status_code: int = 200,
        error_body: bytes = b'{"error":"fake upstream failure"}',
        model: str = "fake-model",
    ) -> None:
        # Deterministic response keeps tests stable without external calls.
        self._response = response
        self._status_code = status_code
        self._error_body = error_body
        self.model = model
        self.calls: list[list[dict]] = []
        self.streams: list[FakeCompletionStream] = []

    async def open_stream(self, messages: list[dict]) -> FakeCompletionStream:
        self.calls.append(messages)
        if self._status_code >= 400:
            stream = FakeCompletionStream([self._error_body], status_code=self._status_code)
        else:
            stream = FakeCompletionStream(sse_chunks(self._response), status_code=self._status_code)
        self.streams.append(stream)
        return stream
