from __future__ import annotations

from typing import AsyncIterator, Protocol


class CompletionStream(Protocol):
    status_code: int

    def aiter_bytes(self) -> AsyncIterator[bytes]:
        ...

    async def aread(self) -> bytes:
        ...

    async def aclose(self) -> None:
        ...


class CompletionProvider(Protocol):
    model: str

    async def open_stream(self, messages: list[dict]) -> CompletionStream:
        ...
