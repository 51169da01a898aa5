from __future__ import annotations

import time
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Deque


@dataclass(frozen=True)
class RequestSample:
    ts: float
    path: str
    status_code: int
    latency_ms: float


@dataclass(frozen=True)
class ExternalCallSample:
    ts: float
    integration: str
    latency_ms: float
    success: bool
    status_code: int | None


_request_samples: Deque[RequestSample] = deque(maxlen=20000)
_external_samples: Deque[ExternalCallSample] = deque(maxlen=10000)
_counters: dict[str, int] = defaultdict(int)


def record_request(*, path: str, status_code: int, latency_ms: float) -> None:
    # Track request latency and status for availability reporting.
    _request_samples.append(
        RequestSample(ts=time.time(), path=path, status_code=status_code, latency_ms=latency_ms)
    )


def record_external_call(
    *,
    integration: str,
    latency_ms: float,
    success: bool,
    status_code: int | None = None,
) -> None:
    # Capture external call latency and outcomes.
    _external_samples.append(
        ExternalCallSample(
            ts=time.time(),
            integration=integration,
            latency_ms=latency_ms,
            success=success,
            status_code=status_code,
        )
    )


def increment_counter(name: str, value: int = 1) -> None:
    _counters[name] += value


def get_counter(name: str) -> int:
    return _counters.get(name, 0)


def external_calls(integration: str) -> list[ExternalCallSample]:
    return [sample for sample in _external_samples if sample.integration == integration]


def reset_telemetry() -> None:
    # Clear in-process state for deterministic tests.
    _request_samples.clear()
    _external_samples.clear()
    _counters.clear()
