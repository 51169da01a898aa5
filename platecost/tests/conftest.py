from __future__ import annotations

import os
import tempfile

# Point the engine at a throwaway SQLite file before any platecost module builds it.
os.environ.setdefault(
    "DATABASE_URL",
    f"sqlite+aiosqlite:///{os.path.join(tempfile.gettempdir(), f'platecost-test-{os.getpid()}.db')}",
)

import pytest  # noqa: E402

from platecost.core.config import get_settings  # noqa: E402
from platecost.services.telemetry import reset_telemetry  # noqa: E402


@pytest.fixture(autouse=True)
def reset_process_state() -> None:
    # Settings are cached and telemetry is process-global; isolate both per test.
    get_settings.cache_clear()
    reset_telemetry()
    yield
    get_settings.cache_clear()
    reset_telemetry()
