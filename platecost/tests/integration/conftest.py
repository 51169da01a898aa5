from __future__ import annotations

import pytest

from platecost.core.config import get_settings
from platecost.domain.models import Base
from platecost.persistence.db import engine
from platecost.tests.utils.auth import TEST_JWT_SECRET, TEST_WEBHOOK_SECRET


@pytest.fixture(autouse=True)
async def fresh_schema() -> None:
    # Rebuild the schema per test so rows never leak between cases.
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    # Dispose the async engine to prevent cross-loop connection reuse between tests.
    await engine.dispose()


@pytest.fixture(autouse=True)
def service_env(monkeypatch) -> None:
    monkeypatch.setenv("SUPABASE_JWT_SECRET", TEST_JWT_SECRET)
    monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", TEST_WEBHOOK_SECRET)
    monkeypatch.setenv("AUTH_VERIFIER", "jwt")
    monkeypatch.setenv("LLM_PROVIDER", "fake")
    monkeypatch.setenv("MESSAGES_LOCALE", "en")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
