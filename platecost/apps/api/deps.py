from __future__ import annotations

from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from platecost.persistence.db import get_session
from platecost.providers.llm.base import CompletionProvider
from platecost.providers.llm.factory import get_completion_provider
from platecost.services.auth.identity import IdentityVerifier, get_identity_verifier
from platecost.services.sales_import import SalesImportService
from platecost.services.stripe_events import StripeEventProcessor


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    # One AsyncSession per request; context manager ensures close on success/error.
    async with get_session() as session:
        yield session


def identity_verifier() -> IdentityVerifier:
    # Resolved per request so configuration changes apply without a restart.
    return get_identity_verifier()


def completion_provider() -> CompletionProvider:
    return get_completion_provider()


def event_processor() -> StripeEventProcessor:
    return StripeEventProcessor()


def sales_import_service() -> SalesImportService:
    return SalesImportService()
