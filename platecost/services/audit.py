from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Any
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from platecost.domain.models import AuditLog
from platecost.persistence.db import SessionLocal


logger = logging.getLogger(__name__)

_SENSITIVE_KEY_PATTERNS = ["api_key", "authorization", "token", "secret", "password", "content"]
_REDACTED_VALUE = "[REDACTED]"
# token counts are metrics, not credentials
_SAFE_KEYS = {"tokens_used", "estimated_tokens"}


def _is_sensitive_key(key: str) -> bool:
    # Match sensitive key fragments case-insensitively to enforce redaction policy.
    lowered = key.lower()
    if lowered in _SAFE_KEYS:
        return False
    return any(pattern in lowered for pattern in _SENSITIVE_KEY_PATTERNS)


def sanitize_metadata(value: Any) -> Any:
    # Recursively scrub sensitive fields while preserving safe structure.
    if isinstance(value, dict):
        sanitized: dict[str, Any] = {}
        for raw_key, raw_value in value.items():
            key = str(raw_key)
            if _is_sensitive_key(key):
                sanitized[key] = _REDACTED_VALUE
            else:
                sanitized[key] = sanitize_metadata(raw_value)
        return sanitized
    if isinstance(value, list):
        return [sanitize_metadata(item) for item in value]
    return value


async def record_audit(
    *,
    action: str,
    entity_type: str,
    entity_id: str | None,
    actor_id: str | None = None,
    metadata: dict[str, Any] | None = None,
    occurred_at: datetime | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> bool:
    # Append audit rows in their own session; failures are logged and never raised.
    entry = AuditLog(
        id=uuid4().hex,
        actor_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        metadata_json=sanitize_metadata(metadata or {}),
        created_at=occurred_at or datetime.now(timezone.utc),
    )
    factory = session_factory or SessionLocal
    # Driver errors such as OSError reach here unwrapped by SQLAlchemy.
    try:
        async with factory() as audit_session:
            audit_session.add(entry)
            await audit_session.commit()
    except Exception as exc:  # noqa: BLE001 - audit writes never fail the caller
        logger.warning(
            "audit_write_failed action=%s entity_type=%s entity_id=%s",
            action,
            entity_type,
            entity_id,
            exc_info=exc,
        )
        return False
    return True
