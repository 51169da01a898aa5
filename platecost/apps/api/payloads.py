from __future__ import annotations

import json
from typing import Any

from fastapi import Request


async def read_json_object(request: Request) -> dict[str, Any]:
    # Body fields are validated after the caller is authenticated, so a
    # malformed body degrades to an empty object instead of failing early.
    raw = await request.body()
    if not raw:
        return {}
    try:
        payload = json.loads(raw)
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}
