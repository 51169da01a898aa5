from __future__ import annotations

from fastapi import Response

from platecost.core.config import get_settings


# Browser clients send these alongside the session bearer.
CLIENT_ALLOW_HEADERS = "authorization, x-client-info, apikey, content-type"
WEBHOOK_ALLOW_HEADERS = "content-type, stripe-signature"


def allow_origin_headers() -> dict[str, str]:
    return {"Access-Control-Allow-Origin": get_settings().cors_allow_origin}


def preflight_response(*, allow_headers: str, allow_methods: str) -> Response:
    # Empty 200 for OPTIONS; scoped to the methods and headers the route needs.
    headers = allow_origin_headers()
    headers["Access-Control-Allow-Headers"] = allow_headers
    headers["Access-Control-Allow-Methods"] = allow_methods
    return Response(status_code=200, headers=headers)
