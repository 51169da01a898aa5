from __future__ import annotations

import time
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from platecost.apps.api.cors import allow_origin_headers
from platecost.apps.api.errors import (
    configuration_exception_handler,
    gate_exception_handler,
    http_exception_handler,
    import_not_found_exception_handler,
    sales_import_exception_handler,
    starlette_http_exception_handler,
    unhandled_exception_handler,
    upstream_exception_handler,
    validation_exception_handler,
)
from platecost.apps.api.routes.ai_chat import router as ai_chat_router
from platecost.apps.api.routes.health import router as health_router
from platecost.apps.api.routes.sales import router as sales_router
from platecost.apps.api.routes.stripe_webhook import router as stripe_webhook_router
from platecost.core.config import get_settings
from platecost.core.errors import (
    ConfigurationError,
    GateError,
    ImportNotFoundError,
    SalesImportError,
    UpstreamError,
)
from platecost.core.logging import configure_logging
from platecost.services.telemetry import record_request


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title=f"{get_settings().app_name} API")

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):  # type: ignore[override]
        # Preserve incoming request IDs or assign a new one for traceability.
        request_id = request.headers.get("X-Request-Id") or str(uuid4())
        request.state.request_id = request_id
        start = time.monotonic()
        response = await call_next(request)
        latency_ms = (time.monotonic() - start) * 1000.0
        record_request(
            path=request.url.path,
            status_code=response.status_code,
            latency_ms=latency_ms,
        )
        response.headers.setdefault("X-Request-Id", request_id)
        # Browser callers need the allow-origin header on errors as well as successes.
        for key, value in allow_origin_headers().items():
            response.headers.setdefault(key, value)
        return response

    app.add_exception_handler(GateError, gate_exception_handler)
    app.add_exception_handler(ConfigurationError, configuration_exception_handler)
    app.add_exception_handler(UpstreamError, upstream_exception_handler)
    app.add_exception_handler(SalesImportError, sales_import_exception_handler)
    app.add_exception_handler(ImportNotFoundError, import_not_found_exception_handler)
    app.add_exception_handler(StarletteHTTPException, starlette_http_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(health_router)
    app.include_router(stripe_webhook_router)
    app.include_router(ai_chat_router)
    app.include_router(sales_router)
    return app


app = create_app()
