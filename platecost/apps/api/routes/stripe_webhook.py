from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from platecost.apps.api.cors import WEBHOOK_ALLOW_HEADERS, preflight_response
from platecost.apps.api.deps import event_processor
from platecost.apps.api.errors import error_response
from platecost.core.config import get_settings
from platecost.core.errors import WebhookPayloadError
from platecost.core.messages import get_message
from platecost.services.stripe_events import StripeEventProcessor
from platecost.services.telemetry import increment_counter
from platecost.services.webhook_signature import (
    SIGNATURE_HEADER,
    parse_signature_header,
    verify_signature,
)


logger = logging.getLogger(__name__)
router = APIRouter(tags=["billing"])


@router.options("/stripe-webhook", include_in_schema=False)
async def stripe_webhook_preflight() -> Response:
    return preflight_response(allow_headers=WEBHOOK_ALLOW_HEADERS, allow_methods="POST, OPTIONS")


@router.post("/stripe-webhook")
async def stripe_webhook(
    request: Request,
    processor: StripeEventProcessor = Depends(event_processor),
) -> JSONResponse:
    settings = get_settings()
    secret = settings.stripe_webhook_secret
    if not secret:
        logger.error("stripe_webhook_secret_missing")
        return error_response(500, "CONFIG_MISSING", get_message("webhook_not_configured"))

    header = request.headers.get(SIGNATURE_HEADER)
    if not header or parse_signature_header(header) is None:
        return error_response(400, "SIGNATURE_MISSING", get_message("signature_missing"))

    # Verify over the exact bytes received; re-serialized JSON would not match.
    payload = await request.body()
    if not verify_signature(
        payload,
        header,
        secret,
        tolerance_s=settings.stripe_signature_tolerance_s,
        reject_future=settings.stripe_reject_future_timestamps,
    ):
        increment_counter("stripe_webhook.signature_invalid")
        logger.warning("stripe_webhook_signature_invalid")
        return error_response(401, "SIGNATURE_INVALID", get_message("signature_invalid"))

    try:
        event = json.loads(payload)
    except ValueError:
        return error_response(400, "PAYLOAD_INVALID", get_message("payload_invalid"))

    try:
        result = await processor.process(event)
    except WebhookPayloadError as exc:
        logger.info("stripe_webhook_payload_invalid reason=%s", exc)
        return error_response(400, "PAYLOAD_INVALID", get_message("payload_invalid"))
    except Exception:
        # Nothing was committed; the provider retries and the event is reprocessed.
        logger.exception("stripe_webhook_failed")
        return error_response(500, "WEBHOOK_FAILED", get_message("webhook_failed"))

    return JSONResponse(content=result.to_payload(), status_code=200)
