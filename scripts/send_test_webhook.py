from __future__ import annotations

import argparse
import json
import sys
import time
from uuid import uuid4

import httpx

from platecost.core.config import get_settings
from platecost.services.webhook_signature import SIGNATURE_HEADER, build_signature_header


def _build_parser() -> argparse.ArgumentParser:
    # Sign a synthetic provider event so the webhook can be exercised locally.
    parser = argparse.ArgumentParser(description="Send a signed test event to the webhook endpoint")
    parser.add_argument("--url", default="http://localhost:8000/stripe-webhook")
    parser.add_argument("--customer", required=True, help="Provider customer id on the subscription")
    parser.add_argument("--type", default="customer.subscription.updated", dest="event_type")
    parser.add_argument("--lookup-key", default="plan_pro_monthly")
    parser.add_argument("--status", default="active")
    parser.add_argument("--event-id", default=None, help="Reuse an id to exercise replay handling")
    return parser


def build_event(args: argparse.Namespace) -> dict:
    return {
        "id": args.event_id or f"evt_test_{uuid4().hex}",
        "type": args.event_type,
        "created": int(time.time()),
        "data": {
            "object": {
                "id": f"sub_test_{args.customer}",
                "object": "subscription",
                "customer": args.customer,
                "status": args.status,
                "items": {"data": [{"price": {"lookup_key": args.lookup_key}}]},
            }
        },
    }


def main() -> int:
    args = _build_parser().parse_args()
    secret = get_settings().stripe_webhook_secret
    if not secret:
        print("STRIPE_WEBHOOK_SECRET is not set", file=sys.stderr)
        return 1
    body = json.dumps(build_event(args)).encode("utf-8")
    headers = {
        SIGNATURE_HEADER: build_signature_header(body, secret),
        "Content-Type": "application/json",
    }
    try:
        response = httpx.post(args.url, content=body, headers=headers, timeout=10.0)
    except httpx.HTTPError as exc:
        print(f"send_test_webhook failed: {exc}", file=sys.stderr)
        return 1
    print(f"status={response.status_code} body={response.text}")
    return 0 if response.status_code == 200 else 1


if __name__ == "__main__":
    raise SystemExit(main())
