"""Payment provider webhook signature verification.

The provider signs ``"{t}.{raw body}"`` with HMAC-SHA256 using the endpoint's
shared secret and sends ``Stripe-Signature: t=<unix seconds>,v1=<hex>``.
Verification must run over the exact raw request bytes, never a
re-serialized JSON document.
"""

from __future__ import annotations

from dataclasses import dataclass
import hashlib
import hmac
import string
import time


SIGNATURE_HEADER = "Stripe-Signature"
DEFAULT_TOLERANCE_S = 300

_HEX_DIGITS = frozenset(string.hexdigits)


@dataclass(frozen=True)
class SignatureHeader:
    timestamp: int
    # Several v1 entries are sent while a secret rotation is in progress.
    signatures: tuple[str, ...]


def parse_signature_header(header: str | None) -> SignatureHeader | None:
    # Return None for any missing or malformed part instead of raising.
    if not header:
        return None
    timestamp: int | None = None
    signatures: list[str] = []
    for item in header.split(","):
        key, sep, value = item.strip().partition("=")
        if not sep:
            continue
        value = value.strip()
        if key == "t":
            if not value.isdigit():
                return None
            timestamp = int(value)
        elif key == "v1":
            if not value or not set(value) <= _HEX_DIGITS:
                return None
            signatures.append(value)
    if timestamp is None or not signatures:
        return None
    return SignatureHeader(timestamp=timestamp, signatures=tuple(signatures))


def compute_signature(payload: bytes, timestamp: int, secret: str) -> str:
    # HMAC SHA256 over "{t}.{payload}", lowercase hex.
    signed_payload = f"{timestamp}.".encode("utf-8") + payload
    return hmac.new(secret.encode("utf-8"), signed_payload, hashlib.sha256).hexdigest()


def build_signature_header(payload: bytes, secret: str, timestamp: int | None = None) -> str:
    # Produce a provider-shaped header for local tooling and tests.
    ts = int(time.time()) if timestamp is None else int(timestamp)
    return f"t={ts},v1={compute_signature(payload, ts, secret)}"


def verify_signature(
    payload: bytes,
    header: str | None,
    secret: str,
    now: float | None = None,
    *,
    tolerance_s: int = DEFAULT_TOLERANCE_S,
    reject_future: bool = True,
) -> bool:
    parsed = parse_signature_header(header)
    if parsed is None:
        return False
    current = int(time.time() if now is None else now)
    age = current - parsed.timestamp
    if age > tolerance_s:
        return False
    if reject_future and -age > tolerance_s:
        return False
    expected = compute_signature(payload, parsed.timestamp, secret)
    # Digests are lowercase hex; an uppercased candidate is a different value and never matches.
    matched = False
    # Compare against every candidate without short-circuiting.
    for candidate in parsed.signatures:
        if hmac.compare_digest(expected, candidate):
            matched = True
    return matched
