from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any, Protocol

import httpx
import jwt

from platecost.core.config import get_settings
from platecost.core.errors import ConfigurationError, IdentityVerificationError


logger = logging.getLogger(__name__)

_JWT_ALGORITHMS = ["HS256"]


@dataclass(frozen=True)
class VerifiedIdentity:
    user_id: str
    claims: dict[str, Any] = field(default_factory=dict)


class IdentityVerifier(Protocol):
    async def verify(self, token: str) -> VerifiedIdentity:
        ...


def parse_bearer_token(header_value: str | None) -> str | None:
    # Enforce "Bearer <token>" with a non-empty token; anything else counts as missing.
    if not header_value:
        return None
    parts = header_value.split()
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1]:
        return None
    return parts[1]


class JwtIdentityVerifier:
    def __init__(self, *, secret: str, audience: str | None = "authenticated") -> None:
        self._secret = secret
        self._audience = audience

    async def verify(self, token: str) -> VerifiedIdentity:
        options = {"require": ["exp", "sub"], "verify_aud": self._audience is not None}
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=_JWT_ALGORITHMS,
                audience=self._audience,
                options=options,
            )
        except jwt.PyJWTError as exc:
            # Never echo token contents; the reason is enough for debugging.
            logger.info("identity_token_rejected reason=%s", type(exc).__name__)
            raise IdentityVerificationError("invalid session token") from exc
        subject = claims.get("sub")
        if not isinstance(subject, str) or not subject:
            raise IdentityVerificationError("token has no subject")
        return VerifiedIdentity(user_id=subject, claims=claims)


class RemoteIdentityVerifier:
    def __init__(
        self,
        *,
        base_url: str,
        anon_key: str,
        timeout_s: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._user_url = f"{base_url.rstrip('/')}/auth/v1/user"
        self._anon_key = anon_key
        self._timeout_s = timeout_s
        # Injectable transport keeps tests off the network.
        self._transport = transport

    async def verify(self, token: str) -> VerifiedIdentity:
        headers = {"apikey": self._anon_key, "Authorization": f"Bearer {token}"}
        try:
            async with httpx.AsyncClient(timeout=self._timeout_s, transport=self._transport) as client:
                response = await client.get(self._user_url, headers=headers)
        except httpx.HTTPError as exc:
            logger.warning("identity_remote_unavailable error=%s", type(exc).__name__)
            raise IdentityVerificationError("identity provider unavailable") from exc
        if response.status_code != 200:
            raise IdentityVerificationError(f"identity provider rejected token status={response.status_code}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise IdentityVerificationError("identity provider returned invalid JSON") from exc
        user_id = payload.get("id") if isinstance(payload, dict) else None
        if not isinstance(user_id, str) or not user_id:
            raise IdentityVerificationError("identity provider returned no user id")
        return VerifiedIdentity(user_id=user_id, claims=payload)


def get_identity_verifier() -> IdentityVerifier:
    settings = get_settings()
    mode = (settings.auth_verifier or "jwt").lower()
    if mode == "remote":
        if not settings.supabase_url or not settings.supabase_anon_key:
            raise ConfigurationError("SUPABASE_URL and SUPABASE_ANON_KEY are required for remote auth")
        return RemoteIdentityVerifier(
            base_url=settings.supabase_url,
            anon_key=settings.supabase_anon_key,
            timeout_s=settings.auth_remote_timeout_s,
        )
    if not settings.supabase_jwt_secret:
        raise ConfigurationError("SUPABASE_JWT_SECRET is required for jwt auth")
    return JwtIdentityVerifier(
        secret=settings.supabase_jwt_secret,
        audience=settings.auth_jwt_audience or None,
    )
