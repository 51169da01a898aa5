from __future__ import annotations


class PlatecostError(Exception):
    """Base error for PlateCost."""


class ConfigurationError(PlatecostError):
    """Missing or invalid runtime configuration (secret, key, URL)."""


class IdentityVerificationError(PlatecostError):
    """Bearer token rejected by the identity verifier."""


class WebhookPayloadError(PlatecostError):
    """Webhook body is not a usable provider event."""


class UpstreamError(PlatecostError):
    """Completion service returned a non-success status."""

    def __init__(self, status_code: int, message: str = "upstream request failed") -> None:
        super().__init__(message)
        self.status_code = status_code


class GateError(PlatecostError):
    """Request rejected by an access check; carries the HTTP status to surface."""

    def __init__(self, status_code: int, code: str, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message


class SalesImportError(PlatecostError):
    """Parsed sales rows failed validation; carries every validation error."""

    def __init__(self, errors: list[str]) -> None:
        super().__init__("; ".join(errors) or "sales import rejected")
        self.errors = list(errors)


class ImportNotFoundError(PlatecostError):
    """Sales import does not exist for the requesting restaurant."""
