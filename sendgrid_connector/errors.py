"""Structured exceptions raised by the SendGrid connector."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


class SendGridError(Exception):
    """Base exception for all connector errors."""


class ConfigError(SendGridError):
    """Missing or invalid configuration. Fatal at startup."""


class InvalidCursor(SendGridError):
    """Malformed continuation token. Fatal to the current sync pass."""


class SyncCancelled(SendGridError):
    """The orchestrator asked for the current work to stop."""


class ProvisioningError(SendGridError):
    """A grant/revoke request that cannot be applied (wrong principal, bad scope)."""


class UpstreamError(SendGridError):
    """Base for failures reported by the SendGrid API."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.message = message
        self.status_code = status_code
        if status_code is not None:
            super().__init__(f"[{status_code}] {message}")
        else:
            super().__init__(message)


class Unauthorized(UpstreamError):
    """401: the API key was rejected."""


class Forbidden(UpstreamError):
    """403: the API key lacks the required scope."""


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str

    def __str__(self) -> str:
        if not self.field:
            return self.message
        return f"field: {self.field}, message: {self.message}"


class UpstreamValidation(UpstreamError):
    """400/404 carrying SendGrid's ``{"errors": [{field, message}]}`` payload."""

    def __init__(self, field_errors: list[FieldError], status_code: Optional[int] = None) -> None:
        self.field_errors = list(field_errors)
        message = "; ".join(str(e) for e in self.field_errors) or "validation failed"
        super().__init__(message, status_code)


class TransportError(UpstreamError):
    """Network, decode or unexpected-status failure. Safe to retry."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        self.cause = cause
        super().__init__(message, status_code)
