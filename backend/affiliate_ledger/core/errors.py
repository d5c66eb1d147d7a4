"""
Domain errors raised by the affiliate ledger.

Every error carries a stable ``code`` and the HTTP status the API layer
renders it with, so services can raise them without knowing about FastAPI.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class AffiliateError(Exception):
    code: str
    message: str
    status_code: int
    context: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.context:
            payload["context"] = self.context
        return payload


class NotFoundError(AffiliateError):
    def __init__(self, message: str, **context: Any):
        super().__init__(code="not_found", message=message, status_code=404, context=context)


class InactiveError(AffiliateError):
    """Affiliate is not active, or the program itself is disabled."""

    def __init__(self, message: str, **context: Any):
        super().__init__(code="inactive_or_disabled", message=message, status_code=403, context=context)


class ValidationError(AffiliateError):
    def __init__(self, message: str, **context: Any):
        super().__init__(code="validation_error", message=message, status_code=422, context=context)


class InvalidStateError(AffiliateError):
    def __init__(self, message: str, *, current_status: str | None = None, **context: Any):
        if current_status is not None:
            context["current_status"] = current_status
        super().__init__(code="invalid_state", message=message, status_code=409, context=context)


class InsufficientReversalError(AffiliateError):
    """Reversing an approved commission would push the balance below zero."""

    def __init__(self, message: str, **context: Any):
        super().__init__(code="insufficient_reversal", message=message, status_code=409, context=context)


class ConcurrencyConflict(AffiliateError):
    def __init__(self, message: str, **context: Any):
        super().__init__(code="concurrency_conflict", message=message, status_code=503, context=context)


class ConfigurationError(AffiliateError):
    def __init__(self, message: str, **context: Any):
        super().__init__(code="configuration_error", message=message, status_code=503, context=context)
