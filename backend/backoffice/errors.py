# Overview: Error taxonomy shared by services and API routes.

"""
Back-office error taxonomy.

DESIGN:
- Every business failure is a BackofficeError subclass carrying a stable
  machine-readable `code`, the HTTP status the API boundary should use, and a
  `details` dict (entity ids, requested vs available quantities) so callers
  can render an actionable message.
- Errors are raised before any mutation, or inside atomic() so the whole
  transaction rolls back. Nothing here is retried.
"""

from __future__ import annotations

from typing import Any


class BackofficeError(Exception):
    """Base class for expected, caller-visible failures."""

    code = "error"
    http_status = 400

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code, "details": self.details}


class ValidationError(BackofficeError, ValueError):
    """400-level input problem."""
    code = "validation_error"
    http_status = 400


class AuthorizationError(BackofficeError):
    code = "forbidden"
    http_status = 403


class NotFoundError(BackofficeError):
    code = "not_found"
    http_status = 404


class ProductNotFoundError(NotFoundError):
    code = "product_not_found"


class ItemNotInOrderError(NotFoundError):
    code = "item_not_in_order"


class ConflictError(BackofficeError, ValueError):
    """409-level business rule conflict (e.g., duplicate SKU, illegal transition)."""
    code = "conflict"
    http_status = 409


class InsufficientStockError(BackofficeError):
    code = "insufficient_stock"
    http_status = 409


class OverReturnError(BackofficeError):
    code = "over_return"
    http_status = 409


class OverReceiveError(BackofficeError):
    code = "over_receive"
    http_status = 409


class RefundMismatchError(BackofficeError):
    code = "refund_mismatch"
    http_status = 422


class PaymentPreconditionError(BackofficeError):
    code = "payment_precondition"
    http_status = 409


class StoreUnavailableError(BackofficeError):
    """Unexpected store-level failure, surfaced after rollback."""
    code = "store_unavailable"
    http_status = 503
