from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import Boolean, Date, DateTime, Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError
from .time_utils import parse_iso_date, parse_iso_datetime


# Maximum money amount: 999,999,999.999
MAX_AMOUNT = Decimal("999999999.999")

# Two amounts closer than this are considered equal (payments, refunds, totals)
MONEY_TOLERANCE = Decimal("0.01")

PAYMENT_METHODS = {"cash", "card", "bank_transfer", "advance_on_dn"}


def money_equal(a: Decimal, b: Decimal) -> bool:
    return abs(Decimal(a) - Decimal(b)) <= MONEY_TOLERANCE


def money_at_least(amount: Decimal, target: Decimal) -> bool:
    return Decimal(amount) >= Decimal(target) - MONEY_TOLERANCE


def quantize_money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(Decimal("0.001"))


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


# =============================================================================
# SCALAR PARSERS
# =============================================================================

def parse_int(value: Any, field: str, *, minimum: int | None = None) -> int:
    """Strict integer parsing: rejects bools, floats, decimals and scientific notation."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", {"field": field})
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer", {"field": field})
        # Reject scientific notation (e.g., "1e15", "1E10")
        if "e" in stripped.lower():
            raise ValidationError(
                f"{field} must be a plain integer (scientific notation not allowed)", {"field": field}
            )
        # Reject decimal points (e.g., "12.5")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)", {"field": field})
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer", {"field": field}) from None
    elif isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal", {"field": field})
    else:
        raise ValidationError(f"{field} must be an integer", {"field": field})

    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be >= {minimum}", {"field": field, "value": result})
    return result


def parse_money(value: Any, field: str, *, allow_negative: bool = False) -> Decimal:
    """Parse a JSON number or numeric string into a Decimal amount."""
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} must be a number", {"field": field})
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number", {"field": field, "value": value}) from None
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a finite number", {"field": field})
    if not allow_negative and amount < 0:
        raise ValidationError(f"{field} must be >= 0", {"field": field, "value": str(amount)})
    if abs(amount) > MAX_AMOUNT:
        raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT}", {"field": field})
    return quantize_money(amount)


def parse_text(value: Any, field: str, *, required: bool = False, max_length: int | None = None) -> str | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(f"{field} is required", {"field": field})
        return None
    text = str(value).strip()
    if max_length is not None and len(text) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}", {"field": field})
    return text


def parse_date(value: Any, field: str) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be an ISO-8601 date", {"field": field})
    try:
        return parse_iso_date(value)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 date", {"field": field, "value": value}) from None


def require_list(value: Any, field: str, *, allow_empty: bool = False) -> list:
    if not isinstance(value, list):
        raise ValidationError(f"{field} must be a list", {"field": field})
    if not value and not allow_empty:
        raise ValidationError(f"{field} must not be empty", {"field": field})
    return value


def parse_payment(entry: Any, index: int = 0) -> dict:
    """
    Normalize one payment entry: {"method", "amount", "reference"?, "notes"?}.

    Amounts must be strictly positive; the method must be a known payment method.
    """
    if not isinstance(entry, dict):
        raise ValidationError(f"payments[{index}] must be an object", {"index": index})
    method = parse_text(entry.get("method"), f"payments[{index}].method", required=True)
    if method not in PAYMENT_METHODS:
        raise ValidationError(
            f"Unsupported payment method '{method}'",
            {"index": index, "method": method, "allowed": sorted(PAYMENT_METHODS)},
        )
    amount = parse_money(entry.get("amount"), f"payments[{index}].amount")
    if amount <= 0:
        raise ValidationError(
            f"payments[{index}].amount must be > 0", {"index": index, "amount": str(amount)}
        )
    return {
        "method": method,
        "amount": amount,
        "reference": parse_text(entry.get("reference") or entry.get("transaction_id"), "reference", max_length=128),
        "notes": parse_text(entry.get("notes"), "notes", max_length=255),
    }


def parse_payments(value: Any, *, required: bool = False) -> list[dict]:
    if value is None:
        if required:
            raise ValidationError("payments is required", {"field": "payments"})
        return []
    entries = require_list(value, "payments", allow_empty=not required)
    return [parse_payment(entry, i) for i, entry in enumerate(entries)]


def parse_taxes(value: Any) -> list[dict]:
    """[{"name", "rate", "amount"?}] -> normalized list; amount is computed later when omitted."""
    if value is None:
        return []
    taxes = []
    for i, entry in enumerate(require_list(value, "taxes", allow_empty=True)):
        if not isinstance(entry, dict):
            raise ValidationError(f"taxes[{i}] must be an object", {"index": i})
        rate = parse_money(entry.get("rate", 0), f"taxes[{i}].rate")
        if rate > 100:
            raise ValidationError(f"taxes[{i}].rate must be <= 100", {"index": i})
        taxes.append({
            "name": parse_text(entry.get("name"), f"taxes[{i}].name", required=True, max_length=64),
            "rate": rate,
            "amount": parse_money(entry["amount"], f"taxes[{i}].amount") if entry.get("amount") is not None else None,
        })
    return taxes


# =============================================================================
# MODEL PAYLOADS
# =============================================================================

def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return parse_int(value, col.key)

    if isinstance(coltype, Numeric):
        return parse_money(value, col.key)

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be true or false", {"field": col.key})

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime") from None
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    if isinstance(coltype, Date):
        return parse_date(value, col.key)

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # Default: leave as-is
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", {"missing": missing})

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}", {"field": k})
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}", {"field": k})

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        # NULL handling
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null", {"field": k})
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank", {"field": k})

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}", {"field": k})

        patch[k] = val

    return patch


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    if patch.get("quantity_in_stock") is not None and patch["quantity_in_stock"] < 0:
        raise ValidationError("quantity_in_stock must be >= 0", {"field": "quantity_in_stock"})

    if patch.get("low_stock_threshold") is not None and patch["low_stock_threshold"] < 0:
        raise ValidationError("low_stock_threshold must be >= 0", {"field": "low_stock_threshold"})
