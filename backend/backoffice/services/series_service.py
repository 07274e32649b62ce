# Overview: Series number generator; atomic per-series id allocation.

"""
Series Number Generator

DESIGN:
- One SeriesNumberSetting row per series. Allocation is a single
  UPDATE ... SET next_number = next_number + 1 executed inside the caller's
  transaction, so the id is consumed together with the entity that uses it.
  Two concurrent callers are serialized on that row and never share a number.
- Gap tolerant: a rolled-back transaction gives its number back, and numbers
  whose formatted id already exists in the owning table are skipped.
- Counter rows are created lazily on first use.

FORMAT:
    invoice -> INV-000001, demand_notice -> DN-000001, po -> PO-000001,
    quotation -> QUO-000001, audit -> AUD-000001
"""

from __future__ import annotations

import logging

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, StoreUnavailableError, ValidationError
from ..extensions import db
from ..models import DemandNotice, Order, PurchaseOrder, SeriesNumberSetting
from .concurrency import atomic

logger = logging.getLogger(__name__)


SERIES_INVOICE = "invoice"
SERIES_QUOTATION = "quotation"
SERIES_DEMAND_NOTICE = "demand_notice"
SERIES_AUDIT = "audit"
SERIES_PO = "po"

SERIES_PREFIXES = {
    SERIES_INVOICE: "INV-",
    SERIES_QUOTATION: "QUO-",
    SERIES_DEMAND_NOTICE: "DN-",
    SERIES_AUDIT: "AUD-",
    SERIES_PO: "PO-",
}

# Tables whose primary key is drawn from a series
SERIES_OWNERS = {
    SERIES_INVOICE: Order,
    SERIES_DEMAND_NOTICE: DemandNotice,
    SERIES_PO: PurchaseOrder,
}

NUMBER_PAD = 6
MAX_COLLISION_SKIPS = 100


def format_series_id(series_id: str, number: int) -> str:
    return f"{SERIES_PREFIXES[series_id]}{number:0{NUMBER_PAD}d}"


def _require_series(series_id: str) -> None:
    if series_id not in SERIES_PREFIXES:
        raise ValidationError(
            f"Unknown series '{series_id}'",
            {"series_id": series_id, "allowed": sorted(SERIES_PREFIXES)},
        )


def _allocate_number(series_id: str) -> int:
    stmt = (
        update(SeriesNumberSetting)
        .where(SeriesNumberSetting.id == series_id)
        .values(next_number=SeriesNumberSetting.next_number + 1)
    )

    result = db.session.execute(stmt)
    if not result.rowcount:
        try:
            with db.session.begin_nested():
                db.session.add(SeriesNumberSetting(id=series_id, next_number=2))
            return 1
        except IntegrityError:
            # Another transaction created the row first; fall through to increment
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise StoreUnavailableError(
                    "Series counter could not be allocated", {"series_id": series_id}
                )

    current = (
        db.session.query(SeriesNumberSetting.next_number)
        .filter(SeriesNumberSetting.id == series_id)
        .scalar()
    )
    return current - 1


def next_series_id(series_id: str) -> str:
    """
    Allocate and return the next formatted id for `series_id`.

    Runs inside the caller's transaction; the caller commits or rolls back.
    """
    _require_series(series_id)
    owner = SERIES_OWNERS.get(series_id)

    for _ in range(MAX_COLLISION_SKIPS):
        candidate = format_series_id(series_id, _allocate_number(series_id))
        if owner is None or db.session.get(owner, candidate) is None:
            return candidate
        logger.warning("Series %s skipped %s (id already in use)", series_id, candidate)

    raise ConflictError(
        f"Could not allocate a free id for series '{series_id}'",
        {"series_id": series_id, "attempts": MAX_COLLISION_SKIPS},
    )


def next_series_id_committed(series_id: str) -> str:
    """Allocate an id in its own transaction (ids for documents created elsewhere)."""
    with atomic():
        return next_series_id(series_id)


def list_series() -> list[dict]:
    rows = {s.id: s for s in db.session.query(SeriesNumberSetting).all()}
    result = []
    for series_id in sorted(SERIES_PREFIXES):
        row = rows.get(series_id)
        next_number = row.next_number if row else 1
        result.append({
            "id": series_id,
            "prefix": SERIES_PREFIXES[series_id],
            "next_number": next_number,
            "next_id": format_series_id(series_id, next_number),
        })
    return result


def set_next_number(series_id: str, next_number) -> SeriesNumberSetting:
    _require_series(series_id)
    if isinstance(next_number, bool) or not isinstance(next_number, int) or next_number < 1:
        raise ValidationError(
            "next_number must be an integer >= 1",
            {"series_id": series_id, "next_number": next_number},
        )

    with atomic():
        row = db.session.get(SeriesNumberSetting, series_id)
        if row is None:
            row = SeriesNumberSetting(id=series_id, next_number=next_number)
            db.session.add(row)
        else:
            row.next_number = next_number
        logger.info("Series %s reset to %s", series_id, next_number)
    return row
