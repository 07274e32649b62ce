from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..time_utils import to_utc_z
from .catalog import money_out


class SeriesNumberSetting(db.Model):
    """
    Per-series monotonic counter.

    next_number is the value the next caller receives. Allocation is a single
    UPDATE ... SET next_number = next_number + 1 inside the caller's
    transaction (see services.series_service).
    """
    __tablename__ = "series_number_settings"
    __table_args__ = (
        db.CheckConstraint("next_number >= 1", name="ck_series_next_number_positive"),
    )

    id = db.Column(db.String(32), primary_key=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {"id": self.id, "next_number": self.next_number, "updated_at": to_utc_z(self.updated_at)}


class CommissionSetting(db.Model):
    """Global commission rules (single row)."""
    __tablename__ = "commission_settings"

    id = db.Column(db.String(32), primary_key=True)
    sales_target = db.Column(db.Numeric(12, 3), nullable=False, default=Decimal("5000"))
    commission_interval = db.Column(db.Numeric(12, 3), nullable=False, default=Decimal("1000"))
    commission_percentage = db.Column(db.Numeric(7, 4), nullable=False, default=Decimal("2"))
    is_active = db.Column(db.Boolean, nullable=False, default=False)

    updated_by = db.Column(db.String(64), nullable=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sales_target": money_out(self.sales_target),
            "commission_interval": money_out(self.commission_interval),
            "commission_percentage": float(self.commission_percentage),
            "is_active": self.is_active,
            "updated_by": self.updated_by,
            "updated_at": to_utc_z(self.updated_at),
        }
