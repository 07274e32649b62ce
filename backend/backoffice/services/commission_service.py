# Overview: Commission calculator and commission-rule settings.

from __future__ import annotations

from datetime import datetime
from decimal import ROUND_FLOOR, Decimal
from typing import Iterable

from ..errors import ValidationError
from ..extensions import db
from ..models import CommissionSetting, Order
from ..models.statuses import OrderStatus
from ..validation import parse_money, quantize_money
from .concurrency import atomic


COMMISSION_SETTING_ID = "global_commission_rules"

DEFAULT_SALES_TARGET = Decimal("5000")
DEFAULT_COMMISSION_INTERVAL = Decimal("1000")
DEFAULT_COMMISSION_PERCENTAGE = Decimal("2")

# Only settled sales earn commission
COMMISSIONABLE_STATUSES = (OrderStatus.PAID.value, OrderStatus.COMPLETED.value)


def calculate_commission(sales: Decimal, setting: CommissionSetting | None) -> Decimal:
    """
    Commission for `sales` under `setting`.

    Each full interval above the target earns pct% of the interval:
        floor((sales - target) / interval) * interval * pct / 100
    No setting, an inactive setting, or sales at/below target earn nothing.
    """
    if setting is None or not setting.is_active:
        return Decimal("0")
    sales = Decimal(sales)
    target = Decimal(setting.sales_target)
    interval = Decimal(setting.commission_interval)
    if sales <= target or interval <= 0:
        return Decimal("0")
    intervals = ((sales - target) / interval).to_integral_value(rounding=ROUND_FLOOR)
    return quantize_money(intervals * interval * Decimal(setting.commission_percentage) / Decimal("100"))


def attributed_sales(orders: Iterable[Order], salesperson_id: str) -> Decimal:
    """Sum of each settled order's total weighted by the salesperson's share."""
    total = Decimal("0")
    for order in orders:
        if order.status not in COMMISSIONABLE_STATUSES:
            continue
        amount = Decimal(order.total_amount)
        if order.primary_salesperson_id == salesperson_id:
            share = order.primary_commission_share
            total += amount * (Decimal(share) if share is not None else Decimal("1"))
        elif order.secondary_salesperson_id == salesperson_id:
            share = order.secondary_commission_share
            total += amount * (Decimal(share) if share is not None else Decimal("0"))
    return quantize_money(total)


def get_commission_setting() -> CommissionSetting:
    """Stored rules, or unsaved defaults (inactive) when nothing was configured."""
    setting = db.session.get(CommissionSetting, COMMISSION_SETTING_ID)
    if setting is None:
        setting = CommissionSetting(
            id=COMMISSION_SETTING_ID,
            sales_target=DEFAULT_SALES_TARGET,
            commission_interval=DEFAULT_COMMISSION_INTERVAL,
            commission_percentage=DEFAULT_COMMISSION_PERCENTAGE,
            is_active=False,
        )
    return setting


def update_commission_setting(payload: dict, *, actor_id: str | None = None) -> CommissionSetting:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    values = {}
    for key in ("sales_target", "commission_interval", "commission_percentage"):
        if key in payload:
            values[key] = parse_money(payload[key], key)
    if "commission_interval" in values and values["commission_interval"] <= 0:
        raise ValidationError("commission_interval must be > 0", {"field": "commission_interval"})
    if "commission_percentage" in values and values["commission_percentage"] > 100:
        raise ValidationError("commission_percentage must be <= 100", {"field": "commission_percentage"})
    if "is_active" in payload:
        if not isinstance(payload["is_active"], bool):
            raise ValidationError("is_active must be true or false", {"field": "is_active"})
        values["is_active"] = payload["is_active"]

    with atomic():
        setting = db.session.get(CommissionSetting, COMMISSION_SETTING_ID)
        if setting is None:
            setting = get_commission_setting()
            db.session.add(setting)
        for key, value in values.items():
            setattr(setting, key, value)
        setting.updated_by = actor_id
    return setting


def salesperson_commission_report(
    salesperson_id: str,
    *,
    start: datetime | None = None,
    end: datetime | None = None,
) -> dict:
    query = db.session.query(Order).filter(
        (Order.primary_salesperson_id == salesperson_id) | (Order.secondary_salesperson_id == salesperson_id),
        Order.status.in_(COMMISSIONABLE_STATUSES),
    )
    if start is not None:
        query = query.filter(Order.created_at >= start)
    if end is not None:
        query = query.filter(Order.created_at < end)
    orders = query.all()

    setting = get_commission_setting()
    sales = attributed_sales(orders, salesperson_id)
    return {
        "salesperson_id": salesperson_id,
        "order_count": len(orders),
        "attributed_sales": float(sales),
        "commission": float(calculate_commission(sales, setting)),
        "setting": setting.to_dict(),
    }
