# Overview: Package exports for models; re-exports public symbols for imports.

from .catalog import Product, StockMovement
from .demand import DemandNotice, DemandNoticePayment
from .orders import (
    Order,
    OrderItem,
    OrderTax,
    OrderPayment,
    ReturnTransaction,
    ReturnedItem,
    RefundPayment,
)
from .purchasing import PurchaseOrder, PurchaseOrderItem
from .settings import SeriesNumberSetting, CommissionSetting
from .statuses import OrderStatus, DemandNoticeStatus, PurchaseOrderStatus

__all__ = [
    "Product",
    "StockMovement",
    "DemandNotice",
    "DemandNoticePayment",
    "Order",
    "OrderItem",
    "OrderTax",
    "OrderPayment",
    "ReturnTransaction",
    "ReturnedItem",
    "RefundPayment",
    "PurchaseOrder",
    "PurchaseOrderItem",
    "SeriesNumberSetting",
    "CommissionSetting",
    "OrderStatus",
    "DemandNoticeStatus",
    "PurchaseOrderStatus",
]
