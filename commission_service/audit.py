"""Audit trail entries and change descriptions for service orders."""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import List, Mapping, Optional

SYSTEM_USER = "System"


class AuditAction(str, Enum):
    CREATED = "CREATED"
    UPDATED = "UPDATED"
    DUPLICATED = "DUPLICATED"
    STATUS_CHANGE = "STATUS_CHANGE"


# (snapshot key, label) in the order changes are reported.
TRACKED_FIELDS = (
    ("os_number", "OS"),
    ("customer_name", "Customer"),
    ("brand", "Brand"),
    ("entry_date", "Date"),
    ("service_value", "Value"),
    ("payment_method", "Payment"),
    ("status", "Status"),
)


def make_entry(action: AuditAction, details: Optional[str], user: str, timestamp: datetime) -> dict:
    return {
        "timestamp": timestamp,
        "user": user or SYSTEM_USER,
        "action": AuditAction(action).value,
        "details": details,
    }


def order_snapshot(order, brand_name: Optional[str]) -> dict:
    """The audited view of an order."""
    return {
        "os_number": order.os_number,
        "customer_name": order.customer_name,
        "brand": brand_name,
        "entry_date": order.entry_date,
        "service_value": order.service_value,
        "payment_method": order.payment_method,
        "status": order.status,
    }


def _format(value) -> str:
    if value is None or value == "":
        return "None"
    if isinstance(value, Decimal):
        return f"{value:.2f}"
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def _same(old, new) -> bool:
    if isinstance(old, Decimal) or isinstance(new, Decimal):
        try:
            return Decimal(str(old)) == Decimal(str(new))
        except InvalidOperation:
            return False
    # Blank and missing payment methods are the same thing.
    return (old or None) == (new or None)


def describe_changes(old: Mapping, new: Mapping) -> List[str]:
    """
    Describe every tracked field that differs between two snapshots as
    ``"<Label>: <old> -> <new>"``. Fields absent from ``new`` are unchanged.
    """
    changes = []
    for key, label in TRACKED_FIELDS:
        if key not in new:
            continue
        before, after = old.get(key), new[key]
        if _same(before, after):
            continue
        changes.append(f"{label}: {_format(before)} -> {_format(after)}")
    return changes
