"""
Order lifecycle for the commission ledger.

Every public operation runs as one store transaction: resolve the period,
compute the commission, apply the lifecycle rule, then recompute the
affected period totals. Errors abort the whole unit of work.
"""

import logging
from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional, Union

from . import brands as brand_rules
from .audit import SYSTEM_USER, AuditAction, describe_changes, make_entry, order_snapshot
from .commission import compute_commission, to_money
from .config import AUTO_CREATE_BRANDS
from .errors import (
    DuplicateOrderNumberError,
    ImmutableOrderError,
    NotFoundError,
    PeriodLockedError,
    ValidationError,
)
from .models import ORDER_STATUSES, PAID, PENDING, new_id, utcnow
from .periods import parse_day, resolve_period
from .storage.base import LedgerSettings
from .totals import recompute_totals

logger = logging.getLogger(__name__)

# Fields update_order accepts.
EDITABLE_FIELDS = (
    "os_number",
    "entry_date",
    "customer_name",
    "brand",
    "service_value",
    "payment_method",
    "status",
)

DUPLICATE_OS_FLOOR = 1000


# --- Input checks ---

def _check_os_number(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"OS number must be a positive integer, got {value!r}")
    return value


def _check_text(value, label: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{label} must not be empty")
    return value.strip()


def _check_amount(value) -> Decimal:
    amount = to_money(value)
    if amount < 0:
        raise ValidationError("Service value must not be negative")
    return amount


def _check_status(value) -> str:
    if value not in ORDER_STATUSES:
        raise ValidationError(f"Invalid status: {value!r}")
    return value


def _check_percentage(value) -> Decimal:
    pct = to_money(value)
    if pct < 0 or pct > 100:
        raise ValidationError("Commission percentage must be between 0 and 100")
    return pct


class CommissionLedger:
    """Service orders, bi-weekly periods and commissions over a LedgerStore."""

    def __init__(self, store, publisher=None, clock=utcnow, auto_create_brands: bool = AUTO_CREATE_BRANDS):
        self.store = store
        self.publisher = publisher
        self.clock = clock
        self.auto_create_brands = auto_create_brands

    @contextmanager
    def _unit_of_work(self):
        """One store transaction; events collected inside are published after commit."""
        events = []
        with self.store.transaction():
            yield events
        if self.publisher is not None:
            for routing_key, payload in events:
                self.publisher.publish(routing_key, payload)

    def _get_order(self, order_id):
        order = self.store.get_order(order_id)
        if order is None:
            raise NotFoundError("Order", order_id)
        return order

    def _get_period(self, period_id):
        period = self.store.get_period(period_id)
        if period is None:
            raise NotFoundError("Period", period_id)
        return period

    def _event(self, order) -> dict:
        return {
            "order_id": order.id,
            "os_number": order.os_number,
            "period_id": order.period_id,
            "service_value": str(order.service_value),
            "commission_value": str(order.commission_value),
            "status": order.status,
        }

    def _apply_status(self, order, status, now, user, details):
        order.status = status
        order.paid_at = now if status == PAID else None
        self.store.append_audit(order, make_entry(AuditAction.STATUS_CHANGE, details, user, now))
        self.store.save_order(order)

    # --- Orders ---

    def create_order(self, os_number, entry_date, customer_name, brand, service_value,
                     payment_method: Optional[str] = None, user: str = SYSTEM_USER):
        """Create a PENDING order in the period containing ``entry_date``."""
        os_number = _check_os_number(os_number)
        customer_name = _check_text(customer_name, "Customer name")
        service_value = _check_amount(service_value)
        day = parse_day(entry_date)

        with self._unit_of_work() as events:
            settings = self.store.get_settings()
            if self.store.get_order_by_number(os_number) is not None:
                raise DuplicateOrderNumberError(os_number)

            brand_row = brand_rules.resolve_brand(self.store, brand, self.auto_create_brands)
            period = resolve_period(self.store, day)
            if period.paid:
                raise PeriodLockedError(period.id, "Cannot add orders to a paid period")

            now = self.clock()
            order = self.store.add_order(
                id=new_id(),
                os_number=os_number,
                entry_date=day,
                customer_name=customer_name,
                brand_id=brand_row.id,
                service_value=service_value,
                commission_value=compute_commission(service_value, settings.fixed_commission_percentage),
                payment_method=payment_method or None,
                status=PENDING,
                paid_at=None,
                period_id=period.id,
                created_at=now,
            )
            self.store.append_audit(
                order,
                make_entry(AuditAction.CREATED, f"Order created with value {service_value:.2f}", user, now),
            )
            recompute_totals(self.store, period.id)
            events.append(("order.created", self._event(order)))

        logger.info("Created order #%s in period %s", os_number, order.period_id)
        return order

    def update_order(self, order_id, user: str = SYSTEM_USER, **changes):
        """
        Edit a PENDING order in an unpaid period.

        Moving ``entry_date`` to another half-month moves the order to that
        period; changing ``service_value`` recomputes the commission at the
        current percentage. An UPDATED audit entry lists what changed.
        """
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown order fields: {', '.join(sorted(unknown))}")

        with self._unit_of_work() as events:
            order = self._get_order(order_id)
            if order.status == PAID:
                raise ImmutableOrderError(order.id)
            period = self._get_period(order.period_id)
            if period.paid:
                raise PeriodLockedError(period.id, "Cannot edit orders in a paid period")

            settings = self.store.get_settings()
            now = self.clock()
            current_brand = self.store.get_brand(order.brand_id)
            brand_name = current_brand.name if current_brand is not None else None
            before = order_snapshot(order, brand_name)
            old_period_id = order.period_id

            if "os_number" in changes:
                os_number = _check_os_number(changes["os_number"])
                if os_number != order.os_number and self.store.get_order_by_number(os_number) is not None:
                    raise DuplicateOrderNumberError(os_number)
                order.os_number = os_number

            if "customer_name" in changes:
                order.customer_name = _check_text(changes["customer_name"], "Customer name")

            if "brand" in changes:
                brand_row = brand_rules.resolve_brand(self.store, changes["brand"], self.auto_create_brands)
                order.brand_id = brand_row.id
                brand_name = brand_row.name

            if "entry_date" in changes:
                day = parse_day(changes["entry_date"])
                if day != order.entry_date:
                    target = resolve_period(self.store, day)
                    if target.paid:
                        raise PeriodLockedError(target.id, "Cannot move order to a paid period")
                    order.entry_date = day
                    order.period_id = target.id

            if "service_value" in changes:
                service_value = _check_amount(changes["service_value"])
                if service_value != order.service_value:
                    order.service_value = service_value
                    order.commission_value = compute_commission(
                        service_value, settings.fixed_commission_percentage
                    )

            if "payment_method" in changes:
                order.payment_method = changes["payment_method"] or None

            if "status" in changes:
                status = _check_status(changes["status"])
                if status != order.status:
                    order.status = status
                    order.paid_at = now if status == PAID else None

            described = describe_changes(before, order_snapshot(order, brand_name))
            if described:
                self.store.append_audit(order, make_entry(AuditAction.UPDATED, ", ".join(described), user, now))
            self.store.save_order(order)

            recompute_totals(self.store, old_period_id)
            if order.period_id != old_period_id:
                recompute_totals(self.store, order.period_id)
            events.append(("order.updated", self._event(order)))

        return order

    def duplicate_order(self, order_id, entry_date: Union[date, str, None] = None, user: str = SYSTEM_USER):
        """Copy an order under the next free O.S. number, dated ``entry_date`` (default today)."""
        with self._unit_of_work() as events:
            original = self._get_order(order_id)
            settings = self.store.get_settings()
            now = self.clock()
            day = parse_day(entry_date) if entry_date is not None else now.date()

            period = resolve_period(self.store, day)
            if period.paid:
                raise PeriodLockedError(period.id, "Cannot add orders to a paid period")

            os_number = max(self.store.max_os_number() or 0, DUPLICATE_OS_FLOOR) + 1
            order = self.store.add_order(
                id=new_id(),
                os_number=os_number,
                entry_date=day,
                customer_name=original.customer_name,
                brand_id=original.brand_id,
                service_value=original.service_value,
                commission_value=compute_commission(original.service_value, settings.fixed_commission_percentage),
                payment_method=original.payment_method,
                status=PENDING,
                paid_at=None,
                period_id=period.id,
                created_at=now,
            )
            self.store.append_audit(
                order,
                make_entry(AuditAction.DUPLICATED, f"Duplicated from Order #{original.os_number}", user, now),
            )
            recompute_totals(self.store, period.id)
            events.append(("order.created", self._event(order)))

        return order

    def change_status(self, order_id, status: str, user: str = SYSTEM_USER):
        """Move one order between PENDING and PAID while its period is unpaid."""
        status = _check_status(status)
        with self._unit_of_work() as events:
            order = self._get_order(order_id)
            period = self._get_period(order.period_id)
            if period.paid:
                raise PeriodLockedError(period.id, "Cannot change orders in a paid period")
            if order.status == status:
                return order
            self._apply_status(order, status, self.clock(), user, f"Status changed to {status}")
            events.append(("order.updated", self._event(order)))
        return order

    def delete_order(self, order_id) -> str:
        with self._unit_of_work() as events:
            order = self._get_order(order_id)
            if order.status == PAID:
                raise ImmutableOrderError(order.id, "delete")
            period = self._get_period(order.period_id)
            if period.paid:
                raise PeriodLockedError(period.id, "Cannot delete orders from a paid period")

            payload = self._event(order)
            self.store.delete_order(order)
            recompute_totals(self.store, payload["period_id"])
            events.append(("order.deleted", payload))

        logger.info("Deleted order #%s", payload["os_number"])
        return payload["order_id"]

    def bulk_status_change(self, order_ids: Iterable[str], status: str, user: str = SYSTEM_USER) -> None:
        """
        Best effort: ids that are unknown, already at ``status`` or in a paid
        period are skipped without failing the batch.
        """
        status = _check_status(status)
        order_ids = list(dict.fromkeys(order_ids))
        if not order_ids:
            return

        with self._unit_of_work() as events:
            now = self.clock()
            for order_id in order_ids:
                order = self.store.get_order(order_id)
                if order is None:
                    logger.warning("Bulk status change: order %s not found, skipping", order_id)
                    continue
                if order.status == status:
                    continue
                period = self.store.get_period(order.period_id)
                if period is not None and period.paid:
                    logger.warning("Bulk status change: order %s is in a paid period, skipping", order_id)
                    continue
                self._apply_status(order, status, now, user, f"Bulk status change to {status}")
                events.append(("order.updated", self._event(order)))

    def bulk_delete(self, order_ids: Iterable[str]) -> List[str]:
        """
        Delete the given orders except PAID ones and those in paid periods,
        which are kept. Returns the ids actually deleted.
        """
        order_ids = list(dict.fromkeys(order_ids))
        if not order_ids:
            return []

        with self._unit_of_work() as events:
            doomed = []
            for order_id in order_ids:
                order = self.store.get_order(order_id)
                if order is None or order.status == PAID:
                    continue
                period = self.store.get_period(order.period_id)
                if period is not None and period.paid:
                    continue
                doomed.append(order)

            payloads = [self._event(o) for o in doomed]
            affected = list(dict.fromkeys(p["period_id"] for p in payloads))
            self.store.delete_orders(doomed)
            for period_id in affected:
                recompute_totals(self.store, period_id)
            events.extend(("order.deleted", p) for p in payloads)

        if len(payloads) != len(order_ids):
            logger.warning("Bulk delete kept %d of %d orders", len(order_ids) - len(payloads), len(order_ids))
        return [p["order_id"] for p in payloads]

    def get_order(self, order_id):
        return self._get_order(order_id)

    def get_orders(self, period_id: Optional[str] = None, status: Optional[str] = None):
        if status is not None:
            _check_status(status)
        return self.store.list_orders(period_id=period_id, status=status)

    def audit_trail(self, order):
        return self.store.audit_trail(order)

    def brand_name(self, order) -> Optional[str]:
        brand = self.store.get_brand(order.brand_id)
        return brand.name if brand is not None else None

    # --- Periods ---

    def list_periods(self):
        return self.store.list_periods()

    def get_period(self, period_id):
        return self._get_period(period_id)

    def close_period(self, period_id, user: str = SYSTEM_USER):
        """
        Mark a period paid and force every member order to PAID. Irreversible;
        closing an already-paid period changes nothing.
        """
        with self._unit_of_work() as events:
            period = self._get_period(period_id)
            if period.paid:
                return period

            now = self.clock()
            period.paid = True
            period.paid_at = now
            self.store.save_period(period)

            forced = 0
            for order in self.store.list_orders(period_id=period.id):
                if order.status != PAID:
                    self._apply_status(order, PAID, now, user, "Period closed and paid")
                    forced += 1
            recompute_totals(self.store, period.id)
            events.append((
                "period.closed",
                {
                    "period_id": period.id,
                    "start_date": period.start_date.isoformat(),
                    "end_date": period.end_date.isoformat(),
                    "total_orders": period.total_orders,
                    "total_commission": str(period.total_commission),
                },
            ))

        logger.info("Closed period %s (%d orders marked paid)", period_id, forced)
        return period

    def recalculate_commissions(self, period_id, user: str = SYSTEM_USER):
        """Recompute PENDING orders of an unpaid period at the current percentage."""
        with self._unit_of_work():
            period = self._get_period(period_id)
            if period.paid:
                raise PeriodLockedError(period.id, "Cannot recalculate a paid period")
            settings = self.store.get_settings()
            now = self.clock()
            for order in self.store.list_orders(period_id=period.id, status=PENDING):
                commission = compute_commission(order.service_value, settings.fixed_commission_percentage)
                if commission == order.commission_value:
                    continue
                details = f"Commission: {order.commission_value:.2f} -> {commission:.2f}"
                order.commission_value = commission
                self.store.append_audit(order, make_entry(AuditAction.UPDATED, details, user, now))
                self.store.save_order(order)
            recompute_totals(self.store, period.id)
        return period

    # --- Brands ---

    def list_brands(self):
        return self.store.list_brands()

    def add_brand(self, name):
        with self._unit_of_work():
            return brand_rules.add_brand(self.store, name)

    def rename_brand(self, brand_id, name):
        with self._unit_of_work():
            return brand_rules.rename_brand(self.store, brand_id, name)

    def delete_brand(self, brand_id) -> None:
        with self._unit_of_work():
            brand_rules.delete_brand(self.store, brand_id)

    # --- Settings ---

    def get_settings(self) -> LedgerSettings:
        return self.store.get_settings()

    def update_settings(self, fixed_commission_percentage=None, company_name=None) -> LedgerSettings:
        """Change the percentage used from now on. Existing commissions are kept."""
        with self._unit_of_work():
            current = self.store.get_settings()
            settings = LedgerSettings(
                fixed_commission_percentage=(
                    _check_percentage(fixed_commission_percentage)
                    if fixed_commission_percentage is not None
                    else current.fixed_commission_percentage
                ),
                company_name=company_name if company_name is not None else current.company_name,
            )
            self.store.save_settings(settings)
        return settings
