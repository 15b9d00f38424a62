"""Whole-dataset export and replace-all import."""

import logging

from pydantic import ValidationError as SchemaError

from .errors import ValidationError
from .schemas import (
    BackupSnapshot,
    brand_record,
    order_record,
    period_record,
    settings_record,
)
from .models import PAID
from .storage.base import LedgerSettings
from .totals import recompute_all_totals

logger = logging.getLogger(__name__)


def export_snapshot(store) -> dict:
    """JSON-safe snapshot of brands, periods, orders (with history) and settings."""
    brands = store.list_brands()
    names = {b.id: b.name for b in brands}
    snapshot = BackupSnapshot(
        brands=[brand_record(b) for b in brands],
        periods=[period_record(p) for p in store.list_periods()],
        orders=[
            order_record(o, names.get(o.brand_id), store.audit_trail(o))
            for o in store.list_orders()
        ],
        settings=settings_record(store.get_settings()),
    )
    return snapshot.model_dump(mode="json")


def _check_references(snapshot: BackupSnapshot) -> None:
    """Orders must reference known rows, fall inside their period, and be PAID in a paid period."""
    brand_ids = {b.id for b in snapshot.brands}
    periods = {p.id: p for p in snapshot.periods}
    buckets = {(p.start_date, p.end_date) for p in snapshot.periods}
    if len(buckets) != len(periods):
        raise ValidationError("Backup holds two periods with the same date range")
    for order in snapshot.orders:
        if order.brand_id not in brand_ids:
            raise ValidationError(f"Order #{order.os_number} references unknown brand {order.brand_id}")
        period = periods.get(order.period_id)
        if period is None:
            raise ValidationError(f"Order #{order.os_number} references unknown period {order.period_id}")
        if not period.start_date <= order.entry_date <= period.end_date:
            raise ValidationError(
                f"Order #{order.os_number} dated {order.entry_date} is outside period "
                f"{period.start_date}..{period.end_date}"
            )
        if period.paid and order.status != PAID:
            raise ValidationError(f"Order #{order.os_number} is {order.status} in paid period {period.id}")


def import_snapshot(store, data) -> BackupSnapshot:
    """
    Replace the entire dataset with ``data``. Delete-all-then-insert in one
    transaction; there is no merge mode.
    """
    try:
        snapshot = BackupSnapshot.model_validate(data)
    except SchemaError as exc:
        raise ValidationError(f"Invalid backup: {exc.error_count()} error(s)") from exc

    _check_references(snapshot)

    with store.transaction():
        store.clear_all()
        for brand in snapshot.brands:
            extra = {"created_at": brand.created_at} if brand.created_at is not None else {}
            store.add_brand(brand.name, id=brand.id, **extra)
        for period in snapshot.periods:
            store.create_period(
                period.start_date,
                period.end_date,
                id=period.id,
                paid=period.paid,
                paid_at=period.paid_at,
                total_orders=period.total_orders,
                total_service_value=period.total_service_value,
                total_commission=period.total_commission,
            )
        for record in snapshot.orders:
            fields = record.model_dump(exclude={"brand", "history"})
            if fields["created_at"] is None:
                del fields["created_at"]
            order = store.add_order(**fields)
            for entry in record.history:
                store.append_audit(order, entry.model_dump())
        # Totals are rebuilt from the imported orders.
        recompute_all_totals(store)
        if snapshot.settings is not None:
            store.save_settings(LedgerSettings(
                fixed_commission_percentage=snapshot.settings.fixed_commission_percentage,
                company_name=snapshot.settings.company_name,
            ))

    logger.info(
        "Imported backup: %d brands, %d periods, %d orders",
        len(snapshot.brands), len(snapshot.periods), len(snapshot.orders),
    )
    return snapshot
