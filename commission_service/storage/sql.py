import logging
from contextlib import contextmanager
from decimal import Decimal

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..models import AuditLog, Brand, Period, ServiceOrder, Settings
from .base import LedgerSettings, LedgerStore

logger = logging.getLogger(__name__)

SETTINGS_ROW_ID = 1


class SqlStore(LedgerStore):
    """LedgerStore backed by a SQLAlchemy session."""

    def __init__(self, db: Session):
        self.db = db
        self._depth = 0

    @contextmanager
    def transaction(self):
        # Nested calls join the outermost unit of work.
        if self._depth:
            self._depth += 1
            try:
                yield self
            finally:
                self._depth -= 1
            return

        self._depth = 1
        try:
            yield self
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        finally:
            self._depth = 0

    # --- Settings ---

    def get_settings(self) -> LedgerSettings:
        row = self.db.get(Settings, SETTINGS_ROW_ID)
        if row is None:
            return LedgerSettings()
        return LedgerSettings(
            fixed_commission_percentage=Decimal(row.fixed_commission_percentage),
            company_name=row.company_name,
        )

    def save_settings(self, settings: LedgerSettings) -> None:
        row = self.db.get(Settings, SETTINGS_ROW_ID)
        if row is None:
            row = Settings(id=SETTINGS_ROW_ID)
            self.db.add(row)
        row.fixed_commission_percentage = settings.fixed_commission_percentage
        row.company_name = settings.company_name
        self.db.flush()

    # --- Brands ---

    def get_brand(self, brand_id):
        return self.db.get(Brand, brand_id)

    def find_brand_by_name(self, name, ignore_case=False):
        query = self.db.query(Brand)
        if ignore_case:
            return query.filter(func.lower(Brand.name) == name.lower()).first()
        return query.filter(Brand.name == name).first()

    def list_brands(self):
        return self.db.query(Brand).order_by(Brand.name).all()

    def add_brand(self, name, **fields):
        brand = Brand(name=name, **fields)
        self.db.add(brand)
        self.db.flush()
        return brand

    def save_brand(self, brand):
        self.db.add(brand)
        self.db.flush()

    def delete_brand(self, brand):
        self.db.delete(brand)
        self.db.flush()

    def brand_in_use(self, brand_id):
        return self.db.query(ServiceOrder.id).filter(ServiceOrder.brand_id == brand_id).first() is not None

    # --- Periods ---

    def get_period(self, period_id):
        return self.db.get(Period, period_id)

    def find_period(self, start, end):
        return (
            self.db.query(Period)
            .filter(Period.start_date == start, Period.end_date == end)
            .first()
        )

    def create_period(self, start, end, **fields):
        fields.setdefault("paid", False)
        fields.setdefault("total_orders", 0)
        fields.setdefault("total_service_value", Decimal("0.00"))
        fields.setdefault("total_commission", Decimal("0.00"))
        period = Period(start_date=start, end_date=end, **fields)
        try:
            # The savepoint keeps the outer transaction usable if we lose the race.
            with self.db.begin_nested():
                self.db.add(period)
        except IntegrityError:
            logger.info("Period %s..%s created concurrently, reusing it", start, end)
            existing = self.find_period(start, end)
            if existing is None:
                raise
            return existing
        return period

    def list_periods(self):
        return self.db.query(Period).order_by(Period.start_date.desc()).all()

    def save_period(self, period):
        self.db.add(period)
        self.db.flush()

    # --- Orders ---

    def get_order(self, order_id):
        return self.db.get(ServiceOrder, order_id)

    def get_order_by_number(self, os_number):
        return self.db.query(ServiceOrder).filter(ServiceOrder.os_number == os_number).first()

    def list_orders(self, period_id=None, status=None):
        query = self.db.query(ServiceOrder)
        if period_id is not None:
            query = query.filter(ServiceOrder.period_id == period_id)
        if status is not None:
            query = query.filter(ServiceOrder.status == status)
        return query.order_by(ServiceOrder.created_at.desc(), ServiceOrder.os_number.desc()).all()

    def max_os_number(self):
        return self.db.query(func.max(ServiceOrder.os_number)).scalar()

    def add_order(self, **fields):
        order = ServiceOrder(**fields)
        self.db.add(order)
        self.db.flush()
        return order

    def save_order(self, order):
        self.db.add(order)
        self.db.flush()

    def delete_order(self, order):
        # audit_logs cascade with delete-orphan.
        self.db.delete(order)
        self.db.flush()

    # --- Audit trail ---

    def append_audit(self, order, entry):
        order.audit_logs.append(AuditLog(**entry))
        self.db.flush()

    def audit_trail(self, order):
        return list(order.audit_logs)

    # --- Aggregation ---

    def aggregate(self, period_id):
        count, service_total, commission_total = (
            self.db.query(
                func.count(ServiceOrder.id),
                func.coalesce(func.sum(ServiceOrder.service_value), 0),
                func.coalesce(func.sum(ServiceOrder.commission_value), 0),
            )
            .filter(ServiceOrder.period_id == period_id)
            .one()
        )
        return count, Decimal(str(service_total)), Decimal(str(commission_total))

    # --- Bulk replace ---

    def clear_all(self):
        self.db.query(AuditLog).delete()
        self.db.query(ServiceOrder).delete()
        self.db.query(Brand).delete()
        self.db.query(Period).delete()
        self.db.query(Settings).delete()
        self.db.flush()
        # Rows loaded before the wipe must not shadow re-imported ids.
        self.db.expunge_all()
