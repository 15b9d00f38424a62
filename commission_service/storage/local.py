import copy
import json
import logging
import os
import threading
from contextlib import contextmanager
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field

from ..models import PENDING, new_id, utcnow
from .base import LedgerSettings, LedgerStore

logger = logging.getLogger(__name__)

# Keys of the durable key-value document.
STORAGE_KEYS = {
    "orders": "commission_sys_orders",
    "periods": "commission_sys_periods",
    "brands": "commission_sys_brands",
    "settings": "commission_sys_settings",
}


# --- Records ---

class LocalBrand(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    created_at: datetime = Field(default_factory=utcnow)


class LocalPeriod(BaseModel):
    id: str = Field(default_factory=new_id)
    start_date: date
    end_date: date
    paid: bool = False
    paid_at: Optional[datetime] = None
    total_orders: int = 0
    total_service_value: Decimal = Decimal("0.00")
    total_commission: Decimal = Decimal("0.00")


class LocalAuditEntry(BaseModel):
    timestamp: datetime
    user: str
    action: str
    details: Optional[str] = None


class LocalOrder(BaseModel):
    id: str = Field(default_factory=new_id)
    os_number: int
    entry_date: date
    customer_name: str
    brand_id: str
    service_value: Decimal
    commission_value: Decimal
    payment_method: Optional[str] = None
    status: str = PENDING
    paid_at: Optional[datetime] = None
    period_id: str
    created_at: datetime = Field(default_factory=utcnow)
    history: List[LocalAuditEntry] = Field(default_factory=list)


class LocalSettings(BaseModel):
    fixed_commission_percentage: Decimal
    company_name: Optional[str] = None


class LocalStore(LedgerStore):
    """
    LedgerStore persisted as one JSON document of keyed collections.

    The whole dataset lives in memory between transactions. A transaction
    holds the store lock, works on the live records, and either writes
    the document back atomically or restores the pre-transaction copy.
    """

    def __init__(self, path):
        self.path = Path(path)
        self._lock = threading.RLock()
        self._depth = 0
        self._brands = {}
        self._periods = {}
        self._orders = {}
        self._settings: Optional[LedgerSettings] = None
        self._load()

    # --- Persistence ---

    def _load(self):
        if not self.path.exists():
            return
        with open(self.path, "r", encoding="utf-8") as f:
            document = json.load(f)

        brands = [LocalBrand.model_validate(b) for b in document.get(STORAGE_KEYS["brands"], [])]
        periods = [LocalPeriod.model_validate(p) for p in document.get(STORAGE_KEYS["periods"], [])]
        orders = [LocalOrder.model_validate(o) for o in document.get(STORAGE_KEYS["orders"], [])]
        self._brands = {b.id: b for b in brands}
        self._periods = {p.id: p for p in periods}
        self._orders = {o.id: o for o in orders}

        stored_settings = document.get(STORAGE_KEYS["settings"])
        if stored_settings:
            settings = LocalSettings.model_validate(stored_settings)
            self._settings = LedgerSettings(
                fixed_commission_percentage=settings.fixed_commission_percentage,
                company_name=settings.company_name,
            )

    def _write(self):
        document = {
            STORAGE_KEYS["brands"]: [b.model_dump(mode="json") for b in self._brands.values()],
            STORAGE_KEYS["periods"]: [p.model_dump(mode="json") for p in self._periods.values()],
            STORAGE_KEYS["orders"]: [o.model_dump(mode="json") for o in self._orders.values()],
            STORAGE_KEYS["settings"]: None,
        }
        if self._settings is not None:
            document[STORAGE_KEYS["settings"]] = LocalSettings(
                fixed_commission_percentage=self._settings.fixed_commission_percentage,
                company_name=self._settings.company_name,
            ).model_dump(mode="json")

        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(document, f, indent=2)
        os.replace(tmp_path, self.path)

    @contextmanager
    def transaction(self):
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield self
                finally:
                    self._depth -= 1
                return

            snapshot = copy.deepcopy((self._brands, self._periods, self._orders, self._settings))
            self._depth = 1
            try:
                yield self
                self._write()
            except Exception:
                self._brands, self._periods, self._orders, self._settings = snapshot
                raise
            finally:
                self._depth = 0

    # --- Settings ---

    def get_settings(self):
        return self._settings or LedgerSettings()

    def save_settings(self, settings):
        self._settings = settings

    # --- Brands ---

    def get_brand(self, brand_id):
        return self._brands.get(brand_id)

    def find_brand_by_name(self, name, ignore_case=False):
        for brand in self._brands.values():
            if brand.name == name or (ignore_case and brand.name.lower() == name.lower()):
                return brand
        return None

    def list_brands(self):
        return sorted(self._brands.values(), key=lambda b: b.name)

    def add_brand(self, name, **fields):
        brand = LocalBrand(name=name, **fields)
        self._brands[brand.id] = brand
        return brand

    def save_brand(self, brand):
        self._brands[brand.id] = brand

    def delete_brand(self, brand):
        self._brands.pop(brand.id, None)

    def brand_in_use(self, brand_id):
        return any(o.brand_id == brand_id for o in self._orders.values())

    # --- Periods ---

    def get_period(self, period_id):
        return self._periods.get(period_id)

    def find_period(self, start, end):
        for period in self._periods.values():
            if period.start_date == start and period.end_date == end:
                return period
        return None

    def create_period(self, start, end, **fields):
        # Callers hold the store lock, so a find-then-create cannot interleave.
        existing = self.find_period(start, end)
        if existing is not None:
            return existing
        period = LocalPeriod(start_date=start, end_date=end, **fields)
        self._periods[period.id] = period
        return period

    def list_periods(self):
        return sorted(self._periods.values(), key=lambda p: p.start_date, reverse=True)

    def save_period(self, period):
        self._periods[period.id] = period

    # --- Orders ---

    def get_order(self, order_id):
        return self._orders.get(order_id)

    def get_order_by_number(self, os_number):
        for order in self._orders.values():
            if order.os_number == os_number:
                return order
        return None

    def list_orders(self, period_id=None, status=None):
        orders = [
            o for o in self._orders.values()
            if (period_id is None or o.period_id == period_id)
            and (status is None or o.status == status)
        ]
        return sorted(orders, key=lambda o: (o.created_at, o.os_number), reverse=True)

    def max_os_number(self):
        return max((o.os_number for o in self._orders.values()), default=None)

    def add_order(self, **fields):
        order = LocalOrder(**fields)
        self._orders[order.id] = order
        return order

    def save_order(self, order):
        self._orders[order.id] = order

    def delete_order(self, order):
        self._orders.pop(order.id, None)

    # --- Audit trail ---

    def append_audit(self, order, entry):
        order.history.append(LocalAuditEntry(**entry))

    def audit_trail(self, order):
        return list(order.history)

    # --- Aggregation ---

    def aggregate(self, period_id):
        members = [o for o in self._orders.values() if o.period_id == period_id]
        service_total = sum((o.service_value for o in members), Decimal("0.00"))
        commission_total = sum((o.commission_value for o in members), Decimal("0.00"))
        return len(members), service_total, commission_total

    # --- Bulk replace ---

    def clear_all(self):
        self._brands = {}
        self._periods = {}
        self._orders = {}
        self._settings = None
