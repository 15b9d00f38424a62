from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from ..config import DEFAULT_COMMISSION_PERCENTAGE, DEFAULT_COMPANY_NAME


@dataclass(frozen=True)
class LedgerSettings:
    """Settings snapshot, read once at the start of each operation."""

    fixed_commission_percentage: Decimal = DEFAULT_COMMISSION_PERCENTAGE
    company_name: Optional[str] = DEFAULT_COMPANY_NAME


class LedgerStore(ABC):
    """
    Storage seam for the commission ledger.

    Implementations hand out mutable records (ORM rows or pydantic models)
    exposing the same attribute names; callers mutate them and hand them
    back through ``save_*``. Every mutation must happen inside
    ``transaction()``, which commits on success and rolls back on error.
    """

    @abstractmethod
    def transaction(self):
        """Context manager wrapping one all-or-nothing unit of work."""

    # --- Settings ---

    @abstractmethod
    def get_settings(self) -> LedgerSettings: ...

    @abstractmethod
    def save_settings(self, settings: LedgerSettings) -> None: ...

    # --- Brands ---

    @abstractmethod
    def get_brand(self, brand_id: str): ...

    @abstractmethod
    def find_brand_by_name(self, name: str, ignore_case: bool = False): ...

    @abstractmethod
    def list_brands(self) -> List: ...

    @abstractmethod
    def add_brand(self, name: str, **fields): ...

    @abstractmethod
    def save_brand(self, brand) -> None: ...

    @abstractmethod
    def delete_brand(self, brand) -> None: ...

    @abstractmethod
    def brand_in_use(self, brand_id: str) -> bool: ...

    # --- Periods ---

    @abstractmethod
    def get_period(self, period_id: str): ...

    @abstractmethod
    def find_period(self, start: date, end: date): ...

    @abstractmethod
    def create_period(self, start: date, end: date, **fields):
        """
        Insert a period for (start, end). If a concurrent writer created
        the same bucket first, return that row instead of failing.
        """

    @abstractmethod
    def list_periods(self) -> List: ...

    @abstractmethod
    def save_period(self, period) -> None: ...

    # --- Orders ---

    @abstractmethod
    def get_order(self, order_id: str): ...

    @abstractmethod
    def get_order_by_number(self, os_number: int): ...

    @abstractmethod
    def list_orders(self, period_id: Optional[str] = None, status: Optional[str] = None) -> List:
        """Orders newest first, optionally filtered."""

    @abstractmethod
    def max_os_number(self) -> Optional[int]: ...

    @abstractmethod
    def add_order(self, **fields): ...

    @abstractmethod
    def save_order(self, order) -> None: ...

    @abstractmethod
    def delete_order(self, order) -> None:
        """Remove the order together with its audit trail."""

    # --- Audit trail ---

    @abstractmethod
    def append_audit(self, order, entry: dict) -> None: ...

    @abstractmethod
    def audit_trail(self, order) -> List: ...

    # --- Aggregation ---

    @abstractmethod
    def aggregate(self, period_id: str) -> Tuple[int, Decimal, Decimal]:
        """(order count, sum of service values, sum of commissions) for a period."""

    # --- Bulk replace ---

    @abstractmethod
    def clear_all(self) -> None: ...

    def delete_orders(self, orders: Iterable) -> None:
        for order in orders:
            self.delete_order(order)
