from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

# --- Request Models ---


class OrderCreate(BaseModel):
    """Defines the data model for an incoming order."""
    os_number: int = Field(..., gt=0)
    entry_date: date
    customer_name: str = Field(..., min_length=1)
    brand: str = Field(..., min_length=1, description="Brand id or brand name")
    service_value: Decimal = Field(..., ge=0)
    payment_method: Optional[str] = None


class OrderUpdate(BaseModel):
    """Partial order edit; only fields that are sent are changed."""
    os_number: Optional[int] = Field(default=None, gt=0)
    entry_date: Optional[date] = None
    customer_name: Optional[str] = Field(default=None, min_length=1)
    brand: Optional[str] = Field(default=None, min_length=1)
    service_value: Optional[Decimal] = Field(default=None, ge=0)
    payment_method: Optional[str] = None
    status: Optional[str] = Field(default=None, pattern="^(PENDING|PAID)$")


class DuplicateRequest(BaseModel):
    entry_date: Optional[date] = None


class StatusChange(BaseModel):
    status: str = Field(..., pattern="^(PENDING|PAID)$")


class BulkStatusChange(BaseModel):
    ids: List[str]
    status: str = Field(..., pattern="^(PENDING|PAID)$")


class BulkDelete(BaseModel):
    ids: List[str]


class BrandRequest(BaseModel):
    name: str = Field(..., min_length=1)


class SettingsUpdate(BaseModel):
    fixed_commission_percentage: Optional[Decimal] = Field(default=None, ge=0, le=100)
    company_name: Optional[str] = None


# --- Records ---
# Shared by API responses and backup snapshots.


class BrandRecord(BaseModel):
    id: str
    name: str
    created_at: Optional[datetime] = None


class PeriodRecord(BaseModel):
    id: str
    start_date: date
    end_date: date
    paid: bool = False
    paid_at: Optional[datetime] = None
    total_orders: int = 0
    total_service_value: Decimal = Decimal("0.00")
    total_commission: Decimal = Decimal("0.00")


class AuditRecord(BaseModel):
    timestamp: datetime
    user: str
    action: str
    details: Optional[str] = None


class OrderRecord(BaseModel):
    id: str
    os_number: int
    entry_date: date
    customer_name: str
    brand_id: str
    brand: Optional[str] = None
    service_value: Decimal
    commission_value: Decimal
    payment_method: Optional[str] = None
    status: str
    paid_at: Optional[datetime] = None
    period_id: str
    created_at: Optional[datetime] = None
    history: List[AuditRecord] = []


class SettingsRecord(BaseModel):
    fixed_commission_percentage: Decimal
    company_name: Optional[str] = None


class BackupSnapshot(BaseModel):
    version: str = "1.0"
    brands: List[BrandRecord] = []
    periods: List[PeriodRecord] = []
    orders: List[OrderRecord] = []
    settings: Optional[SettingsRecord] = None

    @field_validator("settings", mode="before")
    @classmethod
    def _single_settings_row(cls, value):
        # Older exports carry the settings table as a list of rows.
        if isinstance(value, list):
            return value[0] if value else None
        return value


# --- Builders ---


def brand_record(brand) -> BrandRecord:
    return BrandRecord(id=brand.id, name=brand.name, created_at=brand.created_at)


def period_record(period) -> PeriodRecord:
    return PeriodRecord(
        id=period.id,
        start_date=period.start_date,
        end_date=period.end_date,
        paid=period.paid,
        paid_at=period.paid_at,
        total_orders=period.total_orders,
        total_service_value=period.total_service_value,
        total_commission=period.total_commission,
    )


def audit_record(entry) -> AuditRecord:
    return AuditRecord(timestamp=entry.timestamp, user=entry.user, action=entry.action, details=entry.details)


def order_record(order, brand_name=None, history=()) -> OrderRecord:
    return OrderRecord(
        id=order.id,
        os_number=order.os_number,
        entry_date=order.entry_date,
        customer_name=order.customer_name,
        brand_id=order.brand_id,
        brand=brand_name,
        service_value=order.service_value,
        commission_value=order.commission_value,
        payment_method=order.payment_method,
        status=order.status,
        paid_at=order.paid_at,
        period_id=order.period_id,
        created_at=order.created_at,
        history=[audit_record(e) for e in history],
    )


def settings_record(settings) -> SettingsRecord:
    return SettingsRecord(
        fixed_commission_percentage=settings.fixed_commission_percentage,
        company_name=settings.company_name,
    )
