# --- Imports ---
import logging
from datetime import date
from typing import List, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from . import backup, reports
from .config import LOCAL_STORE_PATH, LOG_LEVEL, RABBITMQ_HOST, STORAGE_BACKEND
from .database import Base, engine, get_db
from .errors import (
    DuplicateBrandNameError,
    DuplicateOrderNumberError,
    ImmutableOrderError,
    LedgerError,
    NotFoundError,
    PeriodLockedError,
    ValidationError,
)
from .ledger import CommissionLedger
from .schemas import (
    BrandRecord,
    BrandRequest,
    BulkDelete,
    BulkStatusChange,
    DuplicateRequest,
    OrderCreate,
    OrderRecord,
    OrderUpdate,
    PeriodRecord,
    SettingsRecord,
    SettingsUpdate,
    StatusChange,
    brand_record,
    order_record,
    period_record,
    settings_record,
)
from .storage.local import LocalStore
from .storage.sql import SqlStore

logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger(__name__)

# --- Database Initialization ---
# Create database tables on startup if they don't exist.
if STORAGE_BACKEND == "sql":
    Base.metadata.create_all(bind=engine)

# --- App Instance ---
app = FastAPI(title="Commission Ledger")

_local_store: Optional[LocalStore] = None
_publisher = None


def get_publisher():
    """Event publisher, or None when RabbitMQ is not configured."""
    global _publisher
    if RABBITMQ_HOST and _publisher is None:
        from .messaging.producer import RabbitMQProducer
        _publisher = RabbitMQProducer(host=RABBITMQ_HOST)
    return _publisher


def get_store(db: Session = Depends(get_db)):
    global _local_store
    if STORAGE_BACKEND == "local":
        if _local_store is None:
            _local_store = LocalStore(LOCAL_STORE_PATH)
        return _local_store
    return SqlStore(db)


def get_ledger(store=Depends(get_store)) -> CommissionLedger:
    """FastAPI dependency building a ledger over the request's store."""
    return CommissionLedger(store, publisher=get_publisher())


# --- Error Mapping ---

ERROR_STATUS_CODES = {
    ValidationError: 400,
    NotFoundError: 404,
    DuplicateOrderNumberError: 409,
    DuplicateBrandNameError: 409,
    ImmutableOrderError: 409,
    PeriodLockedError: 409,
}


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    """Map LedgerError subclasses to HTTP responses."""
    status_code = ERROR_STATUS_CODES.get(type(exc), 500)
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error_type": type(exc).__name__},
    )


def _order_out(ledger: CommissionLedger, order) -> OrderRecord:
    return order_record(order, ledger.brand_name(order), ledger.audit_trail(order))


# --- Endpoints ---

@app.get("/")
def root():
    """Health check endpoint."""
    return {"message": "Commission ledger is running", "storage": STORAGE_BACKEND}


# Orders

@app.get("/api/v1/orders", response_model=List[OrderRecord])
def list_orders(period_id: Optional[str] = None, status: Optional[str] = None,
                ledger: CommissionLedger = Depends(get_ledger)):
    """Retrieves orders, newest first, with brand name and history."""
    return [_order_out(ledger, o) for o in ledger.get_orders(period_id=period_id, status=status)]


@app.post("/api/v1/orders", response_model=OrderRecord, status_code=201)
def create_order(req: OrderCreate, ledger: CommissionLedger = Depends(get_ledger)):
    """Creates a PENDING order in the period containing its entry date."""
    order = ledger.create_order(
        os_number=req.os_number,
        entry_date=req.entry_date,
        customer_name=req.customer_name,
        brand=req.brand,
        service_value=req.service_value,
        payment_method=req.payment_method,
    )
    return _order_out(ledger, order)


@app.post("/api/v1/orders/bulk-status")
def bulk_status(req: BulkStatusChange, ledger: CommissionLedger = Depends(get_ledger)):
    ledger.bulk_status_change(req.ids, req.status)
    return {"success": True}


@app.post("/api/v1/orders/bulk-delete")
def bulk_delete(req: BulkDelete, ledger: CommissionLedger = Depends(get_ledger)):
    deleted = ledger.bulk_delete(req.ids)
    return {"success": True, "deleted": deleted}


@app.get("/api/v1/orders/{order_id}", response_model=OrderRecord)
def get_order(order_id: str, ledger: CommissionLedger = Depends(get_ledger)):
    return _order_out(ledger, ledger.get_order(order_id))


@app.patch("/api/v1/orders/{order_id}", response_model=OrderRecord)
def update_order(order_id: str, req: OrderUpdate, ledger: CommissionLedger = Depends(get_ledger)):
    """Edits the fields present in the request body."""
    order = ledger.update_order(order_id, **req.model_dump(exclude_unset=True))
    return _order_out(ledger, order)


@app.delete("/api/v1/orders/{order_id}")
def delete_order(order_id: str, ledger: CommissionLedger = Depends(get_ledger)):
    ledger.delete_order(order_id)
    return {"success": True}


@app.post("/api/v1/orders/{order_id}/duplicate", response_model=OrderRecord, status_code=201)
def duplicate_order(order_id: str, req: Optional[DuplicateRequest] = None,
                    ledger: CommissionLedger = Depends(get_ledger)):
    entry_date = req.entry_date if req is not None else None
    return _order_out(ledger, ledger.duplicate_order(order_id, entry_date=entry_date))


@app.post("/api/v1/orders/{order_id}/status", response_model=OrderRecord)
def change_status(order_id: str, req: StatusChange, ledger: CommissionLedger = Depends(get_ledger)):
    return _order_out(ledger, ledger.change_status(order_id, req.status))


# Periods

@app.get("/api/v1/periods", response_model=List[PeriodRecord])
def list_periods(ledger: CommissionLedger = Depends(get_ledger)):
    return [period_record(p) for p in ledger.list_periods()]


@app.post("/api/v1/periods/{period_id}/close", response_model=PeriodRecord)
def close_period(period_id: str, ledger: CommissionLedger = Depends(get_ledger)):
    """Marks the period paid and every order in it PAID. Irreversible."""
    return period_record(ledger.close_period(period_id))


@app.post("/api/v1/periods/{period_id}/recalculate", response_model=PeriodRecord)
def recalculate_period(period_id: str, ledger: CommissionLedger = Depends(get_ledger)):
    return period_record(ledger.recalculate_commissions(period_id))


# Brands

@app.get("/api/v1/brands", response_model=List[BrandRecord])
def list_brands(ledger: CommissionLedger = Depends(get_ledger)):
    return [brand_record(b) for b in ledger.list_brands()]


@app.post("/api/v1/brands", response_model=BrandRecord, status_code=201)
def add_brand(req: BrandRequest, ledger: CommissionLedger = Depends(get_ledger)):
    return brand_record(ledger.add_brand(req.name))


@app.put("/api/v1/brands/{brand_id}", response_model=BrandRecord)
def rename_brand(brand_id: str, req: BrandRequest, ledger: CommissionLedger = Depends(get_ledger)):
    return brand_record(ledger.rename_brand(brand_id, req.name))


@app.delete("/api/v1/brands/{brand_id}")
def delete_brand(brand_id: str, ledger: CommissionLedger = Depends(get_ledger)):
    ledger.delete_brand(brand_id)
    return {"success": True}


# Settings

@app.get("/api/v1/settings", response_model=SettingsRecord)
def get_settings(ledger: CommissionLedger = Depends(get_ledger)):
    return settings_record(ledger.get_settings())


@app.put("/api/v1/settings", response_model=SettingsRecord)
def update_settings(req: SettingsUpdate, ledger: CommissionLedger = Depends(get_ledger)):
    return settings_record(ledger.update_settings(req.fixed_commission_percentage, req.company_name))


# Backup

@app.get("/api/v1/backup/export")
def export_backup(ledger: CommissionLedger = Depends(get_ledger)):
    return backup.export_snapshot(ledger.store)


@app.post("/api/v1/backup/import")
def import_backup(payload: dict, ledger: CommissionLedger = Depends(get_ledger)):
    """Replaces the whole dataset with the uploaded snapshot."""
    backup.import_snapshot(ledger.store, payload)
    return {"success": True}


# Reports

@app.get("/api/v1/reports/monthly")
def monthly_report(today: Optional[date] = None, ledger: CommissionLedger = Depends(get_ledger)):
    return reports.monthly_stats(ledger.get_orders(), today or date.today())


@app.get("/api/v1/reports/rankings")
def rankings_report(limit: int = 5, ledger: CommissionLedger = Depends(get_ledger)):
    names = {b.id: b.name for b in ledger.list_brands()}
    return reports.rankings(ledger.get_orders(), names, limit=limit)


@app.get("/api/v1/reports/dashboard")
def dashboard_report(today: Optional[date] = None, ledger: CommissionLedger = Depends(get_ledger)):
    return reports.dashboard_summary(ledger.get_orders(), today or date.today())
