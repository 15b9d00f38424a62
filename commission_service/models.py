import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .database import Base  # Import the Base class from our database setup

PENDING = "PENDING"
PAID = "PAID"
ORDER_STATUSES = (PENDING, PAID)


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    # Naive UTC, so values round-trip unchanged through SQLite.
    return datetime.now(timezone.utc).replace(tzinfo=None)


# Defines the ORM model for a brand referenced by orders.
class Brand(Base):
    __tablename__ = "brands"

    id = Column(String, primary_key=True, default=new_id)
    name = Column(String, unique=True, nullable=False)
    created_at = Column(DateTime, default=utcnow)


# A fixed bi-weekly accounting bucket: days 1-15 or 16-end of a month.
class Period(Base):
    __tablename__ = "periods"
    __table_args__ = (
        UniqueConstraint("start_date", "end_date", name="uq_periods_start_end"),
    )

    id = Column(String, primary_key=True, default=new_id)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    paid = Column(Boolean, nullable=False, default=False)
    paid_at = Column(DateTime, nullable=True)

    # Denormalized totals, rewritten by the totals aggregator.
    total_orders = Column(Integer, nullable=False, default=0)
    total_service_value = Column(Numeric(12, 2), nullable=False, default=0)
    total_commission = Column(Numeric(12, 2), nullable=False, default=0)

    orders = relationship("ServiceOrder", back_populates="period")


# Defines the ORM model for a service order ("O.S.").
class ServiceOrder(Base):
    __tablename__ = "service_orders"

    id = Column(String, primary_key=True, default=new_id)  # Internal identifier.
    os_number = Column(Integer, unique=True, nullable=False)  # Business-level order number.
    entry_date = Column(Date, nullable=False)
    customer_name = Column(String, nullable=False)
    brand_id = Column(String, ForeignKey("brands.id"), nullable=False)
    service_value = Column(Numeric(12, 2), nullable=False)
    commission_value = Column(Numeric(12, 2), nullable=False)
    payment_method = Column(String, nullable=True)
    status = Column(String, nullable=False, default=PENDING)  # PENDING or PAID.
    paid_at = Column(DateTime, nullable=True)
    period_id = Column(String, ForeignKey("periods.id"), nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow)

    brand = relationship("Brand")
    period = relationship("Period", back_populates="orders")
    audit_logs = relationship(
        "AuditLog",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="AuditLog.id",
    )


# Append-only history attached to an order.
class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String, ForeignKey("service_orders.id"), nullable=False, index=True)
    timestamp = Column(DateTime, nullable=False)
    user = Column(String, nullable=False)
    action = Column(String, nullable=False)  # CREATED, UPDATED, DUPLICATED or STATUS_CHANGE.
    details = Column(String, nullable=True)

    order = relationship("ServiceOrder", back_populates="audit_logs")


# Single-row table holding the commission percentage.
class Settings(Base):
    __tablename__ = "settings"

    id = Column(Integer, primary_key=True)
    fixed_commission_percentage = Column(Numeric(5, 2), nullable=False)
    company_name = Column(String, nullable=True)
