import logging
from datetime import date, timedelta

from .config import DEFAULT_COMMISSION_PERCENTAGE, DEFAULT_COMPANY_NAME
from .storage.base import LedgerSettings

logger = logging.getLogger(__name__)

DEFAULT_BRANDS = ("Samsung", "Apple", "LG", "Motorola")
DEMO_DAY_OFFSETS = (0, 5, 15, 20, 40)


def seed_defaults(store) -> None:
    """Create the settings row and default brands if they are missing."""
    with store.transaction():
        # Defaults are reported even without a row; persist them once.
        if store.get_settings() == LedgerSettings():
            store.save_settings(LedgerSettings(
                fixed_commission_percentage=DEFAULT_COMMISSION_PERCENTAGE,
                company_name=DEFAULT_COMPANY_NAME,
            ))
            logger.info("Settings seeded")
        for name in DEFAULT_BRANDS:
            if store.find_brand_by_name(name) is None:
                store.add_brand(name)
                logger.info("Brand %s seeded", name)


def seed_demo_orders(ledger, today: date) -> list:
    """Five demo orders spread over recent periods, only when there are no orders yet."""
    if ledger.get_orders():
        return []
    brands = [b.name for b in ledger.list_brands()] or list(DEFAULT_BRANDS)
    created = []
    for i, offset in enumerate(DEMO_DAY_OFFSETS):
        created.append(ledger.create_order(
            os_number=1000 + i,
            entry_date=today - timedelta(days=offset),
            customer_name=f"Customer {i + 1}",
            brand=brands[i % len(brands)],
            service_value=150 + i * 50,
        ))
    return created


def main():
    from .database import Base, SessionLocal, engine
    from .ledger import CommissionLedger
    from .storage.sql import SqlStore

    logging.basicConfig(level=logging.INFO)
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        store = SqlStore(db)
        seed_defaults(store)
        seed_demo_orders(CommissionLedger(store), date.today())
    finally:
        db.close()


if __name__ == "__main__":
    main()
