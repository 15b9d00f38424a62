import logging

from .commission import to_money
from .errors import NotFoundError

logger = logging.getLogger(__name__)


def recompute_totals(store, period_id: str):
    """Rewrite a period's cached totals from the orders currently in it."""
    period = store.get_period(period_id)
    if period is None:
        raise NotFoundError("Period", period_id)

    count, service_total, commission_total = store.aggregate(period_id)
    period.total_orders = count
    period.total_service_value = to_money(service_total)
    period.total_commission = to_money(commission_total)
    store.save_period(period)
    return period


def recompute_all_totals(store):
    """Reconciliation pass over every period."""
    periods = store.list_periods()
    for period in periods:
        recompute_totals(store, period.id)
    logger.info("Recomputed totals for %d periods", len(periods))
    return periods
