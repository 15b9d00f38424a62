"""Dashboard figures computed from a list of orders."""

from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, List, Mapping, Optional

from .commission import to_money
from .models import PAID, PENDING

ZERO = Decimal("0.00")


def _growth(current: Decimal, previous: Decimal) -> Decimal:
    """Percent change; 100 when there is nothing to compare against."""
    if previous == 0:
        return Decimal("100.00") if current > 0 else ZERO
    return to_money((current - previous) / previous * 100)


def _previous_month(today: date) -> date:
    return (today.replace(day=1) - timedelta(days=1)).replace(day=1)


def monthly_stats(orders, today: date) -> dict:
    current_key = (today.year, today.month)
    prev = _previous_month(today)
    prev_key = (prev.year, prev.month)

    total = paid = pending = prev_total = ZERO
    for order in orders:
        key = (order.entry_date.year, order.entry_date.month)
        if key == current_key:
            total += order.commission_value
            if order.status == PAID:
                paid += order.commission_value
            else:
                pending += order.commission_value
        elif key == prev_key:
            prev_total += order.commission_value

    # Unlike the daily pulse, an empty previous month always reads as +100%.
    growth = Decimal("100.00") if prev_total == 0 else _growth(total, prev_total)
    return {
        "current_month": {"total": to_money(total), "paid": to_money(paid), "pending": to_money(pending)},
        "prev_month": {"total": to_money(prev_total)},
        "growth": growth,
    }


def _top(totals: Mapping[str, Decimal], limit: int) -> List[dict]:
    ranked = sorted(totals.items(), key=lambda item: (-item[1], item[0]))
    return [{"name": name, "value": to_money(value)} for name, value in ranked[:limit]]


def rankings(orders, brand_names: Optional[Mapping[str, str]] = None, limit: int = 5) -> dict:
    """Top brands by commission and top customers by service value."""
    brand_names = brand_names or {}
    by_brand: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    by_customer: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    for order in orders:
        by_brand[brand_names.get(order.brand_id, order.brand_id)] += order.commission_value
        by_customer[order.customer_name] += order.service_value
    return {"top_brands": _top(by_brand, limit), "top_customers": _top(by_customer, limit)}


def dashboard_summary(orders, today: date, days: int = 7) -> dict:
    yesterday = today - timedelta(days=1)
    daily: Dict[date, Decimal] = defaultdict(lambda: ZERO)
    total_service = ZERO
    status_counts = {PENDING: 0, PAID: 0}

    for order in orders:
        daily[order.entry_date] += order.service_value
        total_service += order.service_value
        status_counts[order.status] = status_counts.get(order.status, 0) + 1

    today_value = daily.get(today, ZERO)
    yesterday_value = daily.get(yesterday, ZERO)

    best_day = None
    best_value = ZERO
    for day in sorted(daily):
        if daily[day] > best_value:
            best_day, best_value = day, daily[day]

    last_days = [today - timedelta(days=offset) for offset in range(days - 1, -1, -1)]
    return {
        "total_service_value": to_money(total_service),
        "today": {"service_value": to_money(today_value)},
        "yesterday": {"service_value": to_money(yesterday_value)},
        "pulse_growth": _growth(today_value, yesterday_value),
        "best_day": {"date": best_day, "service_value": to_money(best_value)},
        "status_counts": status_counts,
        "last_days": [{"date": d, "service_value": to_money(daily.get(d, ZERO))} for d in last_days],
    }
