from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from .errors import ValidationError

CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    """Coerce a number into a two-place Decimal. Floats go through ``str``."""
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"Invalid monetary amount: {value!r}")
    # NaN survives quantize.
    if not amount.is_finite():
        raise ValidationError(f"Invalid monetary amount: {value!r}")
    return amount


def compute_commission(service_value, percentage) -> Decimal:
    """Commission owed on ``service_value`` at ``percentage`` percent, rounded to cents."""
    value = to_money(service_value)
    try:
        pct = Decimal(str(percentage))
    except InvalidOperation:
        raise ValidationError(f"Invalid percentage: {percentage!r}")
    if not pct.is_finite():
        raise ValidationError(f"Invalid percentage: {percentage!r}")
    if value < 0:
        raise ValidationError("Service value must not be negative")
    if pct < 0:
        raise ValidationError("Commission percentage must not be negative")
    return (value * pct / Decimal(100)).quantize(CENT, rounding=ROUND_HALF_UP)
