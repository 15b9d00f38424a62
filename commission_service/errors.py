"""Custom exceptions for the commission ledger."""


class LedgerError(Exception):
    """Base exception for all ledger errors."""

    pass


class ValidationError(LedgerError):
    """Raised when input to an operation is malformed."""

    pass


class NotFoundError(LedgerError):
    """Raised when a referenced order, period or brand doesn't exist."""

    def __init__(self, kind: str, ref):
        self.kind = kind
        self.ref = ref
        super().__init__(f"{kind} not found: {ref}")


class DuplicateOrderNumberError(LedgerError):
    """Raised when an O.S. number is already taken."""

    def __init__(self, os_number: int):
        self.os_number = os_number
        super().__init__(f"OS Number already exists: {os_number}")


class ImmutableOrderError(LedgerError):
    """Raised when trying to change or delete a PAID order."""

    def __init__(self, order_id: str, action: str = "edit"):
        self.order_id = order_id
        super().__init__(f"Cannot {action} a PAID order: {order_id}")


class PeriodLockedError(LedgerError):
    """Raised when an operation touches a period that is already paid."""

    def __init__(self, period_id: str, reason: str | None = None):
        self.period_id = period_id
        msg = f"Period {period_id} is already paid"
        if reason:
            msg = f"{reason} (period {period_id} is already paid)"
        super().__init__(msg)


class DuplicateBrandNameError(LedgerError):
    """Raised when a brand name collides case-insensitively with another brand."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Brand already exists: {name}")
