"""Commission ledger service: service orders, bi-weekly periods and commissions."""

__version__ = "1.0.0"
