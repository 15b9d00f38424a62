"""Storage back-ends for the commission ledger."""

from .base import LedgerSettings, LedgerStore
from .local import LocalStore
from .sql import SqlStore

__all__ = ["LedgerSettings", "LedgerStore", "LocalStore", "SqlStore"]
