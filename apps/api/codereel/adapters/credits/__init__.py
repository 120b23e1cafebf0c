"""Credit ledger adapters."""

from .base import CreditLedger
from .memory_ledger import InMemoryCreditLedger

__all__ = ["CreditLedger", "InMemoryCreditLedger"]
