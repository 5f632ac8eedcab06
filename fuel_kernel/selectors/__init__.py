"""Read-only query selectors."""

from fuel_kernel.selectors.base import BaseSelector
from fuel_kernel.selectors.transaction_selector import TransactionQuery, TransactionSelector

__all__ = ["BaseSelector", "TransactionQuery", "TransactionSelector"]
