"""
fuel_kernel.domain -- Pure value objects. ZERO I/O.
"""

from fuel_kernel.domain.dtos import BatchDiagnostic, DiagnosticSeverity
from fuel_kernel.domain.transactions import (
    Direction,
    FuelTransaction,
    MovementCategory,
    ProductType,
    TransactionType,
)

__all__ = [
    "BatchDiagnostic",
    "DiagnosticSeverity",
    "Direction",
    "FuelTransaction",
    "MovementCategory",
    "ProductType",
    "TransactionType",
]
