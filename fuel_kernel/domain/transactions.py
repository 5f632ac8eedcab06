"""
Fuel transactions -- the immutable unit of the inventory ledger.

Responsibility:
    Defines the transaction value object produced by the parser and consumed
    by every engine, plus the enums that classify it.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - quantity_liters >= 0; the sign of a movement lives in ``direction``.
    - Liters and costs are Decimal, never float.
    - A transaction is immutable. The only sanctioned change is a transfer
      link (``is_transfer``, ``reference_transaction_id``, ``unit_cost``),
      applied in one step through ``as_transfer_leg``.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID


class TransactionType(str, Enum):
    """Ledger movement type."""

    ENTRY = "entry"
    CONSUMPTION = "consumption"
    ADJUSTMENT = "adjustment"


class ProductType(str, Enum):
    """Fuel product held in a warehouse."""

    DIESEL = "diesel"
    UREA = "urea"


class Direction(str, Enum):
    """Whether a movement adds to or removes from warehouse stock."""

    IN = "in"
    OUT = "out"


class MovementCategory(str, Enum):
    """Finer classification of a legacy row."""

    INVENTORY_OPENING = "inventory_opening"  # Opening balance, no liters moved
    FUEL_RECEIPT = "fuel_receipt"  # Large delivery into the warehouse
    INVENTORY_ADJUSTMENT = "inventory_adjustment"  # Manual correction
    ASSET_CONSUMPTION = "asset_consumption"  # Dispensed to a known unit
    UNASSIGNED_CONSUMPTION = "unassigned_consumption"  # Dispensed, no unit recorded


ZERO = Decimal("0")


@dataclass(frozen=True)
class FuelTransaction:
    """
    Immutable fuel ledger movement.

    ``source_row_number`` points back at the legacy row (1-indexed) so that
    any diagnostic can be traced to the original spreadsheet.
    """

    transaction_id: UUID
    transaction_type: TransactionType
    plant_id: str
    warehouse_id: str
    product_type: ProductType
    quantity_liters: Decimal
    transaction_date: date
    source_row_number: int
    direction: Direction
    category: MovementCategory
    plant_code: str = ""
    warehouse_number: str = ""
    asset_code: str | None = None
    asset_id: str | None = None
    unit_cost: Decimal | None = None
    is_transfer: bool = False
    reference_transaction_id: UUID | None = None
    reading_time: str | None = None
    horometer: Decimal | None = None
    kilometer: Decimal | None = None
    operator: str | None = None
    notes: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.quantity_liters, Decimal):
            object.__setattr__(self, "quantity_liters", Decimal(str(self.quantity_liters)))
        if self.quantity_liters < ZERO:
            raise ValueError(
                f"Transaction quantity cannot be negative, got {self.quantity_liters}"
            )
        if self.unit_cost is not None and not isinstance(self.unit_cost, Decimal):
            object.__setattr__(self, "unit_cost", Decimal(str(self.unit_cost)))

    @property
    def is_opening(self) -> bool:
        return self.category == MovementCategory.INVENTORY_OPENING

    @property
    def signed_quantity(self) -> Decimal:
        """Quantity with the stock effect applied (+ in, - out)."""
        if self.direction == Direction.IN:
            return self.quantity_liters
        return -self.quantity_liters

    @property
    def total_cost(self) -> Decimal | None:
        if self.unit_cost is None:
            return None
        return self.unit_cost * self.quantity_liters

    @property
    def sort_key(self) -> tuple[date, str, int]:
        """Chronological ordering: date, time of day, then source row."""
        return (self.transaction_date, self.reading_time or "", self.source_row_number)

    def with_asset(self, asset_id: str | None) -> FuelTransaction:
        return replace(self, asset_id=asset_id)

    def as_transfer_leg(
        self,
        counterpart_id: UUID,
        unit_cost: Decimal | None = None,
    ) -> FuelTransaction:
        """Return this transaction linked to its transfer counterpart."""
        return replace(
            self,
            is_transfer=True,
            reference_transaction_id=counterpart_id,
            unit_cost=unit_cost if unit_cost is not None else self.unit_cost,
        )
