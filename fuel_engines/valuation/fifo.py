"""
fuel_engines.valuation.fifo -- FIFO cost of fuel leaving a warehouse.

Responsibility:
    Rebuild the priced inventory lots of one warehouse from its recent
    movements and price a quantity against them, oldest lot first.  Used
    to cost a transfer whose source consumption carries no unit cost.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The service selects the
    movements (priced entries and non-transfer consumptions inside the
    lookback window) and passes them in.

Invariants enforced:
    - Positive lot quantity: FuelCostLot rejects quantity <= 0.
    - Non-negative cost: FuelCostLot rejects unit_cost < 0.
    - On the same date entries are applied before consumptions.
    - When the lots run out, the remainder is priced at the weighted
      average of all priced entries.  With no priced entry at all the
      result is None, never zero.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from fuel_engines.tracer import traced_engine
from fuel_kernel.domain.transactions import ZERO, Direction, FuelTransaction, TransactionType
from fuel_kernel.logging_config import get_logger

logger = get_logger("engines.valuation.fifo")


class CostMethod(str, Enum):
    FIFO = "fifo"
    WEIGHTED_AVG = "weighted_avg"
    MIXED = "mixed"  # FIFO lots plus weighted-average remainder


@dataclass(frozen=True, slots=True)
class FuelCostLot:
    """Liters received at one unit cost."""

    source_transaction_id: UUID
    lot_date: date
    quantity: Decimal
    unit_cost: Decimal

    def __post_init__(self) -> None:
        if self.quantity <= 0:
            raise ValueError(f"Lot quantity must be positive, got {self.quantity}")
        if self.unit_cost < 0:
            raise ValueError(f"Lot unit cost cannot be negative, got {self.unit_cost}")


@dataclass(frozen=True)
class FifoCostResult:
    quantity: Decimal
    total_cost: Decimal
    unit_cost: Decimal
    method: CostMethod
    fifo_liters: Decimal
    fallback_liters: Decimal


def _priced_entry(tx: FuelTransaction) -> bool:
    return (
        tx.transaction_type == TransactionType.ENTRY
        and tx.direction == Direction.IN
        and tx.unit_cost is not None
        and tx.unit_cost > ZERO
        and tx.quantity_liters > ZERO
    )


def _draining_consumption(tx: FuelTransaction) -> bool:
    return tx.transaction_type == TransactionType.CONSUMPTION and not tx.is_transfer


def build_lots(movements: Iterable[FuelTransaction], as_of: date) -> list[FuelCostLot]:
    """Remaining FIFO lots after replaying movements up to ``as_of``."""
    relevant = [
        tx
        for tx in movements
        if tx.transaction_date <= as_of and (_priced_entry(tx) or _draining_consumption(tx))
    ]
    # entries first on the same date
    relevant.sort(key=lambda tx: (tx.transaction_date, 0 if _priced_entry(tx) else 1, tx.sort_key))

    lots: list[FuelCostLot] = []
    for tx in relevant:
        if _priced_entry(tx):
            lots.append(FuelCostLot(tx.transaction_id, tx.transaction_date, tx.quantity_liters, tx.unit_cost))
            continue
        remaining = tx.quantity_liters
        while remaining > ZERO and lots:
            head = lots[0]
            taken = min(remaining, head.quantity)
            remaining -= taken
            left = head.quantity - taken
            if left > ZERO:
                lots[0] = FuelCostLot(head.source_transaction_id, head.lot_date, left, head.unit_cost)
            else:
                lots.pop(0)
    return lots


def weighted_average_cost(movements: Iterable[FuelTransaction]) -> Decimal | None:
    liters = ZERO
    cost = ZERO
    for tx in movements:
        if _priced_entry(tx):
            liters += tx.quantity_liters
            cost += tx.quantity_liters * tx.unit_cost
    if liters == ZERO:
        return None
    return cost / liters


@traced_engine("fifo_valuation", "1.0", fingerprint_fields=("quantity", "as_of"))
def fifo_unit_cost(
    movements: Iterable[FuelTransaction],
    *,
    quantity: Decimal,
    as_of: date,
) -> FifoCostResult | None:
    """
    Price ``quantity`` liters leaving the warehouse on ``as_of``.

    Returns:
        The cost breakdown, or None when no priced entry exists.
    """
    movements = list(movements)
    if quantity <= ZERO:
        return None

    lots = build_lots(movements, as_of)
    average = weighted_average_cost(tx for tx in movements if tx.transaction_date <= as_of)

    remaining = quantity
    total = ZERO
    for lot in lots:
        if remaining <= ZERO:
            break
        taken = min(remaining, lot.quantity)
        total += taken * lot.unit_cost
        remaining -= taken

    fifo_liters = quantity - remaining
    if remaining > ZERO:
        if average is None:
            logger.info("fifo_cost_unavailable", extra={"quantity": quantity, "as_of": as_of})
            return None
        total += remaining * average

    if remaining == ZERO:
        method = CostMethod.FIFO
    elif fifo_liters == ZERO:
        method = CostMethod.WEIGHTED_AVG
    else:
        method = CostMethod.MIXED

    return FifoCostResult(
        quantity=quantity,
        total_cost=total,
        unit_cost=total / quantity,
        method=method,
        fifo_liters=fifo_liters,
        fallback_liters=remaining,
    )
