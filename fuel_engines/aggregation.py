"""
Module: fuel_engines.aggregation
Responsibility:
    Group parsed rows by (plant_code, warehouse_number) into PlantBatch
    summaries: row and type counts, date range, unique assets, opening
    balance, liters in and out, computed final inventory and the final
    inventory reported by the legacy sheet.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Later stages (asset resolution, meter validation, reconciliation)
    return updated copies of the PlantBatch built here.

Invariants enforced:
    - final_inventory_computed == initial_inventory + total_litros_in
      - total_litros_out, exact in Decimal.
    - The opening row contributes only to initial_inventory.  Additional
      opening rows in the same batch are reported and otherwise ignored.
    - Row order inside a batch is chronological (date, time, source row).

Failure modes:
    - None raised.  Oddities (mixed products, duplicate openings) become
      diagnostics on the batch.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from fuel_engines.tracer import traced_engine
from fuel_ingestion.domain.types import ClassifiedRow, ParseResult, RejectedRow, UnclassifiedRow
from fuel_kernel.domain.dtos import BatchDiagnostic, DiagnosticSeverity
from fuel_kernel.domain.transactions import (
    ZERO,
    Direction,
    FuelTransaction,
    MovementCategory,
    ProductType,
    TransactionType,
)
from fuel_kernel.logging_config import get_logger

if TYPE_CHECKING:
    from fuel_engines.meter_validation import MeterReading
    from fuel_engines.reconciliation import ReconciliationStatus

logger = get_logger("engines.aggregation")


@dataclass(frozen=True)
class DateRange:
    start: date
    end: date

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1


@dataclass(frozen=True)
class PlantBatch:
    """
    The reconciliation unit: all movements of one (plant, warehouse) pair
    in an import.

    A pure derivation of its transactions; recompute it whenever they
    change instead of editing counts in place.
    """

    batch_id: UUID
    plant_code: str
    warehouse_number: str
    plant_id: str
    warehouse_id: str
    product_type: ProductType | None
    date_range: DateRange | None
    total_rows: int
    entry_count: int
    consumption_count: int
    adjustment_count: int
    unclassified_count: int
    rejected_count: int
    fuel_receipts: int
    asset_consumptions: int
    adjustments: int
    unassigned_consumptions: int
    initial_inventory: Decimal
    total_litros_in: Decimal
    total_litros_out: Decimal
    final_inventory_computed: Decimal
    final_inventory_provided: Decimal | None
    unique_assets: tuple[str, ...]
    transactions: tuple[FuelTransaction, ...] = ()
    discrepancy: Decimal | None = None
    reconciliation_status: ReconciliationStatus | None = None
    unmapped_assets: tuple[str, ...] = ()
    assets_with_meters: tuple[str, ...] = ()
    meter_readings: tuple[MeterReading, ...] = ()
    validation_warnings: int = 0
    validation_errors: int = 0
    diagnostics: tuple[BatchDiagnostic, ...] = field(default_factory=tuple)

    @property
    def net_change(self) -> Decimal:
        return self.total_litros_in - self.total_litros_out

    @property
    def opening_transaction(self) -> FuelTransaction | None:
        for tx in self.transactions:
            if tx.is_opening:
                return tx
        return None

    def summary(self) -> dict[str, Any]:
        """Presentation-ready view. Decimals are rendered as strings."""

        def dec(value: Decimal | None) -> str | None:
            return None if value is None else str(value)

        return {
            "batch_id": str(self.batch_id),
            "plant_code": self.plant_code,
            "warehouse_number": self.warehouse_number,
            "plant_id": self.plant_id,
            "warehouse_id": self.warehouse_id,
            "product_type": self.product_type.value if self.product_type else None,
            "date_range": (
                {"start": self.date_range.start.isoformat(), "end": self.date_range.end.isoformat()}
                if self.date_range
                else None
            ),
            "total_rows": self.total_rows,
            "counts": {
                "entry": self.entry_count,
                "consumption": self.consumption_count,
                "adjustment": self.adjustment_count,
                "unclassified": self.unclassified_count,
                "rejected": self.rejected_count,
                "fuel_receipts": self.fuel_receipts,
                "asset_consumptions": self.asset_consumptions,
                "adjustments": self.adjustments,
                "unassigned_consumptions": self.unassigned_consumptions,
            },
            "initial_inventory": dec(self.initial_inventory),
            "total_litros_in": dec(self.total_litros_in),
            "total_litros_out": dec(self.total_litros_out),
            "net_change": dec(self.net_change),
            "final_inventory_computed": dec(self.final_inventory_computed),
            "final_inventory_provided": dec(self.final_inventory_provided),
            "discrepancy": dec(self.discrepancy),
            "reconciliation_status": (
                self.reconciliation_status.value if self.reconciliation_status else None
            ),
            "unique_assets": list(self.unique_assets),
            "unmapped_assets": list(self.unmapped_assets),
            "unassigned_consumptions": self.unassigned_consumptions,
            "assets_with_meters": list(self.assets_with_meters),
            "meter_readings": len(self.meter_readings),
            "validation_warnings": self.validation_warnings,
            "validation_errors": self.validation_errors,
            "diagnostics": [d.to_dict() for d in self.diagnostics],
        }


def _first_seen(values: Iterable[str | None]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(v for v in values if v))


def build_plant_batch(
    plant_code: str,
    warehouse_number: str,
    transactions: Sequence[FuelTransaction],
    *,
    running_inventory: dict[UUID, Decimal] | None = None,
    unclassified: Sequence[UnclassifiedRow] = (),
    rejected: Sequence[RejectedRow] = (),
    row_diagnostics: Sequence[BatchDiagnostic] = (),
    batch_id: UUID | None = None,
) -> PlantBatch:
    """
    Summarize the transactions of one (plant, warehouse) pair.

    Args:
        running_inventory: running inventory reported on each source row,
            keyed by transaction id.  The chronologically last reported
            value becomes ``final_inventory_provided``.
        unclassified / rejected: rows of the same pair that produced no
            transaction; counted in ``total_rows`` and reported.
        row_diagnostics: parser findings on rows of this pair, such as a
            declared-liters mismatch.
    """
    ordered = tuple(sorted(transactions, key=lambda t: t.sort_key))
    running_inventory = running_inventory or {}
    diagnostics: list[BatchDiagnostic] = []

    opening: FuelTransaction | None = None
    total_in = ZERO
    total_out = ZERO
    for tx in ordered:
        if tx.is_opening:
            if opening is None:
                opening = tx
            else:
                diagnostics.append(
                    BatchDiagnostic(
                        code="DUPLICATE_OPENING",
                        message=(
                            f"Row {tx.source_row_number}: second opening balance ignored "
                            f"(first at row {opening.source_row_number})"
                        ),
                        severity=DiagnosticSeverity.WARNING,
                        row_number=tx.source_row_number,
                        transaction_id=tx.transaction_id,
                    )
                )
            continue
        if tx.direction == Direction.IN:
            total_in += tx.quantity_liters
        else:
            total_out += tx.quantity_liters

    initial = opening.quantity_liters if opening is not None else ZERO

    provided: Decimal | None = None
    for tx in ordered:
        if tx.transaction_id in running_inventory:
            provided = running_inventory[tx.transaction_id]

    products = _first_seen(tx.product_type.value for tx in ordered)
    if len(products) > 1:
        diagnostics.append(
            BatchDiagnostic(
                code="MIXED_PRODUCTS",
                message=f"Warehouse {warehouse_number} of plant {plant_code} mixes products {list(products)}",
                severity=DiagnosticSeverity.WARNING,
            )
        )

    for row in unclassified:
        diagnostics.append(
            BatchDiagnostic(
                code="UNCLASSIFIED_ROW",
                message=f"Row {row.original_row_number} could not be classified ({row.reason.value})",
                severity=DiagnosticSeverity.WARNING,
                row_number=row.original_row_number,
                reason=row.reason.value,
            )
        )
    for row in rejected:
        diagnostics.append(BatchDiagnostic.from_error(row.error, details={"field": row.error.field}))
    diagnostics.extend(row_diagnostics)

    dates = [tx.transaction_date for tx in ordered]
    first = ordered[0] if ordered else None

    def count(predicate: Callable[[FuelTransaction], bool]) -> int:
        return sum(1 for tx in ordered if predicate(tx))

    return PlantBatch(
        batch_id=batch_id or uuid4(),
        plant_code=plant_code,
        warehouse_number=warehouse_number,
        plant_id=first.plant_id if first else plant_code,
        warehouse_id=first.warehouse_id if first else warehouse_number,
        product_type=first.product_type if first else None,
        date_range=DateRange(min(dates), max(dates)) if dates else None,
        total_rows=len(ordered) + len(unclassified) + len(rejected),
        entry_count=count(lambda t: t.transaction_type == TransactionType.ENTRY),
        consumption_count=count(lambda t: t.transaction_type == TransactionType.CONSUMPTION),
        adjustment_count=count(lambda t: t.transaction_type == TransactionType.ADJUSTMENT),
        unclassified_count=len(unclassified),
        rejected_count=len(rejected),
        fuel_receipts=count(lambda t: t.category == MovementCategory.FUEL_RECEIPT),
        asset_consumptions=count(lambda t: t.category == MovementCategory.ASSET_CONSUMPTION),
        adjustments=count(lambda t: t.category == MovementCategory.INVENTORY_ADJUSTMENT),
        unassigned_consumptions=count(
            lambda t: t.transaction_type == TransactionType.CONSUMPTION and not t.asset_code
        ),
        initial_inventory=initial,
        total_litros_in=total_in,
        total_litros_out=total_out,
        final_inventory_computed=initial + total_in - total_out,
        final_inventory_provided=provided,
        unique_assets=_first_seen(tx.asset_code for tx in ordered),
        transactions=ordered,
        diagnostics=tuple(diagnostics),
    )


@traced_engine("aggregation", "1.0")
def aggregate(
    result: ParseResult,
    *,
    id_factory: Callable[[], UUID] = uuid4,
) -> tuple[list[PlantBatch], tuple[BatchDiagnostic, ...]]:
    """
    Group a parse result into plant batches.

    Returns:
        (batches in first-seen order of their (plant, warehouse) pair,
         diagnostics for rejected rows whose pair could not be read)
    """
    groups: dict[tuple[str, str], dict[str, list[Any]]] = {}

    def bucket(plant: str | None, warehouse: str | None) -> dict[str, list[Any]] | None:
        if not plant or not warehouse:
            return None
        return groups.setdefault(
            (plant, warehouse), {"rows": [], "unclassified": [], "rejected": []}
        )

    by_transaction: dict[UUID, list[BatchDiagnostic]] = {}
    for diag in result.diagnostics:
        if diag.transaction_id is not None:
            by_transaction.setdefault(diag.transaction_id, []).append(diag)

    orphans: list[BatchDiagnostic] = []
    for row in result.rows:
        target = bucket(row.plant_code, row.warehouse_number)
        if isinstance(row, UnclassifiedRow):
            if target is not None:
                target["unclassified"].append(row)
        else:
            target["rows"].append(row)
    for rejected in result.rejected:
        target = bucket(rejected.plant_code, rejected.warehouse_number)
        if target is None:
            orphans.append(
                BatchDiagnostic.from_error(rejected.error, details={"field": rejected.error.field})
            )
        else:
            target["rejected"].append(rejected)

    batches: list[PlantBatch] = []
    for (plant, warehouse), members in groups.items():
        rows: list[ClassifiedRow] = members["rows"]
        running = {
            r.transaction.transaction_id: r.running_inventory
            for r in rows
            if r.running_inventory is not None
        }
        batch = build_plant_batch(
            plant,
            warehouse,
            [r.transaction for r in rows],
            running_inventory=running,
            unclassified=members["unclassified"],
            rejected=members["rejected"],
            row_diagnostics=[
                d for r in rows for d in by_transaction.get(r.transaction.transaction_id, ())
            ],
            batch_id=id_factory(),
        )
        batches.append(batch)
        logger.info(
            "plant_batch_aggregated",
            extra={
                "batch_id": str(batch.batch_id),
                "plant_code": plant,
                "warehouse_number": warehouse,
                "total_rows": batch.total_rows,
                "total_litros_in": batch.total_litros_in,
                "total_litros_out": batch.total_litros_out,
                "final_inventory_computed": batch.final_inventory_computed,
            },
        )

    return batches, tuple(orphans)
