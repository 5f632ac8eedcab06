"""
SQLAlchemy ORM persistence models for processed plant batches.

Responsibility
--------------
``PlantBatchModel`` stores the summary of one processed (plant, warehouse)
batch: counts, inventory totals, reconciliation outcome and the
reviewer-facing diagnostics.  Transactions themselves live in
``fuel_transactions`` and point back here through ``source_batch_id``.

Architecture position
---------------------
**Services layer** -- ORM model written by ``BatchImportService``.
Inherits from ``TrackedBase`` (kernel db layer).

Invariants enforced
-------------------
* All liter fields use ``Decimal`` (Numeric(38,9)) -- NEVER float.
* Enum fields stored as String for readability and portability.
* A batch row is a derivation: it is rewritten from its transactions,
  never edited field by field.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Date, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from fuel_engines.aggregation import PlantBatch
from fuel_kernel.db.base import TrackedBase, UUIDString


class PlantBatchModel(TrackedBase):
    """Persisted summary of a processed plant batch. ``id`` is the batch id."""

    __tablename__ = "fuel_plant_batches"

    __table_args__ = (
        Index("idx_plant_batch_import", "import_id"),
        Index("idx_plant_batch_warehouse", "plant_code", "warehouse_number"),
    )

    import_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    source_filename: Mapped[str | None] = mapped_column(String(255), nullable=True)
    plant_code: Mapped[str] = mapped_column(String(50), nullable=False)
    warehouse_number: Mapped[str] = mapped_column(String(50), nullable=False)
    plant_id: Mapped[str] = mapped_column(String(100), nullable=False)
    warehouse_id: Mapped[str] = mapped_column(String(100), nullable=False)
    product_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    date_start: Mapped[date | None] = mapped_column(Date, nullable=True)
    date_end: Mapped[date | None] = mapped_column(Date, nullable=True)
    total_rows: Mapped[int] = mapped_column(default=0)
    entry_count: Mapped[int] = mapped_column(default=0)
    consumption_count: Mapped[int] = mapped_column(default=0)
    adjustment_count: Mapped[int] = mapped_column(default=0)
    unclassified_count: Mapped[int] = mapped_column(default=0)
    rejected_count: Mapped[int] = mapped_column(default=0)
    unassigned_consumptions: Mapped[int] = mapped_column(default=0)
    initial_inventory: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    total_litros_in: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    total_litros_out: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    final_inventory_computed: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    final_inventory_provided: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)
    discrepancy: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)
    reconciliation_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    validation_warnings: Mapped[int] = mapped_column(default=0)
    validation_errors: Mapped[int] = mapped_column(default=0)
    unique_assets: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    unmapped_assets: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    diagnostics: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)

    @classmethod
    def from_batch(
        cls,
        batch: PlantBatch,
        import_id: UUID,
        created_by_id: UUID,
        source_filename: str | None = None,
    ) -> PlantBatchModel:
        summary = batch.summary()
        return cls(
            id=batch.batch_id,
            import_id=import_id,
            source_filename=source_filename,
            plant_code=batch.plant_code,
            warehouse_number=batch.warehouse_number,
            plant_id=batch.plant_id,
            warehouse_id=batch.warehouse_id,
            product_type=batch.product_type.value if batch.product_type else None,
            date_start=batch.date_range.start if batch.date_range else None,
            date_end=batch.date_range.end if batch.date_range else None,
            total_rows=batch.total_rows,
            entry_count=batch.entry_count,
            consumption_count=batch.consumption_count,
            adjustment_count=batch.adjustment_count,
            unclassified_count=batch.unclassified_count,
            rejected_count=batch.rejected_count,
            unassigned_consumptions=batch.unassigned_consumptions,
            initial_inventory=batch.initial_inventory,
            total_litros_in=batch.total_litros_in,
            total_litros_out=batch.total_litros_out,
            final_inventory_computed=batch.final_inventory_computed,
            final_inventory_provided=batch.final_inventory_provided,
            discrepancy=batch.discrepancy,
            reconciliation_status=(
                batch.reconciliation_status.value if batch.reconciliation_status else None
            ),
            validation_warnings=batch.validation_warnings,
            validation_errors=batch.validation_errors,
            unique_assets=list(batch.unique_assets),
            unmapped_assets=list(batch.unmapped_assets),
            diagnostics=json_safe(summary["diagnostics"]),
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return (
            f"<PlantBatchModel {self.plant_code}/{self.warehouse_number} "
            f"[{self.reconciliation_status}] rows={self.total_rows}>"
        )


def json_safe(value: Any) -> Any:
    """Render Decimal/UUID/date values inside diagnostics details as strings."""
    if isinstance(value, dict):
        return {k: json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [json_safe(v) for v in value]
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)
