"""
Module: fuel_kernel.models.transaction
Responsibility: ORM persistence for fuel ledger transactions (entries,
    consumptions and adjustments migrated from legacy logs).
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ (for DTO conversion) only.

Invariants enforced:
    - quantity_liters >= 0 (CHECK constraint); direction carries the sign.
    - source_row_number is NOT NULL: every row is traceable to the legacy file.
    - Transfer fields (is_transfer, reference_transaction_id, unit_cost) are
      the only columns written after insert, and only by TransferService.

Audit relevance:
    Candidate searches filter by (product_type, warehouse_id,
    transaction_type, is_transfer, transaction_date); the composite index
    below serves that query.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, Date, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from fuel_kernel.db.base import TrackedBase, UUIDString
from fuel_kernel.domain.transactions import (
    Direction,
    FuelTransaction,
    MovementCategory,
    ProductType,
    TransactionType,
)


class FuelTransactionModel(TrackedBase):
    """Persistent fuel ledger movement. Maps to ``FuelTransaction``."""

    __tablename__ = "fuel_transactions"

    __table_args__ = (
        CheckConstraint("quantity_liters >= 0", name="ck_fuel_tx_quantity_non_negative"),
        Index(
            "idx_fuel_tx_candidate_search",
            "product_type",
            "warehouse_id",
            "transaction_type",
            "is_transfer",
            "transaction_date",
        ),
        Index("idx_fuel_tx_batch", "source_batch_id"),
        Index("idx_fuel_tx_reference", "reference_transaction_id"),
    )

    transaction_type: Mapped[str] = mapped_column(String(20), nullable=False)
    plant_id: Mapped[str] = mapped_column(String(100), nullable=False)
    warehouse_id: Mapped[str] = mapped_column(String(100), nullable=False)
    plant_code: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    warehouse_number: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    product_type: Mapped[str] = mapped_column(String(20), nullable=False)
    direction: Mapped[str] = mapped_column(String(10), nullable=False)
    category: Mapped[str] = mapped_column(String(40), nullable=False)
    asset_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    asset_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    quantity_liters: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    unit_cost: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)
    reading_time: Mapped[str | None] = mapped_column(String(10), nullable=True)
    horometer: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)
    kilometer: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)
    is_transfer: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reference_transaction_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    source_row_number: Mapped[int] = mapped_column(nullable=False)
    source_batch_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    operator: Mapped[str | None] = mapped_column(String(200), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def to_dto(self) -> FuelTransaction:
        return FuelTransaction(
            transaction_id=self.id,
            transaction_type=TransactionType(self.transaction_type),
            plant_id=self.plant_id,
            warehouse_id=self.warehouse_id,
            product_type=ProductType(self.product_type),
            quantity_liters=Decimal(self.quantity_liters),
            transaction_date=self.transaction_date,
            source_row_number=self.source_row_number,
            direction=Direction(self.direction),
            category=MovementCategory(self.category),
            plant_code=self.plant_code,
            warehouse_number=self.warehouse_number,
            asset_code=self.asset_code,
            asset_id=self.asset_id,
            unit_cost=Decimal(self.unit_cost) if self.unit_cost is not None else None,
            is_transfer=self.is_transfer,
            reference_transaction_id=self.reference_transaction_id,
            reading_time=self.reading_time,
            horometer=Decimal(self.horometer) if self.horometer is not None else None,
            kilometer=Decimal(self.kilometer) if self.kilometer is not None else None,
            operator=self.operator,
            notes=self.notes,
        )

    @classmethod
    def from_dto(
        cls,
        dto: FuelTransaction,
        created_by_id: UUID,
        source_batch_id: UUID | None = None,
    ) -> FuelTransactionModel:
        return cls(
            id=dto.transaction_id,
            transaction_type=dto.transaction_type.value,
            plant_id=dto.plant_id,
            warehouse_id=dto.warehouse_id,
            plant_code=dto.plant_code,
            warehouse_number=dto.warehouse_number,
            product_type=dto.product_type.value,
            direction=dto.direction.value,
            category=dto.category.value,
            asset_code=dto.asset_code,
            asset_id=dto.asset_id,
            quantity_liters=dto.quantity_liters,
            unit_cost=dto.unit_cost,
            transaction_date=dto.transaction_date,
            reading_time=dto.reading_time,
            horometer=dto.horometer,
            kilometer=dto.kilometer,
            is_transfer=dto.is_transfer,
            reference_transaction_id=dto.reference_transaction_id,
            source_row_number=dto.source_row_number,
            source_batch_id=source_batch_id,
            operator=dto.operator,
            notes=dto.notes,
            created_by_id=created_by_id,
            updated_by_id=None,
        )
