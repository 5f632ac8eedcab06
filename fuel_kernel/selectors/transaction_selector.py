"""
Module: fuel_kernel.selectors.transaction_selector
Responsibility: Filtered read access to persisted fuel transactions.  Backs
    the transfer candidate search and the FIFO cost window.
Architecture position: Kernel > Selectors.  Read-only.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from uuid import UUID

from sqlalchemy import select

from fuel_kernel.domain.transactions import FuelTransaction, ProductType, TransactionType
from fuel_kernel.logging_config import get_logger
from fuel_kernel.models.transaction import FuelTransactionModel
from fuel_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.transactions")


@dataclass(frozen=True)
class TransactionQuery:
    """
    Filter for ``TransactionSelector.query``.

    Every field is optional; ``None`` means "do not filter on this column".
    """

    product_type: ProductType | None = None
    warehouse_id: str | None = None
    date_from: date | None = None
    date_to: date | None = None
    transaction_type: TransactionType | None = None
    is_transfer: bool | None = None
    exclude_ids: tuple[UUID, ...] = ()
    limit: int | None = None


class TransactionSelector(BaseSelector[FuelTransactionModel]):
    """Read-only queries over ``fuel_transactions``."""

    def get(self, transaction_id: UUID) -> FuelTransaction | None:
        model = self.session.get(FuelTransactionModel, transaction_id)
        return model.to_dto() if model is not None else None

    def get_many(self, transaction_ids: Iterable[UUID]) -> dict[UUID, FuelTransaction]:
        ids = list(transaction_ids)
        if not ids:
            return {}
        rows = self.session.scalars(
            select(FuelTransactionModel).where(FuelTransactionModel.id.in_(ids))
        ).all()
        return {row.id: row.to_dto() for row in rows}

    def query(self, q: TransactionQuery) -> list[FuelTransaction]:
        """
        Filtered search ordered chronologically (date, time, source row).

        This is the single query used by every transfer candidate search;
        wider or narrower searches only change the filter values.
        """
        stmt = select(FuelTransactionModel)
        if q.product_type is not None:
            stmt = stmt.where(FuelTransactionModel.product_type == q.product_type.value)
        if q.warehouse_id is not None:
            stmt = stmt.where(FuelTransactionModel.warehouse_id == q.warehouse_id)
        if q.date_from is not None:
            stmt = stmt.where(FuelTransactionModel.transaction_date >= q.date_from)
        if q.date_to is not None:
            stmt = stmt.where(FuelTransactionModel.transaction_date <= q.date_to)
        if q.transaction_type is not None:
            stmt = stmt.where(FuelTransactionModel.transaction_type == q.transaction_type.value)
        if q.is_transfer is not None:
            stmt = stmt.where(FuelTransactionModel.is_transfer.is_(q.is_transfer))
        if q.exclude_ids:
            stmt = stmt.where(FuelTransactionModel.id.not_in(q.exclude_ids))
        stmt = stmt.order_by(
            FuelTransactionModel.transaction_date,
            FuelTransactionModel.reading_time,
            FuelTransactionModel.source_row_number,
        )
        if q.limit is not None:
            stmt = stmt.limit(q.limit)

        rows = self.session.scalars(stmt).all()
        logger.debug(
            "transaction_query_executed",
            extra={
                "warehouse_id": q.warehouse_id,
                "transaction_type": q.transaction_type.value if q.transaction_type else None,
                "date_from": q.date_from,
                "date_to": q.date_to,
                "row_count": len(rows),
            },
        )
        return [row.to_dto() for row in rows]

    def for_batch(self, batch_id: UUID) -> list[FuelTransaction]:
        rows = self.session.scalars(
            select(FuelTransactionModel)
            .where(FuelTransactionModel.source_batch_id == batch_id)
            .order_by(
                FuelTransactionModel.transaction_date,
                FuelTransactionModel.reading_time,
                FuelTransactionModel.source_row_number,
            )
        ).all()
        return [row.to_dto() for row in rows]
