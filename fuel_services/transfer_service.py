"""
TransferService -- link a consumption in one warehouse to the entry it
produced in another.

Responsibility:
    Fetch candidate entries through the single parameterized selector query,
    hand them to the pure matcher, and write both legs of a confirmed link
    in one database transaction.

Architecture position:
    Services -- imperative shell over ``fuel_engines.transfer_matching`` and
    ``fuel_engines.valuation.fifo``.

Invariants enforced:
    - Every conflict check runs before either leg is touched, and is
      repeated on the rows read under the lock.
    - Both legs are written or neither is: flush + commit inside one
      try block, rollback on any SQLAlchemyError.
    - Rows are locked (SELECT ... FOR UPDATE) while the link is written.
    - Broad searches are inspection-only and never auto-link.

Failure modes:
    - TransactionNotFoundError: an id does not exist.
    - TransferLinkConflict: the pair cannot be linked (reason code attached).
    - NoTransferCandidateError: auto-link found nothing to link.
    - PersistenceError after rollback when the write fails.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fuel_config.schema import FuelEngineConfig
from fuel_engines.transfer_matching import (
    CandidateSearch,
    TransferLinkPlan,
    TransferSearchParams,
    find_candidates,
    plan_link,
    select_candidate,
    validate_link,
)
from fuel_engines.valuation.fifo import FifoCostResult, fifo_unit_cost
from fuel_kernel.domain.transactions import FuelTransaction, TransactionType
from fuel_kernel.exceptions import FuelKernelError, PersistenceError, TransactionNotFoundError
from fuel_kernel.logging_config import LogContext, get_logger
from fuel_kernel.models.transaction import FuelTransactionModel
from fuel_kernel.selectors.transaction_selector import TransactionQuery, TransactionSelector

logger = get_logger("services.transfer")


@dataclass(frozen=True)
class TransferLinkResult:
    consumption: FuelTransaction
    entry: FuelTransaction
    unit_cost: Decimal | None
    cost_source: str | None
    fifo: FifoCostResult | None = None


class TransferService:
    """Search and link transfers between warehouses."""

    def __init__(
        self,
        session: Session,
        actor_id: UUID,
        config: FuelEngineConfig | None = None,
        auto_commit: bool = True,
    ):
        self._session = session
        self._actor_id = actor_id
        self._config = (config or FuelEngineConfig()).transfers
        self._selector = TransactionSelector(session)
        self._auto_commit = auto_commit

    def _require(self, transaction_id: UUID) -> FuelTransaction:
        tx = self._selector.get(transaction_id)
        if tx is None:
            raise TransactionNotFoundError(str(transaction_id))
        return tx

    def search(
        self,
        consumption_id: UUID,
        to_warehouse_id: str | None = None,
        broad: bool = False,
    ) -> CandidateSearch:
        """Candidate entries for a consumption, most recent first."""
        consumption = self._require(consumption_id)
        factory = TransferSearchParams.broad if broad else TransferSearchParams.strict
        params = factory(self._config, to_warehouse_id=to_warehouse_id)
        low, high = params.date_bounds(consumption.transaction_date)
        entries = self._selector.query(
            TransactionQuery(
                product_type=consumption.product_type,
                warehouse_id=to_warehouse_id,
                date_from=low,
                date_to=high,
                transaction_type=TransactionType.ENTRY,
                is_transfer=False if params.exclude_linked else None,
                exclude_ids=(consumption.transaction_id,),
            )
        )
        return find_candidates(consumption, entries, params)

    def fifo_cost(self, consumption: FuelTransaction) -> FifoCostResult | None:
        """FIFO price of the liters a consumption took out of its warehouse."""
        since = consumption.transaction_date - timedelta(days=self._config.fifo_lookback_days)
        movements = self._selector.query(
            TransactionQuery(
                product_type=consumption.product_type,
                warehouse_id=consumption.warehouse_id,
                date_from=since,
                date_to=consumption.transaction_date,
                exclude_ids=(consumption.transaction_id,),
            )
        )
        return fifo_unit_cost(
            movements,
            quantity=consumption.quantity_liters,
            as_of=consumption.transaction_date,
        )

    def link(
        self,
        consumption_id: UUID,
        entry_id: UUID | None = None,
        to_warehouse_id: str | None = None,
        preserve_price: bool = False,
    ) -> TransferLinkResult:
        """
        Link a consumption to an entry.

        With ``entry_id=None`` the most recent strict-search candidate is
        used.  ``preserve_price`` carries the consumption's unit cost to the
        entry, falling back to the source warehouse's FIFO cost when the
        consumption has none.

        The pair is checked once up front and again on the rows read under
        the lock; the write is planned from the locked state only.
        """
        with LogContext.bind(
            actor_id=str(self._actor_id),
            producer="transfer_service",
            transaction_id=str(consumption_id),
        ):
            consumption = self._require(consumption_id)
            if entry_id is None:
                search = self.search(consumption_id, to_warehouse_id=to_warehouse_id)
                entry_id = select_candidate(search, preserve_price=preserve_price).entry_transaction_id
            entry = self._require(entry_id)

            validate_link(consumption, entry)

            plan, fifo = self._write(consumption_id, entry_id, preserve_price)

            logger.info(
                "transfer_linked",
                extra={
                    "consumption_id": str(plan.consumption.transaction_id),
                    "entry_id": str(plan.entry.transaction_id),
                    "from_warehouse_id": plan.consumption.warehouse_id,
                    "to_warehouse_id": plan.entry.warehouse_id,
                    "unit_cost": plan.unit_cost,
                    "cost_source": plan.cost_source,
                },
            )
            return TransferLinkResult(
                consumption=plan.consumption,
                entry=plan.entry,
                unit_cost=plan.unit_cost,
                cost_source=plan.cost_source,
                fifo=fifo,
            )

    def _lock(self, ids: list[UUID]) -> dict[UUID, FuelTransactionModel]:
        # populate_existing: the identity map must not hide a competing commit
        rows = self._session.scalars(
            select(FuelTransactionModel)
            .where(FuelTransactionModel.id.in_(ids))
            .with_for_update()
            .execution_options(populate_existing=True)
        ).all()
        return {row.id: row for row in rows}

    def _write(
        self,
        consumption_id: UUID,
        entry_id: UUID,
        preserve_price: bool,
    ) -> tuple[TransferLinkPlan, FifoCostResult | None]:
        ids = [consumption_id, entry_id]
        try:
            locked = self._lock(ids)
            if consumption_id not in locked:
                raise TransactionNotFoundError(str(consumption_id))
            if entry_id not in locked:
                raise TransactionNotFoundError(str(entry_id))
            consumption = locked[consumption_id].to_dto()
            entry = locked[entry_id].to_dto()

            validate_link(consumption, entry)
            fifo = None
            if preserve_price and consumption.unit_cost is None:
                fifo = self.fifo_cost(consumption)
            plan = plan_link(
                consumption,
                entry,
                preserve_price=preserve_price,
                fallback_unit_cost=fifo.unit_cost if fifo is not None else None,
            )

            for leg in (plan.consumption, plan.entry):
                model = locked[leg.transaction_id]
                model.is_transfer = leg.is_transfer
                model.reference_transaction_id = leg.reference_transaction_id
                model.unit_cost = leg.unit_cost
                model.updated_by_id = self._actor_id
            self._session.flush()
            if self._auto_commit:
                self._session.commit()
        except FuelKernelError:
            if self._auto_commit:
                self._session.rollback()
            raise
        except SQLAlchemyError as exc:
            self._session.rollback()
            logger.error(
                "transfer_link_failed",
                extra={"consumption_id": str(consumption_id), "entry_id": str(entry_id)},
                exc_info=True,
            )
            raise PersistenceError("link_transfer", str(exc)) from exc
        return plan, fifo

    def repair_transfer_costs(self) -> int:
        """
        Price linked entries that were written without a unit cost.

        The cost comes from the consumption leg, or from the source
        warehouse's FIFO cost when that leg has none either.  Returns the
        number of entries updated.
        """
        entries = self._session.scalars(
            select(FuelTransactionModel).where(
                FuelTransactionModel.transaction_type == TransactionType.ENTRY.value,
                FuelTransactionModel.is_transfer.is_(True),
                FuelTransactionModel.unit_cost.is_(None),
                FuelTransactionModel.reference_transaction_id.is_not(None),
            )
        ).all()

        repaired = 0
        try:
            for entry in entries:
                source = self._session.get(FuelTransactionModel, entry.reference_transaction_id)
                if source is None:
                    continue
                cost = source.unit_cost
                if cost is None:
                    fifo = self.fifo_cost(source.to_dto())
                    if fifo is None:
                        continue
                    cost = fifo.unit_cost
                    source.unit_cost = cost
                    source.updated_by_id = self._actor_id
                entry.unit_cost = cost
                entry.updated_by_id = self._actor_id
                repaired += 1
            self._session.flush()
            if self._auto_commit:
                self._session.commit()
        except SQLAlchemyError as exc:
            self._session.rollback()
            logger.error("transfer_cost_repair_failed", exc_info=True)
            raise PersistenceError("repair_transfer_costs", str(exc)) from exc

        logger.info(
            "transfer_costs_repaired",
            extra={"candidates": len(entries), "repaired": repaired},
        )
        return repaired
