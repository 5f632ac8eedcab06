"""
BatchImportService -- the guided import -> map -> process flow.

Responsibility:
    ``prepare()`` runs the pure pipeline over decoded rows and returns a
    preview: plant batches with totals, reconciliation status, meter
    findings, diagnostics and the legacy codes still waiting for a mapping.
    The reviewer resolves mappings through ``AssetMappingService``.
    ``process()`` re-runs resolution, meter validation and reconciliation
    with the mappings known at that moment and persists transactions and
    batch summaries in one transaction.

Architecture position:
    Services -- imperative shell around the pure engines.

Invariants enforced:
    - Request-scoped state: the selected product type and batches travel
      in ``ImportContext`` / arguments, never in module globals.
    - Pipeline order: parse -> aggregate -> resolve -> validate meters ->
      reconcile.
    - One malformed row never aborts the import; it becomes a diagnostic.
    - process() writes all selected batches or none of them.

Failure modes:
    - BatchAlreadyProcessedError: a selected batch id is already persisted.
    - PersistenceError after rollback when a write fails (retryable).
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fuel_config.schema import FuelEngineConfig
from fuel_engines.aggregation import PlantBatch, aggregate, build_plant_batch
from fuel_engines.asset_resolution import AssetResolver
from fuel_engines.meter_validation import validate_batch_meters
from fuel_engines.reconciliation import apply_reconciliation
from fuel_ingestion.domain.parser import parse_rows
from fuel_ingestion.domain.types import ParseResult
from fuel_kernel.domain.directories import AssetDirectory, WarehouseDirectory
from fuel_kernel.domain.dtos import BatchDiagnostic
from fuel_kernel.domain.transactions import ProductType
from fuel_kernel.exceptions import (
    BatchAlreadyProcessedError,
    MappingPendingError,
    PersistenceError,
    ReconciliationDiscrepancy,
    ValidationWarning,
)
from fuel_kernel.logging_config import LogContext, get_logger
from fuel_kernel.models.transaction import FuelTransactionModel
from fuel_kernel.selectors.transaction_selector import TransactionSelector
from fuel_services.asset_mapping_service import AssetMappingService
from fuel_services.orm import PlantBatchModel, json_safe

logger = get_logger("services.batch_import")

# Findings a batch derives again from its stored transactions.  Stored
# diagnostics with any other code came from sheet rows and are carried over.
_DERIVED_CODES = frozenset(
    {
        "DUPLICATE_OPENING",
        "MIXED_PRODUCTS",
        MappingPendingError.code,
        ValidationWarning.code,
        ReconciliationDiscrepancy.code,
    }
)


@dataclass(frozen=True)
class ImportContext:
    """Everything a single import request carries."""

    actor_id: UUID
    product_type: ProductType = ProductType.DIESEL
    import_id: UUID = field(default_factory=uuid4)
    source_filename: str | None = None


@dataclass(frozen=True)
class ImportPreview:
    context: ImportContext
    parse_result: ParseResult
    batches: tuple[PlantBatch, ...]
    diagnostics: tuple[BatchDiagnostic, ...]

    @property
    def unmapped_codes(self) -> list[str]:
        return list(dict.fromkeys(code for b in self.batches for code in b.unmapped_assets))

    def batch(self, batch_id: UUID) -> PlantBatch:
        for b in self.batches:
            if b.batch_id == batch_id:
                return b
        raise KeyError(batch_id)

    def summary(self) -> dict[str, Any]:
        return {
            "import_id": str(self.context.import_id),
            "product_type": self.context.product_type.value,
            "total_rows": self.parse_result.total_rows,
            "unmapped_codes": self.unmapped_codes,
            "batches": [b.summary() for b in self.batches],
            "diagnostics": [d.to_dict() for d in self.diagnostics],
        }


@dataclass(frozen=True)
class ProcessResult:
    import_id: UUID
    batches: tuple[PlantBatch, ...]
    transactions_written: int


def run_pipeline(
    batches: Iterable[PlantBatch],
    resolver: AssetResolver,
    config: FuelEngineConfig,
) -> tuple[PlantBatch, ...]:
    """Resolve -> validate meters -> reconcile each batch."""
    out = []
    for batch in batches:
        batch = resolver.resolve_batch(batch)
        batch = validate_batch_meters(batch, config.meters)
        batch = apply_reconciliation(batch, tolerance=config.reconciliation.tolerance_liters)
        out.append(batch)
    return tuple(out)


class BatchImportService:
    """Guided import of decoded legacy fuel rows."""

    def __init__(
        self,
        session: Session,
        config: FuelEngineConfig | None = None,
        warehouse_directory: WarehouseDirectory | None = None,
        asset_directory: AssetDirectory | None = None,
        auto_commit: bool = True,
    ):
        self._session = session
        self._config = config or FuelEngineConfig()
        self._warehouses = warehouse_directory
        self._assets = asset_directory
        self._auto_commit = auto_commit

    def _resolver(self, actor_id: UUID) -> AssetResolver:
        return AssetMappingService(
            self._session, actor_id, asset_directory=self._assets, auto_commit=False
        ).build_resolver()

    def prepare(self, rows: Sequence[Mapping[str, Any]], context: ImportContext) -> ImportPreview:
        """Parse and evaluate rows without writing anything."""
        with LogContext.bind(
            correlation_id=str(context.import_id),
            actor_id=str(context.actor_id),
            producer="fuel_import",
        ):
            result = parse_rows(
                rows,
                config=self._config.parser,
                product_type=context.product_type,
                warehouse_directory=self._warehouses,
            )
            batches, orphans = aggregate(result)
            evaluated = run_pipeline(batches, self._resolver(context.actor_id), self._config)

            logger.info(
                "import_prepared",
                extra={
                    "total_rows": result.total_rows,
                    "batch_count": len(evaluated),
                    "rejected": len(result.rejected),
                    "unclassified": len(result.unclassified),
                    "orphan_diagnostics": len(orphans),
                },
            )
            return ImportPreview(
                context=context,
                parse_result=result,
                batches=evaluated,
                diagnostics=orphans,
            )

    def process(
        self,
        preview: ImportPreview,
        batch_ids: Iterable[UUID] | None = None,
    ) -> ProcessResult:
        """
        Persist the selected batches of a preview (all when ``batch_ids`` is None).

        Mappings resolved since ``prepare()`` are picked up here.
        """
        context = preview.context
        wanted = set(batch_ids) if batch_ids is not None else None
        selected = [b for b in preview.batches if wanted is None or b.batch_id in wanted]

        with LogContext.bind(
            correlation_id=str(context.import_id),
            actor_id=str(context.actor_id),
            producer="fuel_import",
        ):
            for batch in selected:
                if self._session.get(PlantBatchModel, batch.batch_id) is not None:
                    raise BatchAlreadyProcessedError(str(batch.batch_id))

            final = run_pipeline(selected, self._resolver(context.actor_id), self._config)

            written = 0
            try:
                for batch in final:
                    with LogContext.bind(batch_id=str(batch.batch_id)):
                        self._session.add(
                            PlantBatchModel.from_batch(
                                batch,
                                import_id=context.import_id,
                                created_by_id=context.actor_id,
                                source_filename=context.source_filename,
                            )
                        )
                        for tx in batch.transactions:
                            self._session.add(
                                FuelTransactionModel.from_dto(
                                    tx, created_by_id=context.actor_id, source_batch_id=batch.batch_id
                                )
                            )
                            written += 1
                        logger.info(
                            "plant_batch_persisted",
                            extra={
                                "plant_code": batch.plant_code,
                                "warehouse_number": batch.warehouse_number,
                                "transactions": len(batch.transactions),
                                "reconciliation_status": (
                                    batch.reconciliation_status.value
                                    if batch.reconciliation_status
                                    else None
                                ),
                            },
                        )
                self._session.flush()
                if self._auto_commit:
                    self._session.commit()
            except SQLAlchemyError as exc:
                self._session.rollback()
                logger.error(
                    "import_process_failed",
                    extra={"batch_count": len(final)},
                    exc_info=True,
                )
                raise PersistenceError("process_import", str(exc)) from exc

            logger.info(
                "import_processed",
                extra={"batch_count": len(final), "transactions_written": written},
            )
            return ProcessResult(context.import_id, final, written)

    def recompute_batch(self, batch_id: UUID, actor_id: UUID) -> PlantBatch:
        """
        Rebuild a persisted batch summary from its stored transactions.

        The final inventory reported by the sheet is kept from the stored
        summary; everything else is derived again.
        """
        model = self._session.get(PlantBatchModel, batch_id)
        if model is None:
            raise KeyError(batch_id)

        transactions = TransactionSelector(self._session).for_batch(batch_id)
        batch = build_plant_batch(model.plant_code, model.warehouse_number, transactions, batch_id=batch_id)
        batch = replace(batch, final_inventory_provided=model.final_inventory_provided)
        (batch,) = run_pipeline([batch], self._resolver(actor_id), self._config)

        try:
            model.total_rows = max(model.total_rows, batch.total_rows)
            model.initial_inventory = batch.initial_inventory
            model.total_litros_in = batch.total_litros_in
            model.total_litros_out = batch.total_litros_out
            model.final_inventory_computed = batch.final_inventory_computed
            model.discrepancy = batch.discrepancy
            model.reconciliation_status = (
                batch.reconciliation_status.value if batch.reconciliation_status else None
            )
            model.unique_assets = list(batch.unique_assets)
            model.unmapped_assets = list(batch.unmapped_assets)
            model.validation_warnings = batch.validation_warnings
            model.validation_errors = batch.validation_errors
            model.diagnostics = [
                d for d in model.diagnostics if d.get("code") not in _DERIVED_CODES
            ] + json_safe([d.to_dict() for d in batch.diagnostics])
            model.updated_by_id = actor_id
            for tx in batch.transactions:
                stored = self._session.get(FuelTransactionModel, tx.transaction_id)
                if stored is not None and stored.asset_id != tx.asset_id:
                    stored.asset_id = tx.asset_id
                    stored.updated_by_id = actor_id
            self._session.flush()
            if self._auto_commit:
                self._session.commit()
        except SQLAlchemyError as exc:
            self._session.rollback()
            logger.error("batch_recompute_failed", extra={"batch_id": str(batch_id)}, exc_info=True)
            raise PersistenceError("recompute_batch", str(exc)) from exc

        logger.info(
            "plant_batch_recomputed",
            extra={
                "batch_id": str(batch_id),
                "discrepancy": batch.discrepancy,
                "unmapped_count": len(batch.unmapped_assets),
            },
        )
        return batch

    def list_batches(self, import_id: UUID) -> list[PlantBatchModel]:
        return list(
            self._session.scalars(
                select(PlantBatchModel)
                .where(PlantBatchModel.import_id == import_id)
                .order_by(PlantBatchModel.plant_code, PlantBatchModel.warehouse_number)
            ).all()
        )
