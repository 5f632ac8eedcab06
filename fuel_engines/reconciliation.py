"""
Module: fuel_engines.reconciliation
Responsibility:
    Compare the computed final inventory of a plant batch with the final
    inventory reported by the legacy sheet.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - discrepancy = final_inventory_computed - final_inventory_provided
      (signed; positive means the sheet reports less fuel than the
      movements explain).
    - Status is OK when |discrepancy| <= tolerance, WARNING otherwise, and
      UNVERIFIED when the sheet reported no final inventory.
    - Advisory only: recorded quantities are never touched to close a gap.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from enum import Enum

from fuel_engines.aggregation import PlantBatch
from fuel_engines.tracer import traced_engine
from fuel_kernel.domain.dtos import BatchDiagnostic, DiagnosticSeverity
from fuel_kernel.exceptions import ReconciliationDiscrepancy
from fuel_kernel.logging_config import get_logger

logger = get_logger("engines.reconciliation")

DEFAULT_TOLERANCE = Decimal("2")


class ReconciliationStatus(str, Enum):
    OK = "ok"
    WARNING = "warning"
    UNVERIFIED = "unverified"


@dataclass(frozen=True)
class ReconciliationResult:
    computed: Decimal
    provided: Decimal | None
    discrepancy: Decimal | None
    tolerance: Decimal
    status: ReconciliationStatus
    diagnostic: BatchDiagnostic | None = None

    @property
    def within_tolerance(self) -> bool:
        return self.status == ReconciliationStatus.OK


def compute_final_inventory(initial: Decimal, total_in: Decimal, total_out: Decimal) -> Decimal:
    return initial + total_in - total_out


@traced_engine("reconciliation", "1.0", fingerprint_fields=("tolerance",))
def reconcile(batch: PlantBatch, *, tolerance: Decimal = DEFAULT_TOLERANCE) -> ReconciliationResult:
    """Reconcile one batch against its reported final inventory."""
    if tolerance < 0:
        raise ValueError(f"tolerance must be >= 0, got {tolerance}")

    computed = compute_final_inventory(
        batch.initial_inventory, batch.total_litros_in, batch.total_litros_out
    )
    provided = batch.final_inventory_provided
    if provided is None:
        return ReconciliationResult(
            computed=computed,
            provided=None,
            discrepancy=None,
            tolerance=tolerance,
            status=ReconciliationStatus.UNVERIFIED,
        )

    discrepancy = computed - provided
    if abs(discrepancy) <= tolerance:
        return ReconciliationResult(
            computed=computed,
            provided=provided,
            discrepancy=discrepancy,
            tolerance=tolerance,
            status=ReconciliationStatus.OK,
        )

    error = ReconciliationDiscrepancy(str(batch.batch_id), computed, provided, discrepancy, tolerance)
    logger.warning(
        "reconciliation_discrepancy",
        extra={
            "batch_id": str(batch.batch_id),
            "plant_code": batch.plant_code,
            "warehouse_number": batch.warehouse_number,
            "computed": computed,
            "provided": provided,
            "discrepancy": discrepancy,
            "tolerance": tolerance,
        },
    )
    return ReconciliationResult(
        computed=computed,
        provided=provided,
        discrepancy=discrepancy,
        tolerance=tolerance,
        status=ReconciliationStatus.WARNING,
        diagnostic=BatchDiagnostic.from_error(
            error,
            severity=DiagnosticSeverity.WARNING,
            details={
                "computed": str(computed),
                "provided": str(provided),
                "discrepancy": str(discrepancy),
                "tolerance": str(tolerance),
            },
        ),
    )


def apply_reconciliation(batch: PlantBatch, *, tolerance: Decimal = DEFAULT_TOLERANCE) -> PlantBatch:
    """Return the batch with discrepancy, status and the advisory diagnostic set."""
    result = reconcile(batch, tolerance=tolerance)
    kept = tuple(d for d in batch.diagnostics if d.code != ReconciliationDiscrepancy.code)
    extra = (result.diagnostic,) if result.diagnostic is not None else ()
    return replace(
        batch,
        discrepancy=result.discrepancy,
        reconciliation_status=result.status,
        diagnostics=kept + extra,
    )
