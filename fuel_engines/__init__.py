"""
Module: fuel_engines
Responsibility:
    Package entrypoint re-exporting the pure reconciliation engines.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May import fuel_kernel domain types, fuel_ingestion row types and
    fuel_config.schema dataclasses.  MUST NOT import fuel_services.

Invariants enforced:
    - Purity: engines never read the clock or the database.  Dates and
      thresholds are passed in explicitly.
    - Decimal-only arithmetic for liters and costs.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Engine entry points are wrapped by ``@traced_engine`` (see
    ``fuel_engines.tracer``) and emit FUEL_ENGINE_TRACE records.
"""

from fuel_engines.aggregation import DateRange, PlantBatch, aggregate, build_plant_batch
from fuel_engines.asset_resolution import AssetResolver
from fuel_engines.meter_validation import MeterReading, validate_batch_meters, validate_readings
from fuel_engines.reconciliation import (
    ReconciliationResult,
    ReconciliationStatus,
    apply_reconciliation,
    reconcile,
)
from fuel_engines.transfer_matching import (
    CandidateSearch,
    MatchState,
    TransferCandidate,
    TransferLinkPlan,
    TransferSearchParams,
    find_candidates,
    plan_link,
    select_candidate,
    validate_link,
)

__all__ = [
    "AssetResolver",
    "CandidateSearch",
    "DateRange",
    "MatchState",
    "MeterReading",
    "PlantBatch",
    "ReconciliationResult",
    "ReconciliationStatus",
    "TransferCandidate",
    "TransferLinkPlan",
    "TransferSearchParams",
    "aggregate",
    "apply_reconciliation",
    "build_plant_batch",
    "find_candidates",
    "plan_link",
    "reconcile",
    "select_candidate",
    "validate_batch_meters",
    "validate_link",
    "validate_readings",
]
