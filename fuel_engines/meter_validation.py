"""
Module: fuel_engines.meter_validation
Responsibility:
    Derive per-asset meter progressions (horometer hours, odometer km) from
    the readings captured on fuel rows, and flag regressions and
    implausible usage.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Readings are grouped by canonical asset id; rows whose asset code is
      unresolved never enter a progression.
    - Within an asset, readings are ordered by (date, time, source row) and
      only adjacent pairs are compared.  A pair on the same date yields no
      delta.
    - A negative delta is an error ("regression").  A per-day rate above
      the configured limit is a warning.  The two flags are independent.
    - Efficiencies are None unless the corresponding delta is > 0 and fuel
      was dispensed.  A ratio is never defaulted to zero.

Failure modes:
    - None raised.  Findings are recorded on each reading and summarized
      as batch diagnostics.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal
from uuid import UUID

from fuel_config.schema import MeterValidationConfig
from fuel_engines.aggregation import PlantBatch
from fuel_engines.tracer import traced_engine
from fuel_kernel.domain.dtos import BatchDiagnostic, DiagnosticSeverity
from fuel_kernel.domain.transactions import ZERO, FuelTransaction, TransactionType
from fuel_kernel.exceptions import ValidationWarning
from fuel_kernel.logging_config import get_logger

logger = get_logger("engines.meter_validation")

_METER_CODE = ValidationWarning.code


@dataclass(frozen=True)
class MeterReading:
    """One meter capture of an asset, with the progression from its predecessor."""

    asset_code: str
    asset_id: str
    reading_date: date
    original_row_number: int
    fuel_consumed: Decimal
    horometer: Decimal | None = None
    kilometer: Decimal | None = None
    reading_time: str | None = None
    transaction_id: UUID | None = None
    horometer_delta: Decimal | None = None
    kilometer_delta: Decimal | None = None
    days_since_last: int | None = None
    daily_hours_avg: Decimal | None = None
    daily_km_avg: Decimal | None = None
    fuel_efficiency_per_hour: Decimal | None = None
    fuel_efficiency_per_km: Decimal | None = None
    validation_messages: tuple[str, ...] = ()
    has_warnings: bool = False
    has_errors: bool = False
    issues: tuple[ValidationWarning, ...] = field(default=(), compare=False, repr=False)

    @property
    def sort_key(self) -> tuple[date, str, int]:
        return (self.reading_date, self.reading_time or "", self.original_row_number)

    @classmethod
    def from_transaction(cls, tx: FuelTransaction) -> MeterReading | None:
        """Capture the meters of a resolved row; None if there is nothing to read."""
        if tx.asset_id is None or (tx.horometer is None and tx.kilometer is None):
            return None
        consumed = tx.quantity_liters if tx.transaction_type == TransactionType.CONSUMPTION else ZERO
        return cls(
            asset_code=tx.asset_code or tx.asset_id,
            asset_id=tx.asset_id,
            reading_date=tx.transaction_date,
            reading_time=tx.reading_time,
            original_row_number=tx.source_row_number,
            transaction_id=tx.transaction_id,
            fuel_consumed=consumed,
            horometer=tx.horometer,
            kilometer=tx.kilometer,
        )


def _fmt(value: Decimal, places: str = "0.1") -> str:
    return str(value.quantize(Decimal(places)))


def evaluate_pair(
    prev: MeterReading,
    curr: MeterReading,
    config: MeterValidationConfig,
) -> MeterReading:
    """Compute deltas, averages, efficiencies and findings of ``curr`` against ``prev``."""
    days = (curr.reading_date - prev.reading_date).days
    if days <= 0:
        return replace(curr, days_since_last=days)

    h_delta = None
    if curr.horometer is not None and prev.horometer is not None:
        h_delta = curr.horometer - prev.horometer
    km_delta = None
    if curr.kilometer is not None and prev.kilometer is not None:
        km_delta = curr.kilometer - prev.kilometer

    daily_hours = h_delta / days if h_delta is not None else None
    daily_km = km_delta / days if km_delta is not None else None

    per_hour = None
    if h_delta is not None and h_delta > ZERO and curr.fuel_consumed > ZERO:
        per_hour = curr.fuel_consumed / h_delta
    per_km = None
    if km_delta is not None and km_delta > ZERO and curr.fuel_consumed > ZERO:
        per_km = curr.fuel_consumed / km_delta

    issues: list[ValidationWarning] = []

    def flag(reason: str, message: str, is_error: bool = False) -> None:
        issues.append(
            ValidationWarning(
                reason,
                message,
                asset_code=curr.asset_code,
                row_number=curr.original_row_number,
                is_error=is_error,
            )
        )

    if h_delta is not None:
        if h_delta < ZERO:
            flag(
                "HOROMETER_REGRESSION",
                f"Horometer went back {_fmt(-h_delta)} h (reset or capture error)",
                is_error=True,
            )
        elif h_delta == ZERO and curr.fuel_consumed > ZERO:
            flag("HOROMETER_STALLED", "Fuel dispensed but horometer did not move")
        elif daily_hours > config.max_daily_hours:
            flag(
                "IMPLAUSIBLE_DAILY_HOURS",
                f"Implausible usage: {_fmt(daily_hours)} h/day (limit {config.max_daily_hours})",
            )

    if km_delta is not None:
        if km_delta < ZERO:
            flag("KILOMETER_REGRESSION", f"Odometer went back {_fmt(-km_delta, '1')} km", is_error=True)
        elif daily_km > config.max_daily_km:
            flag(
                "IMPLAUSIBLE_DAILY_KM",
                f"Implausible distance: {_fmt(daily_km, '1')} km/day (limit {config.max_daily_km})",
            )

    if per_hour is not None and not (
        config.min_liters_per_hour <= per_hour <= config.max_liters_per_hour
    ):
        flag("ABNORMAL_EFFICIENCY", f"Abnormal consumption: {_fmt(per_hour)} L/h")

    return replace(
        curr,
        horometer_delta=h_delta,
        kilometer_delta=km_delta,
        days_since_last=days,
        daily_hours_avg=daily_hours,
        daily_km_avg=daily_km,
        fuel_efficiency_per_hour=per_hour,
        fuel_efficiency_per_km=per_km,
        validation_messages=tuple(str(i) for i in issues),
        has_warnings=any(not i.is_error for i in issues),
        has_errors=any(i.is_error for i in issues),
        issues=tuple(issues),
    )


@traced_engine("meter_validation", "1.0")
def validate_readings(
    readings: Iterable[MeterReading],
    config: MeterValidationConfig | None = None,
) -> tuple[MeterReading, ...]:
    """
    Validate meter progressions per asset.

    Returns:
        The readings with their progression fields filled, grouped by asset
        (first-seen order) and chronological within each asset.
    """
    config = config or MeterValidationConfig()
    by_asset: dict[str, list[MeterReading]] = {}
    for reading in readings:
        by_asset.setdefault(reading.asset_id, []).append(reading)

    out: list[MeterReading] = []
    for asset_readings in by_asset.values():
        prev: MeterReading | None = None
        for reading in sorted(asset_readings, key=lambda r: r.sort_key):
            evaluated = evaluate_pair(prev, reading, config) if prev is not None else reading
            out.append(evaluated)
            prev = reading
    return tuple(out)


def readings_from_transactions(transactions: Sequence[FuelTransaction]) -> list[MeterReading]:
    readings = []
    for tx in transactions:
        reading = MeterReading.from_transaction(tx)
        if reading is not None:
            readings.append(reading)
    return readings


def validate_batch_meters(
    batch: PlantBatch,
    config: MeterValidationConfig | None = None,
) -> PlantBatch:
    """Attach validated meter readings and their findings to a batch."""
    readings = validate_readings(readings_from_transactions(batch.transactions), config)

    diagnostics: list[BatchDiagnostic] = []
    for reading in readings:
        for issue in reading.issues:
            diagnostics.append(
                BatchDiagnostic.from_error(
                    issue,
                    severity=DiagnosticSeverity.ERROR if issue.is_error else DiagnosticSeverity.WARNING,
                    transaction_id=reading.transaction_id,
                    details={"asset_code": reading.asset_code, "asset_id": reading.asset_id},
                )
            )

    warnings = sum(1 for r in readings if r.has_warnings)
    errors = sum(1 for r in readings if r.has_errors)
    if warnings or errors:
        logger.warning(
            "meter_readings_flagged",
            extra={
                "batch_id": str(batch.batch_id),
                "readings": len(readings),
                "warnings": warnings,
                "errors": errors,
            },
        )

    kept = tuple(d for d in batch.diagnostics if d.code != _METER_CODE)
    return replace(
        batch,
        meter_readings=readings,
        assets_with_meters=tuple(dict.fromkeys(r.asset_code for r in readings)),
        validation_warnings=warnings,
        validation_errors=errors,
        diagnostics=kept + tuple(diagnostics),
    )
