"""
Fuel engine configuration schema.

Every tunable threshold of the pipeline lives here as a frozen dataclass.
YAML files are parsed into these types by ``fuel_config.loader``; engines
receive the relevant section explicitly, per request. There is no global
"current config" object.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class ParserConfig:
    """Row classification thresholds."""

    receipt_min_liters: Decimal = Decimal("1000")  # smaller unassigned entries are adjustments
    declared_liters_tolerance: Decimal = Decimal("1")
    two_digit_year_pivot: int = 50  # YY < pivot -> 20YY, otherwise 19YY
    default_product_type: str = "diesel"


@dataclass(frozen=True)
class MeterValidationConfig:
    """Plausibility limits for per-asset meter progressions."""

    max_daily_hours: Decimal = Decimal("24")
    max_daily_km: Decimal = Decimal("500")
    min_liters_per_hour: Decimal = Decimal("0.5")
    max_liters_per_hour: Decimal = Decimal("50")


@dataclass(frozen=True)
class ReconciliationConfig:
    """Computed-vs-provided final inventory comparison."""

    tolerance_liters: Decimal = Decimal("2")


@dataclass(frozen=True)
class TransferMatchingConfig:
    """Candidate search windows and quantity tolerance."""

    tolerance_pct: Decimal = Decimal("0.05")
    min_tolerance_liters: Decimal = Decimal("10")
    window_days: int = 7
    broad_window_days: int = 30
    broad_result_limit: int = 50
    fifo_lookback_days: int = 45


@dataclass(frozen=True)
class FuelEngineConfig:
    """Root configuration object."""

    config_id: str = "default"
    version: int = 1
    parser: ParserConfig = field(default_factory=ParserConfig)
    meters: MeterValidationConfig = field(default_factory=MeterValidationConfig)
    reconciliation: ReconciliationConfig = field(default_factory=ReconciliationConfig)
    transfers: TransferMatchingConfig = field(default_factory=TransferMatchingConfig)
    checksum: str = ""
