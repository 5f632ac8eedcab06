"""
fuel_ingestion.domain -- Pure row types, coercion and the row parser.

ZERO I/O. Imports only from fuel_kernel and fuel_config.schema.
"""

from fuel_ingestion.domain.parser import classify, parse_rows
from fuel_ingestion.domain.types import (
    AdjustmentRow,
    ConsumptionRow,
    EntryRow,
    LegacyRow,
    OpeningRow,
    ParsedRow,
    ParseResult,
    RejectedRow,
    RowKind,
    UnclassifiedReason,
    UnclassifiedRow,
)

__all__ = [
    "AdjustmentRow",
    "ConsumptionRow",
    "EntryRow",
    "LegacyRow",
    "OpeningRow",
    "ParsedRow",
    "ParseResult",
    "RejectedRow",
    "RowKind",
    "UnclassifiedReason",
    "UnclassifiedRow",
    "classify",
    "parse_rows",
]
