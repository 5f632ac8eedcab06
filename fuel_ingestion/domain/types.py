"""
fuel_ingestion.domain.types -- Pure frozen dataclasses for legacy row ingestion.

ZERO I/O. Imports only from fuel_kernel.

A decoded legacy row is classified into exactly one row kind:

    OpeningRow       opening balance of the warehouse
    EntryRow         fuel receipt (large delivery)
    AdjustmentRow    manual correction, positive or negative
    ConsumptionRow   fuel dispensed, with or without an asset code
    UnclassifiedRow  anything the rules cannot place; raw fields kept

Rows that fail coercion never reach classification; they become a
``RejectedRow`` holding the row-scoped ``ParseError``.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, ClassVar, Union

from fuel_kernel.domain.dtos import BatchDiagnostic
from fuel_kernel.domain.transactions import Direction, FuelTransaction, ProductType
from fuel_kernel.exceptions import ParseError


class RowKind(str, Enum):
    """Tag of the row union."""

    OPENING = "opening"
    ENTRY = "entry"
    ADJUSTMENT = "adjustment"
    CONSUMPTION = "consumption"
    UNCLASSIFIED = "unclassified"


class UnclassifiedReason(str, Enum):
    AMBIGUOUS_QUANTITY = "AMBIGUOUS_QUANTITY"  # liters_in and liters_out both populated
    CONFLICTING_DIRECTION = "CONFLICTING_DIRECTION"  # movement disagrees with quantity column
    UNKNOWN_MOVEMENT = "UNKNOWN_MOVEMENT"
    UNKNOWN_PRODUCT = "UNKNOWN_PRODUCT"
    NO_DIRECTION = "NO_DIRECTION"
    NO_QUANTITY = "NO_QUANTITY"


@dataclass(frozen=True)
class LegacyRow:
    """
    Coerced view of one decoded legacy row.

    Every field is optional except the row number: the classifier decides
    what a missing value means.
    """

    row_number: int
    raw: Mapping[str, Any]
    plant_code: str | None = None
    warehouse_number: str | None = None
    product_type: ProductType | None = None
    product_label: str | None = None
    movement: Direction | None = None
    movement_label: str | None = None
    is_explicit_adjustment: bool = False
    asset_code: str | None = None
    transaction_date: date | None = None
    reading_time: str | None = None
    liters: Decimal | None = None
    liters_in: Decimal | None = None
    liters_out: Decimal | None = None
    opening_inventory: Decimal | None = None
    running_inventory: Decimal | None = None
    horometer: Decimal | None = None
    kilometer: Decimal | None = None
    unit_cost: Decimal | None = None
    declared_liters: Decimal | None = None
    operator: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class _ClassifiedRow:
    transaction: FuelTransaction
    running_inventory: Decimal | None = None

    kind: ClassVar[RowKind]

    @property
    def row_number(self) -> int:
        return self.transaction.source_row_number

    @property
    def plant_code(self) -> str:
        return self.transaction.plant_code

    @property
    def warehouse_number(self) -> str:
        return self.transaction.warehouse_number


@dataclass(frozen=True)
class OpeningRow(_ClassifiedRow):
    kind: ClassVar[RowKind] = RowKind.OPENING


@dataclass(frozen=True)
class EntryRow(_ClassifiedRow):
    kind: ClassVar[RowKind] = RowKind.ENTRY


@dataclass(frozen=True)
class AdjustmentRow(_ClassifiedRow):
    kind: ClassVar[RowKind] = RowKind.ADJUSTMENT


@dataclass(frozen=True)
class ConsumptionRow(_ClassifiedRow):
    kind: ClassVar[RowKind] = RowKind.CONSUMPTION


@dataclass(frozen=True)
class UnclassifiedRow:
    """A row the rules could not place. Never dropped, never coerced."""

    original_row_number: int
    reason: UnclassifiedReason
    raw_fields: Mapping[str, Any]
    plant_code: str | None = None
    warehouse_number: str | None = None

    kind: ClassVar[RowKind] = RowKind.UNCLASSIFIED

    @property
    def row_number(self) -> int:
        return self.original_row_number


ClassifiedRow = Union[OpeningRow, EntryRow, AdjustmentRow, ConsumptionRow]
ParsedRow = Union[OpeningRow, EntryRow, AdjustmentRow, ConsumptionRow, UnclassifiedRow]


@dataclass(frozen=True)
class RejectedRow:
    """A row that failed coercion, with whatever grouping keys were readable."""

    error: ParseError
    plant_code: str | None = None
    warehouse_number: str | None = None

    @property
    def row_number(self) -> int | None:
        return self.error.row_number


@dataclass(frozen=True)
class ParseResult:
    """Outcome of parsing a whole decoded sheet. Row order is preserved."""

    rows: tuple[ParsedRow, ...] = ()
    rejected: tuple[RejectedRow, ...] = ()
    diagnostics: tuple[BatchDiagnostic, ...] = field(default_factory=tuple)

    @property
    def classified(self) -> tuple[ClassifiedRow, ...]:
        return tuple(r for r in self.rows if not isinstance(r, UnclassifiedRow))

    @property
    def unclassified(self) -> tuple[UnclassifiedRow, ...]:
        return tuple(r for r in self.rows if isinstance(r, UnclassifiedRow))

    @property
    def transactions(self) -> tuple[FuelTransaction, ...]:
        return tuple(r.transaction for r in self.classified)

    @property
    def errors(self) -> tuple[ParseError, ...]:
        return tuple(r.error for r in self.rejected)

    @property
    def total_rows(self) -> int:
        return len(self.rows) + len(self.rejected)
