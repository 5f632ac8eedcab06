"""
Legacy fuel log parser: decoded rows -> typed row kinds. Pure, ZERO I/O.

Each input row is a mapping with loosely typed values (strings from CSV,
numbers from spreadsheets, date objects from upstream decoders). Header
names are matched case-insensitively and the Spanish headers of the legacy
sheets are accepted as aliases.

Per-row error isolation: a row that cannot be coerced is returned as a
``RejectedRow`` carrying a ``ParseError``; the remaining rows are still
parsed. A row that coerces cleanly but matches no classification rule is
returned as an ``UnclassifiedRow`` with its raw fields.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from fuel_config.schema import ParserConfig
from fuel_kernel.domain.directories import WarehouseDirectory, normalize_code
from fuel_kernel.domain.dtos import BatchDiagnostic, DiagnosticSeverity
from fuel_kernel.domain.transactions import (
    ZERO,
    Direction,
    FuelTransaction,
    MovementCategory,
    ProductType,
    TransactionType,
)
from fuel_kernel.exceptions import ParseError
from fuel_kernel.logging_config import get_logger
from fuel_ingestion.domain.coercion import (
    coerce_date,
    coerce_decimal,
    coerce_row_number,
    coerce_text,
    coerce_time,
)
from fuel_ingestion.domain.types import (
    AdjustmentRow,
    ClassifiedRow,
    ConsumptionRow,
    EntryRow,
    LegacyRow,
    OpeningRow,
    ParsedRow,
    ParseResult,
    RejectedRow,
    UnclassifiedReason,
    UnclassifiedRow,
)

logger = get_logger("ingestion.parser")

# canonical field -> accepted header names (already normalized)
FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "plant_code": ("plant_code", "plant", "planta"),
    "warehouse_number": ("warehouse_number", "warehouse", "almacen"),
    "product_type": ("product_type", "product", "clave_producto"),
    "movement": ("movement", "tipo", "type"),
    "asset_code": ("asset_code", "unit", "unidad"),
    "date": ("date", "fecha", "fecha_"),
    "time": ("time", "horario", "hora"),
    "liters": ("liters", "litros_cantidad", "litros"),
    "liters_in": ("liters_in", "litros_entrada"),
    "liters_out": ("liters_out", "litros_salida"),
    "opening_inventory": ("opening_inventory", "inventario_inicial"),
    "running_inventory": ("running_inventory", "inventario"),
    "horometer": ("horometer", "horometro"),
    "kilometer": ("kilometer", "kilometraje"),
    "unit_cost": ("unit_cost", "costo_unitario", "precio_unitario"),
    "declared_liters": ("declared_liters", "validacion"),
    "operator": ("operator", "responsable_unidad"),
    "notes": ("notes", "comentarios", "notas"),
    "row_number": ("row_number", "original_row_index"),
}

_MOVEMENTS: dict[str, tuple[Direction | None, bool]] = {
    "entrada": (Direction.IN, False),
    "entry": (Direction.IN, False),
    "in": (Direction.IN, False),
    "salida": (Direction.OUT, False),
    "exit": (Direction.OUT, False),
    "out": (Direction.OUT, False),
    "consumption": (Direction.OUT, False),
    "ajuste": (None, True),
    "adjustment": (None, True),
}

_PRODUCTS: dict[str, ProductType] = {
    "diesel": ProductType.DIESEL,
    "urea": ProductType.UREA,
    "adblue": ProductType.UREA,
}


def _normalize_key(key: Any) -> str:
    return str(key).strip().lower().replace(" ", "_")


def _pick(raw: Mapping[str, Any]) -> dict[str, Any]:
    """Project a raw row onto canonical field names. First alias present wins."""
    normalized = {_normalize_key(k): v for k, v in raw.items()}
    picked: dict[str, Any] = {}
    for canonical, aliases in FIELD_ALIASES.items():
        for alias in aliases:
            if alias in normalized:
                picked[canonical] = normalized[alias]
                break
    return picked


def coerce_row(
    raw: Mapping[str, Any],
    index: int,
    *,
    config: ParserConfig,
    default_product: ProductType,
) -> LegacyRow:
    """
    Coerce one raw row into a ``LegacyRow``.

    Raises:
        ParseError: bound to the row number, for the first unreadable field.
    """
    values = _pick(raw)
    row_number = coerce_row_number(values.get("row_number"), index + 1)

    try:
        movement_label = coerce_text(values.get("movement"))
        movement, explicit_adjustment = (None, False)
        if movement_label is not None:
            movement, explicit_adjustment = _MOVEMENTS.get(movement_label.lower(), (None, False))

        product_label = coerce_text(values.get("product_type"))
        product = default_product if product_label is None else _PRODUCTS.get(product_label.lower())

        return LegacyRow(
            row_number=row_number,
            raw=dict(raw),
            plant_code=normalize_code(coerce_text(values.get("plant_code"))),
            warehouse_number=normalize_code(coerce_text(values.get("warehouse_number"))),
            product_type=product,
            product_label=product_label,
            movement=movement,
            movement_label=movement_label,
            is_explicit_adjustment=explicit_adjustment,
            asset_code=normalize_code(coerce_text(values.get("asset_code"))),
            transaction_date=coerce_date(values.get("date"), pivot=config.two_digit_year_pivot),
            reading_time=coerce_time(values.get("time")),
            liters=coerce_decimal(values.get("liters"), "liters"),
            liters_in=coerce_decimal(values.get("liters_in"), "liters_in"),
            liters_out=coerce_decimal(values.get("liters_out"), "liters_out"),
            opening_inventory=coerce_decimal(values.get("opening_inventory"), "opening_inventory"),
            running_inventory=coerce_decimal(
                values.get("running_inventory"), "running_inventory", allow_negative=True
            ),
            horometer=coerce_decimal(values.get("horometer"), "horometer"),
            kilometer=coerce_decimal(values.get("kilometer"), "kilometer"),
            unit_cost=coerce_decimal(values.get("unit_cost"), "unit_cost"),
            declared_liters=coerce_decimal(values.get("declared_liters"), "declared_liters"),
            operator=coerce_text(values.get("operator")),
            notes=coerce_text(values.get("notes")),
        )
    except ParseError as exc:
        raise exc.at_row(row_number) from None


def _positive(value: Decimal | None) -> bool:
    return value is not None and value > ZERO


def _direction(row: LegacyRow) -> tuple[Direction | None, UnclassifiedReason | None]:
    """Resolve the stock direction of a row, or the reason it has none."""
    has_in = _positive(row.liters_in)
    has_out = _positive(row.liters_out)
    if has_in and has_out:
        return None, UnclassifiedReason.AMBIGUOUS_QUANTITY

    from_columns = Direction.IN if has_in else Direction.OUT if has_out else None

    if row.movement_label is not None and row.movement is None and not row.is_explicit_adjustment:
        return None, UnclassifiedReason.UNKNOWN_MOVEMENT
    if row.movement is not None:
        if from_columns is not None and from_columns != row.movement:
            return None, UnclassifiedReason.CONFLICTING_DIRECTION
        return row.movement, None
    if from_columns is None:
        if _positive(row.opening_inventory) and _quantity(row) is None:
            return Direction.IN, None
        return None, UnclassifiedReason.NO_DIRECTION
    return from_columns, None


def _quantity(row: LegacyRow) -> Decimal | None:
    if row.liters is not None:
        return row.liters
    if _positive(row.liters_in):
        return row.liters_in
    if _positive(row.liters_out):
        return row.liters_out
    return None


def classify(
    row: LegacyRow,
    *,
    config: ParserConfig,
) -> tuple[type[ClassifiedRow], TransactionType, Direction, MovementCategory, Decimal] | UnclassifiedReason:
    """
    Apply the classification rules (first match wins).

    Returns the row kind with the transaction attributes it implies, or the
    reason the row stays unclassified.
    """
    if row.product_type is None:
        return UnclassifiedReason.UNKNOWN_PRODUCT

    direction, reason = _direction(row)
    if direction is None:
        return reason or UnclassifiedReason.NO_DIRECTION

    qty = _quantity(row)
    has_liters = _positive(qty)
    has_asset = row.asset_code is not None

    if row.is_explicit_adjustment:
        if has_liters:
            return AdjustmentRow, TransactionType.ADJUSTMENT, direction, MovementCategory.INVENTORY_ADJUSTMENT, qty
        return UnclassifiedReason.NO_QUANTITY

    if direction == Direction.IN:
        if not has_asset and not has_liters and _positive(row.opening_inventory):
            return (
                OpeningRow,
                TransactionType.ADJUSTMENT,
                Direction.IN,
                MovementCategory.INVENTORY_OPENING,
                row.opening_inventory,
            )
        if not has_asset and has_liters and qty > config.receipt_min_liters:
            return EntryRow, TransactionType.ENTRY, Direction.IN, MovementCategory.FUEL_RECEIPT, qty
        if has_liters:
            return AdjustmentRow, TransactionType.ADJUSTMENT, Direction.IN, MovementCategory.INVENTORY_ADJUSTMENT, qty
        return UnclassifiedReason.NO_QUANTITY

    if has_liters:
        category = MovementCategory.ASSET_CONSUMPTION if has_asset else MovementCategory.UNASSIGNED_CONSUMPTION
        return ConsumptionRow, TransactionType.CONSUMPTION, Direction.OUT, category, qty
    return UnclassifiedReason.NO_QUANTITY


def parse_rows(
    rows: Iterable[Mapping[str, Any]],
    *,
    config: ParserConfig | None = None,
    product_type: ProductType | str | None = None,
    warehouse_directory: WarehouseDirectory | None = None,
    id_factory: Callable[[], UUID] = uuid4,
) -> ParseResult:
    """
    Parse decoded legacy rows into classified rows.

    Args:
        rows: decoded rows, in source order.
        config: classification thresholds.
        product_type: product assumed for rows that do not state one.
        warehouse_directory: resolves (plant_code, warehouse_number) to ids;
            without it the ids are the codes themselves.
        id_factory: transaction id generator.

    Returns:
        ParseResult with one entry per input row, either in ``rows``
        (classified or unclassified) or in ``rejected``.
    """
    config = config or ParserConfig()
    default_product = ProductType(product_type or config.default_product_type)

    parsed: list[ParsedRow] = []
    rejected: list[RejectedRow] = []
    diagnostics: list[BatchDiagnostic] = []

    for index, raw in enumerate(rows):
        try:
            legacy = coerce_row(raw, index, config=config, default_product=default_product)
        except ParseError as exc:
            values = _pick(raw)
            rejected.append(
                RejectedRow(
                    error=exc,
                    plant_code=normalize_code(coerce_text(values.get("plant_code"))),
                    warehouse_number=normalize_code(coerce_text(values.get("warehouse_number"))),
                )
            )
            diagnostics.append(BatchDiagnostic.from_error(exc, details={"field": exc.field}))
            continue

        try:
            row = _build_row(legacy, config=config, directory=warehouse_directory, id_factory=id_factory)
        except ParseError as exc:
            rejected.append(
                RejectedRow(error=exc, plant_code=legacy.plant_code, warehouse_number=legacy.warehouse_number)
            )
            diagnostics.append(BatchDiagnostic.from_error(exc, details={"field": exc.field}))
            continue

        parsed.append(row)
        if isinstance(row, UnclassifiedRow):
            diagnostics.append(
                BatchDiagnostic(
                    code="UNCLASSIFIED_ROW",
                    message=f"Row {row.original_row_number} could not be classified ({row.reason.value})",
                    severity=DiagnosticSeverity.WARNING,
                    row_number=row.original_row_number,
                    reason=row.reason.value,
                )
            )
        else:
            mismatch = _declared_mismatch(legacy, row.transaction, config)
            if mismatch is not None:
                diagnostics.append(mismatch)

    result = ParseResult(rows=tuple(parsed), rejected=tuple(rejected), diagnostics=tuple(diagnostics))
    logger.info(
        "rows_parsed",
        extra={
            "total_rows": result.total_rows,
            "classified": len(result.classified),
            "unclassified": len(result.unclassified),
            "rejected": len(result.rejected),
        },
    )
    return result


def _build_row(
    legacy: LegacyRow,
    *,
    config: ParserConfig,
    directory: WarehouseDirectory | None,
    id_factory: Callable[[], UUID],
) -> ParsedRow:
    if legacy.plant_code is None or legacy.warehouse_number is None:
        raise ParseError(
            "MISSING_WAREHOUSE",
            f"Row {legacy.row_number}: plant and warehouse are required",
            row_number=legacy.row_number,
            field="warehouse_number" if legacy.plant_code else "plant_code",
        )

    plant_id, warehouse_id = legacy.plant_code, legacy.warehouse_number
    if directory is not None:
        ref = directory.find(legacy.plant_code, legacy.warehouse_number)
        if ref is None:
            raise ParseError(
                "UNKNOWN_WAREHOUSE",
                f"Row {legacy.row_number}: no warehouse {legacy.warehouse_number!r} "
                f"in plant {legacy.plant_code!r}",
                row_number=legacy.row_number,
                field="warehouse_number",
                value=legacy.warehouse_number,
            )
        plant_id, warehouse_id = ref.plant_id, ref.warehouse_id

    outcome = classify(legacy, config=config)
    if isinstance(outcome, UnclassifiedReason):
        return UnclassifiedRow(
            original_row_number=legacy.row_number,
            reason=outcome,
            raw_fields=legacy.raw,
            plant_code=legacy.plant_code,
            warehouse_number=legacy.warehouse_number,
        )

    if legacy.transaction_date is None:
        raise ParseError(
            "MISSING_DATE",
            f"Row {legacy.row_number}: date is required",
            row_number=legacy.row_number,
            field="date",
        )

    kind, tx_type, direction, category, quantity = outcome
    transaction = FuelTransaction(
        transaction_id=id_factory(),
        transaction_type=tx_type,
        plant_id=plant_id,
        warehouse_id=warehouse_id,
        product_type=legacy.product_type,
        quantity_liters=quantity,
        transaction_date=legacy.transaction_date,
        source_row_number=legacy.row_number,
        direction=direction,
        category=category,
        plant_code=legacy.plant_code,
        warehouse_number=legacy.warehouse_number,
        asset_code=legacy.asset_code,
        unit_cost=legacy.unit_cost,
        reading_time=legacy.reading_time,
        horometer=legacy.horometer,
        kilometer=legacy.kilometer,
        operator=legacy.operator,
        notes=legacy.notes,
    )
    return kind(transaction=transaction, running_inventory=legacy.running_inventory)


def _declared_mismatch(
    legacy: LegacyRow,
    transaction: FuelTransaction,
    config: ParserConfig,
) -> BatchDiagnostic | None:
    if legacy.declared_liters is None or transaction.is_opening:
        return None
    gap = abs(transaction.quantity_liters - legacy.declared_liters)
    if gap <= config.declared_liters_tolerance:
        return None
    return BatchDiagnostic(
        code="LITERS_DECLARATION_MISMATCH",
        message=(
            f"Row {legacy.row_number}: declared {legacy.declared_liters} L "
            f"but recorded {transaction.quantity_liters} L"
        ),
        severity=DiagnosticSeverity.WARNING,
        row_number=legacy.row_number,
        transaction_id=transaction.transaction_id,
        details={"declared": legacy.declared_liters, "recorded": transaction.quantity_liters, "gap": gap},
    )
