"""
Tests for the legacy fuel log parser.

Covers:
- Header aliasing (Spanish legacy headers, case-insensitive)
- Classification rules, in order
- Per-row error isolation (rejected rows never abort the sheet)
- Unclassified rows keep their raw fields
- Declared-liters mismatch diagnostics
- Warehouse directory resolution
"""

from datetime import date
from decimal import Decimal

import pytest

from fuel_config.schema import ParserConfig
from fuel_ingestion.domain.parser import parse_rows
from fuel_ingestion.domain.types import (
    AdjustmentRow,
    ConsumptionRow,
    EntryRow,
    OpeningRow,
    RowKind,
    UnclassifiedReason,
    UnclassifiedRow,
)
from fuel_kernel.domain.transactions import (
    Direction,
    MovementCategory,
    ProductType,
    TransactionType,
)

from tests.conftest import legacy_row


def _single(**fields):
    result = parse_rows([legacy_row(**fields)])
    assert result.total_rows == 1
    return result


class TestClassification:
    """One rule per test, in the order the rules are applied."""

    def test_both_directions_ambiguous(self):
        result = _single(Litros_Entrada="100", Litros_Salida="50")
        (row,) = result.rows
        assert isinstance(row, UnclassifiedRow)
        assert row.reason == UnclassifiedReason.AMBIGUOUS_QUANTITY

    def test_no_direction(self):
        result = _single(Litros="100")
        (row,) = result.rows
        assert isinstance(row, UnclassifiedRow)
        assert row.reason == UnclassifiedReason.NO_DIRECTION

    def test_unknown_movement(self):
        result = _single(Tipo="Traspaso", Litros="100")
        (row,) = result.rows
        assert row.reason == UnclassifiedReason.UNKNOWN_MOVEMENT

    def test_conflicting_direction(self):
        result = _single(Tipo="Entrada", Litros_Salida="100")
        (row,) = result.rows
        assert row.reason == UnclassifiedReason.CONFLICTING_DIRECTION

    def test_opening_row(self):
        result = _single(Tipo="Entrada", Inventario_Inicial="1000")
        (row,) = result.rows
        assert isinstance(row, OpeningRow)
        assert row.kind == RowKind.OPENING
        tx = row.transaction
        assert tx.category == MovementCategory.INVENTORY_OPENING
        assert tx.quantity_liters == Decimal("1000")
        assert tx.is_opening

    def test_opening_row_without_movement(self):
        result = _single(Inventario_Inicial="850")
        (row,) = result.rows
        assert isinstance(row, OpeningRow)

    def test_large_unassigned_entry_is_receipt(self):
        result = _single(Tipo="Entrada", Litros="5000")
        (row,) = result.rows
        assert isinstance(row, EntryRow)
        assert row.transaction.transaction_type == TransactionType.ENTRY
        assert row.transaction.category == MovementCategory.FUEL_RECEIPT

    def test_receipt_threshold_is_exclusive(self):
        """Exactly receipt_min_liters is still an adjustment."""
        result = _single(Tipo="Entrada", Litros="1000")
        (row,) = result.rows
        assert isinstance(row, AdjustmentRow)

    def test_small_entry_is_positive_adjustment(self):
        result = _single(Litros_Entrada="40")
        (row,) = result.rows
        assert isinstance(row, AdjustmentRow)
        assert row.transaction.direction == Direction.IN
        assert row.transaction.category == MovementCategory.INVENTORY_ADJUSTMENT

    def test_entry_with_asset_is_adjustment(self):
        result = _single(Tipo="Entrada", Litros="3000", Unidad="UNIT-77")
        (row,) = result.rows
        assert isinstance(row, AdjustmentRow)

    def test_explicit_negative_adjustment(self):
        result = _single(Tipo="Ajuste", Litros_Salida="15")
        (row,) = result.rows
        assert isinstance(row, AdjustmentRow)
        assert row.transaction.direction == Direction.OUT
        assert row.transaction.transaction_type == TransactionType.ADJUSTMENT

    def test_adjustment_without_direction_column(self):
        result = _single(Tipo="Ajuste", Litros="15")
        (row,) = result.rows
        assert isinstance(row, UnclassifiedRow)
        assert row.reason == UnclassifiedReason.NO_DIRECTION

    def test_consumption_with_asset(self):
        result = _single(Tipo="Salida", Litros="300", Unidad="unit-77 ")
        (row,) = result.rows
        assert isinstance(row, ConsumptionRow)
        tx = row.transaction
        assert tx.category == MovementCategory.ASSET_CONSUMPTION
        assert tx.asset_code == "UNIT-77"
        assert tx.asset_id is None

    def test_unassigned_consumption(self):
        result = _single(Litros_Salida="80")
        (row,) = result.rows
        assert isinstance(row, ConsumptionRow)
        assert row.transaction.category == MovementCategory.UNASSIGNED_CONSUMPTION

    def test_out_without_quantity(self):
        result = _single(Tipo="Salida", Unidad="UNIT-77")
        (row,) = result.rows
        assert row.reason == UnclassifiedReason.NO_QUANTITY

    def test_unknown_product(self):
        result = _single(Tipo="Salida", Litros="10", Clave_Producto="gasolina")
        (row,) = result.rows
        assert row.reason == UnclassifiedReason.UNKNOWN_PRODUCT


class TestRowFields:
    def test_meter_and_time_fields(self):
        result = _single(
            Tipo="Salida",
            Litros="120",
            Unidad="UNIT-77",
            Horario="7:30",
            Horometro="1,520.5",
            Kilometraje="88000",
            Responsable_Unidad="J. Perez",
        )
        tx = result.transactions[0]
        assert tx.reading_time == "07:30"
        assert tx.horometer == Decimal("1520.5")
        assert tx.kilometer == Decimal("88000")
        assert tx.operator == "J. Perez"

    def test_product_type_from_request(self):
        result = parse_rows([legacy_row(Tipo="Salida", Litros="10")], product_type="urea")
        assert result.transactions[0].product_type == ProductType.UREA

    def test_product_type_from_row(self):
        result = parse_rows([legacy_row(Tipo="Salida", Litros="10", Clave_Producto="AdBlue")])
        assert result.transactions[0].product_type == ProductType.UREA

    def test_row_number_defaults_to_position(self):
        result = parse_rows([legacy_row(Tipo="Salida", Litros="10")] * 3)
        assert [r.row_number for r in result.rows] == [1, 2, 3]

    def test_explicit_row_number(self):
        result = parse_rows([legacy_row(Tipo="Salida", Litros="10", Original_Row_Index=42)])
        assert result.transactions[0].source_row_number == 42

    def test_ids_are_codes_without_directory(self):
        tx = _single(Tipo="Salida", Litros="10").transactions[0]
        assert (tx.plant_id, tx.warehouse_id) == ("P01", "1")

    def test_two_digit_year(self):
        tx = _single(Tipo="Salida", Litros="10", Fecha="15/06/23").transactions[0]
        assert tx.transaction_date == date(2023, 6, 15)


class TestErrorIsolation:
    def test_bad_number_rejected_rest_parsed(self):
        rows = [
            legacy_row(Tipo="Salida", Litros="10"),
            legacy_row(Tipo="Salida", Litros="ten"),
            legacy_row(Tipo="Salida", Litros="20"),
        ]
        result = parse_rows(rows)
        assert len(result.transactions) == 2
        assert len(result.rejected) == 1
        error = result.errors[0]
        assert error.reason == "INVALID_NUMBER"
        assert error.row_number == 2
        assert error.field == "liters"
        assert any(d.code == "PARSE_ERROR" and d.row_number == 2 for d in result.diagnostics)

    def test_negative_quantity_rejected(self):
        result = _single(Tipo="Salida", Litros="-10")
        assert result.errors[0].reason == "NEGATIVE_QUANTITY"

    def test_missing_date_rejected(self):
        result = _single(Tipo="Salida", Litros="10", Fecha="")
        assert result.errors[0].reason == "MISSING_DATE"

    def test_missing_warehouse_rejected(self):
        result = _single(Tipo="Salida", Litros="10", Almacen=None)
        assert result.errors[0].reason == "MISSING_WAREHOUSE"
        assert result.rejected[0].plant_code == "P01"

    def test_unclassified_keeps_raw_fields(self):
        raw = legacy_row(Tipo="???", Litros="10", Comentarios="tank wash")
        result = parse_rows([raw])
        (row,) = result.unclassified
        assert row.raw_fields == raw
        assert row.original_row_number == 1
        assert result.diagnostics[0].code == "UNCLASSIFIED_ROW"

    def test_every_row_accounted_for(self):
        rows = [
            legacy_row(Tipo="Entrada", Inventario_Inicial="1000"),
            legacy_row(Tipo="Salida", Litros="bad"),
            legacy_row(Tipo="Traspaso", Litros="5"),
            legacy_row(Tipo="Salida", Litros="5"),
        ]
        result = parse_rows(rows)
        assert result.total_rows == 4
        assert len(result.classified) + len(result.unclassified) + len(result.rejected) == 4


class TestDeclaredLiters:
    def test_mismatch_warns_without_changing_quantity(self):
        result = _single(Tipo="Salida", Litros="100", Validacion="110")
        tx = result.transactions[0]
        assert tx.quantity_liters == Decimal("100")
        (diag,) = result.diagnostics
        assert diag.code == "LITERS_DECLARATION_MISMATCH"
        assert diag.transaction_id == tx.transaction_id

    def test_within_tolerance(self):
        result = _single(Tipo="Salida", Litros="100", Validacion="100.5")
        assert result.diagnostics == ()

    def test_custom_tolerance(self):
        config = ParserConfig(declared_liters_tolerance=Decimal("20"))
        result = parse_rows([legacy_row(Tipo="Salida", Litros="100", Validacion="110")], config=config)
        assert result.diagnostics == ()


class TestWarehouseDirectory:
    def test_resolves_ids(self, warehouse_directory):
        result = parse_rows(
            [legacy_row(Planta="p01", Almacen="2", Tipo="Salida", Litros="10")],
            warehouse_directory=warehouse_directory,
        )
        tx = result.transactions[0]
        assert tx.plant_id == "plant-p01"
        assert tx.warehouse_id == "wh-p01-2"

    def test_unknown_warehouse_rejected(self, warehouse_directory):
        result = parse_rows(
            [legacy_row(Planta="P09", Almacen="1", Tipo="Salida", Litros="10")],
            warehouse_directory=warehouse_directory,
        )
        assert result.errors[0].reason == "UNKNOWN_WAREHOUSE"

    @pytest.mark.parametrize("header", ["PLANTA", "planta", "Plant_Code"])
    def test_header_case_insensitive(self, header):
        raw = {header: "P01", "Almacen": "1", "Fecha": "2024-03-01", "Tipo": "Salida", "Litros": 5}
        result = parse_rows([raw])
        assert result.transactions[0].plant_code == "P01"
