"""
Tests for plant batch aggregation.

Covers:
- Grouping by (plant, warehouse) in first-seen order
- Inventory identity: final = initial + in - out
- Opening row handling (only initial inventory, duplicates reported)
- Provided final inventory from the last running balance
- Counts, date range and unique assets
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

from fuel_engines.aggregation import DateRange, aggregate, build_plant_batch
from fuel_ingestion.domain.parser import parse_rows
from fuel_kernel.domain.transactions import Direction, MovementCategory, TransactionType

from tests.conftest import legacy_row, make_tx


def _reference_rows():
    """Opening 1000, receipts 300 and 150, consumptions 200 and 80, sheet says 1160."""
    return [
        legacy_row(Fecha="01/03/2024", Tipo="Entrada", Inventario_Inicial="1000", Inventario="1000"),
        legacy_row(Fecha="02/03/2024", Litros_Entrada="300", Inventario="1300"),
        legacy_row(Fecha="03/03/2024", Tipo="Salida", Litros="200", Unidad="UNIT-77", Inventario="1100"),
        legacy_row(Fecha="04/03/2024", Litros_Entrada="150", Inventario="1250"),
        legacy_row(Fecha="05/03/2024", Tipo="Salida", Litros="80", Unidad="UNIT-88", Inventario="1160"),
    ]


class TestBuildPlantBatch:
    def test_inventory_identity(self):
        batches, _ = aggregate(parse_rows(_reference_rows()))
        (batch,) = batches
        assert batch.initial_inventory == Decimal("1000")
        assert batch.total_litros_in == Decimal("450")
        assert batch.total_litros_out == Decimal("280")
        assert batch.final_inventory_computed == Decimal("1170")
        assert batch.final_inventory_provided == Decimal("1160")
        assert batch.net_change == Decimal("170")

    def test_counts_and_assets(self):
        (batch,), _ = aggregate(parse_rows(_reference_rows()))
        assert batch.total_rows == 5
        assert batch.consumption_count == 2
        assert batch.adjustment_count == 3  # opening + two small entries
        assert batch.asset_consumptions == 2
        assert batch.unique_assets == ("UNIT-77", "UNIT-88")
        assert batch.date_range == DateRange(date(2024, 3, 1), date(2024, 3, 5))
        assert batch.date_range.days == 5

    def test_opening_not_counted_as_inflow(self):
        opening = make_tx(
            transaction_type=TransactionType.ADJUSTMENT,
            category=MovementCategory.INVENTORY_OPENING,
            quantity="500",
        )
        batch = build_plant_batch("P01", "1", [opening])
        assert batch.initial_inventory == Decimal("500")
        assert batch.total_litros_in == Decimal("0")
        assert batch.final_inventory_computed == Decimal("500")
        assert batch.opening_transaction == opening

    def test_duplicate_opening_reported(self):
        first = make_tx(
            transaction_type=TransactionType.ADJUSTMENT,
            category=MovementCategory.INVENTORY_OPENING,
            quantity="500",
            row=1,
        )
        second = make_tx(
            transaction_type=TransactionType.ADJUSTMENT,
            category=MovementCategory.INVENTORY_OPENING,
            quantity="700",
            on=date(2024, 3, 2),
            row=2,
        )
        batch = build_plant_batch("P01", "1", [first, second])
        assert batch.initial_inventory == Decimal("500")
        assert [d.code for d in batch.diagnostics] == ["DUPLICATE_OPENING"]

    def test_no_opening_starts_at_zero(self):
        batch = build_plant_batch("P01", "1", [make_tx(quantity="40")])
        assert batch.initial_inventory == Decimal("0")
        assert batch.final_inventory_computed == Decimal("-40")

    def test_negative_adjustment_counts_out(self):
        adj = make_tx(
            transaction_type=TransactionType.ADJUSTMENT,
            direction=Direction.OUT,
            quantity="15",
        )
        batch = build_plant_batch("P01", "1", [adj])
        assert batch.total_litros_out == Decimal("15")

    def test_unassigned_consumptions(self):
        unassigned = make_tx(category=MovementCategory.UNASSIGNED_CONSUMPTION)
        assigned = make_tx(asset_code="UNIT-77")
        batch = build_plant_batch("P01", "1", [unassigned, assigned])
        assert batch.unassigned_consumptions == 1

    def test_provided_is_chronologically_last(self):
        """Source order does not matter; the latest dated running balance wins."""
        late = make_tx(on=date(2024, 3, 9), row=1)
        early = make_tx(on=date(2024, 3, 1), row=2)
        batch = build_plant_batch(
            "P01",
            "1",
            [late, early],
            running_inventory={late.transaction_id: Decimal("10"), early.transaction_id: Decimal("99")},
        )
        assert batch.final_inventory_provided == Decimal("10")
        assert [t.transaction_id for t in batch.transactions] == [early.transaction_id, late.transaction_id]

    def test_empty_batch(self):
        batch = build_plant_batch("P01", "1", [], batch_id=uuid4())
        assert batch.total_rows == 0
        assert batch.date_range is None
        assert batch.final_inventory_provided is None


class TestAggregate:
    def test_groups_by_plant_and_warehouse(self):
        rows = [
            legacy_row(Planta="P01", Almacen="1", Tipo="Salida", Litros="10"),
            legacy_row(Planta="P02", Almacen="1", Tipo="Salida", Litros="20"),
            legacy_row(Planta="P01", Almacen="2", Tipo="Salida", Litros="30"),
            legacy_row(Planta="P01", Almacen="1", Tipo="Salida", Litros="40"),
        ]
        batches, orphans = aggregate(parse_rows(rows))
        keys = [(b.plant_code, b.warehouse_number) for b in batches]
        assert keys == [("P01", "1"), ("P02", "1"), ("P01", "2")]
        assert batches[0].total_litros_out == Decimal("50")
        assert orphans == ()

    def test_unclassified_and_rejected_counted(self):
        rows = [
            legacy_row(Tipo="Salida", Litros="10"),
            legacy_row(Tipo="Traspaso", Litros="10"),
            legacy_row(Tipo="Salida", Litros="oops"),
        ]
        (batch,), _ = aggregate(parse_rows(rows))
        assert batch.total_rows == 3
        assert batch.unclassified_count == 1
        assert batch.rejected_count == 1
        codes = {d.code for d in batch.diagnostics}
        assert {"UNCLASSIFIED_ROW", "PARSE_ERROR"} <= codes

    def test_declared_liters_mismatch_lands_in_its_batch(self):
        rows = [
            legacy_row(Planta="P01", Almacen="1", Tipo="Salida", Litros="200", Validacion="150"),
            legacy_row(Planta="P02", Almacen="1", Tipo="Salida", Litros="20"),
        ]
        result = parse_rows(rows)
        first, second = aggregate(result)[0]
        (mismatch,) = [d for d in first.diagnostics if d.code == "LITERS_DECLARATION_MISMATCH"]
        assert mismatch.row_number == 1
        assert mismatch.transaction_id == result.transactions[0].transaction_id
        assert not any(d.code == "LITERS_DECLARATION_MISMATCH" for d in second.diagnostics)

    def test_rejected_without_warehouse_is_orphan(self):
        rows = [
            legacy_row(Tipo="Salida", Litros="10"),
            legacy_row(Planta=None, Tipo="Salida", Litros="10"),
        ]
        batches, orphans = aggregate(parse_rows(rows))
        assert len(batches) == 1
        assert len(orphans) == 1
        assert orphans[0].row_number == 2

    def test_summary_is_serializable(self):
        (batch,), _ = aggregate(parse_rows(_reference_rows()))
        summary = batch.summary()
        assert summary["final_inventory_computed"] == "1170"
        assert summary["counts"]["consumption"] == 2
        assert summary["date_range"] == {"start": "2024-03-01", "end": "2024-03-05"}
