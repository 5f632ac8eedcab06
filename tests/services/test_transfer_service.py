"""
Tests for TransferService against a real (SQLite) session.

Covers:
- Strict and broad candidate searches through the selector
- Auto-link and explicit link, both legs written
- Price preservation and FIFO fallback
- Conflicts and missing ids leave rows untouched
- A link committed by another request between check and write wins
- A failed write leaves both legs unlinked
- Backfilling costs of linked entries
"""

from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from fuel_engines.transfer_matching import validate_link
from fuel_kernel.domain.transactions import TransactionType
from fuel_kernel.exceptions import (
    NoTransferCandidateError,
    PersistenceError,
    TransactionNotFoundError,
    TransferLinkConflict,
)
from fuel_kernel.models.transaction import FuelTransactionModel
from fuel_kernel.selectors.transaction_selector import TransactionSelector
from fuel_services.transfer_service import TransferService

from tests.conftest import make_tx

D = date(2024, 3, 10)


def _store(session, actor_id, *transactions):
    session.add_all(FuelTransactionModel.from_dto(tx, created_by_id=actor_id) for tx in transactions)
    session.commit()
    return transactions


@pytest.fixture
def ledger(session, actor_id):
    """Source warehouse bought at 21.00 and sent 500 L; three entries landed elsewhere."""
    receipt = make_tx(
        transaction_type=TransactionType.ENTRY,
        quantity="1000",
        unit_cost=Decimal("21.00"),
        on=D - timedelta(days=5),
        warehouse_id="wh-src",
        row=1,
    )
    out = make_tx(quantity="500", on=D, warehouse_id="wh-src", row=2)
    close = make_tx(
        transaction_type=TransactionType.ENTRY, quantity="487", on=D + timedelta(days=3), warehouse_id="wh-dst", row=3
    )
    short = make_tx(
        transaction_type=TransactionType.ENTRY, quantity="400", on=D + timedelta(days=3), warehouse_id="wh-dst", row=4
    )
    late = make_tx(
        transaction_type=TransactionType.ENTRY, quantity="100", on=D + timedelta(days=20), warehouse_id="wh-dst", row=5
    )
    _store(session, actor_id, receipt, out, close, short, late)
    return {"receipt": receipt, "out": out, "close": close, "short": short, "late": late}


@pytest.fixture
def service(session, actor_id):
    return TransferService(session, actor_id)


def _reload(session, tx):
    return TransactionSelector(session).get(tx.transaction_id)


class TestSearch:
    def test_strict(self, service, ledger):
        search = service.search(ledger["out"].transaction_id, to_warehouse_id="wh-dst")
        assert [c.entry_transaction_id for c in search.candidates] == [ledger["close"].transaction_id]
        assert search.candidates[0].days_apart == 3

    def test_any_destination(self, service, ledger):
        search = service.search(ledger["out"].transaction_id)
        # the source warehouse's own receipt is never a candidate
        assert [c.entry_transaction_id for c in search.candidates] == [ledger["close"].transaction_id]

    def test_broad(self, service, ledger):
        search = service.search(ledger["out"].transaction_id, to_warehouse_id="wh-dst", broad=True)
        assert [c.entry_transaction_id for c in search.candidates] == [
            ledger["late"].transaction_id,
            ledger["short"].transaction_id,
            ledger["close"].transaction_id,
        ]

    def test_unknown_consumption(self, service, ledger):
        with pytest.raises(TransactionNotFoundError):
            service.search(uuid4())


class TestLink:
    def test_auto_link(self, session, service, ledger, captured_logs):
        result = service.link(ledger["out"].transaction_id, to_warehouse_id="wh-dst")
        assert result.entry.transaction_id == ledger["close"].transaction_id
        assert result.unit_cost is None
        assert result.cost_source is None

        out = _reload(session, ledger["out"])
        entry = _reload(session, ledger["close"])
        assert out.is_transfer and entry.is_transfer
        assert out.reference_transaction_id == entry.transaction_id
        assert entry.reference_transaction_id == out.transaction_id
        assert any(r["message"] == "transfer_linked" for r in captured_logs())

    def test_explicit_entry_outside_tolerance(self, session, service, ledger):
        service.link(ledger["out"].transaction_id, entry_id=ledger["short"].transaction_id)
        assert _reload(session, ledger["short"]).is_transfer
        assert not _reload(session, ledger["close"]).is_transfer

    def test_linked_entry_leaves_strict_results(self, session, actor_id, service, ledger):
        service.link(ledger["out"].transaction_id, to_warehouse_id="wh-dst")
        other = make_tx(quantity="490", on=D, warehouse_id="wh-src", row=6)
        _store(session, actor_id, other)
        with pytest.raises(NoTransferCandidateError):
            service.link(other.transaction_id, to_warehouse_id="wh-dst")

    def test_preserve_price(self, session, actor_id, service):
        out = make_tx(quantity="500", on=D, warehouse_id="wh-src", unit_cost=Decimal("22.50"), row=1)
        entry = make_tx(
            transaction_type=TransactionType.ENTRY,
            quantity="487",
            on=D + timedelta(days=3),
            warehouse_id="wh-dst",
            unit_cost=Decimal("25.00"),
            row=2,
        )
        _store(session, actor_id, out, entry)
        result = service.link(out.transaction_id, entry_id=entry.transaction_id, preserve_price=True)
        assert result.unit_cost == Decimal("22.50")
        assert result.cost_source == "consumption"
        assert _reload(session, entry).unit_cost == Decimal("22.50")

    def test_fifo_fallback(self, session, service, ledger):
        result = service.link(ledger["out"].transaction_id, to_warehouse_id="wh-dst", preserve_price=True)
        assert result.cost_source == "fifo"
        assert result.unit_cost == Decimal("21.00")
        assert result.fifo is not None
        assert _reload(session, ledger["close"]).unit_cost == Decimal("21.00")
        assert _reload(session, ledger["out"]).unit_cost == Decimal("21.00")

    def test_same_warehouse_conflict(self, session, service, ledger):
        with pytest.raises(TransferLinkConflict) as exc_info:
            service.link(ledger["out"].transaction_id, entry_id=ledger["receipt"].transaction_id)
        assert exc_info.value.reason == "SAME_WAREHOUSE"
        assert not _reload(session, ledger["out"]).is_transfer
        assert not _reload(session, ledger["receipt"]).is_transfer

    def test_consumption_linked_once(self, service, ledger):
        service.link(ledger["out"].transaction_id, entry_id=ledger["close"].transaction_id)
        with pytest.raises(TransferLinkConflict) as exc_info:
            service.link(ledger["out"].transaction_id, entry_id=ledger["short"].transaction_id)
        assert exc_info.value.reason == "CONSUMPTION_ALREADY_LINKED"

    def test_unknown_entry(self, service, ledger):
        with pytest.raises(TransactionNotFoundError):
            service.link(ledger["out"].transaction_id, entry_id=uuid4())

    def test_write_failure_leaves_both_legs_unlinked(self, session, service, ledger, monkeypatch):
        def fail():
            raise OperationalError("UPDATE", {}, Exception("lock timeout"))

        monkeypatch.setattr(session, "commit", fail)
        with pytest.raises(PersistenceError) as exc_info:
            service.link(ledger["out"].transaction_id, entry_id=ledger["close"].transaction_id)
        assert exc_info.value.operation == "link_transfer"
        monkeypatch.undo()

        assert not _reload(session, ledger["out"]).is_transfer
        assert not _reload(session, ledger["close"]).is_transfer
        assert _reload(session, ledger["close"]).reference_transaction_id is None


    def test_entry_linked_concurrently_is_not_overwritten(self, session, actor_id, service, ledger, monkeypatch):
        rival = make_tx(quantity="487", on=D, warehouse_id="wh-other", row=7)
        _store(session, actor_id, rival)
        entry_id = ledger["close"].transaction_id
        checks = []

        def link_rival_first(consumption, entry):
            # Another request links the same entry and commits after the first check.
            if not checks:
                rival_row = session.get(FuelTransactionModel, rival.transaction_id)
                entry_row = session.get(FuelTransactionModel, entry_id)
                rival_row.is_transfer, rival_row.reference_transaction_id = True, entry_id
                entry_row.is_transfer, entry_row.reference_transaction_id = True, rival.transaction_id
                session.commit()
            checks.append(entry.is_transfer)
            validate_link(consumption, entry)

        monkeypatch.setattr("fuel_services.transfer_service.validate_link", link_rival_first)
        with pytest.raises(TransferLinkConflict) as exc_info:
            service.link(ledger["out"].transaction_id, entry_id=entry_id)
        assert exc_info.value.reason == "ENTRY_ALREADY_LINKED"
        assert checks == [False, True]

        out = _reload(session, ledger["out"])
        entry = _reload(session, ledger["close"])
        assert not out.is_transfer and out.reference_transaction_id is None
        assert entry.reference_transaction_id == rival.transaction_id
        assert _reload(session, rival).reference_transaction_id == entry_id


class TestRepairTransferCosts:
    def test_backfills_from_fifo(self, session, service, ledger):
        service.link(ledger["out"].transaction_id, entry_id=ledger["close"].transaction_id)
        assert service.repair_transfer_costs() == 1
        assert _reload(session, ledger["close"]).unit_cost == Decimal("21.00")

    def test_backfills_from_source_leg(self, session, actor_id, service):
        out = make_tx(quantity="300", on=D, warehouse_id="wh-src", unit_cost=Decimal("23.10"), row=1)
        entry = make_tx(transaction_type=TransactionType.ENTRY, quantity="300", on=D, warehouse_id="wh-dst", row=2)
        _store(session, actor_id, out, entry)
        service.link(out.transaction_id, entry_id=entry.transaction_id)
        assert service.repair_transfer_costs() == 1
        assert _reload(session, entry).unit_cost == Decimal("23.10")

    def test_nothing_to_repair(self, service, ledger):
        assert service.repair_transfer_costs() == 0
