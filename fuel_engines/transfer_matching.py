"""
Module: fuel_engines.transfer_matching
Responsibility:
    Pure side of transfer matching: decide which entries in a destination
    warehouse could be the arrival of fuel dispensed by a consumption in a
    source warehouse, pick one, and compute both legs after linking.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Fetching entries and the
    atomic write live in ``fuel_services.transfer_service``.

State machine:
    UNMATCHED --(search finds entries)--> CANDIDATES_FOUND --(link)--> LINKED

Invariants enforced:
    - One parameterized search (TransferSearchParams).  The strict search
      filters quantity within max(pct * quantity, min liters) and a +/-
      window of days; the broad search widens the window, drops the
      quantity filter and is never auto-linkable.
    - Entries already linked are excluded from strict searches.
    - validate_link runs every conflict check before anything is built;
      plan_link only touches is_transfer, reference_transaction_id and
      unit_cost.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum
from uuid import UUID

from fuel_config.schema import TransferMatchingConfig
from fuel_engines.tracer import traced_engine
from fuel_kernel.domain.transactions import Direction, FuelTransaction, TransactionType
from fuel_kernel.exceptions import NoTransferCandidateError, TransferLinkConflict
from fuel_kernel.logging_config import get_logger

logger = get_logger("engines.transfer_matching")


class MatchState(str, Enum):
    UNMATCHED = "unmatched"
    CANDIDATES_FOUND = "candidates_found"
    LINKED = "linked"


@dataclass(frozen=True)
class TransferSearchParams:
    """
    Everything that distinguishes one candidate search from another.

    ``to_warehouse_id=None`` searches every warehouse except the source.
    """

    window_days: int
    tolerance_pct: Decimal
    min_tolerance_liters: Decimal
    to_warehouse_id: str | None = None
    filter_quantity: bool = True
    exclude_linked: bool = True
    auto_linkable: bool = True
    limit: int | None = None

    @classmethod
    def strict(
        cls,
        config: TransferMatchingConfig | None = None,
        to_warehouse_id: str | None = None,
    ) -> TransferSearchParams:
        config = config or TransferMatchingConfig()
        return cls(
            window_days=config.window_days,
            tolerance_pct=config.tolerance_pct,
            min_tolerance_liters=config.min_tolerance_liters,
            to_warehouse_id=to_warehouse_id,
        )

    @classmethod
    def broad(
        cls,
        config: TransferMatchingConfig | None = None,
        to_warehouse_id: str | None = None,
    ) -> TransferSearchParams:
        config = config or TransferMatchingConfig()
        return cls(
            window_days=config.broad_window_days,
            tolerance_pct=config.tolerance_pct,
            min_tolerance_liters=config.min_tolerance_liters,
            to_warehouse_id=to_warehouse_id,
            filter_quantity=False,
            exclude_linked=False,
            auto_linkable=False,
            limit=config.broad_result_limit,
        )

    def tolerance_for(self, quantity: Decimal) -> Decimal:
        return max(quantity * self.tolerance_pct, self.min_tolerance_liters)

    def date_bounds(self, on: date) -> tuple[date, date]:
        window = timedelta(days=self.window_days)
        return on - window, on + window


@dataclass(frozen=True)
class TransferCandidate:
    """An entry that may be the destination leg of a consumption. Never persisted."""

    consumption_transaction_id: UUID
    entry_transaction_id: UUID
    to_warehouse_id: str
    entry_date: date
    entry_quantity: Decimal
    quantity_difference: Decimal
    days_apart: int
    entry_is_transfer: bool = False
    preserve_price: bool = False


@dataclass(frozen=True)
class CandidateSearch:
    consumption_transaction_id: UUID
    params: TransferSearchParams
    candidates: tuple[TransferCandidate, ...]

    @property
    def state(self) -> MatchState:
        return MatchState.CANDIDATES_FOUND if self.candidates else MatchState.UNMATCHED


@dataclass(frozen=True)
class TransferLinkPlan:
    """Both legs as they will be after the link is written."""

    consumption: FuelTransaction
    entry: FuelTransaction
    unit_cost: Decimal | None
    cost_source: str | None  # "consumption", "fifo" or None

    @property
    def state(self) -> MatchState:
        return MatchState.LINKED


def _is_entry_leg(tx: FuelTransaction) -> bool:
    return tx.transaction_type == TransactionType.ENTRY and tx.direction == Direction.IN


def _is_consumption_leg(tx: FuelTransaction) -> bool:
    return tx.transaction_type == TransactionType.CONSUMPTION and tx.direction == Direction.OUT


@traced_engine("transfer_matching", "1.0")
def find_candidates(
    consumption: FuelTransaction,
    entries: Iterable[FuelTransaction],
    params: TransferSearchParams,
) -> CandidateSearch:
    """
    Filter ``entries`` down to plausible destination legs.

    Candidates are returned most recent first (date, time, source row).
    Read-only and repeatable.
    """
    low, high = params.date_bounds(consumption.transaction_date)
    tolerance = params.tolerance_for(consumption.quantity_liters)

    found: list[tuple[FuelTransaction, TransferCandidate]] = []
    for entry in entries:
        if entry.transaction_id == consumption.transaction_id or not _is_entry_leg(entry):
            continue
        if entry.product_type != consumption.product_type:
            continue
        if entry.warehouse_id == consumption.warehouse_id:
            continue
        if params.to_warehouse_id is not None and entry.warehouse_id != params.to_warehouse_id:
            continue
        if params.exclude_linked and entry.is_transfer:
            continue
        if not low <= entry.transaction_date <= high:
            continue
        difference = entry.quantity_liters - consumption.quantity_liters
        if params.filter_quantity and abs(difference) > tolerance:
            continue
        found.append(
            (
                entry,
                TransferCandidate(
                    consumption_transaction_id=consumption.transaction_id,
                    entry_transaction_id=entry.transaction_id,
                    to_warehouse_id=entry.warehouse_id,
                    entry_date=entry.transaction_date,
                    entry_quantity=entry.quantity_liters,
                    quantity_difference=difference,
                    days_apart=(entry.transaction_date - consumption.transaction_date).days,
                    entry_is_transfer=entry.is_transfer,
                ),
            )
        )

    found.sort(key=lambda pair: pair[0].sort_key, reverse=True)
    candidates = tuple(c for _, c in found)
    if params.limit is not None:
        candidates = candidates[: params.limit]

    logger.info(
        "transfer_candidates_searched",
        extra={
            "transaction_id": str(consumption.transaction_id),
            "to_warehouse_id": params.to_warehouse_id,
            "window_days": params.window_days,
            "filter_quantity": params.filter_quantity,
            "candidate_count": len(candidates),
        },
    )
    return CandidateSearch(consumption.transaction_id, params, candidates)


def select_candidate(search: CandidateSearch, *, preserve_price: bool = False) -> TransferCandidate:
    """
    Pick the candidate to link: the most recent one.

    Raises:
        TransferLinkConflict: the search is not auto-linkable (broad search).
        NoTransferCandidateError: nothing was found.
    """
    if not search.params.auto_linkable:
        raise TransferLinkConflict(
            "SEARCH_NOT_LINKABLE",
            "Broad search results are for inspection only; choose an entry explicitly",
            search.consumption_transaction_id,
        )
    eligible = [c for c in search.candidates if not c.entry_is_transfer]
    if not eligible:
        raise NoTransferCandidateError(search.consumption_transaction_id, search.params.to_warehouse_id)
    chosen = eligible[0]
    return TransferCandidate(
        consumption_transaction_id=chosen.consumption_transaction_id,
        entry_transaction_id=chosen.entry_transaction_id,
        to_warehouse_id=chosen.to_warehouse_id,
        entry_date=chosen.entry_date,
        entry_quantity=chosen.entry_quantity,
        quantity_difference=chosen.quantity_difference,
        days_apart=chosen.days_apart,
        entry_is_transfer=chosen.entry_is_transfer,
        preserve_price=preserve_price,
    )


def validate_link(consumption: FuelTransaction, entry: FuelTransaction) -> None:
    """
    Check that the pair can be linked.  No state is touched.

    Raises:
        TransferLinkConflict: with one of the reasons SAME_TRANSACTION,
            SAME_TYPE, WRONG_ROLES, CONSUMPTION_ALREADY_LINKED,
            ENTRY_ALREADY_LINKED, SAME_WAREHOUSE, PRODUCT_MISMATCH.
    """
    ids = (consumption.transaction_id, entry.transaction_id)
    if consumption.transaction_id == entry.transaction_id:
        raise TransferLinkConflict("SAME_TRANSACTION", "A transaction cannot be linked to itself", *ids)
    if consumption.transaction_type == entry.transaction_type:
        raise TransferLinkConflict(
            "SAME_TYPE",
            f"Both transactions are of type {consumption.transaction_type.value}",
            *ids,
        )
    if not _is_consumption_leg(consumption) or not _is_entry_leg(entry):
        raise TransferLinkConflict(
            "WRONG_ROLES",
            "Source must be a consumption and destination an entry",
            *ids,
        )
    if consumption.is_transfer:
        raise TransferLinkConflict(
            "CONSUMPTION_ALREADY_LINKED",
            f"Consumption {consumption.transaction_id} is already linked to "
            f"{consumption.reference_transaction_id}",
            *ids,
        )
    if entry.is_transfer:
        raise TransferLinkConflict(
            "ENTRY_ALREADY_LINKED",
            f"Entry {entry.transaction_id} is already linked to {entry.reference_transaction_id}",
            *ids,
        )
    if consumption.warehouse_id == entry.warehouse_id:
        raise TransferLinkConflict(
            "SAME_WAREHOUSE",
            f"Source and destination are the same warehouse {entry.warehouse_id}",
            *ids,
        )
    if consumption.product_type != entry.product_type:
        raise TransferLinkConflict(
            "PRODUCT_MISMATCH",
            f"Cannot link {consumption.product_type.value} to {entry.product_type.value}",
            *ids,
        )


def plan_link(
    consumption: FuelTransaction,
    entry: FuelTransaction,
    *,
    preserve_price: bool = False,
    fallback_unit_cost: Decimal | None = None,
) -> TransferLinkPlan:
    """
    Validate the pair and compute both legs after linking.

    With ``preserve_price`` the entry takes the consumption's unit cost.
    If the consumption has none, ``fallback_unit_cost`` (the source
    warehouse's FIFO cost) prices both legs.
    """
    validate_link(consumption, entry)

    unit_cost: Decimal | None = None
    cost_source: str | None = None
    consumption_cost = consumption.unit_cost
    if preserve_price:
        if consumption.unit_cost is not None:
            unit_cost, cost_source = consumption.unit_cost, "consumption"
        elif fallback_unit_cost is not None:
            unit_cost, cost_source = fallback_unit_cost, "fifo"
            consumption_cost = fallback_unit_cost

    return TransferLinkPlan(
        consumption=consumption.as_transfer_leg(entry.transaction_id, unit_cost=consumption_cost),
        entry=entry.as_transfer_leg(consumption.transaction_id, unit_cost=unit_cost),
        unit_cost=unit_cost,
        cost_source=cost_source,
    )
