"""
Typed Exception Hierarchy for the Fuel Reconciliation Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Reconciliation diagnostics travel a long way: from a legacy spreadsheet row,
through the parser and the aggregation engines, into a review screen where a
person decides what to do with them. Matching on message text along that path
is fragile. Every error therefore has:

  1. A TYPED exception class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured DATA attributes (row number, transaction id, liters...)

Example:
    try:
        service.link(candidate)
    except TransferLinkConflict as e:
        api_response(code=e.code, reason=e.reason, ids=e.transaction_ids)
    except PersistenceError as e:
        if e.retryable:
            schedule_retry()

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    FuelKernelError (base)
    |
    +-- IngestionError
    |   +-- ParseError                    row-scoped, batch continues
    |   +-- BatchAlreadyProcessedError    batch id already persisted
    |
    +-- MappingError
    |   +-- MappingPendingError           unresolved asset code on a row
    |   +-- AssetMappingConflictError     legacy code already mapped elsewhere
    |
    +-- ValidationWarning                 meter regression / implausible rate
    |
    +-- ReconciliationDiscrepancy         computed vs provided inventory gap
    |
    +-- TransferError
    |   +-- TransferLinkConflict          invalid or already-linked pairing
    |   +-- NoTransferCandidateError      nothing matched the search
    |
    +-- TransactionNotFoundError
    |
    +-- PersistenceError                  transient write failure (retryable)
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Ingestion       | PARSE_ERROR                 | Malformed number/date/warehouse on a row
                | BATCH_ALREADY_PROCESSED     | process() called twice for one batch
Mapping         | MAPPING_PENDING             | Row references an unresolved asset code
                | ASSET_MAPPING_CONFLICT      | Code already mapped to another asset
Meters          | METER_VALIDATION            | Regression or implausible meter rate
Reconciliation  | RECONCILIATION_DISCREPANCY  | |computed - provided| above tolerance
Transfer        | TRANSFER_LINK_CONFLICT      | Pairing rejected, nothing mutated
                | NO_TRANSFER_CANDIDATE       | Search returned no linkable entry
Lookup          | TRANSACTION_NOT_FOUND       | Transaction id does not exist
Persistence     | PERSISTENCE_ERROR           | Database write failed and was rolled back
Config          | CONFIGURATION_ERROR         | Invalid configuration value

ParseError, MappingPendingError, ValidationWarning and ReconciliationDiscrepancy
are row-level or advisory: engines build them and convert them into
BatchDiagnostic records instead of letting them escape the batch. The
remaining exceptions are terminal for the single operation that raised them.
"""

from decimal import Decimal
from typing import Any


class FuelKernelError(Exception):
    """
    Base exception for all fuel kernel errors.

    All subclasses must have a `code` class attribute
    for machine-readable error identification.
    """

    code: str = "FUEL_KERNEL_ERROR"


# Ingestion-related exceptions


class IngestionError(FuelKernelError):
    """Base exception for row ingestion errors."""

    code: str = "INGESTION_ERROR"


class ParseError(IngestionError):
    """
    A single legacy row could not be parsed.

    Row-scoped: the parser records it against the row and keeps going.
    `reason` is a narrower machine code (INVALID_NUMBER, INVALID_DATE, ...).
    """

    code: str = "PARSE_ERROR"

    def __init__(
        self,
        reason: str,
        message: str,
        row_number: int | None = None,
        field: str | None = None,
        value: Any = None,
    ):
        self.reason = reason
        self.row_number = row_number
        self.field = field
        self.value = value
        super().__init__(message)

    def at_row(self, row_number: int) -> "ParseError":
        """Return a copy bound to a source row."""
        return ParseError(
            self.reason,
            str(self),
            row_number=row_number,
            field=self.field,
            value=self.value,
        )


class BatchAlreadyProcessedError(IngestionError):
    """A plant batch with this id was already persisted."""

    code: str = "BATCH_ALREADY_PROCESSED"

    def __init__(self, batch_id: str):
        self.batch_id = str(batch_id)
        super().__init__(f"Batch {batch_id} was already processed")


# Mapping-related exceptions


class MappingError(FuelKernelError):
    """Base exception for legacy asset mapping errors."""

    code: str = "MAPPING_ERROR"


class MappingPendingError(MappingError):
    """
    A row references a legacy asset code with no canonical identity yet.

    Blocks only that row's per-asset aggregation; liters still count in the
    batch totals.
    """

    code: str = "MAPPING_PENDING"

    def __init__(self, legacy_code: str, row_number: int | None = None):
        self.legacy_code = legacy_code
        self.row_number = row_number
        super().__init__(f"Asset code {legacy_code!r} has no canonical mapping")


class AssetMappingConflictError(MappingError):
    """Legacy code is already mapped to a different canonical asset."""

    code: str = "ASSET_MAPPING_CONFLICT"

    def __init__(self, legacy_code: str, existing_asset_id: str, requested_asset_id: str):
        self.legacy_code = legacy_code
        self.existing_asset_id = existing_asset_id
        self.requested_asset_id = requested_asset_id
        super().__init__(
            f"Asset code {legacy_code!r} is already mapped to {existing_asset_id}, "
            f"cannot remap to {requested_asset_id}"
        )


# Meter validation


class ValidationWarning(FuelKernelError):
    """
    A meter reading failed a plausibility check.

    Non-blocking. `is_error` is True for regressions, which are flagged as
    errors on the reading but are still non-fatal to batch processing.
    """

    code: str = "METER_VALIDATION"

    def __init__(
        self,
        reason: str,
        message: str,
        asset_code: str,
        row_number: int | None = None,
        is_error: bool = False,
    ):
        self.reason = reason
        self.asset_code = asset_code
        self.row_number = row_number
        self.is_error = is_error
        super().__init__(message)


# Reconciliation


class ReconciliationDiscrepancy(FuelKernelError):
    """Computed final inventory differs from the provided one beyond tolerance. Advisory only."""

    code: str = "RECONCILIATION_DISCREPANCY"

    def __init__(
        self,
        batch_id: str,
        computed: Decimal,
        provided: Decimal,
        discrepancy: Decimal,
        tolerance: Decimal,
    ):
        self.batch_id = batch_id
        self.computed = computed
        self.provided = provided
        self.discrepancy = discrepancy
        self.tolerance = tolerance
        super().__init__(
            f"Batch {batch_id}: computed final inventory {computed} L differs from "
            f"provided {provided} L by {discrepancy} L (tolerance {tolerance} L)"
        )


# Transfer-related exceptions


class TransferError(FuelKernelError):
    """Base exception for transfer matching errors."""

    code: str = "TRANSFER_ERROR"


class TransferLinkConflict(TransferError):
    """
    A consumption/entry pairing was rejected.

    Raised before any mutation; both transactions are left untouched.
    """

    code: str = "TRANSFER_LINK_CONFLICT"

    def __init__(self, reason: str, message: str, *transaction_ids: str):
        self.reason = reason
        self.transaction_ids = tuple(str(t) for t in transaction_ids)
        super().__init__(message)


class NoTransferCandidateError(TransferError):
    """No entry in the destination warehouse matched the consumption."""

    code: str = "NO_TRANSFER_CANDIDATE"

    def __init__(self, consumption_transaction_id: str, to_warehouse_id: str | None):
        self.consumption_transaction_id = str(consumption_transaction_id)
        self.to_warehouse_id = to_warehouse_id
        super().__init__(
            f"No matching entry found for consumption {consumption_transaction_id} "
            f"in warehouse {to_warehouse_id}"
        )


class TransactionNotFoundError(FuelKernelError):
    """Transaction with given ID was not found."""

    code: str = "TRANSACTION_NOT_FOUND"

    def __init__(self, transaction_id: str):
        self.transaction_id = str(transaction_id)
        super().__init__(f"Transaction not found: {transaction_id}")


# Persistence


class PersistenceError(FuelKernelError):
    """
    A database write failed and was rolled back.

    No partial state is left behind. Callers may retry the whole operation.
    """

    code: str = "PERSISTENCE_ERROR"

    def __init__(self, operation: str, detail: str, retryable: bool = True):
        self.operation = operation
        self.detail = detail
        self.retryable = retryable
        super().__init__(f"{operation} failed: {detail}")


# Configuration


class ConfigurationError(FuelKernelError):
    """Configuration file or value is invalid."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, key: str, message: str):
        self.key = key
        super().__init__(f"{key}: {message}")
