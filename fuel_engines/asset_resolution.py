"""
Module: fuel_engines.asset_resolution
Responsibility:
    Map legacy equipment codes to canonical asset identities and mark the
    rows whose code is still unresolved.

Architecture position:
    Engines -- pure, in-memory.  Durable mappings live in the
    ``asset_mappings`` table and are loaded by
    ``fuel_services.asset_mapping_service``; this resolver only works on
    what it is given.

Invariants enforced:
    - Codes are compared in normalized form (trimmed, upper-case).
    - Registering a code that is already mapped to the same asset is a
      no-op; mapping it to a different asset raises
      AssetMappingConflictError.
    - An unresolved code never removes liters from batch totals; it only
      blocks the row from per-asset aggregation (asset_id stays None).
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import replace

from fuel_engines.aggregation import PlantBatch
from fuel_kernel.domain.directories import AssetDirectory, normalize_code
from fuel_kernel.domain.dtos import BatchDiagnostic, DiagnosticSeverity
from fuel_kernel.exceptions import AssetMappingConflictError, MappingPendingError
from fuel_kernel.logging_config import get_logger

logger = get_logger("engines.asset_resolution")

_PENDING = MappingPendingError.code


class AssetResolver:
    """Legacy code -> canonical asset id, with an optional directory fallback."""

    def __init__(
        self,
        mappings: Mapping[str, str] | None = None,
        directory: AssetDirectory | None = None,
    ):
        self._mappings: dict[str, str] = {}
        self._directory = directory
        for code, asset_id in (mappings or {}).items():
            self.register(code, asset_id)

    @property
    def mappings(self) -> dict[str, str]:
        return dict(self._mappings)

    def lookup(self, legacy_code: str | None) -> str | None:
        code = normalize_code(legacy_code)
        if code is None:
            return None
        asset_id = self._mappings.get(code)
        if asset_id is None and self._directory is not None:
            ref = self._directory.find_by_code(code)
            if ref is not None:
                asset_id = ref.asset_id
        return asset_id

    def register(self, legacy_code: str, asset_id: str) -> str:
        """
        Record a mapping.  Idempotent.

        Returns:
            The canonical asset id now mapped to the code.

        Raises:
            ValueError: blank code or asset id.
            AssetMappingConflictError: code already mapped elsewhere.
        """
        code = normalize_code(legacy_code)
        if code is None or not str(asset_id).strip():
            raise ValueError("legacy_code and asset_id are required")
        existing = self._mappings.get(code)
        if existing is not None:
            if existing != asset_id:
                raise AssetMappingConflictError(code, existing, asset_id)
            return existing
        self._mappings[code] = asset_id
        return asset_id

    def unmapped(self, codes: Iterable[str | None]) -> list[str]:
        """Codes without a resolution, in first-seen order."""
        return [c for c in dict.fromkeys(normalize_code(c) for c in codes) if c and self.lookup(c) is None]

    def resolve_batch(self, batch: PlantBatch) -> PlantBatch:
        """
        Attach canonical ids to the batch's transactions.

        Rows with an unresolved code keep ``asset_id=None`` and get a
        MAPPING_PENDING diagnostic.  Previous pending diagnostics are
        replaced, so the method can be re-run after new mappings land.
        """
        resolved = []
        unmapped: list[str] = []
        pending: list[BatchDiagnostic] = []
        for tx in batch.transactions:
            if not tx.asset_code:
                resolved.append(tx)
                continue
            asset_id = self.lookup(tx.asset_code)
            resolved.append(tx.with_asset(asset_id))
            if asset_id is None:
                if tx.asset_code not in unmapped:
                    unmapped.append(tx.asset_code)
                error = MappingPendingError(tx.asset_code, row_number=tx.source_row_number)
                pending.append(
                    BatchDiagnostic.from_error(
                        error,
                        severity=DiagnosticSeverity.WARNING,
                        transaction_id=tx.transaction_id,
                        details={"legacy_code": tx.asset_code},
                    )
                )

        kept = tuple(d for d in batch.diagnostics if d.code != _PENDING)
        if unmapped:
            logger.info(
                "assets_unmapped",
                extra={
                    "batch_id": str(batch.batch_id),
                    "unmapped_count": len(unmapped),
                    "pending_rows": len(pending),
                },
            )
        return replace(
            batch,
            transactions=tuple(resolved),
            unmapped_assets=tuple(unmapped),
            diagnostics=kept + tuple(pending),
        )
