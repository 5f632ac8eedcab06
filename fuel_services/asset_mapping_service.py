"""
AssetMappingService -- durable legacy code -> canonical asset mappings.

Responsibility:
    Persist the reviewer's answer to "which asset is UNIT-77?" and build an
    ``AssetResolver`` loaded with every known mapping.

Architecture position:
    Services -- stateful orchestration over the ``asset_mappings`` table.

Invariants enforced:
    - Idempotent resolution: resolving a code already mapped to the same
      asset returns the existing mapping and writes nothing.
    - A code is never silently remapped; a different asset raises
      AssetMappingConflictError.
    - When an AssetDirectory is supplied, the canonical asset must exist.

Failure modes:
    - AssetMappingConflictError, ValueError (blank input or unknown asset).
    - PersistenceError after rollback when the write fails.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from fuel_engines.asset_resolution import AssetResolver
from fuel_kernel.domain.directories import AssetDirectory, normalize_code
from fuel_kernel.exceptions import AssetMappingConflictError, PersistenceError
from fuel_kernel.logging_config import LogContext, get_logger
from fuel_kernel.models.asset_mapping import AssetMappingModel

logger = get_logger("services.asset_mapping")


@dataclass(frozen=True)
class MappingResolution:
    legacy_code: str
    canonical_asset_id: str
    created: bool


class AssetMappingService:
    """Resolve and load legacy asset mappings."""

    def __init__(
        self,
        session: Session,
        actor_id: UUID,
        asset_directory: AssetDirectory | None = None,
        auto_commit: bool = True,
    ):
        self._session = session
        self._actor_id = actor_id
        self._directory = asset_directory
        self._auto_commit = auto_commit

    def _find(self, legacy_code: str) -> AssetMappingModel | None:
        return self._session.scalars(
            select(AssetMappingModel).where(AssetMappingModel.legacy_code == legacy_code)
        ).first()

    def get_mappings(self) -> dict[str, str]:
        rows = self._session.scalars(select(AssetMappingModel)).all()
        return {row.legacy_code: row.canonical_asset_id for row in rows}

    def build_resolver(self) -> AssetResolver:
        return AssetResolver(self.get_mappings(), directory=self._directory)

    def resolve_mapping(
        self,
        legacy_code: str,
        canonical_asset_id: str,
        notes: str | None = None,
    ) -> MappingResolution:
        """
        Map ``legacy_code`` to ``canonical_asset_id``.  Idempotent.

        Raises:
            ValueError: blank code / asset, or asset unknown to the directory.
            AssetMappingConflictError: code already mapped to another asset.
            PersistenceError: the insert failed; nothing was written.
        """
        code = normalize_code(legacy_code)
        asset_id = (canonical_asset_id or "").strip()
        if code is None or not asset_id:
            raise ValueError("legacy_code and canonical_asset_id are required")
        if self._directory is not None and self._directory.get(asset_id) is None:
            raise ValueError(f"Unknown canonical asset {asset_id!r}")

        with LogContext.bind(actor_id=str(self._actor_id), producer="asset_mapping"):
            existing = self._find(code)
            if existing is not None:
                if existing.canonical_asset_id != asset_id:
                    logger.warning(
                        "asset_mapping_conflict",
                        extra={
                            "legacy_code": code,
                            "existing_asset_id": existing.canonical_asset_id,
                            "requested_asset_id": asset_id,
                        },
                    )
                    raise AssetMappingConflictError(code, existing.canonical_asset_id, asset_id)
                logger.info("asset_mapping_reused", extra={"legacy_code": code, "asset_id": asset_id})
                return MappingResolution(code, asset_id, created=False)

            model = AssetMappingModel(
                legacy_code=code,
                canonical_asset_id=asset_id,
                mapping_source="manual",
                notes=notes,
                created_by_id=self._actor_id,
            )
            try:
                self._session.add(model)
                self._session.flush()
                if self._auto_commit:
                    self._session.commit()
            except IntegrityError as exc:
                # lost a race with a concurrent resolution of the same code
                self._session.rollback()
                winner = self._find(code)
                if winner is not None and winner.canonical_asset_id == asset_id:
                    return MappingResolution(code, asset_id, created=False)
                if winner is not None:
                    raise AssetMappingConflictError(code, winner.canonical_asset_id, asset_id) from exc
                logger.error("asset_mapping_failed", extra={"legacy_code": code}, exc_info=True)
                raise PersistenceError("resolve_mapping", str(exc)) from exc
            except SQLAlchemyError as exc:
                self._session.rollback()
                logger.error("asset_mapping_failed", extra={"legacy_code": code}, exc_info=True)
                raise PersistenceError("resolve_mapping", str(exc)) from exc

            logger.info("asset_mapping_created", extra={"legacy_code": code, "asset_id": asset_id})
            return MappingResolution(code, asset_id, created=True)

    def resolve_many(self, mappings: Mapping[str, str]) -> list[MappingResolution]:
        """Resolve several codes; stops at the first conflict."""
        return [self.resolve_mapping(code, asset_id) for code, asset_id in mappings.items()]
