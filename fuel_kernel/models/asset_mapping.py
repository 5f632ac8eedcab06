"""
Module: fuel_kernel.models.asset_mapping
Responsibility: Persistent legacy_code -> canonical asset mapping.

Invariants enforced:
    - legacy_code is unique: a code maps to at most one canonical asset, so
      re-resolving it can never create a duplicate row.
    - legacy_code is stored normalized (trimmed, upper-case).
"""

from __future__ import annotations

from sqlalchemy import String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fuel_kernel.db.base import TrackedBase


class AssetMappingModel(TrackedBase):
    """One resolved legacy equipment code."""

    __tablename__ = "asset_mappings"

    __table_args__ = (
        UniqueConstraint("legacy_code", name="uq_asset_mapping_legacy_code"),
    )

    legacy_code: Mapped[str] = mapped_column(String(100), nullable=False)
    canonical_asset_id: Mapped[str] = mapped_column(String(100), nullable=False)
    mapping_source: Mapped[str] = mapped_column(String(20), nullable=False, default="manual")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
