"""
Read-only reference directories for plants, warehouses and assets.

The reconciliation engine never owns this data; it is supplied by the host
application. The protocols define what the engine asks for, and the static
implementations cover tests, scripts and one-off migrations.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol, runtime_checkable


def normalize_code(code: str | None) -> str | None:
    """Canonical form of a legacy code: trimmed, upper-case, None when blank."""
    if code is None:
        return None
    s = str(code).strip().upper()
    return s or None


@dataclass(frozen=True)
class WarehouseRef:
    warehouse_id: str
    plant_id: str
    plant_code: str
    warehouse_number: str
    product_type: str | None = None
    name: str | None = None


@dataclass(frozen=True)
class AssetRef:
    asset_id: str
    asset_code: str
    name: str | None = None
    plant_id: str | None = None


@runtime_checkable
class WarehouseDirectory(Protocol):
    """Lookup of warehouses by id or by legacy (plant, warehouse) codes."""

    def get(self, warehouse_id: str) -> WarehouseRef | None:
        ...

    def find(self, plant_code: str, warehouse_number: str) -> WarehouseRef | None:
        ...


@runtime_checkable
class AssetDirectory(Protocol):
    """Lookup of canonical assets by id or by their canonical code."""

    def get(self, asset_id: str) -> AssetRef | None:
        ...

    def find_by_code(self, code: str) -> AssetRef | None:
        ...


class StaticWarehouseDirectory:
    """In-memory WarehouseDirectory."""

    def __init__(self, warehouses: Iterable[WarehouseRef] = ()):
        self._by_id: dict[str, WarehouseRef] = {}
        self._by_codes: dict[tuple[str, str], WarehouseRef] = {}
        for wh in warehouses:
            self._by_id[wh.warehouse_id] = wh
            key = (normalize_code(wh.plant_code) or "", normalize_code(wh.warehouse_number) or "")
            self._by_codes[key] = wh

    def get(self, warehouse_id: str) -> WarehouseRef | None:
        return self._by_id.get(warehouse_id)

    def find(self, plant_code: str, warehouse_number: str) -> WarehouseRef | None:
        key = (normalize_code(plant_code) or "", normalize_code(warehouse_number) or "")
        return self._by_codes.get(key)


class StaticAssetDirectory:
    """In-memory AssetDirectory."""

    def __init__(self, assets: Iterable[AssetRef] = ()):
        self._by_id: dict[str, AssetRef] = {}
        self._by_code: dict[str, AssetRef] = {}
        for asset in assets:
            self._by_id[asset.asset_id] = asset
            code = normalize_code(asset.asset_code)
            if code:
                self._by_code[code] = asset

    def get(self, asset_id: str) -> AssetRef | None:
        return self._by_id.get(asset_id)

    def find_by_code(self, code: str) -> AssetRef | None:
        normalized = normalize_code(code)
        if normalized is None:
            return None
        return self._by_code.get(normalized)
