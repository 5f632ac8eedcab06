"""
Tests for AssetMappingService.

Covers:
- Creating a mapping and reusing it (idempotent)
- Conflicting remaps rejected, nothing written
- Directory validation of the canonical asset
- Resolver built from stored mappings
- Rollback and PersistenceError on write failure
"""

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from fuel_kernel.exceptions import AssetMappingConflictError, PersistenceError
from fuel_kernel.models.asset_mapping import AssetMappingModel
from fuel_services.asset_mapping_service import AssetMappingService


def _count(session) -> int:
    return session.scalar(select(func.count()).select_from(AssetMappingModel))


class TestResolveMapping:
    def test_creates_mapping(self, session, actor_id, captured_logs):
        svc = AssetMappingService(session, actor_id)
        result = svc.resolve_mapping(" unit-77 ", "asset-0077", notes="seen on site")
        assert result.created
        assert result.legacy_code == "UNIT-77"
        assert svc.get_mappings() == {"UNIT-77": "asset-0077"}
        assert any(r["message"] == "asset_mapping_created" for r in captured_logs())

    def test_idempotent(self, session, actor_id):
        svc = AssetMappingService(session, actor_id)
        svc.resolve_mapping("UNIT-77", "asset-0077")
        again = svc.resolve_mapping("UNIT-77", "asset-0077")
        assert not again.created
        assert _count(session) == 1

    def test_conflict(self, session, actor_id):
        svc = AssetMappingService(session, actor_id)
        svc.resolve_mapping("UNIT-77", "asset-0077")
        with pytest.raises(AssetMappingConflictError):
            svc.resolve_mapping("UNIT-77", "asset-0088")
        assert svc.get_mappings() == {"UNIT-77": "asset-0077"}

    def test_unknown_asset_rejected(self, session, actor_id, asset_directory):
        svc = AssetMappingService(session, actor_id, asset_directory=asset_directory)
        with pytest.raises(ValueError):
            svc.resolve_mapping("UNIT-77", "asset-9999")
        assert _count(session) == 0

    def test_blank_rejected(self, session, actor_id):
        with pytest.raises(ValueError):
            AssetMappingService(session, actor_id).resolve_mapping("", "asset-0077")

    def test_resolve_many(self, session, actor_id):
        svc = AssetMappingService(session, actor_id)
        results = svc.resolve_many({"UNIT-77": "asset-0077", "UNIT-88": "asset-0088"})
        assert [r.created for r in results] == [True, True]

    def test_build_resolver(self, session, actor_id, asset_directory):
        svc = AssetMappingService(session, actor_id, asset_directory=asset_directory)
        svc.resolve_mapping("UNIT-77", "asset-0077")
        resolver = svc.build_resolver()
        assert resolver.lookup("unit-77") == "asset-0077"
        assert resolver.lookup("TR-088") == "asset-0088"

    def test_write_failure_rolls_back(self, session, actor_id, monkeypatch):
        svc = AssetMappingService(session, actor_id)

        def fail():
            raise OperationalError("INSERT", {}, Exception("disk I/O error"))

        monkeypatch.setattr(session, "commit", fail)
        with pytest.raises(PersistenceError) as exc_info:
            svc.resolve_mapping("UNIT-77", "asset-0077")
        assert exc_info.value.operation == "resolve_mapping"
        monkeypatch.undo()
        assert _count(session) == 0
