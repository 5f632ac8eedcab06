"""
Tests for JSON logging (fuel_kernel/logging_config.py) and the engine tracer.

Covers:
- One JSON object per record, extras and context merged in
- Decimal/UUID rendering and typed exception fields
- LogContext bind/restore
- FUEL_LOG_LEVEL and idempotent configuration
- FUEL_ENGINE_TRACE records and input fingerprints
"""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from fuel_engines.tracer import compute_input_fingerprint, traced_engine
from fuel_kernel.exceptions import AssetMappingConflictError
from fuel_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _fresh_logging():
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


@pytest.fixture
def emitted():
    """Configure logging into a buffer; calling the fixture returns parsed records."""
    buffer = StringIO()
    sink = logging.StreamHandler(buffer)
    sink.setFormatter(StructuredFormatter())
    configure_logging(handler=sink)
    return lambda: [json.loads(line) for line in buffer.getvalue().splitlines() if line]


log = get_logger("test")


class TestStructuredFormatter:
    def test_one_json_object_per_record(self, emitted):
        log.info("hello")
        (record,) = emitted()
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "fuel_kernel.test"
        assert "ts" in record

    def test_extras_with_decimals_and_uuids(self, emitted):
        uid = uuid4()
        log.info("batch", extra={"rows": 42, "discrepancy": Decimal("10.5"), "transaction": uid})
        (record,) = emitted()
        assert record["rows"] == 42
        assert record["discrepancy"] == "10.5"
        assert record["transaction"] == str(uid)

    def test_context_merged(self, emitted):
        LogContext.set(correlation_id="imp-1", batch_id="b-9")
        log.info("reconciled")
        (record,) = emitted()
        assert (record["correlation_id"], record["batch_id"]) == ("imp-1", "b-9")

    def test_typed_exception_fields(self, emitted):
        try:
            raise AssetMappingConflictError("UNIT-77", "asset-0077", "asset-0088")
        except AssetMappingConflictError:
            log.error("mapping_error", exc_info=True)
        (record,) = emitted()
        assert record["exc_code"] == "ASSET_MAPPING_CONFLICT"
        assert record["exc_legacy_code"] == "UNIT-77"
        assert record["exc_requested_asset_id"] == "asset-0088"
        assert record["traceback"].startswith("Traceback")

    def test_debug_dropped_at_info(self, emitted):
        log.info("first")
        log.debug("second")
        assert [r["message"] for r in emitted()] == ["first"]


class TestLogContext:
    def test_bind_restores_previous(self):
        LogContext.set(correlation_id="outer")
        with LogContext.bind(correlation_id="inner", producer="fuel_import"):
            assert LogContext.get_all() == {"correlation_id": "inner", "producer": "fuel_import"}
        assert LogContext.get_all() == {"correlation_id": "outer"}

    def test_bind_restores_on_error(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(batch_id="b-1"):
                raise RuntimeError("boom")
        assert "batch_id" not in LogContext.get_all()

    def test_unknown_and_none_ignored(self):
        with LogContext.bind(shoe_size="42", actor_id=None):
            assert LogContext.get_all() == {}

    def test_clear(self):
        LogContext.set(actor_id="a")
        LogContext.clear()
        assert not LogContext.get_all()


class TestConfigureLogging:
    def test_level_from_environment(self, monkeypatch):
        monkeypatch.setenv("FUEL_LOG_LEVEL", "warning")
        buffer = StringIO()
        configure_logging(stream=buffer)
        log.info("quiet")
        log.warning("loud")
        assert [json.loads(line)["message"] for line in buffer.getvalue().splitlines()] == ["loud"]

    def test_unknown_level_falls_back_to_info(self, monkeypatch):
        monkeypatch.setenv("FUEL_LOG_LEVEL", "chatty")
        configure_logging(stream=StringIO())
        assert logging.getLogger("fuel_kernel").level == logging.INFO

    def test_second_call_is_noop(self, emitted):
        configure_logging(stream=StringIO())
        assert len(logging.getLogger("fuel_kernel").handlers) == 1


class TestEngineTracer:
    def test_fingerprint(self):
        two = compute_input_fingerprint(("tolerance",), {"tolerance": Decimal("2")})
        assert two == compute_input_fingerprint(("tolerance",), {"tolerance": Decimal("2")})
        assert two != compute_input_fingerprint(("tolerance",), {"tolerance": Decimal("3")})
        assert len(two) == 16

    def test_missing_field_counts_as_null(self):
        assert compute_input_fingerprint(("x",), {}) == compute_input_fingerprint(("x",), {"x": None})

    def test_trace_emitted(self, emitted):
        @traced_engine("demo", "2.1", fingerprint_fields=("factor",))
        def scale(value, *, factor):
            return value * factor

        assert scale(3, factor=2) == 6
        (record,) = emitted()
        assert record["message"] == "FUEL_ENGINE_TRACE"
        assert (record["engine_name"], record["engine_version"]) == ("demo", "2.1")
        assert record["input_fingerprint"] == compute_input_fingerprint(("factor",), {"factor": 2})
        assert record["subject_batch_id"] is None

    def test_subject_batch_recorded(self, emitted):
        class _Batch:
            batch_id = "b-42"

        @traced_engine("demo", "1.0")
        def inspect(batch):
            return batch

        inspect(_Batch())
        assert emitted()[0]["subject_batch_id"] == "b-42"

    def test_failure_not_traced(self, emitted):
        @traced_engine("demo", "1.0")
        def boom():
            raise ValueError("nope")

        with pytest.raises(ValueError):
            boom()
        assert emitted() == []
