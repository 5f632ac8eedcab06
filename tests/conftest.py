"""
Pytest fixtures for the fuel reconciliation test suite.

Provides:
- Structured log capture
- In-memory SQLite sessions (one fresh schema per test)
- Row, transaction and directory builders shared by the engine tests
"""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO
from uuid import UUID, uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import fuel_kernel.models  # noqa: F401  (registers tables)
import fuel_services.orm  # noqa: F401
from fuel_kernel.db.base import Base
from fuel_kernel.domain.directories import (
    AssetRef,
    StaticAssetDirectory,
    StaticWarehouseDirectory,
    WarehouseRef,
)
from fuel_kernel.domain.transactions import (
    Direction,
    FuelTransaction,
    MovementCategory,
    ProductType,
    TransactionType,
)
from fuel_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture fuel_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs):
            ...
            logs = captured_logs()
            assert any(r["message"] == "import_processed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("fuel_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(eng)
    yield eng
    Base.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture
def session(engine):
    factory = sessionmaker(bind=engine, expire_on_commit=False)
    sess = factory()
    yield sess
    sess.close()


@pytest.fixture
def actor_id() -> UUID:
    return TEST_ACTOR_ID


# =============================================================================
# Reference data
# =============================================================================


@pytest.fixture
def warehouse_directory() -> StaticWarehouseDirectory:
    return StaticWarehouseDirectory(
        [
            WarehouseRef("wh-p01-1", "plant-p01", "P01", "1", "diesel", "Main tank"),
            WarehouseRef("wh-p01-2", "plant-p01", "P01", "2", "diesel", "Field tank"),
            WarehouseRef("wh-p02-1", "plant-p02", "P02", "1", "diesel", "North tank"),
        ]
    )


@pytest.fixture
def asset_directory() -> StaticAssetDirectory:
    return StaticAssetDirectory(
        [
            AssetRef("asset-0077", "EX-077", "Excavator 77"),
            AssetRef("asset-0088", "TR-088", "Truck 88"),
            AssetRef("asset-0100", "UNIT-100", "Loader 100"),
        ]
    )


# =============================================================================
# Builders
# =============================================================================


def make_tx(
    *,
    transaction_type: TransactionType = TransactionType.CONSUMPTION,
    quantity: str | Decimal = "100",
    on: date = date(2024, 3, 1),
    warehouse_id: str = "wh-a",
    plant_id: str = "plant-a",
    product_type: ProductType = ProductType.DIESEL,
    direction: Direction | None = None,
    category: MovementCategory | None = None,
    row: int = 1,
    **kwargs,
) -> FuelTransaction:
    """FuelTransaction with sensible defaults for the given type."""
    if direction is None:
        direction = Direction.OUT if transaction_type == TransactionType.CONSUMPTION else Direction.IN
    if category is None:
        category = {
            TransactionType.ENTRY: MovementCategory.FUEL_RECEIPT,
            TransactionType.CONSUMPTION: MovementCategory.ASSET_CONSUMPTION,
            TransactionType.ADJUSTMENT: MovementCategory.INVENTORY_ADJUSTMENT,
        }[transaction_type]
    return FuelTransaction(
        transaction_id=kwargs.pop("transaction_id", uuid4()),
        transaction_type=transaction_type,
        plant_id=plant_id,
        warehouse_id=warehouse_id,
        product_type=product_type,
        quantity_liters=Decimal(quantity),
        transaction_date=on,
        source_row_number=row,
        direction=direction,
        category=category,
        **kwargs,
    )


@pytest.fixture
def tx_factory():
    return make_tx


def legacy_row(**fields) -> dict:
    """Decoded legacy row with the Spanish headers the mill spreadsheets use."""
    base = {"Planta": "P01", "Almacen": "1", "Fecha": "01/03/2024"}
    base.update(fields)
    return base


@pytest.fixture
def row_factory():
    return legacy_row
