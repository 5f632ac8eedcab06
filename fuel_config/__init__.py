"""
fuel_config -- single public entrypoint for pipeline configuration.

Responsibility:
    ``get_active_config()`` is the only way services and scripts obtain
    thresholds at runtime.  It reads the packaged ``defaults.yaml`` or an
    explicit YAML file and returns a frozen ``FuelEngineConfig``.

Architecture position:
    Configuration -- sits above ``fuel_kernel`` and below ``fuel_services``.
    Pure engines never call ``get_active_config()``; they receive the
    section they need as an argument.

Failure modes:
    - ``FileNotFoundError`` -- explicit path does not exist.
    - ``ConfigurationError`` -- invalid or unknown values.

Audit relevance:
    Every successful call emits a ``FUEL_CONFIG_TRACE`` log entry with the
    config id, version and checksum, so a processed batch can be tied to the
    thresholds that produced its diagnostics.
"""

from __future__ import annotations

from pathlib import Path

from fuel_config.loader import compute_checksum, load_config_file, parse_config
from fuel_config.schema import (
    FuelEngineConfig,
    MeterValidationConfig,
    ParserConfig,
    ReconciliationConfig,
    TransferMatchingConfig,
)
from fuel_kernel.logging_config import get_logger

_logger = get_logger("config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(path: Path | str | None = None) -> FuelEngineConfig:
    """Load and validate the active configuration.

    Args:
        path: YAML file to load.  Defaults to the packaged defaults.yaml.
    """
    config_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    config = load_config_file(config_path)

    _logger.info(
        "FUEL_CONFIG_TRACE",
        extra={
            "trace_type": "FUEL_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "source": str(config_path),
        },
    )
    return config


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "FuelEngineConfig",
    "MeterValidationConfig",
    "ParserConfig",
    "ReconciliationConfig",
    "TransferMatchingConfig",
    "compute_checksum",
    "get_active_config",
    "parse_config",
]
