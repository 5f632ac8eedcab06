"""
Configuration Loader (``fuel_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the frozen
``fuel_config.schema`` dataclasses.  Runtime callers go through
``fuel_config.get_active_config()``.

Invariants enforced
-------------------
* Decimal thresholds are parsed from their string form, never via float.
* Unknown keys are rejected so a typo cannot silently fall back to a default.
* ``compute_checksum`` is deterministic for identical input.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid or unknown values  -> ``ConfigurationError``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import fields
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from fuel_config.schema import (
    FuelEngineConfig,
    MeterValidationConfig,
    ParserConfig,
    ReconciliationConfig,
    TransferMatchingConfig,
)
from fuel_kernel.exceptions import ConfigurationError

_SECTIONS: dict[str, type] = {
    "parser": ParserConfig,
    "meters": MeterValidationConfig,
    "reconciliation": ReconciliationConfig,
    "transfers": TransferMatchingConfig,
}

_VALID_PRODUCTS = ("diesel", "urea")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(key: str, value: Any) -> Decimal:
    if isinstance(value, float):
        value = repr(value)
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ConfigurationError(key, f"not a decimal: {value!r}") from exc
    if not result.is_finite():
        raise ConfigurationError(key, f"not a finite decimal: {value!r}")
    return result


def parse_int(key: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ConfigurationError(key, f"not an integer: {value!r}")
    try:
        return int(value)
    except ValueError as exc:
        raise ConfigurationError(key, f"not an integer: {value!r}") from exc


def _parse_section(name: str, cls: type, data: dict[str, Any] | None) -> Any:
    data = data or {}
    if not isinstance(data, dict):
        raise ConfigurationError(name, "section must be a mapping")

    known = {f.name: f for f in fields(cls)}
    unknown = sorted(set(data) - set(known))
    if unknown:
        raise ConfigurationError(name, f"unknown keys: {', '.join(unknown)}")

    kwargs: dict[str, Any] = {}
    defaults = cls()
    for key, raw in data.items():
        default = getattr(defaults, key)
        full_key = f"{name}.{key}"
        if isinstance(default, Decimal):
            kwargs[key] = parse_decimal(full_key, raw)
        elif isinstance(default, int):
            kwargs[key] = parse_int(full_key, raw)
        else:
            kwargs[key] = str(raw)
    return cls(**kwargs)


def _validate(config: FuelEngineConfig) -> None:
    """Reject values the engines cannot work with."""
    non_negative = {
        "parser.receipt_min_liters": config.parser.receipt_min_liters,
        "parser.declared_liters_tolerance": config.parser.declared_liters_tolerance,
        "meters.min_liters_per_hour": config.meters.min_liters_per_hour,
        "reconciliation.tolerance_liters": config.reconciliation.tolerance_liters,
        "transfers.tolerance_pct": config.transfers.tolerance_pct,
        "transfers.min_tolerance_liters": config.transfers.min_tolerance_liters,
    }
    for key, value in non_negative.items():
        if value < 0:
            raise ConfigurationError(key, f"must be >= 0, got {value}")

    positive = {
        "meters.max_daily_hours": config.meters.max_daily_hours,
        "meters.max_daily_km": config.meters.max_daily_km,
        "transfers.window_days": config.transfers.window_days,
        "transfers.broad_window_days": config.transfers.broad_window_days,
        "transfers.broad_result_limit": config.transfers.broad_result_limit,
        "transfers.fifo_lookback_days": config.transfers.fifo_lookback_days,
    }
    for key, value in positive.items():
        if value <= 0:
            raise ConfigurationError(key, f"must be > 0, got {value}")

    if config.meters.min_liters_per_hour > config.meters.max_liters_per_hour:
        raise ConfigurationError(
            "meters.min_liters_per_hour", "must not exceed meters.max_liters_per_hour"
        )
    if config.transfers.broad_window_days < config.transfers.window_days:
        raise ConfigurationError(
            "transfers.broad_window_days", "must be at least transfers.window_days"
        )
    if not 0 <= config.parser.two_digit_year_pivot <= 100:
        raise ConfigurationError("parser.two_digit_year_pivot", "must be between 0 and 100")
    if config.parser.default_product_type not in _VALID_PRODUCTS:
        raise ConfigurationError(
            "parser.default_product_type",
            f"must be one of {_VALID_PRODUCTS}, got {config.parser.default_product_type!r}",
        )


def parse_config(data: dict[str, Any]) -> FuelEngineConfig:
    """
    Parse a ``FuelEngineConfig`` from a dict (the YAML document).

    Missing sections and keys fall back to the schema defaults.
    """
    allowed = set(_SECTIONS) | {"config_id", "version"}
    unknown = sorted(set(data) - allowed)
    if unknown:
        raise ConfigurationError("<root>", f"unknown keys: {', '.join(unknown)}")

    sections = {name: _parse_section(name, cls, data.get(name)) for name, cls in _SECTIONS.items()}
    config = FuelEngineConfig(
        config_id=str(data.get("config_id", "default")),
        version=parse_int("version", data.get("version", 1)),
        checksum=compute_checksum(data),
        **sections,
    )
    _validate(config)
    return config


def load_config_file(path: Path) -> FuelEngineConfig:
    return parse_config(load_yaml_file(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
