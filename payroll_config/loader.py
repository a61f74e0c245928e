"""
Configuration Loader (``payroll_config.loader``).

Responsibility
--------------
Loads a YAML file and parses it into a ``PayrollConfig``.  Runtime callers
use ``payroll_config.get_active_config()`` rather than this module.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown key or bad value  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import asdict, fields
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from payroll_config.schema import PayrollConfig

_DECIMAL_FIELDS = frozenset({
    "overtime_hours_divisor",
    "overtime_multiplier",
    "max_overtime_hours_per_entry",
})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, name: str) -> Decimal:
    """
    Parse a decimal from YAML.

    YAML floats are converted through ``str`` so ``1.5`` becomes
    ``Decimal("1.5")`` rather than its binary approximation.
    """
    if isinstance(value, bool):
        raise ValueError(f"{name}: expected a number, got {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{name}: expected a number, got {value!r}") from exc


def parse_config(data: dict[str, Any]) -> PayrollConfig:
    """
    Build a ``PayrollConfig`` from a parsed YAML mapping.

    Only the ``payroll`` section is read; absent keys keep their defaults.

    Raises:
        ValueError: on unknown keys or invalid values.
    """
    section = data.get("payroll", {}) or {}
    known = {f.name for f in fields(PayrollConfig)}
    unknown = set(section) - known
    if unknown:
        raise ValueError(f"Unknown payroll config keys: {sorted(unknown)}")

    kwargs: dict[str, Any] = {}
    for key, value in section.items():
        if key in _DECIMAL_FIELDS:
            kwargs[key] = parse_decimal(value, key)
        elif key == "query_limit":
            kwargs[key] = int(value)
        else:
            kwargs[key] = str(value)
    return PayrollConfig(**kwargs)


def load_config(path: Path) -> PayrollConfig:
    return parse_config(load_yaml_file(path))


def compute_checksum(config: PayrollConfig) -> str:
    """Deterministic SHA-256 of the effective configuration."""
    canonical = json.dumps(asdict(config), sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
