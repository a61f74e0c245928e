"""
payroll_config -- single public entrypoint for payroll configuration.

Responsibility:
    ``get_active_config()`` is the only way services obtain a
    ``PayrollConfig``.  Resolution order: an explicit path, then the
    ``PAYROLL_CONFIG_PATH`` environment variable, then the packaged
    ``defaults.yaml``.

Architecture position:
    Sits above ``payroll_kernel`` and below ``payroll_modules``.  The kernel
    MUST NEVER import from ``payroll_config``.
"""

from __future__ import annotations

import os
from pathlib import Path

from payroll_config.loader import compute_checksum, load_config
from payroll_config.schema import PayrollConfig
from payroll_kernel.logging_config import get_logger

logger = get_logger("config")

CONFIG_PATH_ENV = "PAYROLL_CONFIG_PATH"
DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(path: Path | str | None = None) -> PayrollConfig:
    """
    Load the effective payroll configuration.

    Raises:
        FileNotFoundError: the resolved file does not exist.
        ValueError: the file has unknown keys or invalid values.
    """
    if path is None:
        path = os.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH
    path = Path(path)
    config = load_config(path)
    logger.info(
        "payroll_config_loaded",
        extra={
            "path": str(path),
            "checksum": compute_checksum(config),
            "currency": config.currency,
            "overtime_multiplier": str(config.overtime_multiplier),
        },
    )
    return config


__all__ = ["PayrollConfig", "get_active_config", "CONFIG_PATH_ENV", "DEFAULT_CONFIG_PATH"]
