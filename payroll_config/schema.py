"""
Payroll configuration schema (``payroll_config.schema``).

Frozen dataclass with validated fields.  Field defaults are the policy
constants of a Jordanian small business payroll: salaries in JOD, a
208-hour month (26 working days x 8 hours) as the overtime divisor, and
overtime paid at the plain hourly rate.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from payroll_kernel.logging_config import get_logger

logger = get_logger("config.schema")


@dataclass(frozen=True)
class PayrollConfig:
    """
    Configuration for the payroll modules.

    Override at instantiation or through YAML:

        config = PayrollConfig(overtime_multiplier=Decimal("1.5"))
    """

    currency: str = "JOD"

    # Overtime
    overtime_hours_divisor: Decimal = Decimal("208")
    overtime_multiplier: Decimal = Decimal("1.0")
    max_overtime_hours_per_entry: Decimal = Decimal("24")

    # Transaction id prefixes
    salary_transaction_prefix: str = "SAL"
    reversal_transaction_prefix: str = "REV"
    advance_transaction_prefix: str = "ADV"

    # Upper bound on documents fetched by list queries
    query_limit: int = 500

    def __post_init__(self):
        if not self.currency or len(self.currency) != 3:
            raise ValueError(f"currency must be a 3-letter code, got '{self.currency}'")
        if self.overtime_hours_divisor <= 0:
            raise ValueError("overtime_hours_divisor must be positive")
        if self.overtime_multiplier <= 0:
            raise ValueError("overtime_multiplier must be positive")
        if not 0 < self.max_overtime_hours_per_entry <= 24:
            raise ValueError("max_overtime_hours_per_entry must be in (0, 24]")
        prefixes = (
            self.salary_transaction_prefix,
            self.reversal_transaction_prefix,
            self.advance_transaction_prefix,
        )
        if not all(prefixes):
            raise ValueError("transaction prefixes must be non-empty")
        if len(set(prefixes)) != len(prefixes):
            raise ValueError(f"transaction prefixes must be distinct, got {prefixes}")
        if self.query_limit <= 0:
            raise ValueError("query_limit must be positive")
        logger.debug(
            "payroll_config_initialized",
            extra={
                "currency": self.currency,
                "overtime_hours_divisor": str(self.overtime_hours_divisor),
                "overtime_multiplier": str(self.overtime_multiplier),
            },
        )
