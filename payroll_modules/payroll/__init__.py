"""Monthly payroll engine."""

from payroll_modules.payroll.models import (
    AdjustmentKind,
    BonusType,
    DeductionType,
    EmployeeAdjustments,
    EmployeeBalance,
    PayrollAdjustment,
    PayrollEntry,
    PayrollEntryStatus,
    PayrollMonthSummary,
    PayrollPreview,
    ProcessResult,
)
from payroll_modules.payroll.service import PayrollEngine
from payroll_modules.payroll.workflows import PAYROLL_ENTRY_WORKFLOW

__all__ = [
    "PAYROLL_ENTRY_WORKFLOW",
    "AdjustmentKind",
    "BonusType",
    "DeductionType",
    "EmployeeAdjustments",
    "EmployeeBalance",
    "PayrollAdjustment",
    "PayrollEngine",
    "PayrollEntry",
    "PayrollEntryStatus",
    "PayrollMonthSummary",
    "PayrollPreview",
    "ProcessResult",
]
