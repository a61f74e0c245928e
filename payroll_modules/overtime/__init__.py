"""Overtime ledger."""

from payroll_modules.overtime.models import EmployeeOvertimeSummary, OvertimeEntry
from payroll_modules.overtime.service import OvertimeLedger

__all__ = ["EmployeeOvertimeSummary", "OvertimeEntry", "OvertimeLedger"]
