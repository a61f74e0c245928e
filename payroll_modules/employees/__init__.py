"""Employee registry and salary history."""

from payroll_modules.employees.models import Employee, SalaryHistory
from payroll_modules.employees.service import (
    DeleteEmployeeResult,
    EmployeeRegistry,
    PayrollCleanup,
)

__all__ = [
    "DeleteEmployeeResult",
    "Employee",
    "EmployeeRegistry",
    "PayrollCleanup",
    "SalaryHistory",
]
