"""Advance ledger."""

from payroll_modules.advances.models import Advance, AdvanceStatus
from payroll_modules.advances.service import AdvanceLedger
from payroll_modules.advances.workflows import ADVANCE_WORKFLOW

__all__ = ["ADVANCE_WORKFLOW", "Advance", "AdvanceLedger", "AdvanceStatus"]
