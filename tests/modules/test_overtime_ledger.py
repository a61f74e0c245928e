"""
Tests for the Overtime Ledger.

Verifies:
- Recording validates hours range, dates and eligibility
- Linked entries are locked against edit and delete
- Month queries and the per-employee summary
"""

from datetime import date
from decimal import Decimal

import pytest

from payroll_kernel.exceptions import LockedError, NotFoundError, ValidationError


@pytest.fixture
def employee(create_employee):
    return create_employee("Ahmad Khalil", hire_date=date(2025, 1, 10))


class TestRecordEntry:

    def test_record(self, overtime, employee, audit):
        entry = overtime.record_entry(employee, date(2025, 1, 20), "10", "Inventory", "u1")
        assert entry.hours == Decimal("10")
        assert entry.month == "2025-01"
        assert not entry.is_locked
        assert entry.created_by == "u1"
        assert overtime.get_entry(entry.id) == entry
        assert audit.activities[-1].module == "overtime"

    @pytest.mark.parametrize("hours", ["0", "-1", "24.5", "x"])
    def test_hours_out_of_range(self, overtime, employee, hours):
        with pytest.raises(ValidationError) as exc_info:
            overtime.record_entry(employee, date(2025, 1, 20), hours)
        assert exc_info.value.field == "hours"

    def test_max_hours_accepted(self, overtime, employee):
        assert overtime.record_entry(employee, date(2025, 1, 20), "24").hours == Decimal("24")

    def test_future_date(self, overtime, employee):
        with pytest.raises(ValidationError) as exc_info:
            overtime.record_entry(employee, date(2025, 6, 16), "2")
        assert exc_info.value.field == "date"

    def test_today_allowed(self, overtime, employee):
        overtime.record_entry(employee, date(2025, 6, 15), "2")

    def test_before_hire_date(self, overtime, employee):
        with pytest.raises(ValidationError, match="hire date"):
            overtime.record_entry(employee, date(2025, 1, 9), "2")

    def test_ineligible_employee(self, overtime, create_employee):
        clerk = create_employee("Clerk", overtime_eligible=False)
        with pytest.raises(ValidationError, match="not eligible"):
            overtime.record_entry(clerk, date(2025, 1, 20), "2")
        assert overtime.entries_for_month("2025-01") == []


class TestLocking:

    def test_linked_entry_cannot_be_edited_or_deleted(self, overtime, payroll, employee):
        entry = overtime.record_entry(employee, date(2025, 1, 20), "10")
        result = payroll.process("2025-01", [employee])
        linked = overtime.get_entry(entry.id)

        assert linked.linked_payroll_id == result.entries[0].id
        with pytest.raises(LockedError):
            overtime.update_entry(entry.id, employee, date(2025, 1, 21), "5")
        with pytest.raises(LockedError) as exc_info:
            overtime.delete_entry(entry)
        assert exc_info.value.linked_payroll_id == result.entries[0].id

    def test_stale_copy_does_not_bypass_lock(self, overtime, payroll, employee):
        stale = overtime.record_entry(employee, date(2025, 1, 20), "10")
        payroll.process("2025-01", [employee])
        assert not stale.is_locked
        with pytest.raises(LockedError):
            overtime.delete_entry(stale)

    def test_unlocked_after_payroll_deleted(self, overtime, payroll, employee):
        entry = overtime.record_entry(employee, date(2025, 1, 20), "10")
        result = payroll.process("2025-01", [employee])
        payroll.delete_entry(result.entries[0])

        updated = overtime.update_entry(entry.id, employee, date(2025, 1, 21), "5", "fixed")
        assert updated.hours == Decimal("5")
        assert updated.notes == "fixed"

    def test_update_and_delete_unlinked(self, overtime, employee):
        entry = overtime.record_entry(employee, date(2025, 1, 20), "3")
        overtime.update_entry(entry.id, employee, date(2025, 2, 1), "4")
        assert overtime.get_entry(entry.id).month == "2025-02"

        overtime.delete_entry(entry)
        with pytest.raises(NotFoundError):
            overtime.get_entry(entry.id)

    def test_update_revalidates(self, overtime, employee):
        entry = overtime.record_entry(employee, date(2025, 1, 20), "3")
        with pytest.raises(ValidationError):
            overtime.update_entry(entry.id, employee, date(2025, 1, 20), "30")


class TestQueries:

    def test_hours_for_employee_month(self, overtime, employee):
        overtime.record_entry(employee, date(2025, 1, 20), "2.5")
        overtime.record_entry(employee, date(2025, 1, 21), "4")
        overtime.record_entry(employee, date(2025, 2, 3), "8")
        assert overtime.hours_for_employee_month(employee.id, "2025-01") == Decimal("6.5")
        assert overtime.hours_for_employee_month(employee.id, "2025-03") == Decimal("0")

    def test_fractional_hours_not_rounded(self, overtime, employee):
        overtime.record_entry(employee, date(2025, 1, 20), "0.125")
        overtime.record_entry(employee, date(2025, 1, 21), "0.25")
        assert overtime.hours_for_employee_month(employee.id, "2025-01") == Decimal("0.375")

    def test_entries_newest_first(self, overtime, employee):
        overtime.record_entry(employee, date(2025, 1, 20), "1")
        overtime.record_entry(employee, date(2025, 1, 25), "2")
        entries = overtime.entries_for_employee_month(employee.id, "2025-01")
        assert [e.date.day for e in entries] == [25, 20]

    def test_summary_by_employee(self, overtime, employee, create_employee):
        basel = create_employee("Basel Nassar")
        overtime.record_entry(employee, date(2025, 1, 20), "2")
        overtime.record_entry(employee, date(2025, 1, 22), "3")
        overtime.record_entry(basel, date(2025, 1, 21), "1.5")

        summaries = overtime.summary_by_employee("2025-01")

        assert [s.employee_name for s in summaries] == ["Ahmad Khalil", "Basel Nassar"]
        assert summaries[0].total_hours == Decimal("5")
        assert len(summaries[0].entry_ids) == 2
        assert summaries[1].total_hours == Decimal("1.5")

    def test_is_month_processed(self, overtime, payroll, employee):
        assert not overtime.is_month_processed("2025-01")
        payroll.process("2025-01", [employee])
        assert overtime.is_month_processed("2025-01")

    def test_invalid_month_key(self, overtime):
        with pytest.raises(ValidationError):
            overtime.entries_for_month("January")
