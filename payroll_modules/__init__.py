"""
Payroll business modules.

``build_services`` wires the four services over one document store with a
shared clock, configuration and sinks:

    services = build_services(store, clock=clock)
    employee = services.employees.create_employee("Ahmad", "600", date(2025, 1, 10))
    services.payroll.process("2025-01", services.employees.list_employees())
"""

from __future__ import annotations

from dataclasses import dataclass

from payroll_config import get_active_config
from payroll_config.schema import PayrollConfig
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.sinks import (
    AuditSink,
    ReconciliationSink,
    StoreAuditSink,
    StoreReconciliationSink,
)
from payroll_kernel.store.base import DocumentStore
from payroll_modules.advances.service import AdvanceLedger
from payroll_modules.employees.service import EmployeeRegistry
from payroll_modules.overtime.service import OvertimeLedger
from payroll_modules.payroll.service import PayrollEngine


@dataclass(frozen=True)
class PayrollServices:
    employees: EmployeeRegistry
    overtime: OvertimeLedger
    advances: AdvanceLedger
    payroll: PayrollEngine
    config: PayrollConfig


def build_services(
    store: DocumentStore,
    clock: Clock | None = None,
    config: PayrollConfig | None = None,
    reconciliation: ReconciliationSink | None = None,
    audit: AuditSink | None = None,
) -> PayrollServices:
    """
    Wire the payroll services.

    Defaults: system clock, ``get_active_config()``, and sinks that write
    ``ledger`` / ``payments`` / ``activity_logs`` documents to ``store``.
    """
    clock = clock or SystemClock()
    config = config or get_active_config()
    reconciliation = reconciliation or StoreReconciliationSink(store, clock)
    audit = audit or StoreAuditSink(store, clock)

    overtime = OvertimeLedger(store, clock, config, audit)
    advances = AdvanceLedger(store, clock, config, reconciliation, audit)
    payroll = PayrollEngine(store, overtime, advances, clock, config, reconciliation, audit)
    employees = EmployeeRegistry(store, payroll, clock, audit)
    return PayrollServices(employees, overtime, advances, payroll, config)


__all__ = ["PayrollServices", "build_services"]
