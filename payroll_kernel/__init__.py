"""
Payroll Kernel

Shared foundation for the payroll modules:
- Decimal-only currency arithmetic
- Injectable clock and month/period helpers
- Typed exceptions with machine-readable codes
- Structured JSON logging
- A tenant-scoped transactional document store with change notifications
- Best-effort reconciliation and audit sinks
"""

__version__ = "0.1.0"
