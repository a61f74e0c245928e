"""
Typed Exception Hierarchy for the Payroll Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Payroll operations are refused for precise, user-visible reasons: a month in
the future, a month already processed, an entry already paid.  Callers (the UI
layer, tests, the audit sink) must be able to tell those apart without parsing
message strings.

Every exception here:
  1. Is a TYPED class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA as attributes (month, entry id, paid count ...)

Example:
    try:
        engine.undo_month("2025-01")
    except PartiallyPaidError as e:
        show(f"{e.paid_count} entries are paid; reverse them first")

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    PayrollKernelError (base)
    |
    +-- ValidationError
    |
    +-- InvalidStateError
    |   +-- AlreadyPaidError
    |   +-- NotPaidError
    |
    +-- LockedError
    |
    +-- PayrollRunError
    |   +-- FutureMonthError
    |   +-- AlreadyProcessedError
    |   +-- PartiallyPaidError
    |   +-- NoEligibleEmployeesError
    |
    +-- NotFoundError
    |
    +-- StoreError
        +-- DocumentExistsError
        +-- DocumentNotFoundError
        +-- StoreUnavailableError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                   | When Raised
--------------|------------------------|------------------------------------------
Input         | VALIDATION_ERROR       | Non-positive amount/hours, future date,
              |                        | date before hire date, ineligible employee
--------------|------------------------|------------------------------------------
Lifecycle     | INVALID_STATE          | Cancel a non-active advance, delete a
              |                        | paid payroll entry
              | ALREADY_PAID           | Mark an already-paid entry as paid
              | NOT_PAID               | Reverse an entry that is not paid
--------------|------------------------|------------------------------------------
Overtime      | ENTRY_LOCKED           | Edit/delete an overtime entry linked to
              |                        | a processed payroll entry
--------------|------------------------|------------------------------------------
Payroll run   | FUTURE_MONTH           | Process a month after the current month
              | ALREADY_PROCESSED      | Process a month that has entries
              | PARTIALLY_PAID         | Undo a month with paid entries
              | NO_ELIGIBLE_EMPLOYEES  | Every employee hired after the month
--------------|------------------------|------------------------------------------
Lookup        | NOT_FOUND              | Employee / advance / entry id unknown
--------------|------------------------|------------------------------------------
Store         | DOCUMENT_EXISTS        | Create-only write hit an existing doc
              | DOCUMENT_NOT_FOUND     | Update-only write hit a missing doc
              | STORE_UNAVAILABLE      | Database unreachable / batch failed

===============================================================================
HANDLING PATTERNS
===============================================================================

Domain errors (everything except ``StoreError``) are surfaced to the user with
their own message; no state was mutated.  ``StoreError`` subclasses are
infrastructure failures: they are logged and shown with a generic message
(see ``user_message``).  Because every compound operation is a single atomic
batch, a ``StoreError`` never leaves partially-applied state behind.

===============================================================================
"""


class PayrollKernelError(Exception):
    """
    Base exception for all payroll kernel errors.

    All subclasses must have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "PAYROLL_KERNEL_ERROR"


# Input validation


class ValidationError(PayrollKernelError):
    """User input was rejected before any state was touched."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


# Lifecycle errors


class InvalidStateError(PayrollKernelError):
    """Operation attempted on an entity in the wrong lifecycle state."""

    code: str = "INVALID_STATE"

    def __init__(
        self,
        entity: str,
        entity_id: str,
        current_state: str,
        action: str,
        message: str | None = None,
    ):
        self.entity = entity
        self.entity_id = entity_id
        self.current_state = current_state
        self.action = action
        super().__init__(
            message
            or f"Cannot {action} {entity} {entity_id} in state '{current_state}'"
        )


class AlreadyPaidError(InvalidStateError):
    """Payroll entry is already paid."""

    code: str = "ALREADY_PAID"

    def __init__(self, entry_id: str):
        super().__init__(
            "payroll_entry",
            entry_id,
            "paid",
            "mark_paid",
            f"Payroll entry {entry_id} is already paid",
        )


class NotPaidError(InvalidStateError):
    """Payment reversal attempted on an unpaid payroll entry."""

    code: str = "NOT_PAID"

    def __init__(self, entry_id: str):
        super().__init__(
            "payroll_entry",
            entry_id,
            "unpaid",
            "reverse",
            f"Payroll entry {entry_id} is not paid",
        )


class LockedError(PayrollKernelError):
    """Overtime entry is linked to a processed payroll entry."""

    code: str = "ENTRY_LOCKED"

    def __init__(self, entry_id: str, linked_payroll_id: str):
        self.entry_id = entry_id
        self.linked_payroll_id = linked_payroll_id
        super().__init__(
            f"Overtime entry {entry_id} is linked to processed payroll "
            f"{linked_payroll_id}"
        )


# Payroll run guard rails


class PayrollRunError(PayrollKernelError):
    """Base exception for month-level payroll run errors."""

    code: str = "PAYROLL_RUN_ERROR"


class FutureMonthError(PayrollRunError):
    """Month is after the current calendar month."""

    code: str = "FUTURE_MONTH"

    def __init__(self, month: str, current_month: str):
        self.month = month
        self.current_month = current_month
        super().__init__(
            f"Cannot process payroll for future month {month} "
            f"(current month is {current_month})"
        )


class AlreadyProcessedError(PayrollRunError):
    """Month already has payroll entries."""

    code: str = "ALREADY_PROCESSED"

    def __init__(self, month: str):
        self.month = month
        super().__init__(
            f"Payroll for {month} has already been processed and cannot be "
            f"processed again"
        )


class PartiallyPaidError(PayrollRunError):
    """Month cannot be undone because some entries are paid."""

    code: str = "PARTIALLY_PAID"

    def __init__(self, month: str, paid_count: int):
        self.month = month
        self.paid_count = paid_count
        super().__init__(
            f"Cannot undo payroll for {month}: {paid_count} paid "
            f"entr{'y' if paid_count == 1 else 'ies'}; reverse payment first"
        )


class NoEligibleEmployeesError(PayrollRunError):
    """Every employee was hired after the target month."""

    code: str = "NO_ELIGIBLE_EMPLOYEES"

    def __init__(self, month: str, skipped_count: int):
        self.month = month
        self.skipped_count = skipped_count
        super().__init__(f"All employees were hired after {month}")


# Lookup


class NotFoundError(PayrollKernelError):
    """Entity with the given id does not exist."""

    code: str = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")


# Store / infrastructure


class StoreError(PayrollKernelError):
    """Base exception for document store failures."""

    code: str = "STORE_ERROR"


class DocumentExistsError(StoreError):
    """A create-only write targeted a document that already exists."""

    code: str = "DOCUMENT_EXISTS"

    def __init__(self, collection: str, doc_id: str):
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(f"Document already exists: {collection}/{doc_id}")


class DocumentNotFoundError(StoreError):
    """An update-only write targeted a missing document."""

    code: str = "DOCUMENT_NOT_FOUND"

    def __init__(self, collection: str, doc_id: str):
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(f"Document not found: {collection}/{doc_id}")


class StoreUnavailableError(StoreError):
    """The underlying database failed; the batch was rolled back."""

    code: str = "STORE_UNAVAILABLE"

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Store {operation} failed: {reason}")


GENERIC_ERROR_MESSAGE = "An unexpected error occurred. Please try again."


def user_message(exc: BaseException) -> str:
    """Message suitable for showing to the user for ``exc``."""
    if isinstance(exc, PayrollKernelError) and not isinstance(exc, StoreError):
        return str(exc)
    return GENERIC_ERROR_MESSAGE
