"""
Typed Exception Hierarchy for the Stock Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Connectors are re-run over and over against user-edited tables. Most
problems they meet are row-level (a missing SKU, an unknown warehouse, a
counter that ran ahead of its source) and must be skipped, logged and
reported without stopping the run. A few are run-level (a missing column, a
lock that cannot be acquired) and must stop everything.

The split is made by TYPE, never by parsing messages:

    try:
        record = build_record(row)
    except ValidationError as e:      # row-level: skip and report
        summary.skip(row_key, e)
    # SchemaError / LockTimeoutError propagate to the runner

Every exception carries a ``code`` class attribute (machine-readable) and
keeps its context as attributes (not only inside the message).

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    StockKernelError (base)
    |
    +-- SchemaError                     required column missing (fatal)
    |
    +-- ValidationError                 one row is unusable (row skipped)
    |   +-- InvalidLedgerRecordError
    |   +-- UnresolvedWarehouseError
    |   +-- RowValidationError
    |
    +-- IntegrityError                  persisted state contradicts source
    |   +-- SyncIntegrityError          (row skipped, manual fix required)
    |
    +-- ConcurrencyError
    |   +-- LockTimeoutError            (run aborted, retryable)
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError  ledger rows are never changed
    |
    +-- ConfigurationError
    +-- UnknownConnectorError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                      | Handling
--------------|---------------------------|----------------------------------
Schema        | SCHEMA_ERROR              | Abort run, report to operator
Validation    | INVALID_LEDGER_RECORD     | Skip row, log, continue
              | UNRESOLVED_WAREHOUSE      | Skip row, log, continue
              | ROW_VALIDATION_ERROR      | Skip row, log, continue
Integrity     | NEGATIVE_SYNC_DELTA       | Skip row, log, never auto-repair
Concurrency   | LOCK_TIMEOUT              | Abort run, caller may retry
Immutability  | IMMUTABILITY_VIOLATION    | Programming error, abort
Configuration | CONFIGURATION_ERROR       | Abort at startup
Registry      | UNKNOWN_CONNECTOR         | Abort, bad invocation

A suppressed duplicate is NOT an error. It is the normal outcome of
re-running a connector and is reported as ``PostingOutcome.DUPLICATE``.

Note: ``ValidationError`` and ``IntegrityError`` here are unrelated to
``sqlalchemy.exc.IntegrityError``; import them from this module explicitly.
"""


class StockKernelError(Exception):
    """
    Base exception for all stock kernel errors.

    All subclasses define a ``code`` class attribute.
    """

    code: str = "STOCK_KERNEL_ERROR"


# Schema


class SchemaError(StockKernelError):
    """A table is missing columns that a component requires."""

    code: str = "SCHEMA_ERROR"

    def __init__(self, table: str, missing_columns: list[str]):
        self.table = table
        self.missing_columns = list(missing_columns)
        super().__init__(
            f"Table {table} is missing required column(s): "
            f"{', '.join(self.missing_columns)}"
        )


# Row validation


class ValidationError(StockKernelError):
    """Base exception for row-level validation failures."""

    code: str = "VALIDATION_ERROR"


class InvalidLedgerRecordError(ValidationError):
    """
    A movement record violates the ledger invariants.

    Raised when building the record, so nothing partial is ever written.
    """

    code: str = "INVALID_LEDGER_RECORD"

    def __init__(self, reason: str, sku: str = "", source_id: str = ""):
        self.reason = reason
        self.sku = sku
        self.source_id = source_id
        super().__init__(
            f"Invalid ledger record (sku={sku!r}, source_id={source_id!r}): {reason}"
        )


class UnresolvedWarehouseError(ValidationError):
    """No warehouse could be resolved for a movement."""

    code: str = "UNRESOLVED_WAREHOUSE"

    def __init__(self, sku: str, hint: str = ""):
        self.sku = sku
        self.hint = hint
        super().__init__(
            f"Cannot resolve warehouse for SKU {sku!r}"
            + (f" (hint: {hint!r})" if hint else "")
        )


class RowValidationError(ValidationError):
    """A source row could not be coerced into its table contract."""

    code: str = "ROW_VALIDATION_ERROR"

    def __init__(self, table: str, row_number: int, field: str, reason: str):
        self.table = table
        self.row_number = row_number
        self.field = field
        self.reason = reason
        super().__init__(f"{table} row {row_number}, {field}: {reason}")


# Integrity


class IntegrityError(StockKernelError):
    """Base exception for persisted state contradicting its source."""

    code: str = "INTEGRITY_ERROR"


class SyncIntegrityError(IntegrityError):
    """
    A persisted sync counter exceeds its cumulative source quantity.

    The requested quantity went down after it was already posted. The line
    needs a human correction; it is never repaired automatically.
    """

    code: str = "NEGATIVE_SYNC_DELTA"

    def __init__(self, line_id: str, qty, qty_synced):
        self.line_id = line_id
        self.qty = qty
        self.qty_synced = qty_synced
        super().__init__(
            f"Line {line_id}: qty {qty} is below qty synced {qty_synced}"
        )


# Concurrency


class ConcurrencyError(StockKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class LockTimeoutError(ConcurrencyError):
    """The ledger lock could not be acquired within the bounded wait."""

    code: str = "LOCK_TIMEOUT"

    def __init__(self, lock_name: str, timeout_seconds: float):
        self.lock_name = lock_name
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Could not acquire lock {lock_name} within {timeout_seconds}s"
        )


# Immutability


class ImmutabilityError(StockKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an appended ledger row."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify immutable {entity_type} {entity_id}: {reason}"
        )


# Configuration and registry


class ConfigurationError(StockKernelError):
    """The inventory configuration is missing or malformed."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Configuration error at {key!r}: {reason}")


class UnknownConnectorError(StockKernelError):
    """No connector is registered under the requested name."""

    code: str = "UNKNOWN_CONNECTOR"

    def __init__(self, name: str, available: list[str]):
        self.name = name
        self.available = list(available)
        super().__init__(
            f"Unknown connector {name!r}; available: {', '.join(self.available)}"
        )
