"""
ORM-Level Immutability Enforcement for the inventory ledger.

===============================================================================
WHY THIS EXISTS
===============================================================================

The ledger is append-only.  Snapshots, sales costing and the idempotency
engine all assume that a row, once appended, stays exactly as written:

  - txn ids are compared against stored rows to suppress duplicates, so an
    edited row would let the same movement post twice;
  - snapshots are rebuilt by replaying every row, so an edited row would
    silently rewrite history.

Corrections are new movements, never edits.

===============================================================================
HOW IT WORKS
===============================================================================

    session.flush()
         |
         v
    [before_update] --> _check_ledger_entry_update() --> ImmutabilityViolationError
    [before_delete] --> _check_ledger_entry_delete() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

Bulk ``update(LedgerEntry)`` / ``delete(LedgerEntry)`` statements skip the
mapper events, so a ``do_orm_execute`` session listener rejects them too.

===============================================================================
USAGE
===============================================================================

    from stock_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup (idempotent)
"""

from sqlalchemy import event
from sqlalchemy.orm import Session

from stock_kernel.exceptions import ImmutabilityViolationError
from stock_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _block(target_id: str, operation: str, reason: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "LedgerEntry",
            "entity_id": target_id,
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type="LedgerEntry",
        entity_id=target_id,
        reason=reason,
    )


def _check_ledger_entry_update(mapper, connection, target):
    """Prevent any update of an appended ledger row."""
    _block(target.txn_id, "UPDATE", "Ledger entries are immutable once appended")


def _check_ledger_entry_delete(mapper, connection, target):
    """Prevent deletion of an appended ledger row."""
    _block(target.txn_id, "DELETE", "Ledger entries cannot be deleted")


def _check_bulk_ledger_statements(orm_execute_state):
    """Reject ORM-enabled bulk UPDATE/DELETE aimed at the ledger table."""
    from stock_kernel.models.ledger import LedgerEntry

    if not (orm_execute_state.is_update or orm_execute_state.is_delete):
        return
    mapper = orm_execute_state.bind_mapper
    if mapper is None or mapper.class_ is not LedgerEntry:
        return
    operation = "BULK_UPDATE" if orm_execute_state.is_update else "BULK_DELETE"
    _block("*", operation, "Bulk statements against the ledger are not allowed")


def register_immutability_listeners() -> None:
    """Register the ledger immutability listeners (safe to call repeatedly)."""
    from stock_kernel.models.ledger import LedgerEntry

    if not event.contains(LedgerEntry, "before_update", _check_ledger_entry_update):
        event.listen(LedgerEntry, "before_update", _check_ledger_entry_update)
    if not event.contains(LedgerEntry, "before_delete", _check_ledger_entry_delete):
        event.listen(LedgerEntry, "before_delete", _check_ledger_entry_delete)
    if not event.contains(Session, "do_orm_execute", _check_bulk_ledger_statements):
        event.listen(Session, "do_orm_execute", _check_bulk_ledger_statements)
