"""
LedgerStore -- append-only persistence of stock movements.

Responsibility:
    Appends validated LedgerRecords as LedgerEntry rows in insertion order and
    reads them back.  The store is the only writer of the ledger table.

Architecture position:
    Services -- imperative shell.  Called by the connectors (through
    SyncContext) and by the legacy ledger import.

Invariants enforced:
    - Append only: rows are never updated or deleted (ORM listeners in
      stock_kernel.db.immutability reject both).
    - txn_id uniqueness: a record whose txn_id is already stored, or already
      appended earlier in the same batch, is dropped and reported as a
      duplicate.  This is the last safety net under the connectors' own
      idempotency checks.
    - ``sequence`` is max(sequence) + 1 per row.  This is only safe because
      every caller appends while holding the ledger write lock; the unique
      constraint on ``sequence`` turns a missing lock into a hard failure.
    - Writes are flushed in chunks of ``write_chunk_size`` rows.

Non-goals:
    - Does NOT commit.  The caller's transaction (SyncRunner, import
      service) decides when the rows become visible.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from stock_kernel.domain.ledger_record import ZERO, LedgerRecord
from stock_kernel.logging_config import get_logger
from stock_kernel.models.ledger import LedgerEntry

logger = get_logger("services.ledger")

# Bound on the size of IN (...) lookups of txn ids
_LOOKUP_BATCH = 500


@dataclass(frozen=True)
class AppendResult:
    """Outcome of one append call."""

    appended: tuple[LedgerRecord, ...]
    duplicates: tuple[LedgerRecord, ...]
    first_sequence: int | None = None
    last_sequence: int | None = None

    @property
    def appended_count(self) -> int:
        return len(self.appended)


class LedgerStore:
    """
    Append and read the inventory ledger.

    Contract:
        ``append`` returns which records were written and which were dropped
        as duplicates; it never raises for a duplicate.
    """

    def __init__(self, session: Session, write_chunk_size: int = 500):
        self._session = session
        self._chunk_size = max(1, int(write_chunk_size))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def scan(self, source_type: str | None = None) -> list[LedgerEntry]:
        """All ledger rows in insertion order, optionally for one source type."""
        stmt = select(LedgerEntry).order_by(LedgerEntry.sequence)
        if source_type is not None:
            stmt = stmt.where(LedgerEntry.source_type == source_type)
        return list(self._session.scalars(stmt))

    def iter_entries(self) -> Iterator[LedgerEntry]:
        """Stream all rows in insertion order."""
        stmt = select(LedgerEntry).order_by(LedgerEntry.sequence)
        yield from self._session.scalars(stmt.execution_options(yield_per=1000))

    def count(self) -> int:
        return self._session.scalar(select(func.count()).select_from(LedgerEntry)) or 0

    def last_sequence(self) -> int:
        return self._session.scalar(select(func.max(LedgerEntry.sequence))) or 0

    def existing_txn_ids(self, txn_ids: Iterable[str]) -> set[str]:
        """Subset of ``txn_ids`` already stored."""
        wanted = sorted({t for t in txn_ids if t})
        found: set[str] = set()
        for start in range(0, len(wanted), _LOOKUP_BATCH):
            batch = wanted[start : start + _LOOKUP_BATCH]
            found.update(
                self._session.scalars(
                    select(LedgerEntry.txn_id).where(LedgerEntry.txn_id.in_(batch))
                )
            )
        return found

    def posted_qty_out(self, source_type: str) -> dict[tuple[str, str, str], Decimal]:
        """
        Sum of qty_out per (source_id, sku, warehouse) for one source type.

        Used by connectors that post remainders against a cumulative total.
        """
        stmt = (
            select(
                LedgerEntry.source_id,
                LedgerEntry.sku,
                LedgerEntry.warehouse,
                func.sum(LedgerEntry.qty_out),
            )
            .where(LedgerEntry.source_type == source_type)
            .group_by(LedgerEntry.source_id, LedgerEntry.sku, LedgerEntry.warehouse)
        )
        totals: dict[tuple[str, str, str], Decimal] = {}
        for source_id, sku, warehouse, qty in self._session.execute(stmt):
            totals[(source_id, sku, warehouse)] = Decimal(qty or ZERO)
        return totals

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def append(self, records: Sequence[LedgerRecord]) -> AppendResult:
        """
        Append records in order, dropping txn_id duplicates.

        Preconditions:
            The caller holds the ledger write lock.

        Postconditions:
            Appended rows are flushed (not committed) with consecutive
            sequence numbers following the current maximum.
        """
        if not records:
            return AppendResult((), ())

        stored = self.existing_txn_ids(r.txn_id for r in records)
        accepted: list[LedgerRecord] = []
        duplicates: list[LedgerRecord] = []
        batch_ids: set[str] = set()
        for record in records:
            if record.txn_id in stored or record.txn_id in batch_ids:
                duplicates.append(record)
                logger.info(
                    "duplicate_suppressed",
                    extra={
                        "txn_id": record.txn_id,
                        "source_id": record.source_id,
                        "layer": "store",
                    },
                )
                continue
            batch_ids.add(record.txn_id)
            accepted.append(record)

        if not accepted:
            return AppendResult((), tuple(duplicates))

        first = self.last_sequence() + 1
        sequence = first
        for start in range(0, len(accepted), self._chunk_size):
            chunk = accepted[start : start + self._chunk_size]
            for record in chunk:
                self._session.add(LedgerEntry.from_record(record, sequence))
                sequence += 1
            self._session.flush()
            logger.debug(
                "ledger_chunk_flushed",
                extra={"rows": len(chunk), "last_sequence": sequence - 1},
            )

        logger.info(
            "ledger_appended",
            extra={
                "appended": len(accepted),
                "duplicates": len(duplicates),
                "first_sequence": first,
                "last_sequence": sequence - 1,
            },
        )
        return AppendResult(tuple(accepted), tuple(duplicates), first, sequence - 1)
