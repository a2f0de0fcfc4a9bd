"""
Connector protocol, run context and run summary.

Responsibility:
    Defines the explicit interface every reconciliation connector
    implements (``Connector``), the per-run dependencies handed to it
    (``SyncContext``) and the result it returns (``SyncSummary``).  Also
    holds the posting pipeline shared by all connectors: idempotency
    filter, then append through the ledger store.

Architecture position:
    Services > connectors.  SyncRunner builds the context under the ledger
    lock; connectors never open sessions, commit, or take locks themselves.

Invariants enforced:
    - Row-level failures (ValidationError, IntegrityError) become
      ``SkippedRow`` entries and never abort the run.
    - A suppressed duplicate is an outcome, not an error.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol, runtime_checkable

from sqlalchemy.orm import Session

from stock_config.schema import InventoryConfig
from stock_engines.valuation import SnapshotView
from stock_engines.warehouse import WarehouseResolver
from stock_kernel.domain.clock import Clock
from stock_kernel.domain.ledger_record import LedgerRecord
from stock_kernel.exceptions import StockKernelError
from stock_kernel.logging_config import get_logger
from stock_kernel.utils.idempotency import KeyStrategy
from stock_services.idempotency import IdempotencyIndex
from stock_services.ledger_store import LedgerStore
from stock_services.snapshot_service import SnapshotService

logger = get_logger("services.connectors")


class PostingOutcome(str, Enum):
    """What happened to one candidate movement."""

    POSTED = "POSTED"
    DUPLICATE = "DUPLICATE_SUPPRESSED"


@dataclass(frozen=True)
class SkippedRow:
    """A source row that was not posted, with the reason."""

    row_key: str
    code: str
    message: str


@dataclass(frozen=True)
class SyncSummary:
    """Result of one connector run."""

    connector: str
    candidates: int = 0
    posted: int = 0
    duplicates: int = 0
    unchanged: int = 0
    ineligible: int = 0
    skipped: tuple[SkippedRow, ...] = ()

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)

    def as_dict(self) -> dict:
        return {
            "connector": self.connector,
            "candidates": self.candidates,
            "posted": self.posted,
            "duplicates": self.duplicates,
            "unchanged": self.unchanged,
            "ineligible": self.ineligible,
            "skipped": self.skipped_count,
        }


@dataclass
class SummaryBuilder:
    """Mutable counters collected during a run; ``build()`` freezes them."""

    connector: str
    candidates: int = 0
    posted: int = 0
    duplicates: int = 0
    unchanged: int = 0
    ineligible: int = 0
    skipped: list[SkippedRow] = field(default_factory=list)

    def skip(self, row_key: str, error: StockKernelError) -> None:
        """Record a row-level failure and log it with its structured fields."""
        self.skipped.append(SkippedRow(row_key, error.code, str(error)))
        logger.warning(
            "row_skipped",
            extra={"row_key": row_key, "error_code": error.code, "reason": str(error)},
        )

    def build(self) -> SyncSummary:
        return SyncSummary(
            connector=self.connector,
            candidates=self.candidates,
            posted=self.posted,
            duplicates=self.duplicates,
            unchanged=self.unchanged,
            ineligible=self.ineligible,
            skipped=tuple(self.skipped),
        )


IndexFactory = Callable[[str, tuple[KeyStrategy, ...]], IdempotencyIndex]


@dataclass
class SyncContext:
    """
    Everything a connector needs for one run.

    ``snapshots`` is projected from the ledger when the context is created,
    i.e. after the lock is taken and before anything is appended.
    """

    session: Session
    config: InventoryConfig
    clock: Clock
    run_id: str
    store: LedgerStore
    snapshots: SnapshotView
    resolver: WarehouseResolver
    index_factory: IndexFactory

    @classmethod
    def create(
        cls,
        session: Session,
        config: InventoryConfig,
        clock: Clock,
        run_id: str,
    ) -> SyncContext:
        store = LedgerStore(session, config.ledger.write_chunk_size)
        return cls(
            session=session,
            config=config,
            clock=clock,
            run_id=run_id,
            store=store,
            snapshots=SnapshotService(session, config).load_view(),
            resolver=WarehouseResolver(config),
            index_factory=lambda source_type, strategies: IdempotencyIndex.load(
                store, source_type, strategies
            ),
        )

    def new_index(
        self, source_type: str, strategies: tuple[KeyStrategy, ...]
    ) -> IdempotencyIndex:
        return self.index_factory(source_type, strategies)

    def post(
        self,
        records: Sequence[LedgerRecord],
        index: IdempotencyIndex,
        summary: SummaryBuilder,
    ) -> list[PostingOutcome]:
        """
        Filter candidates through the index, append the survivors.

        Returns:
            One outcome per input record, in input order.
        """
        outcomes: list[PostingOutcome | None] = []
        accepted: list[LedgerRecord] = []
        for record in records:
            summary.candidates += 1
            strategy = index.matching_strategy(record)
            if strategy is not None:
                outcomes.append(PostingOutcome.DUPLICATE)
                logger.info(
                    "duplicate_suppressed",
                    extra={
                        "txn_id": record.txn_id,
                        "source_id": record.source_id,
                        "strategy": strategy,
                    },
                )
                continue
            index.mark(record)
            accepted.append(record)
            outcomes.append(None)

        result = self.store.append(accepted)
        stored_duplicates = {r.txn_id for r in result.duplicates}
        summary.posted += result.appended_count
        summary.duplicates += len(records) - len(accepted) + len(result.duplicates)

        final: list[PostingOutcome] = []
        for record, outcome in zip(records, outcomes):
            if outcome is None:
                outcome = (
                    PostingOutcome.DUPLICATE
                    if record.txn_id in stored_duplicates
                    else PostingOutcome.POSTED
                )
            final.append(outcome)
        return final


@runtime_checkable
class Connector(Protocol):
    """A reconciliation connector: posts one upstream table to the ledger."""

    name: str

    @property
    def source_type(self) -> str: ...

    def sync(self, ctx: SyncContext) -> SyncSummary: ...
