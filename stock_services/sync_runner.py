"""
SyncRunner -- runs connectors under the ledger lock, one transaction each.

Responsibility:
    For one connector run:

        acquire ledger lock
          open transaction
            build SyncContext (ledger scan, snapshot view)
            connector.sync(ctx)      candidates, idempotency, append,
                                     qty_synced write-back
            rebuild all snapshots
          commit
        release lock

    The lock is released only after the commit, so a second writer never
    reads a ledger that is missing the first writer's rows.

Architecture position:
    Services -- the outermost orchestration used by the CLI and tests.

Failure modes:
    - LockTimeoutError: nothing was read or written; retryable.  It is
      recorded in the error log like any other whole-run failure.
    - Any other whole-run error: the transaction is rolled back, an
      ErrorLogEntry is written in a separate transaction, and the error is
      re-raised.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from stock_config.schema import InventoryConfig
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.logging_config import LogContext, get_logger
from stock_services.connectors import RUN_ORDER, build_connector
from stock_services.connectors.base import SyncContext, SyncSummary
from stock_services.error_log import ErrorLogRecorder
from stock_services.lock_service import LedgerLock
from stock_services.snapshot_service import SnapshotService

logger = get_logger("services.sync_runner")


@dataclass(frozen=True)
class RunResult:
    run_id: str
    summaries: tuple[SyncSummary, ...]
    snapshot_rows: dict[str, int]


class SyncRunner:
    """
    Runs reconciliation connectors.

    Contract:
        Each connector run is atomic: ledger rows, qty_synced updates and
        snapshot rows are committed together or not at all.
    """

    def __init__(
        self,
        engine: Engine,
        session_factory: sessionmaker[Session],
        config: InventoryConfig,
        clock: Clock | None = None,
    ):
        self._engine = engine
        self._session_factory = session_factory
        self._config = config
        self._clock = clock or SystemClock()
        self._errors = ErrorLogRecorder(session_factory, self._clock)

    def _lock(self) -> LedgerLock:
        return LedgerLock.from_settings(self._engine, self._config.ledger)

    def run(self, name: str, run_id: str | None = None) -> RunResult:
        """
        Run one connector then rebuild snapshots.

        Raises:
            UnknownConnectorError: if ``name`` is not registered.
            LockTimeoutError: if the ledger lock is not acquired in time.
        """
        connector = build_connector(name, self._config)
        run_id = run_id or uuid.uuid4().hex[:12]
        with LogContext.bind(
            run_id=run_id, connector=connector.name, source_type=connector.source_type
        ):
            logger.info("sync_started")
            try:
                with self._lock().hold():
                    session = self._session_factory()
                    try:
                        ctx = SyncContext.create(session, self._config, self._clock, run_id)
                        summary = connector.sync(ctx)
                        rebuilt = SnapshotService(session, self._config).rebuild_all()
                        session.commit()
                    except Exception:
                        session.rollback()
                        raise
                    finally:
                        session.close()
            except Exception as exc:
                logger.exception("sync_failed")
                self._errors.record(
                    f"sync:{connector.name}",
                    exc,
                    {"run_id": run_id, "connector": connector.name},
                )
                raise

            logger.info(
                "sync_completed",
                extra={**summary.as_dict(), "snapshot_rows": rebuilt},
            )
            return RunResult(run_id, (summary,), rebuilt)

    def run_many(self, names: Iterable[str] | None = None) -> list[RunResult]:
        """Run several connectors in order (default: all, in RUN_ORDER)."""
        return [self.run(name) for name in (names or RUN_ORDER)]

    def rebuild_snapshots(self) -> dict[str, int]:
        """Rebuild every snapshot group under the lock, in its own transaction."""
        with self._lock().hold():
            session = self._session_factory()
            try:
                rebuilt = SnapshotService(session, self._config).rebuild_all()
                session.commit()
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()
        return rebuilt
