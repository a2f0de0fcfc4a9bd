"""
LedgerLock -- single-writer mutual exclusion for the inventory ledger.

Responsibility:
    Serializes every read-then-write sequence against the ledger (connector
    runs, legacy imports, snapshot rebuilds) across processes and threads.

Architecture position:
    Services -- infrastructure.  Acquired by SyncRunner around the whole
    run and by the import service around ledger imports.

Mechanism:
    - PostgreSQL: a session-level advisory lock polled with
      ``pg_try_advisory_lock`` on a dedicated AUTOCOMMIT connection.  The
      lock dies with the connection, so a crashed writer never leaves it
      held.  The key is derived from the lock name.
    - Other dialects (SQLite for tests and single-machine use): a
      process-wide ``threading.Lock`` per lock name, acquired with the same
      bounded wait.

Failure modes:
    - LockTimeoutError after ``timeout_seconds`` without acquiring.  Nothing
      has been read or written at that point, so the caller may retry.
"""

from __future__ import annotations

import hashlib
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine

from stock_config.schema import LedgerSettings
from stock_kernel.db.engine import is_postgres
from stock_kernel.exceptions import LockTimeoutError
from stock_kernel.logging_config import get_logger

logger = get_logger("services.lock")

_local_locks: dict[str, threading.Lock] = {}
_local_locks_guard = threading.Lock()


def _local_lock(name: str) -> threading.Lock:
    with _local_locks_guard:
        lock = _local_locks.get(name)
        if lock is None:
            lock = threading.Lock()
            _local_locks[name] = lock
        return lock


def advisory_key(name: str) -> int:
    """Signed 64-bit advisory lock key for a lock name (stable across runs)."""
    digest = hashlib.sha256(name.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big", signed=True)


class LedgerLock:
    """
    Named ledger write lock with a bounded wait.

    Not reentrant: acquiring a lock this instance already holds raises
    RuntimeError.

    Usage:
        lock = LedgerLock(engine, "INV_LEDGER_WRITE", timeout_seconds=25)
        with lock.hold():
            ...  # read ledger, append, commit
    """

    def __init__(
        self,
        engine: Engine,
        name: str,
        timeout_seconds: float = 25.0,
        poll_interval: float = 0.2,
    ):
        self._engine = engine
        self.name = name
        self.timeout_seconds = timeout_seconds
        self.poll_interval = poll_interval
        self._use_advisory = is_postgres(engine)
        self._connection: Connection | None = None
        self._held = False

    @classmethod
    def from_settings(cls, engine: Engine, settings: LedgerSettings) -> LedgerLock:
        return cls(
            engine,
            settings.lock_name,
            timeout_seconds=settings.lock_timeout_seconds,
            poll_interval=settings.lock_poll_interval_seconds,
        )

    @property
    def held(self) -> bool:
        return self._held

    def acquire(self) -> None:
        """
        Block until the lock is held or the timeout expires.

        Raises:
            LockTimeoutError: if the lock is not acquired in time.
        """
        if self._held:
            raise RuntimeError(f"lock {self.name} is already held by this instance")
        started = time.monotonic()
        if self._use_advisory:
            acquired = self._acquire_advisory(started)
        else:
            acquired = _local_lock(self.name).acquire(timeout=self.timeout_seconds)

        waited = round(time.monotonic() - started, 3)
        if not acquired:
            logger.warning(
                "lock_timeout",
                extra={"lock_name": self.name, "waited_seconds": waited},
            )
            raise LockTimeoutError(self.name, self.timeout_seconds)
        self._held = True
        logger.info(
            "lock_acquired",
            extra={"lock_name": self.name, "waited_seconds": waited},
        )

    def _acquire_advisory(self, started: float) -> bool:
        key = advisory_key(self.name)
        conn = self._engine.connect().execution_options(isolation_level="AUTOCOMMIT")
        try:
            while True:
                got = conn.execute(
                    text("SELECT pg_try_advisory_lock(:key)"), {"key": key}
                ).scalar()
                if got:
                    self._connection = conn
                    return True
                if time.monotonic() - started >= self.timeout_seconds:
                    conn.close()
                    return False
                time.sleep(self.poll_interval)
        except Exception:
            conn.close()
            raise

    def release(self) -> None:
        """Release the lock.  Releasing a lock that is not held is a no-op."""
        if not self._held:
            return
        self._held = False
        if self._use_advisory:
            conn, self._connection = self._connection, None
            if conn is not None:
                try:
                    conn.execute(
                        text("SELECT pg_advisory_unlock(:key)"),
                        {"key": advisory_key(self.name)},
                    )
                finally:
                    conn.close()
        else:
            _local_lock(self.name).release()
        logger.info("lock_released", extra={"lock_name": self.name})

    @contextmanager
    def hold(self) -> Iterator[LedgerLock]:
        """Context manager: acquire on entry, release on exit (even on error)."""
        self.acquire()
        try:
            yield self
        finally:
            self.release()
