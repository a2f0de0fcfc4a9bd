"""LedgerLock: bounded-wait single-writer lock."""

import threading
import time

import pytest

from stock_kernel.exceptions import LockTimeoutError
from stock_services.lock_service import LedgerLock, advisory_key


class TestAcquireRelease:
    def test_hold_and_release(self, db_engine):
        lock = LedgerLock(db_engine, "TEST_LOCK_A", timeout_seconds=1)
        with lock.hold():
            assert lock.held
        assert not lock.held

    def test_not_reentrant(self, db_engine):
        lock = LedgerLock(db_engine, "TEST_LOCK_B", timeout_seconds=1)
        with lock.hold():
            with pytest.raises(RuntimeError):
                lock.acquire()

    def test_release_when_not_held_is_noop(self, db_engine):
        lock = LedgerLock(db_engine, "TEST_LOCK_C")
        lock.release()
        assert not lock.held

    def test_released_after_error(self, db_engine):
        lock = LedgerLock(db_engine, "TEST_LOCK_D", timeout_seconds=0.1)
        with pytest.raises(ValueError):
            with lock.hold():
                raise ValueError("inside")
        with LedgerLock(db_engine, "TEST_LOCK_D", timeout_seconds=0.1).hold():
            pass

    def test_names_are_independent(self, db_engine):
        with LedgerLock(db_engine, "TEST_LOCK_E1", timeout_seconds=0.1).hold():
            with LedgerLock(db_engine, "TEST_LOCK_E2", timeout_seconds=0.1).hold():
                pass

    def test_from_settings(self, db_engine, config):
        lock = LedgerLock.from_settings(db_engine, config.ledger)
        assert lock.name == "INV_LEDGER_WRITE"
        assert lock.timeout_seconds == 25
        assert lock.poll_interval == pytest.approx(0.2)


@pytest.mark.slow_locks
class TestContention:
    def test_second_holder_times_out(self, db_engine):
        with LedgerLock(db_engine, "TEST_LOCK_F").hold():
            other = LedgerLock(db_engine, "TEST_LOCK_F", timeout_seconds=0.2)
            started = time.monotonic()
            with pytest.raises(LockTimeoutError) as exc_info:
                other.acquire()
            assert time.monotonic() - started >= 0.15
        assert exc_info.value.lock_name == "TEST_LOCK_F"
        assert not other.held

    def test_waiter_gets_lock_after_release(self, db_engine):
        first = LedgerLock(db_engine, "TEST_LOCK_G")
        first.acquire()
        acquired = threading.Event()

        def _wait():
            with LedgerLock(db_engine, "TEST_LOCK_G", timeout_seconds=5).hold():
                acquired.set()

        worker = threading.Thread(target=_wait)
        worker.start()
        time.sleep(0.1)
        assert not acquired.is_set()
        first.release()
        worker.join(timeout=5)
        assert acquired.is_set()


class TestAdvisoryKey:
    def test_stable(self):
        assert advisory_key("INV_LEDGER_WRITE") == advisory_key("INV_LEDGER_WRITE")

    def test_signed_64_bit(self):
        key = advisory_key("INV_LEDGER_WRITE")
        assert -(2**63) <= key < 2**63

    def test_names_differ(self):
        assert advisory_key("INV_LEDGER_WRITE") != advisory_key("OTHER")
