"""
IdempotencyIndex -- "was this movement already posted?" for one source type.

Responsibility:
    Builds one key set per KeyStrategy from a single ledger scan, answers
    membership for candidate records in O(1), and tracks which input rows
    were already processed in the current run.

Architecture position:
    Services -- reads the ledger through LedgerStore; pure in-memory after
    ``load``.

Invariants enforced:
    - A candidate counts as posted when ANY strategy finds its key.
    - Keys of accepted candidates are added with ``mark`` so two candidates
      with the same content in one run post once.
    - ``first_sighting`` is per run; a fresh index starts with an empty set.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from stock_kernel.domain.ledger_record import LedgerRecord
from stock_kernel.logging_config import get_logger
from stock_kernel.utils.idempotency import KeyStrategy

logger = get_logger("services.idempotency")


@dataclass
class IdempotencyIndex:
    """Key sets per strategy plus the run-scoped seen set."""

    source_type: str
    strategies: tuple[KeyStrategy, ...]
    _keys: dict[str, set[str]] = field(default_factory=dict, repr=False)
    _seen: set[str] = field(default_factory=set, repr=False)

    def __post_init__(self) -> None:
        for strategy in self.strategies:
            self._keys.setdefault(strategy.name, set())

    @classmethod
    def from_entries(
        cls,
        entries: Iterable[Any],
        source_type: str,
        strategies: tuple[KeyStrategy, ...],
    ) -> IdempotencyIndex:
        """Build the index from already-loaded ledger rows."""
        index = cls(source_type, strategies)
        rows = 0
        for entry in entries:
            if entry.source_type != source_type:
                continue
            rows += 1
            for strategy in strategies:
                key = strategy.ledger_key(entry)
                if key:
                    index._keys[strategy.name].add(key)
        logger.debug(
            "idempotency_index_loaded",
            extra={
                "source_type": source_type,
                "ledger_rows": rows,
                "keys": {name: len(keys) for name, keys in index._keys.items()},
            },
        )
        return index

    @classmethod
    def load(
        cls,
        store: Any,
        source_type: str,
        strategies: tuple[KeyStrategy, ...],
    ) -> IdempotencyIndex:
        """One ledger scan filtered to ``source_type``."""
        return cls.from_entries(store.scan(source_type), source_type, strategies)

    def matching_strategy(self, record: LedgerRecord) -> str | None:
        """Name of the first strategy that finds the record, else None."""
        for strategy in self.strategies:
            key = strategy.candidate_key(record)
            if key and key in self._keys[strategy.name]:
                return strategy.name
        return None

    def is_posted(self, record: LedgerRecord) -> bool:
        return self.matching_strategy(record) is not None

    def mark(self, record: LedgerRecord) -> None:
        """Record an accepted candidate so later duplicates in the run match."""
        for strategy in self.strategies:
            key = strategy.candidate_key(record)
            if key:
                self._keys[strategy.name].add(key)

    def first_sighting(self, row_key: str) -> bool:
        """True the first time ``row_key`` is seen in this run."""
        if row_key in self._seen:
            return False
        self._seen.add(row_key)
        return True
