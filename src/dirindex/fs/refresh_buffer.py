"""Batching buffer between a scan worker and the shared path collection."""

from __future__ import annotations

from typing import Protocol, Sequence

from dirindex.dispatch import Dispatcher
from dirindex.fs.indexed_path import IndexedPath

# (exclusive lower bound on the entry count, batch size), largest first.
DEFAULT_BATCH_STEPS: tuple[tuple[int, int], ...] = (
    (100_000, 500),
    (50_000, 200),
    (15_000, 100),
    (5_000, 50),
    (1_000, 20),
)
DEFAULT_MIN_BATCH = 10


def batch_size_for(
    total: int,
    steps: Sequence[tuple[int, int]] = DEFAULT_BATCH_STEPS,
    minimum: int = DEFAULT_MIN_BATCH,
) -> int:
    for threshold, size in steps:
        if total > threshold:
            return size
    return minimum


class BatchTarget(Protocol):
    def extend(self, entries: Sequence[IndexedPath]) -> None: ...


class RefreshBuffer:
    """Collects accepted entries and hands them over in bulk.

    Owned by exactly one scan; only ``flush`` crosses onto the designated
    thread, as a single ``extend`` per batch.
    """

    def __init__(self, target: BatchTarget, dispatcher: Dispatcher, capacity: int) -> None:
        self.target = target
        self.dispatcher = dispatcher
        self.capacity = max(1, capacity)
        self.flush_count = 0
        self._pending: list[IndexedPath] = []

    @classmethod
    def for_total(
        cls,
        total: int,
        target: BatchTarget,
        dispatcher: Dispatcher,
        steps: Sequence[tuple[int, int]] = DEFAULT_BATCH_STEPS,
        minimum: int = DEFAULT_MIN_BATCH,
    ) -> RefreshBuffer:
        return cls(target, dispatcher, batch_size_for(total, steps, minimum))

    def __len__(self) -> int:
        return len(self._pending)

    def update(self, entry: IndexedPath) -> None:
        self._pending.append(entry)
        if len(self._pending) >= self.capacity:
            self.flush()

    def flush(self) -> None:
        if not self._pending:
            return
        batch = tuple(self._pending)
        self._pending = []
        self.flush_count += 1
        self.dispatcher.post(self.target.extend, batch)
