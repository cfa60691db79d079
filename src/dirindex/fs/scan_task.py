"""One cancellable, non-recursive enumeration of a directory.

A ``ScanTask`` is the unit of background work. It runs once, off the
designated thread, and moves through ``IDLE -> RUNNING -> {SUCCEEDED,
CANCELLED, FAILED}``. Everything it makes observable (the clear, bulk
appends, progress and the terminal event) is marshaled through the
dispatcher, so the shared collection only ever changes on the designated
thread.
"""

from __future__ import annotations

import enum
import os
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Protocol, Sequence

from dirindex.dispatch import Dispatcher
from dirindex.fs.indexed_path import IndexedPath
from dirindex.fs.refresh_buffer import DEFAULT_BATCH_STEPS, DEFAULT_MIN_BATCH, BatchTarget, RefreshBuffer
from dirindex.runtime_logging import get_runtime_logger

DEFAULT_PROGRESS_DIVISIONS = 200


class ScanState(str, enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (ScanState.SUCCEEDED, ScanState.CANCELLED, ScanState.FAILED)


class DirectoryUnavailable(Exception):
    """The directory vanished, is not accessible or could not be listed."""

    def __init__(self, directory: Path, cause: BaseException | None = None) -> None:
        self.directory = directory
        self.cause = cause
        reason = f": {cause}" if cause is not None else ""
        super().__init__(f"Cannot list directory {directory}{reason}")


class ScanTaskError(RuntimeError):
    pass


class CancellationToken:
    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass(frozen=True, slots=True)
class ScanOutcome:
    state: ScanState
    directory: Path
    accepted: int
    total: int
    duration: float
    error: BaseException | None = None


@dataclass(frozen=True, slots=True)
class ScanEvent:
    phase: ScanState
    progress: int
    total: int
    duration: float | None = None
    outcome: ScanOutcome | None = None

    @property
    def fraction(self) -> float:
        if self.total <= 0:
            return 1.0 if self.phase.terminal else 0.0
        return self.progress / self.total


class DirEntryLike(Protocol):
    @property
    def path(self) -> str: ...

    def is_file(self) -> bool: ...


class ScanTarget(BatchTarget, Protocol):
    def clear(self) -> None: ...


Lister = Callable[[Path], Sequence[DirEntryLike]]
EventListener = Callable[[ScanEvent], None]


def list_directory(directory: Path) -> list[os.DirEntry[str]]:
    with os.scandir(directory) as entries:
        return list(entries)


def progress_interval(total: int, divisions: int = DEFAULT_PROGRESS_DIVISIONS) -> int:
    return max(1, total // max(1, divisions))


class ScanTask:
    def __init__(
        self,
        directory: Path,
        collection: ScanTarget,
        dispatcher: Dispatcher,
        *,
        token: CancellationToken | None = None,
        listener: EventListener | None = None,
        lister: Lister = list_directory,
        batch_steps: Sequence[tuple[int, int]] = DEFAULT_BATCH_STEPS,
        min_batch: int = DEFAULT_MIN_BATCH,
        progress_divisions: int = DEFAULT_PROGRESS_DIVISIONS,
        generation: int = 0,
    ) -> None:
        self.directory = Path(os.path.abspath(directory))
        self.collection = collection
        self.dispatcher = dispatcher
        self.token = token or CancellationToken()
        self.listener = listener
        self.lister = lister
        self.batch_steps = batch_steps
        self.min_batch = min_batch
        self.progress_divisions = progress_divisions
        self.generation = generation
        self.flush_count = 0
        self._state = ScanState.IDLE
        self._logger = get_runtime_logger().bind(directory=str(self.directory), generation=generation)

    @property
    def state(self) -> ScanState:
        return self._state

    def cancel(self) -> None:
        self.token.cancel()

    def run(self) -> ScanOutcome:
        """Enumerate the directory; never raises for scan-time errors."""
        if self._state is not ScanState.IDLE:
            raise ScanTaskError(f"Scan of {self.directory} already ran ({self._state.value})")

        started = time.monotonic()
        if self.token.cancelled:
            return self._finish(ScanState.CANCELLED, 0, 0, started)

        self._state = ScanState.RUNNING
        self.dispatcher.post(self.collection.clear)
        self._emit(ScanEvent(ScanState.RUNNING, 0, 0))
        self._logger.info("scan.running")

        try:
            entries = self.lister(self.directory)
        except OSError as exc:
            return self._finish(ScanState.FAILED, 0, 0, started, DirectoryUnavailable(self.directory, exc))

        total = len(entries)
        self._emit(ScanEvent(ScanState.RUNNING, 0, total))
        interval = progress_interval(total, self.progress_divisions)
        buffer = RefreshBuffer.for_total(
            total, self.collection, self.dispatcher, self.batch_steps, self.min_batch
        )
        self._logger.debug("scan.listed", total=total, batch_size=buffer.capacity)

        accepted = 0
        state = ScanState.SUCCEEDED
        error: BaseException | None = None
        try:
            for position, entry in enumerate(entries):
                if self.token.cancelled:
                    self._emit(ScanEvent(ScanState.RUNNING, position, total))
                    state = ScanState.CANCELLED
                    break
                if position % interval == 0:
                    self._emit(ScanEvent(ScanState.RUNNING, position + 1, total))
                if entry.is_file():
                    buffer.update(IndexedPath(accepted, Path(entry.path)))
                    accepted += 1
        except OSError as exc:
            state = ScanState.FAILED
            error = DirectoryUnavailable(self.directory, exc)
        except Exception as exc:
            state = ScanState.FAILED
            error = exc
        finally:
            buffer.flush()
            self.flush_count = buffer.flush_count

        return self._finish(state, accepted, total, started, error)

    def _finish(
        self,
        state: ScanState,
        accepted: int,
        total: int,
        started: float,
        error: BaseException | None = None,
    ) -> ScanOutcome:
        duration = time.monotonic() - started
        outcome = ScanOutcome(
            state=state,
            directory=self.directory,
            accepted=accepted,
            total=total,
            duration=duration,
            error=error,
        )
        self._state = state
        if state is ScanState.SUCCEEDED:
            self._logger.info("scan.succeeded", files=accepted, entries=total, duration_s=round(duration, 3))
        elif state is ScanState.CANCELLED:
            self._logger.info("scan.cancelled", files=accepted, duration_s=round(duration, 3))
        else:
            self._logger.warning(
                "scan.failed",
                files=accepted,
                duration_s=round(duration, 3),
                error=str(error),
                error_type=type(error).__name__,
            )
        # The terminal event doubles as the final 100% progress update.
        self._emit(ScanEvent(state, total, total, duration, outcome))
        return outcome

    def _emit(self, event: ScanEvent) -> None:
        if self.listener is not None:
            self.dispatcher.post(self.listener, event)
