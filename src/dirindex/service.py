"""Scan lifecycle: at most one active scan and the current directory."""

from __future__ import annotations

import abc
import concurrent.futures
import os
import threading
from pathlib import Path

from dirindex.config.models import ScanSettings
from dirindex.dispatch import Dispatcher
from dirindex.fs.scan_task import Lister, ScanEvent, ScanOutcome, ScanState, ScanTask, ScanTarget, list_directory
from dirindex.observable import Observable
from dirindex.runtime_logging import get_runtime_logger

ScanFuture = concurrent.futures.Future[ScanOutcome]


class UpdateService(abc.ABC):
    """What the model needs from whatever keeps its collection up to date."""

    search_path: Observable[Path]
    state: Observable[ScanState]
    progress: Observable[float]
    duration: Observable[float]
    outcome: Observable[ScanOutcome | None]

    @abc.abstractmethod
    def start(self, directory: Path | None = None) -> ScanFuture | None:
        """Scan ``directory`` (or the current one) unless a scan is active."""

    @abc.abstractmethod
    def restart(self, directory: Path) -> ScanFuture:
        """Supersede any active scan with a scan of ``directory``."""

    @abc.abstractmethod
    def wait(self, timeout: float | None = None) -> ScanOutcome | None:
        """Block until the most recent scan terminates."""

    def refresh(self) -> ScanFuture:
        return self.restart(self.search_path.get())

    @property
    @abc.abstractmethod
    def is_running(self) -> bool: ...

    @abc.abstractmethod
    def close(self) -> None: ...


class FileUpdateService(UpdateService):
    """Runs ``ScanTask``s on a single background worker.

    The worker is the serialization point: a restart cancels the active task
    and queues the next one behind it, so the new scan only starts once the
    old one has reached its terminal state, and its clear is dispatched after
    the old scan's last flush.
    """

    def __init__(
        self,
        start_folder: Path,
        paths: ScanTarget,
        dispatcher: Dispatcher,
        *,
        settings: ScanSettings | None = None,
        lister: Lister = list_directory,
    ) -> None:
        self._paths = paths
        self._dispatcher = dispatcher
        self._settings = settings or ScanSettings()
        self._lister = lister
        self._lock = threading.Lock()
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="dirindex-scan"
        )
        self._task: ScanTask | None = None
        self._future: ScanFuture | None = None
        self._generation = 0
        self._closed = False
        self._logger = get_runtime_logger()

        self.search_path = Observable(_normalize(start_folder), name="search_path")
        self.state = Observable(ScanState.IDLE, name="state")
        self.progress = Observable(0.0, name="progress")
        self.duration = Observable(0.0, name="duration")
        self.outcome: Observable[ScanOutcome | None] = Observable(None, name="outcome")
        self.last_event: Observable[ScanEvent | None] = Observable(None, name="last_event")

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._future is not None and not self._future.done()

    @property
    def generation(self) -> int:
        return self._generation

    def start(self, directory: Path | None = None) -> ScanFuture | None:
        with self._lock:
            if self._future is not None and not self._future.done():
                self._logger.debug("service.start.ignored", active=str(self.search_path.get()))
                return None
            return self._launch(directory if directory is not None else self.search_path.get())

    def restart(self, directory: Path) -> ScanFuture:
        with self._lock:
            if self._task is not None and self._future is not None and not self._future.done():
                self._task.cancel()
                self._logger.info(
                    "service.restart.superseded",
                    previous=str(self._task.directory),
                    generation=self._task.generation,
                )
            return self._launch(directory)

    def wait(self, timeout: float | None = None) -> ScanOutcome | None:
        """Block until the most recent scan terminates."""
        future = self._future
        if future is None:
            return None
        return future.result(timeout=timeout)

    def close(self) -> None:
        with self._lock:
            self._closed = True
            if self._task is not None:
                self._task.cancel()
        self._executor.shutdown(wait=True)
        self._logger.debug("service.closed")

    def _launch(self, directory: Path) -> ScanFuture:
        if self._closed:
            raise RuntimeError("update service is closed")
        target = _normalize(directory)
        self._generation += 1
        self.search_path.set(target)
        task = ScanTask(
            target,
            self._paths,
            self._dispatcher,
            listener=self._on_event,
            lister=self._lister,
            batch_steps=self._settings.batch_steps,
            min_batch=self._settings.min_batch,
            progress_divisions=self._settings.progress_divisions,
            generation=self._generation,
        )
        self._task = task
        self._future = self._executor.submit(task.run)
        self._logger.info("service.scan.submitted", directory=str(target), generation=self._generation)
        return self._future

    def _on_event(self, event: ScanEvent) -> None:
        self.last_event.set(event)
        self.state.set(event.phase)
        self.progress.set(event.fraction)
        if event.outcome is not None:
            self.duration.set(event.outcome.duration)
            self.outcome.set(event.outcome)


def _normalize(directory: Path | str) -> Path:
    return Path(os.path.abspath(os.path.expanduser(directory)))
