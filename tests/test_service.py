from __future__ import annotations

import tempfile
import threading
import unittest
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from dirindex.config.models import ScanSettings
from dirindex.dispatch import ImmediateDispatcher, ThreadDispatcher
from dirindex.fs.scan_task import ScanState
from dirindex.path_list import PathCollection
from dirindex.runtime_logging import configure_runtime_logging
from dirindex.service import FileUpdateService, UpdateService

TIMEOUT = 10


@dataclass
class FakeEntry:
    path: str
    on_check: Callable[[], None] | None = None

    def is_file(self) -> bool:
        if self.on_check is not None:
            self.on_check()
        return True


def listing_for(directory: Path, count: int) -> list[FakeEntry]:
    return [FakeEntry(str(directory / f"entry-{index}.bin")) for index in range(count)]


class FileUpdateServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        configure_runtime_logging(level="off")
        self.paths = PathCollection()
        self.tmp = tempfile.TemporaryDirectory()
        self.root = Path(self.tmp.name)
        self.first = self.root / "first"
        self.second = self.root / "second"
        self.first.mkdir()
        self.second.mkdir()

    def tearDown(self) -> None:
        self.tmp.cleanup()

    def _service(self, **kwargs) -> FileUpdateService:
        service = FileUpdateService(self.first, self.paths, ImmediateDispatcher(), **kwargs)
        self.addCleanup(service.close)
        return service

    def test_start_scans_the_start_folder(self) -> None:
        (self.first / "one.txt").write_text("1", encoding="utf-8")
        service = self._service()
        future = service.start()
        assert future is not None
        outcome = future.result(timeout=TIMEOUT)

        self.assertEqual(outcome.state, ScanState.SUCCEEDED)
        self.assertEqual(service.search_path.get(), self.first)
        self.assertEqual(service.state.get(), ScanState.SUCCEEDED)
        self.assertEqual(service.progress.get(), 1.0)
        self.assertIs(service.outcome.get(), outcome)
        self.assertEqual(service.duration.get(), outcome.duration)
        self.assertEqual([entry.name for entry in self.paths], ["one.txt"])

    def test_start_is_ignored_while_a_scan_is_active(self) -> None:
        gate = threading.Event()
        entered = threading.Event()

        def hold() -> None:
            entered.set()
            gate.wait(TIMEOUT)

        listing = listing_for(self.first, 3)
        listing[0].on_check = hold
        service = self._service(lister=lambda _: listing)

        first = service.start()
        self.assertTrue(entered.wait(TIMEOUT))
        self.assertTrue(service.is_running)
        self.assertIsNone(service.start(self.second))
        gate.set()

        assert first is not None
        self.assertEqual(first.result(timeout=TIMEOUT).state, ScanState.SUCCEEDED)
        self.assertEqual(service.search_path.get(), self.first)
        self.assertFalse(service.is_running)

    def test_restart_supersedes_the_active_scan(self) -> None:
        gate = threading.Event()
        entered = threading.Event()

        def hold() -> None:
            entered.set()
            gate.wait(TIMEOUT)

        listings = {
            self.first: listing_for(self.first, 1_000),
            self.second: listing_for(self.second, 3),
        }
        listings[self.first][3].on_check = hold
        service = self._service(lister=lambda directory: listings[directory])

        stale = service.start()
        self.assertTrue(entered.wait(TIMEOUT))
        fresh = service.restart(self.second)
        gate.set()

        assert stale is not None
        self.assertEqual(stale.result(timeout=TIMEOUT).state, ScanState.CANCELLED)
        outcome = fresh.result(timeout=TIMEOUT)

        self.assertEqual(outcome.state, ScanState.SUCCEEDED)
        self.assertEqual(service.search_path.get(), self.second)
        self.assertEqual(len(self.paths), 3)
        self.assertTrue(all(entry.path.parent == self.second for entry in self.paths))
        self.assertEqual(service.generation, 2)

    def test_refresh_rescans_the_current_directory(self) -> None:
        service = self._service()
        service.restart(self.second).result(timeout=TIMEOUT)
        self.assertEqual(len(self.paths), 0)

        (self.second / "new.txt").write_text("n", encoding="utf-8")
        outcome = service.refresh().result(timeout=TIMEOUT)

        self.assertEqual(outcome.directory, self.second)
        self.assertEqual([entry.name for entry in self.paths], ["new.txt"])

    def test_failed_scan_is_reported_not_raised(self) -> None:
        service = self._service()
        outcome = service.restart(self.root / "missing").result(timeout=TIMEOUT)

        self.assertEqual(outcome.state, ScanState.FAILED)
        self.assertEqual(service.state.get(), ScanState.FAILED)
        self.assertIsNotNone(service.outcome.get())

    def test_settings_control_batch_size(self) -> None:
        flushes: list[int] = []

        class Recorder(PathCollection):
            def extend(self, entries) -> None:  # type: ignore[override]
                flushes.append(len(tuple(entries)))

        service = FileUpdateService(
            self.first,
            Recorder(),
            ImmediateDispatcher(),
            settings=ScanSettings(batch_steps=[(5, 4)], min_batch=2),
            lister=lambda directory: listing_for(directory, 10),
        )
        self.addCleanup(service.close)
        service.start().result(timeout=TIMEOUT)

        self.assertEqual(flushes, [4, 4, 2])

    def test_wait_is_part_of_the_service_contract(self) -> None:
        self.assertIn("wait", UpdateService.__abstractmethods__)
        service = self._service()
        self.assertIsNone(service.wait(timeout=TIMEOUT))
        service.start()
        self.assertEqual(service.wait(timeout=TIMEOUT).state, ScanState.SUCCEEDED)

    def test_closed_service_rejects_new_scans(self) -> None:
        service = FileUpdateService(self.first, self.paths, ImmediateDispatcher())
        service.close()
        with self.assertRaises(RuntimeError):
            service.restart(self.second)


class ThreadDispatchedServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        configure_runtime_logging(level="off")

    def test_mutations_happen_on_the_dispatch_thread(self) -> None:
        dispatcher = ThreadDispatcher()
        self.addCleanup(dispatcher.close)
        paths = PathCollection()
        mutating_threads: set[str] = set()
        paths.add_listener(lambda change: mutating_threads.add(threading.current_thread().name))

        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            for index in range(25):
                (root / f"f{index}.txt").write_text("x", encoding="utf-8")

            service = FileUpdateService(root, paths, dispatcher)
            self.addCleanup(service.close)
            service.start().result(timeout=TIMEOUT)
            dispatcher.drain()

        self.assertEqual(dispatcher.call(len, paths), 25)
        self.assertEqual(len(mutating_threads), 1)
        self.assertTrue(next(iter(mutating_threads)).startswith("dirindex-dispatch"))
        self.assertEqual(service.state.get(), ScanState.SUCCEEDED)

    def test_close_on_the_dispatch_thread_returns(self) -> None:
        dispatcher = ThreadDispatcher()
        self.addCleanup(dispatcher.close)
        root = Path("/virtual/busy")
        listing = listing_for(root, 50)
        listed = threading.Event()
        closed = threading.Event()

        def lister(_: Path) -> list[FakeEntry]:
            listed.set()
            return listing

        service = FileUpdateService(root, PathCollection(), dispatcher, lister=lister)

        def close_from_dispatch_thread() -> None:
            listed.wait(TIMEOUT)
            service.close()
            closed.set()

        # Occupy the dispatch thread before the scan posts its clear.
        dispatcher.post(close_from_dispatch_thread)
        service.start()

        self.assertTrue(closed.wait(TIMEOUT))
        self.assertTrue(listed.is_set())
        self.assertFalse(service.is_running)

    def test_restarts_never_mix_generations(self) -> None:
        dispatcher = ThreadDispatcher()
        self.addCleanup(dispatcher.close)
        paths = PathCollection()
        large = Path("/virtual/large")
        small = Path("/virtual/small")
        listings = {
            large: [FakeEntry(str(large / f"a{index}.txt")) for index in range(3000)],
            small: [FakeEntry(str(small / f"b{index}.txt")) for index in range(3)],
        }
        service = FileUpdateService(large, paths, dispatcher, lister=lambda directory: listings[directory])
        self.addCleanup(service.close)

        service.start()
        futures = [service.restart(small) for _ in range(5)]
        outcome = futures[-1].result(timeout=TIMEOUT)
        dispatcher.drain()

        names = dispatcher.call(lambda: [entry.name for entry in paths])
        self.assertEqual(outcome.state, ScanState.SUCCEEDED)
        self.assertEqual(sorted(names), ["b0.txt", "b1.txt", "b2.txt"])
        self.assertEqual(service.state.get(), ScanState.SUCCEEDED)


if __name__ == "__main__":
    unittest.main()
