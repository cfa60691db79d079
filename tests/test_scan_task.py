from __future__ import annotations

import os
import tempfile
import unittest
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from dirindex.dispatch import ImmediateDispatcher
from dirindex.fs.indexed_path import IndexedPath
from dirindex.fs.scan_task import (
    CancellationToken,
    DirectoryUnavailable,
    ScanEvent,
    ScanState,
    ScanTask,
    ScanTaskError,
    progress_interval,
)
from dirindex.path_list import PathCollection
from dirindex.runtime_logging import configure_runtime_logging


@dataclass
class FakeEntry:
    path: str
    regular: bool = True
    on_check: Callable[[], None] | None = None

    def is_file(self) -> bool:
        if self.on_check is not None:
            self.on_check()
        return self.regular


class CountingCollection(PathCollection):
    def __init__(self) -> None:
        super().__init__()
        self.extend_calls = 0

    def extend(self, entries) -> None:  # type: ignore[override]
        self.extend_calls += 1
        super().extend(entries)


def fake_files(count: int, root: str = "/virtual") -> list[FakeEntry]:
    return [FakeEntry(f"{root}/file-{index:06d}.dat") for index in range(count)]


class ScanTaskOnDiskTests(unittest.TestCase):
    def setUp(self) -> None:
        configure_runtime_logging(level="off")
        self.dispatcher = ImmediateDispatcher()
        self.paths = PathCollection()

    def test_indexes_regular_files_in_enumeration_order(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            for name in ("a.txt", "b.xml", "c.txt"):
                (root / name).write_text(name, encoding="utf-8")
            (root / "nested").mkdir()
            (root / "nested" / "deep.txt").write_text("x", encoding="utf-8")

            with os.scandir(root) as listing:
                expected = [Path(entry.path) for entry in listing if entry.is_file()]

            outcome = ScanTask(root, self.paths, self.dispatcher).run()

        self.assertEqual(outcome.state, ScanState.SUCCEEDED)
        self.assertEqual(outcome.accepted, 3)
        self.assertEqual(outcome.total, 4)
        self.assertGreaterEqual(outcome.duration, 0.0)
        self.assertEqual([entry.path for entry in self.paths], expected)
        self.assertEqual([entry.index for entry in self.paths], [0, 1, 2])

    def test_missing_directory_fails_after_clearing(self) -> None:
        self.paths.extend([IndexedPath(0, Path("/stale/old.txt"))])
        events: list[ScanEvent] = []
        with tempfile.TemporaryDirectory() as tmp:
            missing = Path(tmp) / "gone"
            task = ScanTask(missing, self.paths, self.dispatcher, listener=events.append)
            outcome = task.run()

        self.assertEqual(outcome.state, ScanState.FAILED)
        self.assertIsInstance(outcome.error, DirectoryUnavailable)
        self.assertIsInstance(outcome.error.cause, FileNotFoundError)
        self.assertEqual(len(self.paths), 0)
        self.assertEqual(task.state, ScanState.FAILED)
        self.assertEqual(events[-1].phase, ScanState.FAILED)
        self.assertEqual(events[-1].fraction, 1.0)
        self.assertIsNotNone(events[-1].duration)

    def test_empty_directory_succeeds(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            outcome = ScanTask(Path(tmp), self.paths, self.dispatcher).run()

        self.assertEqual(outcome.state, ScanState.SUCCEEDED)
        self.assertEqual(outcome.accepted, 0)


class ScanTaskLifecycleTests(unittest.TestCase):
    def setUp(self) -> None:
        configure_runtime_logging(level="off")
        self.dispatcher = ImmediateDispatcher()
        self.paths = CountingCollection()

    def test_cancellation_keeps_accepted_entries(self) -> None:
        token = CancellationToken()
        listing = fake_files(50)
        accepted_before_cancel = 7
        listing[accepted_before_cancel - 1].on_check = token.cancel

        task = ScanTask(Path("/virtual"), self.paths, self.dispatcher, token=token, lister=lambda _: listing)
        outcome = task.run()

        self.assertEqual(outcome.state, ScanState.CANCELLED)
        self.assertEqual(outcome.accepted, accepted_before_cancel)
        self.assertEqual([entry.index for entry in self.paths], list(range(accepted_before_cancel)))

    def test_cancelled_before_start_never_touches_collection(self) -> None:
        self.paths.extend([IndexedPath(0, Path("/previous/keep.txt"))])
        listed: list[Path] = []
        token = CancellationToken()
        token.cancel()

        def lister(directory: Path) -> list[FakeEntry]:
            listed.append(directory)
            return []

        outcome = ScanTask(Path("/virtual"), self.paths, self.dispatcher, token=token, lister=lister).run()

        self.assertEqual(outcome.state, ScanState.CANCELLED)
        self.assertEqual(listed, [])
        self.assertEqual(len(self.paths), 1)

    def test_error_during_enumeration_keeps_flushed_entries(self) -> None:
        def denied() -> None:
            raise PermissionError(13, "Permission denied")

        listing = fake_files(20)
        listing[5].on_check = denied

        outcome = ScanTask(Path("/virtual"), self.paths, self.dispatcher, lister=lambda _: listing).run()

        self.assertEqual(outcome.state, ScanState.FAILED)
        self.assertIsInstance(outcome.error, DirectoryUnavailable)
        self.assertEqual(len(self.paths), 5)

    def test_skips_entries_that_are_not_regular_files(self) -> None:
        listing = fake_files(4)
        listing[1].regular = False

        outcome = ScanTask(Path("/virtual"), self.paths, self.dispatcher, lister=lambda _: listing).run()

        self.assertEqual(outcome.accepted, 3)
        self.assertEqual([entry.path.name for entry in self.paths], ["file-000000.dat", "file-000002.dat", "file-000003.dat"])
        self.assertEqual([entry.index for entry in self.paths], [0, 1, 2])

    def test_task_runs_only_once(self) -> None:
        task = ScanTask(Path("/virtual"), self.paths, self.dispatcher, lister=lambda _: [])
        task.run()
        with self.assertRaises(ScanTaskError):
            task.run()

    def test_large_directory_is_published_in_bulk(self) -> None:
        total = 120_000
        events: list[ScanEvent] = []
        task = ScanTask(
            Path("/virtual"),
            self.paths,
            self.dispatcher,
            listener=events.append,
            lister=lambda _: fake_files(total),
        )
        outcome = task.run()

        self.assertEqual(outcome.accepted, total)
        self.assertEqual(len(self.paths), total)
        self.assertEqual(task.flush_count, total // 500)
        self.assertLessEqual(self.paths.extend_calls, total // 500 + 1)
        self.assertEqual(self.paths[-1].index, total - 1)

        progress_events = [event for event in events if event.phase is ScanState.RUNNING]
        self.assertLess(len(progress_events), 210)
        self.assertEqual(events[-1].phase, ScanState.SUCCEEDED)
        self.assertEqual(sum(1 for event in events if event.phase.terminal), 1)

    def test_progress_interval(self) -> None:
        self.assertEqual(progress_interval(0), 1)
        self.assertEqual(progress_interval(199), 1)
        self.assertEqual(progress_interval(1_000), 5)
        self.assertEqual(progress_interval(120_000), 600)


if __name__ == "__main__":
    unittest.main()
