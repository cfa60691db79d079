"""Designated-thread executors that all shared-state mutation is posted to."""

from __future__ import annotations

import asyncio
import concurrent.futures
import threading
from typing import Any, Callable, Protocol, TypeVar

from dirindex.runtime_logging import get_runtime_logger

R = TypeVar("R")


class Dispatcher(Protocol):
    def post(self, fn: Callable[..., Any], *args: Any) -> None: ...

    def call(self, fn: Callable[..., R], *args: Any) -> R: ...

    def is_dispatch_thread(self) -> bool: ...


class ImmediateDispatcher:
    """Runs everything inline on the caller's thread.

    Used by tests and headless hosts where the caller already is the only
    thread touching the shared collection.
    """

    def post(self, fn: Callable[..., Any], *args: Any) -> None:
        fn(*args)

    def call(self, fn: Callable[..., R], *args: Any) -> R:
        return fn(*args)

    def is_dispatch_thread(self) -> bool:
        return True


class ThreadDispatcher:
    """A dedicated single thread processing posted work in FIFO order."""

    def __init__(self, name: str = "dirindex-dispatch") -> None:
        self._thread_ident: int | None = None
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=1,
            thread_name_prefix=name,
            initializer=self._mark_thread,
        )
        self._logger = get_runtime_logger()

    def _mark_thread(self) -> None:
        self._thread_ident = threading.get_ident()

    def post(self, fn: Callable[..., Any], *args: Any) -> None:
        future = self._executor.submit(fn, *args)
        future.add_done_callback(self._report_failure)

    def call(self, fn: Callable[..., R], *args: Any) -> R:
        if self.is_dispatch_thread():
            return fn(*args)
        return self._executor.submit(fn, *args).result()

    def is_dispatch_thread(self) -> bool:
        return threading.get_ident() == self._thread_ident

    def drain(self) -> None:
        """Block until everything posted so far has run."""
        self.call(lambda: None)

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    def _report_failure(self, future: concurrent.futures.Future[Any]) -> None:
        exc = future.exception()
        if exc is not None:
            self._logger.error("dispatch.task.failed", error=repr(exc))


class AsyncioDispatcher:
    """Marshals work onto a running asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop
        self._logger = get_runtime_logger()

    def post(self, fn: Callable[..., Any], *args: Any) -> None:
        self._loop.call_soon_threadsafe(self._guarded, fn, args)

    def call(self, fn: Callable[..., R], *args: Any) -> R:
        if self.is_dispatch_thread():
            return fn(*args)

        result: concurrent.futures.Future[R] = concurrent.futures.Future()

        def runner() -> None:
            if not result.set_running_or_notify_cancel():
                return
            try:
                result.set_result(fn(*args))
            except BaseException as exc:
                result.set_exception(exc)

        self._loop.call_soon_threadsafe(runner)
        return result.result()

    def is_dispatch_thread(self) -> bool:
        try:
            return asyncio.get_running_loop() is self._loop
        except RuntimeError:
            return False

    def _guarded(self, fn: Callable[..., Any], args: tuple[Any, ...]) -> None:
        try:
            fn(*args)
        except Exception as exc:
            self._logger.error("dispatch.task.failed", error=repr(exc))
