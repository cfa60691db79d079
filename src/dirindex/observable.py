"""Single-slot observable values shared between the engine and its host."""

from __future__ import annotations

import threading
from typing import Callable, Generic, TypeVar

from dirindex.runtime_logging import get_runtime_logger

T = TypeVar("T")

Listener = Callable[[T], None]


class Observable(Generic[T]):
    """Holds the current value and notifies subscribers when it changes.

    Reads are safe from any thread. Writes are expected to happen on the
    designated thread, so listeners run there too.
    """

    def __init__(self, value: T, *, name: str = "") -> None:
        self._value = value
        self._name = name
        self._lock = threading.Lock()
        self._listeners: list[Listener[T]] = []
        self._logger = get_runtime_logger()

    def get(self) -> T:
        return self._value

    @property
    def value(self) -> T:
        return self._value

    def set(self, value: T) -> None:
        with self._lock:
            if value == self._value:
                return
            self._value = value
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(value)
            except Exception as exc:
                self._logger.error("observable.callback.failed", name=self._name, error=str(exc))

    def subscribe(self, listener: Listener[T]) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                try:
                    self._listeners.remove(listener)
                except ValueError:
                    pass

        return unsubscribe

    def __repr__(self) -> str:
        return f"Observable({self._name or 'value'}={self._value!r})"
