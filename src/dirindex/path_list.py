"""The shared ordered collection of indexed paths and its filtered view.

Both are single-writer structures: every mutation is expected to run on the
designated thread, so neither takes a lock.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Iterable, Iterator, Literal

from dirindex.fs.indexed_path import IndexedPath
from dirindex.observable import Observable

ChangeKind = Literal["clear", "extend", "sort", "reset"]
Predicate = Callable[[IndexedPath], bool]


@dataclass(frozen=True, slots=True)
class ListChange:
    kind: ChangeKind
    items: tuple[IndexedPath, ...] = ()


ChangeListener = Callable[[ListChange], None]


class _ObservableSequence:
    def __init__(self) -> None:
        self._items: list[IndexedPath] = []
        self._listeners: list[ChangeListener] = []
        self.size: Observable[int] = Observable(0, name=type(self).__name__ + ".size")

    def add_listener(self, listener: ChangeListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _fire(self, change: ListChange) -> None:
        self.size.set(len(self._items))
        for listener in list(self._listeners):
            listener(change)

    def snapshot(self) -> tuple[IndexedPath, ...]:
        return tuple(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[IndexedPath]:
        return iter(list(self._items))

    def __getitem__(self, position: int) -> IndexedPath:
        return self._items[position]

    def __bool__(self) -> bool:
        return bool(self._items)


class PathCollection(_ObservableSequence):
    """Unfiltered entries of the current scan generation."""

    def clear(self) -> None:
        self._items.clear()
        self._fire(ListChange("clear"))

    def extend(self, entries: Iterable[IndexedPath]) -> None:
        batch = tuple(entries)
        if not batch:
            return
        self._items.extend(batch)
        self._fire(ListChange("extend", batch))

    def sort(self, key: Callable[[IndexedPath], Any], *, reverse: bool = False) -> None:
        self._items.sort(key=key, reverse=reverse)
        self._fire(ListChange("sort"))


class FilteredPaths(_ObservableSequence):
    """Derived view over a ``PathCollection`` keeping only accepted entries.

    Appended batches are filtered incrementally; clear, sort and predicate
    changes rebuild the view from the source in source order.
    """

    def __init__(self, source: PathCollection) -> None:
        super().__init__()
        self._source = source
        self._predicate: Predicate = lambda entry: True
        self._remove_listener = source.add_listener(self._on_source_change)

    @property
    def predicate(self) -> Predicate:
        return self._predicate

    def set_predicate(self, predicate: Predicate | None) -> None:
        self._predicate = predicate if predicate is not None else (lambda entry: True)
        self._rebuild()

    def detach(self) -> None:
        self._remove_listener()

    def _on_source_change(self, change: ListChange) -> None:
        if change.kind == "clear":
            self._items.clear()
            self._fire(change)
        elif change.kind == "extend":
            accepted = tuple(entry for entry in change.items if self._predicate(entry))
            if accepted:
                self._items.extend(accepted)
                self._fire(ListChange("extend", accepted))
        else:
            self._rebuild()

    def _rebuild(self) -> None:
        self._items = [entry for entry in self._source.snapshot() if self._predicate(entry)]
        self._fire(ListChange("reset"))
