"""Paths tagged with their acceptance position within one scan."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True, slots=True)
class IndexedPath:
    index: int
    path: Path

    @property
    def name(self) -> str:
        return self.path.name

    def __str__(self) -> str:
        return str(self.path)

    def __fspath__(self) -> str:
        return os.fspath(self.path)


def by_index(entry: IndexedPath) -> int:
    return entry.index


def by_name(entry: IndexedPath) -> tuple[str, int]:
    return (entry.name.casefold(), entry.index)


def by_path(entry: IndexedPath) -> tuple[str, int]:
    return (str(entry.path).casefold(), entry.index)


def by_extension(entry: IndexedPath) -> tuple[str, str, int]:
    return (entry.path.suffix.casefold(), entry.name.casefold(), entry.index)


SORT_KEYS = {
    "index": by_index,
    "name": by_name,
    "path": by_path,
    "extension": by_extension,
}
