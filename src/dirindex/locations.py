"""Bookmarked locations handed to the model for navigation."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True, slots=True)
class Location:
    name: str
    path: Path

    @classmethod
    def of(cls, path: str | os.PathLike[str], name: str | None = None) -> Location:
        resolved = Path(path).expanduser()
        return cls(name or resolved.name or str(resolved), resolved)

    def exists(self) -> bool:
        return self.path.exists()

    def __str__(self) -> str:
        return f"{self.name} ({self.path})"
