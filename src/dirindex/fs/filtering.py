"""Named, composable path filters.

Filters are plain data: a name and a tuple of rules. A path passes a filter
when any of its rules accepts it, so ``combine`` is a concatenation of rules
and stays associative. Identity is the name, compared case-insensitively,
which gives the filter set its toggle semantics.
"""

from __future__ import annotations

import functools
import os
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Union

import pathspec

PathLike = Union[str, os.PathLike]


class MalformedFilterPattern(ValueError):
    """Raised when a filter is built from a pattern that cannot be compiled."""


def _file_name(path: PathLike) -> str:
    return os.path.basename(os.fspath(path))


@dataclass(frozen=True, slots=True)
class AcceptAll:
    kind = "all"

    def matches(self, path: PathLike) -> bool:  # noqa: ARG002
        return True

    def to_descriptor(self) -> dict[str, Any]:
        return {"kind": self.kind}


@dataclass(frozen=True, slots=True)
class ExtensionRule:
    """Extension or regular-expression fragment matched against the suffix."""

    kind = "extension"

    pattern: str
    _regex: re.Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        fragment = self.pattern.strip()
        if fragment.startswith("*"):
            fragment = fragment[1:]
        if fragment.startswith("."):
            fragment = fragment[1:]
        if not fragment:
            raise MalformedFilterPattern(f"Empty extension pattern: {self.pattern!r}")
        try:
            regex = re.compile(rf".*\.(?:{fragment})", re.IGNORECASE)
        except re.error as exc:
            raise MalformedFilterPattern(f"Invalid extension pattern {self.pattern!r}: {exc}") from exc
        object.__setattr__(self, "_regex", regex)

    def matches(self, path: PathLike) -> bool:
        return self._regex.fullmatch(_file_name(path)) is not None

    def to_descriptor(self) -> dict[str, Any]:
        return {"kind": self.kind, "pattern": self.pattern}


@dataclass(frozen=True, slots=True)
class GlobRule:
    """Gitignore-style wildcard patterns matched against the file name."""

    kind = "glob"

    patterns: tuple[str, ...]
    _spec: pathspec.PathSpec = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        lines = [item.strip().lower() for item in self.patterns if item.strip()]
        if not lines:
            raise MalformedFilterPattern("Glob filter needs at least one pattern")
        try:
            spec = pathspec.PathSpec.from_lines("gitwildmatch", lines)
        except ValueError as exc:
            raise MalformedFilterPattern(f"Invalid glob pattern in {self.patterns!r}: {exc}") from exc
        object.__setattr__(self, "_spec", spec)

    def matches(self, path: PathLike) -> bool:
        return self._spec.match_file(_file_name(path).lower())

    def to_descriptor(self) -> dict[str, Any]:
        return {"kind": self.kind, "patterns": list(self.patterns)}


Rule = Union[AcceptAll, ExtensionRule, GlobRule]


def rule_from_descriptor(descriptor: dict[str, Any]) -> Rule:
    kind = descriptor.get("kind")
    if kind == AcceptAll.kind:
        return AcceptAll()
    if kind == ExtensionRule.kind:
        return ExtensionRule(str(descriptor.get("pattern", "")))
    if kind == GlobRule.kind:
        return GlobRule(tuple(str(item) for item in descriptor.get("patterns", ())))
    raise MalformedFilterPattern(f"Unknown filter rule kind: {kind!r}")


@dataclass(frozen=True, slots=True, eq=False)
class PathFilter:
    name: str
    rules: tuple[Rule, ...]

    @classmethod
    def accept_all_files(cls, name: str) -> PathFilter:
        return cls(name, (AcceptAll(),))

    @classmethod
    def for_file_extension(cls, name: str, pattern_or_ext: str) -> PathFilter:
        return cls(name, (ExtensionRule(pattern_or_ext),))

    @classmethod
    def for_glob(cls, name: str, *patterns: str) -> PathFilter:
        return cls(name, (GlobRule(tuple(patterns)),))

    @classmethod
    def from_descriptor(cls, descriptor: dict[str, Any]) -> PathFilter:
        rules = tuple(rule_from_descriptor(item) for item in descriptor.get("rules", ()))
        if not rules:
            raise MalformedFilterPattern(f"Filter {descriptor.get('name')!r} has no rules")
        return cls(str(descriptor.get("name", "")), rules)

    def to_descriptor(self) -> dict[str, Any]:
        return {"name": self.name, "rules": [rule.to_descriptor() for rule in self.rules]}

    def matches(self, path: PathLike) -> bool:
        return any(rule.matches(path) for rule in self.rules)

    __call__ = matches

    def combine(self, other: PathFilter) -> PathFilter:
        """OR this filter with ``other`` into a new filter; neither operand changes."""
        rules = tuple(dict.fromkeys(self.rules + other.rules))
        return PathFilter(f"{self.name}, {other.name}", rules)

    @property
    def key(self) -> str:
        return self.name.casefold()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PathFilter):
            return NotImplemented
        return self.key == other.key

    def __hash__(self) -> int:
        return hash(self.key)

    def __str__(self) -> str:
        return self.name


def combine_all(filters: Iterable[PathFilter], default_name: str = "all files") -> PathFilter:
    """Fold ``filters`` left to right; accept everything when there are none."""
    items = list(filters)
    if not items:
        return PathFilter.accept_all_files(default_name)
    return functools.reduce(PathFilter.combine, items[1:], items[0])
