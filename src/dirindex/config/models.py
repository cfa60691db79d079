"""Settings schema for the indexing engine."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from dirindex.fs.filtering import MalformedFilterPattern, PathFilter
from dirindex.fs.refresh_buffer import DEFAULT_BATCH_STEPS, DEFAULT_MIN_BATCH
from dirindex.fs.scan_task import DEFAULT_PROGRESS_DIVISIONS


class ScanSettings(BaseModel):
    batch_steps: list[tuple[int, int]] = Field(
        default_factory=lambda: [tuple(step) for step in DEFAULT_BATCH_STEPS],
        description="(entry count threshold, batch size) pairs, largest threshold first",
    )
    min_batch: int = Field(default=DEFAULT_MIN_BATCH, ge=1)
    progress_divisions: int = Field(default=DEFAULT_PROGRESS_DIVISIONS, ge=1, le=10_000)

    @field_validator("batch_steps")
    @classmethod
    def validate_steps(cls, value: list[tuple[int, int]]) -> list[tuple[int, int]]:
        thresholds = [threshold for threshold, _ in value]
        if thresholds != sorted(thresholds, reverse=True) or len(set(thresholds)) != len(thresholds):
            raise ValueError("batch_steps thresholds must be strictly descending")
        sizes = [size for _, size in value]
        if any(size < 1 for size in sizes):
            raise ValueError("batch sizes must be positive")
        if sizes != sorted(sizes, reverse=True):
            raise ValueError("batch sizes must not grow as thresholds shrink")
        return value


class FilterRuleSettings(BaseModel):
    kind: Literal["all", "extension", "glob"]
    pattern: str | None = None
    patterns: list[str] = Field(default_factory=list)


class FilterSettings(BaseModel):
    name: str = Field(min_length=1)
    rules: list[FilterRuleSettings] = Field(min_length=1)

    @model_validator(mode="after")
    def validate_compiles(self) -> FilterSettings:
        try:
            self.to_filter()
        except MalformedFilterPattern as exc:
            raise ValueError(str(exc)) from exc
        return self

    def to_filter(self) -> PathFilter:
        return PathFilter.from_descriptor(self.model_dump(exclude_none=True))

    @classmethod
    def from_filter(cls, path_filter: PathFilter) -> FilterSettings:
        return cls.model_validate(path_filter.to_descriptor())


class LocationSettings(BaseModel):
    name: str = Field(min_length=1)
    path: str

    @field_validator("path")
    @classmethod
    def validate_path(cls, value: str) -> str:
        return str(Path(value).expanduser())


class PathsSettings(BaseModel):
    start_directory: str | None = Field(default=None, description="Defaults to the user's home")

    @field_validator("start_directory")
    @classmethod
    def validate_path(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return str(Path(value).expanduser())


class AppSettings(BaseModel):
    schema_version: int = Field(default=1)
    scan: ScanSettings = Field(default_factory=ScanSettings)
    filters: list[FilterSettings] = Field(default_factory=list)
    locations: list[LocationSettings] = Field(default_factory=list)
    paths: PathsSettings = Field(default_factory=PathsSettings)

    def path_filters(self) -> list[PathFilter]:
        return [item.to_filter() for item in self.filters]
