"""The model a presentation layer talks to.

It owns the unfiltered path collection of the current scan generation, the
filtered view derived from it, the selection, the named filter set and the
bookmarked locations. Every method here is meant to be called on the
designated thread.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Callable, Iterable, Union

from dirindex.config.models import AppSettings
from dirindex.dispatch import Dispatcher, ImmediateDispatcher
from dirindex.fs.filtering import PathFilter, combine_all
from dirindex.fs.indexed_path import IndexedPath
from dirindex.fs.scan_task import Lister, list_directory
from dirindex.locations import Location
from dirindex.observable import Observable
from dirindex.path_list import FilteredPaths, PathCollection
from dirindex.paths import users_home
from dirindex.runtime_logging import get_runtime_logger
from dirindex.service import FileUpdateService, ScanFuture, UpdateService

INVALID_CRITERION_CHARS = '"?<>|:*'
DEFAULT_FILTER_NAME = "all files"

Target = Union[str, os.PathLike, Location, IndexedPath, None]


def sanitize_criterion(criterion: str | None) -> str:
    """Drop characters that can never appear in a file name."""
    if not criterion:
        return ""
    return criterion.translate({ord(char): None for char in INVALID_CRITERION_CHARS})


class FileIndexModel:
    def __init__(
        self,
        paths: PathCollection,
        service_factory: Callable[[], UpdateService],
        *,
        filters: Iterable[PathFilter] = (),
        locations: Iterable[Location] = (),
    ) -> None:
        self.all_paths = paths
        self.filtered_paths = FilteredPaths(paths)
        self._filters: list[PathFilter] = []
        for path_filter in filters:
            if path_filter not in self._filters:
                self._filters.append(path_filter)
        self._locations: dict[Location, None] = dict.fromkeys(locations)
        self._effective_filter = PathFilter.accept_all_files(DEFAULT_FILTER_NAME)
        self._criterion = ""
        self._filters_changed = False
        self._logger = get_runtime_logger()

        self.selection: Observable[Path | None] = Observable(None, name="selection")
        self.selected_file_name = Observable("", name="selected_file_name")
        self.valid_selection = Observable(False, name="valid_selection")

        self.initialize_filter("")
        self._service = service_factory()
        self._service.start()

    @classmethod
    def starting_in(
        cls,
        start_folder: str | os.PathLike[str],
        *filters: PathFilter,
        dispatcher: Dispatcher | None = None,
        settings: AppSettings | None = None,
        lister: Lister = list_directory,
    ) -> FileIndexModel:
        paths = PathCollection()
        effective_settings = settings or AppSettings()
        chosen = dispatcher or ImmediateDispatcher()

        def service_factory() -> UpdateService:
            return FileUpdateService(
                Path(start_folder),
                paths,
                chosen,
                settings=effective_settings.scan,
                lister=lister,
            )

        locations = [Location.of(item.path, item.name) for item in effective_settings.locations]
        return cls(paths, service_factory, filters=filters, locations=locations)

    @classmethod
    def starting_in_users_home(cls, *filters: PathFilter, **kwargs: Any) -> FileIndexModel:
        return cls.starting_in(users_home(), *filters, **kwargs)

    @classmethod
    def from_settings(
        cls,
        settings: AppSettings,
        *,
        dispatcher: Dispatcher | None = None,
        lister: Lister = list_directory,
    ) -> FileIndexModel:
        start = settings.paths.start_directory or users_home()
        return cls.starting_in(
            start,
            *settings.path_filters(),
            dispatcher=dispatcher,
            settings=settings,
            lister=lister,
        )

    @property
    def update_service(self) -> UpdateService:
        return self._service

    @property
    def current_search_path(self) -> Observable[Path]:
        return self._service.search_path

    @property
    def all_size(self) -> Observable[int]:
        return self.all_paths.size

    @property
    def filtered_size(self) -> Observable[int]:
        return self.filtered_paths.size

    # Filtering

    @property
    def effective_filter(self) -> PathFilter:
        return self._effective_filter

    @property
    def criterion(self) -> str:
        return self._criterion

    @property
    def path_filters(self) -> tuple[PathFilter, ...]:
        return tuple(self._filters)

    def update_filter_criterion(self, criterion: str | None, *, path_filter: PathFilter | None = None) -> None:
        """Apply a live search text, optionally replacing the effective filter first.

        The filter set itself is never touched. Without ``path_filter`` the
        current effective filter is kept, unless the filter set was toggled
        since it was last folded, in which case it is folded again.
        """
        if path_filter is not None:
            self._effective_filter = path_filter
            self._filters_changed = False
        elif self._filters_changed:
            self._effective_filter = combine_all(self._filters, DEFAULT_FILTER_NAME)
            self._filters_changed = False
        self._criterion = sanitize_criterion(criterion)
        self.filtered_paths.set_predicate(self._build_predicate(self._effective_filter, self._criterion))
        self._logger.debug(
            "model.filter.updated",
            effective_filter=self._effective_filter.name,
            criterion=self._criterion,
            visible=len(self.filtered_paths),
        )

    def initialize_filter(self, text: str | None) -> None:
        self._effective_filter = combine_all(self._filters, DEFAULT_FILTER_NAME)
        self._filters_changed = False
        self.update_filter_criterion(text)

    def add_or_remove_filter(self, path_filter: PathFilter) -> None:
        """Toggle ``path_filter`` in the filter set by name.

        The filtered view keeps its current predicate until the next
        ``initialize_filter`` or ``update_filter_criterion`` call.
        """
        if path_filter in self._filters:
            self._filters = [item for item in self._filters if item != path_filter]
        else:
            self._filters.append(path_filter)
        self._filters_changed = True

    @staticmethod
    def _build_predicate(path_filter: PathFilter, criterion: str) -> Callable[[IndexedPath], bool]:
        needle = criterion.casefold()

        def accept(entry: IndexedPath) -> bool:
            if not path_filter.matches(entry.path):
                return False
            return not needle or needle in str(entry.path).casefold()

        return accept

    # Selection

    def set_selected_file(self, entry: IndexedPath | str | os.PathLike[str] | None) -> None:
        if entry is None:
            selected = None
        else:
            raw = entry.path if isinstance(entry, IndexedPath) else Path(entry)
            selected = Path(os.path.abspath(raw))
        self.selection.set(selected)
        self.selected_file_name.set(str(selected) if selected is not None else "")
        self.valid_selection.set(selected is not None)

    @property
    def selected_file(self) -> Path | None:
        return self.selection.get()

    @property
    def is_valid_selection(self) -> bool:
        return self.valid_selection.get()

    # Navigation

    def update_files_in(self, target: Target) -> ScanFuture | None:
        if target is None:
            return None
        if isinstance(target, Location):
            directory = target.path
        elif isinstance(target, IndexedPath):
            directory = target.path
        else:
            directory = Path(target)

        if directory.is_dir():
            return self._service.restart(directory)
        if directory.is_file():
            return self._service.restart(Path(os.path.abspath(directory)).parent)
        self._logger.debug("model.navigation.ignored", target=str(directory))
        return None

    def refresh_files(self) -> ScanFuture:
        return self._service.refresh()

    def change_to_users_home(self) -> ScanFuture | None:
        return self.update_files_in(users_home())

    # Locations

    def add_location(self, location: Location) -> None:
        self._locations[location] = None

    @property
    def locations(self) -> tuple[Location, ...]:
        return tuple(self._locations)

    # Ordering

    def sort(self, key: Callable[[IndexedPath], Any], *, reverse: bool = False) -> None:
        self.all_paths.sort(key, reverse=reverse)

    def close(self) -> None:
        self.filtered_paths.detach()
        self._service.close()

    def __enter__(self) -> FileIndexModel:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
