"""CLI entrypoint: a headless host for the indexing engine."""

from __future__ import annotations

import json
from pathlib import Path

import click

from dirindex.config.store import SettingsStore
from dirindex.dispatch import ThreadDispatcher
from dirindex.fs.filtering import MalformedFilterPattern, PathFilter
from dirindex.fs.indexed_path import SORT_KEYS
from dirindex.fs.scan_task import ScanState
from dirindex.model import FileIndexModel
from dirindex.runtime_logging import configure_runtime_logging
from dirindex.version import __version__


def _store(ctx: click.Context) -> SettingsStore:
    path = ctx.obj.get("settings") if ctx.obj else None
    return SettingsStore(Path(path) if path else None)


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--log-level", default=None, help="off, error, warning, info or debug")
@click.option("--settings", "settings_file", default=None, help="Settings file to use instead of the default")
@click.pass_context
def main(ctx: click.Context, log_level: str | None, settings_file: str | None) -> None:
    """dirindex: index a directory in the background and filter its files."""
    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings_file
    if log_level is not None:
        configure_runtime_logging(level=log_level)


@main.command()
@click.argument("directory", default=".")
@click.option("-f", "--filter", "extensions", multiple=True, help="Extension or regex fragment, e.g. txt or html?")
@click.option("-g", "--glob", "globs", multiple=True, help="Wildcard pattern matched against file names")
@click.option("--saved-filters", is_flag=True, help="Also apply the filters stored in the settings")
@click.option("-c", "--criterion", default="", help="Case-insensitive text the file name must contain")
@click.option("--sort", "sort_key", type=click.Choice(sorted(SORT_KEYS)), default="index", show_default=True)
@click.option("--reverse", is_flag=True)
@click.option("--json", "as_json", is_flag=True, help="Emit a JSON document instead of one path per line")
@click.pass_context
def scan(
    ctx: click.Context,
    directory: str,
    extensions: tuple[str, ...],
    globs: tuple[str, ...],
    saved_filters: bool,
    criterion: str,
    sort_key: str,
    reverse: bool,
    as_json: bool,
) -> None:
    """List the files of DIRECTORY that pass the given filters."""
    target = Path(directory).expanduser()
    if not target.is_dir():
        raise click.ClickException(f"Not a directory: {target}")

    settings = _store(ctx).load()
    try:
        filters = [PathFilter.for_file_extension(ext, ext) for ext in extensions]
        if globs:
            filters.append(PathFilter.for_glob(" ".join(globs), *globs))
    except MalformedFilterPattern as exc:
        raise click.ClickException(str(exc))
    if saved_filters:
        filters.extend(settings.path_filters())

    dispatcher = ThreadDispatcher()
    model = FileIndexModel.starting_in(target, *filters, dispatcher=dispatcher, settings=settings)
    try:
        outcome = model.update_service.wait()
        dispatcher.call(model.update_filter_criterion, criterion)
        if sort_key != "index" or reverse:
            dispatcher.call(lambda: model.sort(SORT_KEYS[sort_key], reverse=reverse))
        visible = dispatcher.call(model.filtered_paths.snapshot)
    finally:
        model.close()
        dispatcher.close()

    if outcome is None or outcome.state is ScanState.FAILED:
        error = outcome.error if outcome is not None else "scan did not run"
        raise click.ClickException(str(error))

    if as_json:
        payload = {
            "directory": str(outcome.directory),
            "state": outcome.state.value,
            "entries": outcome.total,
            "files": outcome.accepted,
            "duration_s": round(outcome.duration, 3),
            "filter": model.effective_filter.name,
            "criterion": model.criterion,
            "matches": [{"index": entry.index, "path": str(entry.path)} for entry in visible],
        }
        click.echo(json.dumps(payload, indent=2))
        return

    for entry in visible:
        click.echo(str(entry.path))


@main.command()
@click.option("--add", "new_location", nargs=2, default=None, metavar="NAME PATH", help="Bookmark a location")
@click.pass_context
def locations(ctx: click.Context, new_location: tuple[str, str] | None) -> None:
    """List (or add) bookmarked locations."""
    store = _store(ctx)
    settings = store.add_location(*new_location) if new_location else store.load()
    for location in settings.locations:
        click.echo(f"{location.name}\t{location.path}")


@main.command("settings-path")
@click.pass_context
def settings_path_command(ctx: click.Context) -> None:
    """Print settings file path."""
    click.echo(str(_store(ctx).path))


@main.command()
def about() -> None:
    """Show version and project summary."""
    payload = {
        "name": "dirindex",
        "version": __version__,
        "description": "Background directory indexing and path filtering engine",
    }
    click.echo(json.dumps(payload, indent=2))


if __name__ == "__main__":
    main()
