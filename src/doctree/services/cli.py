"""Doctree CLI entry point."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import NoReturn

import click

from doctree import __version__
from doctree.config import ConfigError


def _setup_logging(*, verbose: bool, quiet: bool) -> None:
    from rich.console import Console
    from rich.logging import RichHandler

    level = logging.DEBUG if verbose else logging.WARNING if quiet else logging.INFO
    handler = RichHandler(console=Console(stderr=True), show_path=False, rich_tracebacks=True)
    logging.basicConfig(level=level, format="%(message)s", datefmt="[%X]", handlers=[handler])
    # Access logs are noisy at INFO; keep them for -v.
    logging.getLogger("uvicorn.access").setLevel(logging.DEBUG if verbose else logging.WARNING)


def _fail(message: object, code: int = 1) -> NoReturn:
    click.echo(f"Error: {message}", err=True)
    sys.exit(code)


@click.group()
@click.version_option(version=__version__, prog_name="doctree")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Minimal output (errors only).")
@click.pass_context
def main(ctx: click.Context, *, verbose: bool, quiet: bool) -> None:
    """Doctree - documentation indexes for source trees."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    _setup_logging(verbose=verbose, quiet=quiet)


_data_dir_option = click.option(
    "--data-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Data directory (default: $DOCTREE_DATA_DIR or ~/.doctree).",
)


@main.command()
@_data_dir_option
@click.option("--http", "http", default=None, help="Listen address (default: :3333).")
@click.option("--cloud/--no-cloud", default=None, help="Run the client in cloud mode.")
@click.option(
    "--recursive/--no-recursive",
    default=None,
    help="Watch project subdirectories too (default: top level only).",
)
@click.option(
    "--debounce",
    type=int,
    default=None,
    help="Watcher debounce in milliseconds (default: 500).",
)
def serve(
    *,
    data_dir: Path | None,
    http: str | None,
    cloud: bool | None,
    recursive: bool | None,
    debounce: int | None,
) -> None:
    """Serve indexes over HTTP and keep auto-indexed projects up to date."""
    from doctree.autoindex.registry import CorruptStateError, PersistenceError
    from doctree.config import load_config
    from doctree.infrastructure.watcher import WatchSetupError
    from doctree.services.host import HostError
    from doctree.services.host import serve as run_server

    try:
        config = load_config(
            data_dir,
            http=http,
            cloud_mode=cloud,
            recursive_watch=recursive,
            debounce_ms=debounce,
        )
        run_server(config)
    except ConfigError as exc:
        _fail(exc, code=2)
    except (CorruptStateError, PersistenceError, WatchSetupError, HostError) as exc:
        _fail(exc)


def _resolve_project(path: Path, name: str | None) -> tuple[str, Path]:
    path = path.resolve()
    return name or path.name, path


@main.command()
@click.argument("path", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("--name", default=None, help="Project name (default: directory name).")
@_data_dir_option
def add(*, path: Path, name: str | None, data_dir: Path | None) -> None:
    """Index PATH and register it for automatic reindexing.

    A running server picks the project up on its next start.
    """
    from doctree.autoindex.registry import (
        CorruptStateError,
        PersistenceError,
        RegistrationError,
        load_autoindex,
        register_project,
        save_autoindex,
    )
    from doctree.config import AUTOINDEX_FILENAME, default_data_dir
    from doctree.indexer.engine import IndexEngineError, SqliteIndexEngine
    from doctree.infrastructure.fingerprint import dir_fingerprint

    name, path = _resolve_project(path, name)
    data_dir = (data_dir or default_data_dir()).expanduser()
    autoindex_path = data_dir / AUTOINDEX_FILENAME

    try:
        entries = load_autoindex(autoindex_path)
        entry = register_project(entries, name, path, "")
        result = SqliteIndexEngine(data_dir / "index").index_project(name, path)
        entry.fingerprint = dir_fingerprint(path)
        save_autoindex(autoindex_path, entries)
    except (CorruptStateError, PersistenceError, RegistrationError, IndexEngineError) as exc:
        _fail(exc)

    click.echo(
        f"Added {name} ({path}): {result.files_indexed} files, "
        f"{result.sections_indexed} sections"
    )


@main.command()
@click.argument("path", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("--name", default=None, help="Project name (default: directory name).")
@_data_dir_option
def index(*, path: Path, name: str | None, data_dir: Path | None) -> None:
    """Index PATH once without registering it."""
    from doctree.config import default_data_dir
    from doctree.indexer.engine import IndexEngineError, SqliteIndexEngine

    name, path = _resolve_project(path, name)
    data_dir = (data_dir or default_data_dir()).expanduser()

    try:
        result = SqliteIndexEngine(data_dir / "index").index_project(name, path)
    except IndexEngineError as exc:
        _fail(exc)

    click.echo(
        f"Indexed {name} ({path}): {result.files_indexed} files, "
        f"{result.sections_indexed} sections"
    )
