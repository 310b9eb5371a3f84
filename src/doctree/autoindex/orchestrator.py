"""Reindex orchestrator: keep indexes of auto-indexed projects up to date.

Startup reconciles the registry against the live fingerprint of every
project (reindexing stale ones) and arms the directory watcher. After that
the orchestrator reacts to filesystem events until asked to stop.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from doctree.autoindex.dispatch import ReindexDispatcher
from doctree.autoindex.registry import PersistenceError, load_autoindex, save_autoindex
from doctree.config import DEFAULT_DEBOUNCE_MS, DEFAULT_SHUTDOWN_GRACE
from doctree.infrastructure.fingerprint import dir_fingerprint
from doctree.infrastructure.watcher import DirectoryWatcher

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from doctree.autoindex.registry import AutoIndexEntry
    from doctree.indexer.engine import IndexEngine
    from doctree.infrastructure.watcher import WatchAdapterError, WatchEvent

logger = logging.getLogger(__name__)


class OrchestratorState(enum.Enum):
    INITIALIZING = "initializing"
    STEADY_STATE = "steady-state"
    SHUTTING_DOWN = "shutting-down"


class Watcher(Protocol):
    events: asyncio.Queue[WatchEvent]
    errors: asyncio.Queue[WatchAdapterError]

    def arm(self) -> None: ...

    def start(self) -> None: ...

    async def close(self) -> None: ...


def is_parent_dir(parent: str, child: str) -> bool:
    """Return True if *child* is *parent* itself or lies underneath it.

    Made relative to *parent*, *child* must not start with a ``..`` segment.
    Paths on different drives are never related.
    """
    try:
        rel = os.path.relpath(child, parent)
    except ValueError:
        return False
    return rel.split(os.sep)[0] != os.pardir


class Orchestrator:
    """Owns the auto-index registry for the lifetime of the process.

    Parameters
    ----------
    autoindex_path:
        Location of the durable registry file.
    engine:
        Index engine invoked for stale or changed projects.
    fingerprint:
        Directory fingerprint function.
    watcher_factory:
        Builds the watch adapter for the registered paths. The adapter (or
        its ``arm()``) raises
        :class:`~doctree.infrastructure.watcher.WatchSetupError` when a path
        cannot be watched.
    max_concurrent:
        Upper bound on concurrent engine invocations.
    shutdown_grace:
        Seconds to wait for in-flight reindexes when stopping.
    """

    def __init__(
        self,
        autoindex_path: Path,
        engine: IndexEngine,
        *,
        fingerprint: Callable[[Path], str] = dir_fingerprint,
        watcher_factory: Callable[[list[Path]], Watcher] | None = None,
        recursive: bool = False,
        debounce_ms: int = DEFAULT_DEBOUNCE_MS,
        max_concurrent: int = 1,
        shutdown_grace: float = DEFAULT_SHUTDOWN_GRACE,
    ) -> None:
        self.autoindex_path = autoindex_path
        self.engine = engine
        self.fingerprint = fingerprint
        self.shutdown_grace = shutdown_grace
        self._watcher_factory = watcher_factory or (
            lambda paths: DirectoryWatcher(paths, recursive=recursive, debounce_ms=debounce_ms)
        )
        self.state = OrchestratorState.INITIALIZING
        self.projects: list[AutoIndexEntry] = []
        self.watcher: Watcher | None = None
        self.dispatcher = ReindexDispatcher(engine, max_concurrent=max_concurrent)
        self._dirty = False

    # -- startup -------------------------------------------------------------

    def initialize(self) -> None:
        """Reconcile the registry with the filesystem and arm the watcher.

        Registry decode errors, watch setup errors and persistence errors
        propagate: the server must not start with partial state.
        """
        if self.state is not OrchestratorState.INITIALIZING:
            raise RuntimeError(f"cannot initialize from state {self.state.value}")

        self.projects = load_autoindex(self.autoindex_path)
        for entry in self.projects:
            self._reconcile(entry)

        watcher = self._watcher_factory([Path(entry.path) for entry in self.projects])
        watcher.arm()
        self.watcher = watcher
        for entry in self.projects:
            logger.info("Watching %s (%s)", entry.name, entry.path)

        save_autoindex(self.autoindex_path, self.projects)
        self._dirty = False
        self.state = OrchestratorState.STEADY_STATE

    def _reconcile(self, entry: AutoIndexEntry) -> None:
        path = Path(entry.path)
        if self.fingerprint(path) == entry.fingerprint:
            return
        logger.info("Project %s has been modified while server was down, reindexing", entry.name)
        try:
            self.engine.index_project(entry.name, path)
        except Exception as exc:  # retried on next start
            logger.error("Reindexing %s failed: %s", entry.name, exc)
            return
        entry.fingerprint = self.fingerprint(path)
        self._dirty = True

    # -- steady state --------------------------------------------------------

    def find_project(self, path: str) -> AutoIndexEntry | None:
        """Return the first registered project containing *path*."""
        for entry in self.projects:
            if is_parent_dir(entry.path, path):
                return entry
        return None

    def handle_events(self, events: Iterable[WatchEvent]) -> list[AutoIndexEntry]:
        """Dispatch one reindex per affected project; return those projects.

        Events are matched in order; a project matched several times in the
        batch is only triggered once.
        """
        triggered: list[AutoIndexEntry] = []
        for event in events:
            entry = self.find_project(event.path)
            if entry is None:
                logger.info("No project for %s, ignoring", event.path)
                continue
            logger.debug("Event: %s %s -> %s", event.operation, event.path, entry.name)
            if entry not in triggered:
                triggered.append(entry)
        for entry in triggered:
            self.dispatcher.trigger(entry)
        return triggered

    async def run(self, stop_event: asyncio.Event) -> None:
        """Consume watch events and errors until *stop_event* is set."""
        if self.state is not OrchestratorState.STEADY_STATE or self.watcher is None:
            raise RuntimeError("initialize() must succeed before run()")

        watcher = self.watcher
        watcher.start()
        try:
            while not stop_event.is_set():
                next_event = asyncio.ensure_future(watcher.events.get())
                next_error = asyncio.ensure_future(watcher.errors.get())
                stopped = asyncio.ensure_future(stop_event.wait())
                try:
                    await asyncio.wait(
                        {next_event, next_error, stopped},
                        return_when=asyncio.FIRST_COMPLETED,
                    )
                finally:
                    for waiter in (next_event, next_error, stopped):
                        if not waiter.done():
                            waiter.cancel()

                if next_error.done() and not next_error.cancelled():
                    logger.warning("Watcher error: %s", next_error.result())
                if next_event.done() and not next_event.cancelled():
                    batch = [next_event.result()]
                    while not watcher.events.empty():
                        batch.append(watcher.events.get_nowait())
                    self.handle_events(batch)
        finally:
            await self.shutdown()

    async def shutdown(self) -> None:
        """Close the watcher, wait for in-flight work, flush the registry."""
        if self.state is OrchestratorState.SHUTTING_DOWN:
            return
        self.state = OrchestratorState.SHUTTING_DOWN
        logger.info("Stopping auto-indexer")
        if self.watcher is not None:
            await self.watcher.close()
        await self.dispatcher.drain(self.shutdown_grace)
        try:
            self.flush()
        except PersistenceError as exc:
            logger.error("%s", exc)

    def flush(self) -> None:
        """Save the registry if it changed since the last save."""
        if self._dirty:
            save_autoindex(self.autoindex_path, self.projects)
            self._dirty = False
