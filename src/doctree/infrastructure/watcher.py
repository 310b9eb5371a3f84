"""Filesystem watch adapter: directory change notifications as two async streams.

Backed by ``watchfiles.watch``, driven from a worker thread. Watching is
shallow unless ``recursive`` is set: changes inside nested subdirectories of
a shallow watch are not seen.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from doctree.config import DEFAULT_DEBOUNCE_MS

if TYPE_CHECKING:
    from collections.abc import Generator, Iterable

logger = logging.getLogger(__name__)

# Seconds to wait before re-arming the underlying watcher after a failure.
RESTART_BACKOFF = 1.0

# Upper bound on one blocking wait for changes, in milliseconds.
POLL_TIMEOUT_MS = 250

# watchfiles.Change values: 1=added, 2=modified, 3=deleted
_OPERATIONS = {1: "added", 2: "modified", 3: "deleted"}


class WatchSetupError(Exception):
    """Raised when a directory cannot be monitored."""


class WatchAdapterError(Exception):
    """Reported on the error stream when the underlying watcher fails."""


@dataclass(frozen=True)
class WatchEvent:
    """A single filesystem change notification."""

    path: str
    operation: str  # "added" | "modified" | "deleted"


class DirectoryWatcher:
    """Monitor a set of directories.

    Exposes two independent queues, ``events`` (:class:`WatchEvent`) and
    ``errors`` (:class:`WatchAdapterError`), both fed until :meth:`close`.

    Every path is validated up front: a missing path or a non-directory raises
    :class:`WatchSetupError` instead of being skipped. :meth:`arm` creates the
    OS-level watch and raises :class:`WatchSetupError` if that fails; only
    failures after a successful arm go to ``errors``.
    """

    def __init__(
        self,
        paths: Iterable[Path],
        *,
        recursive: bool = False,
        debounce_ms: int = DEFAULT_DEBOUNCE_MS,
    ) -> None:
        self.paths: list[Path] = []
        for raw in paths:
            path = Path(raw)
            if not path.exists():
                raise WatchSetupError(f"cannot watch {path}: no such directory")
            if not path.is_dir():
                raise WatchSetupError(f"cannot watch {path}: not a directory")
            self.paths.append(path)

        self.recursive = recursive
        self.debounce_ms = debounce_ms
        self.events: asyncio.Queue[WatchEvent] = asyncio.Queue()
        self.errors: asyncio.Queue[WatchAdapterError] = asyncio.Queue()
        self._stop = threading.Event()
        self._changes: Generator[set[tuple[int, str]], None, None] | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def armed(self) -> bool:
        return self._changes is not None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def arm(self) -> None:
        """Create the OS-level watch now, blocking for at most one poll."""
        if self._changes is not None or not self.paths:
            return
        self._changes, first = self._open()
        if first:
            self._publish(first)

    def start(self) -> None:
        """Begin monitoring. Must be called from a running event loop."""
        if self._task is not None:
            return
        if not self.paths:
            logger.info("No directories to watch")
            return
        logger.info(
            "Watching %d dir(s)%s: %s",
            len(self.paths),
            " recursively" if self.recursive else "",
            ", ".join(str(p) for p in self.paths),
        )
        self._task = asyncio.create_task(self._pump(), name="directory-watcher")

    async def close(self) -> None:
        """Stop monitoring; safe to call more than once."""
        self._stop.set()
        if self._task is not None:
            await self._task
        self._release()

    def _open(self) -> tuple[Generator[set[tuple[int, str]], None, None], set[tuple[int, str]]]:
        from watchfiles import watch

        changes = watch(
            *self.paths,
            debounce=self.debounce_ms,
            stop_event=self._stop,
            recursive=self.recursive,
            rust_timeout=POLL_TIMEOUT_MS,
            yield_on_timeout=True,
        )
        try:
            # The OS watch is created on the first step of the generator.
            first = next(changes, set())
        except (OSError, RuntimeError) as exc:
            changes.close()
            names = ", ".join(str(p) for p in self.paths)
            raise WatchSetupError(f"cannot watch {names}: {exc}") from exc
        return changes, first

    def _release(self) -> None:
        if self._changes is not None:
            self._changes.close()
            self._changes = None

    def _publish(self, changes: set[tuple[int, str]]) -> None:
        for change, path_str in sorted(changes, key=lambda c: c[1]):
            event = WatchEvent(path=path_str, operation=_OPERATIONS.get(int(change), "modified"))
            self.events.put_nowait(event)

    def _report(self, exc: Exception) -> None:
        self.errors.put_nowait(WatchAdapterError(str(exc) or type(exc).__name__))

    async def _pump(self) -> None:
        while not self._stop.is_set():
            if self._changes is None:
                try:
                    self._changes, first = await asyncio.to_thread(self._open)
                except WatchSetupError as exc:
                    self._report(exc)
                    await asyncio.to_thread(self._stop.wait, RESTART_BACKOFF)
                    continue
            else:
                try:
                    first = await asyncio.to_thread(next, self._changes, None)
                except Exception as exc:  # any watcher failure goes to the error stream
                    self._release()
                    if self._stop.is_set():
                        break
                    self._report(exc)
                    await asyncio.to_thread(self._stop.wait, RESTART_BACKOFF)
                    continue
                if first is None:
                    break
            if first:
                self._publish(first)
