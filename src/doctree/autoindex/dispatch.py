"""Reindex dispatch: single-flight per project, bounded engine concurrency."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from doctree.autoindex.registry import AutoIndexEntry
    from doctree.indexer.engine import IndexEngine

logger = logging.getLogger(__name__)


class ReindexDispatcher:
    """Run the index engine for triggered projects off the event loop.

    A trigger for a project that is already being reindexed does not start a
    second run; the project is marked dirty and reindexed once more when the
    current run finishes. At most ``max_concurrent`` engine invocations are in
    flight at any time.

    Engine failures are logged and swallowed. Nothing is retried until the
    next trigger.
    """

    def __init__(self, engine: IndexEngine, *, max_concurrent: int = 1) -> None:
        self._engine = engine
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._inflight: dict[str, asyncio.Task[None]] = {}
        self._dirty: set[str] = set()
        self._closing = False
        self.completed = 0
        self.failed = 0

    @property
    def busy(self) -> bool:
        return bool(self._inflight)

    def trigger(self, entry: AutoIndexEntry) -> None:
        """Request a reindex of *entry*. Must be called from the event loop."""
        if self._closing:
            logger.debug("Dispatcher closing, dropped reindex of %s", entry.name)
            return
        if entry.name in self._inflight:
            logger.debug("Reindex of %s already running, queued one more", entry.name)
            self._dirty.add(entry.name)
            return
        self._inflight[entry.name] = asyncio.create_task(
            self._run(entry.name, entry.path), name=f"reindex-{entry.name}"
        )

    async def _run(self, name: str, path: str) -> None:
        try:
            while True:
                self._dirty.discard(name)
                async with self._semaphore:
                    logger.info("Reindexing %s (%s)", name, path)
                    try:
                        await asyncio.to_thread(self._engine.index_project, name, Path(path))
                    except Exception as exc:
                        self.failed += 1
                        logger.error("Reindexing %s failed: %s", name, exc)
                    else:
                        self.completed += 1
                if name not in self._dirty or self._closing:
                    break
        finally:
            self._inflight.pop(name, None)

    async def wait_idle(self) -> None:
        """Wait until no reindex is running or pending."""
        while self._inflight:
            await asyncio.wait(list(self._inflight.values()))

    async def drain(self, timeout: float) -> bool:
        """Stop accepting triggers and wait up to *timeout* seconds for runs.

        Returns ``False`` if some runs were still going and got cancelled. A
        cancelled run's worker thread cannot be interrupted; its result is
        discarded.
        """
        self._closing = True
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while self._inflight:
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            await asyncio.wait(list(self._inflight.values()), timeout=remaining)
        if not self._inflight:
            return True

        pending = sorted(self._inflight)
        tasks = list(self._inflight.values())
        for task in tasks:
            task.cancel()
        await asyncio.wait(tasks)
        logger.warning("Abandoned in-flight reindex of: %s", ", ".join(pending))
        return False
