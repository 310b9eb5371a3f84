"""Process host for ``doctree serve``: auto-indexer plus HTTP listener."""

from __future__ import annotations

import asyncio
import logging
import signal
import threading
from typing import TYPE_CHECKING

import uvicorn

from doctree.autoindex.orchestrator import Orchestrator
from doctree.config import parse_address
from doctree.indexer.engine import SqliteIndexEngine
from doctree.services.frontend import frontend_from_env
from doctree.services.web import create_app

if TYPE_CHECKING:
    from fastapi import FastAPI

    from doctree.config import ServeConfig

logger = logging.getLogger(__name__)


class HostError(Exception):
    """Raised when a serving component stops on its own."""


def build_orchestrator(config: ServeConfig, engine: SqliteIndexEngine) -> Orchestrator:
    return Orchestrator(
        config.autoindex_path,
        engine,
        recursive=config.recursive_watch,
        debounce_ms=config.debounce_ms,
        max_concurrent=config.max_concurrent_reindexes,
        shutdown_grace=config.shutdown_grace,
    )


def serve(config: ServeConfig) -> None:
    """Reconcile auto-indexed projects, then serve until SIGINT/SIGTERM.

    Startup reconciliation runs before the HTTP listener exists: if it
    raises, nothing is served.
    """
    engine = SqliteIndexEngine(config.index_dir)
    orchestrator = build_orchestrator(config, engine)
    orchestrator.initialize()

    app = create_app(engine, cloud_mode=config.cloud_mode, frontend=frontend_from_env())
    asyncio.run(_run(orchestrator, app, config))


def _install_signal_handlers(stop_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, stop_event.set)
        except NotImplementedError:
            # Windows event loops have no add_signal_handler.
            signal.signal(signum, lambda *_: loop.call_soon_threadsafe(stop_event.set))


async def _run(orchestrator: Orchestrator, app: FastAPI, config: ServeConfig) -> None:
    host, port = parse_address(config.http)
    stop_event = asyncio.Event()
    _install_signal_handlers(stop_event)

    # uvicorn only installs its own signal handlers on the main thread, so
    # running it on a worker thread leaves shutdown to us.
    server = uvicorn.Server(
        uvicorn.Config(
            app,
            host=host,
            port=port,
            log_config=None,
            lifespan="off",
            timeout_graceful_shutdown=max(1, int(config.shutdown_grace)),
        )
    )
    http_thread = threading.Thread(target=server.run, name="http", daemon=True)
    logger.info("Listening on %s", config.http)
    http_thread.start()

    indexer = asyncio.create_task(orchestrator.run(stop_event), name="auto-indexer")
    http_done = asyncio.ensure_future(asyncio.to_thread(http_thread.join))
    stopped = asyncio.ensure_future(stop_event.wait())

    await asyncio.wait({indexer, http_done, stopped}, return_when=asyncio.FIRST_COMPLETED)
    http_failed = http_done.done() and not stop_event.is_set()

    logger.info("Shutting down")
    stop_event.set()
    server.should_exit = True
    try:
        await asyncio.wait_for(indexer, config.shutdown_grace + 5.0)
    except asyncio.TimeoutError:
        logger.warning("Auto-indexer did not stop in time")
    except Exception as exc:
        logger.error("Auto-indexer stopped: %s", exc)
    await asyncio.wait({http_done}, timeout=config.shutdown_grace)
    stopped.cancel()

    if http_failed:
        raise HostError(f"HTTP server on {config.http} exited unexpectedly")
