"""HTTP API and SPA host.

All ``/api`` endpoints are read-only and expose nothing privileged, so they
are readable from any origin.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from fastapi import FastAPI, Request
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from doctree import __version__
from doctree.indexer.engine import IndexEngineError
from doctree.services.frontend import EmbeddedFrontend

if TYPE_CHECKING:
    from collections.abc import Callable

    from doctree.indexer.engine import SqliteIndexEngine
    from doctree.services.frontend import Frontend

logger = logging.getLogger(__name__)

# Smallest response worth compressing.
GZIP_MIN_SIZE = 1400

_CORS_HEADERS = {"Access-Control-Allow-Origin": "*"}


def _api_call(fn: Callable[[], Any]) -> Response:
    """Run an index read and wrap the result (or its error) as a response."""
    try:
        result = fn()
    except IndexEngineError as exc:
        logger.debug("API request failed: %s", exc)
        return PlainTextResponse(str(exc), status_code=500, headers=_CORS_HEADERS)
    return JSONResponse(result, headers=_CORS_HEADERS)


def create_app(
    engine: SqliteIndexEngine,
    *,
    cloud_mode: bool = False,
    frontend: Frontend | None = None,
) -> FastAPI:
    """Build the FastAPI application serving *engine*'s indexes."""
    app = FastAPI(
        title="doctree",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.add_middleware(GZipMiddleware, minimum_size=GZIP_MIN_SIZE)
    frontend = frontend or EmbeddedFrontend()

    @app.get("/main.js")
    def main_js() -> Response:
        flags = json.dumps({"cloudMode": cloud_mode})
        return Response(
            f"DoctreeApp.init({{flags: {flags}}})",
            media_type="application/javascript",
        )

    @app.get("/api/list")
    def api_list() -> Response:
        return _api_call(engine.list_indexes)

    @app.get("/api/get")
    def api_get(name: str = "") -> Response:
        return _api_call(lambda: engine.get_index(name))

    @app.get("/api/search")
    def api_search(query: str = "") -> Response:
        return _api_call(lambda: engine.search(query))

    # Registered last so it only sees paths no other route claimed.
    @app.api_route("/{path:path}", methods=["GET", "HEAD"], include_in_schema=False)
    async def spa(request: Request, path: str) -> Response:
        return await frontend.serve(request)

    return app
