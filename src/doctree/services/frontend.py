"""Single-page client hosting: embedded assets or a development proxy."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

import httpx
from fastapi.responses import FileResponse, Response

from doctree.config import ConfigError

if TYPE_CHECKING:
    from fastapi import Request

logger = logging.getLogger(__name__)

EMBEDDED_ASSETS_DIR = Path(__file__).resolve().parent.parent / "frontend" / "public"

# Environment toggles for development mode.
DEBUG_SERVER_ENV = "DOCTREE_DEBUG_SERVER"
FRONTEND_DIR_ENV = "DOCTREE_FRONTEND_DIR"
DEFAULT_FRONTEND_SOURCE = Path("frontend") / "public"

# Headers that must not be forwarded by a proxy (RFC 9110 section 7.6.1).
_HOP_BY_HOP = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailer",
        "transfer-encoding",
        "upgrade",
    }
)


class Frontend(Protocol):
    async def serve(self, request: Request) -> Response: ...


class EmbeddedFrontend:
    """Serve assets from a directory, falling back to ``index.html``.

    A path naming no asset (for instance ``/github.com/org/repo``) is a
    client-side route, so the SPA root document is returned instead.
    """

    def __init__(self, root: Path = EMBEDDED_ASSETS_DIR) -> None:
        self.root = root.resolve()

    def resolve(self, url_path: str) -> Path:
        """Map a request path to the file that should be served."""
        relative = url_path.lstrip("/")
        if relative:
            try:
                candidate = (self.root / relative).resolve()
            except (OSError, RuntimeError, ValueError):
                # Embedded NUL bytes or symlink loops: not an asset.
                pass
            else:
                if candidate.is_file() and candidate.is_relative_to(self.root):
                    return candidate
        return self.root / "index.html"

    async def serve(self, request: Request) -> Response:
        return FileResponse(self.resolve(request.url.path))


class DevProxyFrontend:
    """Reverse-proxy asset requests to a live-reload development server.

    Paths containing a dot look like file requests to the dev server (e.g.
    ``/github.com/org/repo``). When no such file exists in the frontend
    source directory the request is rewritten to ``/`` with the original
    path folded into the query string, so the client router still sees it.
    """

    def __init__(
        self,
        upstream: str,
        source_dir: Path = DEFAULT_FRONTEND_SOURCE,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        try:
            url = httpx.URL(upstream)
        except httpx.InvalidURL as exc:
            raise ConfigError(f"invalid {DEBUG_SERVER_ENV} URL: {upstream!r}") from exc
        if url.scheme not in ("http", "https") or not url.host:
            raise ConfigError(f"invalid {DEBUG_SERVER_ENV} URL: {upstream!r}")
        self.upstream = url
        self.source_dir = source_dir
        self._transport = transport

    def rewrite(self, path: str, query: str) -> tuple[str, str]:
        """Return the ``(path, query)`` to request from the upstream server."""
        if (self.source_dir / path.lstrip("/")).exists():
            return path, query
        return "/", f"{path}&{query}"

    async def serve(self, request: Request) -> Response:
        path, query = self.rewrite(request.url.path, request.url.query)
        target = self.upstream.copy_with(path=path)
        if query:
            target = target.copy_with(query=query.encode())
        headers = {
            key: value
            for key, value in request.headers.items()
            if key.lower() not in _HOP_BY_HOP and key.lower() != "host"
        }
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=30.0) as client:
                upstream = await client.request(
                    request.method, target, headers=headers, content=await request.body()
                )
        except httpx.HTTPError as exc:
            logger.warning("Dev server request to %s failed: %s", target, exc)
            return Response(f"dev server unavailable: {exc}", status_code=502)

        # httpx already decoded the body, so drop encoding/length headers.
        response_headers = {
            key: value
            for key, value in upstream.headers.items()
            if key.lower() not in _HOP_BY_HOP
            and key.lower() not in ("content-encoding", "content-length")
        }
        return Response(
            upstream.content, status_code=upstream.status_code, headers=response_headers
        )


def frontend_from_env() -> Frontend:
    """Pick the development proxy when ``DOCTREE_DEBUG_SERVER`` is set."""
    debug_server = os.environ.get(DEBUG_SERVER_ENV)
    if debug_server:
        source_dir = Path(os.environ.get(FRONTEND_DIR_ENV) or DEFAULT_FRONTEND_SOURCE)
        logger.info("Proxying frontend to %s (sources: %s)", debug_server, source_dir)
        return DevProxyFrontend(debug_server, source_dir)
    return EmbeddedFrontend()
