"""Index engine: turn a source tree into a persisted documentation index.

All projects share one SQLite database under the index directory. A project
is replaced inside a single transaction; with WAL journaling the HTTP layer
keeps reading the previous index until the new one is committed.
"""

from __future__ import annotations

import hashlib
import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

from doctree.indexer.markdown import MARKDOWN_EXTENSIONS, Section, chunk_markdown
from doctree.infrastructure.db import SCHEMA_VERSION, create_schema, get_meta, open_db, set_meta
from doctree.infrastructure.tree import iter_tree_files

logger = logging.getLogger(__name__)

DB_FILENAME = "doctree.db"
DEFAULT_SEARCH_LIMIT = 100

_LANGUAGES: dict[str, str] = {
    ".md": "markdown",
    ".markdown": "markdown",
    ".rst": "restructuredtext",
    ".txt": "text",
    ".py": "python",
    ".go": "go",
    ".rs": "rust",
    ".js": "javascript",
    ".jsx": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".java": "java",
    ".kt": "kotlin",
    ".swift": "swift",
    ".c": "c",
    ".h": "c",
    ".cpp": "cpp",
    ".hpp": "cpp",
    ".cs": "csharp",
    ".rb": "ruby",
    ".zig": "zig",
    ".elm": "elm",
}


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class IndexEngineError(Exception):
    """Raised when an index cannot be built or read."""


class IndexNotFoundError(IndexEngineError):
    """Raised when no index exists for a project name."""


# ---------------------------------------------------------------------------
# Contract
# ---------------------------------------------------------------------------


@dataclass
class IndexResult:
    """Summary of one indexing run."""

    files_indexed: int = 0
    sections_indexed: int = 0


class IndexEngine(Protocol):
    """Anything that can (re)index a project directory under a name."""

    def index_project(self, name: str, path: Path) -> IndexResult: ...


# ---------------------------------------------------------------------------
# SQLite implementation
# ---------------------------------------------------------------------------


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SqliteIndexEngine:
    """Index engine persisting to ``<index_dir>/doctree.db``."""

    def __init__(self, index_dir: Path) -> None:
        self.index_dir = index_dir
        self.db_path = index_dir / DB_FILENAME

    def _connect(self) -> sqlite3.Connection:
        try:
            self.index_dir.mkdir(parents=True, exist_ok=True)
            conn = open_db(self.db_path)
            create_schema(conn)
            version = get_meta(conn, "schema_version")
            if version is None:
                set_meta(conn, "schema_version", SCHEMA_VERSION)
        except (OSError, sqlite3.Error) as exc:
            raise IndexEngineError(f"cannot open index database {self.db_path}: {exc}") from exc
        if version is not None and version != SCHEMA_VERSION:
            conn.close()
            raise IndexEngineError(
                f"index database {self.db_path} has schema version {version}, "
                f"expected {SCHEMA_VERSION}; delete it to rebuild"
            )
        return conn

    # -- writing -------------------------------------------------------------

    def index_project(self, name: str, path: Path) -> IndexResult:
        """Rebuild the index of project *name* from the tree at *path*."""
        if not name:
            raise IndexEngineError("project name must not be empty")
        if not path.is_dir():
            raise IndexEngineError(f"cannot index {path}: not a directory")

        files: list[tuple[str, str, str, list[Section]]] = []
        for file_path in iter_tree_files(path):
            language = _LANGUAGES.get(file_path.suffix.lower())
            if language is None:
                continue
            try:
                data = file_path.read_bytes()
            except OSError:
                logger.debug("Could not read %s", file_path)
                continue
            sections: list[Section] = []
            if file_path.suffix.lower() in MARKDOWN_EXTENSIONS:
                try:
                    sections = chunk_markdown(data.decode("utf-8"))
                except UnicodeDecodeError:
                    logger.debug("Skipping sections of non-UTF-8 file %s", file_path)
            rel = file_path.relative_to(path).as_posix()
            files.append((rel, language, hashlib.sha256(data).hexdigest(), sections))

        result = IndexResult()
        now = datetime.now(tz=timezone.utc).isoformat()
        conn = self._connect()
        try:
            with conn:
                conn.execute("DELETE FROM projects WHERE name = ?", (name,))
                conn.execute(
                    "INSERT INTO projects (name, path, indexed_at) VALUES (?, ?, ?)",
                    (name, str(path), now),
                )
                for rel, language, file_hash, sections in files:
                    cursor = conn.execute(
                        "INSERT INTO files (project, path, language, hash) VALUES (?, ?, ?, ?)",
                        (name, rel, language, file_hash),
                    )
                    result.files_indexed += 1
                    for section in sections:
                        conn.execute(
                            "INSERT INTO sections (file_id, chunk_index, heading, content) "
                            "VALUES (?, ?, ?, ?)",
                            (cursor.lastrowid, section.index, section.heading, section.content),
                        )
                        result.sections_indexed += 1
        except sqlite3.Error as exc:
            raise IndexEngineError(f"failed to write index for {name}: {exc}") from exc
        finally:
            conn.close()

        logger.info(
            "Indexed %s: %d file(s), %d section(s)",
            name,
            result.files_indexed,
            result.sections_indexed,
        )
        return result

    # -- reading -------------------------------------------------------------

    def list_indexes(self) -> list[dict[str, Any]]:
        """Return a summary of every indexed project, ordered by name."""
        conn = self._connect()
        try:
            projects = conn.execute(
                "SELECT p.name, p.path, p.indexed_at, "
                "(SELECT COUNT(*) FROM files f WHERE f.project = p.name) AS files, "
                "(SELECT COUNT(*) FROM sections s JOIN files f ON s.file_id = f.id "
                " WHERE f.project = p.name) AS sections "
                "FROM projects p ORDER BY p.name"
            ).fetchall()
            languages: dict[str, list[str]] = {}
            for row in conn.execute(
                "SELECT DISTINCT project, language FROM files ORDER BY project, language"
            ):
                languages.setdefault(row["project"], []).append(row["language"])
        except sqlite3.Error as exc:
            raise IndexEngineError(f"failed to list indexes: {exc}") from exc
        finally:
            conn.close()

        return [
            {
                "name": row["name"],
                "path": row["path"],
                "indexed_at": row["indexed_at"],
                "files": row["files"],
                "sections": row["sections"],
                "languages": languages.get(row["name"], []),
            }
            for row in projects
        ]

    def get_index(self, name: str) -> dict[str, Any]:
        """Return the full index of project *name*."""
        conn = self._connect()
        try:
            project = conn.execute(
                "SELECT name, path, indexed_at FROM projects WHERE name = ?", (name,)
            ).fetchone()
            if project is None:
                raise IndexNotFoundError(f"no index found for project '{name}'")
            files = conn.execute(
                "SELECT path, language FROM files WHERE project = ? ORDER BY path", (name,)
            ).fetchall()
            sections = conn.execute(
                "SELECT f.path, s.heading, s.content FROM sections s "
                "JOIN files f ON s.file_id = f.id WHERE f.project = ? "
                "ORDER BY f.path, s.chunk_index",
                (name,),
            ).fetchall()
        except sqlite3.Error as exc:
            raise IndexEngineError(f"failed to read index for {name}: {exc}") from exc
        finally:
            conn.close()

        languages: dict[str, list[str]] = {}
        for row in files:
            languages.setdefault(row["language"], []).append(row["path"])
        return {
            "name": project["name"],
            "path": project["path"],
            "indexed_at": project["indexed_at"],
            "languages": languages,
            "sections": [
                {"path": row["path"], "heading": row["heading"], "content": row["content"]}
                for row in sections
            ],
        }

    def search(self, query: str, limit: int = DEFAULT_SEARCH_LIMIT) -> list[dict[str, Any]]:
        """Case-insensitive substring search over sections and file paths.

        Section hits come first (heading matches before content-only matches),
        then file path hits. An empty query matches nothing.
        """
        query = query.strip()
        if not query:
            return []
        pattern = f"%{_escape_like(query)}%"

        conn = self._connect()
        try:
            sections = conn.execute(
                "SELECT f.project, f.path, s.heading, s.content, "
                "(s.heading LIKE :p ESCAPE '\\') AS heading_hit "
                "FROM sections s JOIN files f ON s.file_id = f.id "
                "WHERE s.heading LIKE :p ESCAPE '\\' OR s.content LIKE :p ESCAPE '\\' "
                "ORDER BY heading_hit DESC, f.project, f.path, s.chunk_index "
                "LIMIT :limit",
                {"p": pattern, "limit": limit},
            ).fetchall()
            remaining = limit - len(sections)
            files = []
            if remaining > 0:
                files = conn.execute(
                    "SELECT project, path, language FROM files "
                    "WHERE path LIKE :p ESCAPE '\\' ORDER BY project, path LIMIT :limit",
                    {"p": pattern, "limit": remaining},
                ).fetchall()
        except sqlite3.Error as exc:
            raise IndexEngineError(f"search failed: {exc}") from exc
        finally:
            conn.close()

        results: list[dict[str, Any]] = [
            {
                "kind": "section",
                "project": row["project"],
                "path": row["path"],
                "heading": row["heading"],
                "excerpt": _excerpt(row["content"], query),
            }
            for row in sections
        ]
        results.extend(
            {
                "kind": "file",
                "project": row["project"],
                "path": row["path"],
                "language": row["language"],
            }
            for row in files
        )
        return results


def _excerpt(content: str, query: str, width: int = 160) -> str:
    """Return a window of *content* around the first match of *query*."""
    pos = content.lower().find(query.lower())
    if pos < 0:
        return content[:width]
    start = max(0, pos - width // 2)
    snippet = content[start : start + width]
    return ("…" if start else "") + snippet
