"""Index engine: Markdown sections and file inventory persisted to SQLite."""

from doctree.indexer.engine import (
    IndexEngine,
    IndexEngineError,
    IndexNotFoundError,
    IndexResult,
    SqliteIndexEngine,
)
from doctree.indexer.markdown import Section, chunk_markdown

__all__ = [
    "IndexEngine",
    "IndexEngineError",
    "IndexNotFoundError",
    "IndexResult",
    "Section",
    "SqliteIndexEngine",
    "chunk_markdown",
]
