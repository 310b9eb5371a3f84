"""Tests for doctree.indexer.engine (SQLite index engine)."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from doctree.indexer.engine import IndexEngineError, IndexNotFoundError, SqliteIndexEngine
from doctree.infrastructure.db import SCHEMA_VERSION, get_meta, open_db, set_meta

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture()
def sqlite_engine(tmp_path: Path) -> SqliteIndexEngine:
    return SqliteIndexEngine(tmp_path / "data" / "index")


class TestIndexProject:
    def test_counts(self, sqlite_engine: SqliteIndexEngine, docs_project: Path) -> None:
        result = sqlite_engine.index_project("proj", docs_project)
        # README.md, docs/usage.md, main.py; node_modules is skipped.
        assert result.files_indexed == 3
        assert result.sections_indexed == 4
        assert sqlite_engine.db_path.is_file()

    def test_reindex_replaces(self, sqlite_engine: SqliteIndexEngine, docs_project: Path) -> None:
        sqlite_engine.index_project("proj", docs_project)
        (docs_project / "docs" / "usage.md").unlink()
        sqlite_engine.index_project("proj", docs_project)

        index = sqlite_engine.get_index("proj")
        paths = {s["path"] for s in index["sections"]}
        assert paths == {"README.md"}

    def test_not_a_directory(self, sqlite_engine: SqliteIndexEngine, tmp_path: Path) -> None:
        with pytest.raises(IndexEngineError, match="not a directory"):
            sqlite_engine.index_project("x", tmp_path / "missing")

    def test_empty_name(self, sqlite_engine: SqliteIndexEngine, docs_project: Path) -> None:
        with pytest.raises(IndexEngineError):
            sqlite_engine.index_project("", docs_project)

    def test_projects_are_independent(
        self, sqlite_engine: SqliteIndexEngine, docs_project: Path, tmp_path: Path
    ) -> None:
        other = tmp_path / "other"
        other.mkdir()
        (other / "notes.md").write_text("## Notes\n\nSomething.\n", encoding="utf-8")
        sqlite_engine.index_project("proj", docs_project)
        sqlite_engine.index_project("other", other)
        sqlite_engine.index_project("other", other)

        assert [p["name"] for p in sqlite_engine.list_indexes()] == ["other", "proj"]


class TestReading:
    def test_list_indexes(self, sqlite_engine: SqliteIndexEngine, docs_project: Path) -> None:
        sqlite_engine.index_project("proj", docs_project)
        (summary,) = sqlite_engine.list_indexes()
        assert summary["name"] == "proj"
        assert summary["path"] == str(docs_project)
        assert summary["files"] == 3
        assert summary["sections"] == 4
        assert summary["languages"] == ["markdown", "python"]

    def test_list_empty(self, sqlite_engine: SqliteIndexEngine) -> None:
        assert sqlite_engine.list_indexes() == []

    def test_get_index(self, sqlite_engine: SqliteIndexEngine, docs_project: Path) -> None:
        sqlite_engine.index_project("proj", docs_project)
        index = sqlite_engine.get_index("proj")
        assert index["languages"] == {
            "markdown": ["README.md", "docs/usage.md"],
            "python": ["main.py"],
        }
        headings = [s["heading"] for s in index["sections"]]
        assert headings == ["", "Install", "Usage", "Limits"]

    def test_get_unknown(self, sqlite_engine: SqliteIndexEngine) -> None:
        with pytest.raises(IndexNotFoundError, match="no index found for project 'nope'"):
            sqlite_engine.get_index("nope")

    def test_search_sections_and_files(
        self, sqlite_engine: SqliteIndexEngine, docs_project: Path
    ) -> None:
        sqlite_engine.index_project("proj", docs_project)
        hits = sqlite_engine.search("usage")
        kinds = [(h["kind"], h["path"]) for h in hits]
        # Heading hit first, then the file whose path matches.
        assert kinds[0] == ("section", "docs/usage.md")
        assert ("file", "docs/usage.md") in kinds

    def test_search_case_insensitive(
        self, sqlite_engine: SqliteIndexEngine, docs_project: Path
    ) -> None:
        sqlite_engine.index_project("proj", docs_project)
        hits = sqlite_engine.search("WIDGET")
        assert {h["heading"] for h in hits if h["kind"] == "section"} == {"Usage", "Limits"}

    def test_search_wildcards_are_literal(
        self, sqlite_engine: SqliteIndexEngine, docs_project: Path
    ) -> None:
        sqlite_engine.index_project("proj", docs_project)
        assert sqlite_engine.search("%") == []

    def test_search_empty_query(self, sqlite_engine: SqliteIndexEngine) -> None:
        assert sqlite_engine.search("") == []


class TestSchemaVersion:
    def test_recorded_on_first_open(self, sqlite_engine: SqliteIndexEngine) -> None:
        assert sqlite_engine.list_indexes() == []
        conn = open_db(sqlite_engine.db_path)
        assert get_meta(conn, "schema_version") == SCHEMA_VERSION
        conn.close()

    def test_mismatch_refuses_to_open(
        self, sqlite_engine: SqliteIndexEngine, docs_project: Path
    ) -> None:
        sqlite_engine.index_project("proj", docs_project)
        conn = open_db(sqlite_engine.db_path)
        set_meta(conn, "schema_version", "0")
        conn.close()

        with pytest.raises(IndexEngineError, match="schema version 0"):
            sqlite_engine.list_indexes()
        with pytest.raises(IndexEngineError, match="schema version 0"):
            sqlite_engine.index_project("proj", docs_project)
