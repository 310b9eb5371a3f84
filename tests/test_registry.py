"""Tests for doctree.autoindex.registry."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest

from doctree.autoindex.registry import (
    AutoIndexEntry,
    CorruptStateError,
    PersistenceError,
    RegistrationError,
    load_autoindex,
    register_project,
    save_autoindex,
)

if TYPE_CHECKING:
    from pathlib import Path


class TestLoad:
    def test_missing_file_is_empty(self, tmp_path: Path) -> None:
        assert load_autoindex(tmp_path / "autoindex") == []

    def test_reads_entries_in_order(self, tmp_path: Path) -> None:
        path = tmp_path / "autoindex"
        path.write_text(
            json.dumps(
                [
                    {"name": "b", "path": "/src/b", "hash": "h2"},
                    {"name": "a", "path": "/src/a", "hash": "h1"},
                ]
            ),
            encoding="utf-8",
        )
        entries = load_autoindex(path)
        assert [e.name for e in entries] == ["b", "a"]
        assert entries[1] == AutoIndexEntry(name="a", path="/src/a", fingerprint="h1")

    @pytest.mark.parametrize(
        "content",
        [
            "not json",
            '{"name": "a"}',
            '[{"name": "a", "path": "/src/a"}]',
            '[{"name": 1, "path": "/src/a", "hash": "h"}]',
            "[42]",
        ],
    )
    def test_corrupt(self, tmp_path: Path, content: str) -> None:
        path = tmp_path / "autoindex"
        path.write_text(content, encoding="utf-8")
        with pytest.raises(CorruptStateError):
            load_autoindex(path)

    def test_duplicate_name(self, tmp_path: Path) -> None:
        path = tmp_path / "autoindex"
        path.write_text(
            json.dumps(
                [
                    {"name": "a", "path": "/src/a", "hash": "h1"},
                    {"name": "a", "path": "/src/b", "hash": "h2"},
                ]
            ),
            encoding="utf-8",
        )
        with pytest.raises(CorruptStateError, match="'a' is listed twice"):
            load_autoindex(path)

    def test_same_path_under_two_names(self, tmp_path: Path) -> None:
        path = tmp_path / "autoindex"
        path.write_text(
            json.dumps(
                [
                    {"name": "a", "path": "/src/a", "hash": "h1"},
                    {"name": "mirror", "path": "/src/a", "hash": "h1"},
                ]
            ),
            encoding="utf-8",
        )
        assert [e.name for e in load_autoindex(path)] == ["a", "mirror"]

    def test_directory_in_place_of_file(self, tmp_path: Path) -> None:
        path = tmp_path / "autoindex"
        path.mkdir()
        with pytest.raises(CorruptStateError):
            load_autoindex(path)


class TestSave:
    def test_save_then_load(self, tmp_path: Path) -> None:
        path = tmp_path / "autoindex"
        entries = [
            AutoIndexEntry(name="a", path="/src/a", fingerprint="h1"),
            AutoIndexEntry(name="b", path="/src/b", fingerprint="h2"),
        ]
        save_autoindex(path, entries)
        assert load_autoindex(path) == entries

    def test_on_disk_format(self, tmp_path: Path) -> None:
        path = tmp_path / "autoindex"
        save_autoindex(path, [AutoIndexEntry(name="a", path="/src/a", fingerprint="h1")])
        assert json.loads(path.read_text(encoding="utf-8")) == [
            {"name": "a", "path": "/src/a", "hash": "h1"}
        ]

    def test_rewrites_whole_file(self, tmp_path: Path) -> None:
        path = tmp_path / "autoindex"
        save_autoindex(path, [AutoIndexEntry(name="a", path="/src/a", fingerprint="h1")])
        save_autoindex(path, [])
        assert load_autoindex(path) == []

    def test_creates_data_dir(self, tmp_path: Path) -> None:
        path = tmp_path / "nested" / "data" / "autoindex"
        save_autoindex(path, [])
        assert path.is_file()

    def test_leaves_no_temp_files(self, tmp_path: Path) -> None:
        path = tmp_path / "autoindex"
        save_autoindex(path, [AutoIndexEntry(name="a", path="/src/a", fingerprint="h1")])
        assert [p.name for p in tmp_path.iterdir()] == ["autoindex"]

    def test_unwritable_location(self, tmp_path: Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("", encoding="utf-8")
        with pytest.raises(PersistenceError):
            save_autoindex(blocker / "autoindex", [])


class TestRegister:
    def test_appends(self, tmp_path: Path) -> None:
        (tmp_path / "a").mkdir()
        entries: list[AutoIndexEntry] = []
        entry = register_project(entries, "a", tmp_path / "a", "h1")
        assert entries == [entry]
        assert entry.path == str((tmp_path / "a").resolve())

    def test_same_path_updates_fingerprint(self, tmp_path: Path) -> None:
        (tmp_path / "a").mkdir()
        (tmp_path / "b").mkdir()
        entries: list[AutoIndexEntry] = []
        register_project(entries, "a", tmp_path / "a", "h1")
        register_project(entries, "b", tmp_path / "b", "h2")
        register_project(entries, "a", tmp_path / "a", "h3")
        assert [(e.name, e.fingerprint) for e in entries] == [("a", "h3"), ("b", "h2")]

    def test_name_taken_by_other_path(self, tmp_path: Path) -> None:
        (tmp_path / "a").mkdir()
        (tmp_path / "b").mkdir()
        entries: list[AutoIndexEntry] = []
        register_project(entries, "a", tmp_path / "a", "h1")
        with pytest.raises(RegistrationError, match="already registered"):
            register_project(entries, "a", tmp_path / "b", "h2")

    def test_missing_path(self, tmp_path: Path) -> None:
        with pytest.raises(RegistrationError, match="does not exist"):
            register_project([], "a", tmp_path / "missing", "h1")

    def test_file_path(self, tmp_path: Path) -> None:
        file_path = tmp_path / "file.txt"
        file_path.write_text("x", encoding="utf-8")
        with pytest.raises(RegistrationError, match="not a directory"):
            register_project([], "a", file_path, "h1")

    def test_empty_name(self, tmp_path: Path) -> None:
        with pytest.raises(RegistrationError):
            register_project([], "", tmp_path, "h1")
