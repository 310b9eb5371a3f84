"""Shared test fixtures for doctree."""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

import pytest

from doctree.indexer.engine import IndexEngineError, IndexResult

if TYPE_CHECKING:
    from pathlib import Path


class FakeEngine:
    """Index engine double recording every ``index_project`` call."""

    def __init__(self, *, fail: set[str] | None = None, delay: float = 0.0) -> None:
        self.calls: list[tuple[str, str]] = []
        self.fail = fail or set()
        self.delay = delay
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def index_project(self, name: str, path: Path) -> IndexResult:
        with self._lock:
            self.calls.append((name, str(path)))
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                threading.Event().wait(self.delay)
            if name in self.fail:
                raise IndexEngineError(f"boom: {name}")
            return IndexResult(files_indexed=1)
        finally:
            with self._lock:
                self.active -= 1


@pytest.fixture()
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture()
def make_engine() -> type[FakeEngine]:
    """Engine factory for tests that need failures or slow runs."""
    return FakeEngine


@pytest.fixture()
def docs_project(tmp_path: Path) -> Path:
    """Create a small source tree with Markdown docs and code."""
    root = tmp_path / "src" / "proj"
    (root / "docs").mkdir(parents=True)
    (root / "README.md").write_text(
        "# Proj\n\nA sample project.\n\n## Install\n\nRun make install.\n",
        encoding="utf-8",
    )
    (root / "docs" / "usage.md").write_text(
        "## Usage\n\nCall the widget API.\n\n## Limits\n\nNo more than ten widgets.\n",
        encoding="utf-8",
    )
    (root / "main.py").write_text("print('hello')\n", encoding="utf-8")
    (root / "node_modules").mkdir()
    (root / "node_modules" / "dep.js").write_text("module.exports = 1;\n", encoding="utf-8")
    return root
