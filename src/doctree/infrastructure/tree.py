"""Source-tree walking shared by the fingerprinter and the index engine."""

from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator

# Dependency, build and cache directories never worth indexing.
SKIP_DIRS = frozenset(
    {
        "node_modules",
        "__pycache__",
        "venv",
        "target",
        "dist",
        "build",
        "elm-stuff",
        "vendor",
    }
)


def _skip_dir(name: str) -> bool:
    return name.startswith(".") or name in SKIP_DIRS


def iter_tree_files(root: Path) -> Iterator[Path]:
    """Yield every regular file under *root* in a stable (sorted) order.

    Hidden directories and :data:`SKIP_DIRS` are pruned. Hidden files are
    kept: dotfiles such as ``.gitignore`` are part of a project's content.
    Symlinked directories are not followed.
    """
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if not _skip_dir(d))
        base = Path(dirpath)
        for name in sorted(filenames):
            path = base / name
            if path.is_file():
                yield path
