"""Directory fingerprinting: detect whether a tree changed since last index."""

from __future__ import annotations

import hashlib
import logging
from typing import TYPE_CHECKING

from doctree.infrastructure.tree import iter_tree_files

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

_READ_CHUNK = 1 << 16


def _file_digest(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as fh:
        for block in iter(lambda: fh.read(_READ_CHUNK), b""):
            digest.update(block)
    return digest.hexdigest()


def dir_fingerprint(root: Path) -> str:
    """Return a SHA-256 hex digest summarising the contents of *root*.

    Covers the relative path and content digest of every file yielded by
    :func:`~doctree.infrastructure.tree.iter_tree_files`, so adding, removing,
    renaming or editing a file changes the result. Unreadable files
    contribute their path only.
    """
    digest = hashlib.sha256()
    for path in iter_tree_files(root):
        rel = path.relative_to(root).as_posix()
        digest.update(rel.encode("utf-8", "surrogateescape"))
        digest.update(b"\0")
        try:
            digest.update(_file_digest(path).encode())
        except OSError:
            logger.debug("Could not read %s while fingerprinting", path)
        digest.update(b"\n")
    return digest.hexdigest()
