"""Infrastructure: tree walking, fingerprints, index storage and file watching.

``doctree.infrastructure.watcher`` is not re-exported here because it imports
``watchfiles`` lazily and callers import it directly.
"""

from doctree.infrastructure.db import SCHEMA_VERSION, create_schema, open_db, set_meta
from doctree.infrastructure.fingerprint import dir_fingerprint
from doctree.infrastructure.tree import iter_tree_files

__all__ = [
    "SCHEMA_VERSION",
    "create_schema",
    "dir_fingerprint",
    "iter_tree_files",
    "open_db",
    "set_meta",
]
