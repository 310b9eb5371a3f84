"""Auto-index registry: the durable list of watched projects.

Stored as ``<data-dir>/autoindex``, a JSON array of
``{"name": ..., "path": ..., "hash": ...}`` objects in registration order.
The file is always rewritten whole.
"""

from __future__ import annotations

import json
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class CorruptStateError(Exception):
    """Raised when the autoindex file exists but cannot be decoded."""


class PersistenceError(Exception):
    """Raised when the autoindex file cannot be written."""


class RegistrationError(Exception):
    """Raised when a project cannot be added to the registry."""


# ---------------------------------------------------------------------------
# Model
# ---------------------------------------------------------------------------


@dataclass
class AutoIndexEntry:
    """One tracked project.

    ``fingerprint`` is the directory fingerprint of ``path`` at the time the
    project was last indexed successfully.
    """

    name: str
    path: str
    fingerprint: str

    def to_json(self) -> dict[str, str]:
        return {"name": self.name, "path": self.path, "hash": self.fingerprint}

    @classmethod
    def from_json(cls, data: object) -> AutoIndexEntry:
        if not isinstance(data, dict):
            raise CorruptStateError(f"autoindex entry must be an object, got {data!r}")
        values = []
        for key in ("name", "path", "hash"):
            value = data.get(key)
            if not isinstance(value, str):
                raise CorruptStateError(f"autoindex entry {data!r} has no string '{key}'")
            values.append(value)
        return cls(*values)


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


def load_autoindex(path: Path) -> list[AutoIndexEntry]:
    """Read the registry from *path*; a missing file yields an empty list."""
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return []
    except (OSError, UnicodeDecodeError) as exc:
        raise CorruptStateError(f"cannot read {path}: {exc}") from exc

    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise CorruptStateError(f"cannot decode {path}: {exc}") from exc
    if not isinstance(data, list):
        raise CorruptStateError(f"{path}: expected a JSON array")

    entries: list[AutoIndexEntry] = []
    seen: dict[str, str] = {}
    for item in data:
        entry = AutoIndexEntry.from_json(item)
        if entry.name in seen:
            raise CorruptStateError(
                f"{path}: project '{entry.name}' is listed twice "
                f"({seen[entry.name]} and {entry.path})"
            )
        seen[entry.name] = entry.path
        entries.append(entry)
    return entries


def save_autoindex(path: Path, entries: list[AutoIndexEntry]) -> None:
    """Rewrite *path* with the full registry.

    The content goes to a temporary sibling first and is then moved over the
    target with :func:`os.replace`, so readers see the old or the new file.
    """
    payload = json.dumps([entry.to_json() for entry in entries]) + "\n"
    tmp_name: str | None = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(payload)
        os.replace(tmp_name, path)
        tmp_name = None
    except OSError as exc:
        raise PersistenceError(f"cannot write {path}: {exc}") from exc
    finally:
        if tmp_name is not None:
            Path(tmp_name).unlink(missing_ok=True)


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


def register_project(
    entries: list[AutoIndexEntry],
    name: str,
    path: Path,
    fingerprint: str,
) -> AutoIndexEntry:
    """Add (or refresh) a project in *entries* and return its entry.

    Re-registering a name with the same path only updates the fingerprint,
    keeping its position. A name already bound to another path is rejected.
    """
    if not name:
        raise RegistrationError("project name must not be empty")
    if not path.exists():
        raise RegistrationError(f"{path} does not exist")
    if not path.is_dir():
        raise RegistrationError(f"{path} is not a directory")
    resolved = str(path.resolve())

    for entry in entries:
        if entry.name != name:
            continue
        if entry.path != resolved:
            raise RegistrationError(
                f"project '{name}' is already registered for {entry.path}"
            )
        entry.fingerprint = fingerprint
        return entry

    entry = AutoIndexEntry(name=name, path=resolved, fingerprint=fingerprint)
    entries.append(entry)
    return entry
