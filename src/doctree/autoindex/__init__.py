"""Auto-index: registry of watched projects and the reindex orchestrator."""

from doctree.autoindex.orchestrator import Orchestrator, OrchestratorState, is_parent_dir
from doctree.autoindex.registry import (
    AutoIndexEntry,
    CorruptStateError,
    PersistenceError,
    RegistrationError,
    load_autoindex,
    register_project,
    save_autoindex,
)

__all__ = [
    "AutoIndexEntry",
    "CorruptStateError",
    "Orchestrator",
    "OrchestratorState",
    "PersistenceError",
    "RegistrationError",
    "is_parent_dir",
    "load_autoindex",
    "register_project",
    "save_autoindex",
]
