"""Service layer helpers (workspace files, storage, settings).

Settings live in :mod:`redline.services.settings` and are imported from there.
"""

from .file_tree import FileNode, FileTree, StoredDocument, build_file_tree
from .workspace_store import InMemoryWorkspaceStore, WorkspaceNotFoundError

__all__ = [
    "FileNode",
    "FileTree",
    "InMemoryWorkspaceStore",
    "StoredDocument",
    "WorkspaceNotFoundError",
    "build_file_tree",
]
