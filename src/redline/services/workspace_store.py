"""In-memory workspace persistence.

Implements the persistence collaborator consumed by the tool dispatcher for
``fs_*`` tools: ``execute(workspace_id, tool_name, args)`` returns a result
string or raises. Documents are flat rows (``id``, ``title``, ``type``,
``parent_id``, ``content``) grouped per workspace, and files are resolved by
the last segment of the requested path, case-insensitively.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping

from .file_tree import FileTree, StoredDocument, build_file_tree

LOGGER = logging.getLogger(__name__)

_TEXT_SUFFIXES = {".md", ".markdown", ".txt", ".html", ".htm"}
_SEARCH_LIMIT = 5
_SNIPPET_RADIUS = 50


class WorkspaceNotFoundError(LookupError):
    """Raised when a tool targets a workspace the store does not hold."""


class InMemoryWorkspaceStore:
    """Workspace documents kept in memory, keyed by workspace id.

    Example::

        store = InMemoryWorkspaceStore()
        store.add_document("ws", title="PRD.md", content="# PRD")
        await store.execute("ws", "fs_read_file", {"path": "PRD.md"})
    """

    def __init__(self, documents: Mapping[str, Iterable[StoredDocument]] | None = None) -> None:
        self._workspaces: dict[str, list[StoredDocument]] = {
            workspace_id: list(rows) for workspace_id, rows in (documents or {}).items()
        }
        self._handlers: dict[str, Callable[[str, Mapping[str, Any]], str]] = {
            "fs_read_file": self._read_file,
            "fs_list_directory": self._list_files,
            "fs_list_workplace": self._list_files,
            "fs_find_file": self._find_files,
            "fs_search_content": self._search_content,
            "fs_create_file": self._create_file,
            "fs_write_file": self._create_file,
            "fs_update_file": self._update_file,
            "fs_delete_file": self._delete_file,
        }

    @classmethod
    def from_directory(cls, root: Path, workspace_id: str = "local") -> InMemoryWorkspaceStore:
        """Load every text document below ``root`` into one workspace."""
        store = cls()
        store.ensure_workspace(workspace_id)
        folder_ids: dict[Path, str] = {}
        for path in sorted(root.rglob("*")):
            if any(part.startswith(".") for part in path.relative_to(root).parts):
                continue
            parent_id = folder_ids.get(path.parent)
            if path.is_dir():
                folder_ids[path] = store.add_document(
                    workspace_id, title=path.name, type="folder", parent_id=parent_id
                )
            elif path.suffix.lower() in _TEXT_SUFFIXES:
                store.add_document(
                    workspace_id,
                    title=path.name,
                    content=path.read_text(encoding="utf-8"),
                    parent_id=parent_id,
                )
        LOGGER.debug("Loaded %d document(s) from %s", len(store.documents(workspace_id)), root)
        return store

    # ------------------------------------------------------------------
    # Direct access
    # ------------------------------------------------------------------

    def ensure_workspace(self, workspace_id: str) -> None:
        self._workspaces.setdefault(workspace_id, [])

    def documents(self, workspace_id: str) -> tuple[StoredDocument, ...]:
        return tuple(self._rows(workspace_id))

    def file_tree(self, workspace_id: str) -> FileTree:
        """Current workspace contents as an immutable tree."""
        return build_file_tree(self._rows(workspace_id))

    def add_document(
        self,
        workspace_id: str,
        *,
        title: str,
        content: str | None = None,
        type: str = "file",
        parent_id: str | None = None,
    ) -> str:
        self.ensure_workspace(workspace_id)
        row = StoredDocument(
            id=str(uuid.uuid4()),
            title=title,
            type=type,
            parent_id=parent_id,
            content=content,
        )
        self._workspaces[workspace_id].append(row)
        return row.id

    # ------------------------------------------------------------------
    # Collaborator contract
    # ------------------------------------------------------------------

    async def execute(self, workspace_id: str, tool_name: str, args: Mapping[str, Any]) -> str:
        """Run a persistence tool and return its textual result."""
        handler = self._handlers.get(tool_name)
        if handler is None:
            return f"Error: Tool '{tool_name}' not implemented."
        LOGGER.debug("Workspace %s: %s %s", workspace_id, tool_name, dict(args))
        return handler(workspace_id, args)

    # ------------------------------------------------------------------
    # Tool handlers
    # ------------------------------------------------------------------

    def _read_file(self, workspace_id: str, args: Mapping[str, Any]) -> str:
        path = str(args.get("path", ""))
        row = self._lookup(workspace_id, path)
        if row is None:
            return f'Error: File "{path}" not found in workspace.'
        if row.type == "folder":
            return f'Error: "{path}" is a folder, not a file.'
        return row.content or "(empty file)"

    def _list_files(self, workspace_id: str, args: Mapping[str, Any]) -> str:
        rows = self._rows(workspace_id)
        by_id = {row.id: row for row in rows}

        def full_path(row: StoredDocument) -> str:
            parts = [row.title]
            current = row
            seen = {row.id}
            while current.parent_id and current.parent_id in by_id and current.parent_id not in seen:
                current = by_id[current.parent_id]
                seen.add(current.id)
                parts.append(current.title)
            return "/".join(reversed(parts))

        listing = sorted(
            f"{'📂' if row.type == 'folder' else '📄'} {full_path(row)}" for row in rows
        )
        return "\n".join(listing)

    def _find_files(self, workspace_id: str, args: Mapping[str, Any]) -> str:
        pattern = str(args.get("pattern") or args.get("query") or "").lower()
        hits = [row for row in self._rows(workspace_id) if pattern in row.title.lower()]
        if not hits:
            return "No files found matching that pattern."
        return "\n".join(f"- {row.title} ({row.type}) [ID: {row.id}]" for row in hits)

    def _search_content(self, workspace_id: str, args: Mapping[str, Any]) -> str:
        query = str(args.get("query", ""))
        needle = query.lower()
        hits = [
            row
            for row in self._rows(workspace_id)
            if row.type == "file" and row.content and needle in row.content.lower()
        ][:_SEARCH_LIMIT]
        if not hits:
            return "No files found containing that text."

        blocks: list[str] = []
        for row in hits:
            content = row.content or ""
            index = content.lower().find(needle)
            start = max(0, index - _SNIPPET_RADIUS)
            end = min(len(content), index + len(query) + _SNIPPET_RADIUS)
            snippet = content[start:end].replace("\n", " ")
            blocks.append(f"📄 {row.title}\n   ...{snippet}...")
        return "\n\n".join(blocks)

    def _create_file(self, workspace_id: str, args: Mapping[str, Any]) -> str:
        path = str(args.get("path", ""))
        content = str(args.get("content", ""))
        parts = [part for part in path.split("/") if part]
        title = parts[-1] if parts else "Untitled"
        parent_id = self._folder_id(workspace_id, parts[:-1])
        self.add_document(workspace_id, title=title, content=content, parent_id=parent_id)
        return f"Successfully created file: {title}"

    def _update_file(self, workspace_id: str, args: Mapping[str, Any]) -> str:
        """Replace the first ``search_text`` hit, or the whole file when none is given."""
        path = str(args.get("path", ""))
        row = self._lookup(workspace_id, path)
        if row is None:
            return f'Error: File "{path}" not found in workspace.'
        search = args.get("search_text")
        if search:
            current = row.content or ""
            if search not in current:
                return f'Error: Text "{search}" not found in {row.title}.'
            new_content = current.replace(search, str(args.get("replacement_text") or ""), 1)
        else:
            new_content = args.get("replacement_text")
            if new_content is None:
                new_content = args.get("content", "")
        rows = self._workspaces[workspace_id]
        rows[rows.index(row)] = replace(row, content=str(new_content))
        return f"Successfully updated file: {row.title}"

    def _delete_file(self, workspace_id: str, args: Mapping[str, Any]) -> str:
        target = str(args.get("id") or args.get("path") or "")
        rows = self._rows(workspace_id)
        row = next((row for row in rows if row.id == target), None) or self._lookup(workspace_id, target)
        if row is None:
            raise LookupError(f'File "{target}" not found in workspace')
        doomed = self._subtree_ids(rows, row.id)
        self._workspaces[workspace_id] = [item for item in rows if item.id not in doomed]
        return "Successfully deleted file."

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _rows(self, workspace_id: str) -> list[StoredDocument]:
        try:
            return self._workspaces[workspace_id]
        except KeyError:
            raise WorkspaceNotFoundError(f"Unknown workspace: {workspace_id}") from None

    def _lookup(self, workspace_id: str, path: str) -> StoredDocument | None:
        filename = path.rstrip("/").split("/")[-1] or path
        filename = filename.lower()
        for row in self._rows(workspace_id):
            if row.title.lower() == filename:
                return row
        return None

    def _folder_id(self, workspace_id: str, parts: list[str]) -> str | None:
        parent_id: str | None = None
        for part in parts:
            match = next(
                (
                    row
                    for row in self._rows(workspace_id)
                    if row.type == "folder" and row.parent_id == parent_id and row.title.lower() == part.lower()
                ),
                None,
            )
            if match is None:
                parent_id = self.add_document(workspace_id, title=part, type="folder", parent_id=parent_id)
            else:
                parent_id = match.id
        return parent_id

    @staticmethod
    def _subtree_ids(rows: list[StoredDocument], root_id: str) -> set[str]:
        doomed = {root_id}
        changed = True
        while changed:
            changed = False
            for row in rows:
                if row.parent_id in doomed and row.id not in doomed:
                    doomed.add(row.id)
                    changed = True
        return doomed


__all__ = ["InMemoryWorkspaceStore", "WorkspaceNotFoundError"]
