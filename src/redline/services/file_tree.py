"""Immutable workspace file tree.

The tree is shared by the editor front-end, the tool dispatcher and the agent
loop. Nodes are frozen and every mutating helper returns a *new* tree, so a
holder of a previous snapshot never observes a change.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Iterator, Mapping, Sequence

FileTree = tuple["FileNode", ...]

FOLDER_ICON = "📁"
FILE_ICON = "📄"


@dataclass(slots=True, frozen=True)
class FileNode:
    """A file or folder in the workspace.

    Attributes:
        id: Stable identifier.
        name: Display name (last path segment).
        path: ``/``-rooted path, e.g. ``/Specs/PRD.md``.
        type: ``"file"`` or ``"folder"``.
        children: Child nodes (folders only).
        content: File content (HTML or plain text), ``None`` when unloaded.
    """

    id: str
    name: str
    path: str
    type: str = "file"
    children: FileTree = ()
    content: str | None = None

    @property
    def is_folder(self) -> bool:
        return self.type == "folder"

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"id": self.id, "name": self.name, "path": self.path, "type": self.type}
        if self.children:
            data["children"] = [child.to_dict() for child in self.children]
        if self.content is not None:
            data["content"] = self.content
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> FileNode:
        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            path=str(data.get("path", "")),
            type=str(data.get("type", "file")),
            children=tuple(cls.from_dict(child) for child in data.get("children") or ()),
            content=data.get("content"),
        )


@dataclass(slots=True, frozen=True)
class StoredDocument:
    """Flat persistence row describing a file or folder."""

    id: str
    title: str
    type: str = "file"
    parent_id: str | None = None
    content: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)


# -----------------------------------------------------------------------------
# Building and rendering
# -----------------------------------------------------------------------------


def normalize_path(path: str) -> str:
    """Return ``path`` with exactly one leading slash."""
    path = (path or "").strip()
    return path if path.startswith("/") else f"/{path}"


def build_file_tree(documents: Iterable[StoredDocument]) -> FileTree:
    """Link flat persistence rows into a tree and compute their paths.

    Rows whose parent is unknown become roots. Sibling order follows the
    input order.
    """
    rows = list(documents)
    known = {row.id for row in rows}
    children_of: dict[str | None, list[StoredDocument]] = {}
    for row in rows:
        parent = row.parent_id if row.parent_id in known else None
        children_of.setdefault(parent, []).append(row)

    def build(parent_id: str | None, parent_path: str, seen: frozenset[str]) -> FileTree:
        nodes: list[FileNode] = []
        for row in children_of.get(parent_id, ()):
            if row.id in seen:
                continue
            name = row.title or "Untitled"
            path = f"{parent_path}/{name}"
            nodes.append(
                FileNode(
                    id=row.id,
                    name=name,
                    path=path,
                    type=row.type or "file",
                    children=build(row.id, path, seen | {row.id}),
                    content=row.content,
                )
            )
        return tuple(nodes)

    return build(None, "", frozenset())


def render_folder_tree(files: Sequence[FileNode], prefix: str = "") -> str:
    """Render the tree with ``├──``/``└──`` connectors for the model prompt."""
    lines: list[str] = []
    for index, node in enumerate(files):
        last = index == len(files) - 1
        connector = "└── " if last else "├── "
        icon = FOLDER_ICON if node.is_folder else FILE_ICON
        lines.append(f"{prefix}{connector}{icon} {node.name}\n")
        if node.is_folder and node.children:
            lines.append(render_folder_tree(node.children, prefix + ("    " if last else "│   ")))
    return "".join(lines)


def iter_nodes(files: Sequence[FileNode]) -> Iterator[FileNode]:
    """Depth-first pre-order traversal."""
    for node in files:
        yield node
        if node.children:
            yield from iter_nodes(node.children)


def find_file(files: Sequence[FileNode], path: str) -> FileNode | None:
    """Find the node at exactly ``path`` (leading slash optional)."""
    target = normalize_path(path)
    for node in iter_nodes(files):
        if node.path == target:
            return node
    return None


def find_by_name_or_path(files: Sequence[FileNode], query: str) -> FileNode | None:
    """Case-insensitive match on name equality or path substring."""
    needle = (query or "").lower()
    if not needle:
        return None
    for node in iter_nodes(files):
        if node.name.lower() == needle or needle in node.path.lower():
            return node
    return None


def find_by_id(files: Sequence[FileNode], node_id: str) -> FileNode | None:
    for node in iter_nodes(files):
        if node.id == node_id:
            return node
    return None


def list_directory(files: Sequence[FileNode], dir_path: str = "/") -> list[FileNode]:
    """Every node whose path starts with ``dir_path`` (all nodes for root)."""
    if dir_path in ("", "/", "."):
        prefix = ""
    else:
        prefix = normalize_path(dir_path)
    return [node for node in iter_nodes(files) if not prefix or node.path.startswith(prefix)]


# -----------------------------------------------------------------------------
# Copy-on-write mutations
# -----------------------------------------------------------------------------


def with_content(files: Sequence[FileNode], path: str, content: str) -> FileTree:
    """Return a new tree where the node at ``path`` carries ``content``."""
    target = normalize_path(path)

    def update(nodes: Sequence[FileNode]) -> FileTree:
        result: list[FileNode] = []
        for node in nodes:
            if node.path == target:
                node = replace(node, content=content)
            elif node.children:
                node = replace(node, children=update(node.children))
            result.append(node)
        return tuple(result)

    return update(files)


def with_new_file(files: Sequence[FileNode], path: str, content: str, *, file_id: str | None = None) -> FileTree:
    """Return a new tree with a file created at ``path``.

    The file goes to the root when ``path`` has a single segment, otherwise
    into the existing folder named by the parent path. When that folder does
    not exist the tree is returned unchanged.
    """
    target = normalize_path(path)
    parts = [part for part in target.split("/") if part]
    name = parts[-1] if parts else "Untitled"
    parent_path = "/" + "/".join(parts[:-1])
    new_node = FileNode(
        id=file_id or f"file_{int(time.time() * 1000)}",
        name=name,
        path=target,
        type="file",
        content=content,
    )
    if len(parts) <= 1:
        return (*files, new_node)

    added = False

    def add(nodes: Sequence[FileNode]) -> FileTree:
        nonlocal added
        result: list[FileNode] = []
        for node in nodes:
            if not added and node.path == parent_path and node.is_folder:
                node = replace(node, children=(*node.children, new_node))
                added = True
            elif not added and node.children:
                node = replace(node, children=add(node.children))
            result.append(node)
        return tuple(result)

    return add(files)


__all__ = [
    "FILE_ICON",
    "FOLDER_ICON",
    "FileNode",
    "FileTree",
    "StoredDocument",
    "build_file_tree",
    "find_by_id",
    "find_by_name_or_path",
    "find_file",
    "iter_nodes",
    "list_directory",
    "normalize_path",
    "render_folder_tree",
    "with_content",
    "with_new_file",
]
