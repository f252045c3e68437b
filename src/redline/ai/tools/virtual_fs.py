"""Virtual file-tree tools for offline workspaces.

The handlers read a :data:`FileTree` snapshot and, for mutating tools, return
a *new* tree in :attr:`VirtualToolResult.updated_files`. The snapshot passed
in is never modified.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from ...services.file_tree import (
    FILE_ICON,
    FOLDER_ICON,
    FileNode,
    FileTree,
    find_file,
    list_directory,
    with_content,
    with_new_file,
)

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class VirtualToolResult:
    """Outcome of a virtual file-tree tool.

    Attributes:
        success: Whether the tool did what was asked.
        result: Text returned to the model.
        updated_files: Replacement tree for mutating tools, else ``None``.
    """

    success: bool
    result: str
    updated_files: FileTree | None = None


def execute_virtual_tool(
    files: Sequence[FileNode],
    tool_name: str,
    args: Mapping[str, Any],
) -> VirtualToolResult:
    """Run ``tool_name`` against the ``files`` snapshot."""
    path = str(args.get("path") or "")

    if tool_name == "fs_read_file":
        node = find_file(files, path)
        if node is None:
            return VirtualToolResult(False, f"File not found: {path}")
        if node.is_folder:
            return VirtualToolResult(False, f"{path} is a folder, not a file")
        return VirtualToolResult(True, node.content or "(empty file)")

    if tool_name == "fs_write_file":
        content = str(args.get("content") or "")
        if find_file(files, path) is not None:
            updated = with_content(files, path, content)
        else:
            updated = with_new_file(files, path, content)
        return VirtualToolResult(True, f"Successfully wrote to {path}", updated)

    if tool_name == "fs_update_file":
        search = str(args.get("search_text") or "")
        replacement = str(args.get("replacement_text") or "")
        node = find_file(files, path)
        if node is None:
            return VirtualToolResult(False, f"File not found: {path}")
        if not search or search not in (node.content or ""):
            return VirtualToolResult(False, f'Text "{search}" not found in {path}')
        new_content = (node.content or "").replace(search, replacement, 1)
        return VirtualToolResult(
            True,
            f'Updated {path}: replaced "{search}" with "{replacement}"',
            with_content(files, path, new_content),
        )

    if tool_name == "fs_list_directory":
        dir_path = path or "/"
        entries = list_directory(files, dir_path)
        if not entries:
            return VirtualToolResult(True, f"No files found in {dir_path}")
        listing = "\n".join(
            f"{FOLDER_ICON if node.is_folder else FILE_ICON} {node.path}" for node in entries
        )
        return VirtualToolResult(True, listing)

    LOGGER.warning("Virtual file tree has no tool named %s", tool_name)
    return VirtualToolResult(False, f"Unknown tool: {tool_name}")


__all__ = ["VirtualToolResult", "execute_virtual_tool"]
