"""Document-editing tools.

These run synchronously against the live document held by the editor and
never touch workspace storage. Each handler returns the result text shown to
the model; failures are raised as :class:`ToolError` subclasses and turned
into tool results by the dispatcher.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping, Protocol, Sequence

from ...editor.diff_engine import ProposalResult
from ...editor.workspace import UnresolvedChangesError
from ...services.file_tree import FileNode, find_by_name_or_path
from .errors import EditNotFoundError, MissingParameterError, PendingChangesError, UnknownToolError

LOGGER = logging.getLogger(__name__)

SEARCH_MATCH_LIMIT = 5
SEARCH_CONTEXT_CHARS = 30
COMMENT_PREVIEW_CHARS = 30


class DocumentHost(Protocol):
    """The editor surface the document tools operate on."""

    def insert_at_cursor(self, text: str) -> None:
        ...

    def replace_selection(self, text: str) -> None:
        ...

    def propose_edit(
        self,
        original: str,
        suggested: str,
        reason: str | None = None,
        *,
        occurrence: int = 0,
    ) -> ProposalResult:
        ...

    def add_comment(self, target_text: str, comment: str) -> bool:
        """Anchor a comment to ``target_text``; ``False`` when it is absent."""
        ...

    def selected_text(self) -> str:
        ...

    def plain_text(self) -> str:
        ...

    def open_file(self, node: FileNode) -> None:
        ...


class DocumentTools:
    """Handlers for the document-editing tool class.

    Args:
        host: The editor surface (usually an :class:`EditorWorkspace`).
        files: Callable returning the current workspace file tree, used to
            resolve ``open_file_in_editor`` targets.
    """

    def __init__(self, host: DocumentHost, files: Callable[[], Sequence[FileNode]]) -> None:
        self._host = host
        self._files = files
        self._handlers: dict[str, Callable[[Mapping[str, Any]], str]] = {
            "insert_text": self.insert_text,
            "replace_selection": self.replace_selection,
            "suggest_edit": self.suggest_edit,
            "add_comment": self.add_comment,
            "get_selection": self.get_selection,
            "search_document": self.search_document,
            "open_file_in_editor": self.open_file_in_editor,
        }

    @property
    def names(self) -> frozenset[str]:
        return frozenset(self._handlers)

    def execute(self, tool_name: str, arguments: Mapping[str, Any]) -> str:
        handler = self._handlers.get(tool_name)
        if handler is None:
            raise UnknownToolError(message=f"Unknown writing tool: {tool_name}", tool_name=tool_name)
        return handler(arguments)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def insert_text(self, arguments: Mapping[str, Any]) -> str:
        text = _require(arguments, "text")
        self._host.insert_at_cursor(text)
        return f"Inserted {len(text)} characters into the document."

    def replace_selection(self, arguments: Mapping[str, Any]) -> str:
        new_text = _require(arguments, "new_text")
        reason = arguments.get("reason")
        self._host.replace_selection(new_text)
        suffix = f" Reason: {reason}" if reason else ""
        return f"Replaced selection with new text.{suffix}"

    def suggest_edit(self, arguments: Mapping[str, Any]) -> str:
        original = _require(arguments, "original_text")
        if arguments.get("suggested_text") is None:
            raise MissingParameterError(
                message="Missing required parameter: suggested_text",
                parameter="suggested_text",
            )
        # An empty suggestion is a deletion.
        suggested = str(arguments["suggested_text"])
        reason = arguments.get("reason") or None
        occurrence = int(arguments.get("occurrence") or 0)

        outcome = self._host.propose_edit(original, suggested, reason, occurrence=occurrence)
        if not outcome.success:
            raise EditNotFoundError(message=outcome.message, original=original)
        return outcome.message

    def add_comment(self, arguments: Mapping[str, Any]) -> str:
        target = _require(arguments, "target_text")
        comment = _require(arguments, "comment")
        if not self._host.add_comment(target, comment):
            raise EditNotFoundError(
                message=f'Could not find "{target[:COMMENT_PREVIEW_CHARS]}" to comment on.',
                original=target,
            )
        return f'Comment added on: "{target[:COMMENT_PREVIEW_CHARS]}...": {comment}'

    def get_selection(self, arguments: Mapping[str, Any]) -> str:
        return self._host.selected_text() or "No text is currently selected"

    def search_document(self, arguments: Mapping[str, Any]) -> str:
        query = _require(arguments, "query")
        content = self._host.plain_text()
        matches = search_with_context(content, query)
        if not matches:
            return f'No matches found for "{query}"'
        return f"Found {len(matches)} match(es):\n" + "\n".join(matches)

    def open_file_in_editor(self, arguments: Mapping[str, Any]) -> str:
        target = str(arguments.get("filename") or arguments.get("path") or "")
        if not target:
            raise MissingParameterError(
                message="Provide either filename or path",
                parameter="filename",
            )
        node = find_by_name_or_path(self._files(), target)
        if node is None or node.is_folder:
            return f'Could not find file "{target}" to open.'
        try:
            self._host.open_file(node)
        except UnresolvedChangesError as exc:
            raise PendingChangesError(
                message=f'Cannot open "{node.name}": {exc}.',
                pending=exc.pending,
            ) from exc
        LOGGER.debug("Opened %s in the editor", node.path)
        return f'Opened "{node.name}" in the editor. You can now use suggest_edit to make changes.'


def search_with_context(
    content: str,
    query: str,
    *,
    limit: int = SEARCH_MATCH_LIMIT,
    radius: int = SEARCH_CONTEXT_CHARS,
) -> list[str]:
    """Case-insensitive search returning ``...context...`` snippets."""
    haystack = content.lower()
    needle = query.lower()
    matches: list[str] = []
    index = haystack.find(needle)
    while index != -1 and len(matches) < limit:
        start = max(0, index - radius)
        end = min(len(content), index + len(needle) + radius)
        matches.append(f"...{content[start:end]}...")
        index = haystack.find(needle, index + 1)
    return matches


def _require(arguments: Mapping[str, Any], name: str) -> str:
    value = arguments.get(name)
    if value is None or value == "":
        raise MissingParameterError(message=f"Missing required parameter: {name}", parameter=name)
    return str(value)


__all__ = ["DocumentHost", "DocumentTools", "search_with_context"]
