"""Editor workspace: the live document plus cursor, selection and comments.

This is the surface the document tools act on. It owns the active
:class:`Document`, routes tracked edits through the
:class:`DiffApplicationEngine` and republishes document commits on the
event bus.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone

from ..domain.events import DocumentChanged, EventBus
from ..domain.tracked_changes import TrackedChangeStore
from ..services.file_tree import FileNode
from .diff_engine import BulkResolution, DiffApplicationEngine, ProposalResult
from .document_model import Document, DocumentRangeError
from .markup import looks_like_markup, normalize_for_matching, parse_html, to_html

LOGGER = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UnresolvedChangesError(RuntimeError):
    """Raised when switching documents would drop diff units still under review."""

    def __init__(self, pending: int) -> None:
        super().__init__(f"{pending} tracked change(s) in the open document are still pending")
        self.pending = pending


@dataclass(slots=True)
class Comment:
    """A comment anchored to a passage of the open document."""

    id: str
    target_text: str
    comment: str
    start: int
    end: int
    created_at: datetime = field(default_factory=_utcnow)


class EditorWorkspace:
    """The open document and its editing state.

    Args:
        document: Initial document; an empty one when omitted.
        store: Tracked-change store shared with the review UI.
        event_bus: Bus receiving :class:`DocumentChanged` and store events.
    """

    def __init__(
        self,
        document: Document | None = None,
        *,
        store: TrackedChangeStore | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self._bus = event_bus
        self._store = store or TrackedChangeStore(event_bus)
        self._document = document if document is not None else Document()
        self._engine = DiffApplicationEngine(self._document, self._store)
        self._active_file: FileNode | None = None
        self._selection: tuple[int, int] | None = None
        self._cursor: int | None = None
        self._comments: list[Comment] = []
        self._document.add_listener(self._on_document_changed)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def document(self) -> Document:
        return self._document

    @property
    def store(self) -> TrackedChangeStore:
        return self._store

    @property
    def engine(self) -> DiffApplicationEngine:
        return self._engine

    @property
    def active_file(self) -> FileNode | None:
        return self._active_file

    @property
    def selection(self) -> tuple[int, int] | None:
        return self._selection

    @property
    def cursor(self) -> int:
        """Cursor position; the end of the last textblock when unset."""
        if self._cursor is not None:
            return self._cursor
        return self._end_position()

    @property
    def comments(self) -> tuple[Comment, ...]:
        return tuple(self._comments)

    def plain_text(self) -> str:
        return self._document.plain_text()

    def to_html(self) -> str:
        return to_html(self._document)

    def current_file_snapshot(self) -> FileNode | None:
        """The active file with its content replaced by the live document text."""
        if self._active_file is None:
            return None
        return replace(self._active_file, children=(), content=self.plain_text())

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def open_file(self, node: FileNode, *, discard_pending: bool = False) -> None:
        """Load ``node`` into a fresh document (HTML or plain text).

        Raises:
            UnresolvedChangesError: If diff units are still in the open
                document. With ``discard_pending`` their tracked changes are
                dropped from the store instead.
        """
        pending = self._pending_unit_ids()
        if pending:
            if not discard_pending:
                raise UnresolvedChangesError(len(pending))
            for change_id in pending:
                self._store.discard(change_id)
            LOGGER.warning("Dropped %d pending change(s) while opening %s", len(pending), node.path)
        content = node.content or ""
        if looks_like_markup(content.lstrip()):
            document = Document(parse_html(content))
        else:
            document = Document.from_text(content)
        self._swap_document(document)
        self._active_file = node
        LOGGER.debug("Opened %s (%d chars)", node.path, len(content))
        self._publish_change("open")

    def load_text(self, content: str) -> None:
        """Replace the open document with ``content`` without a backing file."""
        if looks_like_markup(content.lstrip()):
            self._swap_document(Document(parse_html(content)))
        else:
            self._swap_document(Document.from_text(content))
        self._active_file = None
        self._publish_change("load")

    def _pending_unit_ids(self) -> list[str]:
        ids = []
        for change_id, _pos in self._engine.pending_units():
            change = self._store.get(change_id)
            if change is not None and change.is_pending:
                ids.append(change_id)
        return ids

    def _swap_document(self, document: Document) -> None:
        self._document.remove_listener(self._on_document_changed)
        self._document = document
        self._document.add_listener(self._on_document_changed)
        self._engine.document = document
        self._selection = None
        self._cursor = None
        self._comments.clear()

    # ------------------------------------------------------------------
    # Cursor and selection
    # ------------------------------------------------------------------

    def set_cursor(self, pos: int | None) -> None:
        if pos is not None:
            self._document.text_between(pos, pos)
        self._cursor = pos

    def set_selection(self, start: int, end: int) -> None:
        """Select ``start..end``; the range must lie inside one textblock."""
        self._document.text_between(start, end)
        self._selection = (start, end)

    def select_text(self, text: str, *, occurrence: int = 0) -> bool:
        match = self._document.find_text(normalize_for_matching(text), occurrence=occurrence)
        if match is None:
            return False
        self._selection = (match.start, match.end)
        return True

    def selected_text(self) -> str:
        if self._selection is None:
            return ""
        return self._document.text_between(*self._selection)

    # ------------------------------------------------------------------
    # Direct edits
    # ------------------------------------------------------------------

    def insert_at_cursor(self, text: str) -> None:
        pos = self.cursor
        self._document.insert_text(pos, text)
        # Each newline becomes a one-position hard break.
        self._cursor = pos + len(text)

    def replace_selection(self, text: str) -> None:
        if self._selection is None:
            self.insert_at_cursor(text)
            return
        start, end = self._selection
        with self._document.transaction("replace_selection"):
            self._document.delete_range(start, end)
            self._document.insert_text(start, text)
        self._selection = None
        self._cursor = start + len(text)

    # ------------------------------------------------------------------
    # Tracked changes
    # ------------------------------------------------------------------

    def propose_edit(
        self,
        original: str,
        suggested: str,
        reason: str | None = None,
        *,
        occurrence: int = 0,
    ) -> ProposalResult:
        return self._engine.propose(original, suggested, reason, occurrence=occurrence)

    def accept(self, change_id: str) -> bool:
        return self._engine.accept(change_id)

    def reject(self, change_id: str) -> bool:
        return self._engine.reject(change_id)

    def accept_all(self) -> BulkResolution:
        return self._engine.accept_all()

    def reject_all(self) -> BulkResolution:
        return self._engine.reject_all()

    def undo(self) -> bool:
        return self._document.undo()

    def redo(self) -> bool:
        return self._document.redo()

    # ------------------------------------------------------------------
    # Comments
    # ------------------------------------------------------------------

    def add_comment(self, target_text: str, comment: str) -> bool:
        match = self._document.find_text(normalize_for_matching(target_text))
        if match is None:
            return False
        self._comments.append(
            Comment(
                id=f"comment-{uuid.uuid4().hex[:8]}",
                target_text=target_text,
                comment=comment,
                start=match.start,
                end=match.end,
            )
        )
        return True

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _end_position(self) -> int:
        last: tuple[int, int] | None = None
        for block, offset in self._document.textblocks():
            last = (offset, block.content_size)
        if last is None:
            raise DocumentRangeError("Document has no textblock to insert into")
        return last[0] + last[1]

    def _on_document_changed(self, document: Document, label: str) -> None:
        if self._selection is not None and not self._valid_range(*self._selection):
            self._selection = None
        if self._cursor is not None and not self._valid_range(self._cursor, self._cursor):
            self._cursor = None
        self._publish_change(label)

    def _valid_range(self, start: int, end: int) -> bool:
        try:
            self._document.text_between(start, end)
        except DocumentRangeError:
            return False
        return True

    def _publish_change(self, label: str) -> None:
        if self._bus is not None:
            self._bus.publish(DocumentChanged(version=self._document.version, label=label))


__all__ = ["Comment", "EditorWorkspace"]
