"""Tests for the editor workspace."""

from __future__ import annotations

import pytest

from redline.domain.events import DocumentChanged, EventBus, TrackedChangeAdded
from redline.editor.document_model import Document, DocumentRangeError
from redline.editor.workspace import EditorWorkspace, UnresolvedChangesError
from redline.services.file_tree import FileNode


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def workspace(bus: EventBus) -> EditorWorkspace:
    return EditorWorkspace(Document.from_text("The quick brown fox"), event_bus=bus)


# =============================================================================
# Files
# =============================================================================


class TestOpenFile:
    """Tests for loading files into the workspace."""

    def test_plain_text_file(self, workspace: EditorWorkspace) -> None:
        node = FileNode(id="1", name="notes.txt", path="/notes.txt", content="one\ntwo")

        workspace.open_file(node)

        assert workspace.plain_text() == "one\ntwo"
        assert workspace.active_file is node
        assert len(workspace.document.root.children) == 2

    def test_html_file(self, workspace: EditorWorkspace) -> None:
        node = FileNode(id="1", name="page.html", path="/page.html", content="<h1>Title</h1><p>Body</p>")

        workspace.open_file(node)

        assert workspace.to_html() == "<h1>Title</h1><p>Body</p>"

    def test_open_publishes_document_changed(self, workspace: EditorWorkspace, bus: EventBus) -> None:
        received: list[DocumentChanged] = []
        bus.subscribe(DocumentChanged, received.append)

        workspace.open_file(FileNode(id="1", name="a.txt", path="/a.txt", content="text"))

        assert [event.label for event in received] == ["open"]

    def test_open_resets_selection_and_cursor(self, workspace: EditorWorkspace) -> None:
        workspace.set_selection(1, 4)
        workspace.set_cursor(2)

        workspace.load_text("fresh")

        assert workspace.selection is None
        assert workspace.cursor == 6
        assert workspace.active_file is None

    def test_engine_follows_swapped_document(self, workspace: EditorWorkspace) -> None:
        workspace.load_text("another quick one")

        result = workspace.propose_edit("quick", "slow")

        assert result.success is True
        assert workspace.plain_text() == "another slow one"

    def test_snapshot_reflects_live_text(self, workspace: EditorWorkspace) -> None:
        assert workspace.current_file_snapshot() is None

        workspace.open_file(FileNode(id="1", name="a.txt", path="/a.txt", content="old text"))
        workspace.propose_edit("old", "new")

        snapshot = workspace.current_file_snapshot()
        assert snapshot.path == "/a.txt"
        assert snapshot.content == "new text"

    def test_open_refuses_to_drop_pending_changes(self, workspace: EditorWorkspace) -> None:
        workspace.propose_edit("quick", "slow")

        with pytest.raises(UnresolvedChangesError) as excinfo:
            workspace.open_file(FileNode(id="1", name="a.txt", path="/a.txt", content="other"))

        assert excinfo.value.pending == 1
        assert workspace.plain_text() == "The slow brown fox"
        assert workspace.store.pending_count == 1

    def test_open_can_discard_pending_changes(self, workspace: EditorWorkspace) -> None:
        workspace.propose_edit("quick", "slow")

        workspace.open_file(FileNode(id="1", name="a.txt", path="/a.txt", content="other"), discard_pending=True)

        assert workspace.plain_text() == "other"
        assert workspace.store.pending_count == 0
        assert workspace.store.changes == ()

    def test_open_after_resolution_is_allowed(self, workspace: EditorWorkspace) -> None:
        change_id = workspace.propose_edit("quick", "slow").change_id
        workspace.accept(change_id)

        workspace.open_file(FileNode(id="1", name="a.txt", path="/a.txt", content="other"))

        assert workspace.plain_text() == "other"


# =============================================================================
# Cursor and selection
# =============================================================================


class TestSelection:
    """Tests for cursor and selection handling."""

    def test_cursor_defaults_to_document_end(self, workspace: EditorWorkspace) -> None:
        assert workspace.cursor == 1 + len("The quick brown fox")

    def test_invalid_cursor_raises(self, workspace: EditorWorkspace) -> None:
        with pytest.raises(DocumentRangeError):
            workspace.set_cursor(500)

    def test_select_text(self, workspace: EditorWorkspace) -> None:
        assert workspace.select_text("quick") is True
        assert workspace.selection == (5, 10)
        assert workspace.selected_text() == "quick"

    def test_select_missing_text(self, workspace: EditorWorkspace) -> None:
        assert workspace.select_text("absent") is False
        assert workspace.selected_text() == ""

    def test_selection_dropped_when_it_becomes_invalid(self, workspace: EditorWorkspace) -> None:
        workspace.set_selection(14, 20)

        workspace.document.delete_range(1, 11)

        assert workspace.selection is None


# =============================================================================
# Direct edits
# =============================================================================


class TestDirectEdits:
    """Tests for untracked insertions."""

    def test_insert_at_cursor_advances(self, workspace: EditorWorkspace) -> None:
        workspace.set_cursor(1)

        workspace.insert_at_cursor("Oh, ")

        assert workspace.plain_text() == "Oh, The quick brown fox"
        assert workspace.cursor == 5

    def test_replace_selection_is_one_undo_step(self, workspace: EditorWorkspace) -> None:
        workspace.select_text("quick")

        workspace.replace_selection("lazy")

        assert workspace.plain_text() == "The lazy brown fox"
        assert workspace.selection is None
        assert workspace.undo() is True
        assert workspace.plain_text() == "The quick brown fox"

    def test_replace_without_selection_inserts(self, workspace: EditorWorkspace) -> None:
        workspace.replace_selection("!")

        assert workspace.plain_text() == "The quick brown fox!"


# =============================================================================
# Tracked changes and comments
# =============================================================================


class TestTrackedEdits:
    """Tests for routing edits through the diff engine."""

    def test_propose_publishes_store_event(self, workspace: EditorWorkspace, bus: EventBus) -> None:
        received: list[TrackedChangeAdded] = []
        bus.subscribe(TrackedChangeAdded, received.append)

        result = workspace.propose_edit("quick", "slow", "pace")

        assert [event.change_id for event in received] == [result.change_id]

    def test_accept_all_then_redo_cycle(self, workspace: EditorWorkspace) -> None:
        workspace.propose_edit("quick", "slow")
        workspace.propose_edit("fox", "dog")

        outcome = workspace.accept_all()

        assert len(outcome.resolved) == 2
        assert workspace.plain_text() == "The slow brown dog"
        assert workspace.undo() is True
        assert workspace.redo() is True
        assert workspace.plain_text() == "The slow brown dog"

    def test_reject_single_change(self, workspace: EditorWorkspace) -> None:
        change_id = workspace.propose_edit("quick", "slow").change_id

        assert workspace.reject(change_id) is True
        assert workspace.plain_text() == "The quick brown fox"

    def test_add_comment_anchors_to_text(self, workspace: EditorWorkspace) -> None:
        assert workspace.add_comment("brown", "Which shade?") is True

        (comment,) = workspace.comments
        assert (comment.start, comment.end) == (11, 16)
        assert comment.comment == "Which shade?"

    def test_add_comment_missing_target(self, workspace: EditorWorkspace) -> None:
        assert workspace.add_comment("purple", "?") is False
        assert workspace.comments == ()
