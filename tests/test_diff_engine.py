"""Tests for the inline diff application engine."""

from __future__ import annotations

from redline.domain.models import ChangeStatus
from redline.domain.tracked_changes import TrackedChangeStore
from redline.editor.diff_engine import DiffApplicationEngine
from redline.editor.document_model import Document, Mark, Node, NodeKind


def make_engine(text: str = "The quick brown fox") -> tuple[DiffApplicationEngine, Document, TrackedChangeStore]:
    document = Document.from_text(text)
    store = TrackedChangeStore()
    return DiffApplicationEngine(document, store), document, store


# =============================================================================
# Propose
# =============================================================================


class TestPropose:
    """Tests for DiffApplicationEngine.propose()."""

    def test_successful_proposal_inserts_unit_and_registers_change(self) -> None:
        """A found span becomes one diff unit tied to a pending change."""
        engine, document, store = make_engine()

        result = engine.propose("quick", "slow", "tone")

        assert result.success is True
        assert result.position == 5
        assert result.change_id in result.message
        assert store.pending_count == 1
        assert store.get(result.change_id).reason == "tone"
        assert engine.pending_units() == [(result.change_id, 5)]
        assert document.plain_text() == "The slow brown fox"

    def test_missing_text_registers_nothing(self) -> None:
        """A miss leaves both the document and the store untouched."""
        engine, document, store = make_engine()
        version = document.version

        result = engine.propose("purple", "green")

        assert result.success is False
        assert result.change_id is None
        assert "Could not find" in result.message
        assert len(store) == 0
        assert document.version == version

    def test_first_occurrence_wins_by_default(self) -> None:
        """Only the first hit in document order is replaced."""
        engine, document, _store = make_engine("cat and cat")

        result = engine.propose("cat", "dog")

        assert result.position == 1
        assert document.plain_text() == "dog and cat"

    def test_occurrence_selects_later_hit(self) -> None:
        engine, document, _store = make_engine("cat and cat")

        engine.propose("cat", "dog", occurrence=1)

        assert document.plain_text() == "cat and dog"

    def test_markup_original_matches_plain_text(self) -> None:
        """HTML wrapped originals are matched by their text content."""
        engine, document, store = make_engine()

        result = engine.propose("<em>quick</em>", "slow")

        assert result.success is True
        assert store.get(result.change_id).original == "<em>quick</em>"

    def test_suggestion_is_rendered_with_marks(self) -> None:
        engine, document, _store = make_engine()

        result = engine.propose("quick", "**slow**")

        unit, _pos = document.find_node(NodeKind.INLINE_DIFF.value, change_id=result.change_id)
        assert unit.children[0].text == "slow"
        assert unit.children[0].marks == (Mark("bold"),)

    def test_unit_occupies_one_position(self) -> None:
        engine, document, _store = make_engine()
        before = document.content_size

        engine.propose("quick", "much slower")

        assert document.content_size == before - len("quick") + 1


# =============================================================================
# Resolve
# =============================================================================


class TestResolve:
    """Tests for accept/reject of single changes."""

    def test_accept_collapses_to_suggestion(self) -> None:
        engine, document, store = make_engine()
        change_id = engine.propose("quick", "slow").change_id

        assert engine.accept(change_id) is True

        assert document.find_nodes(NodeKind.INLINE_DIFF.value) == []
        assert document.plain_text() == "The slow brown fox"
        assert store.get(change_id).status is ChangeStatus.ACCEPTED

    def test_reject_restores_original_run(self) -> None:
        """Reject puts back the exact text and marks that were replaced."""
        document = Document(Node.doc([Node.paragraph([Node.text_run("bold words", [Mark("bold")])])]))
        store = TrackedChangeStore()
        engine = DiffApplicationEngine(document, store)
        change_id = engine.propose("words", "terms").change_id

        assert engine.reject(change_id) is True

        block = document.root.children[0]
        assert [(child.text, child.marks) for child in block.children] == [("bold words", (Mark("bold"),))]
        assert store.get(change_id).status is ChangeStatus.REJECTED

    def test_resolving_twice_is_a_no_op(self) -> None:
        engine, document, store = make_engine()
        change_id = engine.propose("quick", "slow").change_id
        engine.accept(change_id)
        version = document.version

        assert engine.accept(change_id) is False
        assert engine.reject(change_id) is False
        assert document.version == version
        assert store.get(change_id).status is ChangeStatus.ACCEPTED

    def test_missing_unit_still_resolves_change(self) -> None:
        """A unit removed by the user leaves the tree alone but closes the change."""
        engine, document, store = make_engine()
        result = engine.propose("quick", "slow")
        document.delete_range(result.position, result.position + 1)

        assert engine.reject(result.change_id) is False
        assert store.get(result.change_id).status is ChangeStatus.REJECTED

    def test_unknown_change_id(self) -> None:
        engine, _document, _store = make_engine()

        assert engine.accept("missing") is False

    def test_accept_can_be_undone(self) -> None:
        engine, document, _store = make_engine()
        change_id = engine.propose("quick", "slow").change_id
        engine.accept(change_id)

        assert document.undo() is True
        assert engine.pending_units()[0][0] == change_id

    def test_accepted_entities_stay_literal(self) -> None:
        engine, document, _store = make_engine("Tom and Jerry")
        change_id = engine.propose("and", "&amp;").change_id

        engine.accept(change_id)

        assert document.plain_text() == "Tom &amp; Jerry"
        assert document.find_text("Tom &amp; Jerry") is not None

    def test_unit_restored_by_undo_collapses_to_recorded_status(self) -> None:
        """Resolving again after undo keeps the first decision and clears the unit."""
        engine, document, store = make_engine("The cat sat.")
        change_id = engine.propose("cat", "dog").change_id
        engine.accept(change_id)
        document.undo()

        assert engine.reject(change_id) is True

        assert engine.pending_units() == []
        assert document.plain_text() == "The dog sat."
        assert store.get(change_id).status is ChangeStatus.ACCEPTED

    def test_bulk_resolution_sweeps_units_restored_by_undo(self) -> None:
        engine, document, store = make_engine("The cat sat.")
        change_id = engine.propose("cat", "dog").change_id
        engine.reject(change_id)
        document.undo()

        outcome = engine.accept_all()

        assert outcome.resolved == []
        assert outcome.applied == [change_id]
        assert engine.pending_units() == []
        assert document.plain_text() == "The cat sat."
        assert store.get(change_id).status is ChangeStatus.REJECTED


# =============================================================================
# Bulk resolution
# =============================================================================


class TestBulkResolution:
    """Tests for accept_all()/reject_all()."""

    def test_accept_all_in_creation_order(self) -> None:
        engine, document, store = make_engine()
        first = engine.propose("quick", "slow").change_id
        second = engine.propose("fox", "dog").change_id

        outcome = engine.accept_all()

        assert [change.id for change in outcome.resolved] == [first, second]
        assert outcome.applied == [first, second]
        assert outcome.missing == []
        assert document.plain_text() == "The slow brown dog"
        assert store.pending_count == 0

    def test_reject_all_restores_document(self) -> None:
        engine, document, _store = make_engine()
        engine.propose("quick", "slow")
        engine.propose("fox", "dog")

        engine.reject_all()

        assert document.plain_text() == "The quick brown fox"

    def test_missing_units_are_reported(self) -> None:
        engine, document, _store = make_engine()
        result = engine.propose("quick", "slow")
        document.delete_range(result.position, result.position + 1)

        outcome = engine.accept_all()

        assert outcome.missing == [result.change_id]

    def test_skips_already_resolved(self) -> None:
        engine, _document, _store = make_engine()
        first = engine.propose("quick", "slow").change_id
        second = engine.propose("fox", "dog").change_id
        engine.reject(first)

        outcome = engine.accept_all()

        assert [change.id for change in outcome.resolved] == [second]

    def test_document_swap(self) -> None:
        engine, _document, _store = make_engine()
        replacement = Document.from_text("other quick text")

        engine.document = replacement
        engine.propose("quick", "slow")

        assert replacement.plain_text() == "other slow text"
