"""Inline diff application engine.

Grafts reviewable edits into the live document and collapses them again when
the user accepts or rejects them.

A proposed edit is represented in the tree by a single ``inline_diff`` atom
carrying ``original``, ``suggested`` and ``change_id`` attributes plus the
suggestion rendered to inline nodes. The engine is the only code that creates
or removes these atoms. Identifiers always come from the
:class:`~redline.domain.tracked_changes.TrackedChangeStore`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

from ..domain.models import ChangeStatus, TrackedChange
from ..domain.tracked_changes import TrackedChangeStore
from .document_model import Document, Mark, Node, NodeKind, NodeType, register_node_type
from .markup import normalize_for_matching, render_rich_text

LOGGER = logging.getLogger(__name__)

INLINE_DIFF_TYPE = register_node_type(
    NodeType(
        NodeKind.INLINE_DIFF.value,
        inline=True,
        atom=True,
        attrs={"original": "", "suggested": "", "change_id": "", "reason": ""},
    )
)


# -----------------------------------------------------------------------------
# Results
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ProposalResult:
    """Outcome of :meth:`DiffApplicationEngine.propose`.

    Attributes:
        success: Whether the original text was found and the unit inserted.
        change_id: Identifier of the new tracked change on success.
        position: Absolute document position of the inserted unit.
        message: Human readable result, suitable as a tool result.
    """

    success: bool
    change_id: str | None = None
    position: int | None = None
    message: str = ""


@dataclass(slots=True)
class BulkResolution:
    """Outcome of accept-all / reject-all.

    ``resolved`` lists every change whose status transitioned; ``applied``
    holds the ids whose diff unit was still present in the document.
    """

    resolved: list[TrackedChange] = field(default_factory=list)
    applied: list[str] = field(default_factory=list)

    @property
    def missing(self) -> list[str]:
        return [change.id for change in self.resolved if change.id not in self.applied]


# -----------------------------------------------------------------------------
# Engine
# -----------------------------------------------------------------------------


class DiffApplicationEngine:
    """Proposes and resolves inline diff units against a live document."""

    def __init__(self, document: Document, store: TrackedChangeStore) -> None:
        self._document = document
        self._store = store

    @property
    def document(self) -> Document:
        return self._document

    @document.setter
    def document(self, document: Document) -> None:
        self._document = document

    @property
    def store(self) -> TrackedChangeStore:
        return self._store

    # ------------------------------------------------------------------
    # Propose
    # ------------------------------------------------------------------

    def propose(
        self,
        original: str,
        suggested: str,
        reason: str | None = None,
        *,
        occurrence: int = 0,
    ) -> ProposalResult:
        """Replace ``original`` with a reviewable diff unit.

        The raw ``original`` is kept for display; matching uses its plain
        text form. Only one text run is searched at a time and the
        ``occurrence``-th hit in document order wins (first hit by default).
        No tracked change is registered when nothing matches.
        """
        needle = normalize_for_matching(original)
        match = self._document.find_text(needle, occurrence=occurrence)
        if match is None:
            LOGGER.warning("Proposed edit not found in document: %r", needle[:80])
            return ProposalResult(
                success=False,
                message=f'Could not find "{_preview(original)}" in the document. No change was made.',
            )

        change_id = self._store.add(original, suggested, reason)
        unit = self._build_unit(
            original=original,
            suggested=suggested,
            change_id=change_id,
            reason=reason or "",
            matched_text=match.text,
            marks=match.marks,
        )
        try:
            with self._document.transaction("propose"):
                self._document.delete_range(match.start, match.end)
                self._document.insert_nodes(match.start, [unit])
        except Exception:
            self._store.discard(change_id)
            raise

        LOGGER.debug("Inserted diff unit %s at %d", change_id, match.start)
        return ProposalResult(
            success=True,
            change_id=change_id,
            position=match.start,
            message=(
                f'Applied inline change: ~~"{_preview(original)}"~~ → "{_preview(suggested)}" '
                f"(change id: {change_id})"
            ),
        )

    # ------------------------------------------------------------------
    # Resolve
    # ------------------------------------------------------------------

    def accept(self, change_id: str) -> bool:
        """Collapse the unit to its suggestion and mark the change accepted.

        A change that is already resolved keeps its status; if its unit came
        back through undo it is collapsed to that recorded status.

        Returns:
            ``True`` when the document changed. A missing unit is a no-op.
        """
        if self._already_resolved(change_id):
            return self._settle(change_id)
        applied = self._collapse(change_id, accept=True)
        self._store.accept(change_id)
        return applied

    def reject(self, change_id: str) -> bool:
        """Collapse the unit back to its original text; see :meth:`accept`."""
        if self._already_resolved(change_id):
            return self._settle(change_id)
        applied = self._collapse(change_id, accept=False)
        self._store.reject(change_id)
        return applied

    def accept_all(self) -> BulkResolution:
        """Accept every pending change in store order."""
        return self._resolve_all(accept=True)

    def reject_all(self) -> BulkResolution:
        """Reject every pending change in store order."""
        return self._resolve_all(accept=False)

    def pending_units(self) -> list[tuple[str, int]]:
        """``(change_id, position)`` for every diff unit currently in the tree."""
        return [
            (str(node.attrs.get("change_id", "")), pos)
            for node, pos in self._document.find_nodes(NodeKind.INLINE_DIFF.value)
        ]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _resolve_all(self, *, accept: bool) -> BulkResolution:
        outcome = BulkResolution()
        for change in self._store.pending():
            try:
                applied = self._collapse(change.id, accept=accept)
            except Exception:
                LOGGER.exception("Failed to collapse diff unit %s", change.id)
                applied = False
            resolved = self._store.accept(change.id) if accept else self._store.reject(change.id)
            if resolved is not None:
                outcome.resolved.append(resolved)
            if applied:
                outcome.applied.append(change.id)
        for change_id, _pos in self.pending_units():
            if self._already_resolved(change_id) and self._settle(change_id):
                outcome.applied.append(change_id)
        if outcome.missing:
            LOGGER.debug("Bulk resolution skipped missing units: %s", outcome.missing)
        return outcome

    def _already_resolved(self, change_id: str) -> bool:
        change = self._store.get(change_id)
        if change is not None and not change.is_pending:
            LOGGER.debug("Change %s already %s", change_id, change.status.value)
            return True
        return False

    def _settle(self, change_id: str) -> bool:
        change = self._store.get(change_id)
        return self._collapse(change_id, accept=change.status is ChangeStatus.ACCEPTED)

    def _collapse(self, change_id: str, *, accept: bool) -> bool:
        found = self._document.find_node(NodeKind.INLINE_DIFF.value, change_id=change_id)
        if found is None:
            LOGGER.debug("Diff unit %s not present; nothing to collapse", change_id)
            return False
        unit, pos = found
        replacement = self._replacement_nodes(unit, accept=accept)
        with self._document.transaction("accept" if accept else "reject"):
            self._document.delete_range(pos, pos + unit.size)
            self._document.insert_nodes(pos, replacement)
        return True

    @staticmethod
    def _replacement_nodes(unit: Node, *, accept: bool) -> list[Node]:
        if accept:
            if unit.children:
                return [_clone(child) for child in unit.children]
            return render_rich_text(str(unit.attrs.get("suggested", "")))
        matched = unit.attrs.get("_matched")
        marks: Sequence[Mark] = unit.attrs.get("_marks", ())
        if matched is None:
            matched = normalize_for_matching(str(unit.attrs.get("original", "")))
        return [Node.text_run(matched, marks)] if matched else []

    @staticmethod
    def _build_unit(
        *,
        original: str,
        suggested: str,
        change_id: str,
        reason: str,
        matched_text: str,
        marks: Sequence[Mark],
    ) -> Node:
        return Node(
            NodeKind.INLINE_DIFF.value,
            attrs={
                "original": original,
                "suggested": suggested,
                "change_id": change_id,
                "reason": reason,
                # Restores the exact replaced run on reject.
                "_matched": matched_text,
                "_marks": tuple(marks),
            },
            children=render_rich_text(suggested),
        )


def _clone(node: Node) -> Node:
    return Node(
        node.kind,
        attrs=dict(node.attrs),
        children=[_clone(child) for child in node.children],
        text=node.text,
        marks=node.marks,
    )


def _preview(text: str, limit: int = 40) -> str:
    text = text.replace("\n", " ")
    return text if len(text) <= limit else text[:limit] + "..."


__all__ = [
    "INLINE_DIFF_TYPE",
    "BulkResolution",
    "DiffApplicationEngine",
    "ProposalResult",
]
