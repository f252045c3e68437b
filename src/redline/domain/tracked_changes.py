"""Tracked-change store domain service.

Owns the canonical list of edits proposed by the agent and their lifecycle.
The store knows nothing about the document: the diff engine asks it for
identifiers and reports resolutions back to it. Every transition emits an
event through the bus.
"""

from __future__ import annotations

import logging
import uuid
from typing import Iterator

from .events import (
    EventBus,
    TrackedChangeAdded,
    TrackedChangeResolved,
    TrackedChangesCleared,
)
from .models import ChangeStatus, TrackedChange

LOGGER = logging.getLogger(__name__)


class TrackedChangeStore:
    """Single source of truth for pending and resolved tracked changes.

    Transitions are monotonic: ``pending -> accepted`` or
    ``pending -> rejected``. Resolving an already-resolved or unknown change
    is a no-op that returns ``None``.

    Events Emitted:
        - TrackedChangeAdded: When a change is registered
        - TrackedChangeResolved: When a change is accepted or rejected
        - TrackedChangesCleared: When resolved history is dropped
    """

    def __init__(self, event_bus: EventBus | None = None) -> None:
        self._bus = event_bus
        self._changes: list[TrackedChange] = []

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._changes)

    def __iter__(self) -> Iterator[TrackedChange]:
        return iter(tuple(self._changes))

    @property
    def changes(self) -> tuple[TrackedChange, ...]:
        """All changes in creation order, resolved history included."""
        return tuple(self._changes)

    def get(self, change_id: str) -> TrackedChange | None:
        for change in self._changes:
            if change.id == change_id:
                return change
        return None

    def pending(self) -> tuple[TrackedChange, ...]:
        """Pending changes in creation order."""
        return tuple(change for change in self._changes if change.is_pending)

    @property
    def pending_count(self) -> int:
        return sum(1 for change in self._changes if change.is_pending)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def add(self, original: str, suggested: str, reason: str | None = None) -> str:
        """Register a new pending change and return its identifier."""
        change = TrackedChange(
            id=str(uuid.uuid4()),
            original=original,
            suggested=suggested,
            reason=reason or None,
        )
        self._changes.append(change)
        LOGGER.debug("TrackedChangeStore.add: id=%s", change.id)
        self._publish(
            TrackedChangeAdded(
                change_id=change.id,
                original=original,
                suggested=suggested,
                pending_count=self.pending_count,
            )
        )
        return change.id

    def accept(self, change_id: str) -> TrackedChange | None:
        """Mark a pending change accepted.

        Returns:
            The change, or ``None`` when it is unknown or already resolved.
        """
        return self._resolve(change_id, ChangeStatus.ACCEPTED)

    def reject(self, change_id: str) -> TrackedChange | None:
        """Mark a pending change rejected; same contract as :meth:`accept`."""
        return self._resolve(change_id, ChangeStatus.REJECTED)

    def accept_all(self) -> list[TrackedChange]:
        """Accept every pending change in creation order."""
        return self._resolve_all(ChangeStatus.ACCEPTED)

    def reject_all(self) -> list[TrackedChange]:
        """Reject every pending change in creation order."""
        return self._resolve_all(ChangeStatus.REJECTED)

    def clear_resolved(self) -> int:
        """Drop resolved history, keeping pending changes.

        Returns:
            Number of changes removed.
        """
        before = len(self._changes)
        self._changes = [change for change in self._changes if change.is_pending]
        removed = before - len(self._changes)
        if removed:
            LOGGER.debug("TrackedChangeStore.clear_resolved: removed=%d", removed)
            self._publish(TrackedChangesCleared(removed=removed, pending_count=self.pending_count))
        return removed

    def discard(self, change_id: str) -> bool:
        """Forget a pending change whose diff unit never reached the document."""
        change = self.get(change_id)
        if change is None or not change.is_pending:
            return False
        self._changes.remove(change)
        LOGGER.debug("TrackedChangeStore.discard: id=%s", change_id)
        return True

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _resolve(self, change_id: str, status: ChangeStatus) -> TrackedChange | None:
        change = self.get(change_id)
        if change is None:
            LOGGER.debug("TrackedChangeStore: unknown change %s", change_id)
            return None
        if not change.is_pending:
            LOGGER.debug(
                "TrackedChangeStore: change %s already %s", change_id, change.status.value
            )
            return None
        change.status = status
        LOGGER.debug("TrackedChangeStore: change %s -> %s", change_id, status.value)
        self._publish(
            TrackedChangeResolved(
                change_id=change_id,
                status=status.value,
                pending_count=self.pending_count,
            )
        )
        return change

    def _resolve_all(self, status: ChangeStatus) -> list[TrackedChange]:
        resolved: list[TrackedChange] = []
        for change in self.pending():
            result = self._resolve(change.id, status)
            if result is not None:
                resolved.append(result)
        return resolved

    def _publish(self, event: object) -> None:
        if self._bus is not None:
            self._bus.publish(event)  # type: ignore[arg-type]


def format_review_summary(store: TrackedChangeStore) -> str:
    """Render a short text summary of the store for transcripts and the CLI."""
    changes = store.changes
    if not changes:
        return "No tracked changes."
    lines = [f"{store.pending_count} pending of {len(changes)} tracked change(s):"]
    for change in changes:
        reason = f" ({change.reason})" if change.reason else ""
        lines.append(
            f"- [{change.status.value}] {change.original!r} -> {change.suggested!r}{reason}"
        )
    return "\n".join(lines)


__all__ = ["TrackedChangeStore", "format_review_summary"]
