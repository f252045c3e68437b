"""Domain data models.

Tracked changes are edits proposed by the agent that await user review;
they are owned by :class:`~redline.domain.tracked_changes.TrackedChangeStore`.
Turn state records the lifecycle of one agent turn for
:class:`~redline.domain.ai_turn_manager.AITurnManager`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def _utcnow() -> datetime:
    """Return current UTC time."""
    return datetime.now(timezone.utc)


class ChangeStatus(str, Enum):
    """Lifecycle state of a tracked change."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


@dataclass(slots=True)
class TrackedChange:
    """A proposed edit awaiting accept/reject.

    Only ``status`` changes after creation; the store enforces that it moves
    from ``PENDING`` to a resolved state at most once.

    Attributes:
        id: Unique identifier, shared with the diff unit in the document.
        original: Text the edit replaces (raw form, possibly markup).
        suggested: Replacement text.
        reason: Optional explanation supplied by the agent.
        status: Current lifecycle state.
        created_at: When the change was proposed.
    """

    id: str
    original: str
    suggested: str
    reason: str | None = None
    status: ChangeStatus = ChangeStatus.PENDING
    created_at: datetime = field(default_factory=_utcnow)

    @property
    def is_pending(self) -> bool:
        return self.status is ChangeStatus.PENDING

    def to_dict(self) -> dict[str, Any]:
        """Serialize for review panels and tool responses."""
        return {
            "id": self.id,
            "original": self.original,
            "suggested": self.suggested,
            "reason": self.reason,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
        }


class AITurnStatus(Enum):
    """Status of an agent turn."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELED = "canceled"


@dataclass(slots=True)
class AITurnState:
    """Lifecycle record of one agent turn.

    Attributes:
        turn_id: Unique identifier for this turn.
        prompt: The user prompt that started the turn.
        status: Current status.
        iterations: Model round-trips performed.
        tool_call_count: Tool calls executed.
        error: Error text when the turn failed.
        created_at: When the turn started.
        completed_at: When the turn reached a terminal status.
    """

    turn_id: str
    prompt: str
    status: AITurnStatus = AITurnStatus.PENDING
    iterations: int = 0
    tool_call_count: int = 0
    error: str | None = None
    created_at: datetime = field(default_factory=_utcnow)
    completed_at: datetime | None = None

    @property
    def is_running(self) -> bool:
        return self.status is AITurnStatus.RUNNING

    def mark_running(self) -> None:
        self.status = AITurnStatus.RUNNING

    def mark_completed(self, iterations: int, tool_call_count: int) -> None:
        self.status = AITurnStatus.COMPLETED
        self.iterations = iterations
        self.tool_call_count = tool_call_count
        self.completed_at = _utcnow()

    def mark_failed(self, error: str) -> None:
        self.status = AITurnStatus.FAILED
        self.error = error
        self.completed_at = _utcnow()

    def mark_canceled(self) -> None:
        self.status = AITurnStatus.CANCELED
        self.completed_at = _utcnow()


__all__ = ["AITurnState", "AITurnStatus", "ChangeStatus", "TrackedChange"]
