"""Domain services shared by the editor and the agent loop.

The turn manager lives in :mod:`redline.domain.ai_turn_manager`; it depends on
the agent loop and is imported from there directly.
"""

from .events import EventBus
from .models import AITurnState, AITurnStatus, ChangeStatus, TrackedChange
from .tracked_changes import TrackedChangeStore, format_review_summary

__all__ = [
    "AITurnState",
    "AITurnStatus",
    "ChangeStatus",
    "EventBus",
    "TrackedChange",
    "TrackedChangeStore",
    "format_review_summary",
]
