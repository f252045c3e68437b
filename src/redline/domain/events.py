"""Event bus infrastructure for decoupled communication.

Components publish domain events (tracked changes created or resolved, agent
turn lifecycle, tool progress, file tree refreshes) without knowing who is
listening. A front-end subscribes to the events it renders.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import (
    Any,
    Callable,
    Generic,
    TypeVar,
    TYPE_CHECKING,
)
from weakref import WeakMethod, ref

if TYPE_CHECKING:  # pragma: no cover - imports for type checking only
    from typing import DefaultDict

logger = logging.getLogger(__name__)

# Type variable for event types
E = TypeVar("E", bound="Event")

# Handler type: a callable that takes an event and returns None
Handler = Callable[[E], None]


@dataclass(slots=True)
class Event:
    """Base class for all events in the system.

    Subclasses use ``@dataclass(slots=True)`` and carry plain data only.
    """

    pass


# Event types that should not log each publish
_QUIET_EVENT_TYPES: set[type] = set()


# =============================================================================
# Tracked Change Events
# =============================================================================


@dataclass(slots=True)
class TrackedChangeAdded(Event):
    """Emitted when a proposed edit is registered as a pending change.

    Attributes:
        change_id: Identifier of the new tracked change.
        original: Text the change replaces.
        suggested: Replacement text.
        pending_count: Number of pending changes after the addition.
    """

    change_id: str
    original: str
    suggested: str
    pending_count: int


@dataclass(slots=True)
class TrackedChangeResolved(Event):
    """Emitted when a pending change is accepted or rejected.

    Attributes:
        change_id: Identifier of the resolved change.
        status: ``"accepted"`` or ``"rejected"``.
        pending_count: Number of pending changes after the resolution.
    """

    change_id: str
    status: str
    pending_count: int


@dataclass(slots=True)
class TrackedChangesCleared(Event):
    """Emitted when resolved history is dropped from the store."""

    removed: int
    pending_count: int


# =============================================================================
# AI Turn Events
# =============================================================================


@dataclass(slots=True)
class AITurnStarted(Event):
    """Emitted when an agent turn begins processing.

    Attributes:
        turn_id: The unique identifier for this turn (e.g., "turn-1").
        prompt: The user prompt that initiated the turn.
    """

    turn_id: str
    prompt: str


@dataclass(slots=True)
class ToolCallStatusChanged(Event):
    """Emitted whenever a tool call moves through its lifecycle.

    Attributes:
        turn_id: The agent turn the call belongs to.
        tool_call_id: The identifier assigned by the model.
        tool_name: The tool being invoked.
        label: Human readable label for transcript rendering.
        status: ``pending``, ``running``, ``completed`` or ``error``.
        result: Result text once the call has finished.
    """

    turn_id: str
    tool_call_id: str
    tool_name: str
    label: str
    status: str
    result: str = ""


@dataclass(slots=True)
class AITurnCompleted(Event):
    """Emitted when an agent turn finishes without a model failure.

    Attributes:
        turn_id: The unique identifier of the completed turn.
        response_text: The final assistant text.
        iterations: Number of model round-trips performed.
        max_iterations_reached: Whether the loop stopped on its round-trip cap.
    """

    turn_id: str
    response_text: str
    iterations: int
    max_iterations_reached: bool = False


@dataclass(slots=True)
class AITurnFailed(Event):
    """Emitted when an agent turn ends on a model or network failure."""

    turn_id: str
    error: str


@dataclass(slots=True)
class AITurnCanceled(Event):
    """Emitted when an agent turn is canceled by the user."""

    turn_id: str


# =============================================================================
# Workspace Events
# =============================================================================


@dataclass(slots=True)
class FileTreeChanged(Event):
    """Emitted when a virtual file tool produced a new file tree snapshot.

    Attributes:
        files: The replacement tree. Holders of the previous snapshot keep an
            unchanged view.
    """

    files: tuple[Any, ...] = field(default_factory=tuple)


@dataclass(slots=True)
class FileRefreshRequested(Event):
    """Emitted after a persistence tool created or wrote a file."""

    workspace_id: str | None
    tool_name: str


@dataclass(slots=True)
class DocumentChanged(Event):
    """Emitted once per committed document transaction.

    Attributes:
        version: Document version after the commit.
        label: Short description of the step (``"propose"``, ``"accept"``...).
    """

    version: int
    label: str = ""


_QUIET_EVENT_TYPES.add(DocumentChanged)


class EventBus(Generic[E]):
    """A typed publish-subscribe event bus.

    Handlers are stored as weak references where possible (bound methods) to
    avoid keeping their owners alive.

    Example::

        bus = EventBus()
        bus.subscribe(TrackedChangeAdded, panel.on_change_added)
        bus.publish(TrackedChangeAdded(change_id="c1", original="a", suggested="b", pending_count=1))

    Thread Safety:
        Not thread-safe. Publish from the event loop thread only.
    """

    __slots__ = ("_handlers",)

    def __init__(self) -> None:
        self._handlers: DefaultDict[type[Event], list[_HandlerRef]] = defaultdict(list)

    def subscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        """Register a handler to receive events of the specified type.

        Subscribing the same handler twice results in two invocations.
        """
        handler_ref = _HandlerRef.create(handler)
        self._handlers[event_type].append(handler_ref)
        logger.debug(
            "Subscribed handler %s to event type %s",
            _handler_name(handler),
            event_type.__name__,
        )

    def unsubscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        """Remove the first registration of ``handler`` for ``event_type``.

        Safe to call for handlers that were never subscribed.
        """
        handlers = self._handlers.get(event_type)
        if handlers is None:
            return

        for i, handler_ref in enumerate(handlers):
            if handler_ref.matches(handler):
                handlers.pop(i)
                logger.debug(
                    "Unsubscribed handler %s from event type %s",
                    _handler_name(handler),
                    event_type.__name__,
                )
                return

    def publish(self, event: E) -> None:
        """Broadcast an event to all registered handlers.

        Handlers run synchronously in registration order. A handler that
        raises is logged and the remaining handlers still run.
        """
        event_type = type(event)
        handlers = self._handlers.get(event_type)
        is_quiet = event_type in _QUIET_EVENT_TYPES

        if handlers is None:
            if not is_quiet:
                logger.debug("No handlers for event type %s", event_type.__name__)
            return

        if not is_quiet:
            logger.debug(
                "Publishing %s to %d handler(s)",
                event_type.__name__,
                len(handlers),
            )

        dead_indices: list[int] = []

        for i, handler_ref in enumerate(list(handlers)):
            handler = handler_ref.resolve()
            if handler is None:
                dead_indices.append(i)
                continue

            try:
                handler(event)
            except Exception:
                logger.exception(
                    "Handler %s raised exception for event %s",
                    _handler_name(handler),
                    event_type.__name__,
                )

        for i in reversed(dead_indices):
            handlers.pop(i)

    def clear(self) -> None:
        """Remove all registered handlers."""
        self._handlers.clear()
        logger.debug("Cleared all event handlers")

    def handler_count(self, event_type: type[E] | None = None) -> int:
        """Return the number of handlers for ``event_type`` (or all types)."""
        if event_type is not None:
            return len(self._handlers.get(event_type, []))
        return sum(len(handlers) for handlers in self._handlers.values())


class _HandlerRef:
    """Wrapper holding a weak reference for bound methods, strong otherwise."""

    __slots__ = ("_ref", "_is_weak")

    def __init__(self, handler_ref: WeakMethod | ref | Handler, is_weak: bool) -> None:
        self._ref = handler_ref
        self._is_weak = is_weak

    @classmethod
    def create(cls, handler: Handler) -> _HandlerRef:
        if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
            try:
                return cls(WeakMethod(handler), is_weak=True)
            except TypeError:
                pass
        return cls(handler, is_weak=False)

    def resolve(self) -> Handler | None:
        if not self._is_weak:
            return self._ref  # type: ignore[return-value]
        return self._ref()  # type: ignore[operator]

    def matches(self, handler: Handler) -> bool:
        resolved = self.resolve()
        if resolved is None:
            return False
        return resolved == handler


def _handler_name(handler: Handler) -> str:
    """Get a human-readable name for a handler for logging purposes."""
    if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
        cls_name = type(handler.__self__).__name__
        return f"{cls_name}.{handler.__func__.__name__}"
    if hasattr(handler, "__name__"):
        return handler.__name__
    return repr(handler)


__all__ = [
    "Event",
    "EventBus",
    "Handler",
    # Tracked change events
    "TrackedChangeAdded",
    "TrackedChangeResolved",
    "TrackedChangesCleared",
    # AI turn events
    "AITurnStarted",
    "ToolCallStatusChanged",
    "AITurnCompleted",
    "AITurnFailed",
    "AITurnCanceled",
    # Workspace events
    "FileTreeChanged",
    "FileRefreshRequested",
    "DocumentChanged",
]
