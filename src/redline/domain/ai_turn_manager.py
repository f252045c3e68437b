"""AI turn manager domain service.

Owns the chat session for one editor: it runs agent turns one at a time,
keeps the transcript between turns and publishes an event for each turn
lifecycle transition.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Callable, Sequence

from ..ai.orchestration.runner import AgentLoop, CancellationToken, StatusCallback
from ..ai.orchestration.types import AgentConfig, LoopState, Message, TurnOutput
from .events import AITurnCanceled, AITurnCompleted, AITurnFailed, AITurnStarted, EventBus
from .models import AITurnState, AITurnStatus

LOGGER = logging.getLogger(__name__)


class TurnInProgressError(RuntimeError):
    """Raised when a prompt is submitted while another turn is running."""


class AITurnManager:
    """Domain manager for agent turn execution.

    Events Emitted:
        - AITurnStarted: When a turn begins
        - AITurnCompleted: When the model produced a final answer (or the
          round-trip cap was hit)
        - AITurnFailed: When the model request failed
        - AITurnCanceled: When the turn was canceled
    """

    def __init__(
        self,
        loop_provider: Callable[[], AgentLoop | None],
        event_bus: EventBus,
        *,
        history: Sequence[Message] = (),
    ) -> None:
        """Initialize the turn manager.

        Args:
            loop_provider: Callable returning the agent loop, or ``None`` when
                no backend is configured.
            event_bus: The event bus for publishing lifecycle events.
            history: Transcript to resume from.
        """
        self._get_loop = loop_provider
        self._bus = event_bus
        self._history: list[Message] = list(history)
        self._current_turn: AITurnState | None = None
        self._cancel: CancellationToken | None = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def current_turn(self) -> AITurnState | None:
        """The most recent turn, finished or not."""
        return self._current_turn

    @property
    def history(self) -> tuple[Message, ...]:
        return tuple(self._history)

    def is_running(self) -> bool:
        return self._current_turn is not None and self._current_turn.is_running

    def clear_history(self) -> None:
        if self.is_running():
            raise TurnInProgressError("Cannot clear the transcript while a turn is running")
        self._history.clear()

    # ------------------------------------------------------------------
    # Turn Lifecycle
    # ------------------------------------------------------------------

    async def start_turn(
        self,
        prompt: str,
        config: AgentConfig,
        *,
        on_status: StatusCallback | None = None,
        turn_id: str | None = None,
    ) -> TurnOutput:
        """Run one agent turn for ``prompt``.

        Args:
            prompt: The user's message.
            config: Per-turn agent configuration.
            on_status: Optional tool-call status callback.
            turn_id: Optional turn ID. A unique one is generated when omitted.

        Returns:
            The loop's :class:`TurnOutput`. Its transcript becomes the session
            history for the next turn.

        Raises:
            TurnInProgressError: If a turn is already running.
            RuntimeError: If no agent loop is available.
        """
        if self.is_running():
            raise TurnInProgressError("AI turn already in progress")

        loop = self._get_loop()
        if loop is None:
            raise RuntimeError("Agent loop unavailable; configure a chat backend first")

        turn_id = turn_id or f"turn-{uuid.uuid4().hex[:8]}"
        turn = AITurnState(turn_id=turn_id, prompt=prompt)
        turn.mark_running()
        self._current_turn = turn
        self._cancel = CancellationToken()

        LOGGER.debug("AITurnManager.start_turn: turn_id=%s, prompt_length=%d", turn_id, len(prompt))
        self._bus.publish(AITurnStarted(turn_id=turn_id, prompt=prompt))

        messages = [*self._history, Message.user(prompt)]
        try:
            output = await loop.run(
                messages,
                config,
                cancel=self._cancel,
                on_status=on_status,
                turn_id=turn_id,
            )
        except asyncio.CancelledError:
            turn.mark_canceled()
            LOGGER.debug("AITurnManager: task canceled, turn_id=%s", turn_id)
            self._bus.publish(AITurnCanceled(turn_id=turn_id))
            raise
        except Exception as exc:
            turn.mark_failed(str(exc))
            LOGGER.warning("AITurnManager: turn failed, turn_id=%s, error=%s", turn_id, exc)
            self._bus.publish(AITurnFailed(turn_id=turn_id, error=str(exc)))
            raise
        finally:
            self._cancel = None

        self._history = list(output.messages)
        self._finish(turn, output)
        return output

    def cancel(self) -> None:
        """Signal the running turn to stop at its next check point."""
        if not self.is_running() or self._cancel is None:
            LOGGER.debug("AITurnManager.cancel: no turn running")
            return
        LOGGER.debug("AITurnManager.cancel: canceling turn_id=%s", self._current_turn.turn_id)
        self._cancel.cancel()

    # ------------------------------------------------------------------
    # Internal Helpers
    # ------------------------------------------------------------------

    def _finish(self, turn: AITurnState, output: TurnOutput) -> None:
        if output.state is LoopState.CANCELLED:
            turn.mark_canceled()
            self._bus.publish(AITurnCanceled(turn_id=turn.turn_id))
        elif output.state is LoopState.ERRORED:
            error = output.error or "Unknown error"
            turn.mark_failed(error)
            LOGGER.warning("AITurnManager: turn failed, turn_id=%s, error=%s", turn.turn_id, error)
            self._bus.publish(AITurnFailed(turn_id=turn.turn_id, error=error))
        else:
            turn.mark_completed(output.iterations, len(output.tool_calls))
            self._bus.publish(
                AITurnCompleted(
                    turn_id=turn.turn_id,
                    response_text=output.response,
                    iterations=output.iterations,
                    max_iterations_reached=output.max_iterations_reached,
                )
            )
        LOGGER.debug("AITurnManager: turn %s finished as %s", turn.turn_id, turn.status.value)


__all__ = ["AITurnManager", "AITurnStatus", "TurnInProgressError"]
