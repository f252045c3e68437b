"""Tests for the AI turn manager."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from redline.ai.orchestration.runner import AgentLoop
from redline.ai.orchestration.tool_dispatcher import ToolDispatcher
from redline.ai.orchestration.types import AgentConfig, ChatBackendError, LoopState
from redline.domain.ai_turn_manager import AITurnManager, TurnInProgressError
from redline.domain.events import AITurnCanceled, AITurnCompleted, AITurnFailed, AITurnStarted, EventBus
from redline.domain.models import AITurnStatus
from tests.helpers import BlockingBackend, ScriptedBackend, message_response, tool_call, tool_response


def record_turn_events(bus: EventBus) -> list[object]:
    events: list[object] = []
    for event_type in (AITurnStarted, AITurnCompleted, AITurnFailed, AITurnCanceled):
        bus.subscribe(event_type, events.append)
    return events


# =============================================================================
# Turn lifecycle
# =============================================================================


class TestStartTurn:
    """Tests for AITurnManager.start_turn()."""

    @pytest.mark.asyncio
    async def test_completed_turn(
        self,
        dispatcher: ToolDispatcher,
        event_bus: EventBus,
        agent_config: AgentConfig,
    ) -> None:
        backend = ScriptedBackend([tool_response(tool_call("get_selection")), message_response("Done")])
        loop = AgentLoop(backend, dispatcher)
        manager = AITurnManager(lambda: loop, event_bus)
        events = record_turn_events(event_bus)

        output = await manager.start_turn("Tighten it", agent_config, turn_id="turn-1")

        assert output.state is LoopState.FINAL_ANSWER
        assert [type(event) for event in events] == [AITurnStarted, AITurnCompleted]
        completed = events[1]
        assert completed.response_text == "Done"
        assert completed.iterations == 2
        turn = manager.current_turn
        assert turn.status is AITurnStatus.COMPLETED
        assert turn.tool_call_count == 1
        assert turn.completed_at is not None
        assert manager.is_running() is False

    @pytest.mark.asyncio
    async def test_transcript_carries_over(
        self,
        dispatcher: ToolDispatcher,
        event_bus: EventBus,
        agent_config: AgentConfig,
    ) -> None:
        backend = ScriptedBackend([message_response("First"), message_response("Second")])
        loop = AgentLoop(backend, dispatcher)
        manager = AITurnManager(lambda: loop, event_bus)

        await manager.start_turn("one", agent_config)
        await manager.start_turn("two", agent_config)

        second_request = backend.requests[1]
        assert [message.content for message in second_request] == ["one", "First", "two"]
        assert len(manager.history) == 4

    @pytest.mark.asyncio
    async def test_generated_turn_id(self, dispatcher: ToolDispatcher, event_bus: EventBus, agent_config: AgentConfig) -> None:
        loop = AgentLoop(ScriptedBackend([message_response("ok")]), dispatcher)
        manager = AITurnManager(lambda: loop, event_bus)

        await manager.start_turn("hi", agent_config)

        assert manager.current_turn.turn_id.startswith("turn-")

    @pytest.mark.asyncio
    async def test_backend_failure_publishes_failed(
        self,
        dispatcher: ToolDispatcher,
        event_bus: EventBus,
        agent_config: AgentConfig,
    ) -> None:
        loop = AgentLoop(ScriptedBackend([ChatBackendError("offline")]), dispatcher)
        manager = AITurnManager(lambda: loop, event_bus)
        events = record_turn_events(event_bus)

        output = await manager.start_turn("hi", agent_config)

        assert output.state is LoopState.ERRORED
        assert isinstance(events[-1], AITurnFailed)
        assert events[-1].error == "offline"
        assert manager.current_turn.status is AITurnStatus.FAILED

    @pytest.mark.asyncio
    async def test_loop_exception_is_reraised(self, event_bus: EventBus, agent_config: AgentConfig) -> None:
        class BrokenLoop:
            async def run(self, *args: Any, **kwargs: Any) -> Any:
                raise RuntimeError("wiring bug")

        manager = AITurnManager(lambda: BrokenLoop(), event_bus)
        events = record_turn_events(event_bus)

        with pytest.raises(RuntimeError, match="wiring bug"):
            await manager.start_turn("hi", agent_config)

        assert isinstance(events[-1], AITurnFailed)
        assert manager.current_turn.error == "wiring bug"
        assert manager.is_running() is False

    @pytest.mark.asyncio
    async def test_missing_loop(self, event_bus: EventBus, agent_config: AgentConfig) -> None:
        manager = AITurnManager(lambda: None, event_bus)

        with pytest.raises(RuntimeError, match="Agent loop unavailable"):
            await manager.start_turn("hi", agent_config)


# =============================================================================
# Concurrency and cancellation
# =============================================================================


class TestConcurrency:
    """Tests for one-turn-at-a-time and cancellation."""

    @pytest.mark.asyncio
    async def test_second_turn_rejected_then_cancel(
        self,
        dispatcher: ToolDispatcher,
        event_bus: EventBus,
        agent_config: AgentConfig,
    ) -> None:
        backend = BlockingBackend()
        loop = AgentLoop(backend, dispatcher)
        manager = AITurnManager(lambda: loop, event_bus)
        events = record_turn_events(event_bus)

        task = asyncio.ensure_future(manager.start_turn("first", agent_config))
        await backend.started.wait()

        assert manager.is_running() is True
        with pytest.raises(TurnInProgressError):
            await manager.start_turn("second", agent_config)
        with pytest.raises(TurnInProgressError):
            manager.clear_history()

        manager.cancel()
        output = await asyncio.wait_for(task, timeout=1)

        assert output.state is LoopState.CANCELLED
        assert isinstance(events[-1], AITurnCanceled)
        assert manager.current_turn.status is AITurnStatus.CANCELED

    @pytest.mark.asyncio
    async def test_task_cancellation_marks_turn(
        self,
        dispatcher: ToolDispatcher,
        event_bus: EventBus,
        agent_config: AgentConfig,
    ) -> None:
        backend = BlockingBackend()
        loop = AgentLoop(backend, dispatcher)
        manager = AITurnManager(lambda: loop, event_bus)
        events = record_turn_events(event_bus)

        task = asyncio.ensure_future(manager.start_turn("first", agent_config))
        await backend.started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert isinstance(events[-1], AITurnCanceled)
        assert manager.current_turn.status is AITurnStatus.CANCELED

    def test_cancel_without_turn_is_a_no_op(self, event_bus: EventBus) -> None:
        manager = AITurnManager(lambda: None, event_bus)

        manager.cancel()

        assert manager.current_turn is None

    @pytest.mark.asyncio
    async def test_clear_history(self, dispatcher: ToolDispatcher, event_bus: EventBus, agent_config: AgentConfig) -> None:
        loop = AgentLoop(ScriptedBackend([message_response("ok")]), dispatcher)
        manager = AITurnManager(lambda: loop, event_bus)
        await manager.start_turn("hi", agent_config)

        manager.clear_history()

        assert manager.history == ()
