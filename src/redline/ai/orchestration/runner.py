"""Agent loop: drives model round-trips and tool execution for one user turn.

The loop alternates between asking the chat backend for a reply and running
the requested tool calls through the :class:`ToolDispatcher`, until the
model answers without tools, the round-trip cap is reached, the turn is
cancelled, or the backend fails.

Tool calls in one batch run strictly one after another; a later call may
depend on document state produced by an earlier one.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Sequence

from ...domain.events import EventBus, FileRefreshRequested, ToolCallStatusChanged
from ..prompts import build_chat_context
from .tool_dispatcher import DispatchResult, ToolDispatcher
from .types import (
    AgentConfig,
    ChatBackend,
    ChatBackendError,
    ChatContext,
    ChatResponse,
    LoopState,
    Message,
    ToolCall,
    ToolCallRecord,
    ToolCallStatus,
    TurnOutput,
)

__all__ = [
    "AgentLoop",
    "CancellationToken",
    "ContextProvider",
    "RefreshCallback",
    "StatusCallback",
    "ToolStatusUpdate",
]

LOGGER = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Callback Types
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ToolStatusUpdate:
    """A tool call changed status (for transcript rendering)."""

    call: ToolCall
    label: str
    status: ToolCallStatus
    result: str = ""


# Invoked on every tool-call status change
StatusCallback = Callable[[ToolStatusUpdate], None]

# Invoked after a persistence tool created or wrote a file
RefreshCallback = Callable[[str | None], Awaitable[None] | None]

# Builds the workspace context for each model request
ContextProvider = Callable[[AgentConfig], ChatContext]


class CancellationToken:
    """Cooperative cancel signal shared between a UI and a running loop."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()


class _RequestCancelled(Exception):
    """The in-flight model request was aborted by the cancel signal."""


# -----------------------------------------------------------------------------
# Agent Loop
# -----------------------------------------------------------------------------


class AgentLoop:
    """Bounded multi-turn driver between a chat backend and the tools.

    Example:
        >>> loop = AgentLoop(backend, dispatcher, event_bus=bus)
        >>> output = await loop.run([Message.user("Tighten the intro")], AgentConfig())
        >>> output.state
        <LoopState.FINAL_ANSWER: 'final_answer'>
    """

    def __init__(
        self,
        backend: ChatBackend,
        dispatcher: ToolDispatcher,
        *,
        event_bus: EventBus | None = None,
        context_provider: ContextProvider | None = None,
        on_refresh_files: RefreshCallback | None = None,
        advertise_tools: bool = True,
    ) -> None:
        self._backend = backend
        self._dispatcher = dispatcher
        self._bus = event_bus
        self._context_provider = context_provider
        self._on_refresh_files = on_refresh_files
        self._advertise_tools = advertise_tools
        self._state = LoopState.IDLE

    @property
    def state(self) -> LoopState:
        return self._state

    @property
    def dispatcher(self) -> ToolDispatcher:
        return self._dispatcher

    @property
    def backend(self) -> ChatBackend:
        return self._backend

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def run(
        self,
        messages: Sequence[Message],
        config: AgentConfig,
        *,
        cancel: CancellationToken | None = None,
        on_status: StatusCallback | None = None,
        on_messages: Callable[[tuple[Message, ...]], None] | None = None,
        turn_id: str | None = None,
    ) -> TurnOutput:
        """Run one user turn starting from ``messages``.

        Args:
            messages: Transcript so far, ending with the user's message.
            config: Per-turn configuration (model, cap, memory, workspace).
            cancel: Optional cancel signal. Checked before each round-trip and
                raced against the in-flight model request.
            on_status: Called on every tool-call status change.
            on_messages: Called with the full transcript whenever it grows.
            turn_id: Identifier used in published events.

        Returns:
            A :class:`TurnOutput` in a terminal state. Never raises for model
            or tool failures.
        """
        turn_id = turn_id or f"turn-{uuid.uuid4().hex[:8]}"
        transcript: list[Message] = list(messages)
        records: list[ToolCallRecord] = []
        iterations = 0
        capped = False
        response_text = ""
        error: str | None = None
        tools = self._dispatcher.registry.to_openai_tools() if self._advertise_tools else []

        LOGGER.debug("Starting turn %s with max_iterations=%d", turn_id, config.max_iterations)

        def emit_messages() -> None:
            if on_messages is not None:
                on_messages(tuple(transcript))

        while True:
            if cancel is not None and cancel.cancelled:
                self._transition(LoopState.CANCELLED, turn_id)
                break
            if iterations >= config.max_iterations:
                LOGGER.warning("Turn %s reached max iterations (%d)", turn_id, config.max_iterations)
                capped = True
                self._transition(LoopState.FINAL_ANSWER, turn_id)
                break

            iterations += 1
            self._transition(LoopState.AWAITING_MODEL, turn_id)
            LOGGER.debug("Turn %s iteration %d", turn_id, iterations)

            try:
                response = await self._request(transcript, config, tools, cancel)
            except _RequestCancelled:
                LOGGER.debug("Turn %s cancelled during model request", turn_id)
                self._transition(LoopState.CANCELLED, turn_id)
                break
            except ChatBackendError as exc:
                LOGGER.warning("Turn %s: chat backend failed: %s", turn_id, exc)
                error = str(exc)
            except Exception as exc:
                LOGGER.exception("Turn %s: unexpected chat backend failure", turn_id)
                error = str(exc) or exc.__class__.__name__
            else:
                if response.type == "error":
                    error = response.content or "The chat backend returned an error"

            if error is not None:
                transcript.append(Message.assistant(_error_text(error)))
                emit_messages()
                self._transition(LoopState.ERRORED, turn_id)
                break

            if not response.has_tool_calls:
                response_text = response.content
                transcript.append(Message.assistant(response.content))
                emit_messages()
                self._transition(LoopState.FINAL_ANSWER, turn_id)
                break

            self._transition(LoopState.EXECUTING_TOOLS, turn_id)
            transcript.append(Message.assistant(response.content, response.tool_calls))
            emit_messages()
            for call in response.tool_calls:
                record = await self._execute_call(call, config, turn_id, on_status)
                records.append(record)
                transcript.append(Message.tool(record.result, call.id, call.name))
                emit_messages()

        return TurnOutput(
            messages=tuple(transcript),
            state=self._state,
            response=response_text,
            iterations=iterations,
            max_iterations_reached=capped,
            tool_calls=tuple(records),
            error=error,
        )

    # ------------------------------------------------------------------
    # Model request
    # ------------------------------------------------------------------

    async def _request(
        self,
        transcript: Sequence[Message],
        config: AgentConfig,
        tools: Sequence[Mapping[str, Any]],
        cancel: CancellationToken | None,
    ) -> ChatResponse:
        context = self._build_context(config)
        request = asyncio.ensure_future(
            self._backend.complete(tuple(transcript), config=config, context=context, tools=tools)
        )
        if cancel is None:
            return await request

        waiter = asyncio.ensure_future(cancel.wait())
        try:
            done, _ = await asyncio.wait({request, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (request, waiter):
                if not task.done():
                    task.cancel()
        if request in done:
            return request.result()
        # Collect the aborted request so its cancellation is not reported as unhandled.
        await asyncio.gather(request, return_exceptions=True)
        raise _RequestCancelled()

    def _build_context(self, config: AgentConfig) -> ChatContext:
        if self._context_provider is not None:
            return self._context_provider(config)
        return build_chat_context(self._dispatcher.files, config)

    # ------------------------------------------------------------------
    # Tool execution
    # ------------------------------------------------------------------

    async def _execute_call(
        self,
        call: ToolCall,
        config: AgentConfig,
        turn_id: str,
        on_status: StatusCallback | None,
    ) -> ToolCallRecord:
        label = self._dispatcher.registry.label_for(call.name)
        self._report(turn_id, call, label, ToolCallStatus.PENDING, on_status)
        if config.tool_delay > 0:
            await asyncio.sleep(config.tool_delay)
        self._report(turn_id, call, label, ToolCallStatus.RUNNING, on_status)

        started = time.perf_counter()
        result = await self._dispatcher.dispatch(call.name, call.arguments, workspace_id=config.workspace_id)
        duration_ms = (time.perf_counter() - started) * 1000

        if result.refresh_files:
            await self._signal_refresh(config.workspace_id, call.name)

        status = ToolCallStatus.COMPLETED if result.success else ToolCallStatus.ERROR
        self._report(turn_id, call, label, status, on_status, result.result)
        return ToolCallRecord(
            call_id=call.id,
            name=call.name,
            arguments=call.arguments,
            result=_result_text(result),
            status=status,
            duration_ms=duration_ms,
        )

    async def _signal_refresh(self, workspace_id: str | None, tool_name: str) -> None:
        if self._bus is not None:
            self._bus.publish(FileRefreshRequested(workspace_id=workspace_id, tool_name=tool_name))
        if self._on_refresh_files is None:
            return
        try:
            outcome = self._on_refresh_files(workspace_id)
            if outcome is not None:
                await outcome
        except Exception:
            LOGGER.warning("File tree refresh after %s failed", tool_name, exc_info=True)

    def _report(
        self,
        turn_id: str,
        call: ToolCall,
        label: str,
        status: ToolCallStatus,
        on_status: StatusCallback | None,
        result: str = "",
    ) -> None:
        if on_status is not None:
            try:
                on_status(ToolStatusUpdate(call=call, label=label, status=status, result=result))
            except Exception:
                LOGGER.debug("Status callback failed", exc_info=True)
        if self._bus is not None:
            self._bus.publish(
                ToolCallStatusChanged(
                    turn_id=turn_id,
                    tool_call_id=call.id,
                    tool_name=call.name,
                    label=label,
                    status=status.value,
                    result=result,
                )
            )

    def _transition(self, state: LoopState, turn_id: str) -> None:
        if state is not self._state:
            LOGGER.debug("Turn %s: %s -> %s", turn_id, self._state.value, state.value)
        self._state = state


def _result_text(result: DispatchResult) -> str:
    return result.result if result.result else "(no output)"


def _error_text(message: str) -> str:
    return message if message.startswith("Error") else f"Error: {message}"
