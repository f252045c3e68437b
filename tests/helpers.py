"""Shared test helpers and stub collaborators.

Import from here instead of duplicating these classes in individual test
files.
"""

from __future__ import annotations

import asyncio
from typing import Any, Mapping, Sequence

from redline.ai.orchestration.types import (
    AgentConfig,
    ChatContext,
    ChatResponse,
    Message,
    ToolCall,
)


def tool_call(name: str, call_id: str | None = None, **arguments: Any) -> ToolCall:
    """Build a ToolCall with keyword arguments as its argument mapping."""
    return ToolCall(id=call_id or f"call-{name}", name=name, arguments=arguments)


def tool_response(*calls: ToolCall, content: str = "") -> ChatResponse:
    return ChatResponse(type="tool_calls", content=content, tool_calls=tuple(calls))


def message_response(content: str) -> ChatResponse:
    return ChatResponse(type="message", content=content)


class ScriptedBackend:
    """Chat backend that replays queued replies.

    Each queued item is either a :class:`ChatResponse` or an exception to
    raise. When the queue runs dry the backend keeps repeating the last item,
    which is handy for exercising the round-trip cap.

    Example:
        backend = ScriptedBackend([tool_response(tool_call("get_selection")), message_response("Done")])
    """

    def __init__(self, replies: Sequence[ChatResponse | BaseException] = ()) -> None:
        self._replies = list(replies)
        self.requests: list[tuple[Message, ...]] = []
        self.contexts: list[ChatContext] = []
        self.tools: list[Sequence[Mapping[str, Any]]] = []
        self.closed = False

    async def complete(
        self,
        messages: Sequence[Message],
        *,
        config: AgentConfig,
        context: ChatContext,
        tools: Sequence[Mapping[str, Any]] = (),
    ) -> ChatResponse:
        self.requests.append(tuple(messages))
        self.contexts.append(context)
        self.tools.append(tools)
        if not self._replies:
            return message_response("")
        reply = self._replies.pop(0) if len(self._replies) > 1 else self._replies[0]
        if isinstance(reply, BaseException):
            raise reply
        return reply

    async def aclose(self) -> None:
        self.closed = True


class BlockingBackend:
    """Chat backend whose request never finishes until released."""

    def __init__(self) -> None:
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def complete(self, messages: Sequence[Message], **_kwargs: Any) -> ChatResponse:
        self.started.set()
        await self.release.wait()
        return message_response("late")


class RecordingPersistence:
    """Persistence collaborator that records calls and returns canned text."""

    def __init__(self, replies: Mapping[str, str] | None = None, *, error: BaseException | None = None) -> None:
        self.calls: list[tuple[str, str, dict[str, Any]]] = []
        self._replies = dict(replies or {})
        self._error = error

    async def execute(self, workspace_id: str, tool_name: str, args: Mapping[str, Any]) -> str:
        self.calls.append((workspace_id, tool_name, dict(args)))
        if self._error is not None:
            raise self._error
        return self._replies.get(tool_name, f"ok: {tool_name}")
