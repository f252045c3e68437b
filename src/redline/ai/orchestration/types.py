"""Core type definitions for the agent loop.

Messages, tool calls and per-turn configuration are frozen dataclasses so a
transcript snapshot can be shared with the UI while the loop keeps appending.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal, Mapping, Protocol, Sequence

from openai.types.chat import ChatCompletionMessageParam

from ...services.file_tree import FileNode

__all__ = [
    "MessageRole",
    "Message",
    "ToolCall",
    "ToolCallStatus",
    "ToolCallRecord",
    "LoopState",
    "MemoryItem",
    "AgentConfig",
    "ChatContext",
    "ChatResponse",
    "ChatBackend",
    "ChatBackendError",
    "TurnOutput",
]


# -----------------------------------------------------------------------------
# Tool calls
# -----------------------------------------------------------------------------


class ToolCallStatus(str, Enum):
    """UI lifecycle of a tool call. Does not drive orchestration."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass(slots=True, frozen=True)
class ToolCall:
    """A tool invocation requested by the model.

    Attributes:
        id: Identifier assigned by the model (or generated when absent).
        name: Tool name, verbatim.
        arguments: Parsed argument mapping.
    """

    id: str
    name: str
    arguments: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> ToolCall:
        """Build from either ``{id, name, args}`` or the function calling shape.

        String arguments are decoded as JSON; undecodable or non-object
        arguments become an empty mapping.
        """
        function = payload.get("function")
        if isinstance(function, Mapping):
            name = function.get("name", "")
            raw_args: Any = function.get("arguments")
        else:
            name = payload.get("name", "")
            raw_args = payload.get("args", payload.get("arguments"))
        return cls(
            id=str(payload.get("id") or f"call_{uuid.uuid4().hex[:12]}"),
            name=str(name or ""),
            arguments=_decode_arguments(raw_args),
        )

    def to_chat_param(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {
                "name": self.name,
                "arguments": json.dumps(dict(self.arguments), ensure_ascii=False),
            },
        }

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "args": dict(self.arguments)}


def _decode_arguments(raw: Any) -> dict[str, Any]:
    if raw is None or raw == "":
        return {}
    if isinstance(raw, Mapping):
        return dict(raw)
    if isinstance(raw, str):
        try:
            decoded = json.loads(raw)
        except json.JSONDecodeError:
            return {}
        return dict(decoded) if isinstance(decoded, Mapping) else {}
    return {}


@dataclass(slots=True, frozen=True)
class ToolCallRecord:
    """Record of a finished tool call.

    Attributes:
        call_id: Identifier of the originating :class:`ToolCall`.
        name: Tool name.
        arguments: Arguments the tool ran with.
        result: Text fed back to the model.
        status: Final status (``completed`` or ``error``).
        duration_ms: Execution time in milliseconds.
    """

    call_id: str
    name: str
    arguments: Mapping[str, Any]
    result: str = ""
    status: ToolCallStatus = ToolCallStatus.COMPLETED
    duration_ms: float = 0.0

    @property
    def success(self) -> bool:
        return self.status is ToolCallStatus.COMPLETED

    def to_dict(self) -> dict[str, Any]:
        return {
            "call_id": self.call_id,
            "name": self.name,
            "arguments": dict(self.arguments),
            "result": self.result,
            "status": self.status.value,
            "duration_ms": self.duration_ms,
        }


# -----------------------------------------------------------------------------
# Message Type
# -----------------------------------------------------------------------------

MessageRole = Literal["system", "user", "assistant", "tool"]


@dataclass(slots=True, frozen=True)
class Message:
    """Immutable chat message.

    Attributes:
        role: The role of the message sender.
        content: The text content of the message.
        name: Tool name for tool-result messages.
        tool_call_id: ID linking a tool result to its call.
        tool_calls: Tool calls requested by the assistant.
        metadata: Additional metadata (not sent to the model).
    """

    role: MessageRole
    content: str
    name: str | None = None
    tool_call_id: str | None = None
    tool_calls: tuple[ToolCall, ...] = ()
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def to_chat_param(self) -> ChatCompletionMessageParam:
        """Convert to OpenAI's ChatCompletionMessageParam format."""
        payload: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.role == "tool":
            payload["tool_call_id"] = self.tool_call_id
        if self.tool_calls:
            payload["tool_calls"] = [call.to_chat_param() for call in self.tool_calls]
        return payload  # type: ignore[return-value]

    def to_dict(self) -> dict[str, Any]:
        """Wire form used by the HTTP chat backend."""
        data: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.name is not None:
            data["name"] = self.name
        if self.tool_call_id is not None:
            data["tool_call_id"] = self.tool_call_id
        if self.tool_calls:
            data["toolCalls"] = [call.to_dict() for call in self.tool_calls]
        return data

    @classmethod
    def system(cls, content: str, **metadata: Any) -> Message:
        return cls(role="system", content=content, metadata=metadata)

    @classmethod
    def user(cls, content: str, **metadata: Any) -> Message:
        return cls(role="user", content=content, metadata=metadata)

    @classmethod
    def assistant(
        cls,
        content: str,
        tool_calls: Sequence[ToolCall] = (),
        **metadata: Any,
    ) -> Message:
        return cls(role="assistant", content=content, tool_calls=tuple(tool_calls), metadata=metadata)

    @classmethod
    def tool(cls, content: str, tool_call_id: str, name: str | None = None, **metadata: Any) -> Message:
        """Create a tool result message."""
        return cls(role="tool", content=content, tool_call_id=tool_call_id, name=name, metadata=metadata)


# -----------------------------------------------------------------------------
# Configuration and context
# -----------------------------------------------------------------------------


class LoopState(str, Enum):
    """States of the agent loop."""

    IDLE = "idle"
    AWAITING_MODEL = "awaiting_model"
    EXECUTING_TOOLS = "executing_tools"
    FINAL_ANSWER = "final_answer"
    CANCELLED = "cancelled"
    ERRORED = "errored"


MemoryType = Literal["goal", "audience", "tone", "constraint"]


@dataclass(slots=True, frozen=True)
class MemoryItem:
    """A user-defined writing-context entry."""

    type: MemoryType
    content: str


@dataclass(slots=True, frozen=True)
class AgentConfig:
    """Per-turn configuration passed explicitly into every loop run.

    Attributes:
        model: Model identifier sent to the backend.
        max_iterations: Hard cap on model round-trips per user turn.
        memory: Writing-context items rendered into the request.
        context_files: Extra files whose content accompanies the request.
        tool_delay: Cosmetic pause (seconds) before a tool is marked running.
        workspace_id: Workspace handed to the persistence collaborator.
        temperature: Sampling temperature, ``None`` for the backend default.
    """

    model: str = "anthropic/claude-sonnet-4.5"
    max_iterations: int = 10
    memory: tuple[MemoryItem, ...] = ()
    context_files: tuple[FileNode, ...] = ()
    tool_delay: float = 0.3
    workspace_id: str | None = None
    temperature: float | None = None

    def __post_init__(self) -> None:
        if self.max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        if not isinstance(self.memory, tuple):
            object.__setattr__(self, "memory", tuple(self.memory))
        if not isinstance(self.context_files, tuple):
            object.__setattr__(self, "context_files", tuple(self.context_files))


@dataclass(slots=True, frozen=True)
class ChatContext:
    """Workspace context attached to every model request.

    Attributes:
        folder_tree: ASCII rendering of the workspace tree.
        current_file: The file open in the editor, content truncated.
        context_files: Additional files, content truncated.
        memory_context: Formatted writing-context block.
        workspace_id: Active workspace.
    """

    folder_tree: str = ""
    current_file: FileNode | None = None
    context_files: tuple[FileNode, ...] = ()
    memory_context: str = ""
    workspace_id: str | None = None


@dataclass(slots=True, frozen=True)
class ChatResponse:
    """One reply from a chat backend.

    ``type`` is ``"message"`` for a final answer, ``"tool_calls"`` when the
    model requested tools (``content`` may carry accompanying text) and
    ``"error"`` for a remote failure.
    """

    type: Literal["message", "tool_calls", "error"]
    content: str = ""
    tool_calls: tuple[ToolCall, ...] = ()

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> ChatResponse:
        kind = payload.get("type") or "message"
        calls = tuple(ToolCall.from_payload(item) for item in payload.get("toolCalls") or ())
        if kind == "tool_calls" and not calls:
            kind = "message"
        if kind not in ("message", "tool_calls", "error"):
            kind = "message"
        return cls(type=kind, content=str(payload.get("content") or ""), tool_calls=calls)


# -----------------------------------------------------------------------------
# Turn output
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class TurnOutput:
    """Result of one agent-loop run.

    Attributes:
        messages: Full transcript after the run.
        state: Terminal loop state.
        response: Final assistant text (empty when none).
        iterations: Model round-trips performed.
        max_iterations_reached: Whether the round-trip cap ended the run.
        tool_calls: Records of every executed tool call.
        error: Error text when ``state`` is ``ERRORED``.
    """

    messages: tuple[Message, ...]
    state: LoopState
    response: str = ""
    iterations: int = 0
    max_iterations_reached: bool = False
    tool_calls: tuple[ToolCallRecord, ...] = ()
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.state is not LoopState.ERRORED


# -----------------------------------------------------------------------------
# Chat backend contract
# -----------------------------------------------------------------------------


class ChatBackendError(RuntimeError):
    """Transport, HTTP or remote failure while asking the model for a reply."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ChatBackend(Protocol):
    """Remote model consumed by the agent loop.

    Implementations raise :class:`ChatBackendError` for any failure and may
    return a ``ChatResponse`` of type ``"error"`` for remote errors.
    """

    async def complete(
        self,
        messages: Sequence[Message],
        *,
        config: AgentConfig,
        context: ChatContext,
        tools: Sequence[Mapping[str, Any]] = (),
    ) -> ChatResponse:
        ...
