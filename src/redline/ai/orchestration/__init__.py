"""Agent orchestration: message types, tool dispatch and the agent loop."""

# Core types
from .types import (
    AgentConfig,
    ChatBackend,
    ChatBackendError,
    ChatContext,
    ChatResponse,
    LoopState,
    MemoryItem,
    Message,
    ToolCall,
    ToolCallRecord,
    ToolCallStatus,
    TurnOutput,
)

# Tool dispatch
from .tool_dispatcher import DispatchResult, ExecutionClass, PersistenceBackend, ToolDispatcher

# Agent loop
from .runner import AgentLoop, CancellationToken, ToolStatusUpdate

__all__ = [
    "AgentConfig",
    "AgentLoop",
    "CancellationToken",
    "ChatBackend",
    "ChatBackendError",
    "ChatContext",
    "ChatResponse",
    "DispatchResult",
    "ExecutionClass",
    "LoopState",
    "MemoryItem",
    "Message",
    "PersistenceBackend",
    "ToolCall",
    "ToolCallRecord",
    "ToolCallStatus",
    "ToolDispatcher",
    "ToolStatusUpdate",
    "TurnOutput",
]
