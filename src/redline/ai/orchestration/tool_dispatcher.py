"""Tool dispatcher.

Routes a named tool call to exactly one execution class and normalizes the
outcome to a :class:`DispatchResult` whose ``result`` is always text:

1. Document tools run against the live document through :class:`DocumentTools`.
2. ``fs_`` tools are delegated to the persistence collaborator when one is
   configured for the workspace.
3. Otherwise ``fs_`` tools run against the in-memory file-tree snapshot with
   copy-on-write semantics.

Nothing raised inside a tool escapes :meth:`ToolDispatcher.dispatch`.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Protocol, Sequence

import jsonschema

from ...domain.events import EventBus, FileTreeChanged
from ...services.file_tree import FileNode, FileTree
from ..tools.document_tools import DocumentTools
from ..tools.errors import (
    ErrorCode,
    InvalidParameterError,
    NoActiveDocumentError,
    ToolError,
    UnknownToolError,
)
from ..tools.tool_registry import ToolCategory, ToolRegistry, create_default_registry
from ..tools.virtual_fs import execute_virtual_tool

LOGGER = logging.getLogger(__name__)

PERSISTENCE_PREFIX = "fs_"
REFRESH_TOOLS = frozenset({"fs_write_file", "fs_create_file"})
MAX_VALIDATION_ERRORS = 3


# -----------------------------------------------------------------------------
# Dispatch Result
# -----------------------------------------------------------------------------


class ExecutionClass(str, Enum):
    DOCUMENT = "document"
    PERSISTENCE = "persistence"
    VIRTUAL = "virtual"
    UNKNOWN = "unknown"


@dataclass(slots=True)
class DispatchResult:
    """Result of a tool dispatch operation.

    Attributes:
        success: Whether the tool executed successfully.
        result: Text returned to the model (also set on failure).
        tool_name: Name of the tool executed.
        execution_class: The path the call was routed through.
        error: Structured error when the call failed.
        updated_files: Replacement file tree from a virtual tool.
        refresh_files: Whether the caller should reload the workspace tree.
        execution_time_ms: Execution time in milliseconds.
    """

    success: bool
    result: str
    tool_name: str = ""
    execution_class: ExecutionClass = ExecutionClass.UNKNOWN
    error: ToolError | None = None
    updated_files: FileTree | None = None
    refresh_files: bool = False
    execution_time_ms: float = 0.0
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        data: dict[str, Any] = {
            "success": self.success,
            "tool_name": self.tool_name,
            "execution_class": self.execution_class.value,
            "result": self.result,
            "execution_time_ms": self.execution_time_ms,
        }
        if self.error is not None:
            data["error"] = self.error.to_dict()
        if self.refresh_files:
            data["refresh_files"] = True
        if self.metadata:
            data["metadata"] = self.metadata
        return data


# -----------------------------------------------------------------------------
# Collaborators
# -----------------------------------------------------------------------------


class PersistenceBackend(Protocol):
    """External workspace storage that executes ``fs_`` tools."""

    async def execute(self, workspace_id: str, tool_name: str, args: Mapping[str, Any]) -> str:
        ...


class DispatchListener(Protocol):
    """Callback protocol for dispatch events."""

    def on_tool_start(self, tool_name: str, arguments: Mapping[str, Any]) -> None:
        ...

    def on_tool_complete(self, result: DispatchResult) -> None:
        ...


# -----------------------------------------------------------------------------
# Tool Dispatcher
# -----------------------------------------------------------------------------


class ToolDispatcher:
    """Dispatches tool calls to the matching execution class.

    Example:
        dispatcher = ToolDispatcher(
            document_tools=DocumentTools(workspace, lambda: dispatcher.files),
            persistence=InMemoryWorkspaceStore(),
            workspace_id="ws-1",
        )
        result = await dispatcher.dispatch("suggest_edit", {...})
    """

    def __init__(
        self,
        *,
        registry: ToolRegistry | None = None,
        document_tools: DocumentTools | None = None,
        persistence: PersistenceBackend | None = None,
        workspace_id: str | None = None,
        files: Sequence[FileNode] = (),
        event_bus: EventBus | None = None,
        listener: DispatchListener | None = None,
        validate_arguments: bool = True,
    ) -> None:
        self._registry = registry or create_default_registry()
        self._document_tools = document_tools
        self._persistence = persistence
        self._workspace_id = workspace_id
        self._files: FileTree = tuple(files)
        self._bus = event_bus
        self._listener = listener
        self._validate_arguments = validate_arguments
        self._validators: dict[str, jsonschema.Draft202012Validator] = {}

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    @property
    def files(self) -> FileTree:
        """Current file-tree snapshot. Replaced wholesale, never mutated."""
        return self._files

    def set_files(self, files: Sequence[FileNode]) -> None:
        self._files = tuple(files)

    @property
    def workspace_id(self) -> str | None:
        return self._workspace_id

    @workspace_id.setter
    def workspace_id(self, value: str | None) -> None:
        self._workspace_id = value

    def set_document_tools(self, tools: DocumentTools | None) -> None:
        self._document_tools = tools

    def set_persistence(self, persistence: PersistenceBackend | None) -> None:
        self._persistence = persistence

    def set_listener(self, listener: DispatchListener | None) -> None:
        self._listener = listener

    def execution_class(self, tool_name: str, workspace_id: str | None = None) -> ExecutionClass:
        """Which path a call to ``tool_name`` would take right now."""
        registration = self._registry.get_registration(tool_name)
        if registration is None or not registration.enabled:
            return ExecutionClass.UNKNOWN
        if registration.category is ToolCategory.DOCUMENT:
            return ExecutionClass.DOCUMENT
        active_workspace = workspace_id or self._workspace_id
        if tool_name.startswith(PERSISTENCE_PREFIX) and self._persistence is not None and active_workspace:
            return ExecutionClass.PERSISTENCE
        return ExecutionClass.VIRTUAL

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def dispatch(
        self,
        tool_name: str,
        arguments: Mapping[str, Any] | None = None,
        *,
        workspace_id: str | None = None,
    ) -> DispatchResult:
        """Execute one tool call. Never raises."""
        arguments = dict(arguments or {})
        started = time.perf_counter()
        self._notify_start(tool_name, arguments)

        route = self.execution_class(tool_name, workspace_id)
        try:
            if route is ExecutionClass.UNKNOWN:
                raise UnknownToolError(
                    message=f"Unknown tool: {tool_name} (not implemented)",
                    tool_name=tool_name,
                )
            self._validate(tool_name, arguments)
            if route is ExecutionClass.DOCUMENT:
                result = self._run_document_tool(tool_name, arguments)
            elif route is ExecutionClass.PERSISTENCE:
                result = await self._run_persistence_tool(
                    tool_name, arguments, workspace_id or self._workspace_id or ""
                )
            else:
                result = self._run_virtual_tool(tool_name, arguments)
        except UnknownToolError as exc:
            LOGGER.warning("Model requested unknown tool %s", tool_name)
            result = DispatchResult(success=False, result=exc.message, error=exc)
        except ToolError as exc:
            LOGGER.warning("Tool %s failed: %s", tool_name, exc)
            result = DispatchResult(
                success=False,
                result=f"Error executing {tool_name}: {exc.message}",
                error=exc,
            )
        except Exception as exc:
            LOGGER.exception("Tool %s failed unexpectedly", tool_name)
            result = DispatchResult(
                success=False,
                result=f"Error executing {tool_name}: {exc}",
                error=ToolError(error_code=ErrorCode.INTERNAL_ERROR, message=str(exc)),
            )

        result.tool_name = tool_name
        result.execution_class = route
        result.execution_time_ms = (time.perf_counter() - started) * 1000
        LOGGER.debug(
            "Dispatched %s via %s in %.1fms (success=%s)",
            tool_name,
            route.value,
            result.execution_time_ms,
            result.success,
        )
        self._notify_complete(result)
        return result

    # ------------------------------------------------------------------
    # Execution classes
    # ------------------------------------------------------------------

    def _run_document_tool(self, tool_name: str, arguments: Mapping[str, Any]) -> DispatchResult:
        if self._document_tools is None:
            raise NoActiveDocumentError()
        text = self._document_tools.execute(tool_name, arguments)
        return DispatchResult(success=True, result=text)

    async def _run_persistence_tool(
        self,
        tool_name: str,
        arguments: Mapping[str, Any],
        workspace_id: str,
    ) -> DispatchResult:
        assert self._persistence is not None
        text = str(await self._persistence.execute(workspace_id, tool_name, arguments))
        failed = text.startswith("Error")
        refresh = tool_name in REFRESH_TOOLS and "Error" not in text
        return DispatchResult(success=not failed, result=text, refresh_files=refresh)

    def _run_virtual_tool(self, tool_name: str, arguments: Mapping[str, Any]) -> DispatchResult:
        outcome = execute_virtual_tool(self._files, tool_name, arguments)
        if outcome.updated_files is not None:
            self._files = outcome.updated_files
            if self._bus is not None:
                self._bus.publish(FileTreeChanged(files=outcome.updated_files))
        return DispatchResult(
            success=outcome.success,
            result=outcome.result,
            updated_files=outcome.updated_files,
        )

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validate(self, tool_name: str, arguments: Mapping[str, Any]) -> None:
        if not self._validate_arguments:
            return
        validator = self._validators.get(tool_name)
        if validator is None:
            schema = self._registry.get_schema(tool_name)
            if schema is None:
                return
            validator = jsonschema.Draft202012Validator(schema.to_json_schema())
            self._validators[tool_name] = validator

        issues = sorted(validator.iter_errors(dict(arguments)), key=lambda issue: list(issue.path))
        if not issues:
            return
        messages = []
        for issue in issues[:MAX_VALIDATION_ERRORS]:
            path = ".".join(str(part) for part in issue.absolute_path)
            messages.append(f"{path}: {issue.message}" if path else issue.message)
        first = issues[0]
        raise InvalidParameterError(
            message="Invalid arguments: " + "; ".join(messages),
            parameter=str(first.absolute_path[0]) if first.absolute_path else None,
            details={"arguments": json.loads(json.dumps(arguments, default=str))},
        )

    # ------------------------------------------------------------------
    # Listener
    # ------------------------------------------------------------------

    def _notify_start(self, tool_name: str, arguments: Mapping[str, Any]) -> None:
        if self._listener:
            try:
                self._listener.on_tool_start(tool_name, arguments)
            except Exception:
                LOGGER.debug("Listener on_tool_start failed", exc_info=True)

    def _notify_complete(self, result: DispatchResult) -> None:
        if self._listener:
            try:
                self._listener.on_tool_complete(result)
            except Exception:
                LOGGER.debug("Listener on_tool_complete failed", exc_info=True)


__all__ = [
    "DispatchListener",
    "DispatchResult",
    "ExecutionClass",
    "PersistenceBackend",
    "REFRESH_TOOLS",
    "ToolDispatcher",
]
