"""Agent tools: registry, document tools and virtual file-tree tools."""

from .document_tools import DocumentHost, DocumentTools
from .errors import ToolError
from .tool_registry import ToolCategory, ToolRegistry, ToolSchema, create_default_registry
from .virtual_fs import VirtualToolResult, execute_virtual_tool

__all__ = [
    "DocumentHost",
    "DocumentTools",
    "ToolCategory",
    "ToolError",
    "ToolRegistry",
    "ToolSchema",
    "VirtualToolResult",
    "create_default_registry",
    "execute_virtual_tool",
]
