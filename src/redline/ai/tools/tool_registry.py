"""Tool registry for the agent.

A declarative catalog of every tool the model may call: name, parameter
schema, human label and execution class. The registry holds no execution
logic; the dispatcher decides how each category runs.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Mapping, Sequence

LOGGER = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Tool Categories
# -----------------------------------------------------------------------------


class ToolCategory(Enum):
    """Execution class of a tool."""

    DOCUMENT = auto()  # Runs against the live document in the editor
    WORKSPACE = auto()  # Delegated to workspace persistence (fs_ prefix)


# -----------------------------------------------------------------------------
# Tool Schema Types
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ParameterSchema:
    """Schema for a single tool parameter.

    Attributes:
        name: Parameter name.
        type: JSON Schema type (string, integer, boolean, object, array).
        description: Human-readable description.
        required: Whether the parameter is required.
        default: Default value if not provided.
        enum: List of allowed values.
        minimum: Minimum value for numbers.
        maximum: Maximum value for numbers.
        min_length: Minimum string length.
    """

    name: str
    type: str
    description: str
    required: bool = False
    default: Any = None
    enum: Sequence[Any] | None = None
    minimum: int | float | None = None
    maximum: int | float | None = None
    min_length: int | None = None

    def to_json_schema(self) -> dict[str, Any]:
        """Convert to JSON Schema format."""
        schema: dict[str, Any] = {
            "type": self.type,
            "description": self.description,
        }
        if self.default is not None:
            schema["default"] = self.default
        if self.enum:
            schema["enum"] = list(self.enum)
        if self.minimum is not None:
            schema["minimum"] = self.minimum
        if self.maximum is not None:
            schema["maximum"] = self.maximum
        if self.min_length is not None:
            schema["minLength"] = self.min_length
        return schema


@dataclass(slots=True)
class ToolSchema:
    """Complete schema for a tool.

    Attributes:
        name: Tool name (identifier), preserved verbatim for the model.
        description: Description shown to the model.
        label: Short human label for transcripts ("Reading file").
        parameters: List of parameters.
        category: Execution class.
        writes_document: Whether the tool mutates the live document.
        writes_files: Whether the tool creates or rewrites workspace files.
    """

    name: str
    description: str
    label: str = ""
    parameters: Sequence[ParameterSchema] = field(default_factory=list)
    category: ToolCategory = ToolCategory.DOCUMENT
    writes_document: bool = False
    writes_files: bool = False

    def to_json_schema(self) -> dict[str, Any]:
        """Convert to JSON Schema format for function calling."""
        properties: dict[str, Any] = {}
        required: list[str] = []

        for param in self.parameters:
            properties[param.name] = param.to_json_schema()
            if param.required:
                required.append(param.name)

        schema: dict[str, Any] = {
            "type": "object",
            "properties": properties,
            "additionalProperties": False,
        }
        if required:
            schema["required"] = required

        return schema


# -----------------------------------------------------------------------------
# Tool Registration
# -----------------------------------------------------------------------------


@dataclass(slots=True)
class ToolRegistration:
    """A registered tool schema and its availability."""

    schema: ToolSchema
    enabled: bool = True

    @property
    def name(self) -> str:
        return self.schema.name

    @property
    def category(self) -> ToolCategory:
        return self.schema.category

    @property
    def label(self) -> str:
        return self.schema.label or self.schema.name


# -----------------------------------------------------------------------------
# Tool Registry
# -----------------------------------------------------------------------------


class ToolRegistry:
    """Registry of the tools advertised to the model.

    Example:
        registry = create_default_registry()
        registry.get_registration("suggest_edit").category  # ToolCategory.DOCUMENT
        tools = registry.to_openai_tools()
    """

    def __init__(self, schemas: Sequence[ToolSchema] = ()) -> None:
        self._tools: dict[str, ToolRegistration] = {}
        for schema in schemas:
            self.register(schema)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, schema: ToolSchema, *, enabled: bool = True) -> None:
        """Register (or replace) a tool schema."""
        self._tools[schema.name] = ToolRegistration(schema=schema, enabled=enabled)
        LOGGER.debug("Registered tool: %s (category=%s)", schema.name, schema.category.name)

    def unregister(self, name: str) -> bool:
        if self._tools.pop(name, None) is not None:
            LOGGER.debug("Unregistered tool: %s", name)
            return True
        return False

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get_schema(self, name: str) -> ToolSchema | None:
        reg = self._tools.get(name)
        return reg.schema if reg else None

    def get_registration(self, name: str) -> ToolRegistration | None:
        return self._tools.get(name)

    def has_tool(self, name: str) -> bool:
        """Check if a tool is registered and enabled."""
        reg = self._tools.get(name)
        return reg is not None and reg.enabled

    def list_tools(
        self,
        *,
        category: ToolCategory | None = None,
        enabled_only: bool = True,
    ) -> list[str]:
        return [
            name
            for name, reg in self._tools.items()
            if (category is None or reg.category is category) and (reg.enabled or not enabled_only)
        ]

    def label_for(self, name: str) -> str:
        reg = self._tools.get(name)
        return reg.label if reg else name

    def to_openai_tools(self, *, enabled_only: bool = True) -> list[dict[str, Any]]:
        """Convert all tools to the function calling format."""
        tools: list[dict[str, Any]] = []
        for reg in self._tools.values():
            if not enabled_only or reg.enabled:
                tools.append({
                    "type": "function",
                    "function": {
                        "name": reg.schema.name,
                        "description": reg.schema.description,
                        "parameters": reg.schema.to_json_schema(),
                    },
                })
        return tools

    # ------------------------------------------------------------------
    # Enable/Disable
    # ------------------------------------------------------------------

    def enable_tool(self, name: str) -> bool:
        reg = self._tools.get(name)
        if reg:
            reg.enabled = True
            return True
        return False

    def disable_tool(self, name: str) -> bool:
        reg = self._tools.get(name)
        if reg:
            reg.enabled = False
            return True
        return False


# -----------------------------------------------------------------------------
# Display helpers
# -----------------------------------------------------------------------------

_PATH_SUMMARY_TOOLS = {
    "fs_read_file",
    "fs_write_file",
    "fs_create_file",
    "fs_update_file",
    "fs_delete_file",
}
_QUERY_SUMMARY_TOOLS = {"fs_search_content", "search_document"}


def format_tool_args(name: str, arguments: Mapping[str, Any] | str) -> str:
    """Short argument summary for transcript rendering."""
    if isinstance(arguments, str):
        try:
            parsed = json.loads(arguments or "{}")
        except json.JSONDecodeError:
            return arguments
        if not isinstance(parsed, Mapping):
            return arguments
        arguments = parsed
    if name in _PATH_SUMMARY_TOOLS:
        return str(arguments.get("path") or arguments.get("id") or "")
    if name in ("fs_list_directory", "fs_list_workplace"):
        return str(arguments.get("path") or "/")
    if name in _QUERY_SUMMARY_TOOLS:
        return f'"{arguments.get("query", "")}"'
    if name == "fs_find_file":
        return f'"{arguments.get("pattern", "")}"'
    return json.dumps(dict(arguments), ensure_ascii=False)


# -----------------------------------------------------------------------------
# Schema Definitions
# -----------------------------------------------------------------------------

PATH_PARAM = ParameterSchema(
    name="path",
    type="string",
    description="Path to the file (e.g., 'Specs/PRD.md')",
    required=True,
)

CONTENT_PARAM = ParameterSchema(
    name="content",
    type="string",
    description="Content to write",
    required=True,
)

REASON_PARAM = ParameterSchema(
    name="reason",
    type="string",
    description="Brief explanation of why this change was made",
)

# Workspace tools ------------------------------------------------------------

FS_READ_FILE_SCHEMA = ToolSchema(
    name="fs_read_file",
    description="Read the content of a file from the workspace",
    label="Reading file",
    parameters=[PATH_PARAM],
    category=ToolCategory.WORKSPACE,
)

FS_WRITE_FILE_SCHEMA = ToolSchema(
    name="fs_write_file",
    description="Create or overwrite a file in the workspace",
    label="Writing to file",
    parameters=[PATH_PARAM, CONTENT_PARAM],
    category=ToolCategory.WORKSPACE,
    writes_files=True,
)

FS_CREATE_FILE_SCHEMA = ToolSchema(
    name="fs_create_file",
    description="Create a new file in the workspace",
    label="Creating file",
    parameters=[PATH_PARAM, CONTENT_PARAM],
    category=ToolCategory.WORKSPACE,
    writes_files=True,
)

FS_UPDATE_FILE_SCHEMA = ToolSchema(
    name="fs_update_file",
    description=(
        "Update a file. Provide search_text and replacement_text to replace the first "
        "occurrence of a passage, or content to replace the whole file"
    ),
    label="Updating file",
    parameters=[
        PATH_PARAM,
        ParameterSchema(name="search_text", type="string", description="Text to find"),
        ParameterSchema(name="replacement_text", type="string", description="Text to replace with"),
        ParameterSchema(name="content", type="string", description="New full content of the file"),
    ],
    category=ToolCategory.WORKSPACE,
)

FS_LIST_DIRECTORY_SCHEMA = ToolSchema(
    name="fs_list_directory",
    description="List all files in a directory",
    label="Listing files",
    parameters=[
        ParameterSchema(name="path", type="string", description="Directory path (defaults to root)"),
    ],
    category=ToolCategory.WORKSPACE,
)

FS_LIST_WORKPLACE_SCHEMA = ToolSchema(
    name="fs_list_workplace",
    description="List every file and folder in the workspace",
    label="Listing files",
    category=ToolCategory.WORKSPACE,
)

FS_FIND_FILE_SCHEMA = ToolSchema(
    name="fs_find_file",
    description="Find files whose name contains a pattern (case-insensitive)",
    label="Finding files",
    parameters=[
        ParameterSchema(name="pattern", type="string", description="Part of the file name", required=True),
    ],
    category=ToolCategory.WORKSPACE,
)

FS_SEARCH_CONTENT_SCHEMA = ToolSchema(
    name="fs_search_content",
    description="Search the content of workspace files and return matching snippets",
    label="Searching files",
    parameters=[
        ParameterSchema(name="query", type="string", description="Text to search for", required=True),
    ],
    category=ToolCategory.WORKSPACE,
)

FS_DELETE_FILE_SCHEMA = ToolSchema(
    name="fs_delete_file",
    description="Delete a file from the workspace by id or path",
    label="Deleting file",
    parameters=[
        ParameterSchema(name="id", type="string", description="File id as returned by fs_find_file"),
        ParameterSchema(name="path", type="string", description="Path of the file"),
    ],
    category=ToolCategory.WORKSPACE,
)

# Document tools -------------------------------------------------------------

INSERT_TEXT_SCHEMA = ToolSchema(
    name="insert_text",
    description=(
        "Insert text at the current cursor position in the editor. "
        "Use this to add new content to the document."
    ),
    label="Inserting text",
    parameters=[
        ParameterSchema(
            name="text",
            type="string",
            description="The text to insert at the cursor position",
            required=True,
        ),
    ],
    writes_document=True,
)

REPLACE_SELECTION_SCHEMA = ToolSchema(
    name="replace_selection",
    description=(
        "Replace the currently selected text with new text. Use this when the user has "
        "selected text and wants it rewritten or improved."
    ),
    label="Replacing selection",
    parameters=[
        ParameterSchema(
            name="new_text",
            type="string",
            description="The new text to replace the selection with",
            required=True,
        ),
        REASON_PARAM,
    ],
    writes_document=True,
)

SUGGEST_EDIT_SCHEMA = ToolSchema(
    name="suggest_edit",
    description=(
        "Propose an edit that the user can accept or reject. Creates a tracked change "
        "showing the original and suggested text side by side."
    ),
    label="Suggesting edit",
    parameters=[
        ParameterSchema(
            name="original_text",
            type="string",
            description="The original text to be replaced (must match text in the document)",
            required=True,
            min_length=1,
        ),
        ParameterSchema(
            name="suggested_text",
            type="string",
            description="The suggested replacement text (Markdown emphasis is allowed)",
            required=True,
        ),
        ParameterSchema(
            name="reason",
            type="string",
            description="Explanation for why this edit is suggested",
        ),
        ParameterSchema(
            name="occurrence",
            type="integer",
            description="Which occurrence of original_text to edit when it appears more than once (0 = first)",
            minimum=0,
        ),
    ],
    writes_document=True,
)

ADD_COMMENT_SCHEMA = ToolSchema(
    name="add_comment",
    description="Attach a comment to a passage of the document",
    label="Adding comment",
    parameters=[
        ParameterSchema(name="target_text", type="string", description="The passage to comment on", required=True),
        ParameterSchema(name="comment", type="string", description="The comment text", required=True),
    ],
)

GET_SELECTION_SCHEMA = ToolSchema(
    name="get_selection",
    description="Return the text currently selected in the editor",
    label="Reading selection",
)

SEARCH_DOCUMENT_SCHEMA = ToolSchema(
    name="search_document",
    description="Search the open document (case-insensitive) and return matches with context",
    label="Searching document",
    parameters=[
        ParameterSchema(name="query", type="string", description="Text to search for", required=True),
    ],
)

OPEN_FILE_IN_EDITOR_SCHEMA = ToolSchema(
    name="open_file_in_editor",
    description=(
        "Open a workspace file in the editor so that document tools such as suggest_edit "
        "operate on it"
    ),
    label="Opening file",
    parameters=[
        ParameterSchema(name="filename", type="string", description="File name, e.g. 'PRD.md'"),
        ParameterSchema(name="path", type="string", description="Path of the file"),
    ],
)


ALL_TOOL_SCHEMAS: dict[str, ToolSchema] = {
    # Workspace
    "fs_read_file": FS_READ_FILE_SCHEMA,
    "fs_write_file": FS_WRITE_FILE_SCHEMA,
    "fs_create_file": FS_CREATE_FILE_SCHEMA,
    "fs_update_file": FS_UPDATE_FILE_SCHEMA,
    "fs_list_directory": FS_LIST_DIRECTORY_SCHEMA,
    "fs_list_workplace": FS_LIST_WORKPLACE_SCHEMA,
    "fs_find_file": FS_FIND_FILE_SCHEMA,
    "fs_search_content": FS_SEARCH_CONTENT_SCHEMA,
    "fs_delete_file": FS_DELETE_FILE_SCHEMA,
    # Document
    "insert_text": INSERT_TEXT_SCHEMA,
    "replace_selection": REPLACE_SELECTION_SCHEMA,
    "suggest_edit": SUGGEST_EDIT_SCHEMA,
    "add_comment": ADD_COMMENT_SCHEMA,
    "get_selection": GET_SELECTION_SCHEMA,
    "search_document": SEARCH_DOCUMENT_SCHEMA,
    "open_file_in_editor": OPEN_FILE_IN_EDITOR_SCHEMA,
}


def create_default_registry() -> ToolRegistry:
    """Return a registry holding every built-in tool."""
    return ToolRegistry(list(ALL_TOOL_SCHEMAS.values()))


__all__ = [
    "ToolCategory",
    "ParameterSchema",
    "ToolSchema",
    "ToolRegistration",
    "ToolRegistry",
    "create_default_registry",
    "format_tool_args",
    "ALL_TOOL_SCHEMAS",
    "FS_READ_FILE_SCHEMA",
    "FS_WRITE_FILE_SCHEMA",
    "FS_CREATE_FILE_SCHEMA",
    "FS_UPDATE_FILE_SCHEMA",
    "FS_LIST_DIRECTORY_SCHEMA",
    "FS_LIST_WORKPLACE_SCHEMA",
    "FS_FIND_FILE_SCHEMA",
    "FS_SEARCH_CONTENT_SCHEMA",
    "FS_DELETE_FILE_SCHEMA",
    "INSERT_TEXT_SCHEMA",
    "REPLACE_SELECTION_SCHEMA",
    "SUGGEST_EDIT_SCHEMA",
    "ADD_COMMENT_SCHEMA",
    "GET_SELECTION_SCHEMA",
    "SEARCH_DOCUMENT_SCHEMA",
    "OPEN_FILE_IN_EDITOR_SCHEMA",
]
