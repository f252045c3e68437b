"""Standardized error types for agent tools.

Tools raise these; the dispatcher converts them (and any other exception)
into textual tool results, so nothing here ever reaches the agent loop as an
exception.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar


# -----------------------------------------------------------------------------
# Error Code Constants
# -----------------------------------------------------------------------------

class ErrorCode:
    """Constants for error codes used in tool responses."""

    # Dispatch errors
    UNKNOWN_TOOL = "unknown_tool"
    INVALID_PARAMETER = "invalid_parameter"
    MISSING_PARAMETER = "missing_parameter"

    # Document errors
    EDIT_NOT_FOUND = "edit_not_found"
    NO_ACTIVE_DOCUMENT = "no_active_document"
    PENDING_CHANGES = "pending_changes"

    # General errors
    INTERNAL_ERROR = "internal_error"


# -----------------------------------------------------------------------------
# Base Error Class
# -----------------------------------------------------------------------------

@dataclass
class ToolError(Exception):
    """Base exception class for all tool errors.

    Attributes:
        error_code: Machine-readable error identifier.
        message: Human-readable error description.
        details: Additional structured error information.
        suggestion: Actionable guidance for recovery.
    """

    error_code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = ""

    severity: ClassVar[str] = "error"

    def __post_init__(self) -> None:
        Exception.__init__(self, self.message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a dictionary for JSON tool responses."""
        result: dict[str, Any] = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = dict(self.details)
        if self.suggestion:
            result["suggestion"] = self.suggestion
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


# -----------------------------------------------------------------------------
# Dispatch Errors
# -----------------------------------------------------------------------------

@dataclass
class UnknownToolError(ToolError):
    """Raised when a tool name is not in the registry."""

    error_code: str = field(default=ErrorCode.UNKNOWN_TOOL)
    message: str = field(default="Unknown tool")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Use one of the tools listed in the request")

    tool_name: str = field(default="")


@dataclass
class InvalidParameterError(ToolError):
    """Raised when tool arguments fail schema validation."""

    error_code: str = field(default=ErrorCode.INVALID_PARAMETER)
    message: str = field(default="Invalid tool arguments")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Check the parameter types against the tool schema")

    parameter: str | None = field(default=None)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.parameter:
            result["parameter"] = self.parameter
        return result


@dataclass
class MissingParameterError(InvalidParameterError):
    """Raised when a required argument is absent or empty."""

    error_code: str = field(default=ErrorCode.MISSING_PARAMETER)
    message: str = field(default="Missing required parameter")


# -----------------------------------------------------------------------------
# Document Errors
# -----------------------------------------------------------------------------

@dataclass
class EditNotFoundError(ToolError):
    """Raised when the text targeted by an edit is not in the document."""

    error_code: str = field(default=ErrorCode.EDIT_NOT_FOUND)
    message: str = field(default="Original text not found in the document")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(
        default="Copy the original text verbatim from the document, or open the right file first"
    )

    original: str = field(default="")


@dataclass
class NoActiveDocumentError(ToolError):
    """Raised when a document tool runs with no document open."""

    error_code: str = field(default=ErrorCode.NO_ACTIVE_DOCUMENT)
    message: str = field(default="No document is open in the editor")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Use open_file_in_editor first")


@dataclass
class PendingChangesError(ToolError):
    """Raised when opening a file would drop unresolved tracked changes."""

    error_code: str = field(default=ErrorCode.PENDING_CHANGES)
    message: str = field(default="The open document still has pending tracked changes")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Ask the user to accept or reject them before switching files")

    pending: int = 0


__all__ = [
    "ErrorCode",
    "ToolError",
    "UnknownToolError",
    "InvalidParameterError",
    "MissingParameterError",
    "EditNotFoundError",
    "NoActiveDocumentError",
    "PendingChangesError",
]
