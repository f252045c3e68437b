"""Prompt templates and request context for the agent.

Builds the system prompt, the user-defined writing context block and the
workspace context (folder tree, open file, extra files) attached to every
model request. Also holds the catalog of selectable models.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Iterable, Sequence

from ..services.file_tree import FileNode, render_folder_tree
from .orchestration.types import AgentConfig, ChatContext, MemoryItem

CURRENT_FILE_CHAR_LIMIT = 5_000
CONTEXT_FILE_CHAR_LIMIT = 3_000


# -----------------------------------------------------------------------------
# Model catalog
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ModelOption:
    id: str
    name: str


AVAILABLE_MODELS: tuple[ModelOption, ...] = (
    ModelOption("anthropic/claude-haiku-4.5", "Claude Haiku 4.5"),
    ModelOption("anthropic/claude-sonnet-4.5", "Claude Sonnet 4.5"),
    ModelOption("anthropic/claude-opus-4.5", "Claude Opus 4.5"),
    ModelOption("moonshotai/kimi-k2-thinking", "Kimi k2 Thinking"),
    ModelOption("google/gemini-2.0-flash-exp:free", "Gemini 2.0 Flash"),
    ModelOption("deepseek/deepseek-v3.2", "DeepSeek v3.2"),
    ModelOption("minimax/minimax-m2.1", "Minimax M2.1"),
)

DEFAULT_MODEL = "anthropic/claude-sonnet-4.5"


def model_display_name(model_id: str, options: Iterable[ModelOption] = AVAILABLE_MODELS) -> str:
    for option in options:
        if option.id == model_id:
            return option.name
    return model_id


# -----------------------------------------------------------------------------
# System prompt
# -----------------------------------------------------------------------------


def system_prompt() -> str:
    """System prompt for the writing agent."""
    return """You are a writing copilot embedded in a document workspace.

## Available Tools

### Workspace Tools
- **fs_read_file** / **fs_list_directory** / **fs_list_workplace** - Inspect workspace files
- **fs_find_file** / **fs_search_content** - Locate files by name or content
- **fs_write_file** / **fs_create_file** / **fs_update_file** / **fs_delete_file** - Change files

### Document Tools
- **open_file_in_editor** - Open a workspace file in the editor (do this before editing it)
- **suggest_edit** - Propose a tracked change the user can accept or reject
- **insert_text** / **replace_selection** - Write directly at the cursor or selection
- **search_document** / **get_selection** - Inspect the open document
- **add_comment** - Leave a comment on a passage

## Core Principles

1. **Execute immediately.** When the user asks about files, call the tool instead of describing it.
2. **Trust tool results.** Do not re-list or re-read to verify a result you already have.
3. **Prefer suggest_edit** for changes to existing prose so the user can review them.
   Copy `original_text` verbatim from the document. If it appears more than once,
   pass `occurrence` (0 = first).
4. **Handle errors gracefully.** If a file or passage is not found, tell the user
   instead of retrying the same call.

Be concise in final responses. Use markdown formatting."""


# -----------------------------------------------------------------------------
# Memory context
# -----------------------------------------------------------------------------


def format_memory_for_prompt(items: Sequence[MemoryItem]) -> str:
    """Render writing-context items as a prompt block (empty when none)."""
    if not items:
        return ""

    goals = [item.content for item in items if item.type == "goal"]
    audiences = [item.content for item in items if item.type == "audience"]
    tones = [item.content for item in items if item.type == "tone"]
    constraints = [item.content for item in items if item.type == "constraint"]

    block = "\n\n## Writing Context (User-Defined)\n"
    if goals:
        block += f"**Goal:** {goals[0]}\n"
    if audiences:
        block += f"**Target Audience:** {audiences[0]}\n"
    if tones:
        block += f"**Tone/Voice:** {', '.join(tones)}\n"
    if constraints:
        block += f"**Constraints:** {'; '.join(constraints)}\n"
    return block


# -----------------------------------------------------------------------------
# Workspace context
# -----------------------------------------------------------------------------


def _truncated(node: FileNode, limit: int) -> FileNode:
    return replace(node, children=(), content=(node.content or "")[:limit])


def build_chat_context(
    files: Sequence[FileNode],
    config: AgentConfig,
    *,
    current_file: FileNode | None = None,
) -> ChatContext:
    """Collect the workspace context for one model request."""
    return ChatContext(
        folder_tree=render_folder_tree(files),
        current_file=_truncated(current_file, CURRENT_FILE_CHAR_LIMIT) if current_file else None,
        context_files=tuple(_truncated(node, CONTEXT_FILE_CHAR_LIMIT) for node in config.context_files),
        memory_context=format_memory_for_prompt(config.memory),
        workspace_id=config.workspace_id,
    )


def format_workspace_context(context: ChatContext) -> str:
    """Render a :class:`ChatContext` as markdown appended to the system prompt."""
    sections: list[str] = []
    if context.folder_tree:
        sections.append(f"## Workspace Files\n```\n{context.folder_tree.rstrip()}\n```")
    if context.current_file is not None:
        current = context.current_file
        sections.append(
            f"## Currently Open File: {current.name} ({current.path})\n"
            f"```\n{current.content or ''}\n```"
        )
    for extra in context.context_files:
        sections.append(f"## Context File: {extra.name} ({extra.path})\n```\n{extra.content or ''}\n```")
    text = "\n\n".join(sections)
    if context.memory_context:
        text += context.memory_context
    return text


def build_system_message(context: ChatContext) -> str:
    workspace = format_workspace_context(context)
    if not workspace:
        return system_prompt()
    return f"{system_prompt()}\n\n{workspace}"


__all__ = [
    "AVAILABLE_MODELS",
    "CONTEXT_FILE_CHAR_LIMIT",
    "CURRENT_FILE_CHAR_LIMIT",
    "DEFAULT_MODEL",
    "ModelOption",
    "build_chat_context",
    "build_system_message",
    "format_memory_for_prompt",
    "format_workspace_context",
    "model_display_name",
    "system_prompt",
]
