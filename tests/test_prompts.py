"""Tests for prompt and context helpers."""

from __future__ import annotations

from redline.ai.orchestration.types import AgentConfig, ChatContext, MemoryItem
from redline.ai.prompts import (
    CONTEXT_FILE_CHAR_LIMIT,
    CURRENT_FILE_CHAR_LIMIT,
    build_chat_context,
    build_system_message,
    format_memory_for_prompt,
    model_display_name,
    system_prompt,
)
from redline.services.file_tree import FileNode


class TestMemoryBlock:
    """Tests for format_memory_for_prompt()."""

    def test_empty(self) -> None:
        assert format_memory_for_prompt(()) == ""

    def test_groups_by_type(self) -> None:
        block = format_memory_for_prompt(
            [
                MemoryItem("goal", "Win the pitch"),
                MemoryItem("goal", "Ignored second goal"),
                MemoryItem("audience", "Investors"),
                MemoryItem("tone", "Confident"),
                MemoryItem("tone", "Brief"),
                MemoryItem("constraint", "No jargon"),
                MemoryItem("constraint", "Under 300 words"),
            ]
        )

        assert block == (
            "\n\n## Writing Context (User-Defined)\n"
            "**Goal:** Win the pitch\n"
            "**Target Audience:** Investors\n"
            "**Tone/Voice:** Confident, Brief\n"
            "**Constraints:** No jargon; Under 300 words\n"
        )


class TestChatContext:
    """Tests for build_chat_context() and the system message."""

    def test_truncates_file_contents(self) -> None:
        current = FileNode(id="1", name="big.md", path="/big.md", content="x" * (CURRENT_FILE_CHAR_LIMIT + 10))
        extra = FileNode(id="2", name="ref.md", path="/ref.md", content="y" * (CONTEXT_FILE_CHAR_LIMIT + 10))
        config = AgentConfig(context_files=(extra,), workspace_id="ws")

        context = build_chat_context((current, extra), config, current_file=current)

        assert len(context.current_file.content) == CURRENT_FILE_CHAR_LIMIT
        assert len(context.context_files[0].content) == CONTEXT_FILE_CHAR_LIMIT
        assert context.workspace_id == "ws"
        assert "big.md" in context.folder_tree

    def test_system_message_without_context(self) -> None:
        assert build_system_message(ChatContext()) == system_prompt()

    def test_system_message_sections(self) -> None:
        context = ChatContext(
            folder_tree="└── 📄 a.md\n",
            current_file=FileNode(id="1", name="a.md", path="/a.md", content="Hello"),
            context_files=(FileNode(id="2", name="b.md", path="/b.md", content="Ref"),),
            memory_context="\n\n## Writing Context (User-Defined)\n**Goal:** X\n",
        )

        message = build_system_message(context)

        assert "## Workspace Files\n```\n└── 📄 a.md\n```" in message
        assert "## Currently Open File: a.md (/a.md)\n```\nHello\n```" in message
        assert "## Context File: b.md (/b.md)" in message
        assert message.endswith("**Goal:** X\n")

    def test_model_display_name(self) -> None:
        assert model_display_name("anthropic/claude-sonnet-4.5") == "Claude Sonnet 4.5"
        assert model_display_name("custom/model") == "custom/model"
