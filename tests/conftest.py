"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from redline.ai.orchestration.tool_dispatcher import ToolDispatcher
from redline.ai.orchestration.types import AgentConfig
from redline.ai.tools.document_tools import DocumentTools
from redline.domain.events import EventBus
from redline.editor.document_model import Document
from redline.editor.workspace import EditorWorkspace
from redline.services.file_tree import FileNode


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def editor(event_bus: EventBus) -> EditorWorkspace:
    return EditorWorkspace(Document.from_text("The quick brown fox jumps over the lazy dog."), event_bus=event_bus)


@pytest.fixture
def files() -> tuple[FileNode, ...]:
    return (
        FileNode(
            id="specs",
            name="Specs",
            path="/Specs",
            type="folder",
            children=(FileNode(id="prd", name="PRD.md", path="/Specs/PRD.md", content="Ship the quick build"),),
        ),
        FileNode(id="readme", name="README.md", path="/README.md", content="hello"),
    )


@pytest.fixture
def dispatcher(editor: EditorWorkspace, files: tuple[FileNode, ...], event_bus: EventBus) -> ToolDispatcher:
    dispatcher = ToolDispatcher(files=files, event_bus=event_bus)
    dispatcher.set_document_tools(DocumentTools(editor, lambda: dispatcher.files))
    return dispatcher


@pytest.fixture
def agent_config() -> AgentConfig:
    return AgentConfig(model="test-model", tool_delay=0)
