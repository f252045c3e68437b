"""Tests for the virtual file-tree tools."""

from __future__ import annotations

from redline.ai.tools.virtual_fs import execute_virtual_tool
from redline.services.file_tree import FileNode, find_file

FILES = (
    FileNode(
        id="specs",
        name="Specs",
        path="/Specs",
        type="folder",
        children=(FileNode(id="prd", name="PRD.md", path="/Specs/PRD.md", content="Launch in May"),),
    ),
)


class TestVirtualTools:
    """Tests for execute_virtual_tool()."""

    def test_read_file(self) -> None:
        outcome = execute_virtual_tool(FILES, "fs_read_file", {"path": "Specs/PRD.md"})

        assert outcome.success is True
        assert outcome.result == "Launch in May"
        assert outcome.updated_files is None

    def test_read_missing_and_folder(self) -> None:
        assert execute_virtual_tool(FILES, "fs_read_file", {"path": "/Nope.md"}).result == "File not found: /Nope.md"
        assert execute_virtual_tool(FILES, "fs_read_file", {"path": "/Specs"}).success is False

    def test_write_creates_file_without_touching_input(self) -> None:
        outcome = execute_virtual_tool(FILES, "fs_write_file", {"path": "/notes.md", "content": "hi"})

        assert outcome.result == "Successfully wrote to /notes.md"
        assert find_file(outcome.updated_files, "/notes.md").content == "hi"
        assert find_file(FILES, "/notes.md") is None

    def test_write_overwrites_existing(self) -> None:
        outcome = execute_virtual_tool(FILES, "fs_write_file", {"path": "/Specs/PRD.md", "content": "new"})

        assert find_file(outcome.updated_files, "/Specs/PRD.md").content == "new"
        assert find_file(FILES, "/Specs/PRD.md").content == "Launch in May"

    def test_update_replaces_first_occurrence(self) -> None:
        outcome = execute_virtual_tool(
            FILES,
            "fs_update_file",
            {"path": "/Specs/PRD.md", "search_text": "May", "replacement_text": "June"},
        )

        assert outcome.success is True
        assert find_file(outcome.updated_files, "/Specs/PRD.md").content == "Launch in June"

    def test_update_missing_text(self) -> None:
        outcome = execute_virtual_tool(
            FILES,
            "fs_update_file",
            {"path": "/Specs/PRD.md", "search_text": "July", "replacement_text": "x"},
        )

        assert outcome.success is False
        assert outcome.updated_files is None

    def test_list_directory(self) -> None:
        outcome = execute_virtual_tool(FILES, "fs_list_directory", {})

        assert outcome.result == "📁 /Specs\n📄 /Specs/PRD.md"

    def test_list_empty_directory(self) -> None:
        assert execute_virtual_tool(FILES, "fs_list_directory", {"path": "/Other"}).result == "No files found in /Other"

    def test_unknown_tool(self) -> None:
        outcome = execute_virtual_tool(FILES, "fs_delete_file", {"path": "/Specs/PRD.md"})

        assert outcome.success is False
        assert outcome.result == "Unknown tool: fs_delete_file"
