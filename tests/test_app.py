"""Tests for the command line bootstrap."""

from __future__ import annotations

import io
import json
from pathlib import Path

import pytest

from redline import app
from redline.ai.chat_backend import HttpChatBackend, OpenAIChatBackend
from redline.ai.orchestration import MemoryItem
from redline.services.settings import Settings

from tests.helpers import ScriptedBackend, message_response, tool_call, tool_response


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(app, "configure_logging", lambda debug=False: bool(debug))
    for name in ("REDLINE_MODEL", "REDLINE_API_KEY", "REDLINE_DEBUG", "REDLINE_SETTINGS_PATH"):
        monkeypatch.delenv(name, raising=False)


def _edit_backend() -> ScriptedBackend:
    return ScriptedBackend(
        [
            tool_response(tool_call("suggest_edit", original_text="quick", suggested_text="slow")),
            message_response("Done"),
        ]
    )


# =============================================================================
# Argument helpers
# =============================================================================


class TestCliOverrides:
    """Tests for --set KEY=VALUE coercion."""

    def test_scalar_types(self) -> None:
        overrides = app._coerce_cli_overrides(
            ["debug_logging=yes", "max_tool_iterations=4", "request_timeout=12.5", "model=custom/model"]
        )

        assert overrides == {
            "debug_logging": True,
            "max_tool_iterations": 4,
            "request_timeout": 12.5,
            "model": "custom/model",
        }

    def test_optional_none(self) -> None:
        assert app._coerce_cli_overrides(["temperature=none"]) == {"temperature": None}
        assert app._coerce_cli_overrides(["temperature=0.2"]) == {"temperature": 0.2}

    def test_list_values(self) -> None:
        assert app._coerce_cli_overrides(["available_models=a, b"]) == {"available_models": ["a", "b"]}
        assert app._coerce_cli_overrides(['available_models=["x"]']) == {"available_models": ["x"]}

    def test_dict_values(self) -> None:
        overrides = app._coerce_cli_overrides(['default_headers={"X-Title": "redline"}'])

        assert overrides == {"default_headers": {"X-Title": "redline"}}

    @pytest.mark.parametrize(
        "entry",
        ["model", "=value", "nope=1", "debug_logging=maybe", "default_headers=[1]", "max_tool_iterations=ten"],
    )
    def test_invalid_entries(self, entry: str) -> None:
        with pytest.raises(ValueError):
            app._coerce_cli_overrides([entry])


class TestMemoryAndLimits:
    """Tests for --memory parsing and the iteration clamp."""

    def test_parse_memory(self) -> None:
        memory = app._parse_memory(["Goal= ship the launch post ", "tone=friendly"])

        assert memory == [
            MemoryItem(type="goal", content="ship the launch post"),
            MemoryItem(type="tone", content="friendly"),
        ]

    @pytest.mark.parametrize("entry", ["mood=happy", "goal"])
    def test_parse_memory_rejects(self, entry: str) -> None:
        with pytest.raises(ValueError):
            app._parse_memory([entry])

    @pytest.mark.parametrize("value, expected", [(0, 1), (7, 7), (500, 50)])
    def test_iteration_clamp(self, value: int, expected: int) -> None:
        assert app._resolve_max_tool_iterations(Settings(max_tool_iterations=value)) == expected

    def test_iteration_default(self) -> None:
        assert app._resolve_max_tool_iterations(None) == 10

    def test_build_agent_config(self) -> None:
        settings = Settings(model="m", max_tool_iterations=3, tool_feedback_delay=0, workspace_id="ws")

        config = app.build_agent_config(settings, [MemoryItem(type="goal", content="g")])

        assert config.model == "m"
        assert config.max_iterations == 3
        assert config.tool_delay == 0
        assert config.workspace_id == "ws"
        assert len(config.memory) == 1


class TestBuildBackend:
    """Tests for chat backend selection."""

    def test_http_backend_when_endpoint_configured(self) -> None:
        backend = app.build_backend(Settings(chat_endpoint="http://localhost:9000/api/chat", api_key="sk-1"))

        assert isinstance(backend, HttpChatBackend)

    def test_openai_backend_by_default(self) -> None:
        backend = app.build_backend(Settings(api_key="sk-1"))

        assert isinstance(backend, OpenAIChatBackend)


# =============================================================================
# main()
# =============================================================================


class TestMain:
    """Tests for the console entry point."""

    def test_dump_settings(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        settings_path = tmp_path / "settings.json"

        code = app.main(["--dump-settings", "--settings-path", str(settings_path), "--set", "model=custom/model"])

        assert code == 0
        payload = json.loads(capsys.readouterr().out)
        assert payload["settings"]["model"] == "custom/model"
        assert payload["meta"]["cli_overrides"] == ["model"]
        assert payload["meta"]["path"] == str(settings_path)

    def test_invalid_override_exits_with_usage_code(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        code = app.main(["--dump-settings", "--settings-path", str(tmp_path / "s.json"), "--set", "bogus=1"])

        assert code == 2
        assert "Invalid argument" in capsys.readouterr().err

    def test_missing_prompt_is_a_usage_error(self, tmp_path: Path) -> None:
        with pytest.raises(SystemExit) as excinfo:
            app.main(["--settings-path", str(tmp_path / "s.json")])

        assert excinfo.value.code == 2


# =============================================================================
# run_prompt()
# =============================================================================


class TestRunPrompt:
    """Tests for a full single-turn run."""

    @pytest.mark.asyncio
    async def test_accept_all_writes_output(self, tmp_path: Path) -> None:
        document = tmp_path / "draft.txt"
        document.write_text("The quick fox", encoding="utf-8")
        output = tmp_path / "out.txt"
        backend = _edit_backend()
        stream = io.StringIO()

        code = await app.run_prompt(
            Settings(tool_feedback_delay=0),
            document,
            "Make it slower",
            accept_all=True,
            output=output,
            backend=backend,
            stream=stream,
        )

        text = stream.getvalue()
        assert code == 0
        assert "Model: Claude Sonnet 4.5" in text
        assert "  [ok] Suggesting edit:" in text
        assert "Done" in text
        assert "1 pending of 1 tracked change(s):" in text
        assert "Accepted 1 change(s)." in text
        assert output.read_text(encoding="utf-8") == "The slow fox"
        assert backend.closed is False

    @pytest.mark.asyncio
    async def test_reject_all_keeps_original(self, tmp_path: Path) -> None:
        document = tmp_path / "draft.txt"
        document.write_text("The quick fox", encoding="utf-8")
        output = tmp_path / "out.html"
        stream = io.StringIO()

        code = await app.run_prompt(
            Settings(tool_feedback_delay=0),
            document,
            "Make it slower",
            reject_all=True,
            output=output,
            backend=_edit_backend(),
            stream=stream,
        )

        assert code == 0
        assert "Rejected 1 change(s)." in stream.getvalue()
        assert "The quick fox" in output.read_text(encoding="utf-8")
        assert "<p>" in output.read_text(encoding="utf-8")

    @pytest.mark.asyncio
    async def test_failed_request_returns_error_code(self, tmp_path: Path) -> None:
        document = tmp_path / "draft.txt"
        document.write_text("Hello", encoding="utf-8")

        code = await app.run_prompt(
            Settings(tool_feedback_delay=0),
            document,
            "Anything",
            backend=ScriptedBackend([RuntimeError("backend offline")]),
            stream=io.StringIO(),
        )

        assert code == 1

    @pytest.mark.asyncio
    async def test_workspace_mode(self, tmp_path: Path) -> None:
        root = tmp_path / "ws"
        (root / "notes").mkdir(parents=True)
        (root / "notes" / "plan.md").write_text("Plan the quick launch", encoding="utf-8")
        (root / "readme.txt").write_text("hello", encoding="utf-8")
        backend = ScriptedBackend(
            [
                tool_response(tool_call("fs_read_file", path="/readme.txt")),
                message_response("Read it"),
            ]
        )
        stream = io.StringIO()

        code = await app.run_prompt(
            Settings(tool_feedback_delay=0),
            root / "notes" / "plan.md",
            "Summarise",
            workspace_root=root,
            backend=backend,
            stream=stream,
        )

        assert code == 0
        assert "  [ok] Reading file: /readme.txt" in stream.getvalue()
        tool_message = backend.requests[-1][-1]
        assert tool_message.role == "tool"
        assert "hello" in tool_message.content

    @pytest.mark.asyncio
    async def test_output_names_the_file_the_agent_opened(self, tmp_path: Path) -> None:
        root = tmp_path / "ws"
        root.mkdir()
        (root / "plan.md").write_text("Plan the launch", encoding="utf-8")
        (root / "readme.txt").write_text("hello", encoding="utf-8")
        output = tmp_path / "out.txt"
        stream = io.StringIO()
        backend = ScriptedBackend(
            [tool_response(tool_call("open_file_in_editor", filename="readme.txt")), message_response("Opened")]
        )

        await app.run_prompt(
            Settings(tool_feedback_delay=0),
            root / "plan.md",
            "Look at the readme",
            workspace_root=root,
            output=output,
            backend=backend,
            stream=stream,
        )

        assert output.read_text(encoding="utf-8") == "hello"
        assert f"Wrote {output} (contents of /readme.txt, opened by the agent)" in stream.getvalue()

    @pytest.mark.asyncio
    async def test_document_outside_workspace(self, tmp_path: Path) -> None:
        root = tmp_path / "ws"
        root.mkdir()
        outside = tmp_path / "other.md"
        outside.write_text("x", encoding="utf-8")

        with pytest.raises(FileNotFoundError):
            await app.run_prompt(
                Settings(tool_feedback_delay=0),
                outside,
                "Anything",
                workspace_root=root,
                backend=ScriptedBackend([message_response("hi")]),
                stream=io.StringIO(),
            )
