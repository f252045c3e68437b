"""Command line bootstrap for the redline agent."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
import uuid
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, TextIO, get_args, get_origin, get_type_hints

from .ai.chat_backend import HttpChatBackend, OpenAIChatBackend
from .ai.client import AIClient, ClientSettings
from .ai.orchestration import (
    AgentConfig,
    AgentLoop,
    ChatBackend,
    LoopState,
    MemoryItem,
    ToolCallStatus,
    ToolDispatcher,
    ToolStatusUpdate,
    TurnOutput,
)
from .ai.prompts import build_chat_context, model_display_name
from .ai.tools import DocumentTools
from .ai.tools.tool_registry import format_tool_args
from .domain import EventBus, format_review_summary
from .domain.ai_turn_manager import AITurnManager
from .editor import EditorWorkspace
from .services.file_tree import FileNode, FileTree, find_file
from .services.settings import Settings, SettingsStore, redacted_settings
from .services.workspace_store import InMemoryWorkspaceStore
from .utils import logging as logging_utils

_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_FALSE_VALUES = {"0", "false", "no", "off", "disabled"}
_HTML_SUFFIXES = {".html", ".htm"}
_MEMORY_TYPES = ("goal", "audience", "tone", "constraint")
_LOGGER = logging.getLogger(__name__)


def configure_logging(debug: bool = False) -> bool:
    """Configure logging for the command line tool.

    Returns:
        Whether debug logging ended up enabled (``REDLINE_DEBUG`` can force it).
    """

    config = logging_utils.LoggingConfig.from_environment(debug=debug)
    path = logging_utils.configure(config)
    _LOGGER.debug("Logging to %s (debug=%s)", path, config.debug)
    return config.debug


def load_settings(
    path: Optional[Path] = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Load persisted settings or fall back to defaults."""

    active_store = store or SettingsStore(path)
    try:
        return active_store.load(overrides=overrides)
    except (OSError, ValueError) as exc:
        _LOGGER.warning("Failed to load settings from %s: %s", active_store.path, exc)
        return Settings()


# -----------------------------------------------------------------------------
# Session wiring
# -----------------------------------------------------------------------------


@dataclass(slots=True)
class Session:
    """Everything one editing session needs, wired to a shared event bus."""

    bus: EventBus
    editor: EditorWorkspace
    dispatcher: ToolDispatcher
    loop: AgentLoop
    turns: AITurnManager
    store: InMemoryWorkspaceStore | None = None
    workspace_id: str | None = None

    async def refresh_files(self, workspace_id: str | None = None) -> FileTree:
        """Reload the file tree from the workspace store after a write."""
        if self.store is not None:
            self.dispatcher.set_files(self.store.file_tree(workspace_id or self.workspace_id or ""))
        return self.dispatcher.files


def build_backend(settings: Settings, *, debug_logging: bool = False) -> ChatBackend:
    """Chat backend for ``settings``: an HTTP chat route when configured, else the OpenAI SDK."""

    if settings.chat_endpoint:
        headers = dict(settings.default_headers)
        if settings.api_key:
            headers.setdefault("Authorization", f"Bearer {settings.api_key}")
        return HttpChatBackend(settings.chat_endpoint, timeout=settings.request_timeout, headers=headers)

    client_settings = ClientSettings(
        base_url=settings.base_url,
        api_key=settings.api_key,
        model=settings.model,
        organization=settings.organization,
        request_timeout=settings.request_timeout,
        max_retries=settings.max_retries,
        retry_min_seconds=settings.retry_min_seconds,
        retry_max_seconds=settings.retry_max_seconds,
        default_headers=settings.default_headers,
        metadata=settings.metadata,
        debug_logging=debug_logging or settings.debug_logging,
    )
    return OpenAIChatBackend(AIClient(client_settings))


def build_agent_config(settings: Settings, memory: Sequence[MemoryItem] = ()) -> AgentConfig:
    return AgentConfig(
        model=settings.model,
        max_iterations=_resolve_max_tool_iterations(settings),
        memory=tuple(memory),
        tool_delay=settings.tool_feedback_delay,
        workspace_id=settings.workspace_id,
        temperature=settings.temperature,
    )


def build_session(
    backend: ChatBackend,
    *,
    files: Sequence[FileNode] = (),
    store: InMemoryWorkspaceStore | None = None,
    workspace_id: str | None = None,
    event_bus: EventBus | None = None,
) -> Session:
    """Assemble editor, dispatcher, agent loop and turn manager.

    With a ``store`` and ``workspace_id`` the ``fs_`` tools run against the
    store; otherwise they operate on the in-memory ``files`` tree.
    """

    bus = event_bus or EventBus()
    editor = EditorWorkspace(event_bus=bus)
    if store is not None and workspace_id:
        files = store.file_tree(workspace_id)
    dispatcher = ToolDispatcher(
        persistence=store,
        workspace_id=workspace_id,
        files=files,
        event_bus=bus,
    )
    dispatcher.set_document_tools(DocumentTools(editor, lambda: dispatcher.files))

    session: Session

    def context_provider(config: AgentConfig):
        return build_chat_context(dispatcher.files, config, current_file=editor.current_file_snapshot())

    async def on_refresh(workspace: str | None) -> None:
        await session.refresh_files(workspace)

    loop = AgentLoop(
        backend,
        dispatcher,
        event_bus=bus,
        context_provider=context_provider,
        on_refresh_files=on_refresh,
    )
    turns = AITurnManager(lambda: loop, bus)
    session = Session(
        bus=bus,
        editor=editor,
        dispatcher=dispatcher,
        loop=loop,
        turns=turns,
        store=store,
        workspace_id=workspace_id,
    )
    return session


def open_document(session: Session, document: Path, *, workspace_root: Path | None = None) -> FileNode:
    """Open ``document`` in the session editor, registering it in the file tree if needed."""

    if workspace_root is not None:
        try:
            relative = document.resolve().relative_to(workspace_root.resolve())
        except ValueError:
            raise FileNotFoundError(f"{document} is not inside {workspace_root}") from None
        node = find_file(session.dispatcher.files, "/" + relative.as_posix())
        if node is None:
            raise FileNotFoundError(f"{document} is not a text document inside {workspace_root}")
    else:
        node = FileNode(
            id=str(uuid.uuid4()),
            name=document.name,
            path=f"/{document.name}",
            content=document.read_text(encoding="utf-8"),
        )
        session.dispatcher.set_files((*session.dispatcher.files, node))
    session.editor.open_file(node)
    return node


# -----------------------------------------------------------------------------
# Entry point
# -----------------------------------------------------------------------------


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point invoked by the ``redline`` console script."""

    parser = _build_parser()
    args = parser.parse_args(argv)

    debug = configure_logging(args.verbose)

    settings_path = args.settings_path or os.environ.get("REDLINE_SETTINGS_PATH")
    resolved_path = Path(settings_path).expanduser() if settings_path else None
    settings_store = SettingsStore(resolved_path)
    try:
        cli_overrides = _coerce_cli_overrides(args.overrides or [])
        memory = _parse_memory(args.memory or [])
    except ValueError as exc:
        print(f"Invalid argument: {exc}", file=sys.stderr)
        return 2

    settings = load_settings(resolved_path, store=settings_store, overrides=cli_overrides or None)

    if args.dump_settings:
        _dump_settings(settings, settings_store, overrides=cli_overrides)
        return 0

    if args.document is None or args.prompt is None:
        parser.error("a document and a prompt are required unless --dump-settings is given")

    if settings.debug_logging and not debug:
        debug = configure_logging(True)

    try:
        return asyncio.run(
            run_prompt(
                settings,
                Path(args.document).expanduser(),
                args.prompt,
                workspace_root=Path(args.workspace).expanduser() if args.workspace else None,
                memory=memory,
                accept_all=args.accept_all,
                reject_all=args.reject_all,
                output=Path(args.output).expanduser() if args.output else None,
                debug_logging=debug,
            )
        )
    except KeyboardInterrupt:
        _LOGGER.info("Shutdown requested by user.")
        return 130
    except FileNotFoundError as exc:
        print(str(exc), file=sys.stderr)
        return 2


async def run_prompt(
    settings: Settings,
    document: Path,
    prompt: str,
    *,
    workspace_root: Path | None = None,
    memory: Sequence[MemoryItem] = (),
    accept_all: bool = False,
    reject_all: bool = False,
    output: Path | None = None,
    debug_logging: bool = False,
    backend: ChatBackend | None = None,
    stream: TextIO | None = None,
) -> int:
    """Run one agent turn against ``document`` and print the transcript.

    Returns:
        Process exit code: ``0`` when the turn produced an answer, ``1`` when
        the model request failed or the turn was canceled.
    """

    out = stream or sys.stdout
    store: InMemoryWorkspaceStore | None = None
    workspace_id: str | None = None
    if workspace_root is not None:
        workspace_id = settings.workspace_id or "local"
        store = InMemoryWorkspaceStore.from_directory(workspace_root, workspace_id)
    settings_for_turn = settings if workspace_id is None else _with_workspace(settings, workspace_id)

    active_backend = backend or build_backend(settings, debug_logging=debug_logging)
    session = build_session(active_backend, store=store, workspace_id=workspace_id)
    try:
        opened = open_document(session, document, workspace_root=workspace_root)
        out.write(f"Model: {model_display_name(settings.model)}\n")
        output_turn = await session.turns.start_turn(
            prompt,
            build_agent_config(settings_for_turn, memory),
            on_status=lambda update: _print_status(update, out),
        )
    finally:
        close = getattr(active_backend, "aclose", None)
        if backend is None and close is not None:
            await close()

    _print_transcript(output_turn, out)
    out.write("\n" + format_review_summary(session.editor.store) + "\n")

    if accept_all:
        resolution = session.editor.accept_all()
        out.write(f"Accepted {len(resolution.resolved)} change(s).\n")
    elif reject_all:
        resolution = session.editor.reject_all()
        out.write(f"Rejected {len(resolution.resolved)} change(s).\n")

    if output is not None:
        body = session.editor.to_html() if output.suffix.lower() in _HTML_SUFFIXES else session.editor.plain_text()
        output.write_text(body, encoding="utf-8")
        active = session.editor.active_file
        if active is not None and active.path != opened.path:
            _LOGGER.warning("Agent switched from %s to %s; writing the latter", opened.path, active.path)
            out.write(f"Wrote {output} (contents of {active.path}, opened by the agent)\n")
        else:
            out.write(f"Wrote {output}\n")

    return 0 if output_turn.state is LoopState.FINAL_ANSWER else 1


# -----------------------------------------------------------------------------
# Output helpers
# -----------------------------------------------------------------------------


def _print_status(update: ToolStatusUpdate, stream: TextIO) -> None:
    if update.status not in (ToolCallStatus.COMPLETED, ToolCallStatus.ERROR):
        return
    marker = "ok" if update.status is ToolCallStatus.COMPLETED else "failed"
    summary = format_tool_args(update.call.name, update.call.arguments)
    stream.write(f"  [{marker}] {update.label}: {summary}\n")


def _print_transcript(output: TurnOutput, stream: TextIO) -> None:
    if output.max_iterations_reached:
        stream.write(f"(stopped after {output.iterations} model round-trips)\n")
    if output.state is LoopState.CANCELLED:
        stream.write("(turn canceled)\n")
        return
    last = output.messages[-1] if output.messages else None
    if last is not None and last.role == "assistant" and last.content:
        stream.write("\n" + last.content + "\n")


def _dump_settings(
    settings: Settings,
    store: SettingsStore,
    *,
    overrides: Mapping[str, Any],
    stream: TextIO | None = None,
) -> None:
    destination = stream or sys.stdout
    metadata = {
        "path": str(store.path),
        "secret_backend": store.vault.strategy,
        "cli_overrides": sorted(overrides.keys()),
        "environment_variables": _active_env_overrides(),
    }
    json.dump({"settings": redacted_settings(settings), "meta": metadata}, destination, indent=2)
    destination.write("\n")


# -----------------------------------------------------------------------------
# Argument helpers
# -----------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="redline",
        description="Ask the writing agent to work on a document and review its tracked changes.",
    )
    parser.add_argument("document", nargs="?", help="Document to open (HTML, Markdown or plain text).")
    parser.add_argument("prompt", nargs="?", help="Instruction for the agent.")
    parser.add_argument(
        "--workspace",
        metavar="DIR",
        help="Load every text document below DIR as the workspace the fs_ tools operate on.",
    )
    parser.add_argument(
        "--memory",
        metavar="TYPE=TEXT",
        action="append",
        default=[],
        help="Writing context entry (goal, audience, tone or constraint). Repeatable.",
    )
    resolution = parser.add_mutually_exclusive_group()
    resolution.add_argument("--accept-all", action="store_true", help="Accept every tracked change after the turn.")
    resolution.add_argument("--reject-all", action="store_true", help="Reject every tracked change after the turn.")
    parser.add_argument("--output", metavar="PATH", help="Write the resulting document to PATH.")
    parser.add_argument(
        "--dump-settings",
        action="store_true",
        help="Print the effective settings payload (with secrets redacted) and exit.",
    )
    parser.add_argument(
        "--settings-path",
        metavar="PATH",
        help="Override the default ~/.redline/settings.json path.",
    )
    parser.add_argument(
        "--set",
        dest="overrides",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        help="Override persisted settings for this run (repeatable).",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    return parser


def _with_workspace(settings: Settings, workspace_id: str) -> Settings:
    return replace(settings, workspace_id=workspace_id)


def _resolve_max_tool_iterations(settings: Settings | None) -> int:
    """Clamp the configured iteration limit into a safe operating range."""

    raw_value = getattr(settings, "max_tool_iterations", 10) if settings else 10
    try:
        value = int(raw_value)
    except (TypeError, ValueError):
        value = 10
    return max(1, min(value, 50))


def _parse_memory(items: Sequence[str]) -> list[MemoryItem]:
    memory: list[MemoryItem] = []
    for entry in items:
        kind, sep, text = entry.partition("=")
        kind = kind.strip().lower()
        if not sep or kind not in _MEMORY_TYPES:
            raise ValueError(f"Memory '{entry}' must use TYPE=TEXT with TYPE in {', '.join(_MEMORY_TYPES)}.")
        memory.append(MemoryItem(type=kind, content=text.strip()))  # type: ignore[arg-type]
    return memory


def _coerce_cli_overrides(items: Sequence[str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if not items:
        return overrides

    fields = Settings.__dataclass_fields__  # type: ignore[attr-defined]
    type_hints = get_type_hints(Settings)
    for entry in items:
        if "=" not in entry:
            raise ValueError(f"Override '{entry}' must use KEY=VALUE syntax.")
        key, raw_value = entry.split("=", 1)
        key = key.strip()
        if not key:
            raise ValueError("Override is missing a field name.")
        if key not in fields:
            raise ValueError(f"Unknown setting '{key}'.")
        annotation = type_hints.get(key, fields[key].type)
        overrides[key] = _coerce_value(annotation, raw_value.strip())
    return overrides


def _coerce_value(annotation: Any, raw_value: str) -> Any:
    optional = type(None) in get_args(annotation)
    target = _resolve_annotation(annotation)
    normalized = raw_value.strip()

    if optional and normalized.lower() in {"", "none", "null"}:
        return None
    if target is str or target is Any:
        return normalized
    if target is bool:
        return _parse_bool(normalized)
    if target is int:
        return int(normalized, 10)
    if target is float:
        return float(normalized)
    if target is list:
        if normalized.startswith("["):
            try:
                return json.loads(normalized)
            except json.JSONDecodeError as exc:
                raise ValueError("List overrides must be valid JSON arrays") from exc
        return [item.strip() for item in normalized.split(",") if item.strip()]
    if target is dict:
        try:
            value = json.loads(normalized or "{}")
        except json.JSONDecodeError as exc:
            raise ValueError("Dict overrides must be valid JSON objects") from exc
        if not isinstance(value, dict):
            raise ValueError("Dict overrides must be valid JSON objects")
        return value
    return normalized


def _resolve_annotation(annotation: Any) -> Any:
    origin = get_origin(annotation)
    if origin is None:
        return annotation
    if origin in {list, dict}:
        return origin
    args = [arg for arg in get_args(annotation) if arg is not type(None)]
    if not args:
        return origin
    return _resolve_annotation(args[0])


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Cannot coerce '{value}' to a boolean.")


def _active_env_overrides() -> list[str]:
    return sorted(name for name in os.environ if name.startswith("REDLINE_"))


__all__ = [
    "Session",
    "build_agent_config",
    "build_backend",
    "build_session",
    "configure_logging",
    "load_settings",
    "main",
    "open_document",
    "run_prompt",
]


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
