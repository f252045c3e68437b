"""Chat backends consumed by the agent loop.

Two implementations of :class:`~redline.ai.orchestration.types.ChatBackend`:

``OpenAIChatBackend``
    Talks to an OpenAI-compatible endpoint through :class:`AIClient`, with the
    workspace context rendered into the system prompt.

``HttpChatBackend``
    Posts the transcript and workspace context as JSON to a chat route that
    answers ``{"type": "message" | "tool_calls" | "error", ...}``.

Both raise :class:`ChatBackendError` for transport and HTTP failures.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

import httpx
from openai import APIError, APIStatusError

from .client import AIClient
from .orchestration.types import (
    AgentConfig,
    ChatBackendError,
    ChatContext,
    ChatResponse,
    Message,
    ToolCall,
)
from .prompts import build_system_message

LOGGER = logging.getLogger(__name__)


class OpenAIChatBackend:
    """Backend that calls the model directly via the OpenAI SDK."""

    def __init__(self, client: AIClient) -> None:
        self._client = client

    @property
    def client(self) -> AIClient:
        return self._client

    async def complete(
        self,
        messages: Sequence[Message],
        *,
        config: AgentConfig,
        context: ChatContext,
        tools: Sequence[Mapping[str, Any]] = (),
    ) -> ChatResponse:
        payload = [Message.system(build_system_message(context)).to_chat_param()]
        payload.extend(message.to_chat_param() for message in messages)
        metadata = {"workspace_id": context.workspace_id} if context.workspace_id else None
        try:
            completion = await self._client.complete_chat(
                payload,
                model=config.model,
                tools=tools,
                temperature=config.temperature,
                metadata=metadata,
            )
        except APIStatusError as exc:
            raise ChatBackendError(_status_message(exc), status_code=exc.status_code) from exc
        except (APIError, httpx.HTTPError) as exc:
            raise ChatBackendError(str(exc) or exc.__class__.__name__) from exc

        calls = tuple(ToolCall.from_payload(call) for call in completion.tool_calls)
        if calls:
            return ChatResponse(type="tool_calls", content=completion.content, tool_calls=calls)
        return ChatResponse(type="message", content=completion.content)

    async def aclose(self) -> None:
        await self._client.aclose()


class HttpChatBackend:
    """Backend that posts to a JSON chat route.

    Args:
        endpoint: Absolute URL of the chat route.
        client: Optional pre-built ``httpx.AsyncClient`` (tests pass one with
            a mock transport). Owned clients are closed by :meth:`aclose`.
        timeout: Request timeout in seconds for owned clients.
        headers: Extra request headers (e.g. authorization).
    """

    def __init__(
        self,
        endpoint: str,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = 90.0,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))
        self._headers = dict(headers or {})

    async def complete(
        self,
        messages: Sequence[Message],
        *,
        config: AgentConfig,
        context: ChatContext,
        tools: Sequence[Mapping[str, Any]] = (),
    ) -> ChatResponse:
        body = build_request_body(messages, config=config, context=context)
        if tools:
            body["tools"] = list(tools)
        try:
            response = await self._client.post(self._endpoint, json=body, headers=self._headers)
        except httpx.HTTPError as exc:
            raise ChatBackendError(str(exc) or exc.__class__.__name__) from exc

        try:
            data = response.json()
        except ValueError:
            data = None

        if response.is_error:
            detail = data.get("content") if isinstance(data, Mapping) else None
            raise ChatBackendError(
                str(detail or f"Chat endpoint returned HTTP {response.status_code}"),
                status_code=response.status_code,
            )
        if not isinstance(data, Mapping):
            raise ChatBackendError("Chat endpoint returned a non-JSON response", status_code=response.status_code)

        LOGGER.debug("Chat endpoint replied with type=%s", data.get("type"))
        return ChatResponse.from_payload(data)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def build_request_body(
    messages: Sequence[Message],
    *,
    config: AgentConfig,
    context: ChatContext,
) -> dict[str, Any]:
    """JSON body of a chat route request."""
    body: dict[str, Any] = {
        "messages": [message.to_dict() for message in messages],
        "model": config.model,
        "workspaceId": context.workspace_id,
        "folderTree": context.folder_tree,
        "memoryContext": context.memory_context,
    }
    if context.current_file is not None:
        body["currentFile"] = _file_payload(context.current_file)
    if context.context_files:
        body["contextFiles"] = [_file_payload(node) for node in context.context_files]
    return body


def _file_payload(node: Any) -> dict[str, Any]:
    return {"name": node.name, "path": node.path, "content": node.content or ""}


def _status_message(exc: APIStatusError) -> str:
    body = getattr(exc, "body", None)
    if isinstance(body, Mapping):
        error = body.get("error")
        if isinstance(error, Mapping) and error.get("message"):
            return str(error["message"])
    return exc.message or f"HTTP {exc.status_code}"


__all__ = ["ChatBackendError", "HttpChatBackend", "OpenAIChatBackend", "build_request_body"]
