"""LLM client for OpenAI-compatible chat completion endpoints with tool calling."""

from __future__ import annotations

import json
from typing import Any, Optional

import httpx

from ..config import LLMConfig
from ..errors import ProviderError
from ..models import ToolCall, Turn, TurnRole
from .base import LLMClient, LLMRequest, ModelResponse
from .json_parser import parse_tool_arguments
from .transport import post_json

_RESERVED_PARAMETERS = {"timeout", "temperature", "responses"}


class OpenAIChatLLM(LLMClient):
    """Call an OpenAI-compatible chat completion API with the tool catalog attached."""

    def __init__(self, config: LLMConfig, *, transport: Optional[httpx.BaseTransport] = None) -> None:
        if not config.model:
            raise ValueError("LLM model must be specified for OpenAIChatLLM")
        self._config = config
        headers = {"Content-Type": "application/json"}
        if config.api_key:
            headers["Authorization"] = f"Bearer {config.api_key}"
        self._client = httpx.Client(
            base_url=config.base_url or "https://api.openai.com/v1",
            timeout=config.timeout,
            headers=headers,
            transport=transport,
        )

    def generate(self, request: LLMRequest) -> ModelResponse:
        payload: dict[str, Any] = {
            "model": self._config.model,
            "messages": self._build_messages(request),
            "temperature": self._config.temperature,
        }
        if request.tools:
            payload["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": spec.name,
                        "description": spec.description,
                        "parameters": spec.parameters,
                    },
                }
                for spec in request.tools
            ]
        payload.update(
            {k: v for k, v in self._config.parameters.items() if k not in _RESERVED_PARAMETERS}
        )
        data = post_json(self._client, "/chat/completions", payload)
        try:
            message = data["choices"][0]["message"]
        except (KeyError, IndexError, TypeError) as exc:
            raise ProviderError(f"Unexpected response format: {data}") from exc
        calls: list[ToolCall] = []
        for item in message.get("tool_calls") or []:
            function = item.get("function") or {}
            name = function.get("name")
            if not name:
                raise ProviderError(f"Tool call without a name: {item}")
            try:
                arguments = parse_tool_arguments(function.get("arguments"))
            except ValueError as exc:
                raise ProviderError(f"Malformed arguments for tool {name}: {exc}") from exc
            call_kwargs: dict[str, Any] = {"name": name, "arguments": arguments}
            if item.get("id"):
                call_kwargs["id"] = item["id"]
            calls.append(ToolCall(**call_kwargs))
        return ModelResponse(text=message.get("content") or "", tool_calls=calls, raw=data)

    def close(self) -> None:
        self._client.close()

    @staticmethod
    def _build_messages(request: LLMRequest) -> list[dict[str, Any]]:
        messages: list[dict[str, Any]] = [
            {"role": "system", "content": request.system_instruction}
        ]
        for turn in request.conversation:
            messages.append(_to_message(turn))
        return messages


def _to_message(turn: Turn) -> dict[str, Any]:
    if turn.role is TurnRole.TOOL:
        return {"role": "tool", "tool_call_id": turn.tool_call_id, "content": turn.content}
    if turn.role is TurnRole.MODEL:
        message: dict[str, Any] = {"role": "assistant", "content": turn.content or None}
        if turn.tool_calls:
            message["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": json.dumps(call.arguments)},
                }
                for call in turn.tool_calls
            ]
        return message
    return {"role": "user", "content": turn.content}
