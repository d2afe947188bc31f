"""LLM client for the Google Generative Language (Gemini) REST API."""

from __future__ import annotations

from typing import Any, Optional, Sequence

import httpx

from ..config import LLMConfig
from ..errors import ProviderError
from ..models import ToolCall, Turn, TurnRole
from .base import LLMClient, LLMRequest, ModelResponse, ToolSpec
from .transport import post_json

DEFAULT_MODEL = "gemini-1.5-pro"
DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


class GeminiLLM(LLMClient):
    """Call ``models/{model}:generateContent`` with function declarations."""

    def __init__(self, config: LLMConfig, *, transport: Optional[httpx.BaseTransport] = None) -> None:
        if not config.api_key:
            raise ValueError("An API key is required for the Gemini provider")
        self._config = config
        self._model = config.model or DEFAULT_MODEL
        self._mode = str(config.parameters.get("function_calling_mode", "AUTO")).upper()
        self._client = httpx.Client(
            base_url=config.base_url or DEFAULT_BASE_URL,
            timeout=config.timeout,
            headers={"Content-Type": "application/json", "x-goog-api-key": config.api_key},
            transport=transport,
        )

    def generate(self, request: LLMRequest) -> ModelResponse:
        payload: dict[str, Any] = {
            "systemInstruction": {"parts": [{"text": request.system_instruction}]},
            "contents": build_contents(request.conversation),
            "generationConfig": {"temperature": self._config.temperature},
        }
        if request.tools:
            payload["tools"] = [
                {"functionDeclarations": [_declaration(spec) for spec in request.tools]}
            ]
            payload["toolConfig"] = {"functionCallingConfig": {"mode": self._mode}}
        data = post_json(self._client, f"/models/{self._model}:generateContent", payload)
        candidates = data.get("candidates") or []
        if not candidates:
            feedback = data.get("promptFeedback") or {}
            raise ProviderError(f"Model returned no candidates: {feedback or data}")
        content = candidates[0].get("content") or {}
        texts: list[str] = []
        calls: list[ToolCall] = []
        for part in content.get("parts") or []:
            if "functionCall" in part:
                call = part["functionCall"] or {}
                if not call.get("name"):
                    raise ProviderError(f"Function call without a name: {part}")
                args = call.get("args") or {}
                if not isinstance(args, dict):
                    raise ProviderError(f"Malformed arguments for tool {call['name']}")
                calls.append(ToolCall(name=call["name"], arguments=args))
            elif "text" in part:
                texts.append(part["text"])
        return ModelResponse(text="".join(texts).strip(), tool_calls=calls, raw=data)

    def close(self) -> None:
        self._client.close()


def build_contents(conversation: Sequence[Turn]) -> list[dict[str, Any]]:
    """Translate turns into Gemini contents.

    Consecutive tool turns become one content holding every function response,
    which is what the API expects after a model turn with several calls.
    """

    contents: list[dict[str, Any]] = []
    pending_responses: list[dict[str, Any]] = []

    def flush() -> None:
        if pending_responses:
            contents.append({"role": "user", "parts": list(pending_responses)})
            pending_responses.clear()

    for turn in conversation:
        if turn.role is TurnRole.TOOL:
            pending_responses.append(
                {"functionResponse": {"name": turn.name, "response": turn.payload()}}
            )
            continue
        flush()
        if turn.role is TurnRole.MODEL:
            parts: list[dict[str, Any]] = []
            if turn.content:
                parts.append({"text": turn.content})
            for call in turn.tool_calls:
                parts.append({"functionCall": {"name": call.name, "args": call.arguments}})
            contents.append({"role": "model", "parts": parts or [{"text": ""}]})
        else:
            contents.append({"role": "user", "parts": [{"text": turn.content}]})
    flush()
    return contents


def _declaration(spec: ToolSpec) -> dict[str, Any]:
    declaration: dict[str, Any] = {"name": spec.name, "description": spec.description}
    if spec.parameters.get("properties"):
        declaration["parameters"] = spec.parameters
    return declaration
