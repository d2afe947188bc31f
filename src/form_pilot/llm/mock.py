"""Mock LLM clients for testing and offline use."""

from __future__ import annotations

from collections import deque
from typing import Any, Deque, Iterable, Mapping, Union

from ..errors import ProviderError
from ..models import ToolCall
from .base import LLMClient, LLMRequest, ModelResponse


class ScriptedLLM(LLMClient):
    """Return responses from a predefined sequence and remember every request."""

    def __init__(self, responses: Iterable[ModelResponse]) -> None:
        self._responses: Deque[ModelResponse] = deque(responses)
        self.requests: list[LLMRequest] = []

    def generate(self, request: LLMRequest) -> ModelResponse:
        self.requests.append(
            LLMRequest(
                system_instruction=request.system_instruction,
                tools=list(request.tools),
                conversation=list(request.conversation),
            )
        )
        if not self._responses:
            raise ProviderError("ScriptedLLM ran out of responses")
        return self._responses.popleft()


def parse_scripted_response(item: Union[str, Mapping[str, Any]]) -> ModelResponse:
    """Build a response from a config entry: a string or ``{text, tool_calls}``."""

    if isinstance(item, str):
        return ModelResponse(text=item)
    calls = [ToolCall.model_validate(call) for call in item.get("tool_calls", [])]
    return ModelResponse(text=str(item.get("text", "")), tool_calls=calls)
