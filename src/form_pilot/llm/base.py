"""Base classes for LLM integrations."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

from ..models import ToolCall, Turn


@dataclass(frozen=True)
class ToolSpec:
    """What the model is told about one callable tool."""

    name: str
    description: str
    parameters: dict[str, Any]


@dataclass
class LLMRequest:
    """Everything sent to the model on one loop iteration."""

    system_instruction: str
    tools: Sequence[ToolSpec]
    conversation: Sequence[Turn]


@dataclass
class ModelResponse:
    """Either plain text (no tool calls) or one or more tool calls."""

    text: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    raw: Optional[dict[str, Any]] = None

    @property
    def wants_tools(self) -> bool:
        return bool(self.tool_calls)


class LLMClient(ABC):
    """Abstract interface for LLM providers."""

    @abstractmethod
    def generate(self, request: LLMRequest) -> ModelResponse:
        """Return the model's next response for *request*.

        Implementations raise :class:`~form_pilot.errors.ProviderError` when the
        call fails, times out or returns something that cannot be interpreted.
        """

    def close(self) -> None:
        """Release network resources."""
