"""Registry of tools the model may call and the dispatcher that runs them."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional

from pydantic import BaseModel, ValidationError

from ..browser.base import BrowserSession
from ..errors import FormPilotError, InvalidToolArguments, UnknownTool
from ..llm.base import ToolSpec
from ..models import ErrorResult, ToolCall, ToolResult

LOGGER = logging.getLogger(__name__)

ToolHandler = Callable[[BrowserSession, Any], ToolResult]


@dataclass(frozen=True)
class ToolDefinition:
    """One catalog entry: schema shown to the model plus the code that runs it."""

    name: str
    description: str
    parameters: dict[str, Any]
    arguments_model: type[BaseModel]
    handler: ToolHandler

    def spec(self) -> ToolSpec:
        return ToolSpec(name=self.name, description=self.description, parameters=self.parameters)


class ToolCatalog:
    """Fixed mapping from tool name to definition.

    :meth:`dispatch` always returns a :class:`ToolResult`; failures are
    reported in-band so the model can react to them.
    """

    def __init__(self, tools: Iterable[ToolDefinition], *, version: str = "1") -> None:
        self.version = version
        self._tools: dict[str, ToolDefinition] = {}
        for tool in tools:
            if tool.name in self._tools:
                raise ValueError(f"Duplicate tool name: {tool.name}")
            self._tools[tool.name] = tool

    def names(self) -> list[str]:
        return list(self._tools)

    def get(self, name: str) -> Optional[ToolDefinition]:
        return self._tools.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def specs(self) -> list[ToolSpec]:
        return [tool.spec() for tool in self._tools.values()]

    def validate(self, call: ToolCall) -> tuple[ToolDefinition, BaseModel]:
        """Resolve *call* to its definition and parsed arguments."""

        tool = self._tools.get(call.name)
        if tool is None:
            raise UnknownTool(f"Unknown tool: {call.name}")
        try:
            arguments = tool.arguments_model.model_validate(call.arguments)
        except ValidationError as exc:
            raise InvalidToolArguments(_describe_validation_error(call.name, exc)) from exc
        return tool, arguments

    def dispatch(self, call: ToolCall, browser: BrowserSession) -> ToolResult:
        LOGGER.info("Dispatching tool %s", call.name)
        try:
            tool, arguments = self.validate(call)
            return tool.handler(browser, arguments)
        except (UnknownTool, InvalidToolArguments) as exc:
            LOGGER.warning("Rejected tool call %s: %s", call.name, exc)
            return ErrorResult(message=str(exc), error_type=exc.error_type)
        except FormPilotError as exc:
            LOGGER.warning("Tool %s failed: %s", call.name, exc)
            return ErrorResult(message=f"{call.name} failed: {exc}", error_type=exc.error_type)
        except Exception as exc:  # noqa: BLE001 - results must reach the model in-band
            LOGGER.exception("Unexpected failure while running tool %s", call.name)
            return ErrorResult(
                message=f"{call.name} failed unexpectedly: {type(exc).__name__}",
                error_type="tool_failure",
            )


def _describe_validation_error(name: str, exc: ValidationError) -> str:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())) or "(arguments)"
        problems.append(f"{location}: {error.get('msg')}")
    return f"Invalid arguments for {name}: " + "; ".join(problems)
