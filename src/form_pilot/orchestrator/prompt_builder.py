"""System instruction construction."""

from __future__ import annotations

from textwrap import dedent
from typing import Iterable, Optional

from ..llm.base import ToolSpec

DEFAULT_SYSTEM_PROMPT = dedent(
    """
    You are a helpful assistant that completes government forms and websites on
    behalf of the user by operating a real web browser.

    Rules:
    - When the user provides a URL or asks to go to a website, call navigate_to_website.
    - Before filling a form you have not seen, call extract_page_info with info_type "forms"
      and use the selectors it returns.
    - When the user asks you to fill in a form, call fill_form with every known value.
    - When the user asks you to click something or submit, call click_element.
    - Never claim to have done something without calling the matching tool.
    - If a tool reports a failure, explain it briefly and try another approach or ask the user.
    - If a CAPTCHA or human verification appears, stop and ask the user to solve it;
      you will be told when to continue.
    """
).strip()


class PromptBuilder:
    """Build the system instruction sent with every model request."""

    def __init__(self, system_prompt: Optional[str] = None) -> None:
        self._system_prompt = system_prompt or DEFAULT_SYSTEM_PROMPT

    def build(self, tools: Iterable[ToolSpec]) -> str:
        tool_lines = "\n".join(f"- {tool.name}: {tool.description}" for tool in tools)
        if not tool_lines:
            return self._system_prompt
        return f"{self._system_prompt}\n\nAvailable tools:\n{tool_lines}"
