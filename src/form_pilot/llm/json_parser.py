"""Utilities for parsing JSON embedded in LLM output."""

from __future__ import annotations

import json
from typing import Any, Optional, Union


def extract_json_object(text: str) -> dict[str, Any]:
    """Extract the first JSON object found in *text* and return it as a dict."""

    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = _strip_code_fence(cleaned)
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start == -1 or end == -1 or end <= start:
        raise ValueError("No JSON object found in LLM response")
    snippet = cleaned[start : end + 1]
    data = json.loads(snippet)
    if not isinstance(data, dict):  # pragma: no cover - braces always decode to an object
        raise ValueError("LLM response JSON is not an object")
    return data


def parse_tool_arguments(raw: Optional[Union[str, dict[str, Any]]]) -> dict[str, Any]:
    """Decode tool-call arguments, which providers send as a JSON string or object."""

    if raw is None:
        return {}
    if isinstance(raw, dict):
        return raw
    if not raw.strip():
        return {}
    return extract_json_object(raw)


def _strip_code_fence(block: str) -> str:
    parts = block.split("```")
    if len(parts) >= 3:
        body = parts[1]
        if body.startswith("json"):
            body = body[len("json") :]
        return body
    return block.strip("`")
