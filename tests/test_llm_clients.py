from __future__ import annotations

import json

import httpx
import pytest

from form_pilot.config import LLMConfig
from form_pilot.errors import ProviderError
from form_pilot.llm.base import LLMRequest, ToolSpec
from form_pilot.llm.gemini_client import GeminiLLM, build_contents
from form_pilot.llm.mock import ScriptedLLM, parse_scripted_response
from form_pilot.llm.openai_client import OpenAIChatLLM
from form_pilot.models import ToolCall, Turn

NAVIGATE = ToolSpec(
    name="navigate_to_website",
    description="Navigate to a specific URL in the browser",
    parameters={"type": "object", "properties": {"url": {"type": "string"}}, "required": ["url"]},
)
SCREENSHOT = ToolSpec(
    name="take_screenshot",
    description="Take a screenshot of the current webpage",
    parameters={"type": "object", "properties": {}, "required": []},
)


def _request(conversation=None) -> LLMRequest:
    return LLMRequest(
        system_instruction="You fill forms.",
        tools=[NAVIGATE, SCREENSHOT],
        conversation=conversation or [Turn.user("open example.com")],
    )


def _transport(captured: list[httpx.Request], body=None, status_code=200):
    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        if isinstance(body, Exception):
            raise body
        return httpx.Response(status_code, json=body)

    return httpx.MockTransport(handler)


# OpenAI-compatible -------------------------------------------------------------


def _openai(transport) -> OpenAIChatLLM:
    return OpenAIChatLLM(
        LLMConfig(provider="openai", model="gpt-test", api_key="sk-test", parameters={"top_p": 0.5}),
        transport=transport,
    )


def test_openai_parses_tool_calls():
    captured: list[httpx.Request] = []
    body = {
        "choices": [
            {
                "message": {
                    "content": None,
                    "tool_calls": [
                        {
                            "id": "call_abc",
                            "type": "function",
                            "function": {"name": "navigate_to_website", "arguments": '{"url": "example.com"}'},
                        },
                        {
                            "id": "call_def",
                            "type": "function",
                            "function": {"name": "take_screenshot", "arguments": ""},
                        },
                    ],
                }
            }
        ]
    }

    response = _openai(_transport(captured, body)).generate(_request())

    assert response.text == ""
    assert [(call.id, call.name, call.arguments) for call in response.tool_calls] == [
        ("call_abc", "navigate_to_website", {"url": "example.com"}),
        ("call_def", "take_screenshot", {}),
    ]
    sent = json.loads(captured[0].content)
    assert captured[0].url.path.endswith("/chat/completions")
    assert captured[0].headers["Authorization"] == "Bearer sk-test"
    assert sent["model"] == "gpt-test"
    assert sent["top_p"] == 0.5
    assert sent["messages"][0] == {"role": "system", "content": "You fill forms."}
    assert [tool["function"]["name"] for tool in sent["tools"]] == ["navigate_to_website", "take_screenshot"]


def test_openai_echoes_tool_results():
    call = ToolCall(id="call_1", name="navigate_to_website", arguments={"url": "example.com"})
    conversation = [
        Turn.user("open example.com"),
        Turn.model(tool_calls=[call]),
        Turn.tool_result(call, {"success": True, "message": "ok"}),
    ]
    captured: list[httpx.Request] = []
    body = {"choices": [{"message": {"content": "Opened."}}]}

    response = _openai(_transport(captured, body)).generate(_request(conversation))

    assert response.text == "Opened."
    assert not response.wants_tools
    messages = json.loads(captured[0].content)["messages"]
    assistant, tool = messages[2], messages[3]
    assert assistant["role"] == "assistant"
    assert assistant["tool_calls"][0]["id"] == "call_1"
    assert json.loads(assistant["tool_calls"][0]["function"]["arguments"]) == {"url": "example.com"}
    assert tool == {"role": "tool", "tool_call_id": "call_1", "content": '{"success": true, "message": "ok"}'}


def test_openai_malformed_arguments_raise_provider_error():
    body = {
        "choices": [
            {
                "message": {
                    "tool_calls": [
                        {"id": "x", "function": {"name": "navigate_to_website", "arguments": "url=example.com"}}
                    ]
                }
            }
        ]
    }

    with pytest.raises(ProviderError):
        _openai(_transport([], body)).generate(_request())


@pytest.mark.parametrize(
    ("body", "status_code"),
    [
        ({"error": "overloaded"}, 503),
        ({"unexpected": True}, 200),
        (httpx.ReadTimeout("read timed out"), 200),
        (httpx.ConnectError("connection refused"), 200),
    ],
)
def test_openai_transport_failures_raise_provider_error(body, status_code):
    with pytest.raises(ProviderError):
        _openai(_transport([], body, status_code)).generate(_request())


def test_openai_requires_model():
    with pytest.raises(ValueError):
        OpenAIChatLLM(LLMConfig(provider="openai"))


# Gemini -----------------------------------------------------------------------


def _gemini(transport, **parameters) -> GeminiLLM:
    return GeminiLLM(LLMConfig(provider="gemini", api_key="g-key", parameters=parameters), transport=transport)


def test_gemini_request_and_function_calls():
    captured: list[httpx.Request] = []
    body = {
        "candidates": [
            {
                "content": {
                    "role": "model",
                    "parts": [
                        {"text": "Opening it now."},
                        {"functionCall": {"name": "navigate_to_website", "args": {"url": "example.com"}}},
                    ],
                }
            }
        ]
    }

    response = _gemini(_transport(captured, body)).generate(_request())

    assert response.text == "Opening it now."
    assert [(call.name, call.arguments) for call in response.tool_calls] == [
        ("navigate_to_website", {"url": "example.com"})
    ]
    request = captured[0]
    assert request.url.path == "/v1beta/models/gemini-1.5-pro:generateContent"
    assert request.headers["x-goog-api-key"] == "g-key"
    sent = json.loads(request.content)
    assert sent["systemInstruction"] == {"parts": [{"text": "You fill forms."}]}
    declarations = sent["tools"][0]["functionDeclarations"]
    assert declarations[0]["parameters"]["required"] == ["url"]
    assert "parameters" not in declarations[1]
    assert sent["toolConfig"]["functionCallingConfig"]["mode"] == "AUTO"


def test_gemini_function_calling_mode_is_configurable():
    captured: list[httpx.Request] = []
    body = {"candidates": [{"content": {"parts": [{"text": "ok"}]}}]}

    _gemini(_transport(captured, body), function_calling_mode="any").generate(_request())

    assert json.loads(captured[0].content)["toolConfig"]["functionCallingConfig"]["mode"] == "ANY"


def test_gemini_without_candidates_raises():
    body = {"promptFeedback": {"blockReason": "SAFETY"}}

    with pytest.raises(ProviderError):
        _gemini(_transport([], body)).generate(_request())


def test_gemini_requires_api_key():
    with pytest.raises(ValueError):
        GeminiLLM(LLMConfig(provider="gemini"))


def test_build_contents_groups_function_responses():
    first = ToolCall(name="fill_form", arguments={"fields": []})
    second = ToolCall(name="click_element", arguments={"selector": "#go"})
    conversation = [
        Turn.user("fill and submit"),
        Turn.model("Working on it.", [first, second]),
        Turn.tool_result(first, {"success": True, "message": "filled"}),
        Turn.tool_result(second, {"success": False, "message": "not executed"}),
        Turn.model("Done."),
    ]

    contents = build_contents(conversation)

    assert [content["role"] for content in contents] == ["user", "model", "user", "model"]
    assert contents[1]["parts"] == [
        {"text": "Working on it."},
        {"functionCall": {"name": "fill_form", "args": {"fields": []}}},
        {"functionCall": {"name": "click_element", "args": {"selector": "#go"}}},
    ]
    assert contents[2]["parts"] == [
        {"functionResponse": {"name": "fill_form", "response": {"success": True, "message": "filled"}}},
        {"functionResponse": {"name": "click_element", "response": {"success": False, "message": "not executed"}}},
    ]


# Scripted ----------------------------------------------------------------------


def test_scripted_llm_replays_configured_responses():
    llm = ScriptedLLM(
        [
            parse_scripted_response(
                {"tool_calls": [{"name": "take_screenshot"}], "text": ""},
            ),
            parse_scripted_response("All done."),
        ]
    )

    first = llm.generate(_request())
    second = llm.generate(_request())

    assert first.tool_calls[0].name == "take_screenshot"
    assert second.text == "All done."
    assert len(llm.requests) == 2
    with pytest.raises(ProviderError):
        llm.generate(_request())
