"""The browser tools offered to the model."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from ..browser.base import BrowserSession
from ..errors import FieldFillFailed
from ..models import (
    CaptchaCheckResult,
    ClickResult,
    FillFormResult,
    FormField,
    NavigationResult,
    PageInfoResult,
    ScreenshotResult,
)
from .catalog import ToolCatalog, ToolDefinition

CATALOG_VERSION = "1"


class _Arguments(BaseModel):
    model_config = ConfigDict(extra="forbid")


class NavigateArguments(_Arguments):
    url: str = Field(min_length=1)


class FillFormArguments(_Arguments):
    fields: list[FormField] = Field(min_length=1)


class ClickArguments(_Arguments):
    selector: str = Field(min_length=1)


class ExtractPageInfoArguments(_Arguments):
    info_type: Literal["forms", "text", "title", "url"]


class NoArguments(_Arguments):
    pass


def navigate_to_website(browser: BrowserSession, args: NavigateArguments) -> NavigationResult:
    location = browser.navigate(args.url)
    return NavigationResult(
        success=True,
        message=f"Successfully navigated to {location.url}. Page title: {location.title}",
        url=location.url,
        title=location.title,
    )


def fill_form(browser: BrowserSession, args: FillFormArguments) -> FillFormResult:
    try:
        outcome = browser.fill_fields(args.fields)
    except FieldFillFailed as exc:
        applied = ", ".join(exc.applied) or "none"
        return FillFormResult(
            success=False,
            message=f"Failed to fill form: {exc}. Fields filled before the failure: {applied}",
            error_type=exc.error_type,
            applied=exc.applied,
            failed_selector=exc.selector,
        )
    detection = outcome.detection
    if detection is not None and detection.detected:
        return FillFormResult(
            success=False,
            paused_for_human=True,
            message=detection.message,
            challenge_kind=detection.kind,
        )
    return FillFormResult(
        success=True,
        message=f"Successfully filled {len(outcome.applied)} form fields",
        applied=outcome.applied,
    )


def click_element(browser: BrowserSession, args: ClickArguments) -> ClickResult:
    outcome = browser.click(args.selector)
    detection = outcome.detection
    if detection is not None and detection.detected:
        return ClickResult(
            success=False,
            paused_for_human=True,
            message=detection.message,
            selector=args.selector,
            challenge_kind=detection.kind,
        )
    return ClickResult(
        success=True,
        message=f"Successfully clicked element: {args.selector}",
        selector=args.selector,
    )


def extract_page_info(browser: BrowserSession, args: ExtractPageInfoArguments) -> PageInfoResult:
    info = browser.extract_page_info(args.info_type)
    if args.info_type == "forms":
        message = f"Found {len(info)} form fields on the page"
    else:
        message = f"Extracted {args.info_type} information from the page"
    return PageInfoResult(success=True, message=message, info_type=args.info_type, info=info)


def check_for_captcha(browser: BrowserSession, args: NoArguments) -> CaptchaCheckResult:
    detection = browser.detect_verification_challenge()
    return CaptchaCheckResult(
        success=True,
        message=detection.message,
        detected=detection.detected,
        challenge_kind=detection.kind,
    )


def take_screenshot(browser: BrowserSession, args: NoArguments) -> ScreenshotResult:
    image = browser.screenshot()
    return ScreenshotResult(success=True, message="Screenshot taken successfully", image_base64=image)


_NO_PARAMETERS = {"type": "object", "properties": {}, "required": []}

BUILTIN_TOOLS = [
    ToolDefinition(
        name="navigate_to_website",
        description="Navigate to a specific URL in the browser",
        parameters={
            "type": "object",
            "properties": {
                "url": {
                    "type": "string",
                    "description": "The URL to navigate to (can include or exclude https://)",
                }
            },
            "required": ["url"],
        },
        arguments_model=NavigateArguments,
        handler=navigate_to_website,
    ),
    ToolDefinition(
        name="fill_form",
        description=(
            "Fill out a form on the current webpage with provided data. "
            "Stops and asks for a human when a CAPTCHA or verification is on the page."
        ),
        parameters={
            "type": "object",
            "properties": {
                "fields": {
                    "type": "array",
                    "description": "Array of form fields to fill, in order",
                    "items": {
                        "type": "object",
                        "properties": {
                            "selector": {
                                "type": "string",
                                "description": (
                                    "CSS selector for the input field "
                                    '(e.g., #email, input[name="username"], [placeholder="Enter name"])'
                                ),
                            },
                            "value": {
                                "type": "string",
                                "description": "The value to enter in the field",
                            },
                            "type": {
                                "type": "string",
                                "enum": ["text", "select", "checkbox", "radio"],
                                "description": "Type of the form field",
                            },
                        },
                        "required": ["selector", "value"],
                    },
                }
            },
            "required": ["fields"],
        },
        arguments_model=FillFormArguments,
        handler=fill_form,
    ),
    ToolDefinition(
        name="click_element",
        description="Click on an element on the webpage (buttons, links, etc.)",
        parameters={
            "type": "object",
            "properties": {
                "selector": {
                    "type": "string",
                    "description": (
                        "CSS selector for the element to click "
                        '(e.g., button[type="submit"], .submit-btn, #login-button)'
                    ),
                }
            },
            "required": ["selector"],
        },
        arguments_model=ClickArguments,
        handler=click_element,
    ),
    ToolDefinition(
        name="extract_page_info",
        description="Extract information from the current webpage",
        parameters={
            "type": "object",
            "properties": {
                "info_type": {
                    "type": "string",
                    "enum": ["forms", "text", "title", "url"],
                    "description": "Type of information to extract",
                }
            },
            "required": ["info_type"],
        },
        arguments_model=ExtractPageInfoArguments,
        handler=extract_page_info,
    ),
    ToolDefinition(
        name="check_for_captcha",
        description="Check if there is a CAPTCHA or human verification on the current page",
        parameters=_NO_PARAMETERS,
        arguments_model=NoArguments,
        handler=check_for_captcha,
    ),
    ToolDefinition(
        name="take_screenshot",
        description="Take a screenshot of the current webpage",
        parameters=_NO_PARAMETERS,
        arguments_model=NoArguments,
        handler=take_screenshot,
    ),
]


def build_default_catalog() -> ToolCatalog:
    return ToolCatalog(BUILTIN_TOOLS, version=CATALOG_VERSION)
