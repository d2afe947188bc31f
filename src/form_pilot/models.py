"""Shared models used across form-pilot."""

from __future__ import annotations

import enum
import json
import uuid
from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class FieldKind(str, enum.Enum):
    """How a form field value is applied to the page."""

    TEXT = "text"
    SELECT = "select"
    CHECKBOX = "checkbox"
    RADIO = "radio"


class FormField(BaseModel):
    """A single value to place into a form element."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    selector: str = Field(min_length=1)
    value: str
    kind: FieldKind = Field(default=FieldKind.TEXT, alias="type")


class CaptchaDetection(BaseModel):
    """Outcome of a verification challenge scan. Never persisted."""

    detected: bool
    kind: Optional[str] = None
    message: str


class ToolCall(BaseModel):
    """A structured request from the model naming one catalog action."""

    id: str = Field(default_factory=lambda: f"call_{uuid.uuid4().hex[:12]}")
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


# Tool results ------------------------------------------------------------------


class _ToolResultBase(BaseModel):
    success: bool
    message: str
    paused_for_human: bool = False
    error_type: Optional[str] = None

    def model_payload(self) -> dict[str, Any]:
        """Return the representation echoed back to the model."""

        return self.model_dump(mode="json", exclude_none=True)


class NavigationResult(_ToolResultBase):
    kind: Literal["navigation"] = "navigation"
    url: Optional[str] = None
    title: Optional[str] = None


class FillFormResult(_ToolResultBase):
    kind: Literal["fill_form"] = "fill_form"
    applied: list[str] = Field(default_factory=list)
    failed_selector: Optional[str] = None
    challenge_kind: Optional[str] = None


class ClickResult(_ToolResultBase):
    kind: Literal["click"] = "click"
    selector: Optional[str] = None
    challenge_kind: Optional[str] = None


class PageInfoResult(_ToolResultBase):
    kind: Literal["page_info"] = "page_info"
    info_type: Optional[str] = None
    info: Any = None


class CaptchaCheckResult(_ToolResultBase):
    kind: Literal["captcha_check"] = "captcha_check"
    detected: bool = False
    challenge_kind: Optional[str] = None


class ScreenshotResult(_ToolResultBase):
    kind: Literal["screenshot"] = "screenshot"
    image_base64: Optional[str] = None
    mime_type: str = "image/png"

    def model_payload(self) -> dict[str, Any]:
        payload = super().model_payload()
        image = payload.pop("image_base64", None)
        if image is not None:
            payload["image_base64_length"] = len(image)
        return payload


class ErrorResult(_ToolResultBase):
    kind: Literal["error"] = "error"
    success: bool = False


ToolResult = Annotated[
    Union[
        NavigationResult,
        FillFormResult,
        ClickResult,
        PageInfoResult,
        CaptchaCheckResult,
        ScreenshotResult,
        ErrorResult,
    ],
    Field(discriminator="kind"),
]


class ToolTraceEntry(BaseModel):
    """Record of one executed tool call."""

    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    result: ToolResult


# Conversation ------------------------------------------------------------------


class TurnRole(str, enum.Enum):
    USER = "user"
    MODEL = "model"
    TOOL = "tool"


class Turn(BaseModel):
    """One entry of a session conversation, replayed to the model verbatim."""

    role: TurnRole
    content: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)
    tool_call_id: Optional[str] = None
    name: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def user(cls, text: str) -> "Turn":
        return cls(role=TurnRole.USER, content=text)

    @classmethod
    def model(cls, text: str = "", tool_calls: Optional[list[ToolCall]] = None) -> "Turn":
        return cls(role=TurnRole.MODEL, content=text, tool_calls=list(tool_calls or []))

    @classmethod
    def tool_result(cls, call: ToolCall, payload: dict[str, Any]) -> "Turn":
        return cls(
            role=TurnRole.TOOL,
            content=json.dumps(payload, ensure_ascii=False),
            tool_call_id=call.id,
            name=call.name,
        )

    def payload(self) -> dict[str, Any]:
        """Decode the JSON content of a tool turn."""

        try:
            data = json.loads(self.content)
        except ValueError:
            return {"message": self.content}
        if isinstance(data, dict):
            return data
        return {"result": data}


class ChatOutcome(BaseModel):
    """What one orchestration request hands back to the caller."""

    reply: str
    tool_trace: list[ToolTraceEntry] = Field(default_factory=list)
    paused: bool = False


# Notifications -----------------------------------------------------------------


class NotificationLevel(str, enum.Enum):
    """Severity of notification events."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    SUCCESS = "success"


class NotificationEvent(BaseModel):
    """Event emitted to notify operators."""

    type: str
    message: str
    level: NotificationLevel = NotificationLevel.INFO
    data: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
