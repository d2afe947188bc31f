"""HTTP surface for chatting with browser-driving agent sessions."""

from __future__ import annotations

import base64
import logging
import threading
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Callable, Dict, List, Literal, Optional

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, model_validator

from ..browser.display import OperatorDisplay
from ..config import AppConfig, load_config
from ..errors import (
    BrowserError,
    BrowserLaunchError,
    FormPilotError,
    ProviderError,
    SessionBusy,
    SessionNotPaused,
    ToolLoopExceeded,
)
from ..factory import build_history, build_llm, build_notifier, build_orchestrator, build_registry
from ..history.base import HistoryStore
from ..models import ChatOutcome, ToolTraceEntry, Turn
from ..orchestrator.runner import ConversationOrchestrator
from ..sessions.models import Session
from ..sessions.registry import SessionRegistry

LOGGER = logging.getLogger(__name__)

LOOP_EXCEEDED_REPLY = (
    "I could not finish this request within the allowed number of browser steps. "
    "Here is what I tried so far; tell me how you would like to continue."
)
GENERIC_ERROR_DETAIL = "An internal error occurred while processing the request."

_STATUS_CODES: Dict[type[FormPilotError], int] = {
    ProviderError: 502,
    ToolLoopExceeded: 500,
    SessionBusy: 409,
    SessionNotPaused: 409,
    BrowserLaunchError: 503,
}


# Pydantic request/response models --------------------------------------------


class ChatRequest(BaseModel):
    session_id: str = Field(min_length=1)
    message: Optional[str] = None
    action: Literal["message", "continue", "close"] = "message"

    @model_validator(mode="after")
    def check_message(self) -> "ChatRequest":
        if self.action == "message" and not (self.message and self.message.strip()):
            raise ValueError("message is required unless action is 'continue' or 'close'")
        return self


class TraceEntryModel(BaseModel):
    name: str
    arguments: Dict[str, Any]
    result: Dict[str, Any]

    @classmethod
    def from_entry(cls, entry: ToolTraceEntry) -> "TraceEntryModel":
        return cls(
            name=entry.name,
            arguments=entry.arguments,
            result=entry.result.model_dump(mode="json", exclude_none=True),
        )


class ChatResponse(BaseModel):
    status: Literal["success"] = "success"
    reply: str
    tool_trace: List[TraceEntryModel]
    paused: bool
    intervention: Optional[Dict[str, Any]] = None


class SessionSummaryModel(BaseModel):
    id: str
    paused: bool
    turns: int
    created_at: datetime

    @classmethod
    def from_session(cls, session: Session) -> "SessionSummaryModel":
        return cls(
            id=session.id,
            paused=session.paused,
            turns=len(session.conversation),
            created_at=session.created_at,
        )


class SessionDetailModel(SessionSummaryModel):
    intervention: Optional[Dict[str, Any]] = None


class TurnModel(BaseModel):
    role: str
    content: str
    tool_calls: List[Dict[str, Any]]
    tool_call_id: Optional[str] = None
    name: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_turn(cls, turn: Turn) -> "TurnModel":
        return cls(
            role=turn.role.value,
            content=turn.content,
            tool_calls=[call.model_dump(mode="json") for call in turn.tool_calls],
            tool_call_id=turn.tool_call_id,
            name=turn.name,
            created_at=turn.created_at,
        )


# Service state ----------------------------------------------------------------


def _probe_playwright() -> Dict[str, Any]:
    try:
        from playwright.sync_api import sync_playwright  # noqa: F401
    except ImportError as exc:  # pragma: no cover - environment dependent
        return {"status": "unavailable", "detail": str(exc)}
    return {"status": "available"}


class ServiceState:
    def __init__(
        self,
        config: AppConfig,
        *,
        registry: SessionRegistry,
        orchestrator: ConversationOrchestrator,
        history: HistoryStore,
        display: Optional[OperatorDisplay] = None,
        browser_probe: Callable[[], Dict[str, Any]] = _probe_playwright,
    ) -> None:
        self.config = config
        self.registry = registry
        self.orchestrator = orchestrator
        self.history = history
        self.display = display
        self._browser_probe = browser_probe

    @classmethod
    def from_config(cls, config: AppConfig) -> "ServiceState":
        history = build_history(config.history)
        orchestrator = build_orchestrator(
            config,
            llm=build_llm(config.llm),
            history=history,
            notifier=build_notifier(config.notifications),
        )
        return cls(
            config,
            registry=build_registry(config),
            orchestrator=orchestrator,
            history=history,
            display=OperatorDisplay(config.browser),
        )

    def start(self) -> None:
        if self.display is None:
            return
        info = self.display.start()
        self.orchestrator.gate.update_connection_info(info)

    def shutdown(self) -> None:
        self.registry.close_all()
        self.orchestrator.close()
        if self.display is not None:
            self.display.stop()

    def require_session(self, session_id: str) -> Session:
        session = self.registry.get(session_id)
        if session is None:
            raise HTTPException(status_code=404, detail="Session not found")
        return session

    def health(self) -> Dict[str, Any]:
        return {
            "browser": self._browser_probe(),
            "llm": self._check_llm(),
            "sessions": len(self.registry),
        }

    def _check_llm(self) -> Dict[str, Any]:
        provider = self.config.llm.provider.lower()
        if provider == "mock":
            return {"status": "available", "provider": provider}
        if self.config.llm.api_key:
            return {"status": "configured", "provider": provider}
        return {"status": "missing_credentials", "provider": provider}


state: Optional[ServiceState] = None
_state_lock = threading.Lock()


def configure(config: AppConfig) -> ServiceState:
    """Build the service state from ``config`` and install it."""

    global state
    with _state_lock:
        state = ServiceState.from_config(config)
        return state


def get_state() -> ServiceState:
    global state
    with _state_lock:
        if state is None:
            state = ServiceState.from_config(load_config())
        return state


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    current = get_state()
    current.start()
    try:
        yield
    finally:
        current.shutdown()


app = FastAPI(title="Form Pilot", lifespan=lifespan)


# Error handling ----------------------------------------------------------------


def _error_body(error_type: str, detail: str, **extra: Any) -> Dict[str, Any]:
    return {"status": "error", "error_type": error_type, "detail": detail, **extra}


@app.exception_handler(FormPilotError)
async def handle_form_pilot_error(_: Request, exc: FormPilotError) -> JSONResponse:
    status_code = next(
        (code for kind, code in _STATUS_CODES.items() if isinstance(exc, kind)),
        500,
    )
    if isinstance(exc, ToolLoopExceeded):
        body = _error_body(
            exc.error_type,
            str(exc),
            reply=LOOP_EXCEEDED_REPLY,
            tool_trace=[TraceEntryModel.from_entry(entry).model_dump(mode="json") for entry in exc.trace],
        )
    elif status_code == 500 and not isinstance(exc, BrowserError):
        LOGGER.error("Unhandled %s: %s", type(exc).__name__, exc)
        body = _error_body(exc.error_type, GENERIC_ERROR_DETAIL)
    else:
        body = _error_body(exc.error_type, str(exc))
    return JSONResponse(status_code=status_code, content=body)


@app.exception_handler(HTTPException)
async def handle_http_error(_: Request, exc: HTTPException) -> JSONResponse:
    error_type = "not_found" if exc.status_code == 404 else "http_error"
    return JSONResponse(status_code=exc.status_code, content=_error_body(error_type, str(exc.detail)))


@app.exception_handler(Exception)
async def handle_unexpected_error(_: Request, exc: Exception) -> JSONResponse:
    LOGGER.exception("Unexpected failure while handling request", exc_info=exc)
    return JSONResponse(status_code=500, content=_error_body("internal_error", GENERIC_ERROR_DETAIL))


def _chat_response(session: Session, outcome: ChatOutcome) -> ChatResponse:
    intervention = session.intervention.as_dict() if session.intervention else None
    return ChatResponse(
        reply=outcome.reply,
        tool_trace=[TraceEntryModel.from_entry(entry) for entry in outcome.tool_trace],
        paused=outcome.paused,
        intervention=intervention,
    )


# API routes -------------------------------------------------------------------


@app.get("/health")
def get_health() -> Dict[str, Any]:
    return get_state().health()


@app.post("/chat")
def chat(payload: ChatRequest) -> Dict[str, Any]:
    current = get_state()
    if payload.action == "close":
        current.registry.close(payload.session_id)
        return {"status": "closed"}
    if payload.action == "continue":
        session = current.require_session(payload.session_id)
        outcome = current.orchestrator.resume(session)
    else:
        session = current.registry.get_or_create(payload.session_id)
        outcome = current.orchestrator.handle_message(session, payload.message or "")
    return _chat_response(session, outcome).model_dump(mode="json")


@app.delete("/sessions/{session_id}")
def close_session(session_id: str) -> Dict[str, Any]:
    existed = get_state().registry.close(session_id)
    return {"status": "closed", "existed": existed}


@app.get("/sessions", response_model=List[SessionSummaryModel])
def list_sessions() -> List[SessionSummaryModel]:
    current = get_state()
    sessions = (current.registry.get(session_id) for session_id in current.registry.ids())
    return [SessionSummaryModel.from_session(session) for session in sessions if session is not None]


@app.get("/sessions/{session_id}", response_model=SessionDetailModel)
def get_session(session_id: str) -> SessionDetailModel:
    session = get_state().require_session(session_id)
    return SessionDetailModel(
        **SessionSummaryModel.from_session(session).model_dump(),
        intervention=session.intervention.as_dict() if session.intervention else None,
    )


@app.get("/sessions/{session_id}/history", response_model=List[TurnModel])
def get_session_history(session_id: str) -> List[TurnModel]:
    return [TurnModel.from_turn(turn) for turn in get_state().history.read(session_id)]


@app.get("/sessions/{session_id}/screenshot")
def get_session_screenshot(session_id: str) -> Response:
    session = get_state().require_session(session_id)
    image = base64.b64decode(session.browser.screenshot())
    return Response(content=image, media_type="image/png")
