"""Conversation loop that lets the model drive a session's browser through tools."""

from __future__ import annotations

import enum
import logging
from contextlib import contextmanager
from typing import Iterator, Optional, Sequence

from ..config import OrchestratorConfig
from ..errors import FormPilotError, ProviderError, SessionBusy, ToolLoopExceeded
from ..history.base import DegradingHistoryStore, HistoryStore, NullHistoryStore
from ..llm.base import LLMClient, LLMRequest, ModelResponse, ToolSpec
from ..models import ChatOutcome, ToolCall, ToolTraceEntry, Turn
from ..sessions.models import Session
from ..tools.catalog import ToolCatalog
from .gate import HumanInterventionGate
from .prompt_builder import PromptBuilder

LOGGER = logging.getLogger(__name__)

NOT_EXECUTED_PAYLOAD = {
    "success": False,
    "message": "Not executed: the session paused for human verification first.",
}


class LoopState(str, enum.Enum):
    """States of one orchestration request."""

    AWAITING_MODEL = "awaiting_model"
    INVOKING_TOOLS = "invoking_tools"
    TERMINAL = "terminal"
    PAUSED = "paused"


class ConversationOrchestrator:
    """Run the model/tool loop for one request against one session.

    Each request appends to the session conversation, then alternates between
    asking the model and executing the tool calls it returns until the model
    answers in plain text, a tool pauses the session for a human, or the
    iteration ceiling is hit.
    """

    def __init__(
        self,
        llm: LLMClient,
        catalog: ToolCatalog,
        *,
        gate: Optional[HumanInterventionGate] = None,
        history: Optional[HistoryStore] = None,
        prompt_builder: Optional[PromptBuilder] = None,
        config: Optional[OrchestratorConfig] = None,
    ) -> None:
        self._config = config or OrchestratorConfig()
        self._llm = llm
        self._catalog = catalog
        self._gate = gate or HumanInterventionGate()
        if history is None:
            history = NullHistoryStore()
        elif not isinstance(history, DegradingHistoryStore):
            history = DegradingHistoryStore(history)
        self._history = history
        self._prompt_builder = prompt_builder or PromptBuilder(self._config.system_prompt)

    @property
    def gate(self) -> HumanInterventionGate:
        return self._gate

    def close(self) -> None:
        self._llm.close()

    def handle_message(self, session: Session, message: str) -> ChatOutcome:
        """Process a user message; a message on a paused session lifts the pause."""

        with self._exclusive(session):
            if session.paused:
                LOGGER.info("New message for paused session %s; clearing pause", session.id)
                self._gate.clear(session)
            self._record(session, Turn.user(message))
            return self._run_loop(session)

    def resume(self, session: Session) -> ChatOutcome:
        """Continue a paused session without a new user message."""

        with self._exclusive(session):
            self._gate.resume(session)
            self._record(session, Turn.user(self._config.continue_message))
            return self._run_loop(session)

    # Loop -----------------------------------------------------------------------

    def _run_loop(self, session: Session) -> ChatOutcome:
        specs = self._catalog.specs()
        system_instruction = self._prompt_builder.build(specs)
        trace: list[ToolTraceEntry] = []
        pending: list[ToolCall] = []
        reply = ""
        iterations = 0
        state = LoopState.AWAITING_MODEL
        while True:
            LOGGER.debug("Session %s: %s", session.id, state.value)
            if state is LoopState.AWAITING_MODEL:
                if iterations >= self._config.max_iterations:
                    LOGGER.warning(
                        "Session %s: model still calling tools after %s turns",
                        session.id,
                        iterations,
                    )
                    raise ToolLoopExceeded(iterations, trace)
                iterations += 1
                response = self._ask_model(session, system_instruction, specs)
                if response.wants_tools:
                    self._record(session, Turn.model(response.text, response.tool_calls))
                    pending = list(response.tool_calls)
                    state = LoopState.INVOKING_TOOLS
                else:
                    reply = response.text
                    self._record(session, Turn.model(reply))
                    state = LoopState.TERMINAL
            elif state is LoopState.INVOKING_TOOLS:
                state, reply = self._invoke_tools(session, pending, trace)
            elif state is LoopState.TERMINAL:
                return ChatOutcome(reply=reply, tool_trace=trace, paused=False)
            else:
                return ChatOutcome(reply=reply, tool_trace=trace, paused=True)

    def _ask_model(
        self,
        session: Session,
        system_instruction: str,
        specs: Sequence[ToolSpec],
    ) -> ModelResponse:
        request = LLMRequest(
            system_instruction=system_instruction,
            tools=specs,
            conversation=list(session.conversation),
        )
        try:
            return self._llm.generate(request)
        except FormPilotError:
            raise
        except Exception as exc:
            LOGGER.exception("LLM client failed for session %s", session.id)
            raise ProviderError(f"LLM call failed: {type(exc).__name__}") from exc

    def _invoke_tools(
        self,
        session: Session,
        calls: list[ToolCall],
        trace: list[ToolTraceEntry],
    ) -> tuple[LoopState, str]:
        for index, call in enumerate(calls):
            result = self._catalog.dispatch(call, session.browser)
            trace.append(ToolTraceEntry(name=call.name, arguments=call.arguments, result=result))
            self._record(session, Turn.tool_result(call, result.model_payload()))
            if result.paused_for_human:
                self._gate.pause(
                    session,
                    reason=result.message,
                    tool=call.name,
                    challenge_kind=getattr(result, "challenge_kind", None),
                )
                for skipped in calls[index + 1 :]:
                    self._record(session, Turn.tool_result(skipped, NOT_EXECUTED_PAYLOAD))
                LOGGER.info("Session %s paused by %s", session.id, call.name)
                return LoopState.PAUSED, result.message
        return LoopState.AWAITING_MODEL, ""

    # Helpers --------------------------------------------------------------------

    def _record(self, session: Session, turn: Turn) -> None:
        session.conversation.append(turn)
        self._history.append(session.id, turn)

    @contextmanager
    def _exclusive(self, session: Session) -> Iterator[None]:
        if not session.request_lock.acquire(timeout=self._config.session_busy_timeout):
            raise SessionBusy(f"Session {session.id} is handling another request")
        try:
            yield
        finally:
            session.request_lock.release()
