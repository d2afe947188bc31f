"""Factories for constructing components from configuration."""

from __future__ import annotations

from .browser.base import BrowserSession
from .browser.detection import ChallengeDetector
from .browser.playwright_session import PlaywrightBrowserSession
from .config import AppConfig, HistoryConfig, LLMConfig, NotificationConfig
from .history.base import DegradingHistoryStore, HistoryStore, InMemoryHistoryStore, NullHistoryStore
from .history.jsonl import JsonlHistoryStore
from .llm.base import LLMClient
from .llm.gemini_client import GeminiLLM
from .llm.mock import ScriptedLLM, parse_scripted_response
from .llm.openai_client import OpenAIChatLLM
from .notifications.base import ConsoleNotifier, LoggingNotifier, Notifier, NullNotifier
from .orchestrator.gate import HumanInterventionGate
from .orchestrator.runner import ConversationOrchestrator
from .sessions.registry import BrowserFactory, SessionRegistry
from .tools.builtin import build_default_catalog
from .tools.catalog import ToolCatalog


def build_llm(config: LLMConfig) -> LLMClient:
    provider = config.provider.lower()
    if provider == "gemini":
        return GeminiLLM(config)
    if provider in {"openai", "azure", "openai-compatible"}:
        return OpenAIChatLLM(config)
    if provider == "mock":
        return ScriptedLLM(
            parse_scripted_response(item) for item in config.parameters.get("responses", [])
        )
    raise ValueError(f"Unsupported LLM provider: {config.provider}")


def build_detector(config: AppConfig) -> ChallengeDetector:
    return ChallengeDetector.from_config(config.detection)


def build_browser_factory(config: AppConfig) -> BrowserFactory:
    detector = build_detector(config)

    def factory(session_id: str) -> BrowserSession:
        return PlaywrightBrowserSession(
            config.browser,
            detector,
            check_before_click=config.detection.check_before_click,
            name=session_id,
        )

    return factory


def build_history(config: HistoryConfig) -> HistoryStore:
    backend = config.backend.lower()
    if backend == "memory":
        store: HistoryStore = InMemoryHistoryStore()
    elif backend == "jsonl":
        store = JsonlHistoryStore(config.path)
    elif backend == "none":
        store = NullHistoryStore()
    else:
        raise ValueError(f"Unsupported history backend: {config.backend}")
    return DegradingHistoryStore(store)


def build_notifier(config: NotificationConfig) -> Notifier:
    channel = config.channel.lower()
    if channel == "console":
        return ConsoleNotifier()
    if channel == "log":
        return LoggingNotifier()
    if channel == "none":
        return NullNotifier()
    raise ValueError(f"Unsupported notification channel: {config.channel}")


def build_catalog() -> ToolCatalog:
    return build_default_catalog()


def build_registry(config: AppConfig) -> SessionRegistry:
    return SessionRegistry(build_browser_factory(config), lock_timeout=config.sessions.lock_timeout)


def build_orchestrator(
    config: AppConfig,
    *,
    llm: LLMClient,
    history: HistoryStore,
    notifier: Notifier,
) -> ConversationOrchestrator:
    return ConversationOrchestrator(
        llm,
        build_catalog(),
        gate=HumanInterventionGate(notifier),
        history=history,
        config=config.orchestrator,
    )
