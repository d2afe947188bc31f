"""Configuration models for form-pilot."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CHALLENGE_SELECTORS = [
    '[class*="captcha"]',
    '[id*="captcha"]',
    '[class*="recaptcha"]',
    '[id*="recaptcha"]',
    'iframe[src*="recaptcha"]',
    'iframe[src*="hcaptcha"]',
    'iframe[src*="challenges.cloudflare.com"]',
    '[class*="hcaptcha"]',
    '[id*="hcaptcha"]',
    '[class*="verification"]',
    '[id*="verification"]',
    ".g-recaptcha",
    "#recaptcha",
    ".h-captcha",
    ".cf-turnstile",
]

DEFAULT_CHALLENGE_PHRASES = [
    "verify you are human",
    "prove you are not a robot",
    "i'm not a robot",
    "security check",
    "verification required",
    "captcha",
]


class LLMConfig(BaseModel):
    """Settings for the LLM provider."""

    provider: str = Field(default="gemini")
    model: Optional[str] = None
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    timeout: float = Field(default=60.0, description="Seconds allowed for one model round trip.")
    temperature: float = 0.3
    parameters: dict[str, Any] = Field(default_factory=dict)


class BrowserConfig(BaseModel):
    """Settings for the per-session browser."""

    headless: bool = False
    enable_vnc: bool = False
    vnc_host: str = "127.0.0.1"
    vnc_port: Optional[int] = None
    viewport_width: int = 1280
    viewport_height: int = 720
    user_agent: Optional[str] = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )
    launch_args: list[str] = Field(
        default_factory=lambda: ["--no-sandbox", "--disable-setuid-sandbox", "--disable-dev-shm-usage"]
    )
    navigation_timeout: float = 30.0
    element_timeout: float = 10.0
    field_settle_delay: float = 0.5
    click_settle_delay: float = 1.0
    max_text_chars: int = 1000
    max_form_fields: int = 200


class DetectionConfig(BaseModel):
    """Signatures used to spot CAPTCHA and human-verification widgets."""

    selectors: list[str] = Field(default_factory=lambda: list(DEFAULT_CHALLENGE_SELECTORS))
    phrases: list[str] = Field(default_factory=lambda: list(DEFAULT_CHALLENGE_PHRASES))
    captcha_message: str = (
        "CAPTCHA or human verification detected. Please solve it manually and then continue."
    )
    verification_message: str = (
        "Human verification required. Please complete the verification and then continue."
    )
    check_before_click: bool = False


class OrchestratorConfig(BaseModel):
    """Settings for the conversation loop."""

    max_iterations: int = Field(default=10, ge=1)
    system_prompt: Optional[str] = None
    continue_message: str = "Please continue with the form filling process."
    session_busy_timeout: float = Field(
        default=30.0,
        description="Seconds a request waits for another request on the same session.",
    )


class SessionConfig(BaseModel):
    lock_timeout: float = 60.0


class HistoryConfig(BaseModel):
    """Conversation transcript store."""

    backend: str = Field(default="memory")
    path: Path = Path("./form_pilot_history")


class NotificationConfig(BaseModel):
    """Notification channel settings."""

    channel: str = Field(default="console")


class ServiceConfig(BaseModel):
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8700)


class AppConfig(BaseSettings):
    """Top-level configuration for the agent service."""

    model_config = SettingsConfigDict(
        env_prefix="FORM_PILOT_",
        env_file=(".env",),
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    llm: LLMConfig = Field(default_factory=LLMConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    detection: DetectionConfig = Field(default_factory=DetectionConfig)
    orchestrator: OrchestratorConfig = Field(default_factory=OrchestratorConfig)
    sessions: SessionConfig = Field(default_factory=SessionConfig)
    history: HistoryConfig = Field(default_factory=HistoryConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)
    service: ServiceConfig = Field(default_factory=ServiceConfig)


def load_config(
    path: Path | None = None,
    *,
    env_file: Path | None = None,
    **overrides: object,
) -> AppConfig:
    """Load configuration from an optional YAML file, the environment and overrides.

    Values from the file and explicit overrides win over the environment.
    """

    data: dict[str, Any] = {}
    if path:
        import yaml

        data = yaml.safe_load(path.read_text()) or {}
    if overrides:
        _deep_update(data, overrides)
    settings_kwargs: dict[str, object] = {}
    if env_file is not None:
        settings_kwargs["_env_file"] = env_file
    config = AppConfig(**data, **settings_kwargs)
    if not data:
        return config

    merged = config.model_dump(mode="python")
    _deep_update(merged, data)
    return AppConfig.model_validate(merged)


def _deep_update(target: dict[str, Any], updates: Mapping[str, Any]) -> None:
    """Recursively merge ``updates`` into ``target`` in-place."""

    for key, value in updates.items():
        if isinstance(value, Mapping) and isinstance(existing := target.get(key), Mapping):
            nested = existing if isinstance(existing, dict) else dict(existing)
            _deep_update(nested, value)
            target[key] = nested
        else:
            target[key] = value
