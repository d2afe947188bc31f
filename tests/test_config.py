from pathlib import Path

import pytest
from pydantic import ValidationError

from form_pilot.config import DEFAULT_CHALLENGE_SELECTORS, load_config


def test_load_config_reads_env_file(tmp_path: Path) -> None:
    env_path = tmp_path / ".env"
    env_path.write_text(
        "\n".join(
            [
                "FORM_PILOT_LLM__PROVIDER=mock",
                "FORM_PILOT_ORCHESTRATOR__MAX_ITERATIONS=4",
                "FORM_PILOT_BROWSER__HEADLESS=true",
                "FORM_PILOT_HISTORY__BACKEND=jsonl",
            ]
        )
    )

    config = load_config(env_file=env_path)

    assert config.llm.provider == "mock"
    assert config.orchestrator.max_iterations == 4
    assert config.browser.headless is True
    assert config.history.backend == "jsonl"


def test_load_config_prioritises_overrides(tmp_path: Path) -> None:
    env_path = tmp_path / ".env"
    env_path.write_text(
        "\n".join(
            [
                "FORM_PILOT_LLM__PROVIDER=mock",
                "FORM_PILOT_LLM__MODEL=env-model",
                "FORM_PILOT_SERVICE__PORT=9001",
            ]
        )
    )

    config_path = tmp_path / "form_pilot.yaml"
    config_path.write_text(
        "\n".join(
            [
                "llm:",
                "  model: file-model",
                "detection:",
                "  phrases: ['are you human']",
            ]
        )
    )

    config = load_config(config_path, env_file=env_path, service={"port": 9100})

    assert config.llm.model == "file-model"
    assert config.llm.provider == "mock"
    assert config.service.port == 9100
    assert config.detection.phrases == ["are you human"]
    assert config.detection.selectors == DEFAULT_CHALLENGE_SELECTORS


def test_defaults_match_browser_timings() -> None:
    config = load_config(env_file=Path("/nonexistent/.env"))

    assert config.browser.navigation_timeout == 30.0
    assert config.browser.element_timeout == 10.0
    assert config.browser.field_settle_delay == 0.5
    assert config.browser.click_settle_delay == 1.0
    assert config.browser.max_text_chars == 1000
    assert config.orchestrator.max_iterations == 10


def test_iteration_ceiling_must_be_positive() -> None:
    with pytest.raises(ValidationError):
        load_config(env_file=Path("/nonexistent/.env"), orchestrator={"max_iterations": 0})
