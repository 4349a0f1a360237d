from __future__ import annotations

from dataclasses import replace

import allure
import pytest

from hybrid_agent.config import (
    EscalationSettings,
    QualityLoopSettings,
    Settings,
    TierSettings,
)

pytestmark = [
    allure.epic("Configuration"),
    allure.feature("Settings"),
]


def test_defaults_match_documented_values(clean_env) -> None:
    settings = Settings.from_env()

    assert settings.todo.max_items == 50
    assert settings.todo.exclusive_start is True
    assert settings.delegation.max_sub_agents == 10
    assert settings.escalation == EscalationSettings()
    assert settings.escalation.timeout_threshold_ms == 30_000
    assert settings.quality_loop == QualityLoopSettings()
    assert settings.quality_loop.max_iterations == 2
    assert settings.quality_loop.quality_threshold == 0.8
    assert settings.tiers.escalate_on_local_failure is True
    assert settings.tiers.local_timeout_seconds == 45.0
    assert settings.tiers.step_max_retries == 1
    assert settings.tiers.retry_base_seconds == 0.5
    assert settings.log_level == "WARNING"
    settings.validate()


def test_from_env_reads_overrides(clean_env, monkeypatch) -> None:
    monkeypatch.setenv("HYBRID_AGENT_TODO_MAX_ITEMS", "7")
    monkeypatch.setenv("HYBRID_AGENT_TODO_EXCLUSIVE_START", "off")
    monkeypatch.setenv("HYBRID_AGENT_ESCALATION_TIMEOUT_THRESHOLD_MS", "1500")
    monkeypatch.setenv("HYBRID_AGENT_QUALITY_ENABLE_VERIFICATION", "no")
    monkeypatch.setenv("HYBRID_AGENT_LOCAL_COMMAND_TEMPLATE", "agent --prompt {prompt}")
    monkeypatch.setenv("HYBRID_AGENT_LOCAL_TIMEOUT_SECONDS", "2.5")
    monkeypatch.setenv("HYBRID_AGENT_STEP_MAX_RETRIES", "3")
    monkeypatch.setenv("HYBRID_AGENT_RETRY_BASE_SECONDS", "0")
    monkeypatch.setenv("HYBRID_AGENT_LOG_LEVEL", "debug")

    settings = Settings.from_env()

    assert settings.todo.max_items == 7
    assert settings.todo.exclusive_start is False
    assert settings.escalation.timeout_threshold_ms == 1500
    assert settings.quality_loop.enable_verification is False
    assert settings.tiers.local_command_template == "agent --prompt {prompt}"
    assert settings.tiers.local_timeout_seconds == 2.5
    assert settings.tiers.step_max_retries == 3
    assert settings.tiers.retry_base_seconds == 0.0
    assert settings.log_level == "DEBUG"


def test_invalid_boolean_env_is_rejected(clean_env, monkeypatch) -> None:
    monkeypatch.setenv("HYBRID_AGENT_ESCALATE_ON_LOCAL_FAILURE", "sometimes")

    with pytest.raises(ValueError, match="Invalid boolean value"):
        Settings.from_env()


@pytest.mark.parametrize(
    ("settings", "message"),
    [
        (
            Settings(escalation=EscalationSettings(quality_threshold=1.5)),
            "QUALITY_THRESHOLD",
        ),
        (Settings(escalation=EscalationSettings(history_size=1)), "HISTORY_SIZE"),
        (Settings(quality_loop=QualityLoopSettings(max_iterations=0)), "MAX_ITERATIONS"),
        (
            Settings(tiers=TierSettings(local_command_template="agent --fast")),
            "must include",
        ),
        (Settings(tiers=TierSettings(escalation_command_template="  ")), "must not be empty"),
        (Settings(tiers=TierSettings(local_timeout_seconds=0)), "Tier timeouts"),
        (Settings(tiers=TierSettings(step_max_retries=-1)), "STEP_MAX_RETRIES"),
        (Settings(tiers=TierSettings(retry_base_seconds=-0.1)), "RETRY_BASE_SECONDS"),
        (Settings(log_level="LOUD"), "Invalid HYBRID_AGENT_LOG_LEVEL"),
    ],
)
def test_validate_rejects_out_of_range_values(settings: Settings, message: str) -> None:
    with pytest.raises(ValueError, match=message):
        settings.validate()


def test_validate_rejects_non_positive_todo_capacity() -> None:
    settings = Settings()
    settings = replace(settings, todo=replace(settings.todo, max_items=0))

    with pytest.raises(ValueError, match="TODO_MAX_ITEMS"):
        settings.validate()


def test_default_local_deadline_leaves_room_for_the_slow_run_rule(clean_env) -> None:
    settings = Settings.from_env()

    deadline_ms = settings.tiers.local_timeout_seconds * 1000
    assert deadline_ms > settings.escalation.timeout_threshold_ms
