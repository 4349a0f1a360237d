"""Runtime configuration for task scheduling, escalation and refinement."""

from __future__ import annotations

import os
import shlex
import sys
from dataclasses import dataclass, field

_ECHO_AGENT_TEMPLATE = (
    f"{shlex.quote(sys.executable)} -m hybrid_agent.orchestrator.backend.echo_agent "
    "--prompt-file {prompt_file} --model {model}"
)
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(slots=True)
class TaskQueueSettings:
    """Todo scheduler settings."""

    max_items: int = 50
    exclusive_start: bool = True


@dataclass(slots=True)
class DelegationSettings:
    """Sub-agent delegation settings."""

    max_sub_agents: int = 10


@dataclass(slots=True)
class EscalationSettings:
    """Escalation policy thresholds."""

    timeout_threshold_ms: int = 30_000
    quality_threshold: float = 0.7
    max_retries: int = 3
    history_size: int = 5


@dataclass(slots=True)
class QualityLoopSettings:
    """Critique/refine/verify loop settings."""

    max_iterations: int = 2
    quality_threshold: float = 0.8
    enable_critique: bool = True
    enable_verification: bool = True


@dataclass(slots=True)
class TierSettings:
    """Execution tier commands and deadlines."""

    local_command_template: str = _ECHO_AGENT_TEMPLATE
    local_model: str = "local-fast"
    escalation_command_template: str = _ECHO_AGENT_TEMPLATE
    escalation_model: str = "escalation-quality"
    local_timeout_seconds: float = 45.0
    escalation_timeout_seconds: float = 120.0
    escalate_on_local_failure: bool = True
    step_max_retries: int = 1
    retry_base_seconds: float = 0.5


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    todo: TaskQueueSettings = field(default_factory=TaskQueueSettings)
    delegation: DelegationSettings = field(default_factory=DelegationSettings)
    escalation: EscalationSettings = field(default_factory=EscalationSettings)
    quality_loop: QualityLoopSettings = field(default_factory=QualityLoopSettings)
    tiers: TierSettings = field(default_factory=TierSettings)
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        tier_defaults = TierSettings()
        return cls(
            todo=TaskQueueSettings(
                max_items=int(os.getenv("HYBRID_AGENT_TODO_MAX_ITEMS", "50")),
                exclusive_start=_env_bool("HYBRID_AGENT_TODO_EXCLUSIVE_START", default=True),
            ),
            delegation=DelegationSettings(
                max_sub_agents=int(os.getenv("HYBRID_AGENT_MAX_SUB_AGENTS", "10")),
            ),
            escalation=EscalationSettings(
                timeout_threshold_ms=int(
                    os.getenv("HYBRID_AGENT_ESCALATION_TIMEOUT_THRESHOLD_MS", "30000"),
                ),
                quality_threshold=float(
                    os.getenv("HYBRID_AGENT_ESCALATION_QUALITY_THRESHOLD", "0.7"),
                ),
                max_retries=int(os.getenv("HYBRID_AGENT_ESCALATION_MAX_RETRIES", "3")),
                history_size=int(os.getenv("HYBRID_AGENT_ESCALATION_HISTORY_SIZE", "5")),
            ),
            quality_loop=QualityLoopSettings(
                max_iterations=int(os.getenv("HYBRID_AGENT_QUALITY_MAX_ITERATIONS", "2")),
                quality_threshold=float(os.getenv("HYBRID_AGENT_QUALITY_THRESHOLD", "0.8")),
                enable_critique=_env_bool("HYBRID_AGENT_QUALITY_ENABLE_CRITIQUE", default=True),
                enable_verification=_env_bool(
                    "HYBRID_AGENT_QUALITY_ENABLE_VERIFICATION",
                    default=True,
                ),
            ),
            tiers=TierSettings(
                local_command_template=os.getenv(
                    "HYBRID_AGENT_LOCAL_COMMAND_TEMPLATE",
                    tier_defaults.local_command_template,
                ),
                local_model=os.getenv("HYBRID_AGENT_LOCAL_MODEL", tier_defaults.local_model),
                escalation_command_template=os.getenv(
                    "HYBRID_AGENT_ESCALATION_COMMAND_TEMPLATE",
                    tier_defaults.escalation_command_template,
                ),
                escalation_model=os.getenv(
                    "HYBRID_AGENT_ESCALATION_MODEL",
                    tier_defaults.escalation_model,
                ),
                local_timeout_seconds=float(
                    os.getenv("HYBRID_AGENT_LOCAL_TIMEOUT_SECONDS", "45"),
                ),
                escalation_timeout_seconds=float(
                    os.getenv("HYBRID_AGENT_ESCALATION_TIMEOUT_SECONDS", "120"),
                ),
                escalate_on_local_failure=_env_bool(
                    "HYBRID_AGENT_ESCALATE_ON_LOCAL_FAILURE",
                    default=True,
                ),
                step_max_retries=int(os.getenv("HYBRID_AGENT_STEP_MAX_RETRIES", "1")),
                retry_base_seconds=float(os.getenv("HYBRID_AGENT_RETRY_BASE_SECONDS", "0.5")),
            ),
            log_level=os.getenv("HYBRID_AGENT_LOG_LEVEL", "WARNING").strip().upper(),
        )

    def validate(self) -> None:  # noqa: C901
        """Raise configuration error if any setting is out of range."""

        if self.todo.max_items <= 0:
            raise ValueError("HYBRID_AGENT_TODO_MAX_ITEMS must be a positive integer.")
        if self.delegation.max_sub_agents <= 0:
            raise ValueError("HYBRID_AGENT_MAX_SUB_AGENTS must be a positive integer.")
        if self.escalation.timeout_threshold_ms <= 0:
            raise ValueError("HYBRID_AGENT_ESCALATION_TIMEOUT_THRESHOLD_MS must be > 0.")
        if not 0.0 <= self.escalation.quality_threshold <= 1.0:
            raise ValueError("HYBRID_AGENT_ESCALATION_QUALITY_THRESHOLD must be within [0, 1].")
        if self.escalation.max_retries <= 0:
            raise ValueError("HYBRID_AGENT_ESCALATION_MAX_RETRIES must be a positive integer.")
        if self.escalation.history_size < 2:  # noqa: PLR2004
            raise ValueError("HYBRID_AGENT_ESCALATION_HISTORY_SIZE must be >= 2.")
        if self.quality_loop.max_iterations <= 0:
            raise ValueError("HYBRID_AGENT_QUALITY_MAX_ITERATIONS must be a positive integer.")
        if not 0.0 <= self.quality_loop.quality_threshold <= 1.0:
            raise ValueError("HYBRID_AGENT_QUALITY_THRESHOLD must be within [0, 1].")
        for name, template in (
            ("HYBRID_AGENT_LOCAL_COMMAND_TEMPLATE", self.tiers.local_command_template),
            ("HYBRID_AGENT_ESCALATION_COMMAND_TEMPLATE", self.tiers.escalation_command_template),
        ):
            if not template.strip():
                raise ValueError(f"{name} must not be empty.")
            if "{prompt}" not in template and "{prompt_file}" not in template:
                raise ValueError(f"{name} must include {{prompt}} or {{prompt_file}}.")
        if self.tiers.local_timeout_seconds <= 0 or self.tiers.escalation_timeout_seconds <= 0:
            raise ValueError("Tier timeouts must be > 0 seconds.")
        if self.tiers.step_max_retries < 0:
            raise ValueError("HYBRID_AGENT_STEP_MAX_RETRIES must be >= 0.")
        if self.tiers.retry_base_seconds < 0:
            raise ValueError("HYBRID_AGENT_RETRY_BASE_SECONDS must be >= 0.")
        if self.log_level not in _LOG_LEVELS:
            raise ValueError(
                f"Invalid HYBRID_AGENT_LOG_LEVEL: {self.log_level!r}. "
                f"Expected one of {', '.join(_LOG_LEVELS)}.",
            )


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
