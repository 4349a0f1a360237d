"""Collaborator interfaces consumed by the orchestration core."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from hybrid_agent.orchestrator.models import ExecutionOutcome, ValidationResult


@dataclass(slots=True)
class GenerationOptions:
    """Per-call generation overrides."""

    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    timeout_seconds: float | None = None


@dataclass(slots=True)
class TokenUsage:
    """Best-effort token accounting for one generation call."""

    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None


@dataclass(slots=True)
class GenerationResult:
    """Text produced by a provider call."""

    text: str
    latency_ms: float
    token_usage: TokenUsage | None = None


class TextGenerationProvider(Protocol):
    """Protocol implemented by text generation backends."""

    async def generate(
        self,
        prompt: str,
        options: GenerationOptions | None = None,
    ) -> GenerationResult:
        """Generate text for a prompt; raise `ProviderTransportError` on transport failure."""

    def is_available(self) -> bool:
        """Return whether the provider can currently serve requests."""


class TierExecutor(Protocol):
    """Protocol implemented by local and escalation tier executors."""

    async def execute_plan(self, steps: Sequence[str]) -> ExecutionOutcome:
        """Execute plan steps in order and report the outcome."""


class WorkflowExecutor(Protocol):
    """Protocol implemented by structured workflow runners."""

    async def execute(self, workflow_id: str, params: dict[str, Any]) -> Any:
        """Run one workflow and return its result."""


class ValidationCollaborator(Protocol):
    """Protocol implemented by result quality validators."""

    def validate(self, text: str) -> ValidationResult:
        """Score a produced result and recommend escalation."""
