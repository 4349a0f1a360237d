"""Shared test fixtures."""

from __future__ import annotations

import asyncio
import os
from collections.abc import Sequence

import pytest

from hybrid_agent.orchestrator.backend.base import GenerationOptions, GenerationResult
from hybrid_agent.orchestrator.models import ExecutionOutcome


class ScriptedProvider:
    """Text provider answering from a fixed script; exceptions in the script are raised."""

    def __init__(self, responses: Sequence[str | BaseException] = (), *, available: bool = True):
        self.responses = list(responses)
        self.available = available
        self.prompts: list[str] = []

    async def generate(
        self,
        prompt: str,
        options: GenerationOptions | None = None,
    ) -> GenerationResult:
        self.prompts.append(prompt)
        if not self.responses:
            raise AssertionError(f"Unexpected provider call: {prompt[:80]!r}")
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return GenerationResult(text=item, latency_ms=1.0)

    def is_available(self) -> bool:
        return self.available


class ScriptedExecutor:
    """Tier executor replaying outcomes; the last outcome repeats once the script runs out."""

    def __init__(
        self,
        *outcomes: ExecutionOutcome | BaseException,
        delay_seconds: float = 0.0,
    ) -> None:
        self.outcomes = list(outcomes)
        self.delay_seconds = delay_seconds
        self.calls: list[list[str]] = []

    async def execute_plan(self, steps: Sequence[str]) -> ExecutionOutcome:
        self.calls.append(list(steps))
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        item = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(item, BaseException):
            raise item
        return item


@pytest.fixture()
def make_provider():
    return ScriptedProvider


@pytest.fixture()
def make_executor():
    return ScriptedExecutor


@pytest.fixture()
def clean_env(monkeypatch):
    """Drop HYBRID_AGENT_* variables so settings fall back to defaults."""

    for name in list(os.environ):
        if name.startswith("HYBRID_AGENT_"):
            monkeypatch.delenv(name, raising=False)
