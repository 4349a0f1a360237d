"""Tier executor that runs plan steps through a text generation provider."""

from __future__ import annotations

import asyncio
import logging
import random
import time
from collections.abc import Sequence

from hybrid_agent.orchestrator.backend.base import (
    GenerationOptions,
    GenerationResult,
    TextGenerationProvider,
)
from hybrid_agent.orchestrator.errors import ProviderTransportError
from hybrid_agent.orchestrator.models import ExecutionOutcome, ExecutionTier, FailureClass
from hybrid_agent.refinement.loop import QualityLoop

logger = logging.getLogger(__name__)

RETRYABLE_FAILURE_CLASSES = frozenset({FailureClass.TIMEOUT, FailureClass.BACKEND_TRANSIENT})


class ProviderTierExecutor:
    """Execute plan steps in order, one provider call per step.

    Each step prompt carries the outputs of earlier steps as context. When a
    quality loop is attached every step output is refined before it is kept,
    and the reported quality is the lowest step score.

    A step whose provider call fails with a timeout or transient backend error
    is retried up to `max_retries` times after a jittered exponential delay.
    Other failures end the plan at that step.
    """

    def __init__(  # noqa: PLR0913
        self,
        provider: TextGenerationProvider,
        *,
        tier: ExecutionTier,
        quality_loop: QualityLoop | None = None,
        options: GenerationOptions | None = None,
        max_retries: int = 1,
        retry_base_seconds: float = 0.0,
    ) -> None:
        self.provider = provider
        self.tier = ExecutionTier(tier)
        self.quality_loop = quality_loop
        self.options = options
        self.max_retries = max_retries
        self.retry_base_seconds = retry_base_seconds
        self._random = random.Random()

    async def execute_plan(self, steps: Sequence[str]) -> ExecutionOutcome:
        started = time.monotonic()
        if not self.provider.is_available():
            return ExecutionOutcome(
                success=False,
                elapsed_ms=_elapsed_ms(started),
                error=f"{self.tier.value} provider is not available",
                failure_class=FailureClass.BACKEND_NON_RETRYABLE,
            )

        outputs: list[str] = []
        scores: list[float] = []
        try:
            for index, step in enumerate(steps, start=1):
                prompt = _step_prompt(step, index=index, total=len(steps), previous=outputs)
                generated = await self._generate(prompt, step_label=f"{index}/{len(steps)}")
                text = generated.text
                if self.quality_loop is not None:
                    improved = await self.quality_loop.improve(
                        prompt,
                        text,
                        context=_context(outputs),
                    )
                    text = improved.final_response
                    scores.append(improved.quality_score)
                outputs.append(text)
        except ProviderTransportError as error:
            logger.warning(
                "%s tier failed at step %d/%d: %s",
                self.tier.value,
                len(outputs) + 1,
                len(steps),
                error,
            )
            return ExecutionOutcome(
                success=False,
                elapsed_ms=_elapsed_ms(started),
                result="\n\n".join(outputs) or None,
                error=str(error),
                timed_out=error.timed_out,
                steps_completed=len(outputs),
                failure_class=_failure_class(error),
            )

        return ExecutionOutcome(
            success=True,
            elapsed_ms=_elapsed_ms(started),
            result="\n\n".join(outputs),
            quality_score=min(scores) if scores else None,
            steps_completed=len(outputs),
        )

    async def _generate(self, prompt: str, *, step_label: str) -> GenerationResult:
        retry_number = 0
        while True:
            try:
                return await self.provider.generate(prompt, self.options)
            except ProviderTransportError as error:
                if retry_number >= self.max_retries or not _is_retryable(error):
                    raise
                retry_number += 1
                delay_seconds = self._retry_delay(retry_number)
                logger.warning(
                    "%s tier step %s failed (%s), retry %d/%d in %.2fs",
                    self.tier.value,
                    step_label,
                    _failure_class(error).value,
                    retry_number,
                    self.max_retries,
                    delay_seconds,
                )
                if delay_seconds > 0:
                    await asyncio.sleep(delay_seconds)

    def _retry_delay(self, retry_number: int) -> float:
        max_delay = self.retry_base_seconds * (2 ** max(retry_number - 1, 0))
        return self._random.uniform(0, max_delay)


def _failure_class(error: ProviderTransportError) -> FailureClass:
    if error.failure_class is not None:
        return error.failure_class
    if error.timed_out:
        return FailureClass.TIMEOUT
    if error.transient:
        return FailureClass.BACKEND_TRANSIENT
    return FailureClass.BACKEND_NON_RETRYABLE


def _is_retryable(error: ProviderTransportError) -> bool:
    return _failure_class(error) in RETRYABLE_FAILURE_CLASSES


def _step_prompt(step: str, *, index: int, total: int, previous: list[str]) -> str:
    lines = [f"Step {index}/{total}: {step}"]
    context = _context(previous)
    if context:
        lines.extend(["", "Results of previous steps:", context])
    return "\n".join(lines)


def _context(previous: list[str]) -> str | None:
    if not previous:
        return None
    return "\n".join(f"{index}. {text}" for index, text in enumerate(previous, start=1))


def _elapsed_ms(started: float) -> float:
    return (time.monotonic() - started) * 1000.0
