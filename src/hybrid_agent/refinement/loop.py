"""Iterative critique -> refine -> verify improvement of a single response."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace

from hybrid_agent.config import QualityLoopSettings
from hybrid_agent.orchestrator.backend.base import TextGenerationProvider
from hybrid_agent.refinement.critique import Critique, CritiqueGenerator
from hybrid_agent.refinement.refiner import ResponseRefiner
from hybrid_agent.refinement.verification import ResponseVerifier

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ImprovementResult:
    final_response: str
    iterations: int
    quality_score: float
    critiques: list[str] = field(default_factory=list)
    improvements: list[str] = field(default_factory=list)
    success: bool = False


class QualityLoop:
    """Improve one response until it meets the quality threshold or runs out of iterations.

    Each iteration critiques the current response and stops when the critique score
    reaches the threshold. Otherwise the response is refined and, when verification
    is enabled, the refinement is adopted only if the verifier reports an
    improvement. A rejected refinement ends the loop with the last accepted response.

    Malformed provider output never raises: the parsers fall back to defaults.
    `ProviderTransportError` from the provider propagates to the caller.
    """

    def __init__(
        self,
        provider: TextGenerationProvider,
        settings: QualityLoopSettings | None = None,
    ) -> None:
        self.provider = provider
        self.settings = settings or QualityLoopSettings()
        self.critic = CritiqueGenerator(provider)
        self.refiner = ResponseRefiner(provider)
        self.verifier = ResponseVerifier(provider)

    async def improve(
        self,
        prompt: str,
        initial_response: str,
        context: str | None = None,
    ) -> ImprovementResult:
        settings = self.settings
        if not settings.enable_critique:
            return ImprovementResult(
                final_response=initial_response,
                iterations=0,
                quality_score=1.0,
                success=True,
            )

        current = initial_response
        critiques: list[str] = []
        improvements: list[str] = []
        iterations = 0
        quality_score = 0.0

        while iterations < settings.max_iterations:
            iterations += 1
            critique = await self.critic.generate(prompt, current, context)
            critiques.append(critique.summary)
            quality_score = critique.quality_score
            _log_critique(iterations, critique)
            if quality_score >= settings.quality_threshold:
                break

            refined = await self.refiner.refine(prompt, current, critique, context)
            improvements.append(refined.improvement_summary)

            if settings.enable_verification:
                verification = await self.verifier.verify(
                    prompt,
                    current,
                    refined.response,
                    context,
                )
                if not verification.improved:
                    logger.info(
                        "Refinement rejected at iteration %d (%s, confidence %.2f)",
                        iterations,
                        verification.recommendation.value,
                        verification.confidence,
                    )
                    break

            current = refined.response

        return ImprovementResult(
            final_response=current,
            iterations=iterations,
            quality_score=quality_score,
            critiques=critiques,
            improvements=improvements,
            success=quality_score >= settings.quality_threshold,
        )

    async def generate_and_improve(
        self,
        prompt: str,
        context: str | None = None,
    ) -> ImprovementResult:
        generated = await self.provider.generate(prompt)
        return await self.improve(prompt, generated.text, context)

    def update_settings(self, **changes: object) -> QualityLoopSettings:
        self.settings = replace(self.settings, **changes)
        return self.settings


def _log_critique(iteration: int, critique: Critique) -> None:
    if critique.defaulted_fields:
        logger.debug(
            "Critique at iteration %d used defaults for: %s",
            iteration,
            ", ".join(sorted(critique.defaulted_fields)),
        )
    logger.info(
        "Critique iteration %d: score=%.2f issues=%d",
        iteration,
        critique.quality_score,
        len(critique.issues),
    )
