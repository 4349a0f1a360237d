"""Verification that a refinement actually improved the response."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from hybrid_agent.orchestrator.backend.base import TextGenerationProvider
from hybrid_agent.refinement.parsing import (
    defaulted_names,
    extract_choice,
    extract_flag,
    extract_score,
    extract_section,
)

DEFAULT_CONFIDENCE = 0.5


class Recommendation(str, Enum):
    ACCEPT = "accept"
    REJECT = "reject"
    UNCERTAIN = "uncertain"


@dataclass(slots=True)
class VerificationResult:
    improved: bool
    confidence: float
    recommendation: Recommendation
    reasoning: str
    defaulted_fields: frozenset[str] = frozenset()


class ResponseVerifier:
    """Ask a provider to compare the original and refined responses."""

    def __init__(self, provider: TextGenerationProvider) -> None:
        self.provider = provider

    async def verify(
        self,
        prompt: str,
        original_response: str,
        refined_response: str,
        context: str | None = None,
    ) -> VerificationResult:
        result = await self.provider.generate(
            build_verification_prompt(prompt, original_response, refined_response, context),
        )
        return parse_verification(result.text)


def build_verification_prompt(
    prompt: str,
    original_response: str,
    refined_response: str,
    context: str | None = None,
) -> str:
    context_block = f"Context:\n{context}\n\n" if context else ""
    return (
        "You are a code quality expert. Compare two responses and determine if the "
        "refined version is actually better.\n\n"
        f"{context_block}"
        f"Original Request:\n{prompt}\n\n"
        f"Original Response:\n{original_response}\n\n"
        f"Refined Response:\n{refined_response}\n\n"
        "Analyze both responses and provide verification in this format:\n\n"
        "IMPROVED: [YES/NO]\n"
        "CONFIDENCE: [0.0 to 1.0]\n"
        "RECOMMENDATION: [accept|reject|uncertain]\n\n"
        "REASONING:\n[Explain why the refined version is better, worse, or similar]\n\n"
        "Be honest. If the refined version is worse or no better, say so."
    )


def parse_verification(text: str) -> VerificationResult:
    """Parse verification output; unparseable answers mean `not improved, uncertain`."""

    improved = extract_flag(text, "IMPROVED", default=False)
    confidence = extract_score(text, "CONFIDENCE", DEFAULT_CONFIDENCE)
    recommendation = extract_choice(
        text,
        "RECOMMENDATION",
        choices=[item.value for item in Recommendation],
        default=Recommendation.UNCERTAIN.value,
    )
    reasoning = extract_section(
        text,
        "REASONING",
        default=(
            "Refined version shows improvements in quality."
            if improved.value
            else "Refined version does not show significant improvements."
        ),
    )
    return VerificationResult(
        improved=improved.value,
        confidence=confidence.value,
        recommendation=Recommendation(recommendation.value),
        reasoning=reasoning.value,
        defaulted_fields=defaulted_names(
            improved=improved,
            confidence=confidence,
            recommendation=recommendation,
            reasoning=reasoning,
        ),
    )
