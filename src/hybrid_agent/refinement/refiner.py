"""Response refinement guided by a critique."""

from __future__ import annotations

from dataclasses import dataclass, field

from hybrid_agent.orchestrator.backend.base import TextGenerationProvider
from hybrid_agent.refinement.critique import Critique
from hybrid_agent.refinement.parsing import bullet_lines, defaulted_names, extract_section


@dataclass(slots=True)
class RefinedResponse:
    response: str
    improvement_summary: str
    addressed_issues: list[str] = field(default_factory=list)
    defaulted_fields: frozenset[str] = frozenset()


class ResponseRefiner:
    """Ask a provider for an improved response that addresses a critique."""

    def __init__(self, provider: TextGenerationProvider) -> None:
        self.provider = provider

    async def refine(
        self,
        prompt: str,
        original_response: str,
        critique: Critique,
        context: str | None = None,
    ) -> RefinedResponse:
        result = await self.provider.generate(
            build_refine_prompt(prompt, original_response, critique, context),
        )
        return parse_refined_response(result.text, critique)


def build_refine_prompt(
    prompt: str,
    original_response: str,
    critique: Critique,
    context: str | None = None,
) -> str:
    issues = "\n".join(
        f"- [{issue.severity.value.upper()}] {issue.description}\n  Fix: {issue.suggestion}"
        for issue in critique.issues
    )
    context_block = f"Context:\n{context}\n\n" if context else ""
    return (
        "You are a code quality expert. Improve the following response based on the "
        "critique provided.\n\n"
        f"{context_block}"
        f"Original Request:\n{prompt}\n\n"
        f"Original Response:\n{original_response}\n\n"
        f"Critique (Quality Score: {critique.quality_score}):\n{critique.summary}\n\n"
        f"Issues to Address:\n{issues or '- none listed'}\n\n"
        "Provide an improved response that addresses all the issues. Format:\n\n"
        "IMPROVED_RESPONSE:\n[Your improved response here]\n\n"
        "IMPROVEMENTS_MADE:\n- Brief description of each improvement\n\n"
        "Provide ONLY the improved response and improvements made."
    )


def parse_refined_response(text: str, critique: Critique) -> RefinedResponse:
    """Parse refinement output.

    Without the IMPROVED_RESPONSE marker the whole output is the response; without
    listed improvements the summary is synthesized from the critique.
    """

    response = extract_section(
        text,
        "IMPROVED_RESPONSE",
        stop_labels=("IMPROVEMENTS_MADE",),
        default=text.strip(),
    )
    improvements = extract_section(text, "IMPROVEMENTS_MADE")
    addressed = bullet_lines(improvements.value)
    if addressed:
        summary = "; ".join(addressed)
    else:
        summary = f"Addressed {len(critique.issues)} issues"
        addressed = [issue.description for issue in critique.issues]
    return RefinedResponse(
        response=response.value,
        improvement_summary=summary,
        addressed_issues=addressed,
        defaulted_fields=defaulted_names(response=response, improvements=improvements),
    )
