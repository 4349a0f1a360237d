"""Critique generation: assess a response and list concrete issues."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum

from hybrid_agent.orchestrator.backend.base import TextGenerationProvider
from hybrid_agent.refinement.parsing import defaulted_names, extract_score, extract_section

DEFAULT_QUALITY_SCORE = 0.7
DEFAULT_SUMMARY = "No major issues found."

_ISSUE_LINE = re.compile(
    r"^-\s*\[CATEGORY:\s*([\w-]+)\]\s*\[SEVERITY:\s*(\w+)\]\s*(.+)$",
    re.IGNORECASE,
)
_SUGGESTION_LINE = re.compile(r"^SUGGESTION:\s*(.+)$", re.IGNORECASE)


class IssueCategory(str, Enum):
    CORRECTNESS = "correctness"
    COMPLETENESS = "completeness"
    CLARITY = "clarity"
    QUALITY = "quality"
    BEST_PRACTICES = "best-practices"


class IssueSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(slots=True)
class CritiqueIssue:
    category: IssueCategory
    severity: IssueSeverity
    description: str
    suggestion: str = ""


@dataclass(slots=True)
class Critique:
    """Structured assessment of one response."""

    quality_score: float
    summary: str
    issues: list[CritiqueIssue] = field(default_factory=list)
    defaulted_fields: frozenset[str] = frozenset()

    @property
    def suggestions(self) -> list[str]:
        return [issue.suggestion for issue in self.issues if issue.suggestion]


class CritiqueGenerator:
    """Ask a provider to critique a response and parse the answer."""

    def __init__(self, provider: TextGenerationProvider) -> None:
        self.provider = provider

    async def generate(self, prompt: str, response: str, context: str | None = None) -> Critique:
        result = await self.provider.generate(build_critique_prompt(prompt, response, context))
        return parse_critique(result.text)


def build_critique_prompt(prompt: str, response: str, context: str | None = None) -> str:
    context_block = f"Context:\n{context}\n\n" if context else ""
    return (
        "You are a code quality expert. Analyze the following response and provide "
        "constructive critique.\n\n"
        f"{context_block}"
        f"Original Request:\n{prompt}\n\n"
        f"Response to Critique:\n{response}\n\n"
        "Provide a critique in the following format:\n\n"
        "QUALITY_SCORE: [0.0 to 1.0]\n\n"
        "ISSUES:\n"
        "- [CATEGORY: correctness|completeness|clarity|quality|best-practices] "
        "[SEVERITY: low|medium|high] Description\n"
        "  SUGGESTION: How to fix\n\n"
        "SUMMARY:\n"
        "Brief summary of main issues and overall quality\n\n"
        "Focus on correctness, completeness, clarity, code quality and best practices.\n"
        "Be constructive and specific. If the response is excellent, say so."
    )


def parse_critique(text: str) -> Critique:
    """Parse critique text; missing score and summary fall back to defaults."""

    score = extract_score(text, "QUALITY_SCORE", DEFAULT_QUALITY_SCORE)
    issues_block = extract_section(text, "ISSUES", stop_labels=("SUMMARY",))
    summary = extract_section(text, "SUMMARY", default=DEFAULT_SUMMARY)
    return Critique(
        quality_score=score.value,
        summary=summary.value,
        issues=_parse_issues(issues_block.value),
        defaulted_fields=defaulted_names(
            quality_score=score,
            issues=issues_block,
            summary=summary,
        ),
    )


def _parse_issues(block: str) -> list[CritiqueIssue]:
    issues: list[CritiqueIssue] = []
    current: CritiqueIssue | None = None
    for line in block.splitlines():
        stripped = line.strip()
        issue_match = _ISSUE_LINE.match(stripped)
        if issue_match is not None:
            if current is not None:
                issues.append(current)
            current = CritiqueIssue(
                category=_category(issue_match.group(1)),
                severity=_severity(issue_match.group(2)),
                description=issue_match.group(3).strip(),
            )
            continue
        suggestion_match = _SUGGESTION_LINE.match(stripped)
        if suggestion_match is not None and current is not None:
            current.suggestion = suggestion_match.group(1).strip()
    if current is not None:
        issues.append(current)
    return issues


def _category(raw: str) -> IssueCategory:
    try:
        return IssueCategory(raw.lower())
    except ValueError:
        return IssueCategory.QUALITY


def _severity(raw: str) -> IssueSeverity:
    try:
        return IssueSeverity(raw.lower())
    except ValueError:
        return IssueSeverity.MEDIUM
