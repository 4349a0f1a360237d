"""Heuristic quality validation for tier outputs."""

from __future__ import annotations

import re

from hybrid_agent.orchestrator.models import ValidationResult

DEFAULT_ESCALATION_THRESHOLD = 0.7
VALID_SCORE_MIN = 0.5
MIN_OUTPUT_CHARS = 50
_CODE_LANGUAGES = frozenset({"javascript", "typescript", "python", "java", "go", "rust"})
_PLACEHOLDER_MARKERS: tuple[str, ...] = ("...", "// implement this", "# implement this")
_EMPTY_FUNCTION = re.compile(r"function\s+\w+\s*\([^)]*\)\s*\{\s*\}")
_OPEN_TAG = re.compile(r"<[^/!][^>]*>")
_CLOSE_TAG = re.compile(r"</[^>]*>")
_SELF_CLOSING_TAG = re.compile(r"<[^>]*/>")


class QualityValidator:
    """Scores output text for syntax sanity and completeness."""

    def __init__(
        self,
        escalation_threshold: float = DEFAULT_ESCALATION_THRESHOLD,
        *,
        language: str = "text",
    ) -> None:
        self.escalation_threshold = escalation_threshold
        self.language = language.lower()

    def validate(self, text: str, language: str | None = None) -> ValidationResult:
        """Validate one output; the overall score averages syntax and completeness."""

        lang = (language or self.language).lower()
        errors: list[str] = []
        warnings: list[str] = []
        syntax = _syntax_score(text, lang, errors)
        completeness = _completeness_score(text, lang, warnings)
        overall = round(syntax * 0.5 + completeness * 0.5, 4)
        should_escalate = overall < self.escalation_threshold
        return ValidationResult(
            is_valid=overall >= VALID_SCORE_MIN,
            score=overall,
            should_escalate=should_escalate,
            reason=(
                f"Quality score {overall:.2f} below threshold {self.escalation_threshold}"
                if should_escalate
                else None
            ),
            errors=errors,
            warnings=warnings,
            suggestions=_suggestions(text, lang),
        )


def _syntax_score(text: str, language: str, errors: list[str]) -> float:
    score = 1.0
    if language in _CODE_LANGUAGES:
        if text.count("{") != text.count("}"):
            errors.append("Unclosed brackets detected")
            score -= 0.3
        if text.count("(") != text.count(")"):
            errors.append("Unclosed parentheses detected")
            score -= 0.3
    if language == "html":
        open_tags = len(_OPEN_TAG.findall(text))
        self_closing = len(_SELF_CLOSING_TAG.findall(text))
        if open_tags - self_closing != len(_CLOSE_TAG.findall(text)):
            errors.append("Unclosed HTML tags detected")
            score -= 0.3
    return max(0.0, score)


def _completeness_score(text: str, language: str, warnings: list[str]) -> float:
    if not text.strip():
        warnings.append("Output is empty")
        return 0.0
    score = 1.0
    if "TODO" in text or "FIXME" in text:
        warnings.append("Output contains TODO/FIXME markers")
        score -= 0.1
    if any(marker in text for marker in _PLACEHOLDER_MARKERS):
        warnings.append("Output contains placeholders")
        score -= 0.2
    if len(text.strip()) < MIN_OUTPUT_CHARS:
        warnings.append("Output is very short, may be incomplete")
        score -= 0.3
    if language in {"javascript", "typescript"} and _EMPTY_FUNCTION.search(text):
        warnings.append("Empty function detected")
        score -= 0.2
    return max(0.0, score)


def _suggestions(text: str, language: str) -> list[str]:
    suggestions: list[str] = []
    if language in {"javascript", "typescript"}:
        if "var " in text:
            suggestions.append("Consider using let/const instead of var")
        if "console.log" in text:
            suggestions.append("Remove console.log statements in production code")
    if language == "python" and "print(" in text:
        suggestions.append("Prefer logging over print() in library code")
    return suggestions
