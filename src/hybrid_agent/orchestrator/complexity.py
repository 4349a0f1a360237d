"""Keyword-based task analysis used to pick the starting execution tier."""

from __future__ import annotations

from dataclasses import dataclass

from hybrid_agent.orchestrator.models import Complexity

UNKNOWN_TASK_TYPE = "unknown"

_TASK_TYPE_PATTERNS: tuple[tuple[str, tuple[str, ...]], ...] = (
    (
        "scaffold-app",
        ("create app", "new app", "scaffold", "initialize project", "setup project"),
    ),
    ("crud-entity", ("crud", "create entity", "add model", "database entity", "new table")),
    ("api-endpoint", ("api", "endpoint", "route", "rest api", "create route")),
    ("workflow-creation", ("workflow", "multi-step", "process flow", "state machine")),
    (
        "database-migration",
        ("migration", "alter table", "schema change", "database change"),
    ),
    (
        "authentication",
        ("auth", "login", "signup", "authentication", "authorization", "jwt"),
    ),
    ("testing", ("test", "unit test", "integration test", "e2e test")),
    ("documentation", ("document", "readme", "docs", "api docs", "generate docs")),
    ("refactor", ("refactor", "restructure", "reorganize", "clean up")),
    ("bugfix", ("fix", "bug", "error", "issue", "broken")),
    ("feature", ("add feature", "implement", "new feature", "functionality")),
)
_COMPLEX_TYPES = frozenset({"scaffold-app", "workflow-creation", "authentication"})
_SIMPLE_TYPES = frozenset({"bugfix", "documentation"})
_ALWAYS_WORKFLOW_TYPES = frozenset({"scaffold-app", "workflow-creation", "crud-entity"})
_COMPLEX_KEYWORDS: tuple[str, ...] = (
    "multiple",
    "integrate",
    "system",
    "architecture",
    "advanced",
    "complete",
)
_SIMPLE_KEYWORDS: tuple[str, ...] = ("simple", "basic", "quick", "small", "single")
_EXPLICIT_COMPLEXITY_WORDS: tuple[str, ...] = ("simple", "complex", "advanced", "basic")
_WORKFLOW_BY_TYPE: dict[str, str] = {
    "scaffold-app": "application-scaffold",
    "crud-entity": "crud-generator",
    "api-endpoint": "api-endpoint-generator",
    "workflow-creation": "workflow-generator",
    "database-migration": "database-migration",
    "authentication": "authentication-setup",
    "testing": "test-suite-generator",
}


@dataclass(slots=True, frozen=True)
class TaskAnalysis:
    """Detected task type and complexity with a 0-100 confidence."""

    task_type: str
    complexity: Complexity
    requires_workflow: bool
    suggested_workflow: str | None
    confidence: int
    reasoning: str


def analyze_task(description: str) -> TaskAnalysis:
    """Classify a free-text task description."""

    haystack = description.lower()
    task_type = _detect_task_type(haystack)
    complexity = _detect_complexity(haystack, task_type)
    requires_workflow = task_type in _ALWAYS_WORKFLOW_TYPES or complexity == Complexity.COMPLEX
    confidence = 50
    if task_type != UNKNOWN_TASK_TYPE:
        confidence += 30
    if _first_match(haystack, _EXPLICIT_COMPLEXITY_WORDS) is not None:
        confidence += 20
    approach = (
        "Using a structured workflow keeps the result consistent and complete."
        if requires_workflow
        else "A freeform approach is sufficient."
    )
    return TaskAnalysis(
        task_type=task_type,
        complexity=complexity,
        requires_workflow=requires_workflow,
        suggested_workflow=_WORKFLOW_BY_TYPE.get(task_type) if requires_workflow else None,
        confidence=min(confidence, 100),
        reasoning=(
            f"This is a {complexity.value} {task_type.replace('-', ' ')} task. {approach}"
        ),
    )


def _detect_task_type(haystack: str) -> str:
    for task_type, patterns in _TASK_TYPE_PATTERNS:
        if _first_match(haystack, patterns) is not None:
            return task_type
    return UNKNOWN_TASK_TYPE


def _detect_complexity(haystack: str, task_type: str) -> Complexity:
    if task_type in _COMPLEX_TYPES:
        return Complexity.COMPLEX
    if task_type in _SIMPLE_TYPES:
        return Complexity.SIMPLE
    if _first_match(haystack, _COMPLEX_KEYWORDS) is not None:
        return Complexity.COMPLEX
    if _first_match(haystack, _SIMPLE_KEYWORDS) is not None:
        return Complexity.SIMPLE
    return Complexity.MODERATE


def _first_match(haystack: str, patterns: tuple[str, ...]) -> str | None:
    for pattern in patterns:
        if pattern in haystack:
            return pattern
    return None
