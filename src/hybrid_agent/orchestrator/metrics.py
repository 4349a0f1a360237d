"""Plain-text rendering of progress, escalation metrics and execution results."""

from __future__ import annotations

from hybrid_agent.orchestrator.complexity import TaskAnalysis
from hybrid_agent.orchestrator.models import (
    EscalationMetrics,
    HybridExecutionResult,
    SubAgentProgress,
    TaskProgress,
)
from hybrid_agent.refinement.loop import ImprovementResult

RESULT_PREVIEW_CHARS = 400


def render_metrics_lines(metrics: EscalationMetrics) -> list[str]:
    local_success_rate = _safe_ratio(
        numerator=metrics.local_successes,
        denominator=metrics.local_successes + metrics.local_failures,
    )
    return [
        "Escalation metrics:",
        (
            "  Executions: "
            f"total={metrics.total_executions} "
            f"local_successes={metrics.local_successes} "
            f"local_failures={metrics.local_failures} "
            f"escalations={metrics.escalations}"
        ),
        (
            "  Rates: "
            f"escalation_rate={_fmt_ratio(_rate_or_none(metrics))} "
            f"local_success_rate={_fmt_ratio(local_success_rate)}"
        ),
        (
            "  Average latency: "
            f"local={_fmt_ms(metrics.average_local_ms)} "
            f"escalation={_fmt_ms(metrics.average_escalation_ms)}"
        ),
    ]


def render_progress_lines(
    progress: TaskProgress | SubAgentProgress,
    *,
    label: str = "Tasks",
) -> list[str]:
    counts = progress.to_dict()
    total = counts.pop("total")
    done = _safe_ratio(numerator=counts.get("completed", 0), denominator=total)
    return [
        f"{label}: total={total} " + (_fmt_key_value(counts) or "none"),
        f"{label} completed: {_fmt_ratio(done)}",
    ]


def render_result_lines(result: HybridExecutionResult) -> list[str]:
    """Describe one coordinated execution for CLI output."""

    lines = [
        (
            f"Task {result.task_id}: "
            f"{'succeeded' if result.success else 'failed'} "
            f"mode={result.execution_mode} "
            f"tier={result.tier.value} "
            f"complexity={result.complexity.value}"
        ),
        (
            "  Decision: "
            f"escalate={'yes' if result.decision.should_escalate else 'no'} "
            f"confidence={result.decision.confidence:.2f} "
            f"reason={result.decision.reason}"
        ),
        (
            "  Timing: "
            f"local={_fmt_optional_ms(result.local_elapsed_ms)} "
            f"escalation={_fmt_optional_ms(result.escalation_elapsed_ms)}"
        ),
        f"  Quality: {_fmt_score(result.quality_score)}",
    ]
    if result.result:
        lines.append("  Result: " + _preview(result.result))
    if result.error:
        label = f"Error [{result.failure_class.value}]" if result.failure_class else "Error"
        lines.append(f"  {label}: " + _preview(result.error))
    if len(result.plan) > 1:
        lines.append(
            f"  Plan: {len(result.plan)} steps: " + _preview(" | ".join(result.plan)),
        )
    return lines


def render_improvement_lines(result: ImprovementResult) -> list[str]:
    lines = [
        (
            "Improvement: "
            f"{'succeeded' if result.success else 'below threshold'} "
            f"iterations={result.iterations} "
            f"quality={_fmt_score(result.quality_score)}"
        ),
    ]
    for index, critique in enumerate(result.critiques, start=1):
        lines.append(f"  Critique {index}: {_preview(critique)}")
    for index, improvement in enumerate(result.improvements, start=1):
        lines.append(f"  Improvement {index}: {_preview(improvement)}")
    lines.append("Final response:")
    lines.append(result.final_response)
    return lines


def render_analysis_lines(analysis: TaskAnalysis) -> list[str]:
    return [
        (
            "Analysis: "
            f"type={analysis.task_type} "
            f"complexity={analysis.complexity.value} "
            f"confidence={analysis.confidence}%"
        ),
        "  Workflow: " + _fmt_workflow(analysis),
        f"  Reasoning: {analysis.reasoning}",
    ]


def _fmt_workflow(analysis: TaskAnalysis) -> str:
    if not analysis.requires_workflow:
        return "not required"
    return analysis.suggested_workflow or "required"


def _rate_or_none(metrics: EscalationMetrics) -> float | None:
    if metrics.total_executions <= 0:
        return None
    return metrics.escalation_rate


def _safe_ratio(*, numerator: int, denominator: int) -> float | None:
    if denominator <= 0:
        return None
    return numerator / denominator


def _fmt_ratio(value: float | None) -> str:
    if value is None:
        return "n/a"
    return f"{value:.2%}"


def _fmt_key_value(values: dict[str, int]) -> str:
    if not values:
        return ""
    return " ".join(f"{key}={values[key]}" for key in sorted(values))


def _fmt_ms(value: float) -> str:
    return f"{value:.0f}ms"


def _fmt_optional_ms(value: float | None) -> str:
    if value is None:
        return "n/a"
    return _fmt_ms(value)


def _fmt_score(value: float | None) -> str:
    if value is None:
        return "n/a"
    return f"{value:.2f}"


def _preview(text: str) -> str:
    flattened = " ".join(text.split())
    if len(flattened) <= RESULT_PREVIEW_CHARS:
        return flattened
    return flattened[: RESULT_PREVIEW_CHARS - 3] + "..."
