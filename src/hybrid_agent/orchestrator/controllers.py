"""Controllers for hybrid-agent CLI commands."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace

from hybrid_agent.config import Settings
from hybrid_agent.orchestrator.backend import CliTextProvider
from hybrid_agent.orchestrator.complexity import analyze_task
from hybrid_agent.orchestrator.coordinator import HybridCoordinator
from hybrid_agent.orchestrator.escalation import EscalationPolicy
from hybrid_agent.orchestrator.executors import ProviderTierExecutor
from hybrid_agent.orchestrator.metrics import (
    render_analysis_lines,
    render_improvement_lines,
    render_metrics_lines,
    render_progress_lines,
    render_result_lines,
)
from hybrid_agent.orchestrator.models import ExecutionTier
from hybrid_agent.orchestrator.planner import TaskPlanner
from hybrid_agent.orchestrator.todo import TaskQueue
from hybrid_agent.orchestrator.validator import QualityValidator
from hybrid_agent.refinement.loop import QualityLoop


@dataclass(slots=True)
class ExecuteCommand:
    """CLI input for one coordinated task execution."""

    task: str
    task_id: str | None
    complexity: str | None
    steps: tuple[str, ...]
    improve: bool
    plan: bool = False


@dataclass(slots=True)
class RunPlanCommand:
    """CLI input for draining a queue of tasks through the coordinator."""

    tasks: tuple[str, ...]
    chain: bool
    plan: bool = False


@dataclass(slots=True)
class ImproveCommand:
    """CLI input for one critique/refine/verify run."""

    prompt: str
    response: str
    max_iterations: int | None
    threshold: float | None
    verify: bool


@dataclass(slots=True)
class AnalyzeCommand:
    """CLI input for task classification."""

    task: str


@dataclass(slots=True)
class CliReport:
    """Command report to render in CLI."""

    lines: list[str]
    success: bool


class HybridCliController:
    """Wires settings, providers and the coordinator for CLI commands."""

    def execute(self, command: ExecuteCommand) -> CliReport:
        settings = _load_settings()
        coordinator = _coordinator(settings, improve=command.improve, plan=command.plan)
        result = asyncio.run(
            coordinator.execute(
                command.task,
                task_id=command.task_id,
                complexity=command.complexity,
                steps=command.steps or None,
            ),
        )
        lines = render_result_lines(result)
        lines.extend(render_metrics_lines(coordinator.metrics()))
        return CliReport(lines=lines, success=result.success)

    def run_plan(self, command: RunPlanCommand) -> CliReport:
        settings = _load_settings()
        queue = TaskQueue(
            max_items=settings.todo.max_items,
            exclusive_start=settings.todo.exclusive_start,
        )
        previous_id: str | None = None
        for description in command.tasks:
            dependencies = [previous_id] if command.chain and previous_id else None
            previous_id = queue.add(description, dependencies=dependencies).id

        coordinator = _coordinator(settings, improve=False, plan=command.plan)
        results = asyncio.run(coordinator.drain(queue))

        lines: list[str] = []
        for result in results:
            lines.extend(render_result_lines(result))
        lines.extend(render_progress_lines(queue.progress()))
        if queue.is_blocked():
            lines.append(f"Blocked tasks: {len(queue.pending())}")
        lines.extend(render_metrics_lines(coordinator.metrics()))
        success = all(result.success for result in results) and not queue.pending()
        return CliReport(lines=lines, success=success)

    def improve(self, command: ImproveCommand) -> CliReport:
        settings = _load_settings()
        loop_settings = settings.quality_loop
        if command.max_iterations is not None:
            loop_settings = replace(loop_settings, max_iterations=command.max_iterations)
        if command.threshold is not None:
            loop_settings = replace(loop_settings, quality_threshold=command.threshold)
        if not command.verify:
            loop_settings = replace(loop_settings, enable_verification=False)

        loop = QualityLoop(_provider(settings, ExecutionTier.LOCAL), loop_settings)
        result = asyncio.run(loop.improve(command.prompt, command.response))
        return CliReport(lines=render_improvement_lines(result), success=result.success)

    def analyze(self, command: AnalyzeCommand) -> list[str]:
        return render_analysis_lines(analyze_task(command.task))


def _load_settings() -> Settings:
    settings = Settings.from_env()
    settings.validate()
    return settings


def _provider(settings: Settings, tier: ExecutionTier) -> CliTextProvider:
    tiers = settings.tiers
    if tier == ExecutionTier.LOCAL:
        return CliTextProvider(
            tiers.local_command_template,
            model=tiers.local_model,
            timeout_seconds=tiers.local_timeout_seconds,
            name=ExecutionTier.LOCAL.value,
        )
    return CliTextProvider(
        tiers.escalation_command_template,
        model=tiers.escalation_model,
        timeout_seconds=tiers.escalation_timeout_seconds,
        name=ExecutionTier.ESCALATION.value,
    )


def _executor(settings: Settings, tier: ExecutionTier, *, improve: bool) -> ProviderTierExecutor:
    provider = _provider(settings, tier)
    return ProviderTierExecutor(
        provider,
        tier=tier,
        quality_loop=QualityLoop(provider, settings.quality_loop) if improve else None,
        max_retries=settings.tiers.step_max_retries,
        retry_base_seconds=settings.tiers.retry_base_seconds,
    )


def _coordinator(settings: Settings, *, improve: bool, plan: bool) -> HybridCoordinator:
    planner = TaskPlanner(_provider(settings, ExecutionTier.ESCALATION)) if plan else None
    return HybridCoordinator(
        _executor(settings, ExecutionTier.LOCAL, improve=improve),
        _executor(settings, ExecutionTier.ESCALATION, improve=improve),
        policy=EscalationPolicy(settings.escalation),
        validator=QualityValidator(settings.escalation.quality_threshold),
        settings=settings.tiers,
        planner=planner,
    )
