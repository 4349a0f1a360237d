"""CLI entrypoint for hybrid-agent."""

import logging
import os
from collections.abc import Callable

import rich_click as click

from hybrid_agent import __version__
from hybrid_agent.orchestrator.controllers import (
    AnalyzeCommand,
    CliReport,
    ExecuteCommand,
    HybridCliController,
    ImproveCommand,
    RunPlanCommand,
)
from hybrid_agent.orchestrator.errors import ProviderTransportError
from hybrid_agent.orchestrator.models import Complexity

click.rich_click.USE_MARKDOWN = True
CONTROLLER = HybridCliController()
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@click.group()
@click.version_option(version=__version__, prog_name="hybrid-agent")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default=None,
    help="Logging level. Defaults to HYBRID_AGENT_LOG_LEVEL or WARNING.",
)
def hybrid_agent(log_level: str | None) -> None:
    """Two-tier task execution with escalation and self-improvement."""

    level = (log_level or os.getenv("HYBRID_AGENT_LOG_LEVEL", "WARNING")).strip().upper()
    if level not in LOG_LEVELS:
        raise click.BadParameter(
            f"Invalid HYBRID_AGENT_LOG_LEVEL: {level!r}.",
            param_hint="--log-level",
        )
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


@hybrid_agent.command("execute")
@click.option("--task", required=True, help="Task description.")
@click.option("--task-id", default=None, help="Stable task id for escalation history.")
@click.option(
    "--complexity",
    type=click.Choice([item.value for item in Complexity]),
    default=None,
    help="Override detected task complexity.",
)
@click.option(
    "--step",
    "steps",
    multiple=True,
    help="Plan step. Can be repeated; defaults to the task description.",
)
@click.option(
    "--improve/--no-improve",
    default=False,
    show_default=True,
    help="Refine every step output through the critique/refine/verify loop.",
)
@click.option(
    "--plan/--no-plan",
    default=False,
    show_default=True,
    help="Ask the escalation tier for a step plan when no --step is given.",
)
def execute(  # noqa: PLR0913
    task: str,
    task_id: str | None,
    complexity: str | None,
    steps: tuple[str, ...],
    improve: bool,
    plan: bool,
) -> None:
    """Run one task on the local tier and escalate when needed."""

    report = _run_report(
        lambda: CONTROLLER.execute(
            ExecuteCommand(
                task=task,
                task_id=task_id,
                complexity=complexity,
                steps=steps,
                improve=improve,
                plan=plan,
            ),
        ),
    )
    _emit_lines(report.lines)
    if not report.success:
        raise click.ClickException("Task execution failed.")


@hybrid_agent.command("run-plan")
@click.option(
    "--task",
    "tasks",
    multiple=True,
    required=True,
    help="Task description. Can be repeated; tasks keep the given order.",
)
@click.option(
    "--chain/--no-chain",
    default=True,
    show_default=True,
    help="Make every task depend on the previous one.",
)
@click.option(
    "--plan/--no-plan",
    default=False,
    show_default=True,
    help="Ask the escalation tier for a step plan for every task.",
)
def run_plan(tasks: tuple[str, ...], chain: bool, plan: bool) -> None:
    """Queue tasks and drain them through the coordinator."""

    report = _run_report(
        lambda: CONTROLLER.run_plan(RunPlanCommand(tasks=tasks, chain=chain, plan=plan)),
    )
    _emit_lines(report.lines)
    if not report.success:
        raise click.ClickException("Plan did not complete successfully.")


@hybrid_agent.command("improve")
@click.option("--prompt", required=True, help="Original request.")
@click.option("--response", required=True, help="Response to improve.")
@click.option(
    "--max-iterations",
    type=click.IntRange(min=1),
    default=None,
    help="Override HYBRID_AGENT_QUALITY_MAX_ITERATIONS.",
)
@click.option(
    "--threshold",
    type=click.FloatRange(min=0.0, max=1.0),
    default=None,
    help="Override HYBRID_AGENT_QUALITY_THRESHOLD.",
)
@click.option("--no-verify", is_flag=True, default=False, help="Skip verification step.")
def improve(
    prompt: str,
    response: str,
    max_iterations: int | None,
    threshold: float | None,
    no_verify: bool,
) -> None:
    """Critique, refine and verify one response."""

    report = _run_report(
        lambda: CONTROLLER.improve(
            ImproveCommand(
                prompt=prompt,
                response=response,
                max_iterations=max_iterations,
                threshold=threshold,
                verify=not no_verify,
            ),
        ),
    )
    _emit_lines(report.lines)


@hybrid_agent.command("analyze")
@click.option("--task", required=True, help="Task description.")
def analyze(task: str) -> None:
    """Detect task type and complexity."""

    _emit_lines(CONTROLLER.analyze(AnalyzeCommand(task=task)))


def _run_report(action: Callable[[], CliReport]) -> CliReport:
    try:
        return action()
    except (ValueError, ProviderTransportError) as error:
        raise click.ClickException(str(error)) from error


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    hybrid_agent()
