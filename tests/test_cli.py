from __future__ import annotations

import allure
from click.testing import CliRunner

from hybrid_agent import __version__
from hybrid_agent.main import hybrid_agent

pytestmark = [
    allure.epic("CLI"),
    allure.feature("Hybrid Agent Commands"),
]


def test_version_option(clean_env) -> None:
    result = CliRunner().invoke(hybrid_agent, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_analyze_reports_task_type(clean_env) -> None:
    result = CliRunner().invoke(
        hybrid_agent,
        ["analyze", "--task", "Add login with JWT tokens"],
    )

    assert result.exit_code == 0, result.output
    assert "type=authentication complexity=complex" in result.output
    assert "Workflow: authentication-setup" in result.output


def test_execute_stays_local_for_good_output(clean_env) -> None:
    result = CliRunner().invoke(
        hybrid_agent,
        ["execute", "--task", "rename a variable", "--task-id", "cli-1"],
    )

    assert result.exit_code == 0, result.output
    assert "Task cli-1: succeeded mode=local tier=local" in result.output
    assert "Result: [local:local-fast] completed: Step 1/1: rename a variable" in result.output
    assert "Executions: total=1 local_successes=1 local_failures=0 escalations=0" in (
        result.output
    )


def test_execute_complex_task_goes_straight_to_escalation(clean_env) -> None:
    result = CliRunner().invoke(
        hybrid_agent,
        ["execute", "--task", "rename a variable", "--complexity", "complex"],
    )

    assert result.exit_code == 0, result.output
    assert "mode=escalation tier=escalation complexity=complex" in result.output
    assert "reason=Task complexity is high" in result.output


def test_execute_escalates_after_local_failure(clean_env, monkeypatch) -> None:
    monkeypatch.setenv("HYBRID_AGENT_ECHO_FAIL_PROVIDERS", "local")

    result = CliRunner().invoke(hybrid_agent, ["execute", "--task", "rename a variable"])

    assert result.exit_code == 0, result.output
    assert "succeeded mode=hybrid tier=escalation" in result.output
    assert "reason=Local execution failed:" in result.output
    assert "Result: [escalation:" in result.output


def test_execute_fails_when_both_tiers_fail(clean_env, monkeypatch) -> None:
    monkeypatch.setenv("HYBRID_AGENT_ECHO_FAIL_PROVIDERS", "local,escalation")

    result = CliRunner().invoke(hybrid_agent, ["execute", "--task", "rename a variable"])

    assert result.exit_code != 0
    assert "failed mode=hybrid" in result.output
    assert "Error [backend_transient]: CLI provider escalation exited with code 1" in (
        result.output
    )
    assert "Task execution failed." in result.output


def test_execute_with_plan_runs_planned_steps(clean_env) -> None:
    result = CliRunner().invoke(
        hybrid_agent,
        ["execute", "--task", "rename a variable", "--plan"],
    )

    assert result.exit_code == 0, result.output
    assert "succeeded mode=local tier=local" in result.output
    assert "completed: Step 1/2: Outline: rename a variable" in result.output
    assert "completed: Step 2/2: Deliver: rename a variable" in result.output
    assert "Plan: 2 steps: Outline: rename a variable | Deliver: rename a variable" in (
        result.output
    )


def test_execute_explicit_steps_ignore_plan_flag(clean_env) -> None:
    result = CliRunner().invoke(
        hybrid_agent,
        ["execute", "--task", "rename a variable", "--plan", "--step", "rename it"],
    )

    assert result.exit_code == 0, result.output
    assert "completed: Step 1/1: rename it" in result.output
    assert "Plan:" not in result.output


def test_run_plan_drains_chained_tasks(clean_env) -> None:
    result = CliRunner().invoke(
        hybrid_agent,
        [
            "run-plan",
            "--task",
            "rename a variable",
            "--task",
            "update the changelog",
        ],
    )

    assert result.exit_code == 0, result.output
    assert result.output.count("succeeded mode=local") == 2
    assert "Tasks: total=2 completed=2 failed=0 in_progress=0 pending=0" in result.output
    assert "Tasks completed: 100.00%" in result.output
    assert "Blocked tasks" not in result.output


def test_run_plan_reports_blocked_tasks_after_failure(clean_env, monkeypatch) -> None:
    monkeypatch.setenv("HYBRID_AGENT_ECHO_FAIL_PROVIDERS", "local,escalation")

    result = CliRunner().invoke(
        hybrid_agent,
        ["run-plan", "--task", "rename a variable", "--task", "update the changelog"],
    )

    assert result.exit_code != 0
    assert "Tasks: total=2 completed=0 failed=1 in_progress=0 pending=1" in result.output
    assert "Blocked tasks: 1" in result.output
    assert "Plan did not complete successfully." in result.output


def test_improve_stops_when_first_critique_passes(clean_env) -> None:
    result = CliRunner().invoke(
        hybrid_agent,
        ["improve", "--prompt", "Explain the diff", "--response", "It renames a field."],
    )

    assert result.exit_code == 0, result.output
    assert "Improvement: succeeded iterations=1 quality=0.90" in result.output
    assert result.output.rstrip().endswith("It renames a field.")


def test_improve_adopts_verified_refinement(clean_env, monkeypatch) -> None:
    monkeypatch.setenv("HYBRID_AGENT_ECHO_QUALITY", "0.4")

    result = CliRunner().invoke(
        hybrid_agent,
        [
            "improve",
            "--prompt",
            "Explain the diff",
            "--response",
            "It renames a field.",
            "--max-iterations",
            "1",
        ],
    )

    assert result.exit_code == 0, result.output
    assert "Improvement: below threshold iterations=1 quality=0.40" in result.output
    assert "Improvement 1: Echo refinement pass" in result.output
    assert "Refined by local: the response now covers every requested detail." in (
        result.output
    )


def test_invalid_settings_are_reported(clean_env, monkeypatch) -> None:
    monkeypatch.setenv("HYBRID_AGENT_ESCALATION_QUALITY_THRESHOLD", "1.5")

    result = CliRunner().invoke(hybrid_agent, ["execute", "--task", "rename a variable"])

    assert result.exit_code != 0
    assert "QUALITY_THRESHOLD" in result.output


def test_invalid_log_level_env_is_rejected(clean_env, monkeypatch) -> None:
    monkeypatch.setenv("HYBRID_AGENT_LOG_LEVEL", "loud")

    result = CliRunner().invoke(hybrid_agent, ["analyze", "--task", "rename a variable"])

    assert result.exit_code != 0
    assert "HYBRID_AGENT_LOG_LEVEL" in result.output
