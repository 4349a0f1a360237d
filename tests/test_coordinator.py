from __future__ import annotations

import asyncio

import allure
import pytest

from hybrid_agent.config import TierSettings
from hybrid_agent.orchestrator.coordinator import HybridCoordinator
from hybrid_agent.orchestrator.errors import ConfigurationError, ProviderTransportError
from hybrid_agent.orchestrator.escalation import EscalationPolicy
from hybrid_agent.orchestrator.models import (
    Complexity,
    ExecutionAttempt,
    ExecutionOutcome,
    ExecutionTier,
    FailureClass,
    TaskStatus,
    ValidationResult,
    utc_now,
)
from hybrid_agent.orchestrator.planner import TaskPlanner
from hybrid_agent.orchestrator.todo import TaskQueue

pytestmark = [
    allure.epic("Escalation"),
    allure.feature("Hybrid Coordinator"),
]

_LOCAL_OK = ExecutionOutcome(success=True, elapsed_ms=120.0, result="local answer")
_ESCALATED_OK = ExecutionOutcome(success=True, elapsed_ms=900.0, result="escalated answer")


class _HangingExecutor:
    def __init__(self) -> None:
        self.cancelled = False

    async def execute_plan(self, steps):
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        return _LOCAL_OK


class _StaticValidator:
    def __init__(self, result: ValidationResult) -> None:
        self.result = result
        self.seen: list[str] = []

    def validate(self, text: str) -> ValidationResult:
        self.seen.append(text)
        return self.result


class _BrokenValidator:
    def __init__(self, error: Exception) -> None:
        self.error = error

    def validate(self, text: str) -> ValidationResult:
        raise self.error


def test_missing_tier_is_configuration_error(make_executor) -> None:
    with pytest.raises(ConfigurationError, match="Local tier"):
        HybridCoordinator(None, make_executor(_ESCALATED_OK))
    with pytest.raises(ConfigurationError, match="Escalation tier"):
        HybridCoordinator(make_executor(_LOCAL_OK), None)


@pytest.mark.asyncio
async def test_simple_task_stays_local(make_executor) -> None:
    local = make_executor(_LOCAL_OK)
    escalation = make_executor(_ESCALATED_OK)
    coordinator = HybridCoordinator(local, escalation)

    result = await coordinator.execute("rename a variable", complexity=Complexity.SIMPLE)

    assert result.success is True
    assert result.tier == ExecutionTier.LOCAL
    assert result.escalated is False
    assert result.execution_mode == "local"
    assert result.result == "local answer"
    assert result.quality_score == pytest.approx(0.8)
    assert result.local_elapsed_ms == pytest.approx(120.0)
    assert result.escalation_elapsed_ms is None
    assert local.calls == [["rename a variable"]]
    assert escalation.calls == []

    metrics = coordinator.metrics()
    assert metrics.total_executions == 1
    assert metrics.local_successes == 1
    assert metrics.escalations == 0


@pytest.mark.asyncio
async def test_complex_task_escalates_directly(make_executor) -> None:
    local = make_executor(_LOCAL_OK)
    escalation = make_executor(_ESCALATED_OK)
    coordinator = HybridCoordinator(local, escalation)

    result = await coordinator.execute("design the platform", complexity="complex")

    assert result.tier == ExecutionTier.ESCALATION
    assert result.escalated is True
    assert result.execution_mode == "escalation"
    assert result.escalation_reason == "Task complexity is high"
    assert result.decision.confidence == 1.0
    assert result.local_elapsed_ms is None
    assert result.escalation_elapsed_ms == pytest.approx(900.0)
    assert local.calls == []

    metrics = coordinator.metrics()
    assert metrics.total_executions == 1
    assert metrics.escalations == 0
    assert metrics.local_failures == 0
    assert metrics.escalation_rate == 0.0


@pytest.mark.asyncio
async def test_complexity_comes_from_analyzer_when_not_given(make_executor) -> None:
    local = make_executor(_LOCAL_OK)
    coordinator = HybridCoordinator(local, make_executor(_ESCALATED_OK))

    result = await coordinator.execute("Add JWT login to the dashboard")

    assert result.complexity == Complexity.COMPLEX
    assert result.escalated is True
    assert local.calls == []


@pytest.mark.asyncio
async def test_slow_local_run_escalates_on_timeout_threshold(make_executor) -> None:
    slow = ExecutionOutcome(success=True, elapsed_ms=35_000.0, result="late answer")
    coordinator = HybridCoordinator(make_executor(slow), make_executor(_ESCALATED_OK))

    result = await coordinator.execute("summarize the log", task_id="t-1", complexity="simple")

    assert result.escalated is True
    assert result.execution_mode == "hybrid"
    assert "timeout threshold" in (result.escalation_reason or "")
    assert result.local_elapsed_ms == pytest.approx(35_000.0)
    assert result.result == "escalated answer"

    metrics = coordinator.metrics()
    assert metrics.total_executions == 2
    assert metrics.local_successes == 1
    assert metrics.local_failures == 1
    assert metrics.escalations == 1
    assert [attempt.tier for attempt in coordinator.policy.history("t-1")] == [
        ExecutionTier.LOCAL,
        ExecutionTier.ESCALATION,
    ]


@pytest.mark.asyncio
async def test_low_executor_quality_escalates(make_executor) -> None:
    weak = ExecutionOutcome(success=True, elapsed_ms=50.0, result="meh", quality_score=0.4)
    coordinator = HybridCoordinator(make_executor(weak), make_executor(_ESCALATED_OK))

    result = await coordinator.execute("explain the diff", complexity="moderate")

    assert result.escalated is True
    assert result.decision.confidence == 0.8
    assert "below threshold" in (result.escalation_reason or "")


@pytest.mark.asyncio
async def test_empty_local_result_scores_low_and_escalates(make_executor) -> None:
    empty = ExecutionOutcome(success=True, elapsed_ms=50.0, result="")
    coordinator = HybridCoordinator(make_executor(empty), make_executor(_ESCALATED_OK))

    result = await coordinator.execute("explain the diff", complexity="moderate")

    assert result.escalated is True
    assert result.quality_score == pytest.approx(0.8)


@pytest.mark.asyncio
async def test_validator_collaborator_drives_quality(make_executor) -> None:
    validator = _StaticValidator(
        ValidationResult(is_valid=True, score=0.95, should_escalate=False),
    )
    coordinator = HybridCoordinator(
        make_executor(_LOCAL_OK),
        make_executor(_ESCALATED_OK),
        validator=validator,
    )

    result = await coordinator.execute("explain the diff", complexity="moderate")

    assert result.escalated is False
    assert result.quality_score == pytest.approx(0.95)
    assert validator.seen == ["local answer"]


@pytest.mark.asyncio
async def test_failed_local_run_escalates_with_failure_reason(make_executor) -> None:
    failed = ExecutionOutcome(success=False, elapsed_ms=10.0, error="model crashed")
    coordinator = HybridCoordinator(make_executor(failed), make_executor(_ESCALATED_OK))

    result = await coordinator.execute("explain the diff", complexity="simple")

    assert result.success is True
    assert result.escalated is True
    assert result.escalation_reason == "Local execution failed: model crashed"
    assert result.decision.confidence == 0.9

    metrics = coordinator.metrics()
    assert metrics.total_executions == 2
    assert metrics.local_failures == 2
    assert metrics.escalations == 1
    assert metrics.escalation_rate == pytest.approx(0.5)


@pytest.mark.asyncio
async def test_failed_local_run_kept_when_failure_escalation_disabled(make_executor) -> None:
    failed = ExecutionOutcome(success=False, elapsed_ms=10.0, error="model crashed")
    escalation = make_executor(_ESCALATED_OK)
    coordinator = HybridCoordinator(
        make_executor(failed),
        escalation,
        settings=TierSettings(escalate_on_local_failure=False),
    )

    result = await coordinator.execute("explain the diff", complexity="simple")

    assert result.success is False
    assert result.tier == ExecutionTier.LOCAL
    assert result.error == "model crashed"
    assert result.quality_score is None
    assert escalation.calls == []


@pytest.mark.asyncio
async def test_executor_exception_becomes_failed_attempt(make_executor) -> None:
    coordinator = HybridCoordinator(
        make_executor(RuntimeError("socket closed")),
        make_executor(RuntimeError("also down")),
    )

    result = await coordinator.execute("explain the diff", task_id="t-err", complexity="simple")

    assert result.success is False
    assert result.escalated is True
    assert result.error == "also down"
    history = coordinator.policy.history("t-err")
    assert [attempt.success for attempt in history] == [False, False]
    assert history[0].error == "socket closed"


@pytest.mark.asyncio
async def test_configuration_error_from_executor_propagates(make_executor) -> None:
    coordinator = HybridCoordinator(
        make_executor(ConfigurationError("template is empty")),
        make_executor(_ESCALATED_OK),
    )

    with pytest.raises(ConfigurationError, match="template is empty"):
        await coordinator.execute("explain the diff", complexity="simple")


@pytest.mark.asyncio
async def test_hanging_local_tier_is_cancelled_at_deadline(make_executor) -> None:
    hanging = _HangingExecutor()
    coordinator = HybridCoordinator(
        hanging,
        make_executor(_ESCALATED_OK),
        settings=TierSettings(local_timeout_seconds=0.05),
    )

    result = await coordinator.execute("explain the diff", complexity="simple")

    assert hanging.cancelled is True
    assert result.escalated is True
    assert "timed out" in (result.escalation_reason or "")
    assert result.result == "escalated answer"


@pytest.mark.asyncio
async def test_failing_history_escalates_before_running_locally(make_executor) -> None:
    policy = EscalationPolicy()
    for _ in range(2):
        now = utc_now()
        policy.record_attempt(
            "flaky",
            ExecutionAttempt(
                tier=ExecutionTier.LOCAL,
                started_at=now,
                finished_at=now,
                success=False,
            ),
        )
    local = make_executor(_LOCAL_OK)
    coordinator = HybridCoordinator(local, make_executor(_ESCALATED_OK), policy=policy)

    result = await coordinator.execute("explain the diff", task_id="flaky", complexity="simple")

    assert local.calls == []
    assert result.execution_mode == "escalation"
    assert "consecutive" in (result.escalation_reason or "")


@pytest.mark.asyncio
async def test_explicit_steps_are_passed_to_executor(make_executor) -> None:
    local = make_executor(_LOCAL_OK)
    coordinator = HybridCoordinator(local, make_executor(_ESCALATED_OK))

    await coordinator.execute(
        "ship the release",
        complexity="simple",
        steps=["bump version", "tag commit"],
    )

    assert local.calls == [["bump version", "tag commit"]]


@pytest.mark.asyncio
async def test_drain_runs_queue_in_dependency_order(make_executor) -> None:
    local = make_executor(_LOCAL_OK)
    coordinator = HybridCoordinator(local, make_executor(_ESCALATED_OK))
    queue = TaskQueue()
    first = queue.add("rename a variable")
    second = queue.add("update the changelog", dependencies=[first.id])

    results = await coordinator.drain(queue)

    assert [result.task_id for result in results] == [first.id, second.id]
    assert first.status == TaskStatus.COMPLETED
    assert second.status == TaskStatus.COMPLETED
    assert queue.current is None
    assert await coordinator.run_next(queue) is None


@pytest.mark.asyncio
async def test_drain_stops_when_dependency_fails(make_executor) -> None:
    failed = ExecutionOutcome(success=False, elapsed_ms=5.0, error="no capacity")
    coordinator = HybridCoordinator(
        make_executor(failed),
        make_executor(failed),
    )
    queue = TaskQueue()
    first = queue.add("rename a variable")
    second = queue.add("update the changelog", dependencies=[first.id])

    results = await coordinator.drain(queue)

    assert len(results) == 1
    assert first.status == TaskStatus.FAILED
    assert first.error == "no capacity"
    assert second.status == TaskStatus.PENDING
    assert queue.is_blocked() is True


@pytest.mark.asyncio
async def test_raising_validator_falls_back_to_heuristic_score(make_executor, caplog) -> None:
    escalation = make_executor(_ESCALATED_OK)
    coordinator = HybridCoordinator(
        make_executor(_LOCAL_OK),
        escalation,
        validator=_BrokenValidator(RuntimeError("validator down")),
    )

    with caplog.at_level("WARNING"):
        result = await coordinator.execute("explain the diff", complexity="moderate")

    assert result.success is True
    assert result.escalated is False
    assert result.quality_score == pytest.approx(0.8)
    assert escalation.calls == []
    assert "validator down" in caplog.text


@pytest.mark.asyncio
async def test_raising_validator_uses_executor_score_and_can_escalate(make_executor) -> None:
    weak = ExecutionOutcome(success=True, elapsed_ms=50.0, result="meh", quality_score=0.4)
    coordinator = HybridCoordinator(
        make_executor(weak),
        make_executor(_ESCALATED_OK),
        validator=_BrokenValidator(ValueError("bad rubric")),
    )

    result = await coordinator.execute("explain the diff", complexity="moderate")

    assert result.escalated is True
    assert "below threshold" in (result.escalation_reason or "")


@pytest.mark.asyncio
async def test_validator_configuration_error_propagates(make_executor) -> None:
    coordinator = HybridCoordinator(
        make_executor(_LOCAL_OK),
        make_executor(_ESCALATED_OK),
        validator=_BrokenValidator(ConfigurationError("no rubric")),
    )

    with pytest.raises(ConfigurationError, match="no rubric"):
        await coordinator.execute("explain the diff", complexity="moderate")


@pytest.mark.asyncio
async def test_planner_steps_run_when_none_are_given(make_executor, make_provider) -> None:
    provider = make_provider(
        [
            '{"steps": ['
            '{"id": "b", "description": "write the notes", "dependencies": ["a"]},'
            '{"id": "a", "description": "collect merged PRs", "dependencies": []}'
            "]}",
        ],
    )
    local = make_executor(_LOCAL_OK)
    coordinator = HybridCoordinator(
        local,
        make_executor(_ESCALATED_OK),
        planner=TaskPlanner(provider),
    )

    result = await coordinator.execute("draft release notes", complexity="simple")

    assert local.calls == [["collect merged PRs", "write the notes"]]
    assert result.plan == ["collect merged PRs", "write the notes"]
    assert "draft release notes" in provider.prompts[0]


@pytest.mark.asyncio
async def test_explicit_steps_skip_the_planner(make_executor, make_provider) -> None:
    provider = make_provider([])
    local = make_executor(_LOCAL_OK)
    coordinator = HybridCoordinator(
        local,
        make_executor(_ESCALATED_OK),
        planner=TaskPlanner(provider),
    )

    result = await coordinator.execute("ship it", complexity="simple", steps=["tag"])

    assert provider.prompts == []
    assert local.calls == [["tag"]]
    assert result.plan == ["tag"]


@pytest.mark.asyncio
async def test_planner_failure_runs_task_as_single_step(make_executor, make_provider) -> None:
    provider = make_provider([ProviderTransportError("planner offline", transient=True)])
    local = make_executor(_LOCAL_OK)
    coordinator = HybridCoordinator(
        local,
        make_executor(_ESCALATED_OK),
        planner=TaskPlanner(provider),
    )

    result = await coordinator.execute("draft release notes", complexity="simple")

    assert result.success is True
    assert local.calls == [["draft release notes"]]
    assert result.plan == ["draft release notes"]


@pytest.mark.asyncio
async def test_timed_out_tier_reports_timeout_failure_class(make_executor) -> None:
    coordinator = HybridCoordinator(
        _HangingExecutor(),
        make_executor(_ESCALATED_OK),
        settings=TierSettings(local_timeout_seconds=0.05, escalate_on_local_failure=False),
    )

    result = await coordinator.execute("explain the diff", complexity="simple")

    assert result.success is False
    assert result.failure_class == FailureClass.TIMEOUT


@pytest.mark.asyncio
async def test_transport_error_failure_class_reaches_result(make_executor) -> None:
    error = ProviderTransportError(
        "quota exhausted",
        transient=False,
        failure_class=FailureClass.BILLING_OR_QUOTA,
    )
    coordinator = HybridCoordinator(make_executor(error), make_executor(error))

    result = await coordinator.execute("explain the diff", complexity="simple")

    assert result.success is False
    assert result.escalated is True
    assert result.failure_class == FailureClass.BILLING_OR_QUOTA


@pytest.mark.asyncio
async def test_executor_failure_class_reaches_result(make_executor) -> None:
    failed = ExecutionOutcome(
        success=False,
        elapsed_ms=5.0,
        error="auth rejected",
        failure_class=FailureClass.ACCESS_OR_AUTH,
    )
    coordinator = HybridCoordinator(
        make_executor(failed),
        make_executor(_ESCALATED_OK),
        settings=TierSettings(escalate_on_local_failure=False),
    )

    result = await coordinator.execute("explain the diff", complexity="simple")

    assert result.failure_class == FailureClass.ACCESS_OR_AUTH
