from __future__ import annotations

import allure
import pytest

from hybrid_agent.config import QualityLoopSettings
from hybrid_agent.orchestrator.errors import ProviderTransportError
from hybrid_agent.orchestrator.executors import ProviderTierExecutor
from hybrid_agent.orchestrator.models import ExecutionTier, FailureClass
from hybrid_agent.refinement.loop import QualityLoop

pytestmark = [
    allure.epic("Escalation"),
    allure.feature("Provider Tier Executor"),
]


@pytest.mark.asyncio
async def test_steps_run_in_order_with_previous_outputs_as_context(make_provider) -> None:
    provider = make_provider(["outline ready", "draft ready"])
    executor = ProviderTierExecutor(provider, tier=ExecutionTier.LOCAL)

    outcome = await executor.execute_plan(["Write outline", "Write draft"])

    assert outcome.success is True
    assert outcome.steps_completed == 2
    assert outcome.result == "outline ready\n\ndraft ready"
    assert outcome.quality_score is None
    assert provider.prompts[0] == "Step 1/2: Write outline"
    assert provider.prompts[1].startswith("Step 2/2: Write draft")
    assert "1. outline ready" in provider.prompts[1]


@pytest.mark.asyncio
async def test_unavailable_provider_fails_without_calls(make_provider) -> None:
    provider = make_provider(available=False)
    executor = ProviderTierExecutor(provider, tier="escalation")

    outcome = await executor.execute_plan(["anything"])

    assert outcome.success is False
    assert outcome.error == "escalation provider is not available"
    assert outcome.failure_class == FailureClass.BACKEND_NON_RETRYABLE
    assert provider.prompts == []


@pytest.mark.asyncio
async def test_transport_failure_becomes_failed_outcome(make_provider) -> None:
    provider = make_provider(
        [
            "first done",
            ProviderTransportError("timed out", transient=True, timed_out=True),
            ProviderTransportError("timed out", transient=True, timed_out=True),
        ],
    )
    executor = ProviderTierExecutor(provider, tier=ExecutionTier.LOCAL)

    outcome = await executor.execute_plan(["one", "two", "three"])

    assert outcome.success is False
    assert outcome.timed_out is True
    assert outcome.steps_completed == 1
    assert outcome.result == "first done"
    assert outcome.error == "timed out"
    assert outcome.failure_class == FailureClass.TIMEOUT
    assert len(provider.prompts) == 3
    assert provider.prompts[1] == provider.prompts[2]


@pytest.mark.asyncio
async def test_quality_loop_refines_each_step_and_reports_lowest_score(make_provider) -> None:
    provider = make_provider(
        [
            "step one raw",
            "QUALITY_SCORE: 0.9\nSUMMARY:\nfine",
            "step two raw",
            "QUALITY_SCORE: 0.85\nSUMMARY:\nfine",
        ],
    )
    loop = QualityLoop(provider, QualityLoopSettings(max_iterations=1))
    executor = ProviderTierExecutor(provider, tier=ExecutionTier.LOCAL, quality_loop=loop)

    outcome = await executor.execute_plan(["one", "two"])

    assert outcome.success is True
    assert outcome.quality_score == pytest.approx(0.85)
    assert outcome.result == "step one raw\n\nstep two raw"


@pytest.mark.asyncio
async def test_transient_step_failure_is_retried(make_provider) -> None:
    provider = make_provider(
        [
            ProviderTransportError(
                "backend busy",
                transient=True,
                failure_class=FailureClass.BACKEND_TRANSIENT,
            ),
            "recovered",
            "second done",
        ],
    )
    executor = ProviderTierExecutor(provider, tier=ExecutionTier.LOCAL, max_retries=2)

    outcome = await executor.execute_plan(["one", "two"])

    assert outcome.success is True
    assert outcome.result == "recovered\n\nsecond done"
    assert outcome.failure_class is None
    assert len(provider.prompts) == 3
    assert provider.prompts[0] == provider.prompts[1] == "Step 1/2: one"


@pytest.mark.asyncio
async def test_non_retryable_failure_stops_without_retry(make_provider) -> None:
    provider = make_provider(
        [
            ProviderTransportError(
                "token rejected",
                transient=False,
                failure_class=FailureClass.ACCESS_OR_AUTH,
            ),
        ],
    )
    executor = ProviderTierExecutor(provider, tier=ExecutionTier.LOCAL, max_retries=3)

    outcome = await executor.execute_plan(["one"])

    assert outcome.success is False
    assert outcome.failure_class == FailureClass.ACCESS_OR_AUTH
    assert outcome.steps_completed == 0
    assert len(provider.prompts) == 1


@pytest.mark.asyncio
async def test_zero_retries_fails_on_first_transient_error(make_provider) -> None:
    provider = make_provider([ProviderTransportError("connection reset", transient=True)])
    executor = ProviderTierExecutor(provider, tier=ExecutionTier.LOCAL, max_retries=0)

    outcome = await executor.execute_plan(["one"])

    assert outcome.success is False
    assert outcome.failure_class == FailureClass.BACKEND_TRANSIENT
    assert len(provider.prompts) == 1


@pytest.mark.parametrize(
    ("retry_number", "upper_bound"),
    [(1, 0.5), (2, 1.0), (3, 2.0)],
)
def test_retry_delay_is_jittered_below_exponential_cap(
    make_provider,
    retry_number: int,
    upper_bound: float,
) -> None:
    executor = ProviderTierExecutor(
        make_provider(),
        tier=ExecutionTier.LOCAL,
        retry_base_seconds=0.5,
    )

    delays = [executor._retry_delay(retry_number) for _ in range(50)]

    assert all(0 <= delay <= upper_bound for delay in delays)
