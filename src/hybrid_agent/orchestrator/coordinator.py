"""Two-tier execution coordinator: run locally, escalate when the policy says so."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import timedelta
from uuid import uuid4

from hybrid_agent.config import TierSettings
from hybrid_agent.orchestrator.backend.base import TierExecutor, ValidationCollaborator
from hybrid_agent.orchestrator.complexity import TaskAnalysis, analyze_task
from hybrid_agent.orchestrator.errors import ConfigurationError, ProviderTransportError
from hybrid_agent.orchestrator.escalation import EscalationPolicy
from hybrid_agent.orchestrator.models import (
    Complexity,
    EscalationDecision,
    EscalationMetrics,
    ExecutionAttempt,
    ExecutionOutcome,
    ExecutionTier,
    FailureClass,
    HybridExecutionResult,
    ValidationResult,
    utc_now,
)
from hybrid_agent.orchestrator.planner import TaskPlanner
from hybrid_agent.orchestrator.todo import TaskQueue

logger = logging.getLogger(__name__)

NON_EMPTY_RESULT_SCORE = 0.8
EMPTY_RESULT_SCORE = 0.5
LOCAL_FAILURE_CONFIDENCE = 0.9


@dataclass(slots=True)
class TierRun:
    """Outcome of one tier execution plus its quality assessment."""

    tier: ExecutionTier
    outcome: ExecutionOutcome
    validation: ValidationResult | None
    attempt: ExecutionAttempt

    @property
    def quality_score(self) -> float | None:
        return self.validation.score if self.validation is not None else None


class HybridCoordinator:
    """Orchestrates one task end-to-end across the local and escalation tiers.

    Ordinary task failures never raise: executor exceptions and deadline
    expiries become failed attempts that feed the escalation decision. Only
    `ConfigurationError` propagates.
    """

    def __init__(  # noqa: PLR0913
        self,
        local_executor: TierExecutor | None,
        escalation_executor: TierExecutor | None,
        *,
        policy: EscalationPolicy | None = None,
        validator: ValidationCollaborator | None = None,
        settings: TierSettings | None = None,
        analyzer: Callable[[str], TaskAnalysis] = analyze_task,
        planner: TaskPlanner | None = None,
    ) -> None:
        if local_executor is None:
            raise ConfigurationError("Local tier executor is required")
        if escalation_executor is None:
            raise ConfigurationError("Escalation tier executor is required")
        self.local_executor = local_executor
        self.escalation_executor = escalation_executor
        self.policy = policy or EscalationPolicy()
        self.validator = validator
        self.settings = settings or TierSettings()
        self.analyzer = analyzer
        self.planner = planner

    async def execute(
        self,
        description: str,
        *,
        task_id: str | None = None,
        complexity: Complexity | str | None = None,
        steps: Sequence[str] | None = None,
    ) -> HybridExecutionResult:
        """Run one task and return a decision-annotated result."""

        resolved_id = task_id or str(uuid4())
        resolved_complexity = (
            Complexity(complexity)
            if complexity is not None
            else self.analyzer(description).complexity
        )
        plan = list(steps) if steps else await self._plan(description)

        precheck = self.policy.decide(
            resolved_id,
            resolved_complexity,
            error_count=self.policy.failure_count(resolved_id),
        )
        if precheck.should_escalate:
            logger.info(
                "Task %s goes straight to escalation tier: %s",
                resolved_id,
                precheck.reason,
            )
            self.policy.record_escalation(resolved_id, from_local=False)
            escalation = await self._run_tier(ExecutionTier.ESCALATION, plan)
            self.policy.record_attempt(resolved_id, escalation.attempt)
            return _build_result(
                task_id=resolved_id,
                complexity=resolved_complexity,
                decision=precheck,
                used=escalation,
                local=None,
                plan=plan,
            )

        logger.info("Task %s running on local tier (%d steps)", resolved_id, len(plan))
        local = await self._run_tier(ExecutionTier.LOCAL, plan)
        self.policy.record_attempt(resolved_id, local.attempt)

        decision = self.policy.decide(
            resolved_id,
            resolved_complexity,
            validation=local.validation,
            execution_time_ms=local.outcome.elapsed_ms,
            error_count=self.policy.failure_count(resolved_id),
        )
        if (
            not local.outcome.success
            and not decision.should_escalate
            and self.settings.escalate_on_local_failure
        ):
            decision = EscalationDecision(
                should_escalate=True,
                reason=f"Local execution failed: {local.outcome.error or 'unknown error'}",
                confidence=LOCAL_FAILURE_CONFIDENCE,
            )

        if not decision.should_escalate:
            return _build_result(
                task_id=resolved_id,
                complexity=resolved_complexity,
                decision=decision,
                used=local,
                local=local,
                plan=plan,
            )

        logger.info("Escalating task %s: %s", resolved_id, decision.reason)
        self.policy.record_escalation(resolved_id, from_local=True)
        escalation = await self._run_tier(ExecutionTier.ESCALATION, plan)
        self.policy.record_attempt(resolved_id, escalation.attempt)
        return _build_result(
            task_id=resolved_id,
            complexity=resolved_complexity,
            decision=decision,
            used=escalation,
            local=local,
            plan=plan,
        )

    async def run_next(self, queue: TaskQueue) -> HybridExecutionResult | None:
        """Execute the next runnable queue item; `None` when nothing can run."""

        item = queue.next_task()
        if item is None:
            return None
        queue.start(item.id)
        try:
            result = await self.execute(item.description, task_id=item.id)
        except Exception as error:
            queue.fail(item.id, str(error) or type(error).__name__)
            raise
        if result.success:
            queue.complete(item.id)
        else:
            queue.fail(item.id, result.error or "Execution failed")
        return result

    async def drain(self, queue: TaskQueue) -> list[HybridExecutionResult]:
        """Run queue items until none is runnable."""

        results: list[HybridExecutionResult] = []
        while True:
            result = await self.run_next(queue)
            if result is None:
                break
            results.append(result)
        if queue.is_blocked():
            logger.warning(
                "Queue blocked with %d pending tasks waiting on unmet dependencies",
                len(queue.pending()),
            )
        return results

    def metrics(self) -> EscalationMetrics:
        return self.policy.metrics()

    async def _plan(self, description: str) -> list[str]:
        if self.planner is None:
            return [description]
        try:
            planned = await self.planner.plan(description)
        except ConfigurationError:
            raise
        except Exception as error:  # noqa: BLE001
            logger.warning("Planning failed, running the task as one step: %s", error)
            return [description]
        return planned.descriptions or [description]

    async def _run_tier(self, tier: ExecutionTier, plan: list[str]) -> TierRun:
        if tier == ExecutionTier.LOCAL:
            executor = self.local_executor
            timeout_seconds = self.settings.local_timeout_seconds
        else:
            executor = self.escalation_executor
            timeout_seconds = self.settings.escalation_timeout_seconds

        started_at = utc_now()
        started = time.monotonic()
        try:
            outcome = await asyncio.wait_for(
                executor.execute_plan(plan),
                timeout=timeout_seconds,
            )
        except TimeoutError:
            logger.warning("%s tier timed out after %gs", tier.value, timeout_seconds)
            outcome = ExecutionOutcome(
                success=False,
                elapsed_ms=_elapsed_ms(started),
                error=f"{tier.value} tier timed out after {timeout_seconds:g}s",
                timed_out=True,
                failure_class=FailureClass.TIMEOUT,
            )
        except ConfigurationError:
            raise
        except Exception as error:  # noqa: BLE001
            logger.warning("%s tier raised %s: %s", tier.value, type(error).__name__, error)
            outcome = ExecutionOutcome(
                success=False,
                elapsed_ms=_elapsed_ms(started),
                error=str(error) or type(error).__name__,
                failure_class=(
                    error.failure_class if isinstance(error, ProviderTransportError) else None
                ),
            )

        validation = self._validate(outcome) if outcome.success else None
        attempt = ExecutionAttempt(
            tier=tier,
            started_at=started_at,
            finished_at=started_at + timedelta(milliseconds=outcome.elapsed_ms),
            success=outcome.success,
            error=outcome.error,
            quality_score=validation.score if validation is not None else None,
        )
        if not outcome.success:
            logger.warning("%s tier failed: %s", tier.value, outcome.error)
        return TierRun(tier=tier, outcome=outcome, validation=validation, attempt=attempt)

    def _validate(self, outcome: ExecutionOutcome) -> ValidationResult:
        if self.validator is not None:
            try:
                return self.validator.validate(outcome.result or "")
            except ConfigurationError:
                raise
            except Exception as error:  # noqa: BLE001
                logger.warning(
                    "Validator raised %s: %s; using executor score",
                    type(error).__name__,
                    error,
                )

        if outcome.quality_score is not None:
            score = outcome.quality_score
        elif outcome.result:
            score = NON_EMPTY_RESULT_SCORE
        else:
            score = EMPTY_RESULT_SCORE
        threshold = self.policy.settings.quality_threshold
        below = score < threshold
        return ValidationResult(
            is_valid=score >= EMPTY_RESULT_SCORE,
            score=score,
            should_escalate=below,
            reason=f"Quality score {score:.2f} below threshold {threshold}" if below else None,
        )


def _build_result(
    *,
    task_id: str,
    complexity: Complexity,
    decision: EscalationDecision,
    used: TierRun,
    local: TierRun | None,
    plan: list[str],
) -> HybridExecutionResult:
    escalated = used.tier == ExecutionTier.ESCALATION
    return HybridExecutionResult(
        task_id=task_id,
        success=used.outcome.success,
        tier=used.tier,
        escalated=escalated,
        decision=decision,
        complexity=complexity,
        escalation_reason=decision.reason if escalated else None,
        local_elapsed_ms=local.outcome.elapsed_ms if local is not None else None,
        escalation_elapsed_ms=used.outcome.elapsed_ms if escalated else None,
        quality_score=used.quality_score,
        result=used.outcome.result,
        error=used.outcome.error,
        failure_class=used.outcome.failure_class,
        plan=list(plan),
    )


def _elapsed_ms(started: float) -> float:
    return (time.monotonic() - started) * 1000.0
