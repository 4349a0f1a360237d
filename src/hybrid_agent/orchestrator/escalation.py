"""Escalation decision rules, attempt history and running metrics."""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import replace

from hybrid_agent.config import EscalationSettings
from hybrid_agent.orchestrator.models import (
    Complexity,
    EscalationDecision,
    EscalationMetrics,
    ExecutionAttempt,
    ExecutionTier,
    ValidationResult,
)

logger = logging.getLogger(__name__)

CONSECUTIVE_FAILURES_TO_ESCALATE = 2


class AttemptHistory:
    """Per-task bounded rings of execution attempts; the oldest entry is evicted first."""

    def __init__(self, capacity: int = 5) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be a positive integer")
        self.capacity = capacity
        self._rings: dict[str, deque[ExecutionAttempt]] = {}

    def append(self, task_id: str, attempt: ExecutionAttempt) -> None:
        ring = self._rings.get(task_id)
        if ring is None:
            ring = deque(maxlen=self.capacity)
            self._rings[task_id] = ring
        ring.append(attempt)

    def get(self, task_id: str) -> tuple[ExecutionAttempt, ...]:
        return tuple(self._rings.get(task_id, ()))

    def trailing_failures(self, task_id: str) -> int:
        """Length of the run of failed attempts at the end of the ring."""

        count = 0
        for attempt in reversed(self._rings.get(task_id, ())):
            if attempt.success:
                break
            count += 1
        return count

    def clear(self) -> None:
        self._rings.clear()


class EscalationPolicy:
    """Ordered rule chain deciding local-to-escalation moves, plus metrics.

    Rules are evaluated in a fixed order and the first match wins:
    complexity, timeout, validation, error count, failure history.
    Every metrics mutation and snapshot runs under one lock so a policy
    instance can be shared by coordinators on different threads.
    """

    def __init__(self, settings: EscalationSettings | None = None) -> None:
        self.settings = settings or EscalationSettings()
        self._lock = threading.Lock()
        self._history = AttemptHistory(capacity=self.settings.history_size)
        self._metrics = EscalationMetrics()
        self._local_samples = 0
        self._escalation_samples = 0

    def decide(  # noqa: PLR0911
        self,
        task_id: str,
        complexity: Complexity,
        validation: ValidationResult | None = None,
        execution_time_ms: float | None = None,
        error_count: int | None = None,
    ) -> EscalationDecision:
        """Evaluate escalation signals for one task."""

        if Complexity(complexity) == Complexity.COMPLEX:
            return EscalationDecision(
                should_escalate=True,
                reason="Task complexity is high",
                confidence=1.0,
            )

        threshold_ms = self.settings.timeout_threshold_ms
        if execution_time_ms is not None and execution_time_ms > threshold_ms:
            return EscalationDecision(
                should_escalate=True,
                reason=(
                    f"Execution timeout ({execution_time_ms:.0f}ms > "
                    f"timeout threshold {threshold_ms}ms)"
                ),
                confidence=0.9,
            )

        if validation is not None and validation.should_escalate:
            return EscalationDecision(
                should_escalate=True,
                reason=validation.reason or "Quality score below threshold",
                confidence=0.8,
            )

        max_retries = self.settings.max_retries
        if error_count is not None and error_count >= max_retries:
            return EscalationDecision(
                should_escalate=True,
                reason=f"Too many errors ({error_count} >= {max_retries})",
                confidence=0.9,
            )

        with self._lock:
            trailing = self._history.trailing_failures(task_id)
        if trailing >= CONSECUTIVE_FAILURES_TO_ESCALATE:
            return EscalationDecision(
                should_escalate=True,
                reason=f"Multiple failed attempts in history ({trailing} consecutive)",
                confidence=0.7,
            )

        return EscalationDecision(
            should_escalate=False,
            reason="Task is suitable for local execution",
            confidence=0.8,
        )

    def record_attempt(self, task_id: str, attempt: ExecutionAttempt) -> None:
        """Append an attempt to the task's history and update metrics."""

        elapsed = attempt.elapsed_ms
        with self._lock:
            self._history.append(task_id, attempt)
            metrics = self._metrics
            if attempt.tier == ExecutionTier.LOCAL:
                metrics.total_executions += 1
                if attempt.success:
                    metrics.local_successes += 1
                else:
                    metrics.local_failures += 1
                if elapsed is not None:
                    self._local_samples += 1
                    metrics.average_local_ms += (
                        elapsed - metrics.average_local_ms
                    ) / self._local_samples
            elif elapsed is not None:
                self._escalation_samples += 1
                metrics.average_escalation_ms += (
                    elapsed - metrics.average_escalation_ms
                ) / self._escalation_samples
            self._update_escalation_rate()

    def record_escalation(self, task_id: str, *, from_local: bool) -> None:
        """Count the escalation-tier run as an execution.

        Only an escalation that follows a local-tier attempt counts as an
        escalation and as a local failure. Counters only ever grow.
        """

        with self._lock:
            metrics = self._metrics
            metrics.total_executions += 1
            if from_local:
                metrics.local_failures += 1
                metrics.escalations += 1
            self._update_escalation_rate()
        logger.info("Task %s escalated (from_local=%s)", task_id, from_local)

    def failure_count(self, task_id: str) -> int:
        """Failed local attempts currently held in the task's history."""

        with self._lock:
            return sum(
                1
                for attempt in self._history.get(task_id)
                if attempt.tier == ExecutionTier.LOCAL and not attempt.success
            )

    def history(self, task_id: str) -> tuple[ExecutionAttempt, ...]:
        with self._lock:
            return self._history.get(task_id)

    def metrics(self) -> EscalationMetrics:
        """Snapshot copy of the accumulated metrics."""

        with self._lock:
            return replace(self._metrics)

    def reset_metrics(self) -> None:
        """Zero all counters and forget every task history."""

        with self._lock:
            self._metrics = EscalationMetrics()
            self._history.clear()
            self._local_samples = 0
            self._escalation_samples = 0

    def _update_escalation_rate(self) -> None:
        metrics = self._metrics
        if metrics.total_executions > 0:
            metrics.escalation_rate = metrics.escalations / metrics.total_executions
