"""Domain models for task scheduling, delegation and tiered execution."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


def utc_now() -> datetime:
    """Current UTC timestamp."""

    return datetime.now(tz=UTC)


class TaskStatus(str, Enum):
    """Todo item lifecycle states."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class TaskPriority(str, Enum):
    """Todo item priority."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class SubAgentStatus(str, Enum):
    """Delegated sub-task lifecycle states."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class Complexity(str, Enum):
    """Task complexity used by the escalation policy."""

    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"


class ExecutionTier(str, Enum):
    """Execution tier that ran an attempt."""

    LOCAL = "local"
    ESCALATION = "escalation"


class FailureClass(str, Enum):
    """Normalized provider failure classes."""

    TIMEOUT = "timeout"
    BACKEND_TRANSIENT = "backend_transient"
    BACKEND_NON_RETRYABLE = "backend_non_retryable"
    BILLING_OR_QUOTA = "billing_or_quota"
    ACCESS_OR_AUTH = "access_or_auth"
    MODEL_NOT_AVAILABLE = "model_not_available"


@dataclass(slots=True)
class TaskItem:
    """One todo item owned by the task queue."""

    id: str
    description: str
    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.MEDIUM
    dependencies: tuple[str, ...] = ()
    created_at: datetime = field(default_factory=utc_now)
    completed_at: datetime | None = None
    error: str | None = None


@dataclass(slots=True)
class TaskProgress:
    """Todo status counts."""

    total: int
    pending: int
    in_progress: int
    completed: int
    failed: int

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass(slots=True)
class SubAgentTask:
    """One delegated sub-task."""

    id: str
    name: str
    description: str
    workflow_ref: str | None = None
    params: dict[str, Any] = field(default_factory=dict)
    status: SubAgentStatus = SubAgentStatus.PENDING
    result: Any = None
    error: str | None = None
    created_at: datetime = field(default_factory=utc_now)
    finished_at: datetime | None = None


@dataclass(slots=True)
class SubAgentProgress:
    """Sub-agent status counts."""

    total: int
    pending: int
    running: int
    completed: int
    failed: int

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass(slots=True)
class ExecutionAttempt:
    """One recorded tier execution, kept in the per-task attempt history."""

    tier: ExecutionTier
    started_at: datetime
    success: bool
    finished_at: datetime | None = None
    error: str | None = None
    quality_score: float | None = None

    @property
    def elapsed_ms(self) -> float | None:
        """Wall-clock duration, when the attempt has finished."""

        if self.finished_at is None:
            return None
        return max(0.0, (self.finished_at - self.started_at).total_seconds() * 1000.0)


@dataclass(slots=True, frozen=True)
class EscalationDecision:
    """Outcome of one escalation policy evaluation."""

    should_escalate: bool
    reason: str
    confidence: float


@dataclass(slots=True)
class EscalationMetrics:
    """Accumulated escalation counters."""

    total_executions: int = 0
    local_successes: int = 0
    local_failures: int = 0
    escalations: int = 0
    escalation_rate: float = 0.0
    average_local_ms: float = 0.0
    average_escalation_ms: float = 0.0

    def to_dict(self) -> dict[str, float | int]:
        return asdict(self)


@dataclass(slots=True)
class ValidationResult:
    """Quality assessment of one produced result."""

    is_valid: bool
    score: float
    should_escalate: bool
    reason: str | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)


@dataclass(slots=True)
class ExecutionOutcome:
    """Result returned by a tier executor for one plan."""

    success: bool
    elapsed_ms: float
    result: str | None = None
    error: str | None = None
    quality_score: float | None = None
    timed_out: bool = False
    steps_completed: int = 0
    failure_class: FailureClass | None = None


@dataclass(slots=True)
class HybridExecutionResult:
    """Decision-annotated result of one coordinated task execution."""

    task_id: str
    success: bool
    tier: ExecutionTier
    escalated: bool
    decision: EscalationDecision
    complexity: Complexity
    escalation_reason: str | None = None
    local_elapsed_ms: float | None = None
    escalation_elapsed_ms: float | None = None
    quality_score: float | None = None
    result: str | None = None
    error: str | None = None
    failure_class: FailureClass | None = None
    plan: list[str] = field(default_factory=list)

    @property
    def execution_mode(self) -> str:
        """`local`, `escalation` (direct) or `hybrid` (local then escalation)."""

        if self.tier == ExecutionTier.LOCAL:
            return "local"
        if self.local_elapsed_ms is None:
            return "escalation"
        return "hybrid"
