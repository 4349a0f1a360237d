"""Error taxonomy for scheduling, delegation and tier execution."""

from __future__ import annotations

from collections.abc import Iterable

from hybrid_agent.orchestrator.models import FailureClass


class OrchestratorError(Exception):
    """Base class for orchestrator contract violations."""


class CapacityExceededError(OrchestratorError):
    """A queue or tracker is at its configured limit."""

    def __init__(self, message: str, *, limit: int) -> None:
        super().__init__(message)
        self.limit = limit


class TaskNotFoundError(OrchestratorError):
    """Unknown id passed to a state-transition call."""

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task {task_id} not found")
        self.task_id = task_id


class UnmetDependencyError(OrchestratorError):
    """Attempt to start a task whose dependencies are not all completed."""

    def __init__(self, task_id: str, unmet: Iterable[str]) -> None:
        self.task_id = task_id
        self.unmet = tuple(unmet)
        super().__init__(f"Task {task_id} has unmet dependencies: {', '.join(self.unmet)}")


class InvalidTransitionError(OrchestratorError):
    """Status transition not allowed from the current state."""


class TaskBusyError(OrchestratorError):
    """Another task is already current."""

    def __init__(self, task_id: str, current_task_id: str) -> None:
        super().__init__(
            f"Cannot start task {task_id}: task {current_task_id} is still in progress",
        )
        self.task_id = task_id
        self.current_task_id = current_task_id


class ConfigurationError(OrchestratorError, ValueError):
    """Invalid or missing collaborator configuration."""


class ProviderTransportError(RuntimeError):
    """Generation or execution collaborator failed, with retryability hint."""

    def __init__(
        self,
        message: str,
        *,
        transient: bool,
        failure_class: FailureClass | None = None,
        timed_out: bool = False,
    ) -> None:
        super().__init__(message)
        self.transient = transient
        self.failure_class = failure_class
        self.timed_out = timed_out
