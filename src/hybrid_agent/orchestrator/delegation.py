"""Sub-agent delegation tracker."""

from __future__ import annotations

import logging
from typing import Any
from uuid import uuid4

from hybrid_agent.orchestrator.backend.base import WorkflowExecutor
from hybrid_agent.orchestrator.errors import CapacityExceededError, TaskNotFoundError
from hybrid_agent.orchestrator.models import (
    SubAgentProgress,
    SubAgentStatus,
    SubAgentTask,
    utc_now,
)

logger = logging.getLogger(__name__)

PLACEHOLDER_RESULT: dict[str, str] = {"message": "Task executed without workflow"}


class DelegationTracker:
    """Tracks delegated sub-tasks and runs them through an optional workflow executor."""

    def __init__(
        self,
        max_sub_agents: int = 10,
        workflow_executor: WorkflowExecutor | None = None,
    ) -> None:
        if max_sub_agents <= 0:
            raise ValueError("max_sub_agents must be a positive integer")
        self.max_sub_agents = max_sub_agents
        self._workflow_executor = workflow_executor
        self._tasks: dict[str, SubAgentTask] = {}

    def set_workflow_executor(self, executor: WorkflowExecutor | None) -> None:
        self._workflow_executor = executor

    def create(
        self,
        name: str,
        description: str,
        workflow_ref: str | None = None,
        params: dict[str, Any] | None = None,
    ) -> SubAgentTask:
        """Register a pending sub-task."""

        if len(self._tasks) >= self.max_sub_agents:
            raise CapacityExceededError(
                f"Maximum number of sub-agents reached ({self.max_sub_agents})",
                limit=self.max_sub_agents,
            )
        task = SubAgentTask(
            id=str(uuid4()),
            name=name,
            description=description,
            workflow_ref=workflow_ref,
            params=dict(params or {}),
        )
        self._tasks[task.id] = task
        return task

    async def execute(self, task_id: str) -> SubAgentTask:
        """Run one sub-task; collaborator failures are recorded, never raised."""

        task = self._require(task_id)
        task.status = SubAgentStatus.RUNNING
        task.error = None
        try:
            if task.workflow_ref and self._workflow_executor is not None:
                result = await self._workflow_executor.execute(task.workflow_ref, task.params)
            else:
                result = dict(PLACEHOLDER_RESULT)
        except Exception as error:  # noqa: BLE001
            task.status = SubAgentStatus.FAILED
            task.error = str(error) or type(error).__name__
            logger.warning("Sub-agent %s (%s) failed: %s", task.name, task.id, task.error)
        else:
            task.result = result
            task.status = SubAgentStatus.COMPLETED
        task.finished_at = utc_now()
        return task

    def get(self, task_id: str) -> SubAgentTask | None:
        return self._tasks.get(task_id)

    def all(self) -> list[SubAgentTask]:
        return list(self._tasks.values())

    def pending(self) -> list[SubAgentTask]:
        return self._with_status(SubAgentStatus.PENDING)

    def running(self) -> list[SubAgentTask]:
        return self._with_status(SubAgentStatus.RUNNING)

    def completed(self) -> list[SubAgentTask]:
        return self._with_status(SubAgentStatus.COMPLETED)

    def failed(self) -> list[SubAgentTask]:
        return self._with_status(SubAgentStatus.FAILED)

    def progress(self) -> SubAgentProgress:
        return SubAgentProgress(
            total=len(self._tasks),
            pending=len(self.pending()),
            running=len(self.running()),
            completed=len(self.completed()),
            failed=len(self.failed()),
        )

    def clear_completed(self) -> int:
        """Drop completed sub-tasks and return how many were removed."""

        removed = [
            task_id
            for task_id, task in self._tasks.items()
            if task.status == SubAgentStatus.COMPLETED
        ]
        for task_id in removed:
            del self._tasks[task_id]
        return len(removed)

    def reset(self) -> None:
        self._tasks.clear()

    def _require(self, task_id: str) -> SubAgentTask:
        task = self._tasks.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    def _with_status(self, status: SubAgentStatus) -> list[SubAgentTask]:
        return [task for task in self._tasks.values() if task.status == status]
