"""Dependency-aware todo scheduler."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from uuid import uuid4

from hybrid_agent.orchestrator.errors import (
    CapacityExceededError,
    InvalidTransitionError,
    TaskBusyError,
    TaskNotFoundError,
    UnmetDependencyError,
)
from hybrid_agent.orchestrator.models import (
    TaskItem,
    TaskPriority,
    TaskProgress,
    TaskStatus,
    utc_now,
)

logger = logging.getLogger(__name__)


class TaskQueue:
    """Ordered todo list whose items start only after their dependencies complete.

    Items keep insertion order; `next_task()` ignores priority and returns the
    first runnable pending item. At most one item is current at a time. With
    `exclusive_start` a second `start()` is rejected with `TaskBusyError`
    instead of silently replacing the current pointer.
    """

    def __init__(self, max_items: int = 50, *, exclusive_start: bool = True) -> None:
        if max_items <= 0:
            raise ValueError("max_items must be a positive integer")
        self.max_items = max_items
        self.exclusive_start = exclusive_start
        self._items: dict[str, TaskItem] = {}
        self._current_id: str | None = None

    def add(
        self,
        description: str,
        priority: TaskPriority = TaskPriority.MEDIUM,
        dependencies: Iterable[str] | None = None,
    ) -> TaskItem:
        """Append a pending item."""

        if len(self._items) >= self.max_items:
            raise CapacityExceededError(
                f"Todo list is full (max {self.max_items} items)",
                limit=self.max_items,
            )
        item = TaskItem(
            id=str(uuid4()),
            description=description,
            priority=TaskPriority(priority),
            dependencies=tuple(dict.fromkeys(dependencies or ())),
        )
        unknown = [dep for dep in item.dependencies if dep not in self._items]
        if unknown:
            logger.warning("Task %s depends on unknown ids: %s", item.id, ", ".join(unknown))
        self._items[item.id] = item
        return item

    def next_task(self) -> TaskItem | None:
        """Return the first pending item with all dependencies completed."""

        for item in self._items.values():
            if item.status == TaskStatus.PENDING and not self._unmet_dependencies(item):
                return item
        return None

    def start(self, task_id: str) -> TaskItem:
        item = self._require(task_id)
        if item.status != TaskStatus.PENDING:
            raise InvalidTransitionError(
                f"Task {task_id} cannot start from status {item.status.value}",
            )
        unmet = self._unmet_dependencies(item)
        if unmet:
            raise UnmetDependencyError(task_id, unmet)
        if self._current_id is not None and self._current_id != task_id:
            if self.exclusive_start:
                raise TaskBusyError(task_id, self._current_id)
            logger.warning(
                "Replacing current task %s with %s",
                self._current_id,
                task_id,
            )
        item.status = TaskStatus.IN_PROGRESS
        self._current_id = task_id
        return item

    def complete(self, task_id: str) -> TaskItem:
        item = self._require(task_id)
        item.status = TaskStatus.COMPLETED
        item.completed_at = utc_now()
        self._release(task_id)
        return item

    def fail(self, task_id: str, reason: str) -> TaskItem:
        item = self._require(task_id)
        item.status = TaskStatus.FAILED
        item.error = reason
        item.completed_at = utc_now()
        self._release(task_id)
        return item

    def get(self, task_id: str) -> TaskItem:
        return self._require(task_id)

    @property
    def current(self) -> TaskItem | None:
        """Item currently in progress, if any."""

        if self._current_id is None:
            return None
        return self._items.get(self._current_id)

    def items(self) -> list[TaskItem]:
        return list(self._items.values())

    def pending(self) -> list[TaskItem]:
        return self._with_status(TaskStatus.PENDING)

    def in_progress(self) -> list[TaskItem]:
        return self._with_status(TaskStatus.IN_PROGRESS)

    def completed(self) -> list[TaskItem]:
        return self._with_status(TaskStatus.COMPLETED)

    def failed(self) -> list[TaskItem]:
        return self._with_status(TaskStatus.FAILED)

    def is_blocked(self) -> bool:
        """True when pending items exist but none of them can run."""

        return bool(self.pending()) and self.next_task() is None

    def progress(self) -> TaskProgress:
        return TaskProgress(
            total=len(self._items),
            pending=len(self.pending()),
            in_progress=len(self.in_progress()),
            completed=len(self.completed()),
            failed=len(self.failed()),
        )

    def clear_completed(self) -> int:
        """Drop completed items and return how many were removed."""

        removed = [
            task_id
            for task_id, item in self._items.items()
            if item.status == TaskStatus.COMPLETED
        ]
        for task_id in removed:
            del self._items[task_id]
        return len(removed)

    def reset(self) -> None:
        self._items.clear()
        self._current_id = None

    def _require(self, task_id: str) -> TaskItem:
        item = self._items.get(task_id)
        if item is None:
            raise TaskNotFoundError(task_id)
        return item

    def _unmet_dependencies(self, item: TaskItem) -> list[str]:
        unmet: list[str] = []
        for dep_id in item.dependencies:
            dependency = self._items.get(dep_id)
            if dependency is None or dependency.status != TaskStatus.COMPLETED:
                unmet.append(dep_id)
        return unmet

    def _release(self, task_id: str) -> None:
        if self._current_id == task_id:
            self._current_id = None

    def _with_status(self, status: TaskStatus) -> list[TaskItem]:
        return [item for item in self._items.values() if item.status == status]
