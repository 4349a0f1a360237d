"""Explicitly constructed registry of structured workflows."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

WorkflowHandler = Callable[[dict[str, Any]], Any]


class WorkflowRegistry:
    """Maps workflow ids to handlers; satisfies the `WorkflowExecutor` protocol.

    Build one instance at startup and pass it to the consumers that need it.
    Handlers may be plain callables or coroutine functions.
    """

    def __init__(self, handlers: dict[str, WorkflowHandler] | None = None) -> None:
        self._handlers: dict[str, WorkflowHandler] = {}
        for workflow_id, handler in (handlers or {}).items():
            self.register(workflow_id, handler)

    def register(self, workflow_id: str, handler: WorkflowHandler) -> None:
        normalized = workflow_id.strip()
        if not normalized:
            raise ValueError("workflow_id must be a non-empty string")
        if normalized in self._handlers:
            raise ValueError(f"Workflow already registered: {normalized!r}")
        self._handlers[normalized] = handler

    def unregister(self, workflow_id: str) -> None:
        self._handlers.pop(workflow_id.strip(), None)

    def workflow_ids(self) -> list[str]:
        return sorted(self._handlers)

    def __contains__(self, workflow_id: object) -> bool:
        return isinstance(workflow_id, str) and workflow_id.strip() in self._handlers

    async def execute(self, workflow_id: str, params: dict[str, Any]) -> Any:
        """Run the handler registered for `workflow_id`."""

        handler = self._handlers.get(workflow_id.strip())
        if handler is None:
            raise KeyError(f"Unknown workflow: {workflow_id!r}")
        logger.debug("Running workflow %s", workflow_id)
        result = handler(dict(params))
        if inspect.isawaitable(result):
            result = await result
        return result
