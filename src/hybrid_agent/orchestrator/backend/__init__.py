"""Collaborator interfaces and CLI-backed provider implementations."""

from hybrid_agent.orchestrator.backend.base import (
    GenerationOptions,
    GenerationResult,
    TextGenerationProvider,
    TierExecutor,
    TokenUsage,
    ValidationCollaborator,
    WorkflowExecutor,
)
from hybrid_agent.orchestrator.backend.cli_backend import CliTextProvider

__all__ = [
    "CliTextProvider",
    "GenerationOptions",
    "GenerationResult",
    "TextGenerationProvider",
    "TierExecutor",
    "TokenUsage",
    "ValidationCollaborator",
    "WorkflowExecutor",
]
