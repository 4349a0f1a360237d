"""Two-tier task orchestration with escalation policy and self-critique loop."""

__version__ = "0.1.0"
