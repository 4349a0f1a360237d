"""Deterministic provider failure classification."""

from __future__ import annotations

from dataclasses import dataclass

from hybrid_agent.orchestrator.models import FailureClass

FAILURE_CLASSIFIER_VERSION = 1
DEFAULT_TRANSIENT_EXIT_CODES: tuple[int, ...] = (137, 143)

_BILLING_OR_QUOTA_PATTERNS: tuple[str, ...] = (
    "quota",
    "resource_exhausted",
    "insufficient",
    "billing",
    "payment",
    "credits",
    "usage limit",
    "exceeded",
)
_ACCESS_OR_AUTH_PATTERNS: tuple[str, ...] = (
    "unauthorized",
    "forbidden",
    "permission denied",
    "invalid api key",
    "authentication",
)
_MODEL_NOT_AVAILABLE_PATTERNS: tuple[str, ...] = (
    "model not found",
    "unknown model",
    "unsupported model",
    "invalid model",
    "model is not available",
)
_TRANSIENT_PATTERNS: tuple[str, ...] = (
    "too many requests",
    "rate limit",
    "429",
    "try again later",
    "temporarily unavailable",
    "connection reset",
    "connection refused",
    "network error",
    "overloaded",
)
_RULES: tuple[tuple[FailureClass, str, tuple[str, ...]], ...] = (
    (FailureClass.BILLING_OR_QUOTA, "billing_or_quota", _BILLING_OR_QUOTA_PATTERNS),
    (FailureClass.ACCESS_OR_AUTH, "access_or_auth", _ACCESS_OR_AUTH_PATTERNS),
    (FailureClass.MODEL_NOT_AVAILABLE, "model_not_available", _MODEL_NOT_AVAILABLE_PATTERNS),
    (FailureClass.BACKEND_TRANSIENT, "transient", _TRANSIENT_PATTERNS),
)
_TRANSIENT_CLASSES = frozenset({FailureClass.TIMEOUT, FailureClass.BACKEND_TRANSIENT})


@dataclass(slots=True, frozen=True)
class FailureClassification:
    """Normalized failure classification result."""

    failure_class: FailureClass
    matched_rule: str
    matched_pattern: str | None

    @property
    def transient(self) -> bool:
        """Whether retrying the same provider may succeed."""

        return self.failure_class in _TRANSIENT_CLASSES


def classify_provider_failure(
    *,
    exit_code: int,
    stdout: str,
    stderr: str,
    timed_out: bool = False,
    transient_exit_codes: tuple[int, ...] = DEFAULT_TRANSIENT_EXIT_CODES,
) -> FailureClassification:
    """Classify a failed provider call; rules are checked in a fixed order."""

    if timed_out:
        return FailureClassification(
            failure_class=FailureClass.TIMEOUT,
            matched_rule="timeout",
            matched_pattern=None,
        )

    haystack = f"{stderr}\n{stdout}".lower()
    for failure_class, rule, patterns in _RULES:
        pattern = _first_match(haystack, patterns)
        if pattern is not None:
            return FailureClassification(
                failure_class=failure_class,
                matched_rule=rule,
                matched_pattern=pattern,
            )

    if exit_code in transient_exit_codes:
        return FailureClassification(
            failure_class=FailureClass.BACKEND_TRANSIENT,
            matched_rule="transient_exit_code",
            matched_pattern=None,
        )
    return FailureClassification(
        failure_class=FailureClass.BACKEND_NON_RETRYABLE,
        matched_rule="fallback_non_retryable",
        matched_pattern=None,
    )


def _first_match(haystack: str, patterns: tuple[str, ...]) -> str | None:
    for pattern in patterns:
        if pattern in haystack:
            return pattern
    return None
