"""Tolerant extraction of labelled fields from generated text.

Every helper returns a `ParsedField` that records whether the value was found
in the text or fell back to the supplied default. None of them raise on
malformed input.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

_NUMBER = r"([-+]?\d+(?:\.\d+)?|[-+]?\.\d+)"


@dataclass(slots=True, frozen=True)
class ParsedField(Generic[T]):
    """Extracted value plus whether it was present in the source text."""

    value: T
    present: bool

    @property
    def defaulted(self) -> bool:
        return not self.present


def extract_score(text: str, label: str, default: float) -> ParsedField[float]:
    """Read `LABEL: <number>` and clamp it into [0, 1]."""

    match = re.search(rf"{re.escape(label)}:\s*{_NUMBER}", text, re.IGNORECASE)
    if match is None:
        return _fallback(label, default)
    try:
        value = float(match.group(1))
    except ValueError:
        return _fallback(label, default)
    return ParsedField(value=min(1.0, max(0.0, value)), present=True)


def extract_flag(text: str, label: str, default: bool) -> ParsedField[bool]:
    """Read `LABEL: YES|NO`."""

    match = re.search(rf"{re.escape(label)}:\s*\[?\s*(YES|NO)\b", text, re.IGNORECASE)
    if match is None:
        return _fallback(label, default)
    return ParsedField(value=match.group(1).upper() == "YES", present=True)


def extract_choice(
    text: str,
    label: str,
    choices: Iterable[str],
    default: str,
) -> ParsedField[str]:
    """Read `LABEL: <word>` restricted to known lowercase choices."""

    match = re.search(rf"{re.escape(label)}:\s*\[?\s*([\w-]+)", text, re.IGNORECASE)
    if match is None:
        return _fallback(label, default)
    value = match.group(1).lower()
    if value not in set(choices):
        return _fallback(label, default)
    return ParsedField(value=value, present=True)


def extract_section(
    text: str,
    label: str,
    *,
    stop_labels: Iterable[str] = (),
    default: str = "",
) -> ParsedField[str]:
    """Read the block after `LABEL:` up to the next stop label or end of text."""

    match = re.search(rf"{re.escape(label)}:", text, re.IGNORECASE)
    if match is None:
        return _fallback(label, default)
    body = text[match.end() :]
    for stop in stop_labels:
        stop_match = re.search(rf"{re.escape(stop)}:", body, re.IGNORECASE)
        if stop_match is not None:
            body = body[: stop_match.start()]
    body = body.strip()
    if not body:
        return _fallback(label, default)
    return ParsedField(value=body, present=True)


def bullet_lines(block: str) -> list[str]:
    """Return `- item` lines of a block without the bullet marker."""

    items: list[str] = []
    for line in block.splitlines():
        stripped = line.strip()
        if stripped.startswith("-"):
            item = stripped[1:].strip()
            if item:
                items.append(item)
    return items


def defaulted_names(**fields: ParsedField[object]) -> frozenset[str]:
    """Names of the given fields that fell back to defaults."""

    return frozenset(name for name, parsed in fields.items() if parsed.defaulted)


def _fallback(label: str, default: T) -> ParsedField[T]:
    logger.debug("Field %s missing from generated text; using default %r", label, default)
    return ParsedField(value=default, present=False)
