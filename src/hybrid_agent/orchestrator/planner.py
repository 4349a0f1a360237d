"""Decompose a task description into ordered execution steps."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from enum import Enum

from hybrid_agent.orchestrator.backend.base import GenerationOptions, TextGenerationProvider
from hybrid_agent.orchestrator.complexity import analyze_task

logger = logging.getLogger(__name__)

DEFAULT_MAX_STEPS = 8
PLAN_TEMPERATURE = 0.3

_FENCED_JSON = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL | re.IGNORECASE)
_TRAILING_COMMA = re.compile(r",(\s*[}\]])")
_LIST_ITEM = re.compile(r"^\s*(?:\d+[.)]|[-*])\s+(.+?)\s*$")


class PlanSource(str, Enum):
    JSON = "json"
    LIST = "list"
    FALLBACK = "fallback"


@dataclass(slots=True, frozen=True)
class PlanStep:
    id: str
    description: str
    dependencies: tuple[str, ...] = ()


@dataclass(slots=True)
class ExecutionPlan:
    """Steps in execution order plus how they were recovered from the planner output."""

    steps: list[PlanStep]
    source: PlanSource

    @property
    def descriptions(self) -> list[str]:
        return [step.description for step in self.steps]

    @property
    def defaulted(self) -> bool:
        return self.source == PlanSource.FALLBACK


class TaskPlanner:
    """Ask a provider for a step plan and parse it tolerantly.

    Malformed output never raises: a JSON plan is preferred, then a numbered or
    bulleted list, then the task description as a single step.
    `ProviderTransportError` from the provider propagates.
    """

    def __init__(
        self,
        provider: TextGenerationProvider,
        *,
        max_steps: int = DEFAULT_MAX_STEPS,
        options: GenerationOptions | None = None,
    ) -> None:
        self.provider = provider
        self.max_steps = max_steps
        self.options = options or GenerationOptions(temperature=PLAN_TEMPERATURE)

    async def plan(self, description: str) -> ExecutionPlan:
        generated = await self.provider.generate(build_plan_prompt(description), self.options)
        plan = parse_plan(generated.text, description, max_steps=self.max_steps)
        logger.info(
            "Planned %d steps for task (%s): %s",
            len(plan.steps),
            plan.source.value,
            " | ".join(plan.descriptions),
        )
        return plan


def build_plan_prompt(description: str) -> str:
    analysis = analyze_task(description)
    return (
        "Break the task into an EXECUTION PLAN of small, concrete steps.\n\n"
        f"TASK: {description}\n"
        f"TASK TYPE: {analysis.task_type}\n"
        f"COMPLEXITY: {analysis.complexity.value}\n\n"
        "Return ONLY a JSON object in this format:\n"
        '{"steps": [{"id": "step_1", "description": "...", "dependencies": []}]}\n\n'
        "Rules:\n"
        "- dependencies reference step ids, never file names\n"
        "- every step must be executable on its own given the results of its dependencies\n"
        "- no explanations, no markdown"
    )


def parse_plan(text: str, description: str, *, max_steps: int = DEFAULT_MAX_STEPS) -> ExecutionPlan:
    payload = _parse_json_payload(text.strip())
    if payload is not None:
        steps = _steps_from_payload(payload)
        if steps:
            return ExecutionPlan(steps=_ordered(steps)[:max_steps], source=PlanSource.JSON)

    items = [match.group(1) for match in map(_LIST_ITEM.match, text.splitlines()) if match]
    if items:
        steps = [
            PlanStep(id=f"step_{index}", description=item)
            for index, item in enumerate(items[:max_steps], start=1)
        ]
        return ExecutionPlan(steps=steps, source=PlanSource.LIST)

    logger.debug("Planner output had no usable steps; running the task as one step")
    return ExecutionPlan(
        steps=[PlanStep(id="step_1", description=description)],
        source=PlanSource.FALLBACK,
    )


def _parse_json_payload(text: str) -> dict[str, object] | None:
    direct = _try_load_dict(text)
    if direct is not None:
        return direct

    fenced = _FENCED_JSON.search(text)
    if fenced is not None:
        payload = _try_load_dict(fenced.group(1))
        if payload is not None:
            return payload

    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end <= start:
        return None
    return _try_load_dict(text[start : end + 1])


def _try_load_dict(raw: str) -> dict[str, object] | None:
    try:
        parsed = json.loads(_TRAILING_COMMA.sub(r"\1", raw))
    except json.JSONDecodeError:
        return None
    if not isinstance(parsed, dict):
        return None
    return parsed


def _steps_from_payload(payload: dict[str, object]) -> list[PlanStep]:
    raw_steps = payload.get("steps")
    if not isinstance(raw_steps, list):
        return []

    steps: list[PlanStep] = []
    seen: set[str] = set()
    for index, item in enumerate(raw_steps, start=1):
        if isinstance(item, str):
            item = {"description": item}
        if not isinstance(item, dict):
            continue
        text = item.get("description")
        if not isinstance(text, str) or not text.strip():
            continue
        step_id = item.get("id")
        if not isinstance(step_id, str) or not step_id.strip() or step_id in seen:
            step_id = f"step_{index}"
        seen.add(step_id)
        raw_deps = item.get("dependencies")
        deps: tuple[str, ...] = ()
        if isinstance(raw_deps, list):
            deps = tuple(dep for dep in raw_deps if isinstance(dep, str))
        steps.append(PlanStep(id=step_id, description=text.strip(), dependencies=deps))

    known = {step.id for step in steps}
    cleaned: list[PlanStep] = []
    for step in steps:
        unknown = [dep for dep in step.dependencies if dep not in known]
        if unknown:
            logger.warning(
                "Plan step %s drops unknown dependencies: %s",
                step.id,
                ", ".join(unknown),
            )
        cleaned.append(
            PlanStep(
                id=step.id,
                description=step.description,
                dependencies=tuple(dep for dep in step.dependencies if dep in known),
            ),
        )
    return cleaned


def _ordered(steps: list[PlanStep]) -> list[PlanStep]:
    """Stable topological order; listed order wins between independent steps."""

    done: set[str] = set()
    ordered: list[PlanStep] = []
    remaining = list(steps)
    while remaining:
        ready = next(
            (step for step in remaining if all(dep in done for dep in step.dependencies)),
            None,
        )
        if ready is None:
            logger.warning(
                "Plan has circular dependencies between %s; keeping listed order",
                ", ".join(step.id for step in remaining),
            )
            return ordered + remaining
        ordered.append(ready)
        done.add(ready.id)
        remaining.remove(ready)
    return ordered
