"""Local deterministic demo agent for CLI provider integration tests.

Behaviour is tuned through environment variables:

- `HYBRID_AGENT_ECHO_FAIL_PROVIDERS`: comma-separated provider names that fail.
- `HYBRID_AGENT_ECHO_QUALITY`: quality score reported in critiques.
- `HYBRID_AGENT_ECHO_IMPROVED`: `yes`/`no` answer to verification prompts.
- `HYBRID_AGENT_ECHO_SLEEP_SECONDS`: delay before answering.

Planning prompts get a two-step JSON plan for the task.
"""

from __future__ import annotations

import argparse
import json
import os
import re
import sys
import time
from pathlib import Path


def main(argv: list[str] | None = None) -> int:
    """Answer one prompt deterministically."""

    parser = argparse.ArgumentParser()
    parser.add_argument("--prompt-file", required=True)
    parser.add_argument("--model", default="")
    args = parser.parse_args(argv)

    prompt = Path(args.prompt_file).read_text("utf-8")
    provider = os.getenv("HYBRID_AGENT_PROVIDER", "echo")

    delay = float(os.getenv("HYBRID_AGENT_ECHO_SLEEP_SECONDS", "0") or 0)
    if delay > 0:
        time.sleep(delay)

    failing = {
        name.strip()
        for name in os.getenv("HYBRID_AGENT_ECHO_FAIL_PROVIDERS", "").split(",")
        if name.strip()
    }
    if provider in failing:
        sys.stderr.write(f"{provider} backend temporarily unavailable\n")
        return 1

    sys.stdout.write(_answer(prompt=prompt, provider=provider, model=args.model))
    sys.stdout.write("\n")
    sys.stderr.write(f"input_tokens: {len(prompt.split())}\n")
    return 0


def _answer(*, prompt: str, provider: str, model: str) -> str:
    if "EXECUTION PLAN" in prompt:
        match = re.search(r"^TASK: (.+)$", prompt, re.MULTILINE)
        task = match.group(1).strip() if match else "task"
        steps = [
            {"id": "step_1", "description": f"Outline: {task}", "dependencies": []},
            {"id": "step_2", "description": f"Deliver: {task}", "dependencies": ["step_1"]},
        ]
        return json.dumps({"steps": steps})
    if "IMPROVED: [YES/NO]" in prompt:
        improved = os.getenv("HYBRID_AGENT_ECHO_IMPROVED", "yes").strip().lower() == "yes"
        return (
            f"IMPROVED: {'YES' if improved else 'NO'}\n"
            "CONFIDENCE: 0.9\n"
            f"RECOMMENDATION: {'accept' if improved else 'reject'}\n\n"
            "REASONING:\nEcho agent comparison."
        )
    if "IMPROVED_RESPONSE:" in prompt:
        return (
            "IMPROVED_RESPONSE:\n"
            f"Refined by {provider}: the response now covers every requested detail.\n\n"
            "IMPROVEMENTS_MADE:\n- Echo refinement pass"
        )
    if "QUALITY_SCORE:" in prompt:
        quality = os.getenv("HYBRID_AGENT_ECHO_QUALITY", "0.9")
        return (
            f"QUALITY_SCORE: {quality}\n\n"
            "ISSUES:\n"
            "- [CATEGORY: completeness] [SEVERITY: low] Could include more detail\n"
            "  SUGGESTION: Expand the explanation\n\n"
            "SUMMARY:\nEcho review complete."
        )
    body = prompt.strip().splitlines()[0] if prompt.strip() else "empty prompt"
    return f"[{provider}:{model or 'default'}] completed: {body}"


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
