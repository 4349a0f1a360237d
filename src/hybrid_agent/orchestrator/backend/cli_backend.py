"""Subprocess-based text generation provider for CLI agents."""

from __future__ import annotations

import asyncio
import os
import re
import shlex
import shutil
import tempfile
import time
from pathlib import Path

from hybrid_agent.orchestrator.backend.base import (
    GenerationOptions,
    GenerationResult,
    TokenUsage,
)
from hybrid_agent.orchestrator.errors import ConfigurationError, ProviderTransportError
from hybrid_agent.orchestrator.failure_classifier import classify_provider_failure
from hybrid_agent.orchestrator.models import FailureClass

TERMINATE_GRACE_SECONDS = 2.0
ERROR_PREVIEW_CHARS = 300

_PROMPT_TOKENS = re.compile(
    r'"?(?:prompt|input)[_ ]tokens"?\s*[:=]\s*([\d,]+)',
    re.IGNORECASE,
)
_COMPLETION_TOKENS = re.compile(
    r'"?(?:completion|output)[_ ]tokens"?\s*[:=]\s*([\d,]+)',
    re.IGNORECASE,
)
_TOTAL_TOKENS = re.compile(r'"?total[_ ]tokens"?\s*[:=]\s*([\d,]+)', re.IGNORECASE)


class CliTextProvider:
    """Generate text by running a CLI agent from a command template.

    The template supports `{prompt}`, `{prompt_file}` and `{model}` placeholders.
    The subprocess is terminated when the call exceeds its deadline or the
    awaiting task is cancelled.
    """

    def __init__(
        self,
        command_template: str,
        *,
        model: str = "",
        timeout_seconds: float = 60.0,
        name: str = "cli",
    ) -> None:
        self.command_template = command_template.strip()
        self.model = model
        self.timeout_seconds = timeout_seconds
        self.name = name

    def is_available(self) -> bool:
        try:
            argv = shlex.split(self.command_template)
        except ValueError:
            return False
        if not argv:
            return False
        return shutil.which(argv[0]) is not None

    async def generate(
        self,
        prompt: str,
        options: GenerationOptions | None = None,
    ) -> GenerationResult:
        opts = options or GenerationOptions()
        model = opts.model or self.model
        timeout_seconds = opts.timeout_seconds or self.timeout_seconds

        with tempfile.TemporaryDirectory(prefix="hybrid-agent-") as workdir:
            prompt_file = Path(workdir) / "prompt.txt"
            prompt_file.write_text(prompt, "utf-8")
            argv = build_run_args(
                command_template=self.command_template,
                model=model,
                prompt=prompt,
                prompt_file=prompt_file,
            )
            env = os.environ.copy()
            env["HYBRID_AGENT_PROVIDER"] = self.name
            env["HYBRID_AGENT_MODEL"] = model

            started = time.monotonic()
            try:
                process = await asyncio.create_subprocess_exec(
                    *argv,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    env=env,
                )
            except FileNotFoundError as error:
                raise ProviderTransportError(
                    f"CLI provider command not found: {argv[0]}",
                    transient=False,
                    failure_class=FailureClass.BACKEND_NON_RETRYABLE,
                ) from error
            except OSError as error:
                raise ProviderTransportError(
                    f"CLI provider failed to start: {error}",
                    transient=True,
                    failure_class=FailureClass.BACKEND_TRANSIENT,
                ) from error

            try:
                stdout_raw, stderr_raw = await asyncio.wait_for(
                    process.communicate(),
                    timeout=timeout_seconds,
                )
            except TimeoutError:
                await _terminate_process(process)
                raise ProviderTransportError(
                    f"CLI provider {self.name} timed out after {timeout_seconds:g}s",
                    transient=True,
                    failure_class=FailureClass.TIMEOUT,
                    timed_out=True,
                ) from None
            except asyncio.CancelledError:
                await _terminate_process(process)
                raise

        latency_ms = (time.monotonic() - started) * 1000.0
        stdout = stdout_raw.decode("utf-8", errors="replace")
        stderr = stderr_raw.decode("utf-8", errors="replace")
        exit_code = process.returncode if process.returncode is not None else -1
        if exit_code != 0:
            classification = classify_provider_failure(
                exit_code=exit_code,
                stdout=stdout,
                stderr=stderr,
            )
            preview = (stderr.strip() or stdout.strip())[:ERROR_PREVIEW_CHARS]
            raise ProviderTransportError(
                f"CLI provider {self.name} exited with code {exit_code}: {preview}",
                transient=classification.transient,
                failure_class=classification.failure_class,
            )
        return GenerationResult(
            text=stdout.strip(),
            latency_ms=latency_ms,
            token_usage=extract_token_usage(stdout=stdout, stderr=stderr),
        )


def build_run_args(
    *,
    command_template: str,
    model: str,
    prompt: str,
    prompt_file: Path,
) -> list[str]:
    """Render a command template into an argv list."""

    stripped = command_template.strip()
    if not stripped:
        raise ConfigurationError("CLI provider command template is empty.")
    if "{prompt}" not in stripped and "{prompt_file}" not in stripped:
        raise ConfigurationError(
            "CLI provider command template must include {prompt} or {prompt_file}.",
        )
    try:
        rendered = stripped.format(
            model=shlex.quote(model),
            prompt=shlex.quote(prompt),
            prompt_file=shlex.quote(str(prompt_file)),
        )
    except (KeyError, IndexError) as error:
        raise ConfigurationError(
            f"Unsupported command template placeholder: {error}",
        ) from error

    argv = shlex.split(rendered)
    if not argv:
        raise ConfigurationError("CLI provider command template rendered empty command.")
    return argv


def extract_token_usage(*, stdout: str, stderr: str) -> TokenUsage | None:
    """Best-effort token usage from `name: value` or JSON-ish counters in agent output."""

    text = f"{stderr}\n{stdout}"
    prompt_tokens = _search_int(_PROMPT_TOKENS, text)
    completion_tokens = _search_int(_COMPLETION_TOKENS, text)
    total_tokens = _search_int(_TOTAL_TOKENS, text)
    if prompt_tokens is None and completion_tokens is None and total_tokens is None:
        return None
    if total_tokens is None and prompt_tokens is not None and completion_tokens is not None:
        total_tokens = prompt_tokens + completion_tokens
    return TokenUsage(
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        total_tokens=total_tokens,
    )


def _search_int(pattern: re.Pattern[str], text: str) -> int | None:
    match = pattern.search(text)
    if match is None:
        return None
    return int(match.group(1).replace(",", ""))


async def _terminate_process(process: asyncio.subprocess.Process) -> None:
    if process.returncode is not None:
        return
    try:
        process.terminate()
    except ProcessLookupError:
        return
    try:
        await asyncio.wait_for(process.wait(), timeout=TERMINATE_GRACE_SECONDS)
    except TimeoutError:
        try:
            process.kill()
        except ProcessLookupError:
            return
        await process.wait()
