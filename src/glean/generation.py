"""Text generation through the Claude CLI, with a cheaper fallback model."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import re
from typing import Any, Protocol

from glean.errors import GenerationError, QuotaExceededError
from glean.retry import CancellationToken, RetryPolicy, with_retry

logger = logging.getLogger(__name__)

QUOTA_MARKERS = ("429", "rate limit", "quota", "usage limit")
_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


class TextGenerator(Protocol):
    """Generates text for a prompt.

    Implementations raise :class:`QuotaExceededError` for quota or rate-limit
    failures and :class:`GenerationError` for anything else.
    """

    async def generate(
        self,
        prompt: str,
        *,
        model: str | None = None,
        temperature: float = 0.3,
        max_tokens: int = 600,
    ) -> str: ...


def is_quota_error(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in QUOTA_MARKERS)


class ClaudeCliGenerator:
    """Runs ``claude -p`` with the prompt on stdin.

    The CLI has no sampling flags, so ``temperature`` and ``max_tokens`` are
    accepted for interface compatibility and only logged.
    """

    def __init__(self, timeout: int = 120, executable: str = "claude") -> None:
        self.timeout = timeout
        self.executable = executable

    async def generate(
        self,
        prompt: str,
        *,
        model: str | None = None,
        temperature: float = 0.3,
        max_tokens: int = 600,
    ) -> str:
        cmd: list[str] = [self.executable, "-p"]
        if model:
            cmd.extend(["--model", model])
        logger.debug(
            "Calling %s (model=%s, temperature=%s, max_tokens=%d)",
            self.executable, model, temperature, max_tokens,
        )

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise GenerationError("Claude CLI not found on PATH") from exc
        except OSError as exc:
            raise GenerationError(f"Claude CLI could not start: {exc}") from exc

        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(prompt.encode("utf-8")), timeout=self.timeout
            )
        except asyncio.TimeoutError as exc:
            await _kill(proc)
            raise GenerationError(
                f"Claude CLI timed out after {self.timeout}s", retryable=True
            ) from exc
        except asyncio.CancelledError:
            await _kill(proc)
            raise

        err = stderr.decode("utf-8", errors="replace").strip()
        if proc.returncode != 0:
            out = stdout.decode("utf-8", errors="replace").strip()
            detail = err or out or "(no stderr)"
            if is_quota_error(detail):
                raise QuotaExceededError(f"Quota exceeded for model {model}: {detail[:200]}")
            raise GenerationError(f"Claude CLI exited with {proc.returncode}: {detail[:200]}")
        return stdout.decode("utf-8", errors="replace").strip()


async def _kill(proc: asyncio.subprocess.Process) -> None:
    with contextlib.suppress(ProcessLookupError):
        proc.kill()
    await proc.wait()


async def generate_with_fallback(
    generator: TextGenerator,
    prompt: str,
    *,
    primary_model: str,
    fallback_model: str,
    temperature: float = 0.3,
    max_tokens: int = 600,
    policy: RetryPolicy | None = None,
    token: CancellationToken | None = None,
) -> tuple[str, str]:
    """Generate with ``primary_model``; on a quota error retry once on ``fallback_model``.

    Returns:
        The generated text and the model that produced it.
    """

    async def call(model: str) -> str:
        return await with_retry(
            lambda: generator.generate(
                prompt, model=model, temperature=temperature, max_tokens=max_tokens
            ),
            policy,
            name=f"generate[{model}]",
            token=token,
        )

    try:
        return await call(primary_model), primary_model
    except QuotaExceededError as exc:
        logger.warning("Quota hit on %s, falling back to %s: %s", primary_model, fallback_model, exc)
    return await call(fallback_model), fallback_model


def strip_code_fences(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        lines = text.splitlines()
        if lines[0].startswith("```"):
            lines = lines[1:]
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]
        text = "\n".join(lines)
    return text


def parse_json_envelope(text: str, key: str) -> list[Any]:
    """Return ``data[key]`` from a JSON object in model output, or ``[]``."""
    text = strip_code_fences(text)
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        match = _JSON_OBJECT.search(text)
        if not match:
            logger.warning("No JSON object in response for %r", key)
            return []
        try:
            data = json.loads(match.group(0))
        except json.JSONDecodeError:
            logger.warning("Malformed JSON in response for %r", key)
            return []
    if not isinstance(data, dict):
        return []
    value = data.get(key)
    return value if isinstance(value, list) else []
