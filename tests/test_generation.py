"""Tests for glean.generation: CLI generator, model fallback, JSON parsing."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fakes import FakeGenerator

from glean.errors import GenerationError, QuotaExceededError
from glean.generation import (
    ClaudeCliGenerator,
    generate_with_fallback,
    is_quota_error,
    parse_json_envelope,
    strip_code_fences,
)
from glean.retry import RetryPolicy

FAST = RetryPolicy(initial_delay=0.001, max_delay=0.01, jitter=0.0, overall_timeout=5.0)


def _proc(stdout: bytes = b"", stderr: bytes = b"", returncode: int = 0) -> MagicMock:
    proc = MagicMock()
    proc.communicate = AsyncMock(return_value=(stdout, stderr))
    proc.returncode = returncode
    proc.wait = AsyncMock(return_value=returncode)
    return proc


class TestClaudeCliGenerator:
    def test_success_passes_model_and_prompt(self):
        proc = _proc(stdout=b"  The summary.  \n")
        with patch(
            "glean.generation.asyncio.create_subprocess_exec", new=AsyncMock(return_value=proc)
        ) as spawn:
            text = asyncio.run(ClaudeCliGenerator().generate("hello", model="sonnet"))
        assert text == "The summary."
        assert spawn.call_args.args == ("claude", "-p", "--model", "sonnet")
        proc.communicate.assert_awaited_once_with(b"hello")

    def test_no_model_flag_when_unset(self):
        proc = _proc(stdout=b"ok")
        with patch(
            "glean.generation.asyncio.create_subprocess_exec", new=AsyncMock(return_value=proc)
        ) as spawn:
            asyncio.run(ClaudeCliGenerator().generate("hello"))
        assert spawn.call_args.args == ("claude", "-p")

    def test_quota_failure(self):
        proc = _proc(stderr=b"Error: usage limit reached", returncode=1)
        with patch(
            "glean.generation.asyncio.create_subprocess_exec", new=AsyncMock(return_value=proc)
        ):
            with pytest.raises(QuotaExceededError):
                asyncio.run(ClaudeCliGenerator().generate("hello", model="sonnet"))

    def test_other_failure(self):
        proc = _proc(stderr=b"something broke", returncode=2)
        with patch(
            "glean.generation.asyncio.create_subprocess_exec", new=AsyncMock(return_value=proc)
        ):
            with pytest.raises(GenerationError) as exc_info:
                asyncio.run(ClaudeCliGenerator().generate("hello"))
        assert not isinstance(exc_info.value, QuotaExceededError)
        assert "exited with 2" in str(exc_info.value)

    def test_missing_executable(self):
        with patch(
            "glean.generation.asyncio.create_subprocess_exec",
            new=AsyncMock(side_effect=FileNotFoundError()),
        ):
            with pytest.raises(GenerationError, match="not found"):
                asyncio.run(ClaudeCliGenerator().generate("hello"))

    def test_timeout_kills_process(self):
        proc = _proc()

        async def hang(_input):
            await asyncio.sleep(5)

        proc.communicate = hang
        with patch(
            "glean.generation.asyncio.create_subprocess_exec", new=AsyncMock(return_value=proc)
        ):
            with pytest.raises(GenerationError) as exc_info:
                asyncio.run(ClaudeCliGenerator(timeout=0.01).generate("hello"))
        assert exc_info.value.retryable is True
        proc.kill.assert_called_once()


class TestFallback:
    def test_primary_success(self):
        gen = FakeGenerator(summary="done")
        text, model = asyncio.run(
            generate_with_fallback(
                gen, "prompt", primary_model="sonnet", fallback_model="haiku", policy=FAST
            )
        )
        assert (text, model) == ("done", "sonnet")
        assert gen.summary_models == ["sonnet"]

    def test_quota_falls_back_exactly_once(self):
        gen = FakeGenerator(summary="done", failures={"sonnet": QuotaExceededError("quota")})
        text, model = asyncio.run(
            generate_with_fallback(
                gen, "prompt", primary_model="sonnet", fallback_model="haiku", policy=FAST
            )
        )
        assert model == "haiku"
        assert gen.summary_models == ["sonnet", "haiku"]

    def test_quota_on_both_propagates(self):
        gen = FakeGenerator(
            failures={"sonnet": QuotaExceededError("q"), "haiku": QuotaExceededError("q")}
        )
        with pytest.raises(QuotaExceededError):
            asyncio.run(
                generate_with_fallback(
                    gen, "prompt", primary_model="sonnet", fallback_model="haiku", policy=FAST
                )
            )
        assert gen.summary_models == ["sonnet", "haiku"]

    def test_non_quota_error_does_not_fall_back(self):
        gen = FakeGenerator(failures={"sonnet": GenerationError("bad prompt")})
        with pytest.raises(GenerationError):
            asyncio.run(
                generate_with_fallback(
                    gen, "prompt", primary_model="sonnet", fallback_model="haiku", policy=FAST
                )
            )
        assert gen.summary_models == ["sonnet"]


class TestParsing:
    def test_quota_markers(self):
        assert is_quota_error("HTTP 429 Too Many Requests")
        assert is_quota_error("Rate limit exceeded")
        assert not is_quota_error("syntax error")

    def test_strip_code_fences(self):
        assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
        assert strip_code_fences("plain") == "plain"

    def test_plain_json(self):
        assert parse_json_envelope('{"insights": ["a", "b"]}', "insights") == ["a", "b"]

    def test_fenced_json(self):
        text = '```json\n{"actions": [{"text": "x"}]}\n```'
        assert parse_json_envelope(text, "actions") == [{"text": "x"}]

    def test_json_embedded_in_prose(self):
        text = 'Here you go:\n{"insights": ["one"]}\nHope that helps.'
        assert parse_json_envelope(text, "insights") == ["one"]

    @pytest.mark.parametrize(
        "text",
        ["not json at all", '{"insights": [unterminated', '["a", "b"]', '{"insights": "nope"}'],
    )
    def test_malformed_returns_empty(self, text):
        assert parse_json_envelope(text, "insights") == []
