"""Fakes and builders shared by the glean tests."""

from __future__ import annotations

from datetime import UTC, datetime

from glean.errors import GleanError
from glean.models import PageMetadata, RawBlock

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=UTC)


def block(block_id: str, block_type: str = "paragraph", text: str = "", **kwargs) -> RawBlock:
    return RawBlock(id=block_id, type=block_type, text=text, **kwargs)


def toggle(block_id: str, text: str, children: list[RawBlock] | None = None, **kwargs) -> RawBlock:
    return RawBlock(id=block_id, type="toggle", text=text, children=children, **kwargs)


class FakeFetcher:
    """In-memory DocumentFetcher that records every call."""

    def __init__(
        self,
        children: dict[str, list[RawBlock]] | None = None,
        pages: dict[str, PageMetadata] | None = None,
        errors: dict[str, BaseException] | None = None,
    ) -> None:
        self.children = children or {}
        self.pages = pages or {}
        self.errors = errors or {}
        self.child_calls: list[str] = []

    async def __aenter__(self) -> FakeFetcher:
        return self

    async def __aexit__(self, *exc: object) -> None:
        return None

    async def get_children(self, node_id: str) -> list[RawBlock]:
        self.child_calls.append(node_id)
        if node_id in self.errors:
            raise self.errors[node_id]
        return [b.model_copy() for b in self.children.get(node_id, [])]

    async def get_page_metadata(self, page_id: str) -> PageMetadata:
        if page_id in self.errors:
            raise self.errors[page_id]
        return self.pages.get(page_id, PageMetadata(id=page_id, title="Untitled"))


class FakeGenerator:
    """TextGenerator returning canned text; ``failures`` maps a model to the error it raises."""

    def __init__(
        self,
        summary: str = "A focused summary of the notes.",
        actions: str = '{"actions": []}',
        insights: str = '{"insights": []}',
        failures: dict[str, BaseException] | None = None,
    ) -> None:
        self.summary = summary
        self.actions = actions
        self.insights = insights
        self.failures = failures or {}
        self.calls: list[tuple[str | None, str]] = []

    async def generate(
        self,
        prompt: str,
        *,
        model: str | None = None,
        temperature: float = 0.3,
        max_tokens: int = 600,
    ) -> str:
        self.calls.append((model, prompt))
        if model in self.failures:
            raise self.failures[model]
        if prompt.startswith("You identify actionable items"):
            return self.actions
        if prompt.startswith("Extract the key insights"):
            return self.insights
        return self.summary

    @property
    def summary_models(self) -> list[str | None]:
        return [
            model
            for model, prompt in self.calls
            if not prompt.startswith(("You identify actionable items", "Extract the key insights"))
        ]


class FailingHistoryStore:
    """History store whose writes always fail."""

    async def get_recent_summaries(self, user_id, limit):
        return []

    async def get_previously_summarized_unit_ids(self, user_id):
        return set()

    async def save_summary(self, result):
        raise GleanError("disk full")
