"""Tests for concurrent child materialization in glean.tree."""

import asyncio

import pytest
from fakes import FakeFetcher, block, toggle

from glean.errors import NotionAPIError, OperationCancelledError
from glean.retry import CancellationToken
from glean.trace import RecordingTracer, TraceKind
from glean.tree import materialize, needs_children


class SlowFetcher(FakeFetcher):
    """Fetcher whose first ids answer last, to expose ordering bugs."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.in_flight = 0
        self.peak = 0

    async def get_children(self, node_id):
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        delay = 0.03 if node_id.endswith("0") else 0.001
        await asyncio.sleep(delay)
        self.in_flight -= 1
        return await super().get_children(node_id)


class TestNeedsChildren:
    def test_toggle_without_hint(self):
        assert needs_children(toggle("t", "Closed", has_children=False))

    def test_paragraph_with_hint(self):
        assert needs_children(block("p", has_children=True))

    def test_plain_paragraph(self):
        assert not needs_children(block("p"))

    def test_child_page_not_descended(self):
        assert not needs_children(block("c", "child_page", "Sub", has_children=True))


class TestMaterialize:
    def test_toggle_children_fetched_without_hint(self):
        fetcher = FakeFetcher(children={"t1": [block("c1", text="inside")]})
        result = asyncio.run(materialize(fetcher, [toggle("t1", "Video")]))
        assert fetcher.child_calls == ["t1"]
        assert [c.text for c in result[0].children] == ["inside"]
        assert result[0].children[0].depth == 1

    def test_nested_descent(self):
        fetcher = FakeFetcher(
            children={
                "cat": [toggle("vid", "Video | tips")],
                "vid": [block("p", text="deep")],
            }
        )
        result = asyncio.run(materialize(fetcher, [toggle("cat", "Category")]))
        video = result[0].children[0]
        assert video.children[0].text == "deep"
        assert video.children[0].depth == 2

    def test_order_preserved_under_concurrency(self):
        blocks = [toggle(f"t{i}0" if i % 2 == 0 else f"t{i}1", f"T{i}") for i in range(6)]
        fetcher = SlowFetcher(
            children={b.id: [block(f"{b.id}-c", text=b.text)] for b in blocks}
        )
        result = asyncio.run(materialize(fetcher, blocks, max_concurrency=3))
        assert [b.id for b in result] == [b.id for b in blocks]
        assert [b.children[0].text for b in result] == [b.text for b in blocks]
        assert fetcher.peak <= 3

    def test_depth_cap_emits_trace(self):
        tracer = RecordingTracer()
        fetcher = FakeFetcher(
            children={"a": [toggle("b", "B")], "b": [toggle("c", "C")]}
        )
        result = asyncio.run(materialize(fetcher, [toggle("a", "A")], max_depth=2, tracer=tracer))
        capped = result[0].children[0].children[0]
        assert capped.id == "c"
        assert capped.children is None
        assert "c" not in fetcher.child_calls
        truncated = tracer.of_kind(TraceKind.FETCH_TRUNCATED)
        assert [e.name for e in truncated] == ["c"]

    def test_fetch_failure_recorded_on_block(self):
        tracer = RecordingTracer()
        fetcher = FakeFetcher(
            children={"ok": [block("x", text="fine")]},
            errors={"bad": NotionAPIError(status=404, message="gone")},
        )
        result = asyncio.run(
            materialize(fetcher, [toggle("bad", "Broken"), toggle("ok", "Fine")], tracer=tracer)
        )
        assert result[0].children == []
        assert "gone" in result[0].fetch_error
        assert result[1].children[0].text == "fine"
        assert [e.name for e in tracer.of_kind(TraceKind.FETCH_FAILED)] == ["bad"]

    def test_leaf_blocks_untouched(self):
        fetcher = FakeFetcher()
        result = asyncio.run(materialize(fetcher, [block("p", text="x")]))
        assert result[0].children is None
        assert fetcher.child_calls == []


class CancellingFetcher(FakeFetcher):
    """Cancels ``token`` as soon as ``trigger`` is fetched."""

    def __init__(self, token: CancellationToken, trigger: str, **kwargs) -> None:
        super().__init__(**kwargs)
        self.token = token
        self.trigger = trigger

    async def get_children(self, node_id):
        children = await super().get_children(node_id)
        if node_id == self.trigger:
            self.token.cancel()
        return children


class TestCancellation:
    def test_cancelled_token_fetches_nothing(self):
        token = CancellationToken()
        token.cancel()
        fetcher = FakeFetcher(children={"t1": [block("c1", text="inside")]})
        with pytest.raises(OperationCancelledError):
            asyncio.run(materialize(fetcher, [toggle("t1", "Video")], token=token))
        assert fetcher.child_calls == []

    def test_no_fetch_starts_after_cancellation(self):
        token = CancellationToken()
        fetcher = CancellingFetcher(
            token,
            "t1",
            children={"t1": [toggle("nested", "Nested")], "t2": [block("c2", text="two")]},
        )
        blocks = [toggle("t1", "First"), toggle("t2", "Second")]
        with pytest.raises(OperationCancelledError):
            asyncio.run(materialize(fetcher, blocks, max_concurrency=1, token=token))
        assert fetcher.child_calls == ["t1"]
