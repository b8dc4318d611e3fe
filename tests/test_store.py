"""Tests for glean.store: history persistence and atomic writes."""

import asyncio
from unittest.mock import patch

import pytest

from glean.models import SectionUnit, SummaryResult
from glean.store import InMemoryHistoryStore, JsonHistoryStore, atomic_write


def result(result_id: str, unit_id: str, user: str = "alice") -> SummaryResult:
    unit = SectionUnit(id=unit_id, title=unit_id, body="body")
    return SummaryResult(id=result_id, user_id=user, summary="s", source_content=[unit])


class TestAtomicWrite:
    def test_writes_content(self, tmp_path):
        path = tmp_path / "nested" / "file.json"
        atomic_write(path, '{"ok": true}')
        assert path.read_text(encoding="utf-8") == '{"ok": true}'

    def test_overwrites_existing(self, tmp_path):
        path = tmp_path / "file.json"
        path.write_text("old", encoding="utf-8")
        atomic_write(path, "new")
        assert path.read_text(encoding="utf-8") == "new"

    def test_failure_keeps_original_and_cleans_temp(self, tmp_path):
        path = tmp_path / "file.json"
        path.write_text("original", encoding="utf-8")
        with patch("glean.store.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                atomic_write(path, "replacement")
        assert path.read_text(encoding="utf-8") == "original"
        assert [p.name for p in tmp_path.iterdir()] == ["file.json"]


class TestJsonHistoryStore:
    def test_recent_is_newest_first(self, tmp_path):
        store = JsonHistoryStore(tmp_path)

        async def run():
            for i in range(3):
                await store.save_summary(result(f"r{i}", f"u{i}"))
            return await store.get_recent_summaries("alice", 2)

        recent = asyncio.run(run())
        assert [r.id for r in recent] == ["r2", "r1"]

    def test_previously_summarized_ids(self, tmp_path):
        store = JsonHistoryStore(tmp_path)

        async def run():
            await store.save_summary(result("r1", "unit-a"))
            await store.save_summary(result("r2", "unit-b", user="bob"))
            return await store.get_previously_summarized_unit_ids("alice")

        assert asyncio.run(run()) == {"unit-a"}

    def test_file_layout_and_unit_types_survive(self, tmp_path):
        store = JsonHistoryStore(tmp_path)
        asyncio.run(store.save_summary(result("r1", "unit-a", user="a/b")))
        path = tmp_path / "history" / "a_b.json"
        assert path.exists()
        loaded = asyncio.run(JsonHistoryStore(tmp_path).get_recent_summaries("a/b", 5))
        assert isinstance(loaded[0].source_content[0], SectionUnit)

    def test_max_entries(self, tmp_path):
        store = JsonHistoryStore(tmp_path, max_entries=2)

        async def run():
            for i in range(4):
                await store.save_summary(result(f"r{i}", f"u{i}"))

        asyncio.run(run())
        assert [s.id for s in store.load("alice").summaries] == ["r2", "r3"]

    def test_corrupt_file_starts_fresh(self, tmp_path):
        path = tmp_path / "history" / "alice.json"
        path.parent.mkdir(parents=True)
        path.write_text("not json", encoding="utf-8")
        store = JsonHistoryStore(tmp_path)
        assert asyncio.run(store.get_recent_summaries("alice", 5)) == []


class TestInMemoryHistoryStore:
    def test_round_trip(self):
        store = InMemoryHistoryStore()

        async def run():
            await store.save_summary(result("r1", "a"))
            await store.save_summary(result("r2", "b"))
            return (
                await store.get_recent_summaries("alice", 1),
                await store.get_previously_summarized_unit_ids("alice"),
            )

        recent, ids = asyncio.run(run())
        assert [r.id for r in recent] == ["r2"]
        assert ids == {"a", "b"}
