"""Summary history persistence."""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel, Field

from glean.models import SummaryResult

logger = logging.getLogger(__name__)

HISTORY_DIRNAME = "history"


class HistoryStore(Protocol):
    """Read and append a user's summary history."""

    async def get_recent_summaries(self, user_id: str, limit: int) -> list[SummaryResult]: ...

    async def get_previously_summarized_unit_ids(self, user_id: str) -> set[str]: ...

    async def save_summary(self, result: SummaryResult) -> None: ...


class UserHistory(BaseModel):
    """On-disk history of one user, oldest first."""

    user_id: str
    summaries: list[SummaryResult] = Field(default_factory=list)


def atomic_write(path: Path, content: str) -> None:
    """Write ``content`` so readers never see a partial file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(content)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def _safe_name(user_id: str) -> str:
    return re.sub(r"[^A-Za-z0-9_.-]", "_", user_id) or "default"


class JsonHistoryStore:
    """Keeps each user's summaries in ``<directory>/history/<user>.json``.

    ``max_entries`` caps how many summaries are kept per user; ``None``
    keeps everything.
    """

    def __init__(self, directory: Path, max_entries: int | None = None) -> None:
        self.directory = Path(directory) / HISTORY_DIRNAME
        self.max_entries = max_entries

    def _path(self, user_id: str) -> Path:
        return self.directory / f"{_safe_name(user_id)}.json"

    def load(self, user_id: str) -> UserHistory:
        path = self._path(user_id)
        if not path.exists():
            return UserHistory(user_id=user_id)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return UserHistory.model_validate(data)
        except (json.JSONDecodeError, ValueError):
            logger.warning("Corrupt history at %s, starting fresh", path)
            return UserHistory(user_id=user_id)

    async def get_recent_summaries(self, user_id: str, limit: int) -> list[SummaryResult]:
        """Newest first."""
        summaries = self.load(user_id).summaries
        return list(reversed(summaries))[:limit]

    async def get_previously_summarized_unit_ids(self, user_id: str) -> set[str]:
        return {
            unit.id
            for summary in self.load(user_id).summaries
            for unit in summary.source_content
        }

    async def save_summary(self, result: SummaryResult) -> None:
        history = self.load(result.user_id)
        history.summaries.append(result)
        if self.max_entries is not None:
            history.summaries = history.summaries[-self.max_entries :]
        atomic_write(self._path(result.user_id), history.model_dump_json(indent=2))
        logger.debug("Saved summary %s for %s", result.id, result.user_id)


class InMemoryHistoryStore:
    """History held in a dict; for tests and one-off runs."""

    def __init__(self) -> None:
        self.summaries: dict[str, list[SummaryResult]] = {}

    async def get_recent_summaries(self, user_id: str, limit: int) -> list[SummaryResult]:
        return list(reversed(self.summaries.get(user_id, [])))[:limit]

    async def get_previously_summarized_unit_ids(self, user_id: str) -> set[str]:
        return {u.id for s in self.summaries.get(user_id, []) for u in s.source_content}

    async def save_summary(self, result: SummaryResult) -> None:
        self.summaries.setdefault(result.user_id, []).append(result)
