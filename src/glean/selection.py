"""History-aware selection of exactly one content unit.

Unseen content always wins over repetition. When nothing unseen is left,
repetition is allowed only once enough of the user's content has been
summarized, and then the unit used longest ago is preferred.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel, Field

from glean.config import SelectionConfig
from glean.models import ScoredCandidate, SelectionHistory
from glean.store import atomic_write
from glean.trace import TraceKind, Tracer, emit

logger = logging.getLogger(__name__)

RECENCY_FILENAME = ".glean-recent.json"


def _aware(moment: datetime) -> datetime:
    return moment if moment.tzinfo else moment.replace(tzinfo=UTC)


class RecencyStore(Protocol):
    """Short-term "recently processed" markers keyed by user and unit id."""

    def is_recent(self, user_id: str, unit_id: str, now: datetime) -> bool: ...

    def mark_processed(self, user_id: str, unit_id: str, now: datetime) -> None: ...


class InMemoryRecencyStore:
    def __init__(self, window_hours: float = 24) -> None:
        self.window = timedelta(hours=window_hours)
        self.marks: dict[tuple[str, str], datetime] = {}

    def is_recent(self, user_id: str, unit_id: str, now: datetime) -> bool:
        marked = self.marks.get((user_id, unit_id))
        return marked is not None and _aware(now) - marked < self.window

    def mark_processed(self, user_id: str, unit_id: str, now: datetime) -> None:
        self.marks[(user_id, unit_id)] = _aware(now)


class RecencyMark(BaseModel):
    user_id: str
    unit_id: str
    processed_at: datetime


class RecencyState(BaseModel):
    marks: list[RecencyMark] = Field(default_factory=list)


class JsonRecencyStore:
    """Recency markers persisted to a JSON file; expired marks are pruned on save."""

    def __init__(self, path: Path, window_hours: float = 24) -> None:
        self.path = Path(path)
        self.window = timedelta(hours=window_hours)

    def _load(self) -> RecencyState:
        if not self.path.exists():
            return RecencyState()
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            return RecencyState.model_validate(data)
        except (json.JSONDecodeError, ValueError):
            logger.warning("Corrupt recency state at %s, starting fresh", self.path)
            return RecencyState()

    def is_recent(self, user_id: str, unit_id: str, now: datetime) -> bool:
        now = _aware(now)
        return any(
            m.user_id == user_id
            and m.unit_id == unit_id
            and now - _aware(m.processed_at) < self.window
            for m in self._load().marks
        )

    def mark_processed(self, user_id: str, unit_id: str, now: datetime) -> None:
        now = _aware(now)
        state = self._load()
        state.marks = [
            m
            for m in state.marks
            if now - _aware(m.processed_at) < self.window
            and not (m.user_id == user_id and m.unit_id == unit_id)
        ]
        state.marks.append(RecencyMark(user_id=user_id, unit_id=unit_id, processed_at=now))
        atomic_write(self.path, state.model_dump_json(indent=2))


class SelectionReason(StrEnum):
    FRESH = "fresh"
    REPETITION = "repetition"
    NO_CANDIDATES = "no_candidates"
    REPETITION_NOT_ALLOWED = "repetition_not_allowed"


class SelectionOutcome(BaseModel):
    """Result of one selection pass; ``selected`` is ``None`` for a no-op."""

    selected: ScoredCandidate | None = None
    is_repetition: bool = False
    reason: SelectionReason
    available_count: int = 0
    repetition_ratio: float = 0.0


class HistoryAwareSelector:
    """Picks exactly one candidate, avoiding recently summarized content."""

    def __init__(
        self,
        recency: RecencyStore | None = None,
        config: SelectionConfig | None = None,
        tracer: Tracer | None = None,
    ) -> None:
        self.config = config or SelectionConfig()
        self.recency = recency or InMemoryRecencyStore(self.config.recent_window_hours)
        self.tracer = tracer

    def select(
        self,
        candidates: list[ScoredCandidate],
        history: SelectionHistory,
        user_id: str,
        now: datetime,
    ) -> SelectionOutcome:
        ratio = history.repetition_ratio
        available = [
            c
            for c in candidates
            if c.unit.id not in history.summarized_ids
            and not self.recency.is_recent(user_id, c.unit.id, now)
        ]

        if not candidates:
            outcome = SelectionOutcome(reason=SelectionReason.NO_CANDIDATES, repetition_ratio=ratio)
        elif available:
            # sorted() is stable, so ties keep extraction order
            best = sorted(available, key=lambda c: c.total_score, reverse=True)[0]
            outcome = SelectionOutcome(
                selected=best,
                reason=SelectionReason.FRESH,
                available_count=len(available),
                repetition_ratio=ratio,
            )
        elif ratio >= self.config.repetition_threshold:
            outcome = SelectionOutcome(
                selected=self._stalest(candidates, history),
                is_repetition=True,
                reason=SelectionReason.REPETITION,
                repetition_ratio=ratio,
            )
        else:
            outcome = SelectionOutcome(
                reason=SelectionReason.REPETITION_NOT_ALLOWED, repetition_ratio=ratio
            )

        if outcome.selected is not None:
            self.recency.mark_processed(user_id, outcome.selected.unit.id, now)

        emit(
            self.tracer,
            TraceKind.SELECTION,
            outcome.selected.unit.id if outcome.selected else "",
            reason=outcome.reason,
            candidates=len(candidates),
            available=outcome.available_count,
            repetition_ratio=ratio,
        )
        logger.info(
            "Selection for %s: %s (%d candidates, %d available)",
            user_id, outcome.reason, len(candidates), outcome.available_count,
        )
        return outcome

    def _stalest(
        self, candidates: list[ScoredCandidate], history: SelectionHistory
    ) -> ScoredCandidate:
        """Rescore every candidate by universal factors plus staleness."""
        bonus = self.config.repetition_bonus_per_summary
        rescored = [
            c.model_copy(
                update={
                    "repetition_bonus": bonus * history.summaries_ago.get(c.unit.id, 0),
                    "total_score": c.universal_score
                    + bonus * history.summaries_ago.get(c.unit.id, 0),
                }
            )
            for c in candidates
        ]
        return sorted(rescored, key=lambda c: c.total_score, reverse=True)[0]
