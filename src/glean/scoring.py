"""Content scoring heuristics.

``score = type base + type specific + universal``. Every constant lives in
:class:`ScoringWeights` so calibration can be changed from the ``[scoring]``
config section without touching code. Scores depend only on the unit and
the ``now`` passed in, so identical inputs always produce identical scores.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from pydantic import BaseModel, Field

from glean.models import (
    ContentKind,
    ContentUnit,
    Density,
    HighlightKind,
    HighlightUnit,
    ListKind,
    ListUnit,
    PageUnit,
    ScoredCandidate,
    SectionUnit,
    ToggleUnit,
)
from glean.trace import TraceKind, Tracer, emit

logger = logging.getLogger(__name__)

LEARNING_KEYWORDS = [
    "youtube", "video", "article", "tutorial", "course", "lesson",
    "notes from", "takeaways", "insights", "summary", "key points",
]
QUALITY_KEYWORDS = [
    "strategy", "technique", "method", "approach", "framework", "principle",
    "tip", "advice", "insight", "lesson", "key", "important", "crucial",
]
TOGGLE_ACTION_KEYWORDS = [
    "implement", "apply", "use", "try", "practice", "build", "create",
    "step", "process", "routine", "habit", "system",
]
IMPORTANT_SECTION_KEYWORDS = [
    "summary", "conclusion", "key points", "takeaways", "action items",
    "next steps", "decisions", "outcomes", "results",
]
LIST_ACTION_KEYWORDS = ["todo", "task", "action", "implement", "fix", "create", "update"]
HIGHLIGHT_KEYWORDS = ["important", "note", "warning", "tip", "remember"]
UNIVERSAL_ACTION_KEYWORDS = [
    "todo", "task", "action", "follow up", "next step", "implement", "try", "practice",
]
INSIGHT_KEYWORDS = ["insight", "takeaway", "key point", "important", "remember", "note", "tip"]

STRUCTURED_TITLE_MARKERS = ("|", "-", ":")


class ScoringWeights(BaseModel):
    """Heuristic weights ([scoring] section)."""

    base: dict[str, float] = Field(
        default_factory=lambda: {
            ContentKind.TOGGLE: 15,
            ContentKind.SECTION: 12,
            ContentKind.HIGHLIGHT: 10,
            ContentKind.LIST_ITEM: 8,
            ContentKind.PAGE: 5,
        }
    )

    # toggle
    learning_title_hit: float = 2
    learning_parent_hit: float = 1
    learning_multiplier: float = 3
    structured_title_bonus: float = 5
    toggle_word_tiers: list[tuple[int, float]] = Field(
        default_factory=lambda: [(50, 8), (150, 7), (300, 5)]
    )
    quality_multiplier: float = 2
    toggle_action_multiplier: float = 1.5
    focused_unit_bonus: float = 5

    # section
    important_section_hit: float = 3
    section_word_tiers: list[tuple[int, float]] = Field(
        default_factory=lambda: [(100, 6), (300, 4)]
    )

    # list item
    todo_bonus: float = 5
    incomplete_todo_bonus: float = 3
    list_action_hit: float = 2

    # highlight
    callout_bonus: float = 4
    quote_bonus: float = 3
    highlight_keyword_hit: float = 2

    # page
    high_density_bonus: float = 8
    medium_density_bonus: float = 4
    many_blocks_bonus: float = 3
    many_blocks_threshold: int = 10
    headings_bonus: float = 2
    headings_threshold: int = 2
    code_bonus: float = 2

    # universal
    recency_max: float = 10
    universal_action_multiplier: float = 2
    insight_multiplier: float = 1.5
    meeting_bonus: float = 6
    project_bonus: float = 4
    short_body_chars: int = 50
    short_body_penalty: float = 5


def _hits(text: str, keywords: list[str]) -> int:
    lowered = text.lower()
    return sum(1 for keyword in keywords if keyword in lowered)


def _tier_bonus(words: int, tiers: list[tuple[int, float]]) -> float:
    return sum(bonus for threshold, bonus in tiers if words > threshold)


def age_in_days(unit: ContentUnit, now: datetime) -> float | None:
    if unit.last_edited_at is None:
        return None
    edited = unit.last_edited_at
    if edited.tzinfo is None:
        edited = edited.replace(tzinfo=UTC)
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    return (now - edited).total_seconds() / 86400


class ContentScorer:
    """Scores content units with type-specific and universal heuristics."""

    def __init__(
        self,
        weights: ScoringWeights | None = None,
        tracer: Tracer | None = None,
    ) -> None:
        self._w = weights or ScoringWeights()
        self._tracer = tracer

    @property
    def weights(self) -> ScoringWeights:
        return self._w

    def score(self, unit: ContentUnit, now: datetime) -> ScoredCandidate:
        type_score = self._w.base.get(unit.kind, 0) + self.type_specific(unit)
        universal = self.universal(unit, now)
        candidate = ScoredCandidate(
            unit=unit,
            total_score=type_score + universal,
            type_score=type_score,
            universal_score=universal,
        )
        emit(
            self._tracer,
            TraceKind.SCORE,
            unit.id,
            unit_kind=unit.kind,
            title=unit.title,
            total=candidate.total_score,
            type_score=type_score,
            universal=universal,
        )
        return candidate

    def score_all(self, units: list[ContentUnit], now: datetime) -> list[ScoredCandidate]:
        return [self.score(unit, now) for unit in units]

    def type_specific(self, unit: ContentUnit) -> float:
        if isinstance(unit, ToggleUnit):
            return self._score_toggle(unit)
        if isinstance(unit, SectionUnit):
            return self._score_section(unit)
        if isinstance(unit, ListUnit):
            return self._score_list(unit)
        if isinstance(unit, HighlightUnit):
            return self._score_highlight(unit)
        if isinstance(unit, PageUnit):
            return self._score_page(unit)
        return 0.0

    def _score_toggle(self, unit: ToggleUnit) -> float:
        w = self._w
        title = unit.toggle_title or unit.title
        title_lower = title.lower()
        parent_lower = unit.parent_title.lower()

        learning = sum(
            (w.learning_title_hit if kw in title_lower else 0)
            + (w.learning_parent_hit if kw in parent_lower else 0)
            for kw in LEARNING_KEYWORDS
        )
        score = learning * w.learning_multiplier

        if any(marker in title for marker in STRUCTURED_TITLE_MARKERS):
            score += w.structured_title_bonus

        score += _tier_bonus(unit.word_count, w.toggle_word_tiers)
        score += _hits(unit.body, QUALITY_KEYWORDS) * w.quality_multiplier
        score += _hits(unit.body, TOGGLE_ACTION_KEYWORDS) * w.toggle_action_multiplier
        score += w.focused_unit_bonus
        return score

    def _score_section(self, unit: SectionUnit) -> float:
        w = self._w
        score = _hits(unit.section_title or unit.title, IMPORTANT_SECTION_KEYWORDS) * (
            w.important_section_hit
        )
        score += _tier_bonus(unit.word_count, w.section_word_tiers)
        return score

    def _score_list(self, unit: ListUnit) -> float:
        w = self._w
        score = 0.0
        if unit.list_kind == ListKind.TO_DO:
            score += w.todo_bonus
            if not unit.is_completed:
                score += w.incomplete_todo_bonus
        score += _hits(unit.body, LIST_ACTION_KEYWORDS) * w.list_action_hit
        return score

    def _score_highlight(self, unit: HighlightUnit) -> float:
        w = self._w
        score = w.callout_bonus if unit.highlight_kind == HighlightKind.CALLOUT else w.quote_bonus
        score += _hits(unit.body, HIGHLIGHT_KEYWORDS) * w.highlight_keyword_hit
        return score

    def _score_page(self, unit: PageUnit) -> float:
        w = self._w
        profile = unit.profile
        if profile is None:
            return 0.0
        score = 0.0
        if profile.density == Density.HIGH:
            score += w.high_density_bonus
        elif profile.density == Density.MEDIUM:
            score += w.medium_density_bonus
        if profile.total_blocks > w.many_blocks_threshold:
            score += w.many_blocks_bonus
        if profile.heading_count > w.headings_threshold:
            score += w.headings_bonus
        if profile.code_block_count > 0:
            score += w.code_bonus
        return score

    def universal(self, unit: ContentUnit, now: datetime) -> float:
        """Factors applied to every unit regardless of kind."""
        w = self._w
        score = 0.0

        age = age_in_days(unit, now)
        if age is not None:
            score += max(0.0, w.recency_max - age)

        score += _hits(unit.body, UNIVERSAL_ACTION_KEYWORDS) * w.universal_action_multiplier
        score += _hits(unit.body, INSIGHT_KEYWORDS) * w.insight_multiplier

        title = unit.title.lower()
        body = unit.body.lower()
        if "meeting" in title or "meeting" in body:
            score += w.meeting_bonus
        if "project" in title or "project" in body:
            score += w.project_bonus

        if len(unit.body.strip()) < w.short_body_chars:
            score -= w.short_body_penalty
        return score
