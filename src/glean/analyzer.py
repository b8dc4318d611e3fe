"""Structural analysis of a page's top-level blocks.

Classifies a page into one organizational :class:`Pattern` so the right
extraction strategies can be chosen. Pure: no network, no side effects.
"""

from __future__ import annotations

import logging
from collections import Counter

from glean.models import (
    HEADING_TYPES,
    HIGHLIGHT_TYPES,
    LIST_TYPES,
    BlockType,
    Complexity,
    Density,
    OrganizationStyle,
    Pattern,
    RawBlock,
    StructuralProfile,
)

logger = logging.getLogger(__name__)

LEARNING_TITLE_HINTS = (
    "video", "notes", "learning", "course", "youtube", "lecture", "tutorial", "lesson",
)

HIGH_DENSITY_CHARS = 3000
MEDIUM_DENSITY_CHARS = 1000
COMPLEX_THRESHOLD = 20
MODERATE_THRESHOLD = 8

# category -> weight used to pick the dominant type
TYPE_WEIGHTS = {
    "toggle": 2.0,
    "highlight": 2.0,
    "heading": 1.5,
    "list": 1.0,
    "paragraph": 0.5,
}

STYLE_BY_PATTERN = {
    Pattern.HIERARCHICAL_TOGGLES: OrganizationStyle.HIERARCHICAL,
    Pattern.STRUCTURED_HEADINGS: OrganizationStyle.HIERARCHICAL,
    Pattern.FLAT_TOGGLES: OrganizationStyle.CATEGORICAL,
    Pattern.HIGHLIGHT_FOCUSED: OrganizationStyle.CATEGORICAL,
    Pattern.LIST_HEAVY: OrganizationStyle.SEQUENTIAL,
    Pattern.MIXED: OrganizationStyle.FREEFORM,
    Pattern.SIMPLE: OrganizationStyle.FREEFORM,
}


def block_category(block: RawBlock) -> str:
    """Coarse category of a block; toggleable headings count as toggles."""
    if block.is_toggle:
        return "toggle"
    if block.type in HEADING_TYPES:
        return "heading"
    if block.type in LIST_TYPES:
        return "list"
    if block.type in HIGHLIGHT_TYPES:
        return "highlight"
    if block.type == BlockType.PARAGRAPH:
        return "paragraph"
    if block.type == BlockType.CODE:
        return "code"
    return "other"


def has_learning_title(title: str) -> bool:
    lowered = title.lower()
    return any(hint in lowered for hint in LEARNING_TITLE_HINTS)


class StructuralAnalyzer:
    """Builds a :class:`StructuralProfile` from one pass over the blocks."""

    def analyze(
        self,
        blocks: list[RawBlock],
        page_title: str = "",
        page_id: str = "",
    ) -> StructuralProfile:
        block_counts: Counter[str] = Counter()
        categories: Counter[str] = Counter()
        heading_counts: Counter[int] = Counter()
        list_counts: Counter[str] = Counter()
        toggles_with_children = 0
        total_text = 0

        for block in blocks:
            block_counts[block.type] += 1
            category = block_category(block)
            categories[category] += 1
            total_text += len(block.text)

            if category == "toggle":
                if block.carries_children:
                    toggles_with_children += 1
            elif category == "heading":
                heading_counts[block.heading_level] += 1
            elif category == "list":
                list_counts[str(block.list_kind)] += 1

        total = len(blocks)
        toggles = categories["toggle"]
        headings = categories["heading"]
        list_items = categories["list"]
        paragraphs = categories["paragraph"]
        highlights = categories["highlight"]

        dominant = self._dominant_type(categories)
        pattern = self._classify(
            toggles=toggles,
            toggles_with_children=toggles_with_children,
            learning_title=has_learning_title(page_title),
            headings=headings,
            level_two_headings=heading_counts[2],
            list_items=list_items,
            paragraphs=paragraphs,
            highlights=highlights,
            total=total,
        )

        profile = StructuralProfile(
            page_id=page_id,
            page_title=page_title,
            block_counts=dict(block_counts),
            total_blocks=total,
            toggle_count=toggles,
            toggles_with_children=toggles_with_children,
            heading_counts=dict(heading_counts),
            heading_count=headings,
            list_counts=dict(list_counts),
            list_item_count=list_items,
            paragraph_count=paragraphs,
            highlight_count=highlights,
            code_block_count=categories["code"],
            total_text_length=total_text,
            average_text_length=total_text / total if total else 0.0,
            density=self._density(total_text),
            complexity=self._complexity(toggles, headings, list_items),
            dominant_type=dominant,
            primary_pattern=pattern,
            organization_style=STYLE_BY_PATTERN[pattern],
            consistency_score=categories[dominant] / total if total else 0.0,
        )
        logger.debug(
            "Page %r: %d blocks, pattern=%s, density=%s",
            page_title, total, pattern, profile.density,
        )
        return profile

    @staticmethod
    def _density(total_text: int) -> Density:
        if total_text > HIGH_DENSITY_CHARS:
            return Density.HIGH
        if total_text > MEDIUM_DENSITY_CHARS:
            return Density.MEDIUM
        return Density.LOW

    @staticmethod
    def _complexity(toggles: int, headings: int, list_items: int) -> Complexity:
        weighted = toggles * 3 + headings * 2 + list_items
        if weighted >= COMPLEX_THRESHOLD:
            return Complexity.COMPLEX
        if weighted >= MODERATE_THRESHOLD:
            return Complexity.MODERATE
        return Complexity.SIMPLE

    @staticmethod
    def _dominant_type(categories: Counter[str]) -> str:
        best, best_weight = "paragraph", 0.0
        # dict order breaks ties
        for category, weight in TYPE_WEIGHTS.items():
            weighted = categories[category] * weight
            if weighted > best_weight:
                best, best_weight = category, weighted
        return best

    @staticmethod
    def _classify(
        *,
        toggles: int,
        toggles_with_children: int,
        learning_title: bool,
        headings: int,
        level_two_headings: int,
        list_items: int,
        paragraphs: int,
        highlights: int,
        total: int,
    ) -> Pattern:
        if toggles >= 2 and (learning_title or toggles_with_children >= 1):
            return Pattern.HIERARCHICAL_TOGGLES
        if toggles >= 1:
            return Pattern.FLAT_TOGGLES
        if headings >= 3 and level_two_headings >= 2:
            return Pattern.STRUCTURED_HEADINGS
        if list_items >= 5 and list_items > paragraphs:
            return Pattern.LIST_HEAVY
        if highlights >= 2:
            return Pattern.HIGHLIGHT_FOCUSED
        if total >= 8:
            return Pattern.MIXED
        return Pattern.SIMPLE
