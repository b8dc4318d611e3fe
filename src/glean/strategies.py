"""Maps a page's pattern to an ordered list of extraction strategies."""

from __future__ import annotations

from enum import StrEnum

from glean.models import Complexity, Pattern, StructuralProfile


class Strategy(StrEnum):
    HIERARCHICAL_TOGGLE = "hierarchical_toggle"
    FLAT_TOGGLE = "flat_toggle"
    STRUCTURED_SECTION = "structured_section"
    LIST_COLLECTION = "list_collection"
    INDIVIDUAL_LIST = "individual_list"
    HIGHLIGHT = "highlight"
    MIXED = "mixed"
    FULL_PAGE = "full_page"


_BY_PATTERN: dict[Pattern, list[Strategy]] = {
    Pattern.HIERARCHICAL_TOGGLES: [Strategy.HIERARCHICAL_TOGGLE, Strategy.HIGHLIGHT],
    Pattern.FLAT_TOGGLES: [Strategy.FLAT_TOGGLE, Strategy.HIGHLIGHT],
    Pattern.STRUCTURED_HEADINGS: [Strategy.STRUCTURED_SECTION, Strategy.HIGHLIGHT],
    Pattern.HIGHLIGHT_FOCUSED: [Strategy.HIGHLIGHT],
    Pattern.MIXED: [Strategy.MIXED],
    Pattern.SIMPLE: [Strategy.FULL_PAGE],
}


def select_strategies(profile: StructuralProfile) -> list[Strategy]:
    """Ordered strategies for ``profile``; always ends with full page."""
    pattern = profile.primary_pattern
    if pattern == Pattern.LIST_HEAVY:
        if profile.complexity == Complexity.SIMPLE:
            strategies = [Strategy.INDIVIDUAL_LIST]
        else:
            strategies = [Strategy.LIST_COLLECTION, Strategy.INDIVIDUAL_LIST]
    else:
        strategies = list(_BY_PATTERN.get(pattern, []))

    if not strategies or strategies[-1] != Strategy.FULL_PAGE:
        strategies.append(Strategy.FULL_PAGE)
    return strategies
