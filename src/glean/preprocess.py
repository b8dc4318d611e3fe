"""Format the single selected unit into a bounded block of text."""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from datetime import datetime

from glean.errors import SelectionInvariantError
from glean.models import (
    ContentUnit,
    HighlightKind,
    HighlightUnit,
    ListKind,
    ListUnit,
    PageUnit,
    SectionUnit,
    ToggleLevel,
    ToggleUnit,
)

logger = logging.getLogger(__name__)

DEFAULT_BUDGET_CHARS = 32000 * 3
DEFAULT_TRUNCATION_MARKER = "\n\n[Content truncated due to length]"

_LINK = re.compile(r"\[([^\]]+)\]\([^)]+\)")
_FORMATTING = re.compile(r"[#*`]")
_INNER_SPACE = re.compile(r"(?<=\S)[ \t]+")
_BLANK_LINES = re.compile(r"\n{3,}")

LEVEL_CONTEXT = {
    ToggleLevel.VIDEO: (
        'These are notes on a single video or learning source, nested under the '
        '"{category}" category.'
    ),
    ToggleLevel.CATEGORY: (
        'This is the overview text of the "{title}" category toggle, which groups '
        "several source toggles."
    ),
    ToggleLevel.DIRECT: "This is a standalone toggle with its own notes.",
}


def clean_content(text: str) -> str:
    """Strip markdown links and formatting characters, normalize whitespace."""
    text = _LINK.sub(r"\1", text)
    text = _FORMATTING.sub("", text)
    lines = [_INNER_SPACE.sub(" ", line).rstrip() for line in text.splitlines()]
    return _BLANK_LINES.sub("\n\n", "\n".join(lines)).strip()


def truncate(text: str, budget_chars: int, marker: str = DEFAULT_TRUNCATION_MARKER) -> str:
    """Cut ``text`` to at most ``budget_chars``, ending with ``marker`` when cut."""
    if len(text) <= budget_chars:
        return text
    keep = budget_chars - len(marker)
    if keep <= 0:
        return marker[:budget_chars]
    logger.info("Content truncated from %d to %d chars", len(text), budget_chars)
    return text[:keep] + marker


def format_property(value: object) -> str:
    if isinstance(value, list):
        return ", ".join(str(v) for v in value)
    return str(value)


def _edited(moment: datetime | None) -> str:
    return moment.isoformat() if moment else "unknown"


def _format_toggle(unit: ToggleUnit) -> list[str]:
    lines = ["--- TOGGLE CONTENT ---", f'Toggle: "{unit.toggle_title}"']
    lines.append(f"Level: {unit.toggle_level}")
    if unit.category_title:
        lines.append(f"Path: {unit.parent_title} > {unit.category_title} > {unit.toggle_title}")
    else:
        lines.append(f"Source page: {unit.parent_title}")
    lines.append(f"Extraction method: {unit.extraction_method}")
    lines.append(f"Status: {'closed' if unit.is_closed else 'open'}")
    lines.append(f"Last edited: {_edited(unit.last_edited_at)}")
    lines.append("")
    lines.append(
        LEVEL_CONTEXT[unit.toggle_level].format(
            category=unit.category_title, title=unit.toggle_title
        )
    )
    if unit.is_closed:
        lines.append(
            "The toggle is collapsed and its notes could not be read. The content "
            "below is generated from the title only."
        )
    return lines


def _format_section(unit: SectionUnit) -> list[str]:
    return [
        "--- SECTION CONTENT ---",
        f"Source page: {unit.parent_title}",
        f"Section: {unit.section_title} (heading level {unit.heading_level or 'none'})",
        f"Last edited: {_edited(unit.last_edited_at)}",
        "",
        f'This section is one part of the structured document "{unit.parent_title}".',
    ]


def _format_list(unit: ListUnit) -> list[str]:
    header = "LIST COLLECTION" if unit.is_collection else "LIST ITEM"
    lines = [
        f"--- {header} ---",
        f"Source page: {unit.parent_title}",
        f"List type: {unit.list_kind}",
    ]
    if unit.list_kind == ListKind.TO_DO:
        status = "completed" if unit.is_completed else "pending"
        lines.append(f"Task status: {status}")
    if unit.is_collection:
        lines.append(f"Items: {unit.item_count}")
    lines.append(f"Last edited: {_edited(unit.last_edited_at)}")
    return lines


def _format_highlight(unit: HighlightUnit) -> list[str]:
    note = (
        "Callouts usually hold warnings, tips or key insights."
        if unit.highlight_kind == HighlightKind.CALLOUT
        else "Quotes usually hold significant statements or references."
    )
    return [
        "--- HIGHLIGHTED CONTENT ---",
        f"Source page: {unit.parent_title}",
        f"Highlight type: {unit.highlight_kind}",
        f"Last edited: {_edited(unit.last_edited_at)}",
        "",
        f"The author emphasized this block. {note}",
    ]


def _format_page(unit: PageUnit) -> list[str]:
    lines = [f"--- PAGE: {unit.title} ---", f"Last edited: {_edited(unit.last_edited_at)}"]
    if unit.profile is not None:
        p = unit.profile
        lines.append(
            f"Structure: {p.primary_pattern}, {p.organization_style} ({p.density} density)"
        )
        lines.append(
            f"Blocks: {p.total_blocks} total, {p.heading_count} headings, "
            f"{p.list_item_count} list items"
        )
    return lines


def format_unit(unit: ContentUnit) -> str:
    """Header, context and cleaned body for one unit."""
    if isinstance(unit, ToggleUnit):
        header = _format_toggle(unit)
    elif isinstance(unit, SectionUnit):
        header = _format_section(unit)
    elif isinstance(unit, ListUnit):
        header = _format_list(unit)
    elif isinstance(unit, HighlightUnit):
        header = _format_highlight(unit)
    else:
        header = _format_page(unit)

    lines = [*header, "", "--- BEGIN CONTENT ---", clean_content(unit.body), "--- END CONTENT ---"]
    if isinstance(unit, PageUnit) and unit.properties:
        lines.append("")
        lines.append("Properties:")
        lines.extend(f"- {k}: {format_property(v)}" for k, v in unit.properties.items())
    return "\n".join(lines)


def preprocess(
    units: Sequence[ContentUnit],
    budget_chars: int = DEFAULT_BUDGET_CHARS,
    marker: str = DEFAULT_TRUNCATION_MARKER,
) -> str:
    """Format exactly one unit for the model.

    Raises:
        SelectionInvariantError: ``units`` does not hold exactly one unit.
    """
    if len(units) != 1:
        raise SelectionInvariantError(
            f"Exactly one content unit must reach preprocessing, got {len(units)}"
        )
    return truncate(format_unit(units[0]), budget_chars, marker)
