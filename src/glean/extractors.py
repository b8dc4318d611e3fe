"""Content extractors: turn a materialized block tree into content units.

Each strategy is a pure function of the tree. :func:`extract_units` runs
the strategies chosen for a page in order and keeps the first non-empty
result. Mixed extraction is the one strategy that merges the output of
several extractors, and full-page extraction is the last resort.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable

from glean.config import ExtractionConfig
from glean.models import (
    HEADING_TYPES,
    HIGHLIGHT_TYPES,
    BlockType,
    ContentUnit,
    HighlightKind,
    HighlightUnit,
    ListKind,
    ListUnit,
    PageMetadata,
    PageUnit,
    RawBlock,
    SectionUnit,
    StructuralProfile,
    ToggleLevel,
    ToggleUnit,
)
from glean.strategies import Strategy, select_strategies
from glean.trace import TraceKind, Tracer, emit

logger = logging.getLogger(__name__)

TITLE_MAX_CHARS = 80
INTRODUCTION_TITLE = "Introduction"
_TOPIC_SPLIT = re.compile(r"\s*[|:\-]\s*")

LIST_LABELS = {
    ListKind.BULLETED: "bullet points",
    ListKind.NUMBERED: "numbered steps",
    ListKind.TO_DO: "tasks",
}


def closed_toggle_placeholder(
    toggle_title: str,
    page_title: str,
    category_title: str = "",
) -> str:
    """Stand-in text for a toggle whose children could not be read.

    Collapsed toggles often come back from the API with no children, so an
    empty fetch is treated as "unknown", not "empty". The text depends only
    on the arguments.
    """
    title = toggle_title.strip() or "Untitled toggle"
    page = page_title.strip() or "Untitled"
    lines = [f'Notes collected under the toggle "{title}" on the page "{page}".']
    if category_title:
        lines.append(f'It is filed inside the "{category_title}" category.')

    topics = [part for part in _TOPIC_SPLIT.split(title) if part]
    if len(topics) > 1:
        lines.append("Topics suggested by the title: " + ", ".join(topics) + ".")

    lines.append("The toggle is collapsed, so its contents could not be retrieved.")
    if category_title:
        lines.append(
            f'To read the full notes, open "{page}" in Notion, expand the '
            f'"{category_title}" toggle and then the "{title}" toggle.'
        )
    else:
        lines.append(f'To read the full notes, open "{page}" in Notion and expand "{title}".')
    return "\n".join(lines)


def _short(text: str, limit: int = TITLE_MAX_CHARS) -> str:
    text = " ".join(text.split())
    if len(text) <= limit:
        return text
    return text[: limit - 3].rstrip() + "..."


def _render_line(block: RawBlock) -> str | None:
    text = block.text.strip()
    if block.type == BlockType.DIVIDER:
        return None
    if block.type in HEADING_TYPES:
        return f"{'#' * block.heading_level} {text}"
    if block.type == BlockType.TO_DO:
        return f"[{'x' if block.checked else ' '}] {text}"
    if block.type == BlockType.NUMBERED_LIST_ITEM:
        return f"1. {text}"
    if block.type == BlockType.BULLETED_LIST_ITEM:
        return f"- {text}"
    if block.type in HIGHLIGHT_TYPES:
        return f"> {text}"
    return text or None


def render_blocks(blocks: list[RawBlock], max_depth: int = 3) -> str:
    """Render blocks and their materialized children as indented text.

    Nesting deeper than ``max_depth`` levels below ``blocks`` is dropped.
    """
    lines: list[str] = []

    def walk(items: list[RawBlock], level: int) -> None:
        for block in items:
            line = _render_line(block)
            if line:
                lines.append("  " * level + line)
            if not block.children:
                continue
            if level + 1 > max_depth:
                logger.debug("Rendering stopped at depth %d below block %s", max_depth, block.id)
                continue
            walk(block.children, level + 1)

    walk(blocks, 0)
    return "\n".join(lines)


class ContentExtractor:
    """Runs extraction strategies over one page's materialized blocks."""

    def __init__(
        self,
        page: PageMetadata,
        config: ExtractionConfig | None = None,
        tracer: Tracer | None = None,
    ) -> None:
        self.page = page
        self.config = config or ExtractionConfig()
        self.tracer = tracer

    # shared helpers

    def _common(self, block: RawBlock | None, method: str) -> dict[str, object]:
        edited = block.last_edited_at if block and block.last_edited_at else None
        return {
            "page_id": self.page.id,
            "parent_title": self.page.title,
            "url": self.page.url,
            "last_edited_at": edited or self.page.last_edited_at,
            "extraction_method": method,
        }

    def _render(self, blocks: list[RawBlock]) -> str:
        return render_blocks(blocks, self.config.max_depth)

    def _toggle_unit(
        self,
        block: RawBlock,
        level: ToggleLevel,
        method: str,
        category_title: str = "",
    ) -> ToggleUnit:
        body = "" if block.fetch_error else self._render(block.children or [])
        is_closed = not body.strip()
        if is_closed:
            body = closed_toggle_placeholder(block.text, self.page.title, category_title)
            emit(
                self.tracer,
                TraceKind.PLACEHOLDER,
                block.id,
                title=block.text,
                reason=block.fetch_error or "no children returned",
            )
            method = f"{method}_placeholder"
        return ToggleUnit(
            id=block.id,
            title=_short(block.text) or "Untitled toggle",
            body=body,
            toggle_title=block.text,
            toggle_level=level,
            category_title=category_title,
            is_closed=is_closed,
            **self._common(block, method),
        )

    # strategies

    def hierarchical_toggles(self, blocks: list[RawBlock]) -> list[ContentUnit]:
        units: list[ContentUnit] = []
        method = Strategy.HIERARCHICAL_TOGGLE.value
        for block in blocks:
            if not block.is_toggle:
                continue
            children = block.children or []
            nested = [child for child in children if child.is_toggle]
            if block.fetch_error or not nested:
                units.append(self._toggle_unit(block, ToggleLevel.DIRECT, method))
                continue

            for child in nested:
                units.append(
                    self._toggle_unit(child, ToggleLevel.VIDEO, method, category_title=block.text)
                )
            others = [child for child in children if not child.is_toggle]
            overview = self._render(others)
            if overview.strip():
                units.append(
                    ToggleUnit(
                        id=f"{block.id}:overview",
                        title=_short(f"{block.text} (overview)"),
                        body=overview,
                        toggle_title=block.text,
                        toggle_level=ToggleLevel.CATEGORY,
                        **self._common(block, method),
                    )
                )
        return units

    def flat_toggles(self, blocks: list[RawBlock]) -> list[ContentUnit]:
        method = Strategy.FLAT_TOGGLE.value
        return [
            self._toggle_unit(block, ToggleLevel.DIRECT, method)
            for block in blocks
            if block.is_toggle
        ]

    def structured_sections(self, blocks: list[RawBlock]) -> list[ContentUnit]:
        units: list[ContentUnit] = []
        heading: RawBlock | None = None
        body_blocks: list[RawBlock] = []

        def flush() -> None:
            parts = [self._render(heading.children or [])] if heading else []
            parts.append(self._render(body_blocks))
            body = "\n".join(part for part in parts if part)
            if len(body.strip()) <= self.config.min_section_chars:
                return
            if heading is None:
                unit_id, title, level = f"{self.page.id}:intro", INTRODUCTION_TITLE, 0
            else:
                unit_id, title, level = heading.id, heading.text, heading.heading_level
            units.append(
                SectionUnit(
                    id=unit_id,
                    title=_short(title) or "Untitled section",
                    body=body,
                    section_title=title,
                    heading_level=level,
                    **self._common(heading, Strategy.STRUCTURED_SECTION.value),
                )
            )

        for block in blocks:
            if block.type in HEADING_TYPES:
                flush()
                heading, body_blocks = block, []
            else:
                body_blocks.append(block)
        flush()
        return units

    def list_collections(self, blocks: list[RawBlock]) -> list[ContentUnit]:
        units: list[ContentUnit] = []
        run: list[RawBlock] = []

        def flush() -> None:
            if len(run) >= self.config.min_list_run:
                units.append(self._collection_unit(list(run)))
            run.clear()

        for block in blocks:
            kind = block.list_kind
            if kind is None:
                flush()
                continue
            if run and run[-1].list_kind != kind:
                flush()
            run.append(block)
        flush()
        return units

    def _collection_unit(self, run: list[RawBlock]) -> ListUnit:
        kind = run[0].list_kind or ListKind.BULLETED
        completed = all(b.checked for b in run) if kind == ListKind.TO_DO else None
        edited = [b for b in run if b.last_edited_at is not None]
        latest = max(edited, key=lambda b: b.last_edited_at) if edited else run[0]  # type: ignore[arg-type,return-value]
        return ListUnit(
            id=f"{run[0].id}:list",
            title=f"{len(run)} {LIST_LABELS[kind]} from {self.page.title}",
            body=self._render(run),
            list_kind=kind,
            is_completed=completed,
            item_count=len(run),
            **self._common(latest, Strategy.LIST_COLLECTION.value),
        )

    def individual_list_items(self, blocks: list[RawBlock]) -> list[ContentUnit]:
        units: list[ContentUnit] = []
        for block in blocks:
            kind = block.list_kind
            if kind is None or len(block.text.strip()) < self.config.min_list_item_chars:
                continue
            units.append(
                ListUnit(
                    id=block.id,
                    title=_short(block.text),
                    body=self._render([block]),
                    list_kind=kind,
                    is_completed=bool(block.checked) if kind == ListKind.TO_DO else None,
                    **self._common(block, Strategy.INDIVIDUAL_LIST.value),
                )
            )
        return units

    def highlights(self, blocks: list[RawBlock]) -> list[ContentUnit]:
        units: list[ContentUnit] = []
        for block in blocks:
            if block.type not in HIGHLIGHT_TYPES:
                continue
            if len(block.text.strip()) < self.config.min_highlight_chars:
                continue
            units.append(
                HighlightUnit(
                    id=block.id,
                    title=_short(block.text),
                    body=self._render([block]),
                    highlight_kind=HighlightKind(block.type),
                    **self._common(block, Strategy.HIGHLIGHT.value),
                )
            )
        return units

    def mixed(self, blocks: list[RawBlock]) -> list[ContentUnit]:
        cfg = self.config
        return (
            self.flat_toggles(blocks)[: cfg.mixed_toggle_slice]
            + self.structured_sections(blocks)[: cfg.mixed_section_slice]
            + self.highlights(blocks)[: cfg.mixed_highlight_slice]
        )

    def full_page(
        self, blocks: list[RawBlock], profile: StructuralProfile | None = None
    ) -> list[ContentUnit]:
        body = self._render(blocks)
        if not body.strip():
            return []
        return [
            PageUnit(
                id=self.page.id,
                title=self.page.title,
                body=body,
                profile=profile,
                properties=self.page.properties,
                **self._common(None, Strategy.FULL_PAGE.value),
            )
        ]

    def run(
        self,
        strategy: Strategy,
        blocks: list[RawBlock],
        profile: StructuralProfile | None = None,
    ) -> list[ContentUnit]:
        """Run one strategy and drop units below the minimum body length."""
        handlers: dict[Strategy, Callable[[list[RawBlock]], list[ContentUnit]]] = {
            Strategy.HIERARCHICAL_TOGGLE: self.hierarchical_toggles,
            Strategy.FLAT_TOGGLE: self.flat_toggles,
            Strategy.STRUCTURED_SECTION: self.structured_sections,
            Strategy.LIST_COLLECTION: self.list_collections,
            Strategy.INDIVIDUAL_LIST: self.individual_list_items,
            Strategy.HIGHLIGHT: self.highlights,
            Strategy.MIXED: self.mixed,
        }
        if strategy == Strategy.FULL_PAGE:
            units = self.full_page(blocks, profile)
        else:
            units = handlers[strategy](blocks)
        return [u for u in units if len(u.body.strip()) >= self.config.min_unit_chars]


def extract_units(
    blocks: list[RawBlock],
    profile: StructuralProfile,
    page: PageMetadata,
    config: ExtractionConfig | None = None,
    tracer: Tracer | None = None,
) -> list[ContentUnit]:
    """Extract candidate units from a page; the first non-empty strategy wins.

    Returns an empty list when nothing on the page is usable.
    """
    extractor = ContentExtractor(page, config, tracer)
    for strategy in select_strategies(profile):
        units = extractor.run(strategy, blocks, profile)
        emit(
            tracer,
            TraceKind.STRATEGY_ATTEMPT,
            strategy.value,
            page_id=page.id,
            pattern=profile.primary_pattern,
            units=len(units),
        )
        if units:
            logger.debug("%s: %s produced %d units", page.title, strategy, len(units))
            return units
    logger.info("No extractable content on page %r", page.title)
    return []
