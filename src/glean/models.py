"""Canonical data models: raw blocks, structural profiles, content units, results."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field


class BlockType(StrEnum):
    """Notion block types the analyzer and extractors understand."""

    PARAGRAPH = "paragraph"
    HEADING_1 = "heading_1"
    HEADING_2 = "heading_2"
    HEADING_3 = "heading_3"
    TOGGLE = "toggle"
    BULLETED_LIST_ITEM = "bulleted_list_item"
    NUMBERED_LIST_ITEM = "numbered_list_item"
    TO_DO = "to_do"
    CALLOUT = "callout"
    QUOTE = "quote"
    CODE = "code"
    DIVIDER = "divider"
    CHILD_PAGE = "child_page"


HEADING_TYPES = {BlockType.HEADING_1, BlockType.HEADING_2, BlockType.HEADING_3}
LIST_TYPES = {BlockType.BULLETED_LIST_ITEM, BlockType.NUMBERED_LIST_ITEM, BlockType.TO_DO}
HIGHLIGHT_TYPES = {BlockType.CALLOUT, BlockType.QUOTE}


class ListKind(StrEnum):
    BULLETED = "bulleted"
    NUMBERED = "numbered"
    TO_DO = "to_do"


LIST_KIND_BY_TYPE: dict[str, ListKind] = {
    BlockType.BULLETED_LIST_ITEM: ListKind.BULLETED,
    BlockType.NUMBERED_LIST_ITEM: ListKind.NUMBERED,
    BlockType.TO_DO: ListKind.TO_DO,
}


class RawBlock(BaseModel):
    """One node of the source document tree.

    ``has_children`` is only a hint: collapsed toggles frequently report
    ``False`` and still return children when queried. ``children`` is
    ``None`` until the block has been materialized; an empty list means a
    fetch returned nothing, which is not proof the block is empty.
    """

    id: str
    type: str
    text: str = ""
    has_children: bool = False
    depth: int = 0
    checked: bool | None = None
    is_toggleable: bool = False
    last_edited_at: datetime | None = None
    children: list[RawBlock] | None = None
    fetch_error: str = ""

    @property
    def is_toggle(self) -> bool:
        """True for toggle blocks and toggleable headings."""
        return self.type == BlockType.TOGGLE or (
            self.is_toggleable and self.type in HEADING_TYPES
        )

    @property
    def heading_level(self) -> int:
        if self.type in HEADING_TYPES:
            return int(self.type[-1])
        return 0

    @property
    def list_kind(self) -> ListKind | None:
        return LIST_KIND_BY_TYPE.get(self.type)

    @property
    def carries_children(self) -> bool:
        return self.has_children or bool(self.children)


class PageMetadata(BaseModel):
    """Title and properties of a page."""

    id: str
    title: str = "Untitled"
    url: str = ""
    last_edited_at: datetime | None = None
    properties: dict[str, object] = Field(default_factory=dict)


class Density(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Complexity(StrEnum):
    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"


class Pattern(StrEnum):
    """Organizational pattern a page is classified into."""

    HIERARCHICAL_TOGGLES = "hierarchical_toggles"
    FLAT_TOGGLES = "flat_toggles"
    STRUCTURED_HEADINGS = "structured_headings"
    LIST_HEAVY = "list_heavy"
    HIGHLIGHT_FOCUSED = "highlight_focused"
    MIXED = "mixed"
    SIMPLE = "simple"


class OrganizationStyle(StrEnum):
    HIERARCHICAL = "hierarchical"
    CATEGORICAL = "categorical"
    SEQUENTIAL = "sequential"
    FREEFORM = "freeform"


class StructuralProfile(BaseModel):
    """Result of analyzing one page's top-level block list."""

    model_config = ConfigDict(frozen=True)

    page_id: str = ""
    page_title: str = ""
    block_counts: dict[str, int] = Field(default_factory=dict)
    total_blocks: int = 0
    toggle_count: int = 0
    toggles_with_children: int = 0
    heading_counts: dict[int, int] = Field(default_factory=dict)
    heading_count: int = 0
    list_counts: dict[str, int] = Field(default_factory=dict)
    list_item_count: int = 0
    paragraph_count: int = 0
    highlight_count: int = 0
    code_block_count: int = 0
    total_text_length: int = 0
    average_text_length: float = 0.0
    density: Density = Density.LOW
    complexity: Complexity = Complexity.SIMPLE
    dominant_type: str = "paragraph"
    primary_pattern: Pattern = Pattern.SIMPLE
    organization_style: OrganizationStyle = OrganizationStyle.FREEFORM
    consistency_score: float = 0.0


class ContentKind(StrEnum):
    TOGGLE = "toggle"
    SECTION = "section"
    LIST_ITEM = "list_item"
    HIGHLIGHT = "highlight"
    PAGE = "page"


class ToggleLevel(StrEnum):
    CATEGORY = "category"
    VIDEO = "video"
    DIRECT = "direct"


class HighlightKind(StrEnum):
    CALLOUT = "callout"
    QUOTE = "quote"


class _UnitBase(BaseModel):
    """Fields shared by every content unit."""

    id: str
    title: str
    body: str
    page_id: str = ""
    parent_title: str = ""
    url: str = ""
    last_edited_at: datetime | None = None
    extraction_method: str = ""

    @computed_field  # type: ignore[prop-decorator]
    @property
    def word_count(self) -> int:
        return len(self.body.split())


class ToggleUnit(_UnitBase):
    kind: Literal["toggle"] = "toggle"
    toggle_title: str = ""
    toggle_level: ToggleLevel = ToggleLevel.DIRECT
    category_title: str = ""
    is_closed: bool = False


class SectionUnit(_UnitBase):
    kind: Literal["section"] = "section"
    section_title: str = ""
    heading_level: int = 0


class ListUnit(_UnitBase):
    kind: Literal["list_item"] = "list_item"
    list_kind: ListKind = ListKind.BULLETED
    is_completed: bool | None = None
    item_count: int = 1

    @property
    def is_collection(self) -> bool:
        return self.item_count > 1


class HighlightUnit(_UnitBase):
    kind: Literal["highlight"] = "highlight"
    highlight_kind: HighlightKind = HighlightKind.CALLOUT


class PageUnit(_UnitBase):
    kind: Literal["page"] = "page"
    profile: StructuralProfile | None = None
    properties: dict[str, object] = Field(default_factory=dict)


ContentUnit = Annotated[
    Union[ToggleUnit, SectionUnit, ListUnit, HighlightUnit, PageUnit],
    Field(discriminator="kind"),
]


class ScoredCandidate(BaseModel):
    """A content unit with its score breakdown."""

    unit: ContentUnit
    total_score: float
    type_score: float = 0.0
    universal_score: float = 0.0
    repetition_bonus: float = 0.0


class Priority(StrEnum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class SummaryStyle(StrEnum):
    EXECUTIVE = "executive"
    DETAILED = "detailed"
    BULLET_POINTS = "bullet_points"
    ACTION_ITEMS = "action_items"


class SummaryLength(StrEnum):
    SHORT = "short"
    MEDIUM = "medium"
    LONG = "long"


class SummaryOptions(BaseModel):
    """How the summary should be written."""

    style: SummaryStyle = SummaryStyle.EXECUTIVE
    length: SummaryLength = SummaryLength.MEDIUM
    focus: list[str] = Field(default_factory=lambda: ["tasks", "ideas", "decisions"])
    include_action_items: bool = True
    include_priority: bool = True


class ActionItem(BaseModel):
    """One actionable item derived from the summarized content."""

    id: str
    text: str
    priority: Priority = Priority.MEDIUM
    category: str = "task"
    due_date: str | None = None
    completed: bool = False


class SummaryResult(BaseModel):
    """Final output of a run, owned by the history store once saved."""

    id: str
    user_id: str
    summary: str
    action_items: list[ActionItem] = Field(default_factory=list)
    key_insights: list[str] = Field(default_factory=list)
    priority: Priority = Priority.LOW
    tags: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.now)
    source_content: list[ContentUnit] = Field(default_factory=list)
    word_count: int = 0
    reading_time: int = 0
    is_repetition: bool = False
    model: str = ""


class SelectionHistory(BaseModel):
    """What a user has already had summarized.

    ``summaries_ago`` maps a unit id to how many summaries ago it was last
    used (1 = the most recent summary).
    """

    summarized_ids: set[str] = Field(default_factory=set)
    summary_count: int = 0
    content_instance_count: int = 0
    summaries_ago: dict[str, int] = Field(default_factory=dict)

    @classmethod
    def from_summaries(
        cls,
        summaries: list[SummaryResult],
        extra_ids: set[str] | None = None,
    ) -> SelectionHistory:
        """Build history from summaries ordered newest first."""
        summarized: set[str] = set(extra_ids or ())
        summaries_ago: dict[str, int] = {}
        instances = 0
        for index, summary in enumerate(summaries):
            for unit in summary.source_content:
                summarized.add(unit.id)
                instances += 1
                # newest first, so the first sighting is the most recent one
                summaries_ago.setdefault(unit.id, index + 1)
        return cls(
            summarized_ids=summarized,
            summary_count=len(summaries),
            content_instance_count=instances,
            summaries_ago=summaries_ago,
        )

    @property
    def repetition_ratio(self) -> float:
        return self.summary_count / max(self.content_instance_count, 1)
