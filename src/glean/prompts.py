"""Prompt templates for summarization and secondary extraction calls."""

from __future__ import annotations

from glean.models import (
    ContentUnit,
    ListUnit,
    SummaryOptions,
    SummaryStyle,
    ToggleLevel,
    ToggleUnit,
)

STYLE_PROMPTS = {
    SummaryStyle.EXECUTIVE: (
        "You are an executive assistant writing concise, high-level summaries for busy "
        "people. Lead with decisions, outcomes and strategic points."
    ),
    SummaryStyle.DETAILED: (
        "You are a research analyst writing thorough summaries that keep the important "
        "details while staying clear and organized."
    ),
    SummaryStyle.BULLET_POINTS: (
        "You are a note-taking specialist who turns material into clear, scannable "
        "bullet points with a logical hierarchy."
    ),
    SummaryStyle.ACTION_ITEMS: (
        "You are a productivity coach who pulls out actionable items, next steps and "
        "follow-ups."
    ),
}

CONTENT_RULES = """
You always receive exactly one unit of content taken from a Notion page.

- Toggle content is one curated block of notes. Treat the toggle title as the
  organizing theme, even when the notes touch several topics.
- Section content is one part of a larger structured document.
- List content is either a single item or a run of related items; respect task
  completion status.
- Highlighted content (callouts, quotes) was emphasized by the author on purpose.
- Page content is a whole page; capture its main themes and structure.
"""

REPETITION_RULES = """
This content has been summarized before. Give it a fresh perspective:

- Do not rewrite the earlier summary.
- Change the lens: tactical versus strategic, individual versus team,
  short term versus long term.
- Look for insights, applications or limitations the earlier summaries missed.
- Keep the same standard for actionable, well structured output.
"""

KIND_INSTRUCTIONS = {
    "hierarchical_toggle": (
        "This toggle sits in a category > source hierarchy. Frame the summary as "
        'insights from "{title}" within "{category}" and stress the actionable takeaways.'
    ),
    "toggle": (
        'This is one toggle titled "{title}". Use the title as the unifying context and '
        "present varied topics as themes within it."
    ),
    "section": (
        'This is the "{title}" section of a structured document. Cover its main points '
        "and how it fits the wider document."
    ),
    "list_collection": (
        "This is a collection of related list items. Summarize their collective meaning "
        "and, for tasks, their completion state and priorities."
    ),
    "list_item": (
        "This is a single list item. Keep the summary focused on its specific value and "
        "what to do about it."
    ),
    "highlight": (
        "This is highlighted content. Explain why it was emphasized and its key message."
    ),
    "page": (
        "This is a full page. Identify its main themes and give an overview of what it "
        "is worth to the reader."
    ),
}

CLOSED_TOGGLE_NOTE = (
    "The toggle is collapsed and only its title was available. Say so in the summary "
    "and suggest expanding it in Notion for the full notes."
)

ACTION_PROMPT = """You identify actionable items in text. Always answer with valid JSON.

For each action give the specific action, a priority (high, medium or low), a
category (task, follow-up, research, ...) and any due date mentioned.

Content:
{content}

Return ONLY a JSON object of the form:
{{"actions": [{{"text": "action", "priority": "high", "category": "task", "due_date": "2024-01-15"}}]}}"""

INSIGHT_PROMPT = """Extract the key insights from the content below: decisions made, lessons
learned, notable patterns and critical facts.

Content:
{content}

Return ONLY a JSON object of the form:
{{"insights": ["insight 1", "insight 2", "insight 3"]}}"""


def content_kind(unit: ContentUnit) -> str:
    """Instruction key for a unit."""
    if isinstance(unit, ToggleUnit):
        if unit.toggle_level == ToggleLevel.VIDEO:
            return "hierarchical_toggle"
        return "toggle"
    if isinstance(unit, ListUnit):
        return "list_collection" if unit.is_collection else "list_item"
    return str(unit.kind)


def build_system_prompt(style: SummaryStyle, is_repetition: bool = False) -> str:
    prompt = STYLE_PROMPTS.get(style, STYLE_PROMPTS[SummaryStyle.EXECUTIVE]) + "\n" + CONTENT_RULES
    if is_repetition:
        prompt += REPETITION_RULES
    return prompt


def build_user_prompt(
    content: str,
    unit: ContentUnit,
    options: SummaryOptions,
    previous_summaries: list[str] | None = None,
    *,
    is_repetition: bool = False,
    max_previous: int = 3,
    previous_chars: int = 500,
) -> str:
    """User-level prompt embedding the formatted content.

    In repetition mode up to ``max_previous`` earlier summaries are quoted,
    each cut to ``previous_chars``.
    """
    if is_repetition:
        parts = [
            "Give a FRESH PERSPECTIVE on the following content, which has been "
            "summarized before:",
        ]
    else:
        parts = ["Summarize the following content:"]
    parts.extend(["", content, ""])

    if is_repetition and previous_summaries:
        parts.append("Previous summaries (do not repeat their angle):")
        parts.append("")
        for index, summary in enumerate(previous_summaries[:max_previous], start=1):
            cut = summary[:previous_chars] + ("..." if len(summary) > previous_chars else "")
            parts.extend([f"--- Previous summary {index} ---", cut, ""])
        parts.append("Take a clearly different perspective from the summaries above.")
        parts.append("")

    kind = content_kind(unit)
    category = unit.category_title if isinstance(unit, ToggleUnit) else ""
    parts.append(KIND_INSTRUCTIONS[kind].format(title=unit.title, category=category))
    if isinstance(unit, ToggleUnit) and unit.is_closed:
        parts.append(CLOSED_TOGGLE_NOTE)

    parts.extend(
        [
            "",
            "Summary requirements:",
            f"- Style: {options.style}",
            f"- Length: {options.length}",
            f"- Focus areas: {', '.join(options.focus)}",
        ]
    )
    if options.include_action_items:
        parts.append("- Include an action items section")
    if options.include_priority:
        parts.append("- Indicate the priority or urgency")
    return "\n".join(parts)


def build_action_prompt(content: str) -> str:
    return ACTION_PROMPT.format(content=content)


def build_insight_prompt(content: str) -> str:
    return INSIGHT_PROMPT.format(content=content)
