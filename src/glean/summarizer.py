"""Summarization orchestrator.

One run moves through ``COLLECT → SELECT → PREPROCESS → GENERATE_SUMMARY →
EXTRACT_ACTIONS → EXTRACT_INSIGHTS → ASSEMBLE → PERSIST`` and ends in
``COMPLETE`` or ``FAILED``. The caller always gets a :class:`RunOutcome`:
a finished result, an explicit "nothing to summarize", or a failure with a
reason. Action and insight extraction and persistence never fail a run.
"""

from __future__ import annotations

import logging
import math
import uuid
from collections.abc import Callable
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from glean.config import GleanConfig
from glean.errors import (
    GenerationError,
    GleanError,
    OperationCancelledError,
    RunReport,
    SelectionInvariantError,
)
from glean.generation import TextGenerator, generate_with_fallback, parse_json_envelope
from glean.models import (
    ActionItem,
    ContentUnit,
    Priority,
    SelectionHistory,
    SummaryLength,
    SummaryOptions,
    SummaryResult,
)
from glean.pipeline import ContentPipeline
from glean.preprocess import preprocess
from glean.prompts import (
    build_action_prompt,
    build_insight_prompt,
    build_system_prompt,
    build_user_prompt,
)
from glean.retry import CancellationToken, RetryPolicy, with_retry
from glean.selection import HistoryAwareSelector, SelectionOutcome
from glean.store import HistoryStore
from glean.trace import TraceKind, Tracer, emit

logger = logging.getLogger(__name__)

MAX_TOKENS = {
    SummaryLength.SHORT: 300,
    SummaryLength.MEDIUM: 600,
    SummaryLength.LONG: 1000,
}
URGENT_KEYWORDS = ("urgent", "critical", "important", "deadline", "asap")
SUMMARY_TAGS = ("tasks", "ideas", "decisions", "follow-up", "research")
MAX_TAGS = 5
WORDS_PER_MINUTE = 200


class RunStage(StrEnum):
    COLLECT = "collect"
    SELECT = "select"
    PREPROCESS = "preprocess"
    GENERATE_SUMMARY = "generate_summary"
    EXTRACT_ACTIONS = "extract_actions"
    EXTRACT_INSIGHTS = "extract_insights"
    ASSEMBLE = "assemble"
    PERSIST = "persist"
    COMPLETE = "complete"
    FAILED = "failed"


class RunStatus(StrEnum):
    COMPLETE = "complete"
    NOTHING_TO_SUMMARIZE = "nothing_to_summarize"
    FAILED = "failed"


class RunOutcome(BaseModel):
    status: RunStatus
    stage: RunStage
    result: SummaryResult | None = None
    reason: str = ""
    selection: SelectionOutcome | None = None
    report: RunReport = Field(default_factory=RunReport)


def count_words(text: str) -> int:
    return len(text.split())


def reading_time(text: str) -> int:
    """Minutes to read ``text`` at 200 words per minute, rounded up."""
    return math.ceil(count_words(text) / WORDS_PER_MINUTE)


def determine_priority(summary: str, action_items: list[ActionItem]) -> Priority:
    lowered = summary.lower()
    if any(item.priority == Priority.HIGH for item in action_items) or any(
        keyword in lowered for keyword in URGENT_KEYWORDS
    ):
        return Priority.HIGH
    if len(action_items) > 3:
        return Priority.MEDIUM
    return Priority.LOW


def generate_tags(unit: ContentUnit, summary: str, is_repetition: bool = False) -> list[str]:
    tags: list[str] = [str(unit.kind)]
    title = unit.title.lower()
    for keyword in ("meeting", "project"):
        if keyword in title:
            tags.append(keyword)
    lowered = summary.lower()
    tags.extend(tag for tag in SUMMARY_TAGS if tag in lowered)
    tags = list(dict.fromkeys(tags))[:MAX_TAGS]
    tags.append("smart-selection")
    if is_repetition:
        tags.append("repeat-perspective")
    return tags


def _priority(value: Any) -> Priority:
    try:
        return Priority(str(value).lower())
    except ValueError:
        return Priority.MEDIUM


def parse_action_items(raw: list[Any], prefix: str) -> list[ActionItem]:
    items: list[ActionItem] = []
    for entry in raw:
        if not isinstance(entry, dict) or not str(entry.get("text", "")).strip():
            continue
        items.append(
            ActionItem(
                id=f"{prefix}-action-{len(items)}",
                text=str(entry["text"]).strip(),
                priority=_priority(entry.get("priority", "medium")),
                category=str(entry.get("category") or "task"),
                due_date=entry.get("due_date") or entry.get("dueDate"),
            )
        )
    return items


def assemble_result(
    *,
    result_id: str,
    user_id: str,
    summary: str,
    source_content: list[ContentUnit],
    action_items: list[ActionItem],
    key_insights: list[str],
    is_repetition: bool,
    model: str,
    created_at: datetime,
) -> SummaryResult:
    """Build the final result.

    Raises:
        SelectionInvariantError: ``source_content`` does not hold exactly one unit.
    """
    if len(source_content) != 1:
        raise SelectionInvariantError(
            f"A summary must have exactly one source unit, got {len(source_content)}"
        )
    unit = source_content[0]
    return SummaryResult(
        id=result_id,
        user_id=user_id,
        summary=summary,
        action_items=action_items,
        key_insights=key_insights,
        priority=determine_priority(summary, action_items),
        tags=generate_tags(unit, summary, is_repetition),
        created_at=created_at,
        source_content=[unit],
        word_count=count_words(summary),
        reading_time=reading_time(summary),
        is_repetition=is_repetition,
        model=model,
    )


class SummarizationOrchestrator:
    """Runs collection, selection and generation for one user."""

    def __init__(
        self,
        pipeline: ContentPipeline,
        generator: TextGenerator,
        history: HistoryStore,
        *,
        selector: HistoryAwareSelector | None = None,
        config: GleanConfig | None = None,
        tracer: Tracer | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.pipeline = pipeline
        self.generator = generator
        self.history = history
        self.config = config or pipeline.config
        self.selector = selector or HistoryAwareSelector(config=self.config.selection, tracer=tracer)
        self.tracer = tracer
        self.clock = clock or (lambda: datetime.now(UTC))

    def _enter(
        self,
        report: RunReport,
        stage: RunStage,
        previous: RunStage | None,
        token: CancellationToken | None = None,
    ) -> RunStage:
        if previous is not None:
            report.mark_stage_complete(previous)
        if token is not None:
            token.raise_if_cancelled()
        emit(self.tracer, TraceKind.STAGE, stage.value)
        logger.debug("Stage %s", stage)
        return stage

    def _generation_policy(self) -> RetryPolicy:
        return self.config.generation.retry_policy(self.config.retry)

    async def _read_history(
        self, user_id: str, report: RunReport, stage: RunStage
    ) -> tuple[list[SummaryResult], set[str]]:
        """Recent summaries and summarized unit ids; an unreadable store counts as empty."""
        try:
            recent = await self.history.get_recent_summaries(
                user_id, self.config.selection.history_limit
            )
            summarized = await self.history.get_previously_summarized_unit_ids(user_id)
        except OperationCancelledError:
            raise
        except Exception as exc:
            logger.warning("Could not read history for %s, continuing without it: %s", user_id, exc)
            report.add_error(stage, str(exc), source=user_id, error_type=type(exc).__name__)
            return [], set()
        return recent, summarized

    async def run(
        self,
        page_ids: list[str],
        user_id: str,
        options: SummaryOptions | None = None,
        token: CancellationToken | None = None,
    ) -> RunOutcome:
        options = options or self.config.summary
        report = RunReport()
        now = self.clock()
        stage: RunStage | None = None
        selection: SelectionOutcome | None = None

        try:
            stage = self._enter(report, RunStage.COLLECT, stage, token)
            collection = await self.pipeline.collect(page_ids, now, token)
            for failure in collection.failures:
                report.add_error(
                    stage, failure.message, source=failure.page_id, error_type=failure.error_type
                )
            report.items_processed["pages"] = len(collection.pages)
            report.items_processed["candidates"] = len(collection.candidates)

            stage = self._enter(report, RunStage.SELECT, stage, token)
            recent, summarized = await self._read_history(user_id, report, stage)
            selection_history = SelectionHistory.from_summaries(recent, summarized)
            selection = self.selector.select(
                collection.candidates, selection_history, user_id, now
            )
            report.record_selection(
                str(selection.reason),
                selection.selected.unit.id if selection.selected else "",
                selection.is_repetition,
            )
            if selection.selected is None:
                report.mark_stage_complete(stage)
                report.finish()
                return RunOutcome(
                    status=RunStatus.NOTHING_TO_SUMMARIZE,
                    stage=RunStage.COMPLETE,
                    reason=str(selection.reason),
                    selection=selection,
                    report=report,
                )
            unit = selection.selected.unit

            stage = self._enter(report, RunStage.PREPROCESS, stage, token)
            pre = self.config.preprocess
            content = preprocess([unit], pre.budget_chars, pre.truncation_marker)

            stage = self._enter(report, RunStage.GENERATE_SUMMARY, stage, token)
            previous = [
                s.summary
                for s in recent
                if any(source.id == unit.id for source in s.source_content)
            ]
            prompt = "\n\n".join(
                [
                    build_system_prompt(options.style, selection.is_repetition),
                    build_user_prompt(
                        content,
                        unit,
                        options,
                        previous,
                        is_repetition=selection.is_repetition,
                        max_previous=self.config.selection.max_previous_summaries,
                        previous_chars=pre.previous_summary_chars,
                    ),
                ]
            )
            summary, model = await generate_with_fallback(
                self.generator,
                prompt,
                primary_model=self.config.generation.primary_model,
                fallback_model=self.config.generation.fallback_model,
                temperature=0.3,
                max_tokens=MAX_TOKENS[options.length],
                policy=self._generation_policy(),
                token=token,
            )
            if not summary.strip():
                raise GenerationError(f"Model {model} returned an empty summary")

            result_id = f"summary_{uuid.uuid4().hex[:12]}"

            stage = self._enter(report, RunStage.EXTRACT_ACTIONS, stage, token)
            actions: list[ActionItem] = []
            if options.include_action_items:
                raw = await self._secondary(
                    build_action_prompt(content), "actions", 1000, 0.1, report, stage, token
                )
                actions = parse_action_items(raw, result_id)

            stage = self._enter(report, RunStage.EXTRACT_INSIGHTS, stage, token)
            raw_insights = await self._secondary(
                build_insight_prompt(content), "insights", 800, 0.2, report, stage, token
            )
            insights = [str(i).strip() for i in raw_insights if str(i).strip()]

            stage = self._enter(report, RunStage.ASSEMBLE, stage, token)
            result = assemble_result(
                result_id=result_id,
                user_id=user_id,
                summary=summary.strip(),
                source_content=[unit],
                action_items=actions,
                key_insights=insights,
                is_repetition=selection.is_repetition,
                model=model,
                created_at=now,
            )

            stage = self._enter(report, RunStage.PERSIST, stage, token)
            try:
                await self.history.save_summary(result)
            except Exception as exc:
                logger.warning("Could not persist summary %s: %s", result.id, exc)
                report.add_error(
                    stage, str(exc), source=result.id, error_type=type(exc).__name__
                )

            self._enter(report, RunStage.COMPLETE, stage)
            report.finish()
            return RunOutcome(
                status=RunStatus.COMPLETE,
                stage=RunStage.COMPLETE,
                result=result,
                selection=selection,
                report=report,
            )
        except SelectionInvariantError:
            raise
        except GleanError as exc:
            failed_at = stage or RunStage.COLLECT
            logger.error("Run failed during %s: %s", failed_at, exc)
            report.add_error(
                failed_at, str(exc), error_type=type(exc).__name__, recoverable=False
            )
            emit(self.tracer, TraceKind.STAGE, RunStage.FAILED.value, failed_at=failed_at)
            report.finish()
            return RunOutcome(
                status=RunStatus.FAILED,
                stage=RunStage.FAILED,
                reason=f"{failed_at}: {exc}",
                selection=selection,
                report=report,
            )

    async def _secondary(
        self,
        prompt: str,
        key: str,
        max_tokens: int,
        temperature: float,
        report: RunReport,
        stage: RunStage,
        token: CancellationToken | None,
    ) -> list[Any]:
        """Run an extraction call on the cheaper model; failures give ``[]``."""
        model = self.config.generation.fallback_model
        try:
            text = await with_retry(
                lambda: self.generator.generate(
                    prompt, model=model, temperature=temperature, max_tokens=max_tokens
                ),
                self._generation_policy(),
                name=f"extract[{key}]",
                token=token,
            )
        except OperationCancelledError:
            raise
        except GleanError as exc:
            logger.warning("%s extraction failed: %s", key, exc)
            report.add_error(stage, str(exc), error_type=type(exc).__name__)
            return []
        return parse_json_envelope(text, key)
