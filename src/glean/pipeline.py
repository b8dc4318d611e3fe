"""Candidate collection: fetch → materialize → analyze → extract → score."""

from __future__ import annotations

import logging
from datetime import datetime

from pydantic import BaseModel, Field

from glean.analyzer import StructuralAnalyzer
from glean.config import GleanConfig
from glean.errors import FetchError, GleanError, OperationCancelledError
from glean.extractors import extract_units
from glean.models import (
    ContentUnit,
    PageMetadata,
    RawBlock,
    ScoredCandidate,
    StructuralProfile,
)
from glean.notion import DocumentFetcher
from glean.retry import CancellationToken
from glean.scoring import ContentScorer
from glean.strategies import Strategy, select_strategies
from glean.trace import Tracer
from glean.tree import materialize

logger = logging.getLogger(__name__)


class PageAnalysis(BaseModel):
    """Everything learned about one page during collection."""

    page: PageMetadata
    blocks: list[RawBlock] = Field(default_factory=list)
    profile: StructuralProfile
    strategies: list[Strategy] = Field(default_factory=list)
    units: list[ContentUnit] = Field(default_factory=list)
    candidates: list[ScoredCandidate] = Field(default_factory=list)


class PageFailure(BaseModel):
    page_id: str
    error_type: str
    message: str


class Collection(BaseModel):
    """Candidates pooled across pages, plus the pages that failed."""

    pages: list[PageAnalysis] = Field(default_factory=list)
    failures: list[PageFailure] = Field(default_factory=list)

    @property
    def candidates(self) -> list[ScoredCandidate]:
        return [c for page in self.pages for c in page.candidates]


def _check(token: CancellationToken | None) -> None:
    if token is not None:
        token.raise_if_cancelled()


class ContentPipeline:
    def __init__(
        self,
        fetcher: DocumentFetcher,
        config: GleanConfig | None = None,
        tracer: Tracer | None = None,
    ) -> None:
        self.fetcher = fetcher
        self.config = config or GleanConfig()
        self.tracer = tracer
        self.analyzer = StructuralAnalyzer()
        self.scorer = ContentScorer(self.config.scoring, tracer)

    async def analyze_page(
        self, page_id: str, now: datetime, token: CancellationToken | None = None
    ) -> PageAnalysis:
        """Fetch one page and turn it into scored candidates."""
        _check(token)
        page = await self.fetcher.get_page_metadata(page_id)
        _check(token)
        top_level = await self.fetcher.get_children(page_id)
        blocks = await materialize(
            self.fetcher,
            top_level,
            max_depth=self.config.notion.max_depth,
            max_concurrency=self.config.notion.max_concurrency,
            tracer=self.tracer,
            token=token,
        )
        profile = self.analyzer.analyze(blocks, page.title, page.id or page_id)
        units = extract_units(blocks, profile, page, self.config.extraction, self.tracer)
        return PageAnalysis(
            page=page,
            blocks=blocks,
            profile=profile,
            strategies=select_strategies(profile),
            units=units,
            candidates=self.scorer.score_all(units, now),
        )

    async def collect(
        self, page_ids: list[str], now: datetime, token: CancellationToken | None = None
    ) -> Collection:
        """Collect candidates from every page.

        A page that cannot be read is recorded and skipped.

        Raises:
            FetchError: Every page failed.
            OperationCancelledError: ``token`` was cancelled.
        """
        collection = Collection()
        for page_id in page_ids:
            try:
                analysis = await self.analyze_page(page_id, now, token)
            except OperationCancelledError:
                raise
            except GleanError as exc:
                logger.warning("Skipping page %s: %s", page_id, exc)
                collection.failures.append(
                    PageFailure(page_id=page_id, error_type=type(exc).__name__, message=str(exc))
                )
                continue
            logger.info(
                "Page %r: %s, %d candidates",
                analysis.page.title, analysis.profile.primary_pattern, len(analysis.candidates),
            )
            collection.pages.append(analysis)

        if page_ids and not collection.pages:
            reasons = "; ".join(f"{f.page_id}: {f.message}" for f in collection.failures)
            raise FetchError(f"No page could be read ({reasons})")
        return collection
