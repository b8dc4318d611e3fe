"""Materialize the part of a document tree that extraction needs.

Fetching is async and may fail; interpretation (analysis, extraction) is
pure and runs over the tree returned here.
"""

from __future__ import annotations

import asyncio
import logging

from glean.errors import OperationCancelledError
from glean.models import BlockType, RawBlock
from glean.notion import DocumentFetcher
from glean.retry import CancellationToken
from glean.trace import TraceKind, Tracer, emit

logger = logging.getLogger(__name__)

SKIP_DESCENT = {BlockType.CHILD_PAGE}


def needs_children(block: RawBlock) -> bool:
    """Toggles are always queried; other blocks only when the hint says so."""
    if block.type in SKIP_DESCENT:
        return False
    return block.is_toggle or block.has_children


async def materialize(
    fetcher: DocumentFetcher,
    blocks: list[RawBlock],
    max_depth: int = 3,
    max_concurrency: int = 4,
    tracer: Tracer | None = None,
    token: CancellationToken | None = None,
) -> list[RawBlock]:
    """Return copies of ``blocks`` with ``children`` filled in.

    Blocks at ``max_depth`` or deeper are not expanded. A failed fetch
    leaves ``children`` empty and records the error in ``fetch_error``.
    Output order always matches input order.

    Raises:
        OperationCancelledError: ``token`` was cancelled; no further fetch
            is started.
    """
    semaphore = asyncio.Semaphore(max_concurrency)

    async def expand(block: RawBlock) -> RawBlock:
        if not needs_children(block):
            return block
        if block.depth >= max_depth:
            logger.info("Depth cap %d reached at block %s; not descending", max_depth, block.id)
            emit(tracer, TraceKind.FETCH_TRUNCATED, block.id, depth=block.depth)
            return block

        try:
            async with semaphore:
                if token is not None:
                    token.raise_if_cancelled()
                fetched = await fetcher.get_children(block.id)
        except OperationCancelledError:
            raise
        except Exception as exc:
            logger.warning("Could not fetch children of %s: %s", block.id, exc)
            emit(tracer, TraceKind.FETCH_FAILED, block.id, error=str(exc))
            return block.model_copy(
                update={"children": [], "fetch_error": str(exc) or type(exc).__name__}
            )

        nested = [child.model_copy(update={"depth": block.depth + 1}) for child in fetched]
        expanded = await asyncio.gather(*(expand(child) for child in nested))
        return block.model_copy(update={"children": list(expanded)})

    return list(await asyncio.gather(*(expand(block) for block in blocks)))
