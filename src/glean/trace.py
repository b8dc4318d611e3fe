"""Observability hooks for extraction, scoring and selection decisions.

Components emit :class:`TraceEvent` objects to an injected :class:`Tracer`
instead of writing ad hoc log lines, so tests can assert on decisions
directly.
"""

from __future__ import annotations

import logging
from datetime import datetime
from enum import StrEnum
from typing import Protocol

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class TraceKind(StrEnum):
    FETCH_TRUNCATED = "fetch_truncated"
    FETCH_FAILED = "fetch_failed"
    STRATEGY_ATTEMPT = "strategy_attempt"
    PLACEHOLDER = "placeholder"
    SCORE = "score"
    SELECTION = "selection"
    STAGE = "stage"


class TraceEvent(BaseModel):
    kind: TraceKind
    name: str = ""
    data: dict[str, object] = Field(default_factory=dict)
    at: datetime = Field(default_factory=datetime.now)


class Tracer(Protocol):
    def emit(self, event: TraceEvent) -> None: ...


class LoggingTracer:
    """Writes events to the ``glean.trace`` logger at DEBUG level."""

    def __init__(self, level: int = logging.DEBUG) -> None:
        self._level = level
        self._logger = logging.getLogger("glean.trace")

    def emit(self, event: TraceEvent) -> None:
        self._logger.log(self._level, "%s %s %s", event.kind, event.name, event.data)


class RecordingTracer:
    """Keeps every event in memory."""

    def __init__(self) -> None:
        self.events: list[TraceEvent] = []

    def emit(self, event: TraceEvent) -> None:
        self.events.append(event)

    def of_kind(self, kind: TraceKind) -> list[TraceEvent]:
        return [e for e in self.events if e.kind == kind]


def emit(tracer: Tracer | None, kind: TraceKind, name: str = "", /, **data: object) -> None:
    """Emit an event if a tracer is present."""
    if tracer is None:
        return
    tracer.emit(TraceEvent(kind=kind, name=name, data=data))
