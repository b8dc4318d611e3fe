"""Exception types and structured error reporting for summarization runs."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

REPORT_FILENAME = ".glean-last-run.json"


class GleanError(Exception):
    """Base class for all glean errors."""


class ConfigError(GleanError):
    """Raised when configuration is missing or invalid."""


class FetchError(GleanError):
    """Raised when the document source cannot be read."""

    retryable: bool = False


class NotionAPIError(FetchError):
    """Error response from the Notion API."""

    def __init__(
        self,
        status: int = 0,
        message: str = "",
        body: str = "",
        retry_after: float | None = None,
    ) -> None:
        self.status = status
        self.body = body
        self.retry_after = retry_after
        super().__init__(message)

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        # 0 is a transport failure (no response at all)
        return self.status in (0, 429) or self.status >= 500


class RetryExhaustedError(GleanError):
    """Raised when every attempt of a retried operation failed."""

    def __init__(self, operation: str, attempts: int, last_error: BaseException) -> None:
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"{operation} failed after {attempts} attempts: {last_error}"
        )


class OperationTimeoutError(GleanError):
    """Raised when an operation exceeds its overall wall-clock budget."""


class OperationCancelledError(GleanError):
    """Raised when the caller cancelled an operation in flight."""


class GenerationError(GleanError):
    """Raised when text generation fails."""

    def __init__(self, message: str = "", *, retryable: bool = False) -> None:
        self.retryable = retryable
        super().__init__(message)


class QuotaExceededError(GenerationError):
    """Raised when the generation backend reports a quota or rate limit."""


class SelectionInvariantError(GleanError):
    """Raised when more or fewer than one content unit reaches summarization.

    This is a programming error, never a user-facing condition.
    """


class RunError(BaseModel):
    """A single error captured during a summarization run."""

    stage: str
    source: str = ""
    error_type: str = "unknown"
    message: str = ""
    timestamp: datetime = Field(default_factory=datetime.now)
    recoverable: bool = True


class RunReport(BaseModel):
    """Summary report of one summarization run."""

    started_at: datetime = Field(default_factory=datetime.now)
    finished_at: datetime | None = None
    stages_completed: list[str] = Field(default_factory=list)
    errors: list[RunError] = Field(default_factory=list)
    items_processed: dict[str, int] = Field(default_factory=dict)
    selected_unit_id: str = ""
    selection_reason: str = ""
    is_repetition: bool = False

    def add_error(
        self,
        stage: str,
        message: str,
        *,
        source: str = "",
        error_type: str = "unknown",
        recoverable: bool = True,
    ) -> None:
        """Record an error during the run."""
        self.errors.append(
            RunError(
                stage=stage,
                source=source,
                error_type=error_type,
                message=message,
                recoverable=recoverable,
            )
        )

    def record_selection(self, reason: str, unit_id: str = "", is_repetition: bool = False) -> None:
        self.selection_reason = reason
        self.selected_unit_id = unit_id
        self.is_repetition = is_repetition

    def mark_stage_complete(self, stage: str) -> None:
        """Record that a stage completed."""
        if stage not in self.stages_completed:
            self.stages_completed.append(stage)

    def finish(self) -> None:
        """Mark the report as finished."""
        self.finished_at = datetime.now()

    @property
    def success(self) -> bool:
        """True if no unrecoverable errors occurred."""
        return not any(not e.recoverable for e in self.errors)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    def summary_text(self) -> str:
        """Human-readable summary of the run."""
        duration = ""
        if self.finished_at and self.started_at:
            secs = (self.finished_at - self.started_at).total_seconds()
            duration = f" in {secs:.0f}s" if secs < 60 else f" in {secs / 60:.1f}m"

        status = "completed" if self.success else "failed"
        lines = [f"Run {status}{duration}"]

        if self.stages_completed:
            lines.append(f"Stages: {', '.join(self.stages_completed)}")

        if self.items_processed:
            parts = [f"{k}: {v}" for k, v in self.items_processed.items()]
            lines.append(f"Processed: {', '.join(parts)}")

        if self.selected_unit_id:
            repeat = ", repeated" if self.is_repetition else ""
            lines.append(f"Selected: {self.selected_unit_id} ({self.selection_reason}{repeat})")
        elif self.selection_reason:
            lines.append(f"Nothing selected: {self.selection_reason}")

        if self.errors:
            lines.append(f"Errors: {len(self.errors)}")
            for err in self.errors[:5]:
                prefix = "[recoverable]" if err.recoverable else "[FATAL]"
                lines.append(f"  {prefix} {err.stage}: {err.message}")
            if len(self.errors) > 5:
                lines.append(f"  ... and {len(self.errors) - 5} more")

        return "\n".join(lines)


def save_report(report: RunReport, output_dir: Path) -> Path:
    """Save the run report to disk."""
    report_path = output_dir / REPORT_FILENAME
    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(report.model_dump_json(indent=2), encoding="utf-8")
    return report_path


def load_report(output_dir: Path) -> RunReport | None:
    """Load the last run report from disk."""
    report_path = output_dir / REPORT_FILENAME
    if not report_path.exists():
        return None
    try:
        data = json.loads(report_path.read_text(encoding="utf-8"))
        return RunReport.model_validate(data)
    except (json.JSONDecodeError, ValueError):
        logger.warning("Corrupt report at %s", report_path)
        return None
