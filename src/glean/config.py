"""Unified configuration loaded from .glean.toml, env vars, and CLI flags.

Loading order: defaults → TOML file → env vars → CLI flags.
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from glean.errors import ConfigError
from glean.models import SummaryOptions
from glean.retry import RetryPolicy
from glean.scoring import ScoringWeights

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".glean.toml"
GLOBAL_CONFIG_PATH = Path.home() / ".config" / "glean" / "config.toml"
# seconds an attempt may outlive the CLI timeout
CLI_KILL_GRACE = 5.0


class NotionConfig(BaseModel):
    """[notion] section."""

    token: str = ""
    api_version: str = "2022-06-28"
    base_url: str = "https://api.notion.com/v1"
    page_size: int = Field(default=100, ge=1, le=100)
    max_concurrency: int = Field(default=4, ge=1)
    max_depth: int = Field(default=3, ge=0)

    @property
    def is_configured(self) -> bool:
        return bool(self.token)


class GenerationConfig(BaseModel):
    """[generation] section."""

    primary_model: str = "sonnet"
    fallback_model: str = "haiku"
    timeout: int = 120

    def retry_policy(self, base: RetryPolicy) -> RetryPolicy:
        """``base`` widened so one CLI call may run for the full ``timeout``."""
        attempt = max(base.attempt_timeout, self.timeout + CLI_KILL_GRACE)
        overall = max(
            base.overall_timeout,
            attempt * base.max_attempts + base.max_delay * (base.max_attempts - 1),
        )
        return base.model_copy(update={"attempt_timeout": attempt, "overall_timeout": overall})


class SelectionConfig(BaseModel):
    """[selection] section."""

    repetition_threshold: float = 0.01
    recent_window_hours: float = 24
    history_limit: int = 50
    repetition_bonus_per_summary: float = 10
    max_previous_summaries: int = 3


class ExtractionConfig(BaseModel):
    """[extraction] section."""

    min_unit_chars: int = 10
    min_section_chars: int = 50
    min_list_item_chars: int = 20
    min_highlight_chars: int = 20
    min_list_run: int = 3
    mixed_toggle_slice: int = 3
    mixed_section_slice: int = 2
    mixed_highlight_slice: int = 2
    max_depth: int = 3


class PreprocessConfig(BaseModel):
    """[preprocess] section."""

    context_window_tokens: int = 32000
    chars_per_token: int = 3
    previous_summary_chars: int = 500
    truncation_marker: str = "\n\n[Content truncated due to length]"

    @property
    def budget_chars(self) -> int:
        return self.context_window_tokens * self.chars_per_token


class OutputConfig(BaseModel):
    """[output] section."""

    directory: str = "./glean"

    @property
    def path(self) -> Path:
        return Path(self.directory)


class GleanConfig(BaseModel):
    """Top-level configuration model."""

    notion: NotionConfig = Field(default_factory=NotionConfig)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    summary: SummaryOptions = Field(default_factory=SummaryOptions)
    selection: SelectionConfig = Field(default_factory=SelectionConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    scoring: ScoringWeights = Field(default_factory=ScoringWeights)
    preprocess: PreprocessConfig = Field(default_factory=PreprocessConfig)
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    output: OutputConfig = Field(default_factory=OutputConfig)


def load_config(path: str | Path | None = None) -> GleanConfig:
    """Load configuration from a TOML file.

    Search order:
    1. Explicit path (if provided)
    2. .glean.toml in CWD
    3. ~/.config/glean/config.toml

    Then overlay environment variables.

    Raises:
        ConfigError: The merged values do not validate.
    """
    data: dict[str, object] = {}

    if path is not None:
        toml_path = Path(path)
        if toml_path.exists():
            data = _load_toml(toml_path)
        else:
            logger.warning("Config file not found: %s", toml_path)
    else:
        for candidate in (Path(".") / CONFIG_FILENAME, GLOBAL_CONFIG_PATH):
            if candidate.exists():
                data = _load_toml(candidate)
                logger.info("Loaded config from %s", candidate)
                break

    config = _validate(data)
    return _apply_env_vars(config)


def merge_cli_overrides(config: GleanConfig, **cli_kwargs: object) -> GleanConfig:
    """Overlay explicitly-set CLI flags onto the config.

    Values left as ``None`` are ignored.
    """
    data = config.model_dump()

    mapping: dict[str, tuple[str, str]] = {
        "output_directory": ("output", "directory"),
        "model": ("generation", "primary_model"),
        "fallback_model": ("generation", "fallback_model"),
        "style": ("summary", "style"),
        "length": ("summary", "length"),
        "max_depth": ("notion", "max_depth"),
        "token": ("notion", "token"),
    }

    for key, value in cli_kwargs.items():
        if value is None or key not in mapping:
            continue
        section, field = mapping[key]
        data[section][field] = value

    return _validate(data)


def _load_toml(path: Path) -> dict[str, object]:
    """Load a TOML file and return the data dict."""
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except (tomllib.TOMLDecodeError, OSError) as exc:
        logger.warning("Failed to parse %s: %s", path, exc)
        return {}


def _validate(data: dict[str, object]) -> GleanConfig:
    try:
        return GleanConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc


def _apply_env_vars(config: GleanConfig) -> GleanConfig:
    """Apply environment variable overrides to config."""
    data = config.model_dump()

    env_mapping: dict[str, tuple[str, str]] = {
        "NOTION_TOKEN": ("notion", "token"),
        "GLEAN_OUTPUT_DIR": ("output", "directory"),
        "GLEAN_MODEL": ("generation", "primary_model"),
        "GLEAN_FALLBACK_MODEL": ("generation", "fallback_model"),
        "GLEAN_SUMMARY_STYLE": ("summary", "style"),
        "GLEAN_SUMMARY_LENGTH": ("summary", "length"),
    }

    for env_var, (section, field) in env_mapping.items():
        value = os.environ.get(env_var)
        if value:
            data[section][field] = value

    return _validate(data)
