"""Tests for glean.config: defaults, TOML loading, env vars and CLI overrides."""

from unittest.mock import patch

import pytest

from glean.config import GenerationConfig, GleanConfig, load_config, merge_cli_overrides
from glean.errors import ConfigError
from glean.models import SummaryLength, SummaryStyle
from glean.retry import RetryPolicy

ENV_VARS = (
    "NOTION_TOKEN",
    "GLEAN_OUTPUT_DIR",
    "GLEAN_MODEL",
    "GLEAN_FALLBACK_MODEL",
    "GLEAN_SUMMARY_STYLE",
    "GLEAN_SUMMARY_LENGTH",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for var in ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    with patch("glean.config.GLOBAL_CONFIG_PATH", tmp_path / "missing" / "config.toml"):
        yield


class TestDefaults:
    def test_notion_defaults(self):
        cfg = GleanConfig()
        assert cfg.notion.api_version == "2022-06-28"
        assert cfg.notion.page_size == 100
        assert cfg.notion.is_configured is False

    def test_selection_defaults(self):
        cfg = GleanConfig()
        assert cfg.selection.repetition_threshold == 0.01
        assert cfg.selection.recent_window_hours == 24
        assert cfg.selection.max_previous_summaries == 3

    def test_preprocess_budget(self):
        cfg = GleanConfig()
        assert cfg.preprocess.budget_chars == 96000

    def test_scoring_base_weights(self):
        cfg = GleanConfig()
        assert cfg.scoring.base["toggle"] == 15
        assert cfg.scoring.base["page"] == 5

    def test_retry_defaults(self):
        cfg = GleanConfig()
        assert cfg.retry.max_attempts == 3
        assert cfg.retry.overall_timeout == 90


class TestGenerationRetryPolicy:
    def test_attempt_outlives_cli_timeout(self):
        cfg = GleanConfig()
        policy = cfg.generation.retry_policy(cfg.retry)
        assert cfg.retry.attempt_timeout < cfg.generation.timeout
        assert policy.attempt_timeout > cfg.generation.timeout
        assert policy.overall_timeout >= policy.attempt_timeout * policy.max_attempts
        assert policy.max_attempts == cfg.retry.max_attempts

    def test_longer_base_timeouts_kept(self):
        base = RetryPolicy(attempt_timeout=600, overall_timeout=3600)
        policy = GenerationConfig(timeout=60).retry_policy(base)
        assert policy.attempt_timeout == 600
        assert policy.overall_timeout == 3600

    def test_shared_policy_unchanged(self):
        cfg = GleanConfig()
        cfg.generation.retry_policy(cfg.retry)
        assert cfg.retry.attempt_timeout == 30


class TestLoadConfig:
    def test_explicit_path(self, tmp_path):
        path = tmp_path / "custom.toml"
        path.write_text(
            '[generation]\nprimary_model = "opus"\n\n[selection]\nrepetition_threshold = 0.5\n'
        )
        cfg = load_config(path)
        assert cfg.generation.primary_model == "opus"
        assert cfg.selection.repetition_threshold == 0.5
        assert cfg.generation.fallback_model == "haiku"

    def test_missing_explicit_path_gives_defaults(self, tmp_path):
        cfg = load_config(tmp_path / "nope.toml")
        assert cfg.output.directory == "./glean"

    def test_searches_cwd(self, tmp_path, monkeypatch):
        (tmp_path / ".glean.toml").write_text('[output]\ndirectory = "/tmp/notes"\n')
        monkeypatch.chdir(tmp_path)
        cfg = load_config()
        assert cfg.output.directory == "/tmp/notes"

    def test_global_config_used_when_no_local(self, tmp_path, monkeypatch):
        global_path = tmp_path / "global.toml"
        global_path.write_text('[notion]\nmax_depth = 5\n')
        monkeypatch.chdir(tmp_path)
        with patch("glean.config.GLOBAL_CONFIG_PATH", global_path):
            cfg = load_config()
        assert cfg.notion.max_depth == 5

    def test_invalid_toml_falls_back_to_defaults(self, tmp_path):
        path = tmp_path / "bad.toml"
        path.write_text("[[[ not toml")
        cfg = load_config(path)
        assert cfg == load_config(tmp_path / "absent.toml")

    def test_invalid_values_raise_config_error(self, tmp_path):
        path = tmp_path / "bad.toml"
        path.write_text('[summary]\nstyle = "poetry"\n')
        with pytest.raises(ConfigError):
            load_config(path)

    def test_scoring_override(self, tmp_path):
        path = tmp_path / "weights.toml"
        path.write_text("[scoring]\nmeeting_bonus = 20\n")
        cfg = load_config(path)
        assert cfg.scoring.meeting_bonus == 20
        assert cfg.scoring.project_bonus == 4


class TestEnvVars:
    def test_notion_token(self, monkeypatch, tmp_path):
        monkeypatch.setenv("NOTION_TOKEN", "secret_abc")
        cfg = load_config(tmp_path / "absent.toml")
        assert cfg.notion.token == "secret_abc"
        assert cfg.notion.is_configured is True

    def test_env_overrides_toml(self, monkeypatch, tmp_path):
        path = tmp_path / "c.toml"
        path.write_text('[generation]\nprimary_model = "opus"\n')
        monkeypatch.setenv("GLEAN_MODEL", "sonnet-env")
        cfg = load_config(path)
        assert cfg.generation.primary_model == "sonnet-env"

    def test_summary_style_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("GLEAN_SUMMARY_STYLE", "bullet_points")
        monkeypatch.setenv("GLEAN_SUMMARY_LENGTH", "long")
        cfg = load_config(tmp_path / "absent.toml")
        assert cfg.summary.style == SummaryStyle.BULLET_POINTS
        assert cfg.summary.length == SummaryLength.LONG


class TestMergeCliOverrides:
    def test_none_values_ignored(self):
        cfg = merge_cli_overrides(GleanConfig(), model=None, style=None)
        assert cfg.generation.primary_model == "sonnet"

    def test_overrides_applied(self):
        cfg = merge_cli_overrides(
            GleanConfig(),
            model="opus",
            style=SummaryStyle.DETAILED,
            output_directory="/tmp/out",
        )
        assert cfg.generation.primary_model == "opus"
        assert cfg.summary.style == SummaryStyle.DETAILED
        assert cfg.output.directory == "/tmp/out"

    def test_unknown_keys_ignored(self):
        cfg = merge_cli_overrides(GleanConfig(), colour="blue")
        assert cfg == GleanConfig()
