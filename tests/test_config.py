"""Tests for Settings.from_env() and GraphPolicy."""

from __future__ import annotations

from pathlib import Path

import pytest

from flowbuilder.config import DEFAULT_CATALOG_PATH, DEFAULT_POLICY, GraphPolicy, Settings

_ENV_VARS = (
    "FLOWBUILDER_LOG_LEVEL",
    "FLOWBUILDER_CATALOG_PATH",
    "FLOWBUILDER_SELF_LOOPS",
    "FLOWBUILDER_UNKNOWN_COMPONENTS",
    "FLOWBUILDER_HISTORY_SIZE",
    "FLOWBUILDER_PROMPT_MIN_LENGTH",
    "FLOWBUILDER_PROMPT_MAX_LENGTH",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestSettings:
    def test_defaults(self, clean_env):
        settings = Settings.from_env()
        assert settings == Settings()
        assert settings.log_level == "WARNING"
        assert settings.catalog_path == DEFAULT_CATALOG_PATH
        assert settings.history_size == 10
        assert (settings.prompt_min_length, settings.prompt_max_length) == (10, 2000)
        assert settings.policy == DEFAULT_POLICY

    def test_from_env(self, clean_env, tmp_path):
        clean_env.setenv("FLOWBUILDER_LOG_LEVEL", "debug")
        clean_env.setenv("FLOWBUILDER_CATALOG_PATH", str(tmp_path / "c.json"))
        clean_env.setenv("FLOWBUILDER_SELF_LOOPS", "REJECT")
        clean_env.setenv("FLOWBUILDER_UNKNOWN_COMPONENTS", "error")
        clean_env.setenv("FLOWBUILDER_HISTORY_SIZE", "25")
        clean_env.setenv("FLOWBUILDER_PROMPT_MIN_LENGTH", "5")
        clean_env.setenv("FLOWBUILDER_PROMPT_MAX_LENGTH", "500")

        settings = Settings.from_env()
        assert settings.log_level == "DEBUG"
        assert settings.catalog_path == Path(tmp_path / "c.json")
        assert settings.history_size == 25
        assert settings.prompt_min_length == 5
        assert settings.prompt_max_length == 500
        assert settings.policy == GraphPolicy(self_loops="reject", unknown_components="error")

    def test_invalid_policy_in_env(self, clean_env):
        clean_env.setenv("FLOWBUILDER_SELF_LOOPS", "sometimes")
        with pytest.raises(ValueError, match="self_loops"):
            Settings.from_env()

    def test_frozen(self):
        with pytest.raises(AttributeError):
            Settings().history_size = 3


class TestGraphPolicy:
    def test_defaults_allow_self_loops_and_skip_unknown(self):
        assert DEFAULT_POLICY.allows_self_loops
        assert DEFAULT_POLICY.unknown_components == "skip"

    def test_reject(self):
        assert not GraphPolicy(self_loops="reject").allows_self_loops

    def test_invalid_unknown_components(self):
        with pytest.raises(ValueError, match="unknown_components"):
            GraphPolicy(unknown_components="warn")
