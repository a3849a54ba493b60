# tests/test_config.py
"""
Tests for configuration loading and environment references.
"""

import logging
import os
from pathlib import Path

import pytest

from ragcore.config import (
    RagCoreConfig,
    get_config,
    load_config,
    resolve_env,
    set_config,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Drop RAGCORE__ variables inherited from the environment."""
    for key in list(os.environ):
        if key.startswith("RAGCORE__"):
            monkeypatch.delenv(key)


# =============================================================================
# LOADING
# =============================================================================


class TestLoadConfig:
    """Tests for load_config precedence."""

    def test_defaults(self):
        """No sources gives the model defaults."""
        config = load_config()
        assert config.http.timeout == 300.0
        assert config.logging == {}
        assert Path(config.app_root).is_absolute()

    def test_toml_file(self, tmp_path):
        """A [ragcore] table in a TOML file is applied."""
        path = tmp_path / "ragcore.toml"
        path.write_text('[ragcore]\napp_root = "/srv/rag"\n\n[ragcore.http]\ntimeout = 30\n', encoding="utf-8")
        config = load_config(config_path=path)
        assert config.http.timeout == 30.0
        assert config.app_root == str(Path("/srv/rag").resolve())

    def test_toml_without_section(self, tmp_path):
        """A file without a [ragcore] table is read as the section itself."""
        path = tmp_path / "flat.toml"
        path.write_text("[http]\ntimeout = 12.5\n", encoding="utf-8")
        assert load_config(config_path=path).http.timeout == 12.5

    def test_missing_file_is_a_warning(self, tmp_path, caplog):
        """A missing file falls back to defaults."""
        with caplog.at_level(logging.WARNING, logger="ragcore.config"):
            config = load_config(config_path=tmp_path / "absent.toml")
        assert config.http.timeout == 300.0
        assert "not found" in caplog.text

    def test_precedence(self, tmp_path, monkeypatch):
        """dict beats file, environment beats dict, overrides beat everything."""
        path = tmp_path / "ragcore.toml"
        path.write_text("[http]\ntimeout = 10\n", encoding="utf-8")

        assert load_config(config_path=path, config_dict={"http": {"timeout": 20}}).http.timeout == 20

        monkeypatch.setenv("RAGCORE__HTTP__TIMEOUT", "40")
        assert load_config(config_path=path, config_dict={"http": {"timeout": 20}}).http.timeout == 40

        config = load_config(config_dict={"http": {"timeout": 20}}, overrides={"http": {"timeout": 50}})
        assert config.http.timeout == 50

    def test_env_top_level_and_types(self, monkeypatch, tmp_path):
        """Single-segment variables set top-level keys; values are typed."""
        monkeypatch.setenv("RAGCORE__APP_ROOT", str(tmp_path))
        monkeypatch.setenv("RAGCORE__LOGGING__CONSOLE_ENABLED", "true")
        monkeypatch.setenv("RAGCORE__LOGGING__ROTATION_BACKUP_COUNT", "3")

        config = load_config()
        assert config.app_root == str(tmp_path.resolve())
        assert config.logging == {"console_enabled": True, "rotation_backup_count": 3}

    def test_invalid_config_falls_back(self, caplog):
        """Invalid values are logged and the defaults are used."""
        with caplog.at_level(logging.WARNING, logger="ragcore.config"):
            config = load_config(config_dict={"http": {"timeout": -1}})
        assert config.http.timeout == 300.0
        assert "Using default configuration" in caplog.text

    def test_app_root_expands_user(self, monkeypatch, tmp_path):
        """~ in app_root is expanded."""
        monkeypatch.setenv("HOME", str(tmp_path))
        assert RagCoreConfig(app_root="~/rag").app_root == str((tmp_path / "rag").resolve())


# =============================================================================
# PROCESS CONFIG AND ENV REFERENCES
# =============================================================================


def test_get_and_set_config():
    """get_config caches; set_config replaces and resets."""
    custom = RagCoreConfig(http={"timeout": 5})
    set_config(custom)
    try:
        assert get_config() is custom
    finally:
        set_config(None)
    assert get_config() is not custom


@pytest.mark.parametrize(
    "value,expected",
    [("$ENV.RAGCORE_TEST_SECRET", "s3cret"), ("$ENV.RAGCORE_TEST_UNSET", ""), ("plain", "plain"), (42, 42)],
)
def test_resolve_env(monkeypatch, value, expected):
    """$ENV.NAME references read the environment; other values pass through."""
    monkeypatch.setenv("RAGCORE_TEST_SECRET", "s3cret")
    monkeypatch.delenv("RAGCORE_TEST_UNSET", raising=False)
    assert resolve_env(value) == expected
