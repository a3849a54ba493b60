# tests/test_logging_config.py
"""
Tests for the ragcore.logging_config module.

Covers the LoggingManager singleton, the display filter, console and file
handlers, and runtime level changes.
"""

import logging
import logging.handlers

import pytest

from ragcore.logging_config import (
    DEFAULT_LOGGING_CONFIG,
    DisplayFilter,
    LoggingManager,
    configure_logging,
    get_log_file_path,
    log_display,
    set_component_level,
    set_console_level,
)


def _reset():
    manager = LoggingManager._instance
    root = logging.getLogger()
    if manager is not None:
        for handler in (manager._console_handler, manager._file_handler):
            if handler is not None:
                root.removeHandler(handler)
                handler.close()
    LoggingManager._instance = None
    LoggingManager._configured = False
    LoggingManager._log_file_path = None


@pytest.fixture
def reset_logging_manager():
    """Reset the logging manager singleton between tests."""
    _reset()
    yield
    _reset()


def _record(level=logging.INFO, display=None):
    record = logging.LogRecord("ragcore.test", level, __file__, 1, "msg", (), None)
    if display is not None:
        record.display = display
    return record


# =============================================================================
# DEFAULTS AND FILTER
# =============================================================================


class TestDefaults:
    """Tests for DEFAULT_LOGGING_CONFIG."""

    def test_quiet_by_default(self):
        """Console and file logging are off unless configured."""
        assert DEFAULT_LOGGING_CONFIG["console_enabled"] is False
        assert DEFAULT_LOGGING_CONFIG["file_enabled"] is False

    def test_components_defined(self):
        """The driver libraries have their own levels."""
        for name in ("ragcore", "aiohttp", "aiosqlite", "redis", "pymongo"):
            assert name in DEFAULT_LOGGING_CONFIG["components"]


class TestDisplayFilter:
    """Tests for DisplayFilter."""

    def test_console_enabled_passes_everything(self):
        """With the console on the filter lets every record through."""
        assert DisplayFilter(console_globally_enabled=True).filter(_record(logging.DEBUG))

    def test_display_records_only(self):
        """With the console off only flagged records pass."""
        display_filter = DisplayFilter()
        assert not display_filter.filter(_record())
        assert display_filter.filter(_record(display=True))

    def test_display_min_level(self):
        """Flagged records below the display level are dropped."""
        display_filter = DisplayFilter(display_min_level=logging.WARNING)
        assert not display_filter.filter(_record(logging.INFO, display=True))
        assert display_filter.filter(_record(logging.ERROR, display=True))


# =============================================================================
# MANAGER
# =============================================================================


class TestLoggingManager:
    """Tests for configure_logging and the singleton."""

    def test_singleton(self, reset_logging_manager):
        """Every LoggingManager() is the same object."""
        assert LoggingManager() is LoggingManager()

    def test_console_only(self, reset_logging_manager):
        """Without file logging no path is returned."""
        assert configure_logging(config={"console_enabled": True}) is None
        assert LoggingManager.is_configured()
        assert get_log_file_path() is None

    def test_configure_once(self, reset_logging_manager, tmp_path):
        """A second call is ignored unless forced."""
        first = configure_logging(config={"file_enabled": True, "file_directory": str(tmp_path)})
        second = configure_logging(config={"file_enabled": False})
        assert second == first
        assert configure_logging(config={"file_enabled": False}, force_reconfigure=True) is None

    def test_per_run_file(self, reset_logging_manager, tmp_path):
        """per_run mode creates a timestamped file that receives records."""
        path = configure_logging(app_name="ingest", config={"file_enabled": True, "file_directory": str(tmp_path)})

        assert path is not None and path.parent == tmp_path
        assert path.name.startswith("ingest_")
        logging.getLogger("ragcore.test").warning("written to file")
        LoggingManager()._file_handler.flush()
        assert "written to file" in path.read_text(encoding="utf-8")

    def test_single_file(self, reset_logging_manager, tmp_path):
        """single mode uses a rotating handler on a fixed name."""
        path = configure_logging(
            app_name="ingest",
            config={"file_enabled": True, "file_mode": "single", "file_directory": str(tmp_path)},
        )
        assert path == tmp_path / "ingest.log"
        assert isinstance(LoggingManager()._file_handler, logging.handlers.RotatingFileHandler)

    def test_component_levels(self, reset_logging_manager):
        """Component levels are applied and can be changed at runtime."""
        configure_logging(config={"components": {"ragcore.storage": "DEBUG"}})
        assert logging.getLogger("ragcore.storage").level == logging.DEBUG

        set_component_level("ragcore.storage", "ERROR")
        assert logging.getLogger("ragcore.storage").level == logging.ERROR

    def test_set_console_level(self, reset_logging_manager):
        """set_console_level turns the console on at the given level."""
        configure_logging()
        set_console_level("ERROR")
        manager = LoggingManager()
        assert manager._console_handler.level == logging.ERROR
        assert manager._display_filter.console_globally_enabled


def test_log_display_merges_extra(caplog):
    """log_display flags the record and keeps caller extras."""
    logger = logging.getLogger("ragcore.test.display")
    with caplog.at_level(logging.INFO, logger="ragcore.test.display"):
        log_display(logger, logging.INFO, "Chunked %d leaves", 3, extra={"run": "r1"})

    record = caplog.records[-1]
    assert record.getMessage() == "Chunked 3 leaves"
    assert record.display is True
    assert record.run == "r1"
