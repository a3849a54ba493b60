# src/ragcore/logging_config.py
"""
Logging setup for ragcore.

Chunking runs and store backends log through ``logging.getLogger(__name__)``;
this module wires those loggers to a console handler and an optional file
handler in one place so every entry point configures logging the same way.

Key concepts:

    **Display filter**: when ``console_enabled`` is False (the default) the
    console handler still exists, but only records carrying
    ``extra={"display": True}`` pass through it. Pipeline milestones such as
    "Chunked 42 leaves" can reach the user while per-frame debug chatter
    stays in the log file.

    **File modes**: ``file_mode="per_run"`` writes a new timestamped file per
    process; ``file_mode="single"`` appends to one file rotated by
    ``RotatingFileHandler``.

Usage:
    from ragcore.logging_config import configure_logging, log_display

    configure_logging(app_name="ragcore", config=settings.logging)

    logger = logging.getLogger("ragcore.ingest")
    log_display(logger, logging.INFO, "Chunked %d leaves", count)
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_LOGGING_CONFIG: dict[str, Any] = {
    "console_enabled": False,
    "console_level": "WARNING",
    "console_format": "%(levelname)s - %(message)s",
    "file_enabled": False,
    "file_level": "DEBUG",
    "file_directory": "~/.local/share/ragcore/logs",
    "file_mode": "per_run",
    "file_name_pattern": "{app}_{timestamp:%Y%m%d_%H%M%S}.log",
    "file_single_name": "{app}.log",
    "file_format": "%(asctime)s [%(levelname)-8s] %(name)-30s - %(message)s (%(filename)s:%(lineno)d)",
    "rotation_max_bytes": 10 * 1024 * 1024,
    "rotation_backup_count": 5,
    "display_min_level": "INFO",
    "components": {
        "ragcore": "INFO",
        "aiohttp": "WARNING",
        "aiosqlite": "WARNING",
        "redis": "WARNING",
        "pymongo": "WARNING",
        "asyncio": "WARNING",
    },
}


def _level(value: str | int, fallback: int) -> int:
    """Resolve a level name or number, returning ``fallback`` for unknown names."""
    if isinstance(value, int):
        return value
    resolved = logging.getLevelName(str(value).upper())
    return resolved if isinstance(resolved, int) else fallback


# ---------------------------------------------------------------------------
# DisplayFilter
# ---------------------------------------------------------------------------


class DisplayFilter(logging.Filter):
    """Decides which records reach the console handler.

    With the console globally enabled every record passes and the handler
    level does the filtering. Otherwise only records flagged ``display=True``
    pass, and only when they meet ``display_min_level``.
    """

    def __init__(
        self,
        console_globally_enabled: bool = False,
        display_min_level: int = logging.INFO,
    ) -> None:
        super().__init__()
        self.console_globally_enabled = console_globally_enabled
        self.display_min_level = display_min_level

    def filter(self, record: logging.LogRecord) -> bool:
        if self.console_globally_enabled:
            return True
        if getattr(record, "display", False):
            return record.levelno >= self.display_min_level
        return False


# ---------------------------------------------------------------------------
# LoggingManager
# ---------------------------------------------------------------------------


class LoggingManager:
    """
    Process-wide owner of the ragcore logging handlers.

    Configuration happens once unless ``force_reconfigure`` is passed; the
    handlers it installs can be adjusted at runtime.
    """

    _instance: LoggingManager | None = None
    _configured: bool = False
    _log_file_path: Path | None = None

    def __new__(cls) -> LoggingManager:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._console_handler = None
            cls._instance._file_handler = None
            cls._instance._display_filter = None
        return cls._instance

    @classmethod
    def is_configured(cls) -> bool:
        return cls._configured

    @classmethod
    def get_log_file_path(cls) -> Path | None:
        return cls._log_file_path

    def configure(
        self,
        app_name: str = "ragcore",
        config: dict[str, Any] | None = None,
        force_reconfigure: bool = False,
    ) -> Path | None:
        """
        Install console and file handlers on the root logger.

        Args:
            app_name: Used in the log file name.
            config: The ``logging`` section of the ragcore configuration;
                missing keys fall back to ``DEFAULT_LOGGING_CONFIG``.
            force_reconfigure: Replace handlers even if already configured.

        Returns:
            The log file path, or None when file logging is disabled.
        """
        if LoggingManager._configured and not force_reconfigure:
            return LoggingManager._log_file_path

        log_config = {**DEFAULT_LOGGING_CONFIG, **(config or {})}

        root_logger = logging.getLogger()
        for handler in (self._console_handler, self._file_handler):
            if handler is not None:
                root_logger.removeHandler(handler)
                handler.close()
        self._console_handler = None
        self._file_handler = None
        root_logger.setLevel(logging.DEBUG)

        console_enabled = bool(log_config.get("console_enabled", False))
        self._display_filter = DisplayFilter(
            console_globally_enabled=console_enabled,
            display_min_level=_level(log_config.get("display_min_level", "INFO"), logging.INFO),
        )
        self._console_handler = logging.StreamHandler(sys.stderr)
        if console_enabled:
            self._console_handler.setLevel(_level(log_config["console_level"], logging.WARNING))
        else:
            # The filter is the only gate when the console is off.
            self._console_handler.setLevel(logging.DEBUG)
        self._console_handler.setFormatter(logging.Formatter(log_config["console_format"]))
        self._console_handler.addFilter(self._display_filter)
        root_logger.addHandler(self._console_handler)

        log_file_path = None
        if log_config.get("file_enabled", False):
            self._file_handler, log_file_path = self._create_file_handler(log_config, app_name)
            if self._file_handler is not None:
                root_logger.addHandler(self._file_handler)

        for component_name, level_str in log_config.get("components", {}).items():
            logging.getLogger(component_name).setLevel(_level(level_str, logging.INFO))

        LoggingManager._configured = True
        LoggingManager._log_file_path = log_file_path
        if log_file_path:
            logging.getLogger(__name__).debug(f"Logging configured. Log file: {log_file_path}")
        return log_file_path

    def _create_file_handler(
        self, config: dict[str, Any], app_name: str
    ) -> tuple[logging.Handler | None, Path | None]:
        log_dir = Path(os.path.expanduser(config["file_directory"]))
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            sys.stderr.write(f"Warning: Cannot create log directory {log_dir}: {e}\n")
            return None, None

        try:
            if config.get("file_mode", "per_run") == "single":
                log_file_path = log_dir / config["file_single_name"].format(app=app_name)
                handler: logging.Handler = RotatingFileHandler(
                    log_file_path,
                    maxBytes=config["rotation_max_bytes"],
                    backupCount=config["rotation_backup_count"],
                    encoding="utf-8",
                )
            else:
                filename = config["file_name_pattern"].format(app=app_name, timestamp=datetime.now())
                log_file_path = log_dir / filename
                handler = logging.FileHandler(log_file_path, encoding="utf-8")
        except OSError as e:
            sys.stderr.write(f"Warning: Cannot create log file in {log_dir}: {e}\n")
            return None, None

        handler.setLevel(_level(config.get("file_level", "DEBUG"), logging.DEBUG))
        handler.setFormatter(logging.Formatter(config["file_format"]))
        return handler, log_file_path

    def set_component_level(self, component: str, level: str | int) -> None:
        """Change a specific component's log level at runtime."""
        logging.getLogger(component).setLevel(_level(level, logging.INFO))

    def set_console_level(self, level: str | int) -> None:
        """Change the console handler's level; enables the console for all records."""
        if self._console_handler is None:
            return
        self._console_handler.setLevel(_level(level, logging.WARNING))
        if self._display_filter is not None:
            self._display_filter.console_globally_enabled = True


# ---------------------------------------------------------------------------
# Public module-level functions
# ---------------------------------------------------------------------------


def configure_logging(
    app_name: str = "ragcore",
    config: dict[str, Any] | None = None,
    force_reconfigure: bool = False,
) -> Path | None:
    """
    Configure logging for an application embedding ragcore.

    Example:
        from ragcore.config import load_config
        from ragcore.logging_config import configure_logging

        settings = load_config("ragcore.toml")
        configure_logging(app_name="ingest", config=settings.logging)
    """
    return LoggingManager().configure(
        app_name=app_name, config=config, force_reconfigure=force_reconfigure
    )


def log_display(
    logger: logging.Logger,
    level: int,
    msg: str,
    *args: Any,
    **kwargs: Any,
) -> None:
    """Log a message that also reaches the console when console logging is off.

    The caller's ``extra`` mapping is merged, not replaced.
    """
    extra = dict(kwargs.pop("extra", None) or {})
    extra["display"] = True
    kwargs["extra"] = extra
    logger.log(level, msg, *args, **kwargs)


def get_log_file_path() -> Path | None:
    """Get the current log file path."""
    return LoggingManager.get_log_file_path()


def set_component_level(component: str, level: str | int) -> None:
    """Change a specific component's log level at runtime."""
    LoggingManager().set_component_level(component, level)


def set_console_level(level: str | int) -> None:
    """Change console log level at runtime."""
    LoggingManager().set_console_level(level)
