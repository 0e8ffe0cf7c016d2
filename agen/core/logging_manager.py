from __future__ import annotations

import logging
import logging.handlers
import os
import pathlib
import sys
from typing import Any, List, Optional

import structlog
from pythonjsonlogger import jsonlogger

from agen.utils.exceptions import ConfigurationError


class LoggingManager:
    """Configures application logging and hands out loggers.

    Python's logging module carries the handlers; structlog sits on top so
    that modules can log events with keyword fields through
    ``structlog.get_logger(__name__)``. The ``json`` format renders records
    with python-json-logger, ``text`` with a plain line formatter.
    """

    # Mapping from string log levels to logging module constants
    LOG_LEVELS = {
        "debug": logging.DEBUG,
        "info": logging.INFO,
        "warning": logging.WARNING,
        "error": logging.ERROR,
        "critical": logging.CRITICAL,
    }

    TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    def __init__(self, config_manager: Any, stream: Any = None) -> None:
        """Initialize the Logging Manager.

        Args:
            config_manager: The Configuration Manager to use for logging settings.
            stream: Stream for the console handler (defaults to stderr).
        """
        self._config_manager = config_manager
        self._stream = stream if stream is not None else sys.stderr
        self._root_logger: Optional[logging.Logger] = None
        self._handlers: List[logging.Handler] = []
        self._initialized = False

    def initialize(self) -> None:
        """Set up console and optional file logging from configuration.

        Raises:
            ConfigurationError: If the log file cannot be opened.
        """
        logging_config = self._config_manager.get("logging", {}) or {}
        log_level = self.LOG_LEVELS.get(str(logging_config.get("level", "WARNING")).lower(), logging.WARNING)
        log_format = str(logging_config.get("format", "text")).lower()

        self._root_logger = logging.getLogger()
        self._root_logger.setLevel(log_level)
        self._remove_handlers()

        if log_format == "json":
            formatter: logging.Formatter = self._create_json_formatter()
        else:
            formatter = logging.Formatter(self.TEXT_FORMAT)

        console_handler = logging.StreamHandler(self._stream)
        console_handler.setLevel(log_level)
        console_handler.setFormatter(formatter)
        self._add_handler(console_handler)

        file_config = logging_config.get("file", {}) or {}
        if file_config.get("enabled", False):
            file_path = pathlib.Path(file_config.get("path", "logs/agen.log"))
            try:
                os.makedirs(file_path.parent, exist_ok=True)
                file_handler = logging.handlers.RotatingFileHandler(
                    file_path,
                    maxBytes=10 * 1024 * 1024,
                    backupCount=5,
                )
            except OSError as e:
                raise ConfigurationError(
                    f"Cannot open log file {file_path}: {e}",
                    config_key="logging.file.path",
                ) from e
            file_handler.setLevel(log_level)
            file_handler.setFormatter(formatter)
            self._add_handler(file_handler)

        self._configure_structlog()
        self._initialized = True

    @property
    def initialized(self) -> bool:
        return self._initialized

    def _add_handler(self, handler: logging.Handler) -> None:
        self._root_logger.addHandler(handler)
        self._handlers.append(handler)

    def _remove_handlers(self) -> None:
        for handler in self._handlers:
            if self._root_logger is not None:
                self._root_logger.removeHandler(handler)
            handler.close()
        self._handlers = []

    def _create_json_formatter(self) -> logging.Formatter:
        """Create a JSON formatter for log records.

        Returns:
            logging.Formatter: A formatter that outputs logs in JSON format.
        """
        return jsonlogger.JsonFormatter(
            fmt="%(asctime)s %(name)s %(levelname)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S%z",
            json_ensure_ascii=False,
        )

    def _configure_structlog(self) -> None:
        """Configure structlog to render through the stdlib handlers."""
        structlog.configure(
            processors=[
                structlog.stdlib.filter_by_level,
                structlog.stdlib.add_logger_name,
                structlog.stdlib.add_log_level,
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.UnicodeDecoder(),
                structlog.processors.KeyValueRenderer(key_order=["event"], drop_missing=True),
            ],
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=False,
        )
