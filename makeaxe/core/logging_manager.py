from __future__ import annotations

import logging
import logging.handlers
import os
import pathlib
import sys
from typing import Any, Dict, List, Optional

import structlog
from pythonjsonlogger import jsonlogger

from makeaxe.core.base import AxeManager
from makeaxe.utils.exceptions import ManagerInitializationError, ManagerShutdownError


DEFAULT_LOGGING_CONFIG: Dict[str, Any] = {
    "level": "INFO",
    "format": "text",
    "console": {"enabled": True, "level": "INFO"},
    "file": {
        "enabled": False,
        "path": "logs/makeaxe.log",
        "rotation": "10 MB",
        "retention": "30 days",
    },
}


class LoggingManager(AxeManager):
    """Manages logging configuration for a makeaxe run.

    Configures Python's logging module with console and file handlers and
    routes structlog events through it, so library modules can log with
    ``structlog.get_logger(__name__)`` and structured key/value fields.
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

    def __init__(self, logging_config: Optional[Dict[str, Any]] = None) -> None:
        """Initialize the Logging Manager.

        Args:
            logging_config: Logging settings, merged over ``DEFAULT_LOGGING_CONFIG``.
        """
        super().__init__(name="logging_manager")
        self._config = self._merge(DEFAULT_LOGGING_CONFIG, logging_config or {})
        self._root_logger: Optional[logging.Logger] = None
        self._file_handler: Optional[logging.Handler] = None
        self._console_handler: Optional[logging.Handler] = None
        self._log_directory: Optional[pathlib.Path] = None
        self._json = False
        self._handlers: List[logging.Handler] = []

    @staticmethod
    def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        result = dict(base)
        for key, value in override.items():
            if isinstance(value, dict) and isinstance(result.get(key), dict):
                result[key] = LoggingManager._merge(result[key], value)
            else:
                result[key] = value
        return result

    def initialize(self) -> None:
        """Set up the console and file handlers and configure structlog.

        Raises:
            ManagerInitializationError: If initialization fails.
        """
        try:
            log_level = self.LOG_LEVELS.get(str(self._config.get("level", "INFO")).lower(), logging.INFO)
            self._json = str(self._config.get("format", "text")).lower() == "json"

            self._root_logger = logging.getLogger()
            self._root_logger.setLevel(log_level)

            # Remove any existing handlers
            for handler in list(self._root_logger.handlers):
                self._root_logger.removeHandler(handler)

            if self._json:
                formatter: logging.Formatter = self._create_json_formatter()
            else:
                formatter = logging.Formatter(self.TEXT_FORMAT)

            console_config = self._config.get("console", {})
            if console_config.get("enabled", True):
                console_level = self.LOG_LEVELS.get(
                    str(console_config.get("level", "INFO")).lower(), logging.INFO
                )
                self._console_handler = logging.StreamHandler(sys.stdout)
                self._console_handler.setLevel(console_level)
                self._console_handler.setFormatter(formatter)
                self._root_logger.addHandler(self._console_handler)
                self._handlers.append(self._console_handler)

            file_config = self._config.get("file", {})
            if file_config.get("enabled", False):
                file_path = file_config.get("path", "logs/makeaxe.log")
                self._log_directory = pathlib.Path(file_path).parent
                os.makedirs(self._log_directory, exist_ok=True)

                rotation = file_config.get("rotation", "10 MB")
                retention = file_config.get("retention", "30 days")

                # Parse rotation (e.g., "10 MB")
                if isinstance(rotation, str) and "MB" in rotation:
                    max_bytes = int(rotation.split()[0]) * 1024 * 1024
                else:
                    max_bytes = 10 * 1024 * 1024

                # Parse retention (e.g., "30 days")
                if isinstance(retention, str) and "days" in retention:
                    backup_count = int(retention.split()[0])
                else:
                    backup_count = 30

                self._file_handler = logging.handlers.RotatingFileHandler(
                    file_path,
                    maxBytes=max_bytes,
                    backupCount=backup_count,
                )
                self._file_handler.setLevel(log_level)
                self._file_handler.setFormatter(formatter)
                self._root_logger.addHandler(self._file_handler)
                self._handlers.append(self._file_handler)

            self._configure_structlog()

            self._initialized = True
            self._healthy = True

        except Exception as e:
            for handler in self._handlers:
                self._root_logger.removeHandler(handler)
                handler.close()
            self._handlers = []
            self._console_handler = None
            self._file_handler = None
            raise ManagerInitializationError(
                f"Failed to initialize LoggingManager: {str(e)}",
                manager_name=self.name,
            ) from e

    def _create_json_formatter(self) -> logging.Formatter:
        """Create a JSON formatter for log records."""
        return jsonlogger.JsonFormatter(
            fmt="%(asctime)s %(name)s %(levelname)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S%z",
            json_ensure_ascii=False,
        )

    def _configure_structlog(self) -> None:
        """Route structlog events into the stdlib handlers configured above."""
        processors: List[Any] = [
            structlog.stdlib.filter_by_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
        ]
        if self._json:
            # Event fields become LogRecord extras, which the JSON formatter emits.
            processors.append(structlog.stdlib.render_to_log_kwargs)
        else:
            processors.append(structlog.processors.KeyValueRenderer(key_order=["event"]))

        structlog.configure(
            processors=processors,
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=False,
        )

    def get_logger(self, name: str) -> Any:
        """Get a logger for a specific component.

        Args:
            name: The name of the component requesting a logger.

        Returns:
            A structlog logger once initialized, a plain stdlib logger before.
        """
        if not self._initialized:
            return logging.getLogger(name)
        return structlog.get_logger(name)

    def shutdown(self) -> None:
        """Close all handlers and restore structlog defaults.

        Raises:
            ManagerShutdownError: If shutdown fails.
        """
        if not self._initialized:
            return

        try:
            for handler in self._handlers:
                if self._root_logger:
                    self._root_logger.removeHandler(handler)
                handler.flush()
                handler.close()
            self._handlers = []
            self._console_handler = None
            self._file_handler = None

            structlog.reset_defaults()

            self._initialized = False
            self._healthy = False

        except Exception as e:
            raise ManagerShutdownError(
                f"Failed to shut down LoggingManager: {str(e)}",
                manager_name=self.name,
            ) from e

    def status(self) -> Dict[str, Any]:
        """Get the status of the Logging Manager."""
        status = super().status()

        if self._initialized:
            status.update(
                {
                    "log_directory": str(self._log_directory)
                    if self._log_directory
                    else None,
                    "handlers": {
                        "console": self._console_handler is not None,
                        "file": self._file_handler is not None,
                    },
                    "format": "json" if self._json else "text",
                }
            )

        return status
