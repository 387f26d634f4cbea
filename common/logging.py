"""
Logging setup for Git Manager.

Every module logs through a child of the ``gitmanager`` logger
(``gitmanager.github``, ``gitmanager.api`` ...). Only that root is given
handlers, once per process, by the CLI entry point or the API factory.
"""

import logging
import sys
from typing import List, Optional, Union

APP_LOGGER_NAME = "gitmanager"

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)8s | %(message)s"


def _resolve_level(level: Union[int, str]) -> int:
    # LOG_LEVEL may arrive in any case from the environment
    if isinstance(level, str):
        resolved = logging.getLevelName(level.strip().upper())
        return resolved if isinstance(resolved, int) else logging.INFO
    return level


def _stdout_handler(formatter: logging.Formatter) -> logging.Handler:
    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(formatter)
    return handler


def _file_handler(path: str, formatter: logging.Formatter) -> Optional[logging.Handler]:
    try:
        handler = logging.FileHandler(path, mode='a')
    except OSError:
        return None
    handler.setFormatter(formatter)
    return handler


class LoggingManager:
    """Owns the handlers of one logger tree, ``gitmanager`` by default."""

    def __init__(self,
                 logger_name: str = APP_LOGGER_NAME,
                 log_level: Union[int, str] = logging.INFO,
                 log_format: str = LOG_FORMAT,
                 log_file: Optional[str] = None,
                 console_output: bool = True,
                 propagate: bool = False):
        """
        Args:
            logger_name: Root of the tree to configure.
            log_level: Level number or name, e.g. ``"debug"``.
            log_format: ``logging.Formatter`` format string.
            log_file: Also append records to this path when it can be opened.
            console_output: Write records to stdout.
            propagate: Let records reach the Python root logger as well.
        """
        self.logger_name = logger_name
        self.log_file = log_file
        self._logger = logging.getLogger(logger_name)
        self._logger.setLevel(_resolve_level(log_level))
        self._logger.propagate = propagate

        # A second manager for the same tree replaces the first one's handlers
        self._logger.handlers.clear()
        for handler in self._build_handlers(logging.Formatter(log_format), console_output):
            self._logger.addHandler(handler)

        if log_file and not any(isinstance(h, logging.FileHandler) for h in self._logger.handlers):
            self._logger.warning(f"Could not open log file {log_file}, logging to stdout only")

    def _build_handlers(self, formatter: logging.Formatter, console_output: bool) -> List[logging.Handler]:
        handlers = []
        if console_output:
            handlers.append(_stdout_handler(formatter))
        if self.log_file:
            file_handler = _file_handler(self.log_file, formatter)
            if file_handler is not None:
                handlers.append(file_handler)
        return handlers

    @classmethod
    def from_config(cls, config, console_output: bool = True) -> "LoggingManager":
        return cls(log_level=config.log_level, log_file=config.log_file, console_output=console_output)

    def get_configured_logger(self) -> logging.Logger:
        return self._logger

    @staticmethod
    def get_logger(name: str) -> logging.Logger:
        """Module loggers; name them ``gitmanager.<area>`` so they reach the configured handlers."""
        return logging.getLogger(name)
