"""Leveled logging for workspace-mcp.

Every module logs through ``logging.getLogger(__name__)``. This module wires
the ``workspace_mcp`` package logger to two handlers:

- ``<config_dir>/logs/server.log``: append-only, one line per event,
  formatted as ``<ISO-8601 timestamp> [<LEVEL>] <message>``.
- stderr: ERROR and WARN only, with an emoji prefix. Stdout is left alone
  because it carries the MCP stdio protocol.

The level comes from the ``WorkspaceConfig`` passed in, so calling
``configure_logging`` again with another config replaces the handlers.
"""

import logging
from datetime import datetime, timezone
from typing import TextIO

from workspace_mcp.config import WorkspaceConfig

PACKAGE_LOGGER_NAME = "workspace_mcp"

# Attribute set on handlers installed here, so reconfiguring only removes ours
_HANDLER_MARKER = "_workspace_mcp_handler"

_LEVEL_NAMES = {
    logging.CRITICAL: "ERROR",
    logging.ERROR: "ERROR",
    logging.WARNING: "WARN",
    logging.INFO: "INFO",
    logging.DEBUG: "DEBUG",
}


def _level_name(levelno: int) -> str:
    return _LEVEL_NAMES.get(levelno, logging.getLevelName(levelno))


class LogLineFormatter(logging.Formatter):
    """Format records as ``<ISO-8601 timestamp> [<LEVEL>] <message>``.

    Exception info is folded into the same line so the file stays
    one line per event.
    """

    def format(self, record: logging.LogRecord) -> str:
        timestamp = (
            datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z")
        )
        message = record.getMessage()
        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            message = f"{message} ({type(exc).__name__}: {exc})"
        message = message.replace("\n", " ")
        return f"{timestamp} [{_level_name(record.levelno)}] {message}"


class ConsoleFormatter(logging.Formatter):
    """Short console rendering for errors and warnings."""

    def format(self, record: logging.LogRecord) -> str:
        prefix = "❌" if record.levelno >= logging.ERROR else "⚠️ "
        return f"{prefix} {record.getMessage()}"


def configure_logging(
    config: WorkspaceConfig,
    stream: TextIO | None = None,
) -> logging.Logger:
    """Install file and console handlers on the package logger.

    Args:
        config: Configuration supplying the log level and log file path.
        stream: Console stream for ERROR/WARN output. Defaults to stderr.

    Returns:
        The configured ``workspace_mcp`` logger.
    """
    package_logger = logging.getLogger(PACKAGE_LOGGER_NAME)

    for handler in list(package_logger.handlers):
        if getattr(handler, _HANDLER_MARKER, False):
            package_logger.removeHandler(handler)
            handler.close()

    package_logger.setLevel(config.log_level.logging_level)
    package_logger.propagate = False

    console_handler = logging.StreamHandler(stream)
    console_handler.setLevel(logging.WARNING)
    console_handler.setFormatter(ConsoleFormatter())
    setattr(console_handler, _HANDLER_MARKER, True)
    package_logger.addHandler(console_handler)

    try:
        config.log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(config.log_file_path, mode="a", encoding="utf-8")
    except OSError as e:
        # Continue with console-only logging
        package_logger.error(f"Could not open log file {config.log_file_path}: {e}")
        return package_logger

    file_handler.setFormatter(LogLineFormatter())
    setattr(file_handler, _HANDLER_MARKER, True)
    package_logger.addHandler(file_handler)

    return package_logger
