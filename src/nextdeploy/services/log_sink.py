"""Deployment log file handling for nextdeploy."""

import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

from nextdeploy.constants import (
    FILE_MODE,
    LOG_DATE_FORMAT,
    LOG_MAX_BYTES,
    LOG_ROTATED_SUFFIX,
)
from nextdeploy.errors import LogSetupFailed
from nextdeploy.errors_catalog import actionable_error


class DeployLogFormatter(logging.Formatter):
    """Formats entries as ``TIMESTAMP - LEVEL: MESSAGE``."""

    LEVEL_NAMES = {logging.WARNING: "WARN", logging.CRITICAL: "ERROR"}

    def __init__(self):
        super().__init__(datefmt=LOG_DATE_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        level = self.LEVEL_NAMES.get(record.levelno, record.levelname)
        line = f"{self.formatTime(record, self.datefmt)} - {level}: {record.getMessage()}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


class DeployLogHandler(RotatingFileHandler):
    """Append-only log file, rotated once to ``<file>.old`` past a size threshold."""

    def __init__(self, filename: str, max_bytes: int = LOG_MAX_BYTES, mode: int = FILE_MODE):
        self.file_mode = mode
        prepare_log_file(filename, mode)
        super().__init__(filename, mode="a", maxBytes=max_bytes, backupCount=1, encoding="utf-8")
        self.namer = self._old_suffix_namer
        self.setFormatter(DeployLogFormatter())

    def _old_suffix_namer(self, default_name: str) -> str:
        return f"{self.baseFilename}{LOG_ROTATED_SUFFIX}"

    def doRollover(self):
        super().doRollover()
        if os.path.exists(self.baseFilename):
            os.chmod(self.baseFilename, self.file_mode)


def prepare_log_file(path: str, mode: int = FILE_MODE):
    """Creates the log directory and file if absent and applies ``mode``."""
    try:
        os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
        if not os.path.exists(path):
            with open(path, "a", encoding="utf-8"):
                pass
        os.chmod(path, mode)
    except OSError as exc:
        raise LogSetupFailed(actionable_error("log_setup_failed", path=path, detail=exc)) from exc


def attach_log_file(
    logger: logging.Logger,
    log_file: str,
    verbose: bool = False,
    max_bytes: int = LOG_MAX_BYTES,
) -> DeployLogHandler:
    handler = DeployLogHandler(log_file, max_bytes=max_bytes)
    level = logging.DEBUG if verbose else logging.INFO
    handler.setLevel(level)
    if logger.level == logging.NOTSET or logger.level > level:
        logger.setLevel(level)
    logger.addHandler(handler)
    return handler


def detach_log_file(logger: logging.Logger, handler: Optional[DeployLogHandler]):
    if handler is None:
        return
    logger.removeHandler(handler)
    handler.close()
