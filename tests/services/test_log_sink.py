import logging
import os
import re
import stat
import sys

import pytest

from nextdeploy.errors import LogSetupFailed
from nextdeploy.services.log_sink import (
    DeployLogFormatter,
    DeployLogHandler,
    attach_log_file,
    detach_log_file,
)


@pytest.fixture
def isolated_logger():
    logger = logging.getLogger("nextdeploy.tests.log_sink")
    logger.setLevel(logging.NOTSET)
    logger.propagate = False
    yield logger
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def test_log_file_is_created_with_fixed_permissions(tmp_path, isolated_logger):
    log_file = tmp_path / "logs" / "deploy.log"

    handler = attach_log_file(isolated_logger, str(log_file))
    detach_log_file(isolated_logger, handler)

    assert log_file.exists()
    assert stat.S_IMODE(os.stat(log_file).st_mode) == 0o644


def test_log_lines_use_timestamp_level_message_format(tmp_path, isolated_logger):
    log_file = tmp_path / "deploy.log"
    handler = attach_log_file(isolated_logger, str(log_file))

    isolated_logger.info("Starting deployment process")
    isolated_logger.warning("git not found. Installing git...")
    isolated_logger.error("Failed to build project")
    isolated_logger.debug("hidden without verbose")
    detach_log_file(isolated_logger, handler)

    lines = log_file.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 3
    assert re.fullmatch(
        r"\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2} - INFO: Starting deployment process", lines[0]
    )
    assert lines[1].endswith(" - WARN: git not found. Installing git...")
    assert lines[2].endswith(" - ERROR: Failed to build project")


def test_verbose_mode_writes_debug_entries(tmp_path, isolated_logger):
    log_file = tmp_path / "deploy.log"
    handler = attach_log_file(isolated_logger, str(log_file), verbose=True)

    isolated_logger.debug("Executing: git clone")
    detach_log_file(isolated_logger, handler)

    assert "DEBUG: Executing: git clone" in log_file.read_text(encoding="utf-8")


def test_log_file_appends_across_runs(tmp_path, isolated_logger):
    log_file = tmp_path / "deploy.log"
    log_file.write_text("2026-01-01 00:00:00 - INFO: previous run\n", encoding="utf-8")

    handler = attach_log_file(isolated_logger, str(log_file))
    isolated_logger.info("next run")
    detach_log_file(isolated_logger, handler)

    content = log_file.read_text(encoding="utf-8")
    assert content.startswith("2026-01-01 00:00:00 - INFO: previous run\n")
    assert "INFO: next run" in content


def test_oversized_log_is_rotated_to_old_suffix(tmp_path, isolated_logger):
    log_file = tmp_path / "deploy.log"
    log_file.write_text("x" * 200, encoding="utf-8")

    handler = attach_log_file(isolated_logger, str(log_file), max_bytes=100)
    isolated_logger.info("fresh entry")
    detach_log_file(isolated_logger, handler)

    rotated = tmp_path / "deploy.log.old"
    assert rotated.read_text(encoding="utf-8") == "x" * 200
    assert log_file.read_text(encoding="utf-8").strip().endswith("INFO: fresh entry")
    assert stat.S_IMODE(os.stat(log_file).st_mode) == 0o644


def test_unwritable_log_location_raises_actionable_error(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("", encoding="utf-8")

    with pytest.raises(LogSetupFailed, match="--log-file"):
        DeployLogHandler(str(blocker / "deploy.log"))


def test_formatter_includes_exception_text():
    formatter = DeployLogFormatter()
    try:
        raise ValueError("kaput")
    except ValueError:
        record = logging.LogRecord(
            "nextdeploy", logging.ERROR, __file__, 1, "Unexpected error", None, sys.exc_info()
        )

    formatted = formatter.format(record)

    assert " - ERROR: Unexpected error" in formatted
    assert "ValueError: kaput" in formatted
