"""Tests for verbosity control and subprocess output routing."""

from __future__ import annotations

import logging
import subprocess

import pytest

from caffeinekit.log import LogLevel, apply_configured_level, set_log_level
from caffeinekit.log.setup import MainFormatter
from caffeinekit.process_utils import CAFFEINATE_LOGGER_NAME, _output_streams


def test_info_level_pipes_both_streams() -> None:
    """At info level stdout and stderr are both captured."""
    set_log_level(LogLevel.INFO)
    assert _output_streams() == (subprocess.PIPE, subprocess.PIPE)


def test_error_level_discards_stdout() -> None:
    """At error level only stderr is captured."""
    set_log_level("error")
    assert _output_streams() == (subprocess.DEVNULL, subprocess.PIPE)


def test_none_level_discards_everything() -> None:
    """Disabling logging discards all subprocess output."""
    set_log_level(LogLevel.NONE)
    assert _output_streams() == (subprocess.DEVNULL, subprocess.DEVNULL)
    assert not logging.getLogger("caffeinekit").isEnabledFor(logging.CRITICAL)


def test_unknown_configured_level_falls_back(caplog: pytest.LogCaptureFixture) -> None:
    """A bad configured level warns and uses info."""
    assert apply_configured_level("chatty") is LogLevel.INFO
    assert "Unknown log level" in caplog.text


def test_formatter_prints_subprocess_lines_raw() -> None:
    """Subprocess output is not decorated; other records are."""
    formatter = MainFormatter()
    raw = logging.LogRecord(CAFFEINATE_LOGGER_NAME, logging.INFO, __file__, 1, "[caffeinate] hello", None, None)
    regular = logging.LogRecord("caffeinekit.caffeination", logging.WARNING, __file__, 1, "careful", None, None)
    assert formatter.format(raw) == "[caffeinate] hello"
    assert "WARNING" in formatter.format(regular)
    assert "[caffeinekit.caffeination]" in formatter.format(regular)
