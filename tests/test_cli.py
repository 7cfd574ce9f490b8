"""Tests for the command line commands."""

from __future__ import annotations

import json
import logging
import os
import sys
from pathlib import Path

import pytest

from caffeinekit.cli import execute_command, main
from caffeinekit.config import effective_settings
from caffeinekit.log import set_log_level
from caffeinekit.process_utils import CAFFEINATE_LOGGER_NAME


def test_args_prints_argument_vector(
    fake_caffeinate: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture
) -> None:
    """The translated argv is printed with the executable first."""
    monkeypatch.setattr(effective_settings, "SAFETY_ENABLED", True)
    assert execute_command("args", ["-d", "-t", "5"]) == 0
    out = capsys.readouterr().out.split()
    assert out == [str(fake_caffeinate), "-d", "-t", "5", "-w", str(os.getpid())]


def test_args_defaults_when_empty(fake_caffeinate: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture) -> None:
    """No arguments means the default options."""
    monkeypatch.setattr(effective_settings, "SAFETY_ENABLED", False)
    assert execute_command("args", []) == 0
    assert capsys.readouterr().out.split() == [str(fake_caffeinate), "-i", "-d"]


def test_invalid_arguments_are_a_usage_error(fake_caffeinate: Path, capsys: pytest.CaptureFixture) -> None:
    """Unparseable arguments exit with status 2."""
    assert execute_command("args", ["-z"]) == 2
    assert "invalid caffeinate arguments" in capsys.readouterr().out


def test_duplicate_arguments_are_reported(fake_caffeinate: Path, capsys: pytest.CaptureFixture) -> None:
    """Caffeination errors are printed and exit with status 1."""
    assert execute_command("args", ["-t", "1", "-t", "2"]) == 1
    assert "more than once" in capsys.readouterr().out


def test_check_reports_executable(fake_caffeinate: Path, capsys: pytest.CaptureFixture) -> None:
    assert execute_command("check", []) == 0
    assert "found at" in capsys.readouterr().out


def test_check_reports_missing_executable(missing_caffeinate: Path, capsys: pytest.CaptureFixture) -> None:
    assert execute_command("check", []) == 1
    assert "NOT found" in capsys.readouterr().out


def test_run_returns_when_timed_run_ends(fake_caffeinate: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """'run' blocks until a timed Caffeination finishes."""
    monkeypatch.setattr(effective_settings, "RUNNER_POLL_INTERVAL", 0.05)
    assert execute_command("run", ["-i", "-t", "0.5"]) == 0


def test_run_without_executable_fails(missing_caffeinate: Path, capsys: pytest.CaptureFixture) -> None:
    assert execute_command("run", []) == 1
    assert "was not found" in capsys.readouterr().out


def test_exec_returns_command_status(fake_caffeinate: Path) -> None:
    """'exec' runs the command caffeinated and passes its exit code through."""
    code = execute_command("exec", ["-d", "--", sys.executable, "-c", "import sys; sys.exit(3)"])
    assert code == 3


def test_exec_requires_command(fake_caffeinate: Path) -> None:
    assert execute_command("exec", ["-d"]) == 2
    assert execute_command("exec", ["-d", "--"]) == 2


def test_config_set_persists(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture) -> None:
    """'config set' updates the setting and writes the overrides file."""
    overrides = tmp_path / "overrides.json"
    monkeypatch.setattr(effective_settings, "OVERRIDES_JSON_PATH", overrides)
    monkeypatch.setattr(effective_settings, "LOG_LEVEL", effective_settings.LOG_LEVEL)

    assert execute_command("config", ["set", "log_level", "warning"]) == 0
    assert json.loads(overrides.read_text())["LOG_LEVEL"] == "warning"

    assert execute_command("config", ["show"]) == 0
    assert "LOG_LEVEL = warning" in capsys.readouterr().out


def test_config_set_rejects_unknown_key(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(effective_settings, "OVERRIDES_JSON_PATH", tmp_path / "overrides.json")
    assert execute_command("config", ["set", "CAFFEINATE_PATH", "/bin/true"]) == 1


def test_unknown_command_prints_usage(capsys: pytest.CaptureFixture) -> None:
    assert execute_command("bogus", []) == 2
    assert "caffeinekit" in capsys.readouterr().out


@pytest.fixture
def restore_root_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def test_verbose_overrides_quiet_configuration(
    fake_caffeinate: Path, restore_root_logging, capsys: pytest.CaptureFixture
) -> None:
    """--verbose passes caffeinate output through and enables debug records."""
    set_log_level("warning")
    assert not logging.getLogger(CAFFEINATE_LOGGER_NAME).isEnabledFor(logging.INFO)

    assert main(["--verbose", "args", "-d"]) == 0

    assert logging.getLogger(CAFFEINATE_LOGGER_NAME).isEnabledFor(logging.INFO)
    assert logging.getLogger("caffeinekit.cli").isEnabledFor(logging.DEBUG)
    assert "Received command: args" in capsys.readouterr().out


def test_without_verbose_configured_level_is_kept(
    fake_caffeinate: Path, restore_root_logging, capsys: pytest.CaptureFixture
) -> None:
    set_log_level("warning")
    assert main(["args", "-d"]) == 0
    assert not logging.getLogger(CAFFEINATE_LOGGER_NAME).isEnabledFor(logging.INFO)
    assert "Received command" not in capsys.readouterr().out
