"""Shared fixtures: a fake caffeinate executable and isolated registries."""

from __future__ import annotations

import sys
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List

import pytest

from caffeinekit import registry as registry_module
from caffeinekit.config import effective_settings
from caffeinekit.log import LogLevel, set_log_level
from caffeinekit.registry import CaffeinationRegistry

# Honors -t and -w like caffeinate and records its arguments next to itself.
FAKE_CAFFEINATE_BODY = '''
import os
import sys
import time
from pathlib import Path

args = sys.argv[1:]
record = Path(__file__).with_name("args-%d" % os.getpid())
record.with_suffix(".tmp").write_text(" ".join(args))
os.replace(str(record.with_suffix(".tmp")), str(record))
print("fake caffeinate running with: " + " ".join(args), flush=True)

deadline = None
watched = None
i = 0
while i < len(args):
    if args[i] == "-t":
        deadline = time.monotonic() + float(args[i + 1])
        i += 1
    elif args[i] == "-w":
        watched = int(args[i + 1])
        i += 1
    i += 1

while True:
    if deadline is not None and time.monotonic() >= deadline:
        break
    if watched is not None:
        try:
            os.kill(watched, 0)
        except ProcessLookupError:
            break
        except PermissionError:
            pass
    time.sleep(0.02)
'''


def wait_for(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
    """Polls `predicate` until it holds or `timeout` elapses."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


def recorded_args(fake: Path, pid: int) -> List[str]:
    """Arguments the fake caffeinate with `pid` was started with."""
    args_file = fake.with_name(f"args-{pid}")
    assert wait_for(args_file.exists)
    return args_file.read_text().split()


class ExitRecorder:
    """Stands in for process termination after a trapped signal."""

    def __init__(self) -> None:
        self.signals: List[int] = []
        self.called = threading.Event()

    def __call__(self, signum: int) -> None:
        self.signals.append(signum)
        self.called.set()


@dataclass
class RegistryHarness:
    registry: CaffeinationRegistry
    exits: ExitRecorder
    installed: Dict[int, Callable] = field(default_factory=dict)


def make_harness() -> RegistryHarness:
    exits = ExitRecorder()
    installed: Dict[int, Callable] = {}
    registry = CaffeinationRegistry(
        installer=lambda signum, handler: installed.__setitem__(signum, handler),
        exit_func=exits,
        hook_atexit=False,
    )
    return RegistryHarness(registry=registry, exits=exits, installed=installed)


@pytest.fixture
def harness() -> RegistryHarness:
    return make_harness()


@pytest.fixture(autouse=True)
def isolated_default_registry(monkeypatch: pytest.MonkeyPatch) -> RegistryHarness:
    """Keeps the process-wide registry from installing real traps in the test process."""
    default = make_harness()
    monkeypatch.setattr(registry_module, "_default_registry", default.registry)
    return default


@pytest.fixture(autouse=True)
def default_log_level():
    set_log_level(LogLevel.INFO)
    yield
    set_log_level(LogLevel.INFO)


@pytest.fixture
def fake_caffeinate(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Points the executable locator at a fake caffeinate script."""
    path = tmp_path / "caffeinate"
    path.write_text(f"#!{sys.executable}\n{FAKE_CAFFEINATE_BODY}")
    path.chmod(0o755)
    monkeypatch.setattr(effective_settings, "CAFFEINATE_PATH", path)
    return path


@pytest.fixture
def missing_caffeinate(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    path = tmp_path / "missing" / "caffeinate"
    monkeypatch.setattr(effective_settings, "CAFFEINATE_PATH", path)
    return path
