"""
CaffeineKit: sleep prevention through managed caffeinate subprocesses.

A Caffeination wraps one caffeinate process at a time and can be reused.
Caffeinations that intercept termination are registered with a
CaffeinationRegistry, which stops them when the host process receives a
termination signal or exits.
"""

from caffeinekit import options
from caffeinekit.options import DEFAULT_OPTS, Opt, OptKind
from caffeinekit.caffeination import Caffeination, caffeinated, unsafe_caffeinated
from caffeinekit.config import effective_settings
from caffeinekit.errors import (
    AlreadyActiveError,
    CaffeinationError,
    DuplicateOptionsError,
    DuplicateSignalAddedError,
    ExecutableNotFoundError,
    SignalError,
)
from caffeinekit.executable import caffeinate_exists, caffeinate_path
from caffeinekit.log import LogLevel, apply_configured_level, set_log_level
from caffeinekit.registry import CaffeinationRegistry, SignalTrapper, default_registry, set_default_registry

apply_configured_level(effective_settings.LOG_LEVEL)

__all__ = [
    "options",
    "DEFAULT_OPTS",
    "Opt",
    "OptKind",
    "Caffeination",
    "caffeinated",
    "unsafe_caffeinated",
    "AlreadyActiveError",
    "CaffeinationError",
    "DuplicateOptionsError",
    "DuplicateSignalAddedError",
    "ExecutableNotFoundError",
    "SignalError",
    "caffeinate_exists",
    "caffeinate_path",
    "LogLevel",
    "set_log_level",
    "CaffeinationRegistry",
    "SignalTrapper",
    "default_registry",
    "set_default_registry",
]
