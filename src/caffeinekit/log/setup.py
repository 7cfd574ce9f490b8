import enum
import logging
import sys
from typing import Union

from caffeinekit.process_utils import PROC_LOGGER_PREFIX

log = logging.getLogger(__name__)

# Logger trees whose verbosity is controlled by set_log_level.
PACKAGE_LOGGER_NAME = "caffeinekit"
PROC_LOGGER_NAME = PROC_LOGGER_PREFIX.rstrip(".")


class LogLevel(enum.Enum):
    """Verbosity of CaffeineKit logging. Levels are cumulative."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    NONE = "none"

    @property
    def logging_level(self) -> int:
        return {
            LogLevel.INFO: logging.INFO,
            LogLevel.WARNING: logging.WARNING,
            LogLevel.ERROR: logging.ERROR,
            LogLevel.NONE: logging.CRITICAL + 1,
        }[self]


def set_log_level(level: Union[LogLevel, str]) -> LogLevel:
    """
    Sets the verbosity of CaffeineKit and caffeinate output.

    Setting `LogLevel.INFO` also passes caffeinate's stdout through; anything
    above `LogLevel.ERROR` discards its stderr as well.

    :param level: A LogLevel or its name ('info', 'warning', 'error', 'none').
    :return: The level that was applied.
    """
    level = LogLevel(level.lower()) if isinstance(level, str) else level
    for name in (PACKAGE_LOGGER_NAME, PROC_LOGGER_NAME):
        logging.getLogger(name).setLevel(level.logging_level)
    return level


def apply_configured_level(configured: str) -> LogLevel:
    """Applies a level read from configuration, falling back to INFO if it is invalid."""
    try:
        return set_log_level(configured)
    except ValueError:
        log.warning(f"Unknown log level '{configured}' in configuration. Using 'info'.")
        return set_log_level(LogLevel.INFO)


class MainFormatter(logging.Formatter):
    """A custom formatter to handle regular logs and raw subprocess logs."""

    def format(self, record):
        # Subprocess lines are printed as they were produced.
        if record.name.startswith(PROC_LOGGER_PREFIX):
            return record.getMessage()

        original_format = self._style._fmt
        self._style._fmt = '%(asctime)s - %(levelname)-8s - [%(name)s] - %(message)s'
        formatted_message = super().format(record)
        self._style._fmt = original_format
        return formatted_message


def setup_logging(console_level: int = logging.INFO) -> None:
    """
    Configures the root logger for an application using CaffeineKit.
    Clears any previously configured handlers to prevent duplication.

    :param console_level: The logging level for the console output (e.g., logging.INFO).
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    if root_logger.hasHandlers():
        root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(MainFormatter())
    root_logger.addHandler(console_handler)
