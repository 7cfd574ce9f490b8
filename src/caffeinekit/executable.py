"""Locates the caffeinate executable."""

from pathlib import Path

from caffeinekit.config import effective_settings as config


def caffeinate_path() -> Path:
    """Returns the expected location of the caffeinate executable."""
    return Path(config.CAFFEINATE_PATH)


def caffeinate_exists() -> bool:
    """Whether the caffeinate executable is present at its expected location."""
    return caffeinate_path().exists()
