"""
Logging module for CaffeineKit.
This module provides verbosity control and console logging setup.
"""

from .setup import LogLevel, apply_configured_level, set_log_level, setup_logging

__all__ = ["LogLevel", "apply_configured_level", "set_log_level", "setup_logging"]
