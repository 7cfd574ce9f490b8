"""
This module contains the default configuration settings for CaffeineKit.
It defines the location of the caffeinate executable, logging verbosity,
the signals trapped for crash safety and the settings that may be
overridden at runtime.
"""

import os
import pathlib
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

#* --- Executable ---
DEFAULT_CAFFEINATE_PATH = "/usr/bin/caffeinate"
CAFFEINATE_PATH = pathlib.Path(os.getenv("CAFFEINATE_PATH", DEFAULT_CAFFEINATE_PATH))

#* --- Logging ---
# One of 'info', 'warning', 'error' or 'none'. Levels are cumulative.
LOG_LEVEL = os.getenv("CAFFEINEKIT_LOG_LEVEL", "info").lower()

#* --- Safety ---
# Default for new Caffeinations: watch the host PID and trap termination signals.
SAFETY_ENABLED = os.getenv("CAFFEINEKIT_SAFETY", "True").lower() in ('true', '1', 't')
TRAPPED_SIGNAL_NAMES = ("SIGABRT", "SIGHUP", "SIGINT", "SIGQUIT", "SIGTERM")

#* --- Command line runner ---
PROCESS_TITLE = "CaffeineKit - Runner"
RUNNER_POLL_INTERVAL = 0.5  # seconds

#* --- Runtime overrides ---
OVERRIDES_JSON_PATH = pathlib.Path(
    os.getenv("CAFFEINEKIT_OVERRIDES", str(pathlib.Path.home() / ".caffeinekit" / "overrides.json"))
)

#* --- MODIFIABLE SETTINGS (Changeable via 'config set') ---
MODIFIABLE_SETTINGS = {
    "LOG_LEVEL",
    "SAFETY_ENABLED",
    "RUNNER_POLL_INTERVAL",
}
