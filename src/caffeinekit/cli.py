"""
Command line entry point.

    caffeinekit [--verbose] run [caffeinate args]
    caffeinekit [--verbose] exec [caffeinate args] -- command [args...]
    caffeinekit args [caffeinate args]
    caffeinekit check
    caffeinekit config show | set KEY VALUE
"""
import sys
import logging
import subprocess
from typing import List, Optional

import setproctitle

from caffeinekit import options as opt_utils
from caffeinekit.caffeination import Caffeination
from caffeinekit.config import effective_settings as config
from caffeinekit.errors import CaffeinationError
from caffeinekit.executable import caffeinate_exists, caffeinate_path
from caffeinekit.log import LogLevel, apply_configured_level, set_log_level, setup_logging
from caffeinekit.registry import default_registry

log = logging.getLogger(__name__)

USAGE = __doc__


def _parse_opts(args: List[str]) -> Optional[List[opt_utils.Opt]]:
    """Parses caffeinate arguments, falling back to the defaults when none are given."""
    if not args:
        return list(opt_utils.DEFAULT_OPTS)
    opts = opt_utils.parse_arguments(args)
    if opts is None:
        print(f"Error: invalid caffeinate arguments: {' '.join(args)}")
    return opts


def _run(args: List[str]) -> int:
    """Keeps the machine awake until the options end the run or the process is interrupted."""
    opts = _parse_opts(args)
    if opts is None:
        return 2

    caffeination = Caffeination(opts=opts, safety=config.SAFETY_ENABLED)
    caffeination.start()
    log.info(f"Caffeinated with {' '.join(opt_utils.caffeinate_arguments(opts))}. Press Ctrl+C to stop.")
    while not caffeination.wait(config.RUNNER_POLL_INTERVAL):
        pass
    log.info("Caffeination finished.")
    return 0


def _exec(args: List[str]) -> int:
    """Runs a command while caffeinated and returns its exit code."""
    if "--" not in args:
        print("Usage: exec [caffeinate args] -- command [args...]")
        return 2
    split = args.index("--")
    command = args[split + 1:]
    if not command:
        print("Error: no command given after '--'.")
        return 2
    opts = _parse_opts(args[:split])
    if opts is None:
        return 2

    caffeination = Caffeination(opts=opts, safety=config.SAFETY_ENABLED)
    return caffeination.closure(subprocess.call)(command)


def _args(args: List[str]) -> int:
    """Prints the argument vector that would be passed to caffeinate."""
    opts = _parse_opts(args)
    if opts is None:
        return 2
    opt_utils.check_unique(opts)
    argv = [str(caffeinate_path())] + opt_utils.caffeinate_arguments(opts, limit_lifetime=config.SAFETY_ENABLED)
    print(" ".join(argv))
    return 0


def _check(args: List[str]) -> int:
    """Reports whether the caffeinate executable is present."""
    if caffeinate_exists():
        print(f"caffeinate found at {caffeinate_path()}.")
        return 0
    print(f"caffeinate NOT found at {caffeinate_path()}.")
    return 1


def _config_show() -> None:
    print("\n--- Current CaffeineKit Configuration ---")
    print(f"(Overrides file: {config.OVERRIDES_JSON_PATH})")
    for key, value in config.as_dict().items():
        print(f"  {key} = {value}")
    print("-----------------------------------------\n")


def _config_set(args: List[str]) -> int:
    if len(args) < 2:
        print("Usage: config set <SETTING_NAME> <VALUE>")
        return 2
    key, value_str = args[0].upper(), " ".join(args[1:])
    success, message = config.update_setting(key, value_str)
    print(message)
    if success and key == "LOG_LEVEL":
        apply_configured_level(config.LOG_LEVEL)
    return 0 if success else 1


def _config(args: List[str]) -> int:
    """Handles the 'config' sub-commands."""
    sub_command = args[0].lower() if args else "show"
    if sub_command == "show":
        _config_show()
        return 0
    if sub_command == "set":
        return _config_set(args[1:])
    print("\nConfig Command Help:")
    print("  config show                - Display all modifiable settings.")
    print("  config set KEY VALUE       - Change and persist a setting.")
    return 0 if sub_command == "help" else 2


COMMANDS = {
    "run": _run,
    "exec": _exec,
    "args": _args,
    "check": _check,
    "config": _config,
}


def execute_command(command: str, args: List[str]) -> int:
    """
    Runs a single command.

    :param command: The command name.
    :param args: The remaining command line arguments.
    :return: The process exit code.
    """
    handler = COMMANDS.get(command)
    if handler is None:
        print(USAGE)
        return 0 if command in ("help", "-h", "--help") else 2
    try:
        return handler(args)
    except CaffeinationError as e:
        print(f"Error: {e}")
        return 1
    except OSError as e:
        log.error(f"Could not run '{command}': {e}")
        return 1


def main(argv: Optional[List[str]] = None) -> int:
    """The main entry point for the command line."""
    argv = list(sys.argv[1:] if argv is None else argv)

    # Only flags before '--' belong to us; the rest is the executed command.
    own_args = argv[:argv.index("--")] if "--" in argv else argv
    verbose = "--verbose" in own_args
    if verbose:
        argv.remove("--verbose")
        # Passes caffeinate output through and shows our own debug records.
        set_log_level(LogLevel.INFO)
        logging.getLogger("caffeinekit").setLevel(logging.DEBUG)
    setup_logging(logging.DEBUG if verbose else logging.INFO)

    if not argv:
        print(USAGE)
        return 2

    setproctitle.setproctitle(config.PROCESS_TITLE)
    command, args = argv[0].lower(), argv[1:]
    if command in ("run", "exec"):
        # Traps have to be installed from the main thread.
        default_registry().activate()

    log.debug(f"Received command: {command}, args: {args}")
    return execute_command(command, args)
