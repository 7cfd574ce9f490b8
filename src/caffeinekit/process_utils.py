import sys
import psutil
import logging
import threading
import subprocess
from typing import IO, List

from caffeinekit.executable import caffeinate_path

log = logging.getLogger(__name__)

# Subprocess output is routed through loggers under this prefix.
PROC_LOGGER_PREFIX = "proc."
CAFFEINATE_LOGGER_NAME = PROC_LOGGER_PREFIX + "caffeinate"


#* --- Process Status ---
def pid_exists(pid: int) -> bool:
    """A wrapper for psutil.pid_exists for easy testing/mocking if needed."""
    return psutil.pid_exists(pid)


#* --- Process Output ---
def _read_pipe(pipe: IO[bytes], name: str, level: int) -> None:
    """Target function for reader threads. Reads and logs lines from a subprocess pipe."""
    proc_logger = logging.getLogger(f"{PROC_LOGGER_PREFIX}{name}")
    try:
        for line_bytes in iter(pipe.readline, b""):
            line = line_bytes.decode("utf-8", errors="replace").strip()
            if not line:
                continue
            proc_logger.log(level, f"[{name}] {line}")
    except Exception as e:
        proc_logger.debug(f"Pipe reader for {name} stream exited: {e}")
    finally:
        pipe.close()


def log_process_output(process: subprocess.Popen, name: str) -> List[threading.Thread]:
    """Starts background threads to consume and log a process's stdout/stderr."""
    readers = []
    if process.stdout:
        readers.append(threading.Thread(
            target=_read_pipe, args=(process.stdout, name, logging.INFO),
            daemon=True, name=f"{name}-stdout-{process.pid}"
        ))
    if process.stderr:
        readers.append(threading.Thread(
            target=_read_pipe, args=(process.stderr, name, logging.ERROR),
            daemon=True, name=f"{name}-stderr-{process.pid}"
        ))
    for reader in readers:
        reader.start()
    return readers


#* --- Process Creation ---
def _output_streams():
    """
    Picks stdout/stderr targets from the verbosity of the subprocess logger.

    Output nobody would see is discarded instead of piped.
    """
    proc_logger = logging.getLogger(CAFFEINATE_LOGGER_NAME)
    stdout = subprocess.PIPE if proc_logger.isEnabledFor(logging.INFO) else subprocess.DEVNULL
    stderr = subprocess.PIPE if proc_logger.isEnabledFor(logging.ERROR) else subprocess.DEVNULL
    return stdout, stderr


def launch_caffeinate(args: List[str]) -> subprocess.Popen:
    """
    Spawns caffeinate with the given arguments and starts logging its output.

    Errors raised by the spawn itself are logged and re-raised unchanged.

    :param args: The caffeinate arguments, without the executable path.
    :return: The running process.
    """
    cmd = [str(caffeinate_path()), *args]
    stdout, stderr = _output_streams()
    popen_kwargs = {}
    if sys.platform != "win32":
        popen_kwargs["start_new_session"] = True

    log.debug(f"Launching: {' '.join(cmd)}")
    try:
        p = subprocess.Popen(cmd, stdin=subprocess.DEVNULL, stdout=stdout, stderr=stderr, **popen_kwargs)
    except OSError as e:
        log.critical(f"Failed to start caffeinate: {e}", exc_info=True)
        raise

    log_process_output(p, "caffeinate")
    log.info(f"Caffeinate started with PID: {p.pid}")
    return p
