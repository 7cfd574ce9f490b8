import logging
import functools
import threading
import subprocess
from typing import Any, Callable, Iterable, Optional, Tuple, TypeVar

from caffeinekit import options as opt_utils
from caffeinekit.errors import AlreadyActiveError, CaffeinationError, ExecutableNotFoundError
from caffeinekit.executable import caffeinate_exists, caffeinate_path
from caffeinekit.options import DEFAULT_OPTS, Opt, OptKind
from caffeinekit.process_utils import launch_caffeinate, pid_exists
from caffeinekit.registry import CaffeinationRegistry, default_registry

log = logging.getLogger(__name__)

R = TypeVar("R")
TerminationHandler = Callable[["Caffeination"], None]


class _Run:
    """One caffeinate process and the thread that waits for it to exit."""

    def __init__(self, process: subprocess.Popen) -> None:
        self.process = process
        self.finished = threading.Event()
        self.watcher: Optional[threading.Thread] = None

    def on_watcher(self) -> bool:
        return threading.current_thread() is self.watcher


class Caffeination:
    """
    A reusable sleep-prevention session backed by a caffeinate subprocess.

    Transitions of one Caffeination are serialized by its lock. Process exit
    is observed by a watcher thread, which deregisters the Caffeination and
    then calls `termination_handler` exactly once per run.
    """

    def __init__(
        self,
        opts: Iterable[Opt] = DEFAULT_OPTS,
        safety: bool = True,
        termination_handler: Optional[TerminationHandler] = None,
        registry: Optional[CaffeinationRegistry] = None,
    ) -> None:
        """
        :param opts: The options to start with.
        :param safety: If True, caffeinate is tied to this process's lifetime and the
            Caffeination is stopped when the process receives a termination signal.
        :param termination_handler: Called with this Caffeination after each run ends.
        :param registry: The registry used for termination interception; the
            process-wide registry by default.
        """
        self._lock = threading.Lock()
        self._opts: Tuple[Opt, ...] = tuple(opts)
        self._run: Optional[_Run] = None
        self._registry = registry
        self.limit_lifetime = safety
        self._intercept_termination = safety
        self.termination_handler = termination_handler

    def __repr__(self) -> str:
        state = "active" if self.is_active else "inactive"
        return f"<Caffeination {state} opts={list(self._opts)}>"

    #* --- State ---
    @property
    def registry(self) -> CaffeinationRegistry:
        if self._registry is None:
            self._registry = default_registry()
        return self._registry

    @property
    def opts(self) -> Tuple[Opt, ...]:
        return self._opts

    @property
    def is_active(self) -> bool:
        """Whether a caffeinate process is currently running for this Caffeination."""
        run = self._run
        return run is not None and run.process.poll() is None

    @property
    def pid(self) -> Optional[int]:
        """PID of the running caffeinate process, if any."""
        run = self._run
        return run.process.pid if run is not None and self.is_active else None

    def set_opts(self, opts: Iterable[Opt]) -> bool:
        """
        Replaces the options.

        :return: True if the change applies to the next start right away, False if
            a run is in progress (the change is logged and applies after a restart).
        """
        with self._lock:
            return self._set_opts_locked(opts)

    def _set_opts_locked(self, opts: Iterable[Opt]) -> bool:
        self._opts = tuple(opts)
        if self.is_active:
            log.warning(
                "Options were changed for a Caffeination that is already ongoing. "
                "These changes will not take effect until the Caffeination is restarted."
            )
            return False
        return True

    @property
    def intercept_termination(self) -> bool:
        """Whether the Caffeination is stopped when the host receives a termination signal."""
        return self._intercept_termination

    @intercept_termination.setter
    def intercept_termination(self, value: bool) -> None:
        with self._lock:
            self._intercept_termination = value
            # A run in progress picks the change up immediately.
            if self.is_active:
                if value:
                    self.registry.register(self)
                else:
                    self.registry.deregister(self)

    #* --- Lifecycle ---
    def _check_can_start(self) -> None:
        """Ensures that no run is active and that the caffeinate executable exists."""
        if self.is_active:
            raise AlreadyActiveError()
        if not caffeinate_exists():
            raise ExecutableNotFoundError(caffeinate_path())

    def start(self, opts: Optional[Iterable[Opt]] = None) -> None:
        """
        Starts preventing sleep.

        :param opts: If given, replaces the current options before starting.
        :raises AlreadyActiveError: If a run is already active.
        :raises ExecutableNotFoundError: If caffeinate is not at its expected location.
        :raises DuplicateOptionsError: If two options share a kind.
        :raises OSError: If spawning caffeinate fails.
        """
        with self._lock:
            if opts is not None:
                self._set_opts_locked(opts)
            self._start_locked()

    def _start_locked(self) -> None:
        self._check_can_start()
        opt_utils.check_unique(self._opts)

        for opt in self._opts:
            if opt.kind is OptKind.PROCESS and not pid_exists(opt.value):
                log.warning(f"Watched process {opt.value} does not exist. The Caffeination will end immediately.")

        args = opt_utils.caffeinate_arguments(self._opts, allow_finite=True, limit_lifetime=self.limit_lifetime)
        run = _Run(launch_caffeinate(args))
        self._run = run

        # Registered before the watcher exists so a fast exit cannot leave a stale entry.
        if self._intercept_termination:
            self.registry.register(self)

        run.watcher = threading.Thread(
            target=self._watch, args=(run,), daemon=True, name=f"CaffeinationWatcher-{run.process.pid}"
        )
        run.watcher.start()

    def stop(self) -> None:
        """
        Stops the Caffeination if it is active.

        Blocks until caffeinate has exited and the termination handler has run.
        Calling this on an inactive Caffeination does nothing.
        """
        with self._lock:
            run = self._run
            if run is None or run.finished.is_set():
                return
            log.info(f"Stopping caffeinate (PID {run.process.pid}).")
            try:
                run.process.terminate()
            except ProcessLookupError:
                pass
            run.process.wait()

        if not run.on_watcher():
            run.finished.wait()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Blocks until the current run has fully finished.

        :param timeout: Maximum number of seconds to wait, or None to wait forever.
        :return: True if no run is in progress anymore, False on timeout.
        """
        run = self._run
        if run is None:
            return True
        return run.finished.wait(timeout)

    def _watch(self, run: _Run) -> None:
        """Watcher thread body: waits for exit, deregisters, then notifies."""
        returncode = run.process.wait()
        log.info(f"Caffeinate (PID {run.process.pid}) exited with code {returncode}.")
        try:
            with self._lock:
                # A newer run may already own the registration.
                if self._run is run:
                    self.registry.deregister(self)
            handler = self.termination_handler
            if handler is not None:
                try:
                    handler(self)
                except Exception as e:
                    log.error(f"Termination handler raised an error: {e}", exc_info=True)
        finally:
            run.finished.set()

    def __enter__(self) -> "Caffeination":
        self.start()
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.stop()

    #* --- Closures ---
    def closure(self, func: Callable[..., R]) -> Callable[..., R]:
        """
        Wraps `func` so that this Caffeination is active for the duration of each call.

        :raises AlreadyActiveError: If the Caffeination is already active.
        :raises ExecutableNotFoundError: If caffeinate is not at its expected location.
        """
        self._check_can_start()

        @functools.wraps(func)
        def caffeinated_call(*args, **kwargs):
            self.start()
            try:
                return func(*args, **kwargs)
            finally:
                self.stop()

        return caffeinated_call


def _bounded_opts(opts: Iterable[Opt]) -> Tuple[Opt, ...]:
    """Drops `timed` and `process`; the wrapped call bounds the run instead."""
    return tuple(opt for opt in opts if not opt.is_finite)


def caffeinated(func: Callable[..., R], opts: Iterable[Opt] = DEFAULT_OPTS) -> Callable[..., R]:
    """
    Wraps `func` in its own Caffeination, active for the duration of each call.

    Only flag options are honored; `timed` and `process` are ignored.

    :raises ExecutableNotFoundError: If caffeinate is not at its expected location.
    """
    if not caffeinate_exists():
        raise ExecutableNotFoundError(caffeinate_path())
    bounded = _bounded_opts(opts)

    @functools.wraps(func)
    def caffeinated_call(*args, **kwargs):
        caffeination = Caffeination(opts=bounded)
        caffeination.start()
        try:
            return func(*args, **kwargs)
        finally:
            caffeination.stop()

    return caffeinated_call


def unsafe_caffeinated(func: Callable[..., R], opts: Iterable[Opt] = DEFAULT_OPTS) -> Callable[..., R]:
    """
    Like `caffeinated`, but never fails because of caffeinate.

    If the Caffeination cannot start, a warning is logged and `func` runs
    without sleep prevention. Check `caffeinate_exists()` beforehand if the
    protection matters.
    """
    bounded = _bounded_opts(opts)

    @functools.wraps(func)
    def caffeinated_call(*args, **kwargs):
        caffeination = Caffeination(opts=bounded)
        try:
            caffeination.start()
        except (CaffeinationError, OSError) as e:
            log.warning(f"Unsafe closure could not start caffeinate ({e}). Running without it.")
        try:
            return func(*args, **kwargs)
        finally:
            caffeination.stop()

    return caffeinated_call
