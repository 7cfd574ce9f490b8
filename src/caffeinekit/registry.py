"""
Crash safety for Caffeinations.

A CaffeinationRegistry tracks every active Caffeination that intercepts
termination. Signal traps are process-wide: every registry using the same
installer shares one SignalTrapper, so a signal is trapped only once no
matter how many registries are activated. The trap itself only queues the
signal number; a dispatcher thread stops the Caffeinations of every
subscribed registry and then ends the process.
"""
import os
import queue
import atexit
import signal
import logging
import threading
from typing import TYPE_CHECKING, Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple

from caffeinekit.config import effective_settings as config
from caffeinekit.errors import DuplicateSignalAddedError

if TYPE_CHECKING:
    from caffeinekit.caffeination import Caffeination

log = logging.getLogger(__name__)

SignalHandler = Callable[[int, Any], None]
Installer = Callable[[int, SignalHandler], Any]


def default_signals() -> List[int]:
    """The configured termination signals available on this platform."""
    return [int(getattr(signal, name)) for name in config.TRAPPED_SIGNAL_NAMES if hasattr(signal, name)]


def terminate_host(signum: int) -> None:
    """
    Ends the process after a trapped signal.

    This runs on the dispatcher thread, where neither re-raising the signal
    with its default disposition nor calling a previously installed handler
    is possible (`signal.signal` only works on the main thread). The process
    therefore exits with status 128 + signum, the shell convention for death
    by signal, without running atexit handlers or pending `finally` blocks.
    Logging is flushed first. Pass a different `exit_func` to
    CaffeinationRegistry to change this.
    """
    logging.shutdown()
    os._exit(128 + signum)


class SignalTrapper:
    """
    Owns the traps installed through one installer and fans trapped signals
    out to every subscribed registry.

    A signal can be trapped only once, and traps are never removed.
    """

    def __init__(self, installer: Installer = signal.signal) -> None:
        self._installer = installer
        self._lock = threading.Lock()
        self._pending: "queue.SimpleQueue[int]" = queue.SimpleQueue()
        self._dispatcher: Optional[threading.Thread] = None
        self._subscriptions: List[Tuple["CaffeinationRegistry", FrozenSet[int]]] = []
        self.trapped_signals: List[int] = []

    def is_trapped(self, signum: int) -> bool:
        return int(signum) in self.trapped_signals

    def _install(self, signum: int) -> None:
        self._installer(signum, self.handle_signal)
        self.trapped_signals.append(signum)
        if self._dispatcher is None:
            self._dispatcher = threading.Thread(
                target=self._dispatch_loop, daemon=True, name="CaffeinationSignalDispatcher"
            )
            self._dispatcher.start()
        log.debug(f"Trapped signal {signum}.")

    def add_signal(self, signum: int) -> None:
        """
        Traps `signum`.

        :raises DuplicateSignalAddedError: If the signal is already trapped.
        :raises ValueError: If called outside the main thread (signal.signal restriction).
        """
        signum = int(signum)
        with self._lock:
            if signum in self.trapped_signals:
                raise DuplicateSignalAddedError(signum)
            self._install(signum)

    def ensure_trapped(self, signals: Iterable[int]) -> None:
        """Traps every signal in `signals` that is not trapped yet."""
        with self._lock:
            for signum in signals:
                if int(signum) not in self.trapped_signals:
                    self._install(int(signum))

    def subscribe(self, registry: "CaffeinationRegistry", signals: Iterable[int]) -> None:
        """Routes `signals` to `registry`. Subscribing twice keeps the first subscription."""
        with self._lock:
            if any(subscribed is registry for subscribed, _ in self._subscriptions):
                return
            self._subscriptions.append((registry, frozenset(int(s) for s in signals)))

    def subscribers(self, signum: int) -> List["CaffeinationRegistry"]:
        """The registries that receive `signum`, in subscription order."""
        with self._lock:
            return [registry for registry, signals in self._subscriptions if signum in signals]

    def handle_signal(self, signum: int, frame: Any = None) -> None:
        """The installed trap. Only queues the signal for the dispatcher thread."""
        self._pending.put(signum)

    def _dispatch_loop(self) -> None:
        while True:
            signum = self._pending.get()
            registries = self.subscribers(signum)
            log.warning(
                f"Signal {signum} received. Stopping "
                f"{sum(len(registry) for registry in registries)} active Caffeination(s)."
            )
            for registry in registries:
                registry.stop_all()

            exits: List[Callable[[int], None]] = []
            for registry in registries:
                if not any(registry.exit_func is seen for seen in exits):
                    exits.append(registry.exit_func)
            for exit_func in exits:
                exit_func(signum)


_trappers: Dict[Any, SignalTrapper] = {}
_trappers_lock = threading.Lock()


def trapper_for(installer: Installer = signal.signal) -> SignalTrapper:
    """Returns the process-wide trapper for `installer`, creating it on first use."""
    with _trappers_lock:
        trapper = _trappers.get(installer)
        if trapper is None:
            trapper = _trappers[installer] = SignalTrapper(installer)
        return trapper


class CaffeinationRegistry:
    """
    Tracks active Caffeinations and stops them all when the host is terminated.

    Membership is identity based. The membership lock is never held while a
    Caffeination is being stopped.
    """

    def __init__(
        self,
        signals: Optional[Iterable[int]] = None,
        installer: Installer = signal.signal,
        exit_func: Callable[[int], None] = terminate_host,
        hook_atexit: bool = True,
    ) -> None:
        """
        :param signals: Signals to trap on activation; defaults to the configured set.
        :param installer: Function installing a signal handler, `signal.signal` by default.
            Registries sharing an installer share its traps.
        :param exit_func: Called with the signal number once every Caffeination has stopped.
        :param hook_atexit: If True, Caffeinations are also stopped at interpreter exit.
        """
        self._sessions: Dict[int, "Caffeination"] = {}
        self._lock = threading.Lock()
        self._signals = [int(s) for s in signals] if signals is not None else default_signals()
        self.exit_func = exit_func
        self._hook_atexit = hook_atexit
        self.trapper = trapper_for(installer)

        self._activation_lock = threading.Lock()
        self._atexit_hooked = False
        self._activated = False

    #* --- Activation ---
    @property
    def activated(self) -> bool:
        return self._activated

    def activate(self) -> None:
        """
        Installs the signal traps not installed yet and subscribes to them.

        Calling this more than once is harmless. Traps must be installed from
        the main thread; elsewhere a ValueError is raised by the installer.
        """
        with self._activation_lock:
            if self._activated:
                return
            if self._hook_atexit and not self._atexit_hooked:
                atexit.register(self.stop_all)
                self._atexit_hooked = True
            self.trapper.ensure_trapped(self._signals)
            self.trapper.subscribe(self, self._signals)
            self._activated = True
            log.debug(f"Caffeination registry active, trapping signals {self._signals}.")

    def _ensure_activated(self) -> None:
        if self._activated:
            return
        try:
            self.activate()
        except ValueError as e:
            log.warning(
                f"Could not install termination traps ({e}). "
                "Caffeinations will still be stopped at interpreter exit."
            )

    #* --- Membership ---
    def register(self, session: "Caffeination") -> None:
        """Adds a Caffeination unless that same object is already registered."""
        self._ensure_activated()
        with self._lock:
            if id(session) in self._sessions:
                return
            self._sessions[id(session)] = session

    def deregister(self, session: "Caffeination") -> None:
        """Removes a Caffeination if it is registered."""
        with self._lock:
            self._sessions.pop(id(session), None)

    def __contains__(self, session: object) -> bool:
        with self._lock:
            return self._sessions.get(id(session)) is session

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    @property
    def sessions(self) -> List["Caffeination"]:
        """A snapshot of the registered Caffeinations."""
        with self._lock:
            return list(self._sessions.values())

    #* --- Shutdown ---
    def stop_all(self) -> None:
        """Stops every registered Caffeination, one after the other."""
        for session in self.sessions:
            try:
                session.stop()
            except Exception as e:
                log.error(f"Failed to stop {session!r}: {e}", exc_info=True)


_default_registry: Optional[CaffeinationRegistry] = None
_default_registry_lock = threading.Lock()


def default_registry() -> CaffeinationRegistry:
    """Returns the process-wide registry, creating it on first use."""
    global _default_registry
    with _default_registry_lock:
        if _default_registry is None:
            _default_registry = CaffeinationRegistry()
        return _default_registry


def set_default_registry(registry: CaffeinationRegistry) -> None:
    """Replaces the process-wide registry. Meant for application entry points."""
    global _default_registry
    with _default_registry_lock:
        _default_registry = registry
