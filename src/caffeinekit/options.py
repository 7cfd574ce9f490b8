"""
Options for a Caffeination and their translation to and from the argument
grammar of the caffeinate executable.

    -m          disk        prevent disk idle sleep
    -d          display     prevent display sleep
    -i          idle        prevent system idle sleep
    -s          system      prevent system sleep (AC power only)
    -u          user        declare user activity
    -t SECONDS  timed       stop after SECONDS
    -w PID      process     stop when PID exits
"""
import enum
import math
import numbers
import os
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Union

from caffeinekit.errors import DuplicateOptionsError


class OptKind(enum.Enum):
    DISK = "disk"
    DISPLAY = "display"
    IDLE = "idle"
    SYSTEM = "system"
    USER = "user"
    PROCESS = "process"
    TIMED = "timed"


_FLAGS = {
    OptKind.DISK: "-m",
    OptKind.DISPLAY: "-d",
    OptKind.IDLE: "-i",
    OptKind.SYSTEM: "-s",
    OptKind.USER: "-u",
}
_FLAG_KINDS = {flag: kind for kind, flag in _FLAGS.items()}
_TIMED_FLAG = "-t"
_PROCESS_FLAG = "-w"

# Options bounded in time; they end a run on their own.
FINITE_KINDS = frozenset({OptKind.PROCESS, OptKind.TIMED})


def _format_seconds(seconds: float) -> str:
    return str(int(seconds)) if float(seconds).is_integer() else str(seconds)


@dataclass(frozen=True)
class Opt:
    """
    A single sleep-prevention directive.

    Flag options carry no value. `process` carries the PID to watch and
    `timed` carries a finite non-negative number of seconds.
    """
    kind: OptKind
    value: Optional[Union[int, float]] = None

    def __post_init__(self) -> None:
        if self.kind is OptKind.TIMED:
            if (
                not isinstance(self.value, numbers.Real)
                or isinstance(self.value, bool)
                or not math.isfinite(self.value)
                or self.value < 0
            ):
                raise ValueError(f"timed() requires a finite non-negative number of seconds, got {self.value!r}")
        elif self.kind is OptKind.PROCESS:
            if not isinstance(self.value, int) or isinstance(self.value, bool) or self.value < 0:
                raise ValueError(f"process() requires a non-negative integer PID, got {self.value!r}")
        elif self.value is not None:
            raise ValueError(f"Option '{self.kind.value}' does not accept a value")

    def __repr__(self) -> str:
        if self.value is None:
            return f"Opt.{self.kind.value}"
        return f"Opt.{self.kind.value}({self.value})"

    @property
    def argument_list(self) -> List[str]:
        """The raw argument tokens this option contributes to caffeinate."""
        if self.kind is OptKind.TIMED:
            return [_TIMED_FLAG, _format_seconds(self.value)]
        if self.kind is OptKind.PROCESS:
            return [_PROCESS_FLAG, str(self.value)]
        return [_FLAGS[self.kind]]

    @property
    def is_finite(self) -> bool:
        return self.kind in FINITE_KINDS

    @classmethod
    def from_argument(cls, token: str) -> Optional["Opt"]:
        """
        Returns the flag option matching a single argument token.

        Options that take a value (`-t`, `-w`) must use `from_arguments`.

        :param token: A single caffeinate argument such as '-d'.
        :return: The matching option, or None if the token is not a flag.
        """
        kind = _FLAG_KINDS.get(token)
        return cls(kind) if kind is not None else None

    @classmethod
    def from_arguments(cls, tokens: Sequence[str]) -> Optional["Opt"]:
        """
        Returns the option for a single argument and, if needed, its value.

        None is returned for an unknown argument, a value passed to a flag
        (['-m', '42']), a missing value (['-w']) or more than one option
        (['-d', '-m']); use `parse_arguments` for the latter.
        """
        if len(tokens) == 1:
            return cls.from_argument(tokens[0])
        if len(tokens) == 2:
            return _valued_option(tokens[0], tokens[1])
        return None


def _valued_option(flag: str, raw: str) -> Optional[Opt]:
    try:
        if flag == _TIMED_FLAG:
            return timed(float(raw))
        if flag == _PROCESS_FLAG:
            return process(int(raw))
    except ValueError:
        return None
    return None


def parse_arguments(tokens: Sequence[str]) -> Optional[List[Opt]]:
    """
    Parses raw caffeinate arguments into options.

    :param tokens: The argument tokens, e.g. ['-d', '-t', '30'].
    :return: The options in order, or None if any token is unknown, a value
        is missing or invalid, or a value follows a flag that takes none.
    """
    opts: List[Opt] = []
    i = 0
    while i < len(tokens):
        token = tokens[i]
        if token in (_TIMED_FLAG, _PROCESS_FLAG):
            if i + 1 >= len(tokens):
                return None
            opt = _valued_option(token, tokens[i + 1])
            i += 1
        else:
            opt = Opt.from_argument(token)
        if opt is None:
            return None
        opts.append(opt)
        i += 1
    return opts


def find_duplicate_kind(opts: Iterable[Opt]) -> Optional[OptKind]:
    """Returns the first kind that repeats, in configuration order."""
    seen = set()
    for opt in opts:
        if opt.kind in seen:
            return opt.kind
        seen.add(opt.kind)
    return None


def check_unique(opts: Iterable[Opt]) -> None:
    """Raises DuplicateOptionsError if two options share a kind."""
    kind = find_duplicate_kind(opts)
    if kind is not None:
        raise DuplicateOptionsError(kind)


def caffeinate_arguments(opts: Iterable[Opt], allow_finite: bool = True, limit_lifetime: bool = False) -> List[str]:
    """
    Builds the argument vector for caffeinate.

    :param opts: The options to translate.
    :param allow_finite: If False, `timed` and `process` options are dropped.
    :param limit_lifetime: If True and no `process` option survives, caffeinate
        is told to watch this process so it exits along with it.
    :return: The argument tokens, without the executable path.
    """
    args: List[str] = []
    watching = False
    for opt in opts:
        if opt.is_finite and not allow_finite:
            continue
        if opt.kind is OptKind.PROCESS:
            watching = True
        args += opt.argument_list

    if limit_lifetime and not watching:
        args += [_PROCESS_FLAG, str(os.getpid())]
    return args


#* --- Constructors ---
disk = Opt(OptKind.DISK)
display = Opt(OptKind.DISPLAY)
idle = Opt(OptKind.IDLE)
system = Opt(OptKind.SYSTEM)
user = Opt(OptKind.USER)


def process(pid: int) -> Opt:
    """Ends the Caffeination when the process with `pid` exits."""
    return Opt(OptKind.PROCESS, pid)


def timed(seconds: float) -> Opt:
    """Ends the Caffeination after `seconds`."""
    return Opt(OptKind.TIMED, seconds)


DEFAULT_OPTS = (idle, display)
