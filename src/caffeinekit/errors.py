"""Exceptions raised by CaffeineKit."""

from pathlib import Path


class CaffeinationError(Exception):
    """ Base class for errors related to core Caffeination functionality """


class AlreadyActiveError(CaffeinationError):
    """ Raised when start is attempted on an already-active Caffeination """
    def __init__(self, message: str = "The Caffeination is already active."):
        super().__init__(message)


class ExecutableNotFoundError(CaffeinationError):
    """ Raised when the caffeinate executable is missing from its expected path """
    def __init__(self, path: Path):
        self.path = path
        super().__init__(f"The caffeinate executable was not found at '{path}'.")


class DuplicateOptionsError(CaffeinationError):
    """ Raised when a configuration holds two options of the same kind """
    def __init__(self, kind):
        self.kind = kind
        super().__init__(f"Option '{kind.value}' was specified more than once.")


class SignalError(Exception):
    """ Base class for errors related to signal trapping """


class DuplicateSignalAddedError(SignalError):
    """ Raised when a trap is added for a signal that is already trapped """
    def __init__(self, signum: int):
        self.signum = signum
        super().__init__(f"Signal {signum} is already trapped.")
