import enum
import os
from typing import List, Optional


class ErrorSource(enum.Enum):
    """Which output stream, if any, is attached to a RunError."""

    NONE = "none"
    FROM_STDOUT = "stdout"
    FROM_STDERR = "stderr"


class ErrorKind(enum.Enum):
    TIMEOUT = "timeout"
    EXIT_FAILURE = "exit_failure"


class DeputyError(Exception):
    """Base class for errors raised by deputy."""


class StartError(DeputyError):
    """
    The process could not be started at all (e.g., the executable does not
    exist or is not executable). The underlying OSError is the __cause__.
    """

    def __init__(self, args: List[str], cause: OSError):
        self.command = list(args)
        self.errno = cause.errno
        super().__init__(f"failed to start {_program(args)}: {cause.strerror or cause}")


class RunError(DeputyError):
    """
    The process ran, but either exited with a non-zero status or was killed
    after exceeding its timeout.

    exit_code is only set for ErrorKind.EXIT_FAILURE and timeout only for
    ErrorKind.TIMEOUT. captured_output is the trimmed text of the stream
    selected with ErrorSource, or None when no stream was selected.
    """

    def __init__(
        self,
        kind: ErrorKind,
        args: List[str],
        exit_code: Optional[int] = None,
        timeout: Optional[float] = None,
        captured_output: Optional[str] = None,
    ):
        self.kind = kind
        self.command = list(args)
        self.exit_code = exit_code
        self.timeout = timeout
        self.captured_output = captured_output
        super().__init__(self._message())

    def is_timeout(self) -> bool:
        return self.kind is ErrorKind.TIMEOUT

    def _message(self) -> str:
        prog = _program(self.command)
        if self.kind is ErrorKind.TIMEOUT:
            msg = f"{prog} timed out after {self.timeout or 0:g}s"
        elif self.exit_code is not None and self.exit_code < 0:
            msg = f"{prog} killed by signal {-self.exit_code}"
        else:
            msg = f"{prog} exited with status {self.exit_code}"
        # Captured output always ends the message.
        if self.captured_output:
            msg = f"{msg}: {self.captured_output}"
        return msg

    def __repr__(self):
        return (
            f"RunError(kind={self.kind.name}, exit_code={self.exit_code!r}, "
            f"captured_output={self.captured_output!r})"
        )


def _program(args: List[str]) -> str:
    if not args:
        return "process"
    return os.path.basename(str(args[0]))
