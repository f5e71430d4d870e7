"""Run a process under supervision: timeouts, output capture and line logging."""

import logging

from .command import Command
from .deputy import Deputy, run
from .deputy_async import run_async
from .errors import DeputyError, ErrorKind, ErrorSource, RunError, StartError
from .util import LineSplitter, Tee

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "Command",
    "Deputy",
    "run",
    "run_async",
    "DeputyError",
    "ErrorKind",
    "ErrorSource",
    "RunError",
    "StartError",
    "LineSplitter",
    "Tee",
]

__version__ = "1.0.0"
