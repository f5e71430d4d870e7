import dataclasses
import logging
from concurrent import futures
from typing import Callable, Optional

from .command import Command
from .errors import ErrorSource
from .util import drain_sync, make_tees, reduce_outcome

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class Deputy:
    """
    Configuration for supervising one process.

    timeout is in seconds; 0 means no timeout. errors selects which stream,
    if any, is attached to the RunError raised on failure. stdout_log and
    stderr_log are called once per line of output, from a reader thread, so
    they must not block for long.
    """

    timeout: float = 0
    errors: ErrorSource = ErrorSource.NONE
    stdout_log: Optional[Callable[[str], None]] = None
    stderr_log: Optional[Callable[[str], None]] = None

    def __post_init__(self):
        if self.timeout < 0:
            raise ValueError(f"timeout must not be negative, got {self.timeout}")
        if not isinstance(self.errors, ErrorSource):
            raise TypeError(f"errors must be an ErrorSource, got {self.errors!r}")

    def replace(self, **changes) -> "Deputy":
        return dataclasses.replace(self, **changes)

    def run(self, command: Command) -> None:
        """
        Starts command and waits for it to finish, killing it once the timeout
        elapses. Returns None if the process exits with status 0.

        Raises StartError if the process cannot be started, and RunError if it
        times out or exits with a non-zero status.
        """
        stdout, stderr = make_tees(self.errors, self.stdout_log, self.stderr_log, command)
        command.start()
        # stdout and stderr are drained on their own threads. Reading them
        # one after the other can deadlock when the process fills one pipe
        # while we wait on the other.
        with futures.ThreadPoolExecutor(max_workers=3, thread_name_prefix="deputy") as pool:
            try:
                drains = [
                    pool.submit(drain_sync, command.stdout_pipe, stdout),
                    pool.submit(drain_sync, command.stderr_pipe, stderr),
                ]
                waiter = pool.submit(command.wait)
                done, _ = futures.wait([waiter], timeout=self.timeout or None)
                timed_out = waiter not in done
                if timed_out:
                    logger.debug(
                        "pid=%d exceeded timeout of %ss, killing", command.pid, self.timeout
                    )
                    command.kill()
                # Even after a kill, reap the process and let the drains finish
                # so that the capture buffers are complete.
                exit_code = waiter.result()
                for drain in drains:
                    drain.result()
            except BaseException:
                command.kill()
                raise

        logger.debug("pid=%d finished returncode=%s", command.pid, exit_code)
        error = reduce_outcome(
            args=command.args,
            exit_code=exit_code,
            timed_out=timed_out,
            timeout=self.timeout,
            errors=self.errors,
            stdout=stdout,
            stderr=stderr,
        )
        if error is not None:
            raise error


def run(
    command: Command,
    timeout: float = 0,
    errors: ErrorSource = ErrorSource.NONE,
    stdout_log: Optional[Callable[[str], None]] = None,
    stderr_log: Optional[Callable[[str], None]] = None,
) -> None:
    """Shorthand for Deputy(...).run(command)."""
    Deputy(
        timeout=timeout, errors=errors, stdout_log=stdout_log, stderr_log=stderr_log
    ).run(command)
