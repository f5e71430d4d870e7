import asyncio
import logging
from typing import Callable, Optional

from .command import Command
from .deputy import Deputy
from .errors import ErrorSource
from .util import drain_async, make_tees, reduce_outcome

logger = logging.getLogger(__name__)


async def supervise(deputy: Deputy, command: Command) -> None:
    """The asyncio counterpart of Deputy.run. Same errors, same guarantees."""
    stdout, stderr = make_tees(deputy.errors, deputy.stdout_log, deputy.stderr_log, command)
    await command.start_async()
    drains = [
        asyncio.create_task(drain_async(command.stdout_pipe, stdout)),
        asyncio.create_task(drain_async(command.stderr_pipe, stderr)),
    ]
    waiter = asyncio.create_task(command.wait_async())
    try:
        done, _ = await asyncio.wait([waiter], timeout=deputy.timeout or None)
        timed_out = waiter not in done
        if timed_out:
            logger.debug(
                "pid=%d exceeded timeout of %ss, killing", command.pid, deputy.timeout
            )
            command.kill()
        exit_code = await waiter
        await asyncio.gather(*drains)
    except BaseException:
        # Cancelled or failed: do not leave the process running. The tasks
        # finish on their own once its pipes close.
        command.kill()
        raise

    logger.debug("pid=%d finished returncode=%s", command.pid, exit_code)
    error = reduce_outcome(
        args=command.args,
        exit_code=exit_code,
        timed_out=timed_out,
        timeout=deputy.timeout,
        errors=deputy.errors,
        stdout=stdout,
        stderr=stderr,
    )
    if error is not None:
        raise error


async def run_async(
    command: Command,
    timeout: float = 0,
    errors: ErrorSource = ErrorSource.NONE,
    stdout_log: Optional[Callable[[str], None]] = None,
    stderr_log: Optional[Callable[[str], None]] = None,
) -> None:
    """Run a process asynchronously under a Deputy built from the arguments."""
    deputy = Deputy(
        timeout=timeout, errors=errors, stdout_log=stdout_log, stderr_log=stderr_log
    )
    await supervise(deputy, command)
