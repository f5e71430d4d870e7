import asyncio
import logging
import subprocess
from pathlib import Path
from typing import List, Mapping, Optional, Union

from typeguard import typechecked

from .errors import StartError
from .util import MAX_BYTES_PER_READ

logger = logging.getLogger(__name__)


@typechecked
class Command:
    """
    A process that has been described but not yet started.

    stdout and stderr are optional sinks: any object with a write(bytes)
    method, or a text stream such as sys.stdout or io.StringIO, which gets
    the output decoded as UTF-8. They receive everything the process writes
    to the corresponding stream, in addition to whatever Deputy does with it.

    A Command can be started once, either with start() or start_async().
    """

    def __init__(
        self,
        args: List[str],
        env: Optional[Mapping[str, str]] = None,
        cwd: Union[str, Path, None] = None,
        stdout=None,
        stderr=None,
        stdin_data: Optional[bytes] = None,
    ) -> None:
        if len(args) == 0:
            raise ValueError("Command needs at least a program to run")
        self.args = list(args)
        self.env = env
        self.cwd = cwd
        self.stdout = stdout
        self.stderr = stderr
        self.stdin_data = stdin_data
        self._proc = None

    def start(self) -> None:
        self._check_not_started()
        try:
            self._proc = subprocess.Popen(
                self.args,
                env=dict(self.env) if self.env is not None else None,
                cwd=self.cwd,
                stdin=subprocess.PIPE if self.stdin_data is not None else subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                bufsize=MAX_BYTES_PER_READ,
            )
        except OSError as exn:
            raise StartError(self.args, exn) from exn
        logger.debug("started pid=%d argv=%s", self._proc.pid, self.args[0])

    async def start_async(self) -> None:
        self._check_not_started()
        try:
            self._proc = await asyncio.create_subprocess_exec(
                *self.args,
                env=dict(self.env) if self.env is not None else None,
                cwd=self.cwd,
                stdin=asyncio.subprocess.PIPE
                if self.stdin_data is not None
                else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exn:
            raise StartError(self.args, exn) from exn
        logger.debug("started pid=%d argv=%s", self._proc.pid, self.args[0])

    @property
    def started(self) -> bool:
        return self._proc is not None

    @property
    def pid(self) -> Optional[int]:
        return self._proc.pid if self._proc is not None else None

    @property
    def returncode(self) -> Optional[int]:
        return self._proc.returncode if self._proc is not None else None

    @property
    def stdout_pipe(self):
        return self._started().stdout

    @property
    def stderr_pipe(self):
        return self._started().stderr

    def wait(self) -> int:
        """
        Feeds stdin_data, if any, then blocks until the process exits and
        returns its exit code (negative if it was killed by a signal).
        """
        p = self._started()
        if self.stdin_data is not None:
            try:
                p.stdin.write(self.stdin_data)
            except BrokenPipeError:
                # The process exited or closed stdin without reading it all.
                pass
            try:
                p.stdin.close()
            except BrokenPipeError:
                pass
        return p.wait()

    async def wait_async(self) -> int:
        p = self._started()
        if self.stdin_data is not None:
            p.stdin.write(self.stdin_data)
            try:
                await p.stdin.drain()
            except (BrokenPipeError, ConnectionResetError):
                pass
            p.stdin.close()
        return await p.wait()

    def kill(self) -> None:
        """Sends SIGKILL. Does nothing if the process has already exited."""
        p = self._started()
        if p.returncode is not None:
            return
        try:
            p.kill()
        except ProcessLookupError:
            pass

    def _started(self):
        if self._proc is None:
            raise RuntimeError("Command has not been started")
        return self._proc

    def _check_not_started(self) -> None:
        if self._proc is not None:
            raise RuntimeError("Command has already been started")

    def __repr__(self):
        return f"Command({self.args!r})"
