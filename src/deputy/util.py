import codecs
import io
import logging
from typing import BinaryIO, Callable, List, Optional

from .errors import ErrorKind, ErrorSource, RunError

MAX_BYTES_PER_READ = 1024

logger = logging.getLogger(__name__)

LineHandler = Callable[[str], None]


class LineSplitter:
    """
    Turns a stream of byte chunks into lines. Chunk boundaries need not line
    up with line boundaries. Each line is passed to the callback without its
    terminator and with trailing whitespace removed.
    """

    def __init__(self, callback: LineHandler):
        self.callback = callback
        self._pending = bytearray()
        self._closed = False

    def feed(self, chunk: bytes) -> None:
        # Bytes already pending hold no newline; only the new chunk is scanned.
        scan_from = len(self._pending)
        self._pending.extend(chunk)
        start = 0
        while True:
            end = self._pending.find(b"\n", max(start, scan_from))
            if end == -1:
                break
            self._emit(self._pending[start:end])
            start = end + 1
        # Keep only the unterminated tail.
        del self._pending[:start]

    def close(self) -> None:
        """Flushes an unterminated final line, if there is one."""
        if self._closed:
            return
        self._closed = True
        line = _decode_line(self._pending)
        self._pending = bytearray()
        if line:
            self.callback(line)

    def _emit(self, line: bytes) -> None:
        self.callback(_decode_line(line))


def _decode_line(line: bytes) -> str:
    return bytes(line).decode("utf-8", errors="ignore").rstrip()


class TextSink:
    """
    Adapts a text stream (sys.stdout, io.StringIO) to the bytes written by a
    Tee. Output is decoded as UTF-8; a character split across two chunks is
    held back until the rest of it arrives.
    """

    def __init__(self, stream: io.TextIOBase):
        self.stream = stream
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def write(self, data: bytes) -> None:
        text = self._decoder.decode(data)
        if text:
            self.stream.write(text)

    def flush(self) -> None:
        text = self._decoder.decode(b"", final=True)
        if text:
            self.stream.write(text)
        self.stream.flush()


class Tee:
    """
    Fans out the output of one stream to a caller-supplied sink, an in-memory
    capture buffer, and a LineSplitter. Any of the three may be absent.

    If the sink or the line handler raises, the failure is logged and that
    consumer gets no more data. The other consumers are unaffected and the
    stream keeps draining, so a broken consumer cannot stall the child.
    """

    def __init__(
        self,
        name: str,
        capture: bool = False,
        line_handler: Optional[LineHandler] = None,
        sink: Optional[BinaryIO] = None,
    ):
        self.name = name
        self.capture = capture
        if isinstance(sink, io.TextIOBase):
            sink = TextSink(sink)
        self.sink = sink
        self.splitter = LineSplitter(line_handler) if line_handler is not None else None
        self.saved_bytes: List[bytes] = []
        self.bytes_read = 0

    def write(self, data: bytes) -> None:
        self.bytes_read += len(data)
        if self.capture:
            self.saved_bytes.append(data)
        if self.sink is not None:
            try:
                self.sink.write(data)
            except Exception:
                logger.warning("%s sink failed, dropping it", self.name, exc_info=True)
                self.sink = None
        if self.splitter is not None:
            try:
                self.splitter.feed(data)
            except Exception:
                logger.warning(
                    "%s line handler failed, dropping it", self.name, exc_info=True
                )
                self.splitter = None

    def close(self) -> None:
        if self.splitter is not None:
            try:
                self.splitter.close()
            except Exception:
                logger.warning(
                    "%s line handler failed, dropping it", self.name, exc_info=True
                )
                self.splitter = None
        if self.sink is not None and hasattr(self.sink, "flush"):
            try:
                self.sink.flush()
            except Exception:
                logger.warning("%s sink failed to flush", self.name, exc_info=True)

    def captured(self) -> Optional[str]:
        if not self.capture:
            return None
        return b"".join(self.saved_bytes).decode("utf-8", errors="ignore").rstrip()


def drain_sync(pipe, tee: Tee) -> int:
    """
    Reads pipe until EOF, writing every chunk to tee. Runs on its own thread.
    Returns the number of bytes read.
    """
    try:
        while True:
            chunk = pipe.read1(MAX_BYTES_PER_READ)
            if not chunk:
                break
            tee.write(chunk)
    finally:
        pipe.close()
        tee.close()
    return tee.bytes_read


async def drain_async(reader, tee: Tee) -> int:
    """See drain_sync. Reads an asyncio.StreamReader instead."""
    try:
        while True:
            chunk = await reader.read(MAX_BYTES_PER_READ)
            if not chunk:
                break
            tee.write(chunk)
    finally:
        tee.close()
    return tee.bytes_read


def make_tees(errors: ErrorSource, stdout_log, stderr_log, command) -> List[Tee]:
    """Builds the stdout and stderr tees for one run of command."""
    return [
        Tee(
            "stdout",
            capture=errors is ErrorSource.FROM_STDOUT,
            line_handler=stdout_log,
            sink=command.stdout,
        ),
        Tee(
            "stderr",
            capture=errors is ErrorSource.FROM_STDERR,
            line_handler=stderr_log,
            sink=command.stderr,
        ),
    ]


def reduce_outcome(
    *,
    args: List[str],
    exit_code: Optional[int],
    timed_out: bool,
    timeout: float,
    errors: ErrorSource,
    stdout: Tee,
    stderr: Tee,
) -> Optional[RunError]:
    """
    Maps the outcome of a run to None (success) or a RunError. Must only be
    called after both tees have been drained.
    """
    if not timed_out and exit_code == 0:
        return None
    if errors is ErrorSource.FROM_STDOUT:
        captured_output = stdout.captured()
    elif errors is ErrorSource.FROM_STDERR:
        captured_output = stderr.captured()
    else:
        captured_output = None
    if timed_out:
        return RunError(
            ErrorKind.TIMEOUT,
            args,
            timeout=timeout,
            captured_output=captured_output,
        )
    return RunError(
        ErrorKind.EXIT_FAILURE,
        args,
        exit_code=exit_code,
        captured_output=captured_output,
    )
