"""Fixtures that build small shell scripts to run under a Deputy."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Callable, List, Optional

import pytest

from deputy import Command

IS_WINDOWS = sys.platform == "win32"


def _script(
    stdout: List[str],
    stderr: List[str],
    exit_code: int,
    sleep: int,
) -> str:
    lines = ["#!/bin/sh"]
    lines += [f"echo {line}" for line in stdout]
    lines += [f">&2 echo {line}" for line in stderr]
    if sleep > 0:
        # exec, so that killing the shell also closes its pipes.
        lines.append(f"exec sleep {sleep}")
    lines.append(f"exit {exit_code}")
    return "\n".join(lines) + "\n"


@pytest.fixture
def make_command(tmp_path: Path) -> Callable[..., Command]:
    """Factory for Commands running a generated /bin/sh script.

    Output is printed first, then the script sleeps (if asked to) and exits
    with the given code.
    """
    if IS_WINDOWS:
        pytest.skip("fixture scripts need /bin/sh")

    counter = [0]

    def make(
        out: Optional[List[str]] = None,
        err: Optional[List[str]] = None,
        exit_code: int = 0,
        sleep: int = 0,
        body: Optional[str] = None,
        **kwargs,
    ) -> Command:
        counter[0] += 1
        path = tmp_path / f"foo{counter[0]}.sh"
        if body is None:
            body = _script(out or [], err or [], exit_code, sleep)
        else:
            body = "#!/bin/sh\n" + body
        path.write_text(body)
        path.chmod(0o744)
        return Command([str(path)], **kwargs)

    return make
