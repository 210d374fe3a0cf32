from __future__ import annotations

import logging
import pathlib
import subprocess
import time

from .util_baseclasses import TestbotException

logger = logging.getLogger(__file__)


class SubprocessExitCodeException(TestbotException):
    pass


def subprocess_run(
    args: list[str],
    cwd: pathlib.Path | None = None,
    timeout_s: float = 10.0,
    success_returncodes: list[int] | None = None,
) -> str:
    """
    Wrapper around 'subprocess.run()'.

    Return stdout.
    Raise SubprocessExitCodeException if the returncode is not in 'success_returncodes'.
    Raise subprocess.TimeoutExpired and FileNotFoundError (binary not installed).
    """
    assert isinstance(args, list)
    assert isinstance(cwd, pathlib.Path | None)
    assert isinstance(timeout_s, float)
    assert isinstance(success_returncodes, list | None)
    if success_returncodes is None:
        success_returncodes = [0]

    args_text = " ".join(args)

    begin_s = time.monotonic()
    try:
        proc = subprocess.run(
            args=args,
            check=False,
            text=True,
            cwd=None if cwd is None else str(cwd),
            timeout=timeout_s,
            capture_output=True,
        )
    except subprocess.TimeoutExpired as e:
        logger.info(f"EXEC {e!r}")
        raise

    stdout = proc.stdout.strip()
    stderr = proc.stderr.strip()

    def log(f) -> None:
        f(f"EXEC {args_text}")
        f(f"  returncode: {proc.returncode}")
        f(f"  duration: {time.monotonic() - begin_s:0.3f}s")
        f(f"  stdout: {stdout}")
        f(f"  stderr: {stderr}")

    if proc.returncode not in success_returncodes:
        log(logger.warning)
        raise SubprocessExitCodeException(
            f"EXEC failed with returncode={proc.returncode}: {args_text}\n{stdout}\n{stderr}"
        )

    log(logger.debug)
    return stdout
