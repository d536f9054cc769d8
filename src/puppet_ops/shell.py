import logging
import subprocess
from pathlib import Path
from typing import List, Optional, Union

from .errors import ToolError

logger = logging.getLogger(__name__)


def run(
    args: List[str],
    cwd: Optional[Union[str, Path]] = None,
    check: bool = True,
    input: Optional[str] = None,
) -> subprocess.CompletedProcess:
    """
    Run an external command and capture its output as text.

    Raises ToolError when the command cannot be started, or when it exits
    non-zero and `check` is set.
    """
    logger.debug(f"$ {' '.join(str(a) for a in args)}")
    try:
        return subprocess.run(
            [str(a) for a in args],
            cwd=cwd,
            input=input,
            capture_output=True,
            text=True,
            check=check,
        )
    except FileNotFoundError as e:
        raise ToolError(f"Command not found: {args[0]}") from e
    except subprocess.CalledProcessError as e:
        raise ToolError(
            f"Command failed ({e.returncode}): {' '.join(str(a) for a in e.cmd)}\n"
            f"Stdout: {e.stdout}\nStderr: {e.stderr}",
            stdout=e.stdout or "",
            stderr=e.stderr or "",
        ) from e


def run_pipeline(first: List[str], second: List[str], cwd: Optional[Union[str, Path]] = None) -> subprocess.CompletedProcess:
    """
    Run `first | second` and return the second command's result.

    The returned returncode is non-zero if either side failed; stderr of both
    sides is concatenated.
    """
    logger.debug(f"$ {' '.join(first)} | {' '.join(second)}")
    try:
        producer = subprocess.run(first, cwd=cwd, capture_output=True, text=True)
        consumer = subprocess.run(second, cwd=cwd, input=producer.stdout, capture_output=True, text=True)
    except FileNotFoundError as e:
        raise ToolError(f"Command not found: {e.filename}") from e

    returncode = producer.returncode or consumer.returncode
    return subprocess.CompletedProcess(
        second,
        returncode,
        stdout=consumer.stdout,
        stderr=(producer.stderr or "") + (consumer.stderr or ""),
    )
