"""Per-user scratch directories that never outlive the run."""

import getpass
import logging
import shutil
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

logger = logging.getLogger(__name__)


def scratch_prefix(label: str) -> str:
    return f"puppet-check-{getpass.getuser()}-{label}-"


@contextmanager
def scratch_dir(label: str) -> Generator[Path, None, None]:
    """
    Create a unique scratch directory and remove it on exit.

    Usage:
        with scratch_dir("compile") as scratch:
            (scratch / "compile.log").touch()
    """
    path = Path(tempfile.mkdtemp(prefix=scratch_prefix(label)))
    logger.debug(f"Created scratch directory {path}")
    try:
        yield path
    finally:
        shutil.rmtree(path, ignore_errors=True)
        logger.debug(f"Removed scratch directory {path}")
