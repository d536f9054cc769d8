"""Base class for version-control backends."""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Type

from .. import shell
from ..errors import InvalidRevisionError, ToolError, UnknownVCSError
from ..parsers import changed_paths

logger = logging.getLogger(__name__)


class VCSError(ToolError):
    """A version-control command failed."""
    pass


class VCSBackend(ABC):
    """Abstract base class for version-control backends."""

    name: str = "unknown"
    command: str = ""
    diff_prefix: str = ""

    def __init__(self, root: Path):
        self.root = root

    @classmethod
    @abstractmethod
    def detect(cls, root: Path) -> bool:
        """Return True if `root` is a checkout managed by this backend."""
        pass

    @abstractmethod
    def resolve_revision(self, revision: str) -> str:
        """
        Validate a revision and return its canonical identifier.

        Raises InvalidRevisionError if the revision does not exist.
        """
        pass

    @abstractmethod
    def diff(self, old: str, new: Optional[str] = None) -> str:
        """Unified diff from `old` to `new`, or to the working tree when `new` is None."""
        pass

    @abstractmethod
    def current_branch(self) -> str:
        pass

    @abstractmethod
    def remote_ref(self) -> str:
        """The reference the working tree is compared against by default."""
        pass

    @abstractmethod
    def pull(self):
        pass

    @abstractmethod
    def deployed_revision_command(self, checkout: str) -> str:
        """Shell command that prints the revision checked out at `checkout` on a master."""
        pass

    def changed_files(self, old: str, new: Optional[str] = None) -> List[str]:
        """Added or modified paths between two revisions, relative to the checkout root."""
        return changed_paths(self.diff(old, new), self.diff_prefix)

    def has_subrepos(self) -> bool:
        return False

    def update_subrepos(self):
        pass

    def _run(self, args: List[str], check: bool = True, cwd: Optional[Path] = None):
        try:
            return shell.run([self.command] + args, cwd=cwd or self.root, check=check)
        except ToolError as e:
            raise VCSError(str(e), stdout=e.stdout, stderr=e.stderr) from e

    def _invalid(self, revision: str) -> InvalidRevisionError:
        return InvalidRevisionError(f"Invalid {self.name} revision: {revision}")


def backend_classes() -> Dict[str, Type[VCSBackend]]:
    from .git import GitBackend, GitSvnBackend
    from .svn import SvnBackend

    # Probe order matters: a git-svn checkout also looks like plain git
    return {
        "git-svn": GitSvnBackend,
        "git": GitBackend,
        "svn": SvnBackend,
    }


def detect_vcs(root: Path, name: Optional[str] = None) -> VCSBackend:
    """
    Return the backend for `root`.

    An explicit `name` must be one of the known backends; otherwise the
    checkout is probed for backend metadata directories.
    """
    backends = backend_classes()

    if name:
        if name not in backends:
            raise UnknownVCSError(f"Unknown VCS '{name}' (expected one of: {', '.join(sorted(backends))})")
        return backends[name](root)

    for backend_class in backends.values():
        if backend_class.detect(root):
            logger.debug(f"Detected {backend_class.name} checkout at {root}")
            return backend_class(root)

    raise UnknownVCSError(f"Could not detect a version-control checkout at {root}; use -m git|svn|git-svn")
