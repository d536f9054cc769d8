"""Git and git-svn backends."""

import re
import shlex
import logging
from pathlib import Path
from typing import Dict, List, Optional

from .base import VCSBackend, VCSError

logger = logging.getLogger(__name__)

SVN_REVISION = re.compile(r"^r?(\d+)$")


class GitBackend(VCSBackend):
    name = "git"
    command = "git"
    diff_prefix = "b/"

    @classmethod
    def detect(cls, root: Path) -> bool:
        return (root / ".git").exists()

    def resolve_revision(self, revision: str) -> str:
        result = self._run(["rev-parse", "--verify", "--quiet", f"{revision}^{{commit}}"], check=False)
        if result.returncode != 0 or not result.stdout.strip():
            raise self._invalid(revision)
        return result.stdout.strip()

    def diff(self, old: str, new: Optional[str] = None) -> str:
        args = ["diff", "--no-color", "--no-ext-diff", old]
        if new:
            args.append(new)
        return self._run(args).stdout

    def current_branch(self) -> str:
        return self._run(["rev-parse", "--abbrev-ref", "HEAD"]).stdout.strip()

    def remote_ref(self) -> str:
        result = self._run(["rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{u}"], check=False)
        if result.returncode == 0 and result.stdout.strip():
            return result.stdout.strip()
        return f"origin/{self.current_branch()}"

    def pull(self):
        self._run(["pull"])

    def deployed_revision_command(self, checkout: str) -> str:
        return f"git --git-dir={shlex.quote(checkout + '/.git')} rev-parse HEAD"

    # Submodules

    def has_subrepos(self) -> bool:
        return (self.root / ".gitmodules").exists()

    def update_subrepos(self):
        self._run(["submodule", "update", "--init", "--recursive"])

    def submodule_paths(self) -> List[str]:
        result = self._run(["config", "--file", ".gitmodules", "--get-regexp", r"^submodule\..*\.path$"], check=False)
        paths = []
        for line in result.stdout.splitlines():
            parts = line.split(None, 1)
            if len(parts) == 2:
                paths.append(parts[1].strip())
        return paths

    def submodule_commits(self, revision: Optional[str]) -> Dict[str, str]:
        """
        Map each submodule path to the commit recorded for it.

        With `revision` None the commit currently checked out in the
        submodule's working tree is used.
        """
        commits = {}
        for path in self.submodule_paths():
            if revision is None:
                result = self._run(["rev-parse", "HEAD"], check=False, cwd=self.root / path)
                sha = result.stdout.strip() if result.returncode == 0 else ""
            else:
                result = self._run(["ls-tree", revision, "--", path])
                fields = result.stdout.split()
                sha = fields[2] if len(fields) >= 3 and fields[1] == "commit" else ""
            if sha:
                commits[path] = sha
            else:
                logger.debug(f"No commit recorded for submodule {path} at {revision or 'working tree'}")
        return commits

    def submodule(self, path: str) -> "GitBackend":
        return GitBackend(self.root / path)


class GitSvnBackend(GitBackend):
    name = "git-svn"

    @classmethod
    def detect(cls, root: Path) -> bool:
        return (root / ".git" / "svn").is_dir()

    def resolve_revision(self, revision: str) -> str:
        match = SVN_REVISION.match(revision)
        if not match:
            return super().resolve_revision(revision)
        result = self._run(["svn", "find-rev", f"r{match.group(1)}"], check=False)
        sha = result.stdout.strip()
        if result.returncode != 0 or not sha:
            raise self._invalid(revision)
        return sha

    def remote_ref(self) -> str:
        for ref in ("refs/remotes/git-svn", "refs/remotes/origin/trunk"):
            result = self._run(["rev-parse", "--verify", "--quiet", ref], check=False)
            if result.returncode == 0:
                return ref
        raise VCSError("No git-svn remote reference found (looked for git-svn and origin/trunk)")

    def pull(self):
        self._run(["svn", "rebase"])

    def deployed_revision_command(self, checkout: str) -> str:
        # Masters deploy from subversion; the number is mapped back with find-rev
        return f"svn info --show-item revision {shlex.quote(checkout)}"
