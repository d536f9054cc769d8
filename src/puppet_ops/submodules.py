"""
stagcom - commit and push every staging submodule, then the super-repository.

Develop in the staging* submodules, then run this with a commit message to
commit and push each of them on `develop` and record the new submodule
pointers in the parent repository.

Usage:
    stagcom "Tune apache worker counts"
    stagcom -n "Dry run first"
"""

import argparse
import logging
import os
import subprocess
import sys
from pathlib import Path
from typing import List, Optional

from rich.console import Console

from .errors import ExitCode
from .vcs import GitBackend, VCSError

logger = logging.getLogger(__name__)

STAGING_PREFIX = "staging"
STAGING_BRANCH = "develop"


class GitError(Exception):
    """Generic git operation error."""
    pass


class GitManager:
    def __init__(self, repo_root: Path, dry_run: bool = False):
        self.repo_root = repo_root
        self.dry_run = dry_run

    @property
    def is_dry_run(self) -> bool:
        return self.dry_run or os.environ.get("STAGCOM_DRY_RUN") == "1"

    def _run_git(self, args: List[str], check: bool = True) -> subprocess.CompletedProcess:
        mutating_cmds = ["add", "commit", "checkout", "push"]
        if self.is_dry_run and args and args[0] in mutating_cmds:
            logger.info(f"[DRY-RUN] ({self.repo_root.name}) git {' '.join(args)}")
            return subprocess.CompletedProcess(args, 0, stdout="", stderr="")

        try:
            return subprocess.run(
                ["git"] + args,
                cwd=self.repo_root,
                capture_output=True,
                text=True,
                check=check,
            )
        except subprocess.CalledProcessError as e:
            raise GitError(f"Git command failed in {self.repo_root}: {' '.join(e.cmd)}\nStdout: {e.stdout}\nStderr: {e.stderr}") from e
        except OSError as e:
            raise GitError(f"Cannot run git in {self.repo_root}: {e}") from e

    def is_clean(self) -> bool:
        """Returns True if there are no uncommitted changes."""
        result = self._run_git(["status", "--porcelain"])
        return result.stdout.strip() == ""

    def is_checked_out(self) -> bool:
        """
        True if `repo_root` is the top level of its own working tree.

        An uninitialized submodule is an empty directory; git run inside it
        would operate on the parent repository instead.
        """
        if not self.repo_root.is_dir():
            return False
        result = self._run_git(["rev-parse", "--show-toplevel"], check=False)
        if result.returncode != 0 or not result.stdout.strip():
            return False
        return Path(result.stdout.strip()).resolve() == self.repo_root.resolve()

    def commit_all(self, message: str) -> Optional[str]:
        """
        Stage everything and commit. Returns the new commit hash, or None if
        there was nothing to commit or the commit was only logged (dry run).
        """
        self._run_git(["add", "--all", "."])
        if self.is_clean():
            return None
        self._run_git(["commit", "-am", message])
        if self.is_dry_run:
            return None
        return self._run_git(["rev-parse", "HEAD"]).stdout.strip()

    def push(self, branch: Optional[str] = None):
        if branch:
            self._run_git(["push", "-u", "origin", branch])
        else:
            self._run_git(["push"])


def staging_submodules(repo_root: Path) -> List[str]:
    """Paths of the checked-out staging* submodules listed in .gitmodules."""
    try:
        paths = GitBackend(repo_root).submodule_paths()
    except VCSError as e:
        raise GitError(str(e)) from e

    staging = []
    for path in paths:
        if not path.startswith(STAGING_PREFIX):
            continue
        if not GitManager(repo_root / path).is_checked_out():
            logger.warning(f"Skipping {path}: submodule is not checked out")
            continue
        staging.append(path)
    return staging


def commit_staging_submodules(repo_root: Path, message: str, dry_run: bool = False, console: Console = None) -> List[str]:
    """
    Commit and push each checked-out staging submodule, then the parent
    repository.

    Returns the submodule paths that were processed.
    """
    console = console or Console()
    parent = GitManager(repo_root, dry_run=dry_run)
    processed = []

    for path in staging_submodules(repo_root):
        console.print(f"Entering '{path}'", markup=False)
        sub = GitManager(repo_root / path, dry_run=dry_run)
        sub._run_git(["checkout", STAGING_BRANCH])
        commit = sub.commit_all(message)
        if commit is not None:
            console.print(f"  committed {commit[:10]}", markup=False)
        elif sub.is_dry_run and not sub.is_clean():
            console.print(f"  [DRY-RUN] commit logged for {path}", markup=False)
        else:
            console.print(f"  nothing to commit in {path}", markup=False)
        sub.push(STAGING_BRANCH)
        processed.append(path)

    commit = parent.commit_all(f"Updated submodules: {message}")
    if commit is None and not parent.is_dry_run:
        console.print("Nothing to commit in the parent repository")
    parent.push()
    return processed


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="stagcom",
        description="Commit and push all staging* submodules and the parent repository",
    )
    parser.add_argument("message", nargs="?", help="Commit message")
    parser.add_argument("-C", dest="repo", type=Path, default=Path.cwd(), help="Parent repository (default: current directory)")
    parser.add_argument("-n", "--dry-run", action="store_true", help="Log mutating git commands instead of running them")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, stream=sys.stderr)

    if not args.message:
        print("You must enter a commit message as the only argument to this script!", file=sys.stderr)
        return int(ExitCode.BAD_ARGUMENTS)

    try:
        commit_staging_submodules(args.repo, args.message, dry_run=args.dry_run)
    except GitError as e:
        print(f"Error: {e}", file=sys.stderr)
        return int(ExitCode.TOOL_FAILURE)
    return int(ExitCode.OK)


if __name__ == "__main__":
    sys.exit(main())
