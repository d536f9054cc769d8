"""Subversion backend."""

import re
import shlex
from pathlib import Path
from typing import Optional

from .base import VCSBackend

SVN_KEYWORDS = {"HEAD", "BASE", "COMMITTED", "PREV"}


class SvnBackend(VCSBackend):
    name = "svn"
    command = "svn"

    @classmethod
    def detect(cls, root: Path) -> bool:
        return (root / ".svn").is_dir()

    def resolve_revision(self, revision: str) -> str:
        number = revision[1:] if re.match(r"^r\d+$", revision) else revision
        if not (number.isdigit() or number in SVN_KEYWORDS):
            raise self._invalid(revision)
        result = self._run(["info", "-r", number, "--show-item", "revision", "."], check=False)
        if result.returncode != 0 or not result.stdout.strip():
            raise self._invalid(revision)
        return number

    def diff(self, old: str, new: Optional[str] = None) -> str:
        revision = f"{old}:{new}" if new else old
        return self._run(["diff", "-r", revision]).stdout

    def current_branch(self) -> str:
        return self._run(["info", "--show-item", "relative-url"]).stdout.strip()

    def remote_ref(self) -> str:
        return "HEAD"

    def pull(self):
        self._run(["update"])

    def deployed_revision_command(self, checkout: str) -> str:
        return f"svn info --show-item revision {shlex.quote(checkout)}"
