"""
Change-set resolution: which files differ between two revisions of the checkout.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, List, Optional

from . import shell
from .config import CheckerConfig
from .errors import ExclusiveFlagsError, ToolError, UsageError
from .parsers import changed_paths
from .remote import RemoteShell
from .vcs import GitBackend, VCSBackend, VCSError

logger = logging.getLogger(__name__)

# Object name of git's empty tree, used as the base of newly added submodules
EMPTY_TREE = "4b825dc642cb6eb9a060e54bf8d69288fbee4904"


class ChangeSet:
    """Sorted set of distinct changed paths, relative to the checkout root."""

    def __init__(self, paths: Iterable[str] = ()):
        self._paths: List[str] = sorted(set(paths))

    @classmethod
    def existing(cls, root: Path, paths: Iterable[str]) -> "ChangeSet":
        """Build a ChangeSet keeping only paths that are files under `root`."""
        kept = []
        for path in paths:
            if (root / path).is_file():
                kept.append(path)
            else:
                logger.debug(f"Dropping {path}: not present in the working tree")
        return cls(kept)

    def __iter__(self) -> Iterator[str]:
        return iter(self._paths)

    def __len__(self) -> int:
        return len(self._paths)

    def __contains__(self, path: object) -> bool:
        return path in self._paths

    def __repr__(self) -> str:
        return f"ChangeSet({self._paths!r})"

    def with_suffix(self, *suffixes: str) -> List[str]:
        return [p for p in self._paths if Path(p).suffix in suffixes]

    def manifests(self) -> List[str]:
        return self.with_suffix(".pp")

    def node_manifests(self) -> List[str]:
        return [p for p in self.manifests() if is_node_manifest(p)]


def is_node_manifest(path: str) -> bool:
    """Node manifests are nodes*.pp files or any .pp file under a nodes/ directory."""
    p = Path(path)
    return p.suffix == ".pp" and (p.name.startswith("nodes") or "nodes" in p.parts[:-1])


@dataclass(frozen=True)
class RevisionRef:
    kind: str  # remote, single, range, deployed
    old: Optional[str] = None
    new: Optional[str] = None

    @classmethod
    def from_args(cls, revision: Optional[str], deployed: bool) -> "RevisionRef":
        if revision and deployed:
            raise ExclusiveFlagsError("-r and -d are mutually exclusive")
        if deployed:
            return cls("deployed")
        if not revision:
            return cls("remote")
        if ":" in revision:
            old, _, new = revision.partition(":")
            if not old or not new or ":" in new:
                raise UsageError(f"Invalid revision range '{revision}' (expected rev1:rev2)")
            return cls("range", old, new)
        return cls("single", revision)

    def describe(self) -> str:
        if self.kind == "range":
            return f"{self.old}..{self.new}"
        if self.kind == "single":
            return f"{self.old}..working tree"
        return self.kind


def fetch_deployed_revision(vcs: VCSBackend, config: CheckerConfig, remote: RemoteShell) -> str:
    if not config.masters:
        raise UsageError("-d needs at least one master (-p)")
    master = config.masters[0]
    out, _, _ = remote.run(master, vcs.deployed_revision_command(config.master_checkout))
    revision = out.strip().splitlines()[-1].strip() if out.strip() else ""
    if not revision:
        raise VCSError(f"{master} did not report a deployed revision")
    logger.info(f"Deployed revision on {master}: {revision}")
    return revision


def subrepo_changed_files(vcs: GitBackend, old: str, new: Optional[str]) -> List[str]:
    """
    Changed files across the super-repository and its submodules.

    A flat diff of the super-repository only shows the submodule pointer
    moving, so each submodule is diffed between the commits recorded for it
    at `old` and `new` and its paths are prefixed with the submodule path.
    """
    old_commits = vcs.submodule_commits(old)
    new_commits = vcs.submodule_commits(new)
    submodules = set(old_commits) | set(new_commits)

    paths = {p for p in vcs.changed_files(old, new) if p not in submodules}

    for path, new_sha in sorted(new_commits.items()):
        old_sha = old_commits.get(path, EMPTY_TREE)
        if new is not None and old_sha == new_sha:
            continue
        sub = vcs.submodule(path)
        sub_paths = sub.changed_files(old_sha, new_sha if new is not None else None)
        logger.debug(f"Submodule {path}: {len(sub_paths)} changed files")
        paths.update(f"{path}/{p}" for p in sub_paths)

    return sorted(paths)


def external_helper_changed_files(helper: str, vcs: VCSBackend, old: str, new: Optional[str]) -> List[str]:
    """Run a cross-repository diff helper script that prints a unified diff."""
    args = [helper, old] + ([new] if new else [])
    try:
        result = shell.run(args, cwd=vcs.root)
    except ToolError as e:
        raise VCSError(f"Cross-repository diff helper failed: {e}", stdout=e.stdout, stderr=e.stderr) from e
    return changed_paths(result.stdout, vcs.diff_prefix)


def resolve_changeset(vcs: VCSBackend, ref: RevisionRef, config: CheckerConfig, remote: RemoteShell) -> ChangeSet:
    """Compute the ChangeSet for the selected mode."""
    if ref.kind == "deployed":
        vcs.pull()
        if vcs.has_subrepos():
            vcs.update_subrepos()
        old, new = vcs.resolve_revision(fetch_deployed_revision(vcs, config, remote)), None
    elif ref.kind == "range":
        old, new = vcs.resolve_revision(ref.old), vcs.resolve_revision(ref.new)
    elif ref.kind == "single":
        old, new = vcs.resolve_revision(ref.old), None
    else:
        old, new = vcs.resolve_revision(vcs.remote_ref()), None

    logger.info(f"Diffing {vcs.name} checkout {old}..{new or 'working tree'}")

    if vcs.has_subrepos():
        if config.subrepo_diff_helper:
            paths = external_helper_changed_files(config.subrepo_diff_helper, vcs, old, new)
        elif isinstance(vcs, GitBackend):
            paths = subrepo_changed_files(vcs, old, new)
        else:
            paths = vcs.changed_files(old, new)
    else:
        paths = vcs.changed_files(old, new)

    return ChangeSet.existing(vcs.root, paths)
