"""Pytest fixtures for the puppet-ops tests."""

import subprocess
from pathlib import Path
from typing import Callable, Dict, List, Tuple

import pytest

from puppet_ops.config import CheckerConfig


def git(repo: Path, *args: str) -> str:
    result = subprocess.run(["git", *args], cwd=repo, check=True, capture_output=True, text=True)
    return result.stdout.strip()


def commit_all(repo: Path, message: str) -> str:
    git(repo, "add", "--all", ".")
    git(repo, "commit", "-q", "-m", message)
    return git(repo, "rev-parse", "HEAD")


@pytest.fixture
def git_repo(tmp_path) -> Path:
    """A git checkout with one commit holding a minimal puppet tree."""
    repo = tmp_path / "puppet"
    repo.mkdir()
    git(repo, "init", "-q", "-b", "main")
    git(repo, "config", "user.email", "test@example.com")
    git(repo, "config", "user.name", "Test User")

    (repo / "manifests").mkdir()
    (repo / "manifests" / "site.pp").write_text("import 'nodes.pp'\n")
    (repo / "modules" / "base" / "manifests").mkdir(parents=True)
    (repo / "modules" / "base" / "manifests" / "init.pp").write_text("class base {\n  include ntp\n}\n")
    commit_all(repo, "initial commit")
    return repo


@pytest.fixture
def config_for(tmp_path) -> Callable[[Path], CheckerConfig]:
    def _make(root: Path, **overrides) -> CheckerConfig:
        config = CheckerConfig(checkout_root=root)
        for key, value in overrides.items():
            setattr(config, key, value)
        return config
    return _make


class FakeRemote:
    """
    Stands in for RemoteShell.

    `responses` maps a substring of the remote command to its stdout; the
    first matching entry wins. Every call is recorded in `calls`.
    """

    def __init__(self, responses: Dict[str, str] = None, failures: Tuple[str, ...] = ()):
        from puppet_ops.config import SSHSettings

        self.settings = SSHSettings(user="checker")
        self.responses = responses or {}
        self.failures = failures
        self.calls: List[Tuple[str, str]] = []
        self.pulls: List[Tuple[str, str, Path]] = []

    def run(self, host: str, command: str, check: bool = True):
        from puppet_ops.remote import RemoteError

        self.calls.append((host, command))
        if any(f in command for f in self.failures):
            if check:
                raise RemoteError(f"Remote command failed on {host}: {command}")
            return "", "failed", 1
        for needle, out in self.responses.items():
            if needle in command:
                return out, "", 0
        return "", "", 0

    def pull_directory(self, host: str, remote_dir: str, local_dir: Path):
        local_dir.mkdir(parents=True, exist_ok=True)
        self.pulls.append((host, remote_dir, local_dir))

    def commands_for(self, host: str) -> List[str]:
        return [command for h, command in self.calls if h == host]


@pytest.fixture
def fake_remote():
    return FakeRemote
