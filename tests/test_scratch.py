"""Tests for scratch directory lifetime."""

import getpass

import pytest

from puppet_ops.scratch import scratch_dir


def test_namespaced_and_removed():
    with scratch_dir("compile") as scratch:
        assert scratch.is_dir()
        assert scratch.name.startswith(f"puppet-check-{getpass.getuser()}-compile-")
        (scratch / "compile.log").write_text("notice: ok\n")
    assert not scratch.exists()


def test_removed_on_exception():
    with pytest.raises(RuntimeError):
        with scratch_dir("compile") as scratch:
            raise RuntimeError("boom")
    assert not scratch.exists()


def test_removed_on_system_exit():
    with pytest.raises(SystemExit):
        with scratch_dir("facts") as scratch:
            raise SystemExit(3)
    assert not scratch.exists()
