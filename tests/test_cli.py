"""End-to-end tests for the check-puppet-syntax console script."""

from unittest.mock import patch

import pytest

from puppet_ops.cli import main
from puppet_ops.errors import ExitCode

from conftest import FakeRemote, commit_all, git


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep the operator's real config file and environment out of the tests."""
    monkeypatch.setattr("puppet_ops.config.DEFAULT_CONFIG_FILE", tmp_path / "no-such-config.yaml")
    for var in ("PUPPET_CHECK_CONFIG", "PUPPET_CHECK_ROOT", "PUPPET_CHECK_MASTERS", "PUPPET_CHECK_VCS", "PUPPET_CHECK_ENVIRONMENT", "PUPPET_CHECK_JOBS"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def remote():
    """Patch RemoteShell so every remote call goes to a FakeRemote."""
    fake = FakeRemote()
    with patch("puppet_ops.remote.RemoteShell.run", side_effect=fake.run), \
            patch("puppet_ops.remote.RemoteShell.pull_directory", side_effect=fake.pull_directory):
        yield fake


@pytest.fixture
def puppet_ok():
    with patch("puppet_ops.syntax.ManifestChecker.check", return_value=None) as check:
        yield check


class TestArgumentValidation:
    def test_revision_and_deployed_are_exclusive(self, git_repo):
        assert main(["-P", str(git_repo), "-r", "HEAD", "-d"]) == ExitCode.EXCLUSIVE_FLAGS

    def test_missing_checkout(self, tmp_path):
        assert main(["-P", str(tmp_path / "missing"), "-r", "HEAD"]) == ExitCode.MISSING_CHECKOUT

    def test_missing_environment(self, git_repo):
        assert main(["-P", str(git_repo), "-e", "staging", "-r", "HEAD"]) == ExitCode.BAD_ARGUMENTS

    def test_unknown_vcs(self, git_repo):
        assert main(["-P", str(git_repo), "-m", "cvs", "-r", "HEAD"]) == ExitCode.UNKNOWN_VCS

    def test_undetectable_vcs(self, tmp_path):
        assert main(["-P", str(tmp_path), "-r", "HEAD"]) == ExitCode.UNKNOWN_VCS

    def test_invalid_revision(self, git_repo):
        assert main(["-P", str(git_repo), "-r", "nonexistent"]) == ExitCode.INVALID_REVISION

    def test_bad_jobs(self, git_repo):
        assert main(["-P", str(git_repo), "-r", "HEAD", "-j", "0"]) == ExitCode.BAD_ARGUMENTS

    def test_string_jobs_in_config_file(self, git_repo, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text('jobs: "4"\n')
        assert main(["-c", str(config_file), "-P", str(git_repo), "-r", "HEAD"]) == ExitCode.OK

    def test_bad_value_in_config_file(self, git_repo, tmp_path, capsys):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("jobs: many\n")
        assert main(["-c", str(config_file), "-P", str(git_repo), "-r", "HEAD"]) == ExitCode.BAD_ARGUMENTS
        assert "Config error" in capsys.readouterr().err


class TestPipeline:
    def test_no_changes_is_a_successful_no_op(self, git_repo, capsys):
        with patch("puppet_ops.checker.validate_files") as validate:
            assert main(["-P", str(git_repo), "-r", "HEAD"]) == ExitCode.OK
        validate.assert_not_called()
        assert "nothing to check" in capsys.readouterr().out

    def test_force_runs_checks_without_changes(self, git_repo):
        assert main(["-P", str(git_repo), "-r", "HEAD", "-f"]) == ExitCode.OK

    def test_syntax_errors_stop_the_run(self, git_repo, capsys):
        (git_repo / "files").mkdir()
        (git_repo / "files" / "run.sh").write_text("#!/bin/bash\n\techo hi\n")
        git(git_repo, "add", "files/run.sh")

        with patch("puppet_ops.checker.find_class_duplicates") as duplicates:
            assert main(["-P", str(git_repo), "-r", "HEAD"]) == ExitCode.SYNTAX_ERRORS
        duplicates.assert_not_called()
        assert "1 syntax error(s) found" in capsys.readouterr().err

    def test_duplicate_class_anywhere_fails(self, git_repo, puppet_ok):
        first = git(git_repo, "rev-parse", "HEAD")
        (git_repo / "manifests" / "legacy.pp").write_text("class base {\n}\n")
        second = commit_all(git_repo, "copy base")
        assert main(["-P", str(git_repo), "-r", f"{first}:{second}"]) == ExitCode.CLASS_DUPLICATES

    def test_node_regex_duplicates(self, git_repo, puppet_ok, remote, capsys):
        first = git(git_repo, "rev-parse", "HEAD")
        (git_repo / "manifests" / "nodes.pp").write_text("node /^web\\d+$/ {\n}\nnode /^web1$/ {\n}\n")
        second = commit_all(git_repo, "web nodes")
        remote.responses = {"SELECT name FROM hosts": "web1\nweb2\n"}

        code = main(["-P", str(git_repo), "-p", "puppet1", "-r", f"{first}:{second}"])

        assert code == ExitCode.NODE_REGEX_DUPLICATES
        err = capsys.readouterr().err
        assert "web1 matches 2 node regexes" in err
        assert "web2" not in err

    def test_node_database_error(self, git_repo, puppet_ok, remote):
        first = git(git_repo, "rev-parse", "HEAD")
        (git_repo / "manifests" / "nodes.pp").write_text("node default {\n}\n")
        second = commit_all(git_repo, "nodes")
        remote.failures = ("mysql",)

        assert main(["-P", str(git_repo), "-p", "puppet1", "-r", f"{first}:{second}"]) == ExitCode.NODE_DATABASE_ERROR

    def test_changed_class_is_resolved_and_compiled(self, git_repo, puppet_ok, remote):
        first = git(git_repo, "rev-parse", "HEAD")
        (git_repo / "modules" / "foo" / "manifests").mkdir(parents=True)
        (git_repo / "modules" / "foo" / "manifests" / "init.pp").write_text("class foo { }\n")
        second = commit_all(git_repo, "add foo")

        with patch("puppet_ops.compile.CatalogCompiler.compile_one") as compile_one:
            code = main(["-P", str(git_repo), "-p", "puppet1", "-r", f"{first}:{second}"])

        assert code == ExitCode.OK
        queries = [c for c in remote.commands_for("puppet1") if "mysql" in c]
        assert any("'foo'" in q for q in queries)
        compile_one.assert_called_once_with("puppet1")

    def test_compile_errors(self, git_repo, puppet_ok, remote):
        first = git(git_repo, "rev-parse", "HEAD")
        (git_repo / "modules" / "base" / "manifests" / "init.pp").write_text("class base {\n  include nosuch\n}\n")
        second = commit_all(git_repo, "break base")

        def broken_compile(self, server):
            self._record([f"[{server}] err: Could not find class nosuch"])

        with patch("puppet_ops.compile.CatalogCompiler.compile_one", broken_compile):
            code = main(["-P", str(git_repo), "-p", "puppet1", "-r", f"{first}:{second}"])

        assert code == ExitCode.COMPILE_ERRORS

    def test_no_manifest_changes_skip_compile(self, git_repo, remote):
        first = git(git_repo, "rev-parse", "HEAD")
        (git_repo / "README").write_text("docs\n")
        second = commit_all(git_repo, "docs")

        with patch("puppet_ops.checker.plan_compile") as plan:
            assert main(["-P", str(git_repo), "-p", "puppet1", "-r", f"{first}:{second}"]) == ExitCode.OK
        plan.assert_not_called()
        assert remote.calls == []
