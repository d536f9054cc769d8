"""Tests for config loading and overrides."""

from pathlib import Path

import pytest

from puppet_ops.config import CheckerConfig, ConfigError


@pytest.fixture(autouse=True)
def clean_env(tmp_path, monkeypatch):
    monkeypatch.setattr("puppet_ops.config.DEFAULT_CONFIG_FILE", tmp_path / "absent.yaml")
    for var in (
        "PUPPET_CHECK_CONFIG", "PUPPET_CHECK_ROOT", "PUPPET_CHECK_MASTERS", "PUPPET_CHECK_ENVIRONMENT",
        "PUPPET_CHECK_VCS", "PUPPET_CHECK_JOBS", "LIGHTHOUSE_ACCOUNT", "LIGHTHOUSE_TOKEN",
    ):
        monkeypatch.delenv(var, raising=False)


def write_config(tmp_path, text):
    path = tmp_path / "config.yaml"
    path.write_text(text)
    return path


class TestLoad:
    def test_defaults_without_file(self):
        config = CheckerConfig.load()
        assert config.jobs == 4
        assert config.masters == []
        assert config.dist_dir == "dist"
        assert config.ssh.method == "cli"

    def test_yaml_file(self, tmp_path):
        path = write_config(tmp_path, """
checkout_root: /srv/puppet
masters: puppet1 puppet2
jobs: 8
facts_dir: /opt/puppet/facts
ssh:
  user: deploy
  port: 2222
lighthouse:
  account: example
  token: secret
""")
        config = CheckerConfig.load(path)
        assert config.checkout_root == Path("/srv/puppet")
        assert config.masters == ["puppet1", "puppet2"]
        assert config.jobs == 8
        assert config.facts_dir == "/opt/puppet/facts"
        assert (config.ssh.user, config.ssh.port) == ("deploy", 2222)
        assert config.lighthouse.account == "example"

    def test_masters_as_list(self, tmp_path):
        path = write_config(tmp_path, "masters:\n  - puppet1\n  - puppet2\n")
        assert CheckerConfig.load(path).masters == ["puppet1", "puppet2"]

    def test_env_beats_file(self, tmp_path, monkeypatch):
        path = write_config(tmp_path, "jobs: 8\nmasters: puppet1\n")
        monkeypatch.setenv("PUPPET_CHECK_JOBS", "2")
        monkeypatch.setenv("PUPPET_CHECK_MASTERS", "puppet3 puppet4")
        config = CheckerConfig.load(path)
        assert config.jobs == 2
        assert config.masters == ["puppet3", "puppet4"]

    def test_config_file_from_env(self, tmp_path, monkeypatch):
        path = write_config(tmp_path, "environment: production\n")
        monkeypatch.setenv("PUPPET_CHECK_CONFIG", str(path))
        assert CheckerConfig.load().environment == "production"

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(ConfigError):
            CheckerConfig.load(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path):
        with pytest.raises(ConfigError):
            CheckerConfig.load(write_config(tmp_path, "jobs: [1, 2\n"))

    def test_top_level_must_be_mapping(self, tmp_path):
        with pytest.raises(ConfigError):
            CheckerConfig.load(write_config(tmp_path, "- a\n- b\n"))

    def test_unknown_ssh_key(self, tmp_path):
        with pytest.raises(ConfigError):
            CheckerConfig.load(write_config(tmp_path, "ssh:\n  hostname: x\n"))

    def test_unknown_key_is_ignored(self, tmp_path):
        config = CheckerConfig.load(write_config(tmp_path, "colour: blue\njobs: 3\n"))
        assert config.jobs == 3
        assert not hasattr(config, "colour")

    def test_jobs_given_as_string(self, tmp_path):
        assert CheckerConfig.load(write_config(tmp_path, 'jobs: "4"\n')).jobs == 4

    def test_non_numeric_jobs(self, tmp_path):
        with pytest.raises(ConfigError):
            CheckerConfig.load(write_config(tmp_path, "jobs: many\n"))

    def test_property_and_method_names_are_not_settings(self, tmp_path):
        config = CheckerConfig.load(write_config(tmp_path, "environment_dir: x\nvalidate: 1\njobs: 2\n"))
        assert config.jobs == 2
        assert config.validate() == []
        assert config.environment_dir == config.checkout_root

    def test_path_setting_must_be_scalar(self, tmp_path):
        with pytest.raises(ConfigError):
            CheckerConfig.load(write_config(tmp_path, "facts_dir:\n  - /a\n  - /b\n"))

    def test_null_dist_dir_disables_exclusion(self, tmp_path):
        assert CheckerConfig.load(write_config(tmp_path, "dist_dir: null\n")).dist_dir is None

    def test_ssh_port_as_string(self, tmp_path):
        assert CheckerConfig.load(write_config(tmp_path, 'ssh:\n  port: "2222"\n')).ssh.port == 2222

    def test_masters_must_be_hosts(self, tmp_path):
        with pytest.raises(ConfigError):
            CheckerConfig.load(write_config(tmp_path, "masters:\n  puppet1: yes\n"))

    def test_bad_jobs_env(self, monkeypatch):
        monkeypatch.setenv("PUPPET_CHECK_JOBS", "many")
        with pytest.raises(ConfigError):
            CheckerConfig.load()


class TestOverrides:
    def test_none_values_are_skipped(self):
        config = CheckerConfig(jobs=8)
        config.apply_overrides({"jobs": None, "masters": "puppet1 puppet2", "checkout_root": "/srv/puppet"})
        assert config.jobs == 8
        assert config.masters == ["puppet1", "puppet2"]
        assert config.checkout_root == Path("/srv/puppet")

    def test_environment_dir(self, tmp_path):
        config = CheckerConfig(checkout_root=tmp_path)
        assert config.environment_dir == tmp_path
        config.apply_overrides({"environment": "production"})
        assert config.environment_dir == tmp_path / "production"

    def test_validate(self):
        config = CheckerConfig(jobs=0)
        config.ssh.method = "telnet"
        errors = config.validate()
        assert len(errors) == 2
