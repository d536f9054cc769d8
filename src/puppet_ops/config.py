"""
Configuration loader for the puppet operator tools.
Reads from a YAML config file, environment variables, and command-line overrides.
"""

import os
import logging
from pathlib import Path
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = Path.home() / ".config" / "puppet-ops" / "config.yaml"
DEFAULT_CHECKOUT_ROOT = Path.home() / "working" / "git" / "puppet"
DEFAULT_JOBS = 4
LIGHTHOUSE_PROJECT_ID = 41389

# Keys whose value may be null in the config file
OPTIONAL_KEYS = {"environment", "vcs", "dist_dir", "subrepo_diff_helper"}


class ConfigError(Exception):
    """Raised when configuration is missing or invalid."""
    pass


@dataclass
class SSHSettings:
    method: str = "cli"  # cli, paramiko
    user: Optional[str] = None
    port: int = 22
    key_path: Optional[Path] = None
    connect_timeout: int = 10


@dataclass
class LighthouseSettings:
    account: Optional[str] = None
    token: Optional[str] = None
    project_id: int = LIGHTHOUSE_PROJECT_ID


@dataclass
class CheckerConfig:
    checkout_root: Path = DEFAULT_CHECKOUT_ROOT
    environment: Optional[str] = None
    masters: List[str] = field(default_factory=list)
    vcs: Optional[str] = None
    jobs: int = DEFAULT_JOBS

    # Layout of the checkout and of the masters
    dist_dir: Optional[str] = "dist"
    master_checkout: str = "/etc/puppet"
    facts_dir: str = "/var/lib/puppet/yaml/facts"
    inventory_database: str = "puppet"

    # External tools
    subrepo_diff_helper: Optional[str] = None
    compiler: str = "puppet"

    ssh: SSHSettings = field(default_factory=SSHSettings)
    lighthouse: LighthouseSettings = field(default_factory=LighthouseSettings)

    @classmethod
    def load(cls, config_file: Optional[Path] = None) -> "CheckerConfig":
        """
        Load config with priority:
        1. Environment variables (highest)
        2. YAML config file
        3. Defaults (lowest)

        Command-line flags are applied afterwards by the caller via apply_overrides().
        """
        config = cls()

        if config_file is None:
            env_file = os.getenv("PUPPET_CHECK_CONFIG")
            config_file = Path(env_file) if env_file else DEFAULT_CONFIG_FILE
            explicit = env_file is not None
        else:
            explicit = True

        if config_file.exists():
            config._apply_file(config_file)
        elif explicit:
            raise ConfigError(f"Config file not found: {config_file}")

        config._apply_env()
        return config

    def _apply_file(self, config_file: Path):
        try:
            with open(config_file) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {config_file}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"{config_file} must contain a mapping at the top level")

        logger.debug(f"Loaded config from {config_file}")

        known = {item.name for item in fields(self)}
        for key, value in data.items():
            if key not in known:
                logger.warning(f"Ignoring unknown config key '{key}' in {config_file}")
            elif key == "ssh":
                self.ssh = _build_section(SSHSettings, value, config_file)
                self.ssh.port = _as_int("ssh.port", self.ssh.port)
                self.ssh.connect_timeout = _as_int("ssh.connect_timeout", self.ssh.connect_timeout)
                if self.ssh.key_path is not None:
                    self.ssh.key_path = Path(str(self.ssh.key_path)).expanduser()
            elif key == "lighthouse":
                self.lighthouse = _build_section(LighthouseSettings, value, config_file)
                self.lighthouse.project_id = _as_int("lighthouse.project_id", self.lighthouse.project_id)
            elif key == "checkout_root":
                self.checkout_root = Path(_as_str(key, value)).expanduser()
            elif key == "masters":
                self.masters = _split_hosts(value)
            elif key == "jobs":
                self.jobs = _as_int(key, value)
            elif key in OPTIONAL_KEYS and value is None:
                setattr(self, key, None)
            else:
                setattr(self, key, _as_str(key, value))

    def _apply_env(self):
        if os.getenv("PUPPET_CHECK_ROOT"):
            self.checkout_root = Path(os.environ["PUPPET_CHECK_ROOT"]).expanduser()
        if os.getenv("PUPPET_CHECK_MASTERS"):
            self.masters = _split_hosts(os.environ["PUPPET_CHECK_MASTERS"])
        self.environment = os.getenv("PUPPET_CHECK_ENVIRONMENT", self.environment)
        self.vcs = os.getenv("PUPPET_CHECK_VCS", self.vcs)
        if os.getenv("PUPPET_CHECK_JOBS"):
            try:
                self.jobs = int(os.environ["PUPPET_CHECK_JOBS"])
            except ValueError as e:
                raise ConfigError(f"PUPPET_CHECK_JOBS must be an integer, got {os.environ['PUPPET_CHECK_JOBS']!r}") from e
        self.lighthouse.account = os.getenv("LIGHTHOUSE_ACCOUNT", self.lighthouse.account)
        self.lighthouse.token = os.getenv("LIGHTHOUSE_TOKEN", self.lighthouse.token)

    def apply_overrides(self, overrides: Dict[str, Any]):
        """Apply non-None command-line values on top of the loaded config."""
        for key, value in overrides.items():
            if value is None:
                continue
            if key == "checkout_root":
                value = Path(value).expanduser()
            elif key == "masters":
                value = _split_hosts(value)
            setattr(self, key, value)

    @property
    def environment_dir(self) -> Path:
        if self.environment:
            return self.checkout_root / self.environment
        return self.checkout_root

    def validate(self) -> list[str]:
        """Returns list of validation errors, empty if valid."""
        errors = []
        if self.jobs < 1:
            errors.append(f"jobs must be at least 1, got {self.jobs}")
        if self.ssh.method not in ("cli", "paramiko"):
            errors.append(f"ssh.method must be 'cli' or 'paramiko', got {self.ssh.method!r}")
        return errors


def _split_hosts(value) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return value.split()
    if isinstance(value, list):
        return [str(v) for v in value]
    raise ConfigError(f"'masters' must be a string or a list, got {value!r}")


def _build_section(section_cls, value, config_file: Path):
    if not isinstance(value, dict):
        raise ConfigError(f"'{section_cls.__name__}' section in {config_file} must be a mapping")
    try:
        return section_cls(**value)
    except TypeError as e:
        raise ConfigError(f"Invalid section in {config_file}: {e}") from e


def _as_int(key: str, value) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"'{key}' must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"'{key}' must be an integer, got {value!r}") from e


def _as_str(key: str, value) -> str:
    if value is None or isinstance(value, (dict, list)):
        raise ConfigError(f"'{key}' must be a string, got {value!r}")
    return str(value)
