"""
Remote shell access to the puppet masters.

Commands run through the `ssh` CLI by default, or through paramiko when
`ssh.method: paramiko` is configured (useful where no agent is available).
"""

import getpass
import logging
import shlex
import subprocess
from pathlib import Path
from typing import List, Optional, Tuple

import paramiko

from . import shell
from .config import SSHSettings
from .errors import ToolError

logger = logging.getLogger(__name__)


class RemoteError(ToolError):
    """Raised when a remote command or file sync fails."""
    pass


class RemoteShell:
    def __init__(self, settings: Optional[SSHSettings] = None):
        self.settings = settings or SSHSettings()

    def _target(self, host: str) -> str:
        return f"{self.settings.user}@{host}" if self.settings.user else host

    def _ssh_options(self) -> List[str]:
        options = [
            "-o", "BatchMode=yes",
            "-o", f"ConnectTimeout={self.settings.connect_timeout}",
            "-p", str(self.settings.port),
        ]
        if self.settings.key_path:
            options += ["-i", str(Path(self.settings.key_path).expanduser())]
        return options

    def run(self, host: str, command: str, check: bool = True) -> Tuple[str, str, int]:
        """
        Run `command` on `host`.

        Returns:
            (stdout, stderr, exit_code)

        Raises:
            RemoteError if the command exits non-zero and `check` is set
        """
        logger.debug(f"[{host}] $ {command}")
        if self.settings.method == "paramiko":
            out, err, code = self._run_paramiko(host, command)
        else:
            out, err, code = self._run_cli(host, command)

        if check and code != 0:
            raise RemoteError(
                f"Remote command failed on {host} ({code}): {command}\nStderr: {err.strip()}",
                stdout=out,
                stderr=err,
            )
        return out, err, code

    def _run_cli(self, host: str, command: str) -> Tuple[str, str, int]:
        ssh_cmd = ["ssh"] + self._ssh_options() + [self._target(host), "--", command]
        try:
            proc = subprocess.run(ssh_cmd, capture_output=True, text=True)
        except FileNotFoundError as e:
            raise RemoteError("ssh client not found") from e
        return proc.stdout, proc.stderr, proc.returncode

    def _run_paramiko(self, host: str, command: str) -> Tuple[str, str, int]:
        client = paramiko.SSHClient()
        client.load_system_host_keys()
        client.set_missing_host_key_policy(paramiko.RejectPolicy())

        connect_kwargs = {
            "hostname": host,
            "port": self.settings.port,
            "username": self.settings.user or getpass.getuser(),
            "timeout": self.settings.connect_timeout,
        }
        if self.settings.key_path:
            connect_kwargs["key_filename"] = str(Path(self.settings.key_path).expanduser())

        try:
            client.connect(**connect_kwargs)
            stdin, stdout, stderr = client.exec_command(command)
            out = stdout.read().decode("utf-8", errors="ignore")
            err = stderr.read().decode("utf-8", errors="ignore")
            exit_status = stdout.channel.recv_exit_status()
        except (paramiko.SSHException, OSError) as e:
            raise RemoteError(f"SSH connection to {host} failed: {e}") from e
        finally:
            client.close()

        return out, err, exit_status

    def pull_directory(self, host: str, remote_dir: str, local_dir: Path):
        """Copy the contents of `remote_dir` on `host` into `local_dir` with rsync."""
        local_dir.mkdir(parents=True, exist_ok=True)
        rsh = " ".join(["ssh"] + [shlex.quote(o) for o in self._ssh_options()])
        try:
            shell.run([
                "rsync", "-a",
                "-e", rsh,
                f"{self._target(host)}:{remote_dir.rstrip('/')}/",
                f"{local_dir}/",
            ])
        except ToolError as e:
            raise RemoteError(f"rsync from {host}:{remote_dir} failed\n{e.stderr.strip()}", stderr=e.stderr) from e
