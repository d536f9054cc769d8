"""
Compile verification: build catalogs for hosts that use the changed classes.

Flow: changed classes -> one representative host per class per master ->
unique server list -> `puppet master --compile` for each server on a bounded
worker pool, with vardir/ssldir inside the scratch area.
"""

import getpass
import logging
import re
import shlex
import socket
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from . import shell
from .inventory import InventoryDB
from .parsers import ManifestSyntaxError, is_valid_class_name, parse_class_definitions
from .remote import RemoteShell

logger = logging.getLogger(__name__)

MESSAGE_MARKER = re.compile(r"^\s*(err|error|warning|notice)\s*:", re.IGNORECASE)
ERROR_MARKER = re.compile(r"^(\[[^\]]+\]\s*)?\s*(err|error)\s*:", re.IGNORECASE)


@dataclass(frozen=True)
class CompileTarget:
    server: str
    host: str
    class_name: str


@dataclass
class CompilePlan:
    servers: List[str] = field(default_factory=list)
    targets: List[CompileTarget] = field(default_factory=list)

    def add_server(self, server: str) -> bool:
        """Append `server` unless already present. Returns True if added."""
        if server in self.servers:
            return False
        self.servers.append(server)
        return True

    def unresolved(self, classes: Iterable[str]) -> List[str]:
        resolved = {t.class_name for t in self.targets}
        return [c for c in classes if c not in resolved]


@dataclass
class CompileResult:
    lines: List[str] = field(default_factory=list)

    @property
    def errors(self) -> List[str]:
        return [line for line in self.lines if ERROR_MARKER.match(line)]

    @property
    def ok(self) -> bool:
        return not self.errors


def extract_changed_classes(root: Path, manifests: Iterable[str]) -> List[str]:
    """Class names defined in the changed manifests, first occurrence order."""
    classes: List[str] = []
    for rel_path in manifests:
        try:
            content = (root / rel_path).read_text(encoding="utf-8", errors="ignore")
            definitions = parse_class_definitions(content)
        except (OSError, ManifestSyntaxError) as e:
            logger.warning(f"Cannot extract classes from {rel_path}: {e}")
            continue
        for definition in definitions:
            if not is_valid_class_name(definition.name):
                logger.warning(f"{rel_path}:{definition.line}: ignoring invalid class name {definition.name!r}")
                continue
            if definition.name not in classes:
                classes.append(definition.name)
    return classes


def sync_facts(remote: RemoteShell, master: str, facts_dir: str, local_facts: Path):
    """
    Copy the master's cached facts into `local_facts`.

    The fact cache is root-owned, so it is first copied with sudo into a
    per-user directory on the master, pulled with rsync, then removed.
    """
    owner = remote.settings.user or getpass.getuser()
    remote_tmp = f"/tmp/puppet-check-{owner}-{uuid.uuid4().hex[:8]}"
    q = shlex.quote

    remote.run(master, (
        f"mkdir -p {q(remote_tmp)} && "
        f"sudo rsync -a {q(facts_dir.rstrip('/'))}/ {q(remote_tmp)}/ && "
        f"sudo chown -R {q(owner)} {q(remote_tmp)}"
    ))
    try:
        remote.pull_directory(master, remote_tmp, local_facts)
    finally:
        _, err, code = remote.run(master, f"sudo rm -rf {q(remote_tmp)}", check=False)
        if code != 0:
            logger.warning(f"Could not remove {remote_tmp} on {master}: {err.strip()}")


def plan_compile(
    classes: List[str],
    masters: List[str],
    remote: RemoteShell,
    local_facts: Path,
    facts_dir: str,
    database: str = "puppet",
    resolve_name: Callable[[str], str] = socket.getfqdn,
) -> CompilePlan:
    """
    Resolve each class to a representative host on every master.

    The server list starts with the masters themselves; representative hosts
    are added once each, by canonical name.
    """
    plan = CompilePlan()
    for master in masters:
        plan.add_server(master)

    for master in masters:
        sync_facts(remote, master, facts_dir, local_facts)
        inventory = InventoryDB(remote, master, database)
        for class_name in classes:
            host = inventory.host_with_class(class_name)
            if host is None:
                logger.info(f"{master}: no host uses class {class_name}, skipping")
                continue
            server = resolve_name(host)
            plan.targets.append(CompileTarget(server, host, class_name))
            if plan.add_server(server):
                logger.info(f"{master}: {class_name} -> {server}")

    return plan


class CatalogCompiler:
    """Runs test compiles and collects their error/warning/notice lines."""

    def __init__(
        self,
        env_dir: Path,
        scratch: Path,
        compiler: str = "puppet",
        jobs: int = 4,
        on_line: Optional[Callable[[str], None]] = None,
    ):
        self.env_dir = env_dir
        self.scratch = scratch
        self.compiler = compiler
        self.jobs = jobs
        self.on_line = on_line
        self.log_path = scratch / "compile.log"
        self._lock = threading.Lock()

    @property
    def vardir(self) -> Path:
        return self.scratch / "var"

    @property
    def ssldir(self) -> Path:
        return self.scratch / "ssl"

    @property
    def facts_dir(self) -> Path:
        return self.vardir / "yaml" / "facts"

    def command(self, server: str) -> List[str]:
        return [
            self.compiler, "master",
            "--compile", server,
            "--manifest", str(self.env_dir / "manifests" / "site.pp"),
            "--modulepath", str(self.env_dir / "modules"),
            "--vardir", str(self.vardir),
            "--ssldir", str(self.ssldir),
            "--no-daemonize",
            "--color", "false",
        ]

    def _record(self, lines: List[str]):
        with self._lock:
            with open(self.log_path, "a", encoding="utf-8") as log:
                for line in lines:
                    log.write(line + "\n")
                    if self.on_line:
                        self.on_line(line)

    def compile_one(self, server: str):
        result = shell.run(self.command(server), check=False)
        output = (result.stdout or "").splitlines() + (result.stderr or "").splitlines()
        captured = [f"[{server}] {line.strip()}" for line in output if MESSAGE_MARKER.match(line)]
        if result.returncode != 0 and not any(ERROR_MARKER.match(line) for line in captured):
            captured.append(f"[{server}] err: {self.compiler} exited with status {result.returncode}")
        self._record(captured)

    def run(self, servers: List[str]) -> CompileResult:
        self.vardir.mkdir(parents=True, exist_ok=True)
        self.ssldir.mkdir(parents=True, exist_ok=True)
        self.log_path.touch()

        with ThreadPoolExecutor(max_workers=max(1, self.jobs)) as pool:
            futures = [pool.submit(self.compile_one, server) for server in servers]
            for future in futures:
                future.result()

        return CompileResult(lines=self.log_path.read_text(encoding="utf-8").splitlines())
