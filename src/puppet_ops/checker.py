"""
The check pipeline: change set -> syntax -> duplicates -> compile.

Each stage either returns normally or raises ValidationFailed with the exit
code of its category, after reporting every finding it made.
"""

import logging
from pathlib import Path

from rich.console import Console

from .changeset import ChangeSet, RevisionRef, resolve_changeset
from .compile import CatalogCompiler, extract_changed_classes, plan_compile
from .config import CheckerConfig
from .duplicates import (
    collect_inventory_hosts,
    collect_node_regexes,
    find_class_duplicates,
    find_node_regex_duplicates,
)
from .errors import ExitCode, ValidationFailed
from .inventory import InventoryError
from .remote import RemoteShell
from .scratch import scratch_dir
from .syntax import validate_files
from .vcs import VCSBackend

logger = logging.getLogger(__name__)


class Checker:
    def __init__(
        self,
        config: CheckerConfig,
        vcs: VCSBackend,
        remote: RemoteShell,
        force: bool = False,
        force_nodes: bool = False,
        console: Console = None,
        err_console: Console = None,
    ):
        self.config = config
        self.vcs = vcs
        self.remote = remote
        self.force = force or force_nodes
        self.force_nodes = force_nodes
        self.console = console or Console()
        self.err_console = err_console or Console(stderr=True)

    @property
    def root(self) -> Path:
        return self.config.checkout_root

    def _error(self, message: str):
        self.err_console.print(message, markup=False, highlight=False)

    def _stage(self, title: str):
        self.console.rule(title)

    def run(self, ref: RevisionRef) -> ExitCode:
        self._stage("Changes")
        changes = resolve_changeset(self.vcs, ref, self.config, self.remote)

        if not changes and not self.force:
            self.console.print(f"No changes found ({ref.describe()}), nothing to check.")
            return ExitCode.OK

        self.console.print(f"{len(changes)} changed file(s) ({ref.describe()})")
        for path in changes:
            self.console.print(f"  {path}", markup=False, highlight=False)

        self.check_syntax(changes)
        self.check_class_duplicates()

        if changes.node_manifests() or self.force_nodes:
            self.check_node_regexes()

        if not changes.manifests():
            self.console.print("No manifests changed, skipping compile check.")
        else:
            self.check_compile(changes)

        self.console.print("All checks passed.")
        return ExitCode.OK

    # Stages

    def check_syntax(self, changes: ChangeSet):
        self._stage("Syntax")
        report = validate_files(self.root, changes, self.config.compiler)

        for finding in report.findings:
            self._error(f"{finding.file}: [{finding.checker}] {finding.detail}")

        if report.error_count:
            self._error(f"{report.error_count} syntax error(s) found")
            raise ValidationFailed(code=ExitCode.SYNTAX_ERRORS)

        self.console.print(f"Syntax OK ({len(report.checked)} checked, {len(report.skipped)} without a checker)")

    def check_class_duplicates(self):
        self._stage("Duplicate classes")
        duplicates = find_class_duplicates(self.config.environment_dir, self.config.dist_dir)

        for duplicate in duplicates:
            locations = ", ".join(f"{file}:{line}" for file, line in duplicate.locations)
            self._error(f"Duplicate class {duplicate.name}: {locations}")

        if duplicates:
            self._error(f"{len(duplicates)} duplicate class definition(s) found")
            raise ValidationFailed(code=ExitCode.CLASS_DUPLICATES)

        self.console.print("No duplicate classes")

    def check_node_regexes(self):
        self._stage("Duplicate node regexes")
        try:
            hosts = collect_inventory_hosts(self.config.masters, self.remote, self.config.inventory_database)
        except InventoryError as e:
            raise ValidationFailed(str(e), code=ExitCode.NODE_DATABASE_ERROR) from e

        regexes = collect_node_regexes(self.config.environment_dir, self.config.dist_dir)
        self.console.print(f"Matching {len(hosts)} host(s) against {len(regexes)} node regex(es)")

        matches = find_node_regex_duplicates(hosts, regexes)
        for match in matches:
            patterns = ", ".join(f"/{r.pattern}/ ({r.file}:{r.line})" for r in match.regexes)
            self._error(f"WARNING: {match.host} matches {len(match.regexes)} node regexes: {patterns}")

        if matches:
            self._error(f"{len(matches)} host(s) matched by more than one node regex")
            raise ValidationFailed(code=ExitCode.NODE_REGEX_DUPLICATES)

        self.console.print("No host matches more than one node regex")

    def check_compile(self, changes: ChangeSet):
        self._stage("Compile")
        classes = extract_changed_classes(self.root, changes.manifests())
        self.console.print(f"Changed classes: {', '.join(classes) or '(none)'}")

        with scratch_dir("compile") as scratch:
            compiler = CatalogCompiler(
                self.config.environment_dir,
                scratch,
                compiler=self.config.compiler,
                jobs=self.config.jobs,
                on_line=lambda line: self.console.print(line, markup=False, highlight=False),
            )
            try:
                plan = plan_compile(
                    classes,
                    self.config.masters,
                    self.remote,
                    compiler.facts_dir,
                    self.config.facts_dir,
                    self.config.inventory_database,
                )
            except InventoryError as e:
                raise ValidationFailed(str(e), code=ExitCode.NODE_DATABASE_ERROR) from e

            for class_name in plan.unresolved(classes):
                self.console.print(f"No host found for class {class_name}, not compiled")

            if not plan.servers:
                self.console.print("No servers to compile against")
                return

            self.console.print(f"Compiling catalogs for: {' '.join(plan.servers)} (jobs={self.config.jobs})")
            result = compiler.run(plan.servers)

        if not result.ok:
            self._error(f"{len(result.errors)} compile error(s):")
            for line in result.errors:
                self._error(f"  {line}")
            raise ValidationFailed(code=ExitCode.COMPILE_ERRORS)

        self.console.print(f"Catalogs compiled cleanly for {len(plan.servers)} server(s)")
