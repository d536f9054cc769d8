"""
Per-file syntax validation for changed files.

Each checker handles a set of file extensions and shells out to the
language's own syntax checker. Every handled file is also scanned for hard
tabs, which the style guide forbids regardless of language.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from . import shell

logger = logging.getLogger(__name__)

MAX_TAB_LINES_SHOWN = 5


@dataclass
class SyntaxFinding:
    """A single problem found in a changed file."""
    file: str
    kind: str  # syntax, tab
    detail: str
    checker: str = ""


@dataclass
class SyntaxReport:
    findings: List[SyntaxFinding] = field(default_factory=list)
    checked: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)

    @property
    def error_count(self) -> int:
        return len(self.findings)


# =============================================================================
# Checkers
# =============================================================================

class SyntaxChecker(ABC):
    """
    Base class for external syntax checkers.

    check() returns the captured checker output when the file is invalid,
    or None when it is fine.
    """

    name: str = "SyntaxChecker"
    extensions: tuple = ()

    @abstractmethod
    def check(self, path: Path) -> Optional[str]:
        pass

    def _failure_output(self, result) -> Optional[str]:
        if result.returncode == 0:
            return None
        output = "\n".join(part.strip() for part in (result.stdout, result.stderr) if part and part.strip())
        return output or f"{self.name} exited with status {result.returncode}"


class TemplateChecker(SyntaxChecker):
    """ERB templates: render to ruby source, then `ruby -c` it."""

    name = "erb"
    extensions = (".erb",)

    def check(self, path: Path) -> Optional[str]:
        result = shell.run_pipeline(["erb", "-P", "-x", "-T", "-", str(path)], ["ruby", "-c"])
        return self._failure_output(result)


class ManifestChecker(SyntaxChecker):
    name = "puppet"
    extensions = (".pp",)

    def __init__(self, compiler: str = "puppet"):
        self.compiler = compiler

    def check(self, path: Path) -> Optional[str]:
        result = shell.run([self.compiler, "parser", "validate", str(path)], check=False)
        output = self._failure_output(result)
        # Older puppet releases report some parse errors with exit status 0
        if output is None and any(line.lower().startswith(("err:", "error:")) for line in result.stderr.splitlines()):
            output = result.stderr.strip()
        return output


class RubyChecker(SyntaxChecker):
    name = "ruby"
    extensions = (".rb",)

    def check(self, path: Path) -> Optional[str]:
        return self._failure_output(shell.run(["ruby", "-c", str(path)], check=False))


class ShellChecker(SyntaxChecker):
    name = "bash"
    extensions = (".sh",)

    def check(self, path: Path) -> Optional[str]:
        return self._failure_output(shell.run(["bash", "-n", str(path)], check=False))


def build_checkers(compiler: str = "puppet") -> Dict[str, SyntaxChecker]:
    """Map file extension -> checker."""
    checkers: Dict[str, SyntaxChecker] = {}
    for checker in (TemplateChecker(), ManifestChecker(compiler), RubyChecker(), ShellChecker()):
        for extension in checker.extensions:
            checkers[extension] = checker
    return checkers


# =============================================================================
# Validation
# =============================================================================

def find_hard_tabs(path: Path) -> List[int]:
    """Line numbers (1-based) containing a hard tab."""
    lines = []
    with open(path, "rb") as f:
        for number, line in enumerate(f, start=1):
            if b"\t" in line:
                lines.append(number)
    return lines


def validate_files(root: Path, paths: Iterable[str], compiler: str = "puppet") -> SyntaxReport:
    """
    Syntax-check every file in `paths` and collect all findings.

    Nothing stops early: the report holds every problem in every file so a
    single run surfaces them all.
    """
    checkers = build_checkers(compiler)
    report = SyntaxReport()

    for rel_path in paths:
        checker = checkers.get(Path(rel_path).suffix)
        if checker is None:
            report.skipped.append(rel_path)
            continue

        full_path = root / rel_path
        report.checked.append(rel_path)
        logger.debug(f"Checking {rel_path} with {checker.name}")

        output = checker.check(full_path)
        if output is not None:
            report.findings.append(SyntaxFinding(rel_path, "syntax", output, checker.name))

        tab_lines = find_hard_tabs(full_path)
        if tab_lines:
            shown = ", ".join(str(n) for n in tab_lines[:MAX_TAB_LINES_SHOWN])
            if len(tab_lines) > MAX_TAB_LINES_SHOWN:
                shown += f" (+{len(tab_lines) - MAX_TAB_LINES_SHOWN} more)"
            report.findings.append(SyntaxFinding(rel_path, "tab", f"hard tab on line(s) {shown}", "tabs"))

    return report
