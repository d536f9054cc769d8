"""
Duplicate-definition checks over the whole environment tree.

Class duplicates are a full-tree property, independent of what changed.
Node regex duplicates compare every node regex against the host names the
masters' inventories know about.
"""

import os
import re
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .changeset import is_node_manifest
from .inventory import InventoryDB
from .parsers import ManifestSyntaxError, parse_class_definitions, parse_node_definitions
from .remote import RemoteShell

logger = logging.getLogger(__name__)

EXCLUDE_DIRS: Set[str] = {".git", ".svn", ".hg"}


@dataclass
class ClassDuplicate:
    name: str
    locations: List[Tuple[str, int]] = field(default_factory=list)


@dataclass(frozen=True)
class NodeRegex:
    pattern: str
    file: str
    line: int


@dataclass
class NodeMatch:
    """A host matched by more than one node regex."""
    host: str
    regexes: List[NodeRegex]


def iter_manifests(env_dir: Path, dist_dir: Optional[str] = "dist") -> List[Path]:
    """All .pp files under `env_dir`, skipping VCS metadata and the dist subtree."""
    excluded = (env_dir / dist_dir).resolve() if dist_dir else None
    manifests = []
    for root, dirs, files in os.walk(env_dir):
        root_path = Path(root)
        dirs[:] = sorted(
            d for d in dirs
            if d not in EXCLUDE_DIRS and (excluded is None or (root_path / d).resolve() != excluded)
        )
        for name in sorted(files):
            if name.endswith(".pp"):
                manifests.append(root_path / name)
    return manifests


def _read_manifest(path: Path) -> Optional[str]:
    try:
        return path.read_text(encoding="utf-8", errors="ignore")
    except OSError as e:
        logger.warning(f"Cannot read {path}: {e}")
        return None


def _relative(path: Path, root: Path) -> str:
    try:
        return str(path.relative_to(root))
    except ValueError:
        return str(path)


# =============================================================================
# Class duplicates
# =============================================================================

def find_class_duplicates(env_dir: Path, dist_dir: Optional[str] = "dist") -> List[ClassDuplicate]:
    """Every class name defined more than once anywhere under `env_dir`."""
    definitions: Dict[str, ClassDuplicate] = {}

    for path in iter_manifests(env_dir, dist_dir):
        content = _read_manifest(path)
        if content is None:
            continue
        try:
            classes = parse_class_definitions(content)
        except ManifestSyntaxError as e:
            logger.warning(f"Skipping {_relative(path, env_dir)} in duplicate scan: {e}")
            continue
        for definition in classes:
            entry = definitions.setdefault(definition.name, ClassDuplicate(definition.name))
            entry.locations.append((_relative(path, env_dir), definition.line))

    return [entry for name, entry in sorted(definitions.items()) if len(entry.locations) > 1]


# =============================================================================
# Node regex duplicates
# =============================================================================

def collect_node_regexes(env_dir: Path, dist_dir: Optional[str] = "dist") -> List[NodeRegex]:
    regexes = []
    for path in iter_manifests(env_dir, dist_dir):
        rel_path = _relative(path, env_dir)
        if not is_node_manifest(rel_path):
            continue
        content = _read_manifest(path)
        if content is None:
            continue
        try:
            nodes = parse_node_definitions(content)
        except ManifestSyntaxError as e:
            logger.warning(f"Skipping {rel_path} in node regex scan: {e}")
            continue
        for node in nodes:
            regexes.extend(NodeRegex(pattern, rel_path, node.line) for pattern in node.regexes)
    return regexes


def to_python_regex(pattern: str) -> str:
    """Translate the ruby-only anchors puppet node regexes commonly use."""
    return pattern.replace(r"\z", r"\Z").replace(r"\h", "[0-9a-fA-F]")


def collect_inventory_hosts(masters: Iterable[str], remote: RemoteShell, database: str = "puppet") -> List[str]:
    """Distinct host names known to any master's inventory. Raises InventoryError."""
    hosts: Set[str] = set()
    for master in masters:
        names = InventoryDB(remote, master, database).host_names()
        logger.info(f"{master}: {len(names)} hosts in inventory")
        hosts.update(names)
    return sorted(hosts)


def find_node_regex_duplicates(hosts: Iterable[str], regexes: List[NodeRegex]) -> List[NodeMatch]:
    """Hosts matched by two or more node regexes."""
    compiled = []
    for regex in regexes:
        try:
            compiled.append((regex, re.compile(to_python_regex(regex.pattern))))
        except re.error as e:
            logger.warning(f"Cannot compile node regex /{regex.pattern}/ ({regex.file}:{regex.line}): {e}")

    matches = []
    for host in hosts:
        matching = [regex for regex, pattern in compiled if pattern.search(host)]
        if len(matching) > 1:
            matches.append(NodeMatch(host, matching))
    return matches
