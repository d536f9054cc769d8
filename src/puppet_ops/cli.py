#!/usr/bin/env python3
"""
check-puppet-syntax - pre-commit / CI validation for the puppet checkout.

Diffs the checkout, syntax-checks changed files, looks for duplicate class
and node definitions, and test-compiles catalogs for hosts that use the
changed classes.

Exit codes:
    0  success, or nothing to check
    1  syntax errors
    2  bad arguments          3  missing checkout
    4  mutually exclusive     5  invalid revision
    6  unknown VCS            7  duplicate classes
    8  node database error    9  duplicate node regexes
   10  compile errors        11  external tool failure

Usage:
    check-puppet-syntax
    check-puppet-syntax -r HEAD~3:HEAD
    check-puppet-syntax -d -e production -p "puppet1 puppet2"
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from rich.console import Console

from .changeset import RevisionRef
from .checker import Checker
from .config import DEFAULT_CHECKOUT_ROOT, CheckerConfig, ConfigError
from .errors import (
    CheckAbort,
    ExitCode,
    MissingCheckoutError,
    ToolError,
    UsageError,
)
from .inventory import InventoryError
from .remote import RemoteShell
from .vcs import detect_vcs

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="check-puppet-syntax",
        description="Syntax, duplicate and compile checks for changed puppet code",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    %(prog)s                       # working tree vs. origin
    %(prog)s -r abc123             # working tree vs. abc123
    %(prog)s -r abc123:def456      # between two revisions
    %(prog)s -d -p "puppet1"       # working tree vs. what puppet1 runs
        """,
    )
    parser.add_argument("-d", dest="deployed", action="store_true", help="Diff against the deployed revision on the first master")
    parser.add_argument("-e", dest="environment", help="Environment directory under the checkout root")
    parser.add_argument("-f", dest="force", action="store_true", help="Run the checks even when nothing changed")
    parser.add_argument("-F", dest="force_nodes", action="store_true", help="Like -f, and always run the node regex check")
    parser.add_argument("-m", dest="vcs", help="Version control system: git, svn or git-svn (default: auto-detect)")
    parser.add_argument("-p", dest="masters", help='Space-separated list of puppet masters, e.g. "puppet1 puppet2"')
    parser.add_argument("-P", dest="checkout_root", type=Path, help=f"Checkout root (default: {DEFAULT_CHECKOUT_ROOT})")
    parser.add_argument("-r", dest="revision", help="Revision to diff against, or rev1:rev2 range")
    parser.add_argument("-j", dest="jobs", type=int, help="Parallel catalog compiles (default: 4)")
    parser.add_argument("-c", dest="config_file", type=Path, help="YAML config file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def load_config(args: argparse.Namespace) -> CheckerConfig:
    config = CheckerConfig.load(args.config_file)
    config.apply_overrides({
        "checkout_root": args.checkout_root,
        "environment": args.environment,
        "masters": args.masters,
        "vcs": args.vcs,
        "jobs": args.jobs,
    })

    errors = config.validate()
    if errors:
        raise UsageError("; ".join(errors))

    if not config.checkout_root.is_dir():
        raise MissingCheckoutError(f"Checkout not found: {config.checkout_root}")
    if not config.environment_dir.is_dir():
        raise UsageError(f"Environment directory not found: {config.environment_dir}")
    return config


def run(args: argparse.Namespace, console: Console, err_console: Console) -> ExitCode:
    # Flag combinations are rejected before anything touches the checkout
    ref = RevisionRef.from_args(args.revision, args.deployed)
    config = load_config(args)
    vcs = detect_vcs(config.checkout_root, config.vcs)
    logger.debug(f"Using {vcs.name} at {config.checkout_root}, environment dir {config.environment_dir}")

    checker = Checker(
        config,
        vcs,
        RemoteShell(config.ssh),
        force=args.force,
        force_nodes=args.force_nodes,
        console=console,
        err_console=err_console,
    )
    return checker.run(ref)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    console = Console()
    err_console = Console(stderr=True)

    try:
        code = run(args, console, err_console)
    except CheckAbort as e:
        if str(e):
            err_console.print(f"Error: {e}", markup=False, highlight=False)
        return int(e.code)
    except ConfigError as e:
        err_console.print(f"Config error: {e}", markup=False, highlight=False)
        return int(ExitCode.BAD_ARGUMENTS)
    except InventoryError as e:
        err_console.print(f"Inventory error: {e}", markup=False, highlight=False)
        return int(ExitCode.NODE_DATABASE_ERROR)
    except ToolError as e:
        err_console.print(f"Error: {e}", markup=False, highlight=False)
        return int(ExitCode.TOOL_FAILURE)

    return int(code)


if __name__ == "__main__":
    sys.exit(main())
