"""CLI entry point.

``prodplan apply`` rewrites the source tree to match the product manifest;
``prodplan check`` verifies that it already does. The exit code tells which
kind of failure happened (see :class:`prodplan.errors.ExitCode`).
"""

import argparse
import sys
from pathlib import Path
from typing import Optional

import structlog

from .config import load_config
from .errors import ExitCode, PlannerError
from .logging import configure_logging
from .orchestrator import run
from .taxonomy import Mode, OnCheckFailure

log = structlog.get_logger()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="prodplan",
        description="Prune a multi-module Maven tree to the modules a product manifest requires",
    )
    parser.add_argument("mode", choices=[m.value for m in Mode],
                        help="'apply' edits the tree in place, 'check' only verifies it")
    parser.add_argument("--config", "-c", type=Path, default=None, help="YAML file with planner options")
    parser.add_argument("--basedir", "-b", type=Path, default=None, help="Source tree root (default: .)")
    parser.add_argument("--manifest", type=Path, default=None, dest="product_manifest",
                        help="Product manifest, relative to the source tree root")
    parser.add_argument("--available-nodes", type=int, default=None, help="CI nodes available for tests")
    parser.add_argument("--on-check-failure", choices=[p.value for p in OnCheckFailure], default=None,
                        help="What 'check' does when the tree is out of sync (default: FAIL)")
    parser.add_argument("--transitive-deps-command", nargs="+", default=None,
                        help="Command producing the transitive dependency lists")
    parser.add_argument("--skip", action="store_true", default=None, help="Do nothing")
    parser.add_argument("--json-logs", action="store_true", help="Log JSON lines instead of console output")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log debug events")
    return parser


def main(argv: Optional[list] = None) -> int:
    """CLI entry point. Parses arguments and delegates to :func:`prodplan.orchestrator.run`.

    Returns:
        The process exit code.
    """
    args = build_parser().parse_args(argv)
    configure_logging("DEBUG" if args.verbose else "INFO", json_format=args.json_logs)
    try:
        config = load_config(
            args.config,
            basedir=args.basedir,
            product_manifest=args.product_manifest,
            available_nodes=args.available_nodes,
            on_check_failure=args.on_check_failure,
            transitive_deps_command=args.transitive_deps_command,
            skip=args.skip,
        )
        if not args.verbose and config.log_level != "INFO":
            configure_logging(config.log_level, json_format=args.json_logs)
        plan = run(config, Mode(args.mode))
    except PlannerError as e:
        log.error("run_failed", **e.to_dict())
        print(e.message, file=sys.stderr)
        return int(e.exit_code)

    if plan is not None:
        print(f"  ✓ {len(plan.expanded_includes)} productized modules")
        print(f"  ✓ {len(plan.test_categories)} tests in {len(plan.groups)} groups")
    return int(ExitCode.SUCCESS)


if __name__ == "__main__":
    sys.exit(main())
