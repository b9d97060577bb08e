"""
Command line interface for roadmap reconciliation.

Usage:
    roadmap-sync docs/ROADMAP.md            # reconcile in place
    roadmap-sync docs/ROADMAP.md --check    # exit 1 if the file would change
    roadmap-sync docs/ROADMAP.md --dry-run --json
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import tempfile
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from roadmap_sync.maintainer import (
    ReconcileResult,
    RoadmapMaintainer,
    load_config,
    load_config_from_pyproject,
)
from roadmap_sync.task_graph import (
    CycleError,
    DuplicateIdError,
    IntegrityError,
    ParseError,
    RoadmapError,
)

logger = logging.getLogger(__name__)

# Exit codes for CLI
EXIT_OK = 0
EXIT_NEEDS_UPDATE = 1
EXIT_PARSE_ERROR = 2
EXIT_CYCLE = 3
EXIT_DUPLICATE_ID = 4
EXIT_INTEGRITY_ERROR = 5
EXIT_IO_ERROR = 6


def get_exit_code(error: RoadmapError) -> int:
    """Get CLI exit code for a fatal error."""
    if isinstance(error, ParseError):
        return EXIT_PARSE_ERROR
    if isinstance(error, CycleError):
        return EXIT_CYCLE
    if isinstance(error, DuplicateIdError):
        return EXIT_DUPLICATE_ID
    if isinstance(error, IntegrityError):
        return EXIT_INTEGRITY_ERROR
    return 1


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="roadmap-sync",
        description="Recompute task status and regenerate dependency diagrams in a roadmap.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("path", type=Path, help="Roadmap Markdown file")
    parser.add_argument(
        "--check",
        action="store_true",
        help="Do not write; exit 1 if the roadmap is out of date",
    )
    parser.add_argument("--dry-run", action="store_true", help="Do not write the file")
    parser.add_argument("--json", action="store_true", help="Print the report as JSON")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help=(
            "TOML settings file, or a pyproject.toml with [tool.roadmap-sync] "
            "(default: ./pyproject.toml)"
        ),
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--log-file", type=Path, default=None, help="Also log to this file")
    return parser


def setup_logging(verbose: bool = False, log_file: Optional[Path] = None) -> None:
    """Console logging plus an optional rotating file log."""
    root = logging.getLogger("roadmap_sync")
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    root.handlers.clear()

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(logging.DEBUG if verbose else logging.WARNING)
    console.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    root.addHandler(console)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(log_file, maxBytes=1024 * 1024, backupCount=3)
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(
            logging.Formatter(
                '{"timestamp": "%(asctime)s", "level": "%(levelname)s", '
                '"message": "%(message)s", "name": "%(name)s"}'
            )
        )
        root.addHandler(handler)


def write_atomic(path: Path, text: str) -> None:
    """Replace the file's content in one step; never leaves a partial write."""
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            f.write(text)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def format_summary(result: ReconcileResult, path: Optional[Path] = None) -> str:
    """Plain-text summary of a reconciliation."""
    report = result.to_report()
    title = f"ROADMAP SYNC: {path}" if path else "ROADMAP SYNC"
    lines = [
        "=" * 60,
        title,
        "=" * 60,
        f"Blocked: {report.counts.blocked} | "
        f"To-Do: {report.counts.todo} | "
        f"In-Progress: {report.counts.in_progress} | "
        f"Done: {report.counts.done}",
    ]

    if report.moves:
        lines.append("")
        lines.append("MOVES:")
        for move in report.moves:
            lines.append(f"  {move.task_id}: {move.from_section} -> {move.to_section}")

    if report.warnings:
        lines.append("")
        lines.append("WARNINGS:")
        for warning in report.warnings:
            lines.append(f"  ! {warning.message}")

    if report.proposed_promotions:
        lines.append("")
        lines.append("READY TO START (move to In-Progress when work begins):")
        for task_id in report.proposed_promotions:
            lines.append(f"  ○ {task_id}")

    if not report.changed:
        lines.append("")
        lines.append("Roadmap is up to date.")

    return "\n".join(lines)


def main(argv: Optional[list[str]] = None) -> int:
    parser = create_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose, args.log_file)

    if args.config is None:
        config = load_config_from_pyproject(Path.cwd())
    elif args.config.is_file():
        config = load_config(args.config)
    else:
        print(f"Error: config file not found: {args.config}", file=sys.stderr)
        return EXIT_IO_ERROR

    try:
        # newline="" keeps CRLF documents byte-identical
        with open(args.path, encoding="utf-8", newline="") as f:
            text = f.read()
    except (OSError, UnicodeDecodeError) as e:
        print(f"Error: cannot read {args.path}: {e}", file=sys.stderr)
        return EXIT_IO_ERROR

    try:
        result = RoadmapMaintainer(config).reconcile(text)
    except RoadmapError as e:
        print(f"Error: {e}", file=sys.stderr)
        print(f"{args.path} was not modified.", file=sys.stderr)
        return get_exit_code(e)

    if args.json:
        print(json.dumps(result.to_report().model_dump(), indent=2))
    else:
        print(format_summary(result, args.path))

    if args.check:
        return EXIT_NEEDS_UPDATE if result.changed else EXIT_OK

    if result.changed and not args.dry_run:
        try:
            write_atomic(args.path, result.text)
        except OSError as e:
            print(f"Error: cannot write {args.path}: {e}", file=sys.stderr)
            return EXIT_IO_ERROR
        logger.info("Wrote %s", args.path)

    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
