from __future__ import annotations

import argparse
import logging
import os
import time
from datetime import timedelta
from pathlib import Path

from rollcall.config import load_config_from_env
from rollcall.errors import IntegrityMismatch, RollError
from rollcall.integrity.stable_json import write_json_report
from rollcall.log_setup import setup_logging
from rollcall.roll.builder import OnHashError, write_standalone_roll
from rollcall.roll.parser import find_latest_roll, parse_standalone_roll
from rollcall.roll.verifier import format_summary, verify_roll

logger = logging.getLogger("rollcall.cli")

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_NOT_FOUND = 2


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rollcall",
        description=(
            "Generate a roll (size + SHA-256 per file) for a directory, "
            "or check the files present against the latest roll."
        ),
    )
    parser.add_argument(
        "-g",
        "--generate-roll",
        action="store_true",
        help="Generate a roll file for the files present",
    )
    parser.add_argument(
        "-c",
        "--check-roll",
        action="store_true",
        help="Compare the latest roll file with the files present",
    )
    parser.add_argument(
        "-r",
        "--root",
        default=".",
        help="Folder containing the files to examine, and where the roll file is created",
    )
    parser.add_argument("--no-recurse", action="store_true", help="Do not include subdirectories")
    parser.add_argument(
        "--manifest-prefix",
        default=None,
        help="File name prefix for roll files (default: ROLLCALL_MANIFEST_PREFIX or RollCall-)",
    )
    parser.add_argument("--with-stats", action="store_true", help="Report processing times")
    parser.add_argument(
        "-q",
        "--quick",
        action="store_true",
        help="Do not generate or check hashes; only presence and size",
    )
    parser.add_argument(
        "--for-testing",
        action="store_true",
        help="Order files alphabetically (slower, reproducible output)",
    )
    parser.add_argument(
        "--summary-json",
        default=None,
        help="Also write the check summary as JSON to this path",
    )
    parser.add_argument("--workers", type=int, default=None, help="Hashing threads (default: one per CPU)")
    parser.add_argument("--log-level", default=None, help="Console log level (default: INFO)")
    parser.add_argument("--log-file", default=None, help="Also log at DEBUG to this file")
    return parser


def _generate(root: Path, args: argparse.Namespace, *, prefix: str, workers: int | None, progress: bool) -> Path:
    started = time.perf_counter()
    roll_path = write_standalone_roll(
        root,
        prefix=prefix,
        on_error=OnHashError.EMPTY_DIGEST,
        recurse=not args.no_recurse,
        with_hashes=not args.quick,
        sort=args.for_testing,
        with_stats=args.with_stats,
        workers=workers,
        progress=progress,
    )
    if args.with_stats:
        print(f"Roll generated in {timedelta(seconds=time.perf_counter() - started)}")
    print(f"Roll generated: {os.path.relpath(roll_path, root)}")
    return roll_path


def _check(root: Path, args: argparse.Namespace, *, prefix: str, workers: int | None, progress: bool) -> int:
    started = time.perf_counter()
    try:
        roll_path = find_latest_roll(root, prefix)
    except FileNotFoundError as exc:
        logger.error("%s", exc)
        return EXIT_NOT_FOUND

    try:
        roll = parse_standalone_roll(roll_path)
    except IntegrityMismatch as exc:
        logger.error("%s", exc)
        return EXIT_FAILED

    print(f"Checking Roll : {os.path.relpath(roll_path, root)}")
    summary = verify_roll(roll, root, check_hashes=not args.quick, workers=workers, progress=progress)

    if args.with_stats:
        print(f"Check completed in {timedelta(seconds=time.perf_counter() - started)}")
    for line in format_summary(summary):
        print(line)

    if args.summary_json:
        payload = summary.to_dict()
        payload["roll"] = roll_path.name
        write_json_report(args.summary_json, payload)

    return EXIT_OK if summary.ok else EXIT_FAILED


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not (args.generate_roll or args.check_roll):
        parser.error("at least one of --generate-roll / --check-roll is required")
    if args.workers is not None and args.workers < 1:
        parser.error("--workers must be a positive integer")

    try:
        config = load_config_from_env()
    except RuntimeError as exc:
        parser.error(str(exc))

    setup_logging(args.log_level or config.log_level, args.log_file or config.log_file)
    prefix = args.manifest_prefix or config.manifest_prefix
    workers = args.workers or config.workers

    root = Path(args.root)
    if not root.is_dir():
        logger.error("Root is not a directory: %s", root)
        return EXIT_NOT_FOUND

    try:
        if args.generate_roll:
            _generate(root, args, prefix=prefix, workers=workers, progress=config.progress)
        if args.check_roll:
            return _check(root, args, prefix=prefix, workers=workers, progress=config.progress)
    except (RollError, OSError) as exc:
        logger.error("%s", exc)
        return EXIT_FAILED

    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
