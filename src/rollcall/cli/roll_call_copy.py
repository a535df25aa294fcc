from __future__ import annotations

import argparse
import logging
from pathlib import Path

from rollcall.config import load_config_from_env
from rollcall.errors import RollError
from rollcall.log_setup import setup_logging
from rollcall.roll.models import U64_MAX
from rollcall.transfer.orchestrator import TransferRequest, run_transfer

logger = logging.getLogger("rollcall.cli")


def _u64(text: str) -> int:
    try:
        value = int(text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"not an integer: {text!r}") from exc
    if not 0 <= value <= U64_MAX:
        raise argparse.ArgumentTypeError(f"must be between 0 and {U64_MAX}: {text!r}")
    return value


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rollcall-copy",
        description=(
            "Roll a batch of files under a scope and transmit number, then copy or move "
            "them and the roll into the wormhole entry folder."
        ),
        epilog=(
            "Example: rollcall-copy --source-root . --file '*' --scope photos-2022 "
            "--transmit-number 27 --wormhole-entry /wormhole/outbound/route66 --delete-originals"
        ),
    )
    parser.add_argument("-r", "--source-root", required=True, help="Folder containing the files to transfer")
    parser.add_argument(
        "--file",
        required=True,
        help="File(s) to transfer. Wildcards are accepted. May be a path relative to --source-root",
    )
    parser.add_argument("--recurse", action="store_true", help="Include matching files in subdirectories")
    parser.add_argument(
        "--delete-originals",
        action="store_true",
        help="Delete the original files (move instead of copy)",
    )
    parser.add_argument("--scope", required=True, help="Scope identifier for a sequence of transmissions")
    parser.add_argument(
        "--transmit-number",
        required=True,
        type=_u64,
        help="Transmit number within the scope. Starts at 1, never reused; 0 means unordered",
    )
    parser.add_argument(
        "--resend",
        type=_u64,
        default=0,
        help="Normally 0. Otherwise the transmit number this transfer replicates",
    )
    parser.add_argument("--wormhole-entry", required=True, help="Folder that is the entry to the wormhole")
    parser.add_argument(
        "--dest-subdir",
        default="",
        help="Subdirectory under the wormhole entry; created when missing",
    )
    parser.add_argument("--with-stats", action="store_true", help="Report processing times")
    parser.add_argument(
        "--for-testing",
        action="store_true",
        help="Order files alphabetically in the roll (reproducible output)",
    )
    parser.add_argument("--workers", type=int, default=None, help="Hashing threads (default: one per CPU)")
    parser.add_argument("--log-level", default=None, help="Console log level (default: INFO)")
    parser.add_argument("--log-file", default=None, help="Also log at DEBUG to this file")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.workers is not None and args.workers < 1:
        parser.error("--workers must be a positive integer")

    try:
        config = load_config_from_env()
    except RuntimeError as exc:
        parser.error(str(exc))

    setup_logging(args.log_level or config.log_level, args.log_file or config.log_file)

    request = TransferRequest(
        source_root=Path(args.source_root),
        pattern=args.file,
        recurse=args.recurse,
        move=args.delete_originals,
        scope=args.scope,
        sequence=args.transmit_number,
        retransmit_of=args.resend,
        wormhole_entry=Path(args.wormhole_entry),
        dest_subdir=args.dest_subdir,
        sort=args.for_testing,
        with_stats=args.with_stats,
    )

    try:
        result = run_transfer(request, workers=args.workers or config.workers, progress=config.progress)
    except (RollError, OSError) as exc:
        logger.critical("Transfer failed: %s", exc)
        return 1

    print(f"Roll created : {result.roll_path}")
    print(f"Transferred  : {len(result.transferred)} file(s)")
    if result.failed:
        print(f"Failed       : {len(result.failed)} file(s)")
        for rel in result.failed:
            print(f"- {rel}")
    if result.delivered_roll is None:
        print("Roll was not delivered")
    return 0 if result.ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
