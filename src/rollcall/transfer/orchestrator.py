from __future__ import annotations

import logging
import shutil
import threading
import time
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path

from rollcall.errors import RetransmitMismatch
from rollcall.roll.builder import OnHashError, select_files, write_sequenced_roll
from rollcall.roll.models import Roll, sequenced_roll_name
from rollcall.roll.parser import check_retransmit, parse_sequenced_roll
from rollcall.roll.records import ROLL_SUFFIX

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TransferRequest:
    source_root: Path
    pattern: str
    recurse: bool
    move: bool
    scope: str
    sequence: int
    retransmit_of: int
    wormhole_entry: Path
    dest_subdir: str = ""
    sort: bool = False
    with_stats: bool = False

    @property
    def destination(self) -> Path:
        return Path(self.wormhole_entry) / self.dest_subdir if self.dest_subdir else Path(self.wormhole_entry)


@dataclass(frozen=True, slots=True)
class TransferResult:
    roll_path: Path
    delivered_roll: Path | None
    transferred: tuple[str, ...] = ()
    failed: tuple[str, ...] = ()
    elapsed: timedelta | None = field(default=None)

    @property
    def ok(self) -> bool:
        return self.delivered_roll is not None and not self.failed


def _check_against_original(request: TransferRequest, roll: Roll) -> None:
    if not request.retransmit_of:
        return
    original_path = Path(request.source_root) / sequenced_roll_name(request.scope, request.retransmit_of)
    if not original_path.is_file():
        logger.warning(
            "Original roll %s not found; retransmit of %d is not compared", original_path, request.retransmit_of
        )
        return
    check_retransmit(parse_sequenced_roll(original_path), roll)
    logger.info("Retransmit matches original roll %s", original_path.name)


def _deliver(source: Path, target: Path, *, move: bool) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    if move:
        # Existing targets are overwritten.
        if target.exists():
            target.unlink()
        shutil.move(str(source), str(target))
    else:
        shutil.copy2(source, target)


def run_transfer(
    request: TransferRequest,
    *,
    workers: int | None = None,
    progress: bool = False,
    cancel_event: threading.Event | None = None,
) -> TransferResult:
    """Roll the selected files, then hand them and the roll to the wormhole entry.

    Files go first and the roll last, so the roll's arrival marks a complete
    batch. Per-file delivery failures are logged and reported in the result.
    """

    started = time.perf_counter()
    source_root = Path(request.source_root)

    files = [
        p
        for p in select_files(source_root, request.pattern, recurse=request.recurse)
        if p.suffix != ROLL_SUFFIX
    ]

    roll_path = write_sequenced_roll(
        request.scope,
        request.sequence,
        source_root,
        files,
        on_error=OnHashError.EXCLUDE,
        retransmit_of=request.retransmit_of,
        sort=request.sort,
        workers=workers,
        progress=progress,
        cancel_event=cancel_event,
    )
    logger.info("Created roll: %s", roll_path)

    # Read back what was written before anything leaves the source root.
    roll = parse_sequenced_roll(roll_path)
    try:
        _check_against_original(request, roll)
    except RetransmitMismatch:
        logger.error("Retransmit roll %s does not match its original; nothing delivered", roll_path)
        raise

    destination = request.destination
    transferred: list[str] = []
    failed: list[str] = []
    for record in roll.records:
        source = source_root / record.relative_path
        target = destination / record.relative_path
        try:
            _deliver(source, target, move=request.move)
        except OSError as exc:
            logger.error("Failed to %s %s: %s", "move" if request.move else "copy", source, exc)
            failed.append(record.relative_path)
            continue
        transferred.append(record.relative_path)

    delivered_roll: Path | None = destination / roll_path.name
    try:
        destination.mkdir(parents=True, exist_ok=True)
        shutil.copy2(roll_path, delivered_roll)
    except OSError as exc:
        logger.error("Failed to deliver roll %s: %s", roll_path, exc)
        delivered_roll = None

    elapsed = timedelta(seconds=time.perf_counter() - started)
    if request.with_stats:
        logger.info("Roll generated and files %s in %s", "moved" if request.move else "copied", elapsed)

    return TransferResult(
        roll_path=roll_path,
        delivered_roll=delivered_roll,
        transferred=tuple(transferred),
        failed=tuple(failed),
        elapsed=elapsed,
    )


__all__ = ["TransferRequest", "TransferResult", "run_transfer"]
