from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from rollcall.errors import InvalidEncoding, RollIoError
from rollcall.integrity.hash_utils import digest_file
from rollcall.integrity.hex_codec import from_hex
from rollcall.roll.models import FileRecord, Roll
from rollcall.roll.workers import run_bounded

logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    MISSING = "missing"
    BAD_LENGTH = "bad_length"
    BAD_HASH = "bad_hash"
    GOOD_HASHED = "good_hashed"
    GOOD_UNHASHED = "good_unhashed"


_FAILURES = frozenset({Outcome.MISSING, Outcome.BAD_LENGTH, Outcome.BAD_HASH})


@dataclass(frozen=True, slots=True)
class RecordCheck:
    outcome: Outcome
    path: str
    detail: str = ""


@dataclass(frozen=True, slots=True)
class Issue:
    kind: Outcome
    path: str
    detail: str


@dataclass(frozen=True, slots=True)
class Summary:
    total: int = 0
    missing: int = 0
    bad_length: int = 0
    bad_hash: int = 0
    good_hashed: int = 0
    good_unhashed: int = 0
    malformed_lines: int = 0
    issues: tuple[Issue, ...] = ()

    @property
    def ok(self) -> bool:
        return self.missing == 0 and self.bad_length == 0 and self.bad_hash == 0

    def counts(self) -> dict[str, int]:
        return {
            "total": self.total,
            "missing": self.missing,
            "bad_length": self.bad_length,
            "bad_hash": self.bad_hash,
            "good_hashed": self.good_hashed,
            "good_unhashed": self.good_unhashed,
            "malformed_lines": self.malformed_lines,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "counts": self.counts(),
            "issues": [
                {"kind": issue.kind.value, "path": issue.path, "detail": issue.detail}
                for issue in self.issues
            ],
        }


def _resolve_under(root: Path, relative_path: str) -> Path | None:
    rel = Path(relative_path)
    if rel.is_absolute():
        return None
    base = os.path.normpath(os.path.abspath(root))
    candidate = os.path.normpath(os.path.join(base, rel))
    if os.path.commonpath([base, candidate]) != base:
        return None
    return Path(candidate)


def check_record(record: FileRecord, root: str | Path, *, check_hashes: bool = True) -> RecordCheck:
    """Reconcile one record against the live file. Never raises for file problems."""

    path = record.relative_path
    live = _resolve_under(Path(root), path)
    if live is None:
        return RecordCheck(Outcome.MISSING, path, "path escapes the verification root")

    try:
        if not live.is_file():
            return RecordCheck(Outcome.MISSING, path, "not found")
        size = live.stat().st_size
    except OSError as exc:
        return RecordCheck(Outcome.MISSING, path, f"cannot stat: {exc}")

    if size != record.size:
        return RecordCheck(Outcome.BAD_LENGTH, path, f"expected {record.size} bytes, found {size}")

    if not check_hashes or not record.digest:
        return RecordCheck(Outcome.GOOD_UNHASHED, path)

    try:
        expected = from_hex(record.digest)
    except InvalidEncoding as exc:
        return RecordCheck(Outcome.BAD_HASH, path, f"recorded digest unreadable: {exc}")
    try:
        actual = digest_file(live)
    except RollIoError as exc:
        return RecordCheck(Outcome.BAD_HASH, path, f"cannot read file: {exc}")

    if actual != expected:
        return RecordCheck(Outcome.BAD_HASH, path, "content digest differs")
    return RecordCheck(Outcome.GOOD_HASHED, path)


def verify_roll(
    roll: Roll,
    root: str | Path,
    *,
    check_hashes: bool = True,
    workers: int | None = 1,
    progress: bool = False,
    cancel_event: threading.Event | None = None,
) -> Summary:
    """Check every record of ``roll`` against the files under ``root``.

    Read-only and single pass. Problems are counted, not raised, so the
    returned summary covers every record.
    """

    checks = run_bounded(
        lambda record: check_record(record, root, check_hashes=check_hashes),
        roll.records,
        workers=workers,
        desc="Verifying",
        progress=progress,
        cancel_event=cancel_event,
    )

    tally = {outcome: 0 for outcome in Outcome}
    issues: list[Issue] = []
    for check in checks:
        tally[check.outcome] += 1
        if check.outcome in _FAILURES:
            logger.error("%s: %s (%s)", check.outcome.value, check.path, check.detail)
            issues.append(Issue(check.outcome, check.path, check.detail))

    return Summary(
        total=len(checks),
        missing=tally[Outcome.MISSING],
        bad_length=tally[Outcome.BAD_LENGTH],
        bad_hash=tally[Outcome.BAD_HASH],
        good_hashed=tally[Outcome.GOOD_HASHED],
        good_unhashed=tally[Outcome.GOOD_UNHASHED],
        malformed_lines=len(roll.malformed),
        issues=tuple(issues),
    )


def format_summary(summary: Summary) -> list[str]:
    lines = [
        f"Summary files: {summary.total}",
        f"        good : hashed={summary.good_hashed} unhashed={summary.good_unhashed}",
    ]
    if not summary.ok:
        lines.append(
            f"        bad  : missing={summary.missing} bad_length={summary.bad_length} "
            f"bad_hash={summary.bad_hash}"
        )
    if summary.malformed_lines:
        lines.append(f"        ugly : {summary.malformed_lines} strange lines in roll file")
    return lines


__all__ = [
    "Issue",
    "Outcome",
    "RecordCheck",
    "Summary",
    "check_record",
    "format_summary",
    "verify_roll",
]
