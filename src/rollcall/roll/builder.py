from __future__ import annotations

import logging
import os
import threading
import time
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime, timedelta
from enum import Enum
from pathlib import Path

from rollcall.errors import BuildError, RollIoError
from rollcall.integrity.hash_utils import digest_file
from rollcall.integrity.hex_codec import to_hex
from rollcall.roll.models import (
    SUPPORTED_FORMATS,
    U64_MAX,
    FileRecord,
    FormatType,
    RecordOutcome,
    Roll,
    sequenced_roll_name,
)
from rollcall.roll.records import (
    CHECKED_REGION_OFFSET,
    HEADER_PREFIX,
    LINE_BREAKS,
    PLACEHOLDER_LINE,
    STANDALONE_SUFFIX,
    TEMP_SUFFIX,
    format_record_line,
    is_representable_path,
)
from rollcall.roll.workers import run_bounded

logger = logging.getLogger(__name__)


class OnHashError(str, Enum):
    """What to do with a file whose content could not be hashed."""

    EMPTY_DIGEST = "empty-digest"  # keep it, size-only
    EXCLUDE = "exclude"  # drop it from the roll
    FAIL = "fail"  # abort the build


def _abspath(path: str | Path) -> Path:
    return Path(os.path.abspath(path))


def select_files(
    root: str | Path,
    pattern: str = "*",
    *,
    recurse: bool = False,
    exclude: Iterable[str | Path] = (),
) -> list[Path]:
    """Files under ``root`` matching ``pattern``, in filesystem enumeration order."""

    root_path = Path(root)
    if not root_path.is_dir():
        raise BuildError(f"source root is not a directory: {root_path}")

    excluded = {_abspath(p) for p in exclude}
    matches = root_path.rglob(pattern) if recurse else root_path.glob(pattern)

    files: list[Path] = []
    for p in matches:
        if not p.is_file():
            continue
        if _abspath(p) in excluded:
            continue
        files.append(p)
    return files


def make_file_record(path: str | Path, root: str | Path, *, with_hash: bool = True) -> RecordOutcome:
    source = Path(path)
    try:
        rel = _abspath(source).relative_to(_abspath(root)).as_posix()
    except ValueError:
        return RecordOutcome(source, error=f"{source} is not under {root}")

    if not is_representable_path(rel):
        return RecordOutcome(source, error=f"path cannot be written as a record line: {rel!r}")

    try:
        size = source.stat().st_size
    except OSError as exc:
        return RecordOutcome(source, error=f"failed to stat {source}: {exc}")

    if not with_hash:
        return RecordOutcome(source, FileRecord(rel, size))

    try:
        digest = to_hex(digest_file(source))
    except RollIoError as exc:
        return RecordOutcome(source, FileRecord(rel, size), error=str(exc))

    return RecordOutcome(source, FileRecord(rel, size, digest))


def build_records(
    root: str | Path,
    files: Iterable[str | Path],
    *,
    on_error: OnHashError,
    with_hashes: bool = True,
    sort: bool = False,
    workers: int | None = None,
    progress: bool = False,
    cancel_event: threading.Event | None = None,
) -> tuple[FileRecord, ...]:
    sources = list(files)
    outcomes = run_bounded(
        lambda p: make_file_record(p, root, with_hash=with_hashes),
        sources,
        workers=workers,
        desc="Hashing" if with_hashes else "Listing",
        progress=progress,
        cancel_event=cancel_event,
    )

    records: list[FileRecord] = []
    for outcome in outcomes:
        if outcome.ok:
            records.append(outcome.record)  # type: ignore[arg-type]
            continue
        if on_error is OnHashError.FAIL:
            raise BuildError(f"failed to process {_display_text(outcome.source)}: {outcome.error}")
        if outcome.record is None:
            logger.error("Skipping %s: %s", _display_text(outcome.source), outcome.error)
            continue
        if on_error is OnHashError.EXCLUDE:
            logger.error("No hash generated for %s, excluded: %s", outcome.record.relative_path, outcome.error)
            continue
        logger.warning(
            "No hash generated for %s, recorded size-only: %s", outcome.record.relative_path, outcome.error
        )
        records.append(outcome.record)

    if sort:
        records.sort(key=lambda r: r.relative_path)
    return tuple(records)


def _is_utf8(text: str) -> bool:
    try:
        text.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


def _validate_header_fields(scope: str, sequence: int, retransmit_of: int) -> None:
    if not scope or any(ch in LINE_BREAKS or ch in ("/", "\\", "\0") for ch in scope) or not _is_utf8(scope):
        raise BuildError(f"scope must be a non-empty single-line name without path separators: {scope!r}")
    for name, value in (("sequence", sequence), ("retransmit_of", retransmit_of)):
        if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= U64_MAX:
            raise BuildError(f"{name} must be an unsigned 64-bit integer, got {value!r}")
    if retransmit_of and sequence and retransmit_of >= sequence:
        raise BuildError(
            f"retransmit_of={retransmit_of} must reference an earlier sequence than {sequence}"
        )


def build_roll(
    scope: str,
    sequence: int,
    retransmit_of: int,
    root: str | Path,
    files: Iterable[str | Path],
    *,
    on_error: OnHashError,
    sort: bool = False,
    allow_empty: bool = False,
    exclude: Iterable[str | Path] = (),
    workers: int | None = None,
    progress: bool = False,
    cancel_event: threading.Event | None = None,
) -> Roll:
    """Hash ``files`` and assemble an in-memory sequenced roll."""

    _validate_header_fields(scope, sequence, retransmit_of)

    excluded = {_abspath(p) for p in exclude}
    sources = [p for p in files if _abspath(p) not in excluded]
    if not sources and not allow_empty:
        raise BuildError("no files matched the selection")

    records = build_records(
        root,
        sources,
        on_error=on_error,
        sort=sort,
        workers=workers,
        progress=progress,
        cancel_event=cancel_event,
    )
    return Roll(
        format_version=FormatType.TEXT_V01,
        scope=scope,
        sequence=sequence,
        retransmit_of=retransmit_of,
        records=records,
    )


def serialize_sequenced(roll: Roll) -> str:
    lines = [
        PLACEHOLDER_LINE,
        f"{HEADER_PREFIX}{roll.format_version.name}",
        f"{HEADER_PREFIX}{roll.scope}",
        f"{HEADER_PREFIX}{roll.sequence}",
        f"{HEADER_PREFIX}{roll.retransmit_of}",
    ]
    lines.extend(format_record_line(r) for r in roll.records)
    return "\n".join(lines) + "\n"


def finalize_by_header_patch(path: str | Path) -> str:
    """Replace the placeholder digest line with the digest of bytes 66..EOF.

    The replacement has the same width, so file length and every later
    offset are unchanged. Returns the hex digest written.
    """

    roll_path = Path(path)
    digest_hex = to_hex(digest_file(roll_path, start_offset=CHECKED_REGION_OFFSET))
    header = f"{HEADER_PREFIX}{digest_hex}".encode("ascii")

    with roll_path.open("r+b") as f:
        if f.read(CHECKED_REGION_OFFSET) != PLACEHOLDER_LINE.encode("ascii"):
            raise BuildError(f"roll header is not an unfinalized placeholder: {roll_path}")
        f.seek(0)
        f.write(header)
    return digest_hex


def write_roll_artifact(roll: Roll, out_dir: str | Path) -> Path:
    if roll.format_version not in SUPPORTED_FORMATS:
        raise BuildError(f"cannot write format {roll.format_version.name}")
    _validate_header_fields(roll.scope, roll.sequence, roll.retransmit_of)

    out_path = Path(out_dir)
    roll_path = out_path / roll.artifact_name
    try:
        out_path.mkdir(parents=True, exist_ok=True)
        f = roll_path.open("x", encoding="utf-8", newline="\n")
    except FileExistsError as exc:
        raise BuildError(f"roll already exists and sequence numbers are never reused: {roll_path}") from exc
    except OSError as exc:
        raise BuildError(f"failed to create roll {roll_path}: {exc}") from exc

    # No partial roll survives a failed write.
    try:
        with f:
            f.write(serialize_sequenced(roll))
        finalize_by_header_patch(roll_path)
    except OSError as exc:
        roll_path.unlink(missing_ok=True)
        raise BuildError(f"failed to write roll {roll_path}: {exc}") from exc
    except Exception:
        roll_path.unlink(missing_ok=True)
        raise

    logger.debug("Wrote %s with %d records", roll_path, len(roll.records))
    return roll_path


def write_sequenced_roll(
    scope: str,
    sequence: int,
    root: str | Path,
    files: Iterable[str | Path],
    *,
    on_error: OnHashError,
    retransmit_of: int = 0,
    out_dir: str | Path | None = None,
    sort: bool = False,
    allow_empty: bool = False,
    workers: int | None = None,
    progress: bool = False,
    cancel_event: threading.Event | None = None,
) -> Path:
    """Build and finalize ``<scope>-<sequence>.roll`` (in ``root`` unless ``out_dir`` is given)."""

    target_dir = Path(out_dir) if out_dir is not None else Path(root)
    roll_path = target_dir / sequenced_roll_name(scope, sequence)
    if roll_path.exists():
        raise BuildError(f"roll already exists and sequence numbers are never reused: {roll_path}")

    roll = build_roll(
        scope,
        sequence,
        retransmit_of,
        root,
        files,
        on_error=on_error,
        sort=sort,
        allow_empty=allow_empty,
        exclude=[roll_path],
        workers=workers,
        progress=progress,
        cancel_event=cancel_event,
    )
    return write_roll_artifact(roll, target_dir)


def write_retransmit_roll(original: Roll, *, sequence: int, out_dir: str | Path) -> Path:
    """Write a new roll repeating ``original``'s records under a fresh sequence number."""

    if original.sequence == 0:
        raise BuildError("a roll with sequence 0 cannot be retransmitted (0 means 'not a retransmit')")
    retransmit = Roll(
        format_version=FormatType.TEXT_V01,
        scope=original.scope,
        sequence=sequence,
        retransmit_of=original.sequence,
        records=original.records,
    )
    return write_roll_artifact(retransmit, out_dir)


def _display_text(path: str | Path) -> str:
    # One line of valid UTF-8, whatever bytes the file system handed back.
    text = str(path).encode("utf-8", "backslashreplace").decode("utf-8")
    return " ".join(text.splitlines())


def _is_standalone_artifact(path: Path, root: Path, prefix: str) -> bool:
    return (
        _abspath(path.parent) == _abspath(root)
        and path.name.startswith(prefix)
        and path.suffix in (STANDALONE_SUFFIX, TEMP_SUFFIX)
    )


def finalize_by_rename(tmp_path: str | Path, prefix: str) -> Path:
    """Rename a finished standalone roll to ``<prefix><HEX>.log`` where HEX hashes its content."""

    tmp = Path(tmp_path)
    digest_hex = to_hex(digest_file(tmp))
    final = tmp.with_name(f"{prefix}{digest_hex}{STANDALONE_SUFFIX}")
    try:
        os.replace(tmp, final)
    except OSError as exc:
        raise BuildError(f"failed to rename {tmp} -> {final}: {exc}") from exc
    return final


def write_standalone_roll(
    directory: str | Path,
    *,
    prefix: str,
    on_error: OnHashError,
    files: Sequence[str | Path] | None = None,
    recurse: bool = True,
    with_hashes: bool = True,
    sort: bool = False,
    with_stats: bool = False,
    allow_empty: bool = True,
    now: datetime | None = None,
    workers: int | None = None,
    progress: bool = False,
    cancel_event: threading.Event | None = None,
) -> Path:
    """Write a content-addressed roll for ``directory`` and return its final path."""

    root = Path(directory)
    if not root.is_dir():
        raise BuildError(f"not a directory: {root}")
    if not prefix or any(ch in prefix for ch in ("/", "\\")):
        raise BuildError(f"invalid manifest prefix: {prefix!r}")

    started = time.perf_counter()
    if now is None:
        now = datetime.now(UTC)
    timestamp = now.strftime("%Y-%m-%dT%H:%M:%S")
    tmp_path = root / f"{prefix}{now.strftime('%Y%m%dT%H%M%S')}{TEMP_SUFFIX}"

    if files is None:
        files = select_files(root, "*", recurse=recurse)
    sources = [Path(p) for p in files if not _is_standalone_artifact(Path(p), root, prefix)]
    if not sources and not allow_empty:
        raise BuildError(f"no files matched the selection in {root}")

    records = build_records(
        root,
        sources,
        on_error=on_error,
        with_hashes=with_hashes,
        sort=sort,
        workers=workers,
        progress=progress,
        cancel_event=cancel_event,
    )

    lines = [f"# Roll for {_display_text(_abspath(root))} at {timestamp}"]
    lines.extend(format_record_line(r) for r in records)
    if with_stats:
        elapsed = timedelta(seconds=time.perf_counter() - started)
        lines.append(f"# Generated in {elapsed}")
        logger.info("Roll generated in %s", elapsed)

    try:
        f = tmp_path.open("x", encoding="utf-8", newline="\n")
    except FileExistsError as exc:
        raise BuildError(f"a roll is already being written at {tmp_path}") from exc
    except OSError as exc:
        raise BuildError(f"failed to create roll {tmp_path}: {exc}") from exc

    try:
        with f:
            f.write("\n".join(lines) + "\n")
        return finalize_by_rename(tmp_path, prefix)
    except OSError as exc:
        tmp_path.unlink(missing_ok=True)
        raise BuildError(f"failed to write roll {tmp_path}: {exc}") from exc
    except Exception:
        tmp_path.unlink(missing_ok=True)
        raise


__all__ = [
    "OnHashError",
    "build_records",
    "build_roll",
    "finalize_by_header_patch",
    "finalize_by_rename",
    "make_file_record",
    "select_files",
    "serialize_sequenced",
    "write_retransmit_roll",
    "write_roll_artifact",
    "write_sequenced_roll",
    "write_standalone_roll",
]
