from __future__ import annotations

import logging
from pathlib import Path

from rollcall.errors import (
    IntegrityMismatch,
    InvalidEncoding,
    MalformedArtifact,
    RetransmitMismatch,
    UnsupportedFormat,
)
from rollcall.integrity.hash_utils import digest_file, digest_stream
from rollcall.integrity.hex_codec import from_hex
from rollcall.roll.models import SUPPORTED_FORMATS, U64_MAX, FormatType, Roll
from rollcall.roll.records import (
    CHECKED_REGION_OFFSET,
    DIGEST_HEX_LEN,
    HEADER_PREFIX,
    STANDALONE_SUFFIX,
    parse_record_lines,
)

logger = logging.getLogger(__name__)

# Format, scope, sequence, retransmit.
_METADATA_LINES = 4


def _read_declared_digest(header: bytes, roll_path: Path) -> bytes:
    if len(header) < CHECKED_REGION_OFFSET or not header.startswith(HEADER_PREFIX.encode("ascii")):
        raise MalformedArtifact(f"missing digest header line: {roll_path}")
    try:
        declared_hex = header[len(HEADER_PREFIX) : CHECKED_REGION_OFFSET].decode("ascii")
        return from_hex(declared_hex, strict=True)
    except (UnicodeDecodeError, InvalidEncoding) as exc:
        raise MalformedArtifact(f"digest header is not hexadecimal: {roll_path}") from exc


def _header_value(lines: list[str], index: int, label: str, roll_path: Path) -> str:
    if index >= len(lines) or not lines[index].startswith(HEADER_PREFIX):
        raise MalformedArtifact(f"missing {label} header line: {roll_path}")
    return lines[index][len(HEADER_PREFIX) :]


def _parse_u64(text: str, label: str, roll_path: Path) -> int:
    value_text = text.strip()
    if not (value_text.isascii() and value_text.isdigit()):
        raise MalformedArtifact(f"{label} is not an unsigned integer in {roll_path}: {text!r}")
    value = int(value_text)
    if value > U64_MAX:
        raise MalformedArtifact(f"{label} exceeds 64 bits in {roll_path}: {value}")
    return value


def _parse_format(text: str, roll_path: Path) -> FormatType:
    name = text.strip()
    try:
        fmt = FormatType[name]
    except KeyError as exc:
        raise UnsupportedFormat(f"Format/Version {name!r} is not supported: {roll_path}") from exc
    if fmt not in SUPPORTED_FORMATS:
        raise UnsupportedFormat(f"Format/Version {fmt.name} is not supported: {roll_path}")
    return fmt


def parse_sequenced_roll(path: str | Path) -> Roll:
    """Read a ``<scope>-<sequence>.roll`` file.

    The digest on line 1 is checked against bytes 66..EOF before any other
    header or record is looked at. Record lines are parsed leniently; the
    dropped ones are reported in ``Roll.malformed``.
    """

    roll_path = Path(path)
    with roll_path.open("rb") as f:
        header = f.read(CHECKED_REGION_OFFSET)
        declared = _read_declared_digest(header, roll_path)
        actual = digest_stream(f, start_offset=CHECKED_REGION_OFFSET)
        if declared != actual:
            raise IntegrityMismatch(f"Hash does not match: {roll_path}")

        f.seek(CHECKED_REGION_OFFSET)
        body = f.read()

    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise MalformedArtifact(f"roll is not valid UTF-8: {roll_path}") from exc

    # The checked region starts with the terminator of the digest line.
    if not text.startswith(("\n", "\r\n")):
        raise MalformedArtifact(f"digest header line is not {CHECKED_REGION_OFFSET} characters: {roll_path}")
    lines = text.splitlines()[1:]

    fmt = _parse_format(_header_value(lines, 0, "format", roll_path), roll_path)
    scope = _header_value(lines, 1, "scope", roll_path)
    sequence = _parse_u64(_header_value(lines, 2, "sequence", roll_path), "sequence", roll_path)
    retransmit_of = _parse_u64(_header_value(lines, 3, "retransmit", roll_path), "retransmit", roll_path)

    # Line numbers are 1-based file lines: digest line + metadata come first.
    records, malformed = parse_record_lines(
        lines[_METADATA_LINES:], first_line_number=_METADATA_LINES + 2
    )
    return Roll(
        format_version=fmt,
        scope=scope,
        sequence=sequence,
        retransmit_of=retransmit_of,
        records=records,
        malformed=malformed,
    )


def embedded_digest(roll_path: str | Path) -> bytes:
    """The digest encoded in a standalone roll's filename (last 64 hex chars of the stem)."""

    stem = Path(roll_path).stem
    if len(stem) < DIGEST_HEX_LEN:
        raise MalformedArtifact(f"file name carries no digest: {roll_path}")
    try:
        return from_hex(stem[-DIGEST_HEX_LEN:], strict=True)
    except InvalidEncoding as exc:
        raise MalformedArtifact(f"file name carries no digest: {roll_path}") from exc


def parse_standalone_roll(path: str | Path) -> Roll:
    """Read a content-addressed ``<prefix><HEX>.log`` roll.

    The whole file is hashed and compared with the digest in its name before
    the content is parsed.
    """

    roll_path = Path(path)
    expected = embedded_digest(roll_path)
    if digest_file(roll_path) != expected:
        raise IntegrityMismatch(f"Roll file is corrupt: {roll_path}")

    try:
        text = roll_path.read_bytes().decode("utf-8")
    except UnicodeDecodeError as exc:
        raise MalformedArtifact(f"roll is not valid UTF-8: {roll_path}") from exc

    records, malformed = parse_record_lines(text.splitlines())
    return Roll(
        format_version=FormatType.TEXT_V01,
        scope="",
        sequence=0,
        retransmit_of=0,
        records=records,
        malformed=malformed,
    )


def find_latest_roll(directory: str | Path, prefix: str) -> Path:
    """Most recently written ``<prefix>*.log`` in ``directory``."""

    root = Path(directory)
    candidates = [
        p
        for p in root.iterdir()
        if p.name.startswith(prefix) and p.suffix == STANDALONE_SUFFIX and p.is_file()
    ]
    if not candidates:
        raise FileNotFoundError(f"No rollcall file found in {root} with prefix {prefix!r}")
    return max(candidates, key=lambda p: (p.stat().st_mtime_ns, p.name))


def check_retransmit(original: Roll, retransmit: Roll) -> None:
    """Raise ``RetransmitMismatch`` unless ``retransmit`` repeats ``original`` exactly."""

    if retransmit.scope != original.scope:
        raise RetransmitMismatch(f"scope {retransmit.scope!r} differs from original scope {original.scope!r}")
    if retransmit.retransmit_of != original.sequence:
        raise RetransmitMismatch(
            f"retransmit_of={retransmit.retransmit_of} does not reference sequence {original.sequence}"
        )

    expected = sorted(r.identity() for r in original.records)
    actual = sorted(r.identity() for r in retransmit.records)
    if expected != actual:
        missing = sorted({e[0] for e in expected} - {a[0] for a in actual})
        extra = sorted({a[0] for a in actual} - {e[0] for e in expected})
        raise RetransmitMismatch(
            f"record set differs from sequence {original.sequence}: "
            f"missing={missing} extra={extra} (or size/digest changes)"
        )


__all__ = [
    "check_retransmit",
    "embedded_digest",
    "find_latest_roll",
    "parse_sequenced_roll",
    "parse_standalone_roll",
]
