from __future__ import annotations

import logging
from collections.abc import Iterable

from rollcall.integrity.hash_utils import DIGEST_SIZE
from rollcall.integrity.hex_codec import is_hex
from rollcall.roll.models import MAX_RECORD_SIZE, FileRecord, MalformedRecord

logger = logging.getLogger(__name__)

FIELD_SEPARATOR = "|"
COMMENT_MARKER = "#"

# Sequenced layout: line 1 is "# " + 64 hex chars; the digest covers byte 66 onwards.
HEADER_PREFIX = "# "
DIGEST_HEX_LEN = 2 * DIGEST_SIZE
CHECKED_REGION_OFFSET = len(HEADER_PREFIX) + DIGEST_HEX_LEN
PLACEHOLDER_LINE = HEADER_PREFIX + "0" * DIGEST_HEX_LEN

ROLL_SUFFIX = ".roll"
STANDALONE_SUFFIX = ".log"
TEMP_SUFFIX = ".tmp"


# Everything str.splitlines() breaks on.
LINE_BREAKS = frozenset("\n\r\x0b\x0c\x1c\x1d\x1e\x85\u2028\u2029")


def is_representable_path(relative_path: str) -> bool:
    """Whether ``relative_path`` reads back unchanged from a record line.

    Record lines have no escaping: the separator and line breaks cannot
    appear, a leading ``#`` would read as a comment, surrounding whitespace
    is stripped on read, and the roll is UTF-8 text.
    """

    if not relative_path or relative_path != relative_path.strip():
        return False
    if relative_path.startswith(COMMENT_MARKER):
        return False
    if FIELD_SEPARATOR in relative_path or any(ch in LINE_BREAKS for ch in relative_path):
        return False
    try:
        relative_path.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


def format_record_line(record: FileRecord) -> str:
    return f"{record.relative_path}{FIELD_SEPARATOR}{record.size}{FIELD_SEPARATOR}{record.digest}"


def is_ignorable_line(line: str) -> bool:
    return not line.strip() or line.lstrip().startswith(COMMENT_MARKER)


def parse_record_line(line: str) -> FileRecord | str:
    """Parse ``path|size[|digest]``.

    Returns the record, or a short reason string when the line is malformed.
    Callers must filter blank and comment lines first.
    """

    elements = line.split(FIELD_SEPARATOR)
    if len(elements) < 2 or len(elements) > 3:
        return f"expected 2 or 3 fields, found {len(elements)}"

    relative_path = elements[0].strip()
    if not relative_path:
        return "empty path"

    try:
        size = int(elements[1].strip())
    except ValueError:
        return f"could not parse the file length for {relative_path}"
    if size < 0 or size > MAX_RECORD_SIZE:
        return f"file length out of range for {relative_path}: {size}"

    digest = ""
    if len(elements) == 3 and elements[2].strip():
        digest = elements[2].strip()
        if not is_hex(digest):
            return f"digest is not hexadecimal for {relative_path}"

    return FileRecord(relative_path, size, digest)


def parse_record_lines(
    lines: Iterable[str],
    *,
    first_line_number: int = 1,
) -> tuple[tuple[FileRecord, ...], tuple[MalformedRecord, ...]]:
    records: list[FileRecord] = []
    malformed: list[MalformedRecord] = []

    for line_number, line in enumerate(lines, start=first_line_number):
        if is_ignorable_line(line):
            continue
        parsed = parse_record_line(line)
        if isinstance(parsed, FileRecord):
            records.append(parsed)
            continue
        logger.warning("Bad file record line %d: %s", line_number, parsed)
        malformed.append(MalformedRecord(line_number=line_number, line=line, reason=parsed))

    return tuple(records), tuple(malformed)


__all__ = [
    "CHECKED_REGION_OFFSET",
    "COMMENT_MARKER",
    "DIGEST_HEX_LEN",
    "FIELD_SEPARATOR",
    "HEADER_PREFIX",
    "LINE_BREAKS",
    "PLACEHOLDER_LINE",
    "ROLL_SUFFIX",
    "STANDALONE_SUFFIX",
    "TEMP_SUFFIX",
    "format_record_line",
    "is_ignorable_line",
    "is_representable_path",
    "parse_record_line",
    "parse_record_lines",
]
