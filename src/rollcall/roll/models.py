from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

U64_MAX = 2**64 - 1

# Sizes above this are treated as a corrupt record line, not a real file.
MAX_RECORD_SIZE = 100_000_000_000


class FormatType(Enum):
    TEXT_V01 = 0
    JSON_V01 = 256
    XML_V01 = 512


SUPPORTED_FORMATS: frozenset[FormatType] = frozenset({FormatType.TEXT_V01})


@dataclass(frozen=True, slots=True)
class FileRecord:
    """One file in a roll. An empty ``digest`` means size-only checking."""

    relative_path: str
    size: int
    digest: str = ""

    def __post_init__(self) -> None:
        if self.size < 0:
            raise ValueError(f"size must be >= 0 for {self.relative_path!r}, got {self.size}")

    @property
    def hashed(self) -> bool:
        return bool(self.digest)

    def identity(self) -> tuple[str, int, str]:
        # Digest case is not significant.
        return (self.relative_path, self.size, self.digest.upper())


@dataclass(frozen=True, slots=True)
class MalformedRecord:
    line_number: int
    line: str
    reason: str


@dataclass(frozen=True, slots=True)
class Roll:
    format_version: FormatType
    scope: str
    sequence: int
    retransmit_of: int
    records: tuple[FileRecord, ...] = ()
    malformed: tuple[MalformedRecord, ...] = ()

    @property
    def is_retransmit(self) -> bool:
        return self.retransmit_of != 0

    @property
    def artifact_name(self) -> str:
        return sequenced_roll_name(self.scope, self.sequence)


@dataclass(frozen=True, slots=True)
class RecordOutcome:
    """Result of turning one source file into a record.

    On a hashing failure ``error`` is set and ``record`` still carries the
    path and size with an empty digest, so a lenient caller can keep it.
    When the file cannot be represented at all ``record`` is None.
    """

    source: Path
    record: FileRecord | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.record is not None and self.error is None


def sequenced_roll_name(scope: str, sequence: int) -> str:
    return f"{scope}-{sequence}.roll"


__all__ = [
    "FileRecord",
    "FormatType",
    "MAX_RECORD_SIZE",
    "MalformedRecord",
    "RecordOutcome",
    "Roll",
    "SUPPORTED_FORMATS",
    "U64_MAX",
    "sequenced_roll_name",
]
