from __future__ import annotations

import hashlib
import io
from pathlib import Path
from typing import BinaryIO

from rollcall.errors import RollIoError

CHUNK_SIZE = 1024 * 1024
DIGEST_SIZE = 32


def digest_stream(stream: BinaryIO, start_offset: int = 0) -> bytes:
    """Return the SHA-256 of ``stream`` from ``start_offset`` to end-of-stream.

    Seekable streams are positioned directly; anything else has the leading
    bytes read and discarded. Read failures surface as ``RollIoError``.
    """

    if start_offset < 0:
        raise ValueError(f"start_offset must be >= 0, got {start_offset}")

    digest = hashlib.sha256()
    try:
        if start_offset:
            if stream.seekable():
                stream.seek(start_offset, io.SEEK_SET)
            else:
                remaining = start_offset
                while remaining:
                    skipped = stream.read(min(remaining, CHUNK_SIZE))
                    if not skipped:
                        break
                    remaining -= len(skipped)
        for chunk in iter(lambda: stream.read(CHUNK_SIZE), b""):
            digest.update(chunk)
    except OSError as exc:
        raise RollIoError(f"failed to read stream for hashing: {exc}") from exc
    return digest.digest()


def digest_file(path: str | Path, start_offset: int = 0) -> bytes:
    file_path = Path(path)
    try:
        with file_path.open("rb") as f:
            return digest_stream(f, start_offset)
    except RollIoError as exc:
        raise RollIoError(f"failed to hash {file_path}: {exc}") from exc
    except OSError as exc:
        raise RollIoError(f"failed to open {file_path} for hashing: {exc}") from exc


def sha256_file(path: str | Path) -> str:
    return digest_file(path).hex()
