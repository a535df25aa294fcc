from __future__ import annotations

import hashlib
import logging
from pathlib import Path

# A small tree: two top-level files and one nested file.
SAMPLE_TREE: dict[str, bytes] = {
    "a.txt": b"alpha\n",
    "b.txt": b"bravo bravo\n",
    "sub/c.bin": bytes(range(256)),
}


def make_tree(root: Path, files: dict[str, bytes] | None = None) -> Path:
    """Write ``files`` (relative path -> content) under ``root`` and return ``root``."""

    for rel, content in (SAMPLE_TREE if files is None else files).items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
    return root


def sha256_hex_upper(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest().upper()


def flip_byte(path: Path, offset: int) -> None:
    """Invert one byte of ``path`` in place (file length unchanged)."""

    data = bytearray(path.read_bytes())
    data[offset] ^= 0xFF
    path.write_bytes(bytes(data))


def reset_rollcall_logging() -> None:
    """Undo ``setup_logging`` so later tests see default propagation to the root logger."""

    logger = logging.getLogger("rollcall")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
