from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any


def dumps_stable(data: Any, *, indent: int = 2) -> str:
    """Serialize with sorted keys and a trailing newline, so equal data gives equal bytes."""

    return json.dumps(data, indent=indent, sort_keys=True, ensure_ascii=False) + "\n"


def write_json_report(path: str | Path, data: Any) -> Path:
    """Write ``data`` as stable JSON (UTF-8, LF), creating parent folders.

    The report is written beside its target and renamed into place, so a
    reader never sees a half-written file.
    """

    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    tmp = p.with_name(p.name + ".part")
    tmp.write_text(dumps_stable(data), encoding="utf-8", newline="\n")
    os.replace(tmp, p)
    return p


__all__ = ["dumps_stable", "write_json_report"]
