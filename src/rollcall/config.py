from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_MANIFEST_PREFIX = "RollCall-"
DEFAULT_LOG_LEVEL = "INFO"

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _env(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value


def _env_bool(name: str, default: bool = False) -> bool:
    raw = _env(name)
    if raw is None:
        return default
    raw_norm = raw.strip().lower()
    if raw_norm in {"1", "true", "t", "yes", "y", "on"}:
        return True
    if raw_norm in {"0", "false", "f", "no", "n", "off"}:
        return False
    return default


def _env_positive_int(name: str) -> int | None:
    raw = _env(name)
    if raw is None:
        return None
    try:
        value = int(raw.strip())
    except ValueError as exc:
        raise RuntimeError(f"{name} must be a positive integer, got {raw!r}") from exc
    if value < 1:
        raise RuntimeError(f"{name} must be a positive integer, got {raw!r}")
    return value


@dataclass(frozen=True, slots=True)
class RollCallConfig:
    manifest_prefix: str = DEFAULT_MANIFEST_PREFIX
    workers: int | None = None
    progress: bool = False
    log_level: str = DEFAULT_LOG_LEVEL
    log_file: str | None = None


def load_config_from_env() -> RollCallConfig:
    """Defaults for the command-line tools; flags given on the command line win.

    ROLLCALL_MANIFEST_PREFIX, ROLLCALL_WORKERS, ROLLCALL_PROGRESS,
    ROLLCALL_LOG_LEVEL, ROLLCALL_LOG_FILE.
    """

    prefix = _env("ROLLCALL_MANIFEST_PREFIX", default=DEFAULT_MANIFEST_PREFIX)
    log_level = str(_env("ROLLCALL_LOG_LEVEL", default=DEFAULT_LOG_LEVEL)).upper()
    if log_level not in _LOG_LEVELS:
        raise RuntimeError(
            f"ROLLCALL_LOG_LEVEL must be one of {', '.join(sorted(_LOG_LEVELS))}, got {log_level!r}"
        )

    return RollCallConfig(
        manifest_prefix=str(prefix),
        workers=_env_positive_int("ROLLCALL_WORKERS"),
        progress=_env_bool("ROLLCALL_PROGRESS", default=False),
        log_level=log_level,
        log_file=_env("ROLLCALL_LOG_FILE"),
    )


__all__ = [
    "DEFAULT_LOG_LEVEL",
    "DEFAULT_MANIFEST_PREFIX",
    "RollCallConfig",
    "load_config_from_env",
]
