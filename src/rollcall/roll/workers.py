from __future__ import annotations

import io
import sys
import threading
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import TypeVar

import psutil
from tqdm import tqdm

from rollcall.errors import Cancelled

T = TypeVar("T")
R = TypeVar("R")


def optimal_workers(cap: int = 32) -> int:
    """Pool size for hashing: one thread per logical CPU, bounded by ``cap``."""

    cpus = psutil.cpu_count(logical=True) or 1
    return max(1, min(cpus, cap))


def _progress_file():
    # GUI or daemonised runs may have no stderr.
    f = getattr(sys, "stderr", None)
    return f if (f is not None and hasattr(f, "write")) else io.StringIO()


def run_bounded(
    func: Callable[[T], R],
    items: Sequence[T],
    *,
    workers: int | None = None,
    desc: str = "Hashing",
    progress: bool = False,
    cancel_event: threading.Event | None = None,
) -> list[R]:
    """Apply ``func`` to independent items on a bounded thread pool.

    Results come back in input order. Each worker only returns a value; the
    results list is filled here, in the calling thread.
    """

    total = len(items)
    if total == 0:
        return []

    max_workers = workers or optimal_workers()
    results: list[R | None] = [None] * total

    with tqdm(total=total, desc=desc, unit="file", file=_progress_file(), disable=not progress) as bar:
        if max_workers == 1:
            for i, item in enumerate(items):
                if cancel_event is not None and cancel_event.is_set():
                    raise Cancelled(f"{desc} cancelled after {i}/{total} items")
                results[i] = func(item)
                bar.update(1)
            return results  # type: ignore[return-value]

        ex = ThreadPoolExecutor(max_workers=max_workers)
        try:
            futs = {ex.submit(func, item): i for i, item in enumerate(items)}
            done = 0
            for fut in as_completed(futs):
                if cancel_event is not None and cancel_event.is_set():
                    raise Cancelled(f"{desc} cancelled after {done}/{total} items")
                results[futs[fut]] = fut.result()
                done += 1
                bar.update(1)
        finally:
            # On the normal path every future is finished; otherwise drop the queue.
            ex.shutdown(wait=True, cancel_futures=True)

    return results  # type: ignore[return-value]


__all__ = ["optimal_workers", "run_bounded"]
