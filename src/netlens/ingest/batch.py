"""
Bounded parallel parsing of many files.

Each file is parsed independently; one file failing never affects the
others. Results come back in input order.
"""

import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

from ..errors import CancelSignal, ParseCancelled
from ..models.record import CanonicalRecord, Vendor
from .arbitrator import Arbitrator

_LOGGER = logging.getLogger(__name__)

MAX_WORKERS = 4


@dataclass
class FileOutcome:
    path: Path
    record: Optional[CanonicalRecord] = None
    error: str = ""
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.record is not None


def default_workers(cap: int = MAX_WORKERS) -> int:
    return max(1, min(os.cpu_count() or 1, cap))


def parse_batch(
    paths: Iterable[str | Path],
    arbitrator: Optional[Arbitrator] = None,
    cancel: Optional[CancelSignal] = None,
    max_workers: Optional[int] = None,
    vendor: Optional[Vendor] = None,
) -> list[FileOutcome]:
    """
    Parse ``paths`` on a worker pool and return one outcome per path.

    The pool holds at most ``min(cpu_count, max_workers, len(paths))``
    threads, ``max_workers`` defaulting to ``MAX_WORKERS``.

    An interrupt while waiting sets ``cancel`` so running workers stop at
    their next line boundary.
    """
    arbitrator = arbitrator or Arbitrator()
    if cancel is None:
        cancel = threading.Event()
    paths = [Path(p) for p in paths]
    if not paths:
        return []

    def run(path: Path) -> FileOutcome:
        if cancel.is_set():
            return FileOutcome(path, cancelled=True)
        try:
            return FileOutcome(path, record=arbitrator.parse(path, vendor=vendor, cancel=cancel))
        except ParseCancelled:
            _LOGGER.info("Parsing of %s cancelled", path.name)
            return FileOutcome(path, cancelled=True)
        except Exception as exc:
            _LOGGER.error("Failed to parse %s: %s", path, exc)
            return FileOutcome(path, error=str(exc))

    # max_workers caps the pool; the CPU count still bounds it
    workers = default_workers(max_workers) if max_workers else default_workers()
    with ThreadPoolExecutor(max_workers=min(workers, len(paths))) as pool:
        try:
            outcomes = list(pool.map(run, paths))
        except KeyboardInterrupt:
            cancel.set()
            raise

    done = sum(1 for o in outcomes if o.ok)
    _LOGGER.info("Parsed %d of %d files", done, len(outcomes))
    return outcomes
