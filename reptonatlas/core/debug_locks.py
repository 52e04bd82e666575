"""Critical-section bookkeeping for tests.

A tracker is passed to the objects under test; production code passes none
and skips the bookkeeping entirely. Sections are recorded per thread, before
the guarded lock is taken, so a thread re-entering its own section fails
instead of blocking on the lock it already holds.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Iterator

from .errors import InvariantViolation

logger = logging.getLogger(__name__)


class CriticalSectionTracker:
    """Records named critical sections currently entered, by thread."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._active: set[tuple[int, str]] = set()
        self.entries = 0

    def enter(self, name: str) -> None:
        key = (threading.get_ident(), name)
        with self._lock:
            if key in self._active:
                raise InvariantViolation(f"Multiple entry of critical section {name}")
            self._active.add(key)
            self.entries += 1

    def leave(self, name: str) -> None:
        key = (threading.get_ident(), name)
        with self._lock:
            if key not in self._active:
                raise InvariantViolation(f"Multiple leave of critical section {name}")
            self._active.discard(key)

    @contextmanager
    def section(self, name: str) -> Iterator[None]:
        self.enter(name)
        try:
            yield
        finally:
            self.leave(name)

    def active(self) -> frozenset[str]:
        """Names of sections entered by any thread."""

        with self._lock:
            return frozenset(name for _, name in self._active)

    def is_equivalent(self, other: frozenset[str]) -> bool:
        return self.active() == other

    def log_active(self, heading: str) -> None:
        active = self.active()
        if not active:
            return
        logger.warning("%s\n%s", heading, "\n".join(f"  {name}" for name in sorted(active)))
