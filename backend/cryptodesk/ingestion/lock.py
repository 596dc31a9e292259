from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager


class RunLock:
    """Process-wide flag that keeps ingestion runs from overlapping.

    All holders run on one event loop, so checking and setting the flag
    without an await in between is atomic.
    """

    def __init__(self) -> None:
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    def try_acquire(self) -> bool:
        if self._held:
            return False
        self._held = True
        return True

    def release(self) -> None:
        self._held = False

    @contextmanager
    def hold(self) -> Iterator[bool]:
        acquired = self.try_acquire()
        try:
            yield acquired
        finally:
            if acquired:
                self.release()
