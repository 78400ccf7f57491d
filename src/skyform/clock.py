"""Monotonic clock used by the blocking parts of the core."""

from __future__ import annotations

import threading
import time


class Clock:
    """Wall-clock independent time source with a cancellable sleep."""

    def monotonic(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float, cancel: threading.Event | None = None) -> bool:
        """Sleep for seconds; return True if woken by cancellation."""
        if seconds <= 0:
            return cancel is not None and cancel.is_set()
        if cancel is None:
            time.sleep(seconds)
            return False
        return cancel.wait(seconds)


SYSTEM_CLOCK = Clock()
