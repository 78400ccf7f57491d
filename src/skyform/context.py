"""Runtime execution context for one reconciliation."""

from __future__ import annotations

import threading

from .clock import SYSTEM_CLOCK, Clock
from .errors import OperationCancelledError


class Context[M]:
    """Runtime state passed through the lifecycle handlers.

    ``meta`` carries the process-level clients and provider configuration.
    The deadline and cancellation event are shared with every child context
    derived through :meth:`with_timeout`.
    """

    def __init__(
        self,
        meta: M,
        *,
        dry_run: bool = False,
        clock: Clock | None = None,
        deadline: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self.meta = meta
        self.dry_run = dry_run
        self.clock = clock or SYSTEM_CLOCK
        self.deadline = deadline
        self._cancel = cancel_event or threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    @property
    def cancel_event(self) -> threading.Event:
        return self._cancel

    def cancel(self) -> None:
        self._cancel.set()

    def check(self) -> None:
        """Raise if the context has been cancelled."""
        if self._cancel.is_set():
            raise OperationCancelledError("operation cancelled")

    def now(self) -> float:
        return self.clock.monotonic()

    def remaining(self) -> float | None:
        """Seconds left before the deadline, or None when unbounded."""
        if self.deadline is None:
            return None
        return self.deadline - self.clock.monotonic()

    def deadline_after(self, timeout: float) -> float:
        """Absolute deadline for a sub-operation, clamped to this context's."""
        deadline = self.clock.monotonic() + timeout
        if self.deadline is not None:
            deadline = min(deadline, self.deadline)
        return deadline

    def with_timeout(self, timeout: float | None) -> Context[M]:
        """Derive a context sharing meta and cancellation with a tighter deadline."""
        deadline = self.deadline if timeout is None else self.deadline_after(timeout)
        return Context(
            self.meta,
            dry_run=self.dry_run,
            clock=self.clock,
            deadline=deadline,
            cancel_event=self._cancel,
        )

    def sleep(self, seconds: float) -> None:
        """Block for seconds, raising if cancelled before or during the wait."""
        self.check()
        if self.clock.sleep(seconds, self._cancel):
            raise OperationCancelledError("operation cancelled")
