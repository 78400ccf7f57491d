"""State-change waiter — poll a remote object until its status reaches a target set."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Self

from pydantic import BaseModel, Field, model_validator

from .classify import is_not_found
from .context import Context
from .errors import NotFoundError, UnexpectedStateError, WaitTimeoutError

logger = logging.getLogger(__name__)

type StateRefresh = Callable[[], tuple[Any, str]]

DEFAULT_NOT_FOUND_CHECKS = 20
INITIAL_BACKOFF = 0.1
MAX_BACKOFF = 10.0

_CONTINUE = object()


@dataclass
class _Run:
    """Per-wait bookkeeping."""

    not_found: int = 0
    occurrence: int = 0
    last_value: Any = None
    last_status: str = ""


class _Waiter(BaseModel, ABC):
    model_config = {"arbitrary_types_allowed": True, "frozen": True}

    pending: frozenset[str] = frozenset()
    refresh: Callable[[], tuple[Any, str]]
    timeout: float = Field(gt=0)
    delay: float = Field(default=0.0, ge=0)
    min_delay: float = Field(default=0.0, ge=0)
    poll_interval: float = Field(default=0.0, ge=0)

    @model_validator(mode="after")
    def check_intervals(self) -> Self:
        if self.poll_interval > 0:
            if self.min_delay > self.poll_interval:
                raise ValueError("min_delay must not exceed poll_interval")
            if self.poll_interval > self.timeout:
                raise ValueError("poll_interval must not exceed timeout")
        return self

    @abstractmethod
    def _observe(self, run: _Run, value: Any, status: str, missing: BaseException | None) -> Any:
        """Return a result to stop waiting, or _CONTINUE to poll again."""

    @abstractmethod
    def _expected(self) -> frozenset[str]: ...

    def _next_pause(self, backoff: float) -> tuple[float, float]:
        if self.poll_interval > 0:
            return self.poll_interval, backoff
        pause = max(backoff, self.min_delay)
        return pause, min(backoff * 2, MAX_BACKOFF)

    def wait(self, ctx: Context[Any]) -> Any:
        """Block until the waiter reaches a decision; return the last refreshed value."""
        deadline = ctx.deadline_after(self.timeout)
        if self.delay > 0:
            ctx.sleep(min(self.delay, max(deadline - ctx.now(), 0.0)))

        run = _Run()
        backoff = INITIAL_BACKOFF
        while True:
            ctx.check()
            missing: BaseException | None = None
            try:
                value, status = self.refresh()
            except Exception as err:
                if not is_not_found(err):
                    raise
                value, status, missing = None, "", err
            else:
                if value is None:
                    missing = NotFoundError()

            logger.debug("Refreshed state: %r", status if missing is None else "<not found>")
            result = self._observe(run, value, status, missing)
            if result is not _CONTINUE:
                return result

            remaining = deadline - ctx.now()
            if remaining <= 0:
                raise WaitTimeoutError(
                    self.timeout,
                    expected=self._expected(),
                    last_status=run.last_status,
                    last_value=run.last_value,
                )
            pause, backoff = self._next_pause(backoff)
            ctx.sleep(min(pause, remaining))


class StateChangeConf(_Waiter):
    """Wait for a status in ``target``, tolerating the ``pending`` statuses on the way.

    NotFound from the refresh (raised, or a ``None`` value) is tolerated up to
    ``not_found_checks`` times. A target status must be observed on
    ``continuous_target_occurrence`` consecutive polls.
    """

    target: frozenset[str] = Field(min_length=1)
    not_found_checks: int = Field(default=DEFAULT_NOT_FOUND_CHECKS, ge=0)
    continuous_target_occurrence: int = Field(default=1, ge=1)

    @model_validator(mode="after")
    def check_sets(self) -> Self:
        overlap = self.pending & self.target
        if overlap:
            raise ValueError(f"states in both pending and target: {sorted(overlap)}")
        return self

    def _expected(self) -> frozenset[str]:
        return self.target

    def _observe(self, run: _Run, value: Any, status: str, missing: BaseException | None) -> Any:
        if missing is not None:
            run.occurrence = 0
            run.not_found += 1
            if self.not_found_checks == 0:
                raise missing
            if run.not_found > self.not_found_checks:
                raise NotFoundError(
                    f"couldn't find resource ({self.not_found_checks} retries)",
                    last_error=missing,
                    retries=self.not_found_checks,
                )
            logger.debug("Resource not found (%d/%d)", run.not_found, self.not_found_checks)
            return _CONTINUE

        run.last_value = value
        run.last_status = status
        if status in self.target:
            run.occurrence += 1
            if run.occurrence >= self.continuous_target_occurrence:
                return value
            logger.debug(
                "Target state '%s' seen %d/%d times",
                status,
                run.occurrence,
                self.continuous_target_occurrence,
            )
            return _CONTINUE
        if status in self.pending:
            run.occurrence = 0
            return _CONTINUE
        raise UnexpectedStateError(status, pending=self.pending, target=self.target)


class DeletionConf(_Waiter):
    """Wait for a remote object to disappear while it passes through ``pending``."""

    def _expected(self) -> frozenset[str]:
        return frozenset()

    def _observe(self, run: _Run, value: Any, status: str, missing: BaseException | None) -> Any:
        if missing is not None:
            return run.last_value
        run.last_value = value
        run.last_status = status
        if status in self.pending:
            return _CONTINUE
        raise UnexpectedStateError(status, pending=self.pending)


def wait_for_state(
    ctx: Context[Any],
    refresh: StateRefresh,
    *,
    pending: set[str] | frozenset[str],
    target: set[str] | frozenset[str],
    timeout: float,
    **kwargs: Any,
) -> Any:
    """Convenience wrapper building a StateChangeConf and waiting on it."""
    conf = StateChangeConf(
        pending=pending, target=target, refresh=refresh, timeout=timeout, **kwargs
    )
    return conf.wait(ctx)
