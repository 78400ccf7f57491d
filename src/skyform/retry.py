"""Run an attempt until it succeeds, fails for good, or times out."""

from __future__ import annotations

import logging
import random
from collections.abc import Callable
from typing import Any

from .classify import Classifier, is_code, is_not_found
from .context import Context
from .errors import NonRetryableError, RetryableError, RetryTimeoutError

logger = logging.getLogger(__name__)

DEFAULT_MIN_TIMEOUT = 0.5
DEFAULT_POLL_INTERVAL = 10.0


def _attempt[T](fn: Callable[[], T]) -> T:
    try:
        return fn()
    except NonRetryableError as exc:
        raise exc.err from None


def retry_config[T](
    ctx: Context[Any],
    fn: Callable[[], T],
    *,
    timeout: float,
    delay: float = 0.0,
    delay_rand: float = 0.0,
    min_timeout: float = DEFAULT_MIN_TIMEOUT,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
    rng: random.Random | None = None,
) -> T:
    """Call fn until it returns, raising RetryableError to ask for another attempt.

    Any other exception (or a NonRetryableError's wrapped error) ends the
    loop immediately. The pause between attempts starts at ``min_timeout``
    and doubles up to ``poll_interval``, with up to 50% jitter. Once the
    deadline passes fn runs one final time, so a failure reports the real
    error of that attempt wrapped in RetryTimeoutError.
    """
    rng = rng or random.Random()
    deadline = ctx.deadline_after(timeout)

    initial = delay + (rng.uniform(0, delay_rand) if delay_rand > 0 else 0.0)
    if initial > 0:
        ctx.sleep(min(initial, max(deadline - ctx.now(), 0.0)))

    wait = min_timeout if min_timeout > 0 else 0.0
    attempts = 0
    while ctx.now() < deadline:
        ctx.check()
        attempts += 1
        try:
            return _attempt(fn)
        except RetryableError as exc:
            pause = wait + wait * rng.uniform(-0.5, 0.5)
            remaining = deadline - ctx.now()
            pause = max(min(pause, remaining), 0.0)
            logger.debug("Attempt %d failed, retrying in %.2fs: %s", attempts, pause, exc.err)
            ctx.sleep(pause)
            if poll_interval > 0:
                wait = min(max(wait, 0.001) * 2, poll_interval)
            else:
                wait = max(wait, 0.001) * 2

    ctx.check()
    logger.debug("Retry deadline reached after %d attempt(s); making final attempt", attempts)
    try:
        return _attempt(fn)
    except RetryableError as exc:
        raise RetryTimeoutError(timeout, exc.err) from exc.err


def retry[T](ctx: Context[Any], timeout: float, fn: Callable[[], T]) -> T:
    """Retry fn with the default backoff for up to timeout seconds."""
    return retry_config(ctx, fn, timeout=timeout)


def retry_when[T](
    ctx: Context[Any],
    timeout: float,
    fn: Callable[[], T],
    retryable: Callable[[BaseException], bool],
) -> T:
    """Retry a plain call whenever retryable(err) says the failure is transient."""

    def attempt() -> T:
        try:
            return fn()
        except Exception as err:
            if retryable(err):
                raise RetryableError(err) from err
            raise

    return retry(ctx, timeout, attempt)


def retry_classified[T](
    ctx: Context[Any],
    timeout: float,
    fn: Callable[[], T],
    classifier: Classifier,
) -> T:
    return retry_when(ctx, timeout, fn, classifier.is_retryable)


def retry_when_code_equals[T](
    ctx: Context[Any],
    timeout: float,
    fn: Callable[[], T],
    *codes: str,
) -> T:
    """Retry fn while it fails with any of the given remote error codes."""
    return retry_when(ctx, timeout, fn, lambda err: any(is_code(err, c) for c in codes))


def retry_when_not_found[T](ctx: Context[Any], timeout: float, fn: Callable[[], T]) -> T:
    """Retry fn while it raises NotFound; used right after a create."""
    return retry_when(ctx, timeout, fn, is_not_found)


def retry_when_new_resource_not_found[T](
    ctx: Context[Any],
    timeout: float,
    fn: Callable[[], T],
    is_new_resource: bool,
) -> T:
    """Tolerate eventual consistency only while the resource is brand new."""
    if is_new_resource:
        return retry_when_not_found(ctx, timeout, fn)
    return fn()
