"""Tests for skyform.retry."""

from __future__ import annotations

import pytest

from skyform.classify import Classifier, is_code, timed_out
from skyform.errors import (
    CloudError,
    NonRetryableError,
    NotFoundError,
    OperationCancelledError,
    RetryableError,
    RetryTimeoutError,
)
from skyform.retry import (
    retry,
    retry_classified,
    retry_config,
    retry_when_code_equals,
    retry_when_new_resource_not_found,
    retry_when_not_found,
)


class _NoJitter:
    def uniform(self, a: float, b: float) -> float:
        return 0.0


def _failing(times: int, err: BaseException, result="ok"):
    calls = []

    def fn():
        calls.append(1)
        if len(calls) <= times:
            raise err
        return result

    fn.calls = calls
    return fn


class TestRetry:
    def test_success_first_attempt(self, ctx, clock):
        assert retry(ctx, 10, lambda: 42) == 42
        assert clock.sleeps == []

    def test_retryable_then_success(self, ctx):
        fn = _failing(2, RetryableError(CloudError("Busy")))
        assert retry(ctx, 60, fn) == "ok"
        assert len(fn.calls) == 3

    def test_non_retryable_unwraps(self, ctx):
        inner = ValueError("bad input")
        fn = _failing(1, NonRetryableError(inner))
        with pytest.raises(ValueError) as exc_info:
            retry(ctx, 60, fn)
        assert exc_info.value is inner
        assert len(fn.calls) == 1

    def test_plain_exception_aborts(self, ctx):
        fn = _failing(5, KeyError("missing"))
        with pytest.raises(KeyError):
            retry(ctx, 60, fn)
        assert len(fn.calls) == 1

    def test_timeout_reports_final_error(self, ctx, clock):
        inner = CloudError("Throttling", "slow down")
        fn = _failing(1000, RetryableError(inner))
        with pytest.raises(RetryTimeoutError) as exc_info:
            retry(ctx, 5, fn)
        err = exc_info.value
        assert err.last_error is inner
        assert timed_out(err)
        assert is_code(err, "Throttling")
        assert clock.now >= 5
        assert len(fn.calls) >= 2

    def test_final_attempt_after_deadline_can_succeed(self, ctx, clock):
        def fn():
            if clock.now < 5:
                raise RetryableError(CloudError("Busy"))
            return "late"

        assert retry(ctx, 5, fn) == "late"

    def test_backoff_doubles_to_poll_interval(self, ctx, clock):
        fn = _failing(6, RetryableError(CloudError("Busy")))
        retry_config(ctx, fn, timeout=300, rng=_NoJitter())
        assert clock.sleeps == [0.5, 1.0, 2.0, 4.0, 8.0, 10.0]

    def test_initial_delay(self, ctx, clock):
        retry_config(ctx, lambda: None, timeout=60, delay=3)
        assert clock.sleeps == [3]

    def test_cancelled_between_attempts(self, ctx):
        def fn():
            ctx.cancel()
            raise RetryableError(CloudError("Busy"))

        with pytest.raises(OperationCancelledError):
            retry(ctx, 60, fn)

    def test_context_deadline_clamps_timeout(self, ctx, clock):
        fn = _failing(1000, RetryableError(CloudError("Busy")))
        with pytest.raises(RetryTimeoutError):
            retry(ctx.with_timeout(3), 600, fn)
        assert clock.now == pytest.approx(3)


class TestRetryHelpers:
    def test_retry_when_code_equals(self, ctx):
        fn = _failing(2, CloudError("ResourceInUse"))
        assert retry_when_code_equals(ctx, 60, fn, "ResourceInUse") == "ok"

    def test_retry_when_code_equals_other_code(self, ctx):
        fn = _failing(2, CloudError("AccessDenied"))
        with pytest.raises(CloudError, match="AccessDenied"):
            retry_when_code_equals(ctx, 60, fn, "ResourceInUse")
        assert len(fn.calls) == 1

    def test_retry_classified(self, ctx):
        classifier = Classifier(transient_codes=["Busy"])
        fn = _failing(2, CloudError("Busy"))
        assert retry_classified(ctx, 60, fn, classifier) == "ok"

    def test_retry_when_not_found(self, ctx):
        fn = _failing(3, NotFoundError())
        assert retry_when_not_found(ctx, 60, fn) == "ok"
        assert len(fn.calls) == 4

    def test_new_resource_not_found_retried(self, ctx):
        fn = _failing(1, NotFoundError())
        assert retry_when_new_resource_not_found(ctx, 60, fn, True) == "ok"

    def test_existing_resource_not_found_raised(self, ctx):
        fn = _failing(1, NotFoundError())
        with pytest.raises(NotFoundError):
            retry_when_new_resource_not_found(ctx, 60, fn, False)
        assert len(fn.calls) == 1
