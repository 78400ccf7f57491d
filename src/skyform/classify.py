"""Error classification: the only place that branches on remote error shape."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from enum import Enum

from .errors import NotFoundError, OperationCancelledError, RetryTimeoutError


DEFAULT_THROTTLE_CODES: frozenset[str] = frozenset(
    {
        "Throttling",
        "ThrottlingException",
        "ThrottledException",
        "RequestThrottled",
        "RequestThrottledException",
        "RequestLimitExceeded",
        "TooManyRequestsException",
        "SlowDown",
        "PriorRequestNotComplete",
    }
)


class ErrorClass(Enum):
    NOT_FOUND = "not_found"
    THROTTLED = "throttled"
    TRANSIENT = "transient"
    NON_RETRYABLE = "non_retryable"


def unwrap(err: BaseException | None) -> Iterator[BaseException]:
    """Yield err and every error it wraps, outermost first."""
    seen: set[int] = set()
    current = err
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        nxt = getattr(current, "last_error", None) or getattr(current, "err", None)
        if not isinstance(nxt, BaseException):
            nxt = current.__cause__
        current = nxt


def _own_code(err: BaseException) -> str | None:
    code = getattr(err, "code", None)
    if isinstance(code, str) and code:
        return code
    # botocore-style ClientError
    response = getattr(err, "response", None)
    if isinstance(response, dict):
        code = response.get("Error", {}).get("Code")
        if isinstance(code, str) and code:
            return code
    return None


def _own_message(err: BaseException) -> str:
    message = getattr(err, "message", None)
    if isinstance(message, str) and message:
        return message
    response = getattr(err, "response", None)
    if isinstance(response, dict):
        message = response.get("Error", {}).get("Message")
        if isinstance(message, str):
            return message
    return str(err)


def error_code(err: BaseException | None) -> str | None:
    """Return the first remote error code found in the wrapped chain."""
    for e in unwrap(err):
        code = _own_code(e)
        if code is not None:
            return code
    return None


def is_code(err: BaseException | None, code: str) -> bool:
    """True if err (or an error it wraps) carries exactly the remote code."""
    return any(_own_code(e) == code for e in unwrap(err))


def is_code_message(err: BaseException | None, code: str, substr: str) -> bool:
    """True if err carries the remote code and its message contains substr."""
    return any(_own_code(e) == code and substr in _own_message(e) for e in unwrap(err))


def is_not_found(err: BaseException | None) -> bool:
    return any(isinstance(e, NotFoundError) for e in unwrap(err))


def timed_out(err: BaseException | None) -> bool:
    """True if err came from the retry driver's final attempt after its deadline."""
    return any(isinstance(e, RetryTimeoutError) for e in unwrap(err))


def is_cancelled(err: BaseException | None) -> bool:
    return any(isinstance(e, OperationCancelledError) for e in unwrap(err))


class Classifier:
    """Maps remote errors onto retry decisions."""

    def __init__(
        self,
        *,
        not_found_codes: Iterable[str] = (),
        throttle_codes: Iterable[str] = DEFAULT_THROTTLE_CODES,
        transient_codes: Iterable[str] = (),
        transient_messages: Iterable[tuple[str, str]] = (),
        retry_not_found: bool = False,
        retry_cancelled: bool = False,
    ) -> None:
        self.not_found_codes = frozenset(not_found_codes)
        self.throttle_codes = frozenset(throttle_codes)
        self.transient_codes = frozenset(transient_codes)
        self.transient_messages = tuple(transient_messages)
        self.retry_not_found = retry_not_found
        self.retry_cancelled = retry_cancelled

    def classify(self, err: BaseException) -> ErrorClass:
        if is_cancelled(err):
            return ErrorClass.TRANSIENT if self.retry_cancelled else ErrorClass.NON_RETRYABLE
        if is_not_found(err) or any(is_code(err, c) for c in self.not_found_codes):
            return ErrorClass.NOT_FOUND
        if any(is_code(err, c) for c in self.throttle_codes):
            return ErrorClass.THROTTLED
        if any(is_code(err, c) for c in self.transient_codes):
            return ErrorClass.TRANSIENT
        if any(is_code_message(err, c, m) for c, m in self.transient_messages):
            return ErrorClass.TRANSIENT
        return ErrorClass.NON_RETRYABLE

    def is_retryable(self, err: BaseException) -> bool:
        cls = self.classify(err)
        if cls is ErrorClass.NOT_FOUND:
            return self.retry_not_found
        return cls in (ErrorClass.THROTTLED, ErrorClass.TRANSIENT)

    def with_transient_codes(self, *codes: str) -> Classifier:
        """Return a copy that also treats codes as transient."""
        return Classifier(
            not_found_codes=self.not_found_codes,
            throttle_codes=self.throttle_codes,
            transient_codes=self.transient_codes | set(codes),
            transient_messages=self.transient_messages,
            retry_not_found=self.retry_not_found,
            retry_cancelled=self.retry_cancelled,
        )

    def __repr__(self) -> str:
        return (
            f"Classifier(not_found={sorted(self.not_found_codes)}, "
            f"transient={sorted(self.transient_codes)})"
        )
