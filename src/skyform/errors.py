"""Error kinds raised by the reconciliation core."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any


class SkyformError(Exception):
    """Base class for all errors raised by skyform."""


class CloudError(SkyformError):
    """An error reported by a remote cloud API.

    Thin client adapters translate their native exceptions into this shape so
    the classifier can branch on ``code`` without knowing the wire format.
    """

    def __init__(
        self,
        code: str,
        message: str = "",
        *,
        status_code: int | None = None,
        request_id: str | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        self.request_id = request_id
        super().__init__(f"{code}: {message}" if message else code)


class NotFoundError(SkyformError):
    """Logical absence of a remote object."""

    def __init__(
        self,
        message: str = "",
        *,
        last_error: BaseException | None = None,
        last_request: Any = None,
        retries: int = 0,
    ) -> None:
        self.message = message
        self.last_error = last_error
        self.last_request = last_request
        self.retries = retries
        super().__init__(str(self))

    def __str__(self) -> str:
        if self.message:
            return self.message
        if self.last_error is not None:
            return str(self.last_error)
        if self.retries:
            return f"couldn't find resource ({self.retries} retries)"
        return "couldn't find resource"


class TooManyResultsError(SkyformError):
    """A lookup expected exactly one remote object but found several."""

    def __init__(self, count: int, *, last_request: Any = None) -> None:
        self.count = count
        self.last_request = last_request
        super().__init__(f"too many results: wanted 1, got {count}")


class RetryableError(SkyformError):
    """Marks an attempt inside the retry driver as worth repeating."""

    def __init__(self, err: BaseException) -> None:
        self.err = err
        super().__init__(str(err))


class NonRetryableError(SkyformError):
    """Marks an attempt inside the retry driver as final."""

    def __init__(self, err: BaseException) -> None:
        self.err = err
        super().__init__(str(err))


class RetryTimeoutError(SkyformError):
    """The retry deadline elapsed; carries the final attempt's real error."""

    def __init__(self, timeout: float, last_error: BaseException | None = None) -> None:
        self.timeout = timeout
        self.last_error = last_error
        msg = f"timeout while retrying after {timeout:g}s"
        if last_error is not None:
            msg = f"{msg}: {last_error}"
        super().__init__(msg)


class WaitTimeoutError(SkyformError):
    """A waiter did not reach its target before the deadline."""

    def __init__(
        self,
        timeout: float,
        *,
        expected: Iterable[str] = (),
        last_status: str = "",
        last_value: Any = None,
        last_error: BaseException | None = None,
    ) -> None:
        self.timeout = timeout
        self.expected = sorted(expected)
        self.last_status = last_status
        self.last_value = last_value
        self.last_error = last_error
        wanted = ", ".join(repr(s) for s in self.expected)
        msg = f"timeout while waiting for state to become {wanted}"
        msg += f" (last state: {self.last_status!r}, timeout: {timeout:g}s)"
        if last_error is not None:
            msg = f"{msg}: {last_error}"
        super().__init__(msg)


class UnexpectedStateError(SkyformError):
    """A waiter observed a status outside its pending and target sets."""

    def __init__(
        self,
        state: str,
        *,
        pending: Iterable[str] = (),
        target: Iterable[str] = (),
        last_error: BaseException | None = None,
    ) -> None:
        self.state = state
        self.pending = sorted(pending)
        self.target = sorted(target)
        self.last_error = last_error
        msg = (
            f"unexpected state {state!r}, wanted target {', '.join(repr(s) for s in self.target)}"
            f" (pending: {', '.join(repr(s) for s in self.pending)})"
        )
        if last_error is not None:
            msg = f"{msg}. last error: {last_error}"
        super().__init__(msg)


class SchemaValidationError(SkyformError):
    """Desired configuration failed schema validation."""

    def __init__(self, errors: list[str], *, warnings: list[str] | None = None) -> None:
        self.errors = list(errors)
        self.warnings = list(warnings or [])
        super().__init__("; ".join(self.errors))


class OperationCancelledError(SkyformError):
    """The operation's context was cancelled."""


class OperationError(SkyformError):
    """Wraps a handler failure with the operation and resource it affected."""

    def __init__(self, action: str, resource: str, identifier: str, err: BaseException) -> None:
        self.action = action
        self.resource = resource
        self.identifier = identifier
        self.err = err
        super().__init__(f"error {action} {resource} ({identifier}): {err}")


class PartialApplyError(SkyformError):
    """A mutating handler failed after the remote object was (partly) changed.

    ``instance`` is the state observed by the recovery read, so the host can
    persist partial progress before surfacing ``err``.
    """

    def __init__(self, instance: Any, err: BaseException) -> None:
        self.instance = instance
        self.err = err
        super().__init__(str(err))
