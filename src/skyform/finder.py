"""Finder building blocks — typed lookups that turn absence into NotFoundError.

A finder maps an identifier to exactly one remote entity. It returns the
entity, raises NotFoundError when the remote reports "no such X", returns an
empty result, or reports the entity in a terminal deleted state, and lets
every other error through unchanged.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Collection, Iterable, Sequence
from typing import Any

from .classify import is_code, is_code_message, is_not_found
from .errors import NotFoundError, TooManyResultsError
from .pages import Pages

logger = logging.getLogger(__name__)


def _is_empty(output: Any) -> bool:
    if output is None:
        return True
    if isinstance(output, (list, tuple, dict, set, frozenset)):
        return len(output) == 0
    return False


def find[R, O](
    call: Callable[[R], O | None],
    request: R,
    *,
    not_found_codes: Iterable[str] = (),
    not_found_messages: Iterable[tuple[str, str]] = (),
    deleted_states: Collection[str] = (),
    status: Callable[[O], str | None] | None = None,
) -> O:
    """Call the remote and translate every flavour of absence into NotFoundError."""
    codes = tuple(not_found_codes)
    messages = tuple(not_found_messages)
    try:
        output = call(request)
    except Exception as err:
        if (
            any(is_code(err, c) for c in codes)
            or any(is_code_message(err, c, m) for c, m in messages)
            or is_not_found(err)
        ):
            raise NotFoundError(last_error=err, last_request=request) from err
        raise

    if _is_empty(output):
        raise NotFoundError("Empty result", last_request=request)

    if status is not None and deleted_states:
        state = status(output)
        if state in deleted_states:
            logger.debug("Remote object is in terminal state '%s'; treating as absent", state)
            raise NotFoundError(state or "", last_request=request)

    return output


def find_single[I](items: Sequence[I] | None, request: Any = None) -> I:
    """Return the only item, raising if there are none or several."""
    if not items:
        raise NotFoundError("Empty result", last_request=request)
    if len(items) > 1:
        raise TooManyResultsError(len(items), last_request=request)
    return items[0]


def find_in_pages[T, I](
    pages: Pages[T],
    extract: Callable[[T], list[I] | None],
    match: Callable[[I], bool],
    request: Any = None,
) -> I:
    """Return the first matching item across pages, stopping at the first hit."""
    for item in pages.items(extract):
        if item is not None and match(item):
            return item
    raise NotFoundError("Empty result", last_request=request)


def status_from[O](
    lookup: Callable[[], O],
    status: Callable[[O], str],
) -> Callable[[], tuple[O | None, str]]:
    """Build a waiter refresh function from a finder call.

    NotFound becomes ``(None, "")`` so the waiter can apply its own
    not-found accounting; other errors propagate.
    """

    def refresh() -> tuple[O | None, str]:
        try:
            output = lookup()
        except NotFoundError:
            return None, ""
        return output, status(output)

    return refresh
