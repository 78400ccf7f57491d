"""Walk a remote list operation page by page."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator

logger = logging.getLogger(__name__)

type Fetch[T] = Callable[[str | None], tuple[T | None, str | None]]
type Visitor[T] = Callable[[T | None, bool], bool]


class Pages[T]:
    """Restartable lazy sequence of ``(page, is_last)`` pairs.

    ``fetch(token)`` returns the page and the token for the next one; an
    empty or missing token marks the last page. Each iteration starts over
    from ``start_token`` and fetches one page at a time.
    """

    def __init__(self, fetch: Fetch[T], *, start_token: str | None = None) -> None:
        self._fetch = fetch
        self._start_token = start_token

    def __iter__(self) -> Iterator[tuple[T | None, bool]]:
        token = self._start_token
        count = 0
        while True:
            page, next_token = self._fetch(token)
            count += 1
            last = not next_token
            logger.debug("Fetched page %d (last=%s)", count, last)
            yield page, last
            if last:
                return
            token = next_token

    def items[I](self, extract: Callable[[T], list[I] | None]) -> Iterator[I]:
        """Yield the items of every page, skipping empty pages."""
        for page, _ in self:
            if page is None:
                continue
            yield from extract(page) or []

    def each(self, visitor: Visitor[T]) -> None:
        """Call visitor(page, is_last) until it returns False or pages run out."""
        for page, last in self:
            if not visitor(page, last) or last:
                break


def list_pages[T](fetch: Fetch[T], visitor: Visitor[T], *, start_token: str | None = None) -> None:
    """Visitor-form pagination over fetch."""
    Pages(fetch, start_token=start_token).each(visitor)
