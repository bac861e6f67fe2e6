"""Cursor pagination over ``ListPage`` endpoints."""

from __future__ import annotations

import inspect
from typing import Any, AsyncIterator, Awaitable, Callable, Iterator, Optional

from .models.base import ListPage

PageFetcher = Callable[[Optional[str]], ListPage]
AsyncPageFetcher = Callable[[Optional[str]], Awaitable[ListPage]]


def paginate(fetch_page: PageFetcher, after: str = None) -> Iterator[Any]:
    """Yield every item, following ``next_cursor`` while ``has_more`` is set."""
    cursor = after
    while True:
        page = fetch_page(cursor)
        if inspect.isawaitable(page):
            page.close()
            raise TypeError("Resource belongs to an AsyncClient; use aiter_all() instead")
        yield from page.data
        if not page.has_more or not page.next_cursor:
            return
        cursor = page.next_cursor


async def apaginate(fetch_page: AsyncPageFetcher, after: str = None) -> AsyncIterator[Any]:
    cursor = after
    while True:
        page = await fetch_page(cursor)
        for item in page.data:
            yield item
        if not page.has_more or not page.next_cursor:
            return
        cursor = page.next_cursor


__all__ = ["ListPage", "paginate", "apaginate"]
