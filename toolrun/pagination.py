"""
Stateless cursor pagination.

A cursor is URL-safe base64 (unpadded) of ``{"offset": N}``.  Nothing is
stored server side, so any cursor can be replayed.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Mapping, Sequence, TypeVar

T = TypeVar("T")

FetchPage = Callable[[int, int], Awaitable[Any]]


class InvalidCursorError(ValueError):
    pass


def encode_cursor(offset: int) -> str:
    if offset < 0:
        raise InvalidCursorError("Invalid cursor: negative offset")
    raw = json.dumps({"offset": offset}, separators=(",", ":")).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def decode_cursor(cursor: str | None) -> int:
    """Return the offset encoded in *cursor*; absent or empty means 0."""
    if not cursor:
        return 0
    try:
        padded = cursor + "=" * (-len(cursor) % 4)
        data = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
    except (binascii.Error, UnicodeError, ValueError) as e:
        raise InvalidCursorError(f"Invalid cursor: {cursor!r}") from e
    offset = data.get("offset", 0) if isinstance(data, dict) else None
    if not isinstance(offset, int) or isinstance(offset, bool):
        raise InvalidCursorError(f"Invalid cursor: {cursor!r}")
    if offset < 0:
        raise InvalidCursorError("Invalid cursor: negative offset")
    return offset


@dataclass
class Page(Generic[T]):
    items: list[T]
    has_more: bool
    next_cursor: str | None = None
    total_count: int | None = None

    def to_dict(self) -> dict:
        d: dict[str, Any] = {"items": self.items, "hasMore": self.has_more}
        if self.next_cursor is not None:
            d["nextCursor"] = self.next_cursor
        if self.total_count is not None:
            d["totalCount"] = self.total_count
        return d


def _check_page_size(page_size: int) -> None:
    if page_size < 1:
        raise ValueError(f"page_size must be positive, got {page_size}")


def paginate_array(items: Sequence[T], page_size: int, cursor: str | None = None) -> Page[T]:
    """Slice one page out of a materialized sequence."""
    _check_page_size(page_size)
    offset = decode_cursor(cursor)
    total = len(items)
    if offset >= total:
        return Page(items=[], has_more=False, total_count=total)

    end = min(offset + page_size, total)
    has_more = end < total
    return Page(
        items=list(items[offset:end]),
        has_more=has_more,
        next_cursor=encode_cursor(end) if has_more else None,
        total_count=total,
    )


async def stream_paginate(fetch: FetchPage, page_size: int, cursor: str | None = None) -> Page:
    """
    Fetch exactly one page from a backend that supports skip/top.

    *fetch* is called as ``fetch(skip, top)`` and returns either a list or a
    ``{"value": [...], "count": N}`` mapping (``count`` optional).

    When the backend reports a count, ``has_more`` is exact.  Otherwise it is
    a heuristic: a full page is assumed to have more behind it, so a backend
    whose last page is exactly full costs one extra, empty, fetch to reach the
    end.
    """
    _check_page_size(page_size)
    offset = decode_cursor(cursor)
    result = await fetch(offset, page_size)

    count: int | None = None
    if isinstance(result, Mapping):
        items = list(result.get("value") or [])
        count = result.get("count")
    else:
        items = list(result or [])

    if count is not None:
        has_more = bool(items) and offset + len(items) < count
    else:
        has_more = len(items) == page_size

    return Page(
        items=items,
        has_more=has_more,
        next_cursor=encode_cursor(offset + len(items)) if has_more else None,
        total_count=count,
    )
