from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Generic, Sequence, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Page(Generic[T]):
    items: list[T]
    total: int
    total_pages: int
    safe_page: int


def total_pages_for(total: int, limit: int) -> int:
    return max(1, math.ceil(total / limit))


def clamp_page(page: int, total_pages: int) -> int:
    return max(1, min(int(page), total_pages))


def paginate(sorted_filtered: Sequence[T], page: int, limit: int) -> Page[T]:
    """Slice one page; an out-of-range page falls back to the nearest valid one."""
    if limit < 1:
        raise ValueError(f"limit must be >= 1, got {limit!r}")
    total = len(sorted_filtered)
    total_pages = total_pages_for(total, limit)
    safe_page = clamp_page(page, total_pages)
    start = (safe_page - 1) * limit
    return Page(
        items=list(sorted_filtered[start : start + limit]),
        total=total,
        total_pages=total_pages,
        safe_page=safe_page,
    )
