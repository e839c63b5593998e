from __future__ import annotations

import pytest

from txflow.features.pagination import paginate
from txflow.models import PaginationState


def test_zero_total_yields_single_empty_page() -> None:
    page = paginate([], page=3, limit=10)

    assert page.total == 0
    assert page.total_pages == 1
    assert page.safe_page == 1
    assert page.items == []


def test_out_of_range_page_is_clamped() -> None:
    items = list(range(25))

    last = paginate(items, page=99, limit=10)
    first = paginate(items, page=-4, limit=10)

    assert last.safe_page == 3
    assert last.items == [20, 21, 22, 23, 24]
    assert first.safe_page == 1
    assert first.items == list(range(10))


@pytest.mark.parametrize("total,limit", [(1, 1), (9, 10), (10, 10), (11, 10), (57, 7)])
def test_page_bounds_hold(total: int, limit: int) -> None:
    items = list(range(total))
    for requested in range(0, total + 3):
        page = paginate(items, page=requested, limit=limit)
        assert 1 <= page.safe_page <= page.total_pages
        assert len(page.items) <= limit


def test_invalid_limit_is_rejected() -> None:
    with pytest.raises(ValueError):
        paginate([1, 2], page=1, limit=0)


def test_pagination_state_total_pages() -> None:
    assert PaginationState(page=1, limit=10, total=0).total_pages == 1
    assert PaginationState(page=1, limit=10, total=21).total_pages == 3
