from __future__ import annotations

import pytest

from txflow.models import FilterCriteria, FlowType
from txflow.pipeline.table import TablePipeline


def _payload(count: int) -> dict:
    return {
        "data": [
            {
                "ref": f"R{index:02d}",
                "status": "success" if index % 3 else "failed",
                "amount": index * 10,
                "bankCode": "014" if index % 2 else "004",
                "createdAt": f"2024-01-05T10:{index:02d}:00Z",
            }
            for index in range(count)
        ],
        "total": count,
    }


def test_table_pipeline_sorts_newest_first_and_paginates() -> None:
    table = TablePipeline(FlowType.PAYMENT, timezone_name="UTC", limit=10)
    table.load_payload(_payload(25))

    assert table.pagination.total == 25
    assert table.pagination.total_pages == 3
    assert [row.identifiers.ref for row in table.rows][:2] == ["R24", "R23"]

    table.set_page(3)
    assert len(table.rows) == 5
    assert table.rows[-1].identifiers.ref == "R00"


def test_filter_change_resets_page() -> None:
    table = TablePipeline(FlowType.PAYMENT, timezone_name="UTC", limit=5)
    table.load_payload(_payload(25))
    table.set_page(4)
    assert table.pagination.page == 4

    table.update_criteria(bank="014")

    assert table.pagination.page == 1
    assert table.pagination.total == 12
    assert all(row.bank_code == "014" for row in table.rows)


def test_page_is_clamped_when_filters_shrink_results() -> None:
    table = TablePipeline(FlowType.PAYMENT, timezone_name="UTC", limit=5)
    table.load_payload(_payload(25))
    table.set_page(99)

    assert table.pagination.page == 5

    table.set_criteria(FilterCriteria(search="zzz"))
    assert table.pagination.page == 1
    assert table.pagination.total == 0
    assert table.pagination.total_pages == 1
    assert table.rows == []


def test_set_limit_resets_page_and_rejects_invalid_limit() -> None:
    table = TablePipeline(FlowType.PAYMENT, timezone_name="UTC", limit=5)
    table.load_payload(_payload(25))
    table.set_page(3)

    table.set_limit(20)
    assert table.pagination.page == 1
    assert len(table.rows) == 20

    with pytest.raises(ValueError):
        table.set_limit(0)


def test_reset_criteria_restores_everything() -> None:
    table = TablePipeline(FlowType.PAYMENT, timezone_name="UTC", limit=50)
    table.load_payload(_payload(10))
    table.update_criteria(status="failed")
    assert table.pagination.total == 4

    table.reset_criteria()
    assert table.pagination.total == 10


def test_malformed_payload_yields_empty_table() -> None:
    table = TablePipeline(FlowType.TRANSFER, timezone_name="UTC")
    table.load_payload({"error": "boom"})

    assert table.records == []
    assert table.pagination.total_pages == 1
