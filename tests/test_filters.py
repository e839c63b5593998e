from __future__ import annotations

from typing import Any

from txflow.features.filters import filter_records, sort_newest_first
from txflow.models import FilterCriteria, FlowType, NormalizedRecord
from txflow.preprocess.normalize import normalize_record


def _payment(**fields: Any) -> NormalizedRecord:
    return normalize_record(fields, flow_type=FlowType.PAYMENT, timezone_name="Asia/Bangkok")


def _refs(records: list[NormalizedRecord]) -> list[str]:
    return [record.identifiers.ref for record in records]


def test_filter_by_date_includes_whole_local_day() -> None:
    records = [
        _payment(ref="in", createdAt="2024-01-05 23:59:59", amount=10),
        _payment(ref="out", createdAt="2024-01-06 00:00:01", amount=10),
        _payment(ref="early", createdAt="2024-01-04 23:59:59", amount=10),
    ]

    result = filter_records(
        records, FilterCriteria(date_from="2024-01-05", date_to="2024-01-05"), "Asia/Bangkok"
    )

    assert _refs(result) == ["in"]


def test_filter_status_is_case_insensitive_and_all_is_inactive() -> None:
    records = [
        _payment(ref="a", status="SUCCESS"),
        _payment(ref="b", status="failed"),
    ]

    assert _refs(filter_records(records, FilterCriteria(status="success"), "UTC")) == ["a"]
    assert len(filter_records(records, FilterCriteria(status="all"), "UTC")) == 2


def test_filter_bank_is_exact_match() -> None:
    records = [_payment(ref="a", bankCode="014"), _payment(ref="b", bankCode="0141")]

    assert _refs(filter_records(records, FilterCriteria(bank="014"), "UTC")) == ["a"]


def test_search_matches_member_name_substring() -> None:
    records = [
        _payment(ref="a", member={"name": "Somchai Jaidee"}),
        _payment(ref="b", member={"name": "Malee"}),
    ]

    assert _refs(filter_records(records, FilterCriteria(search="jaid"), "UTC")) == ["a"]


def test_amount_bounds_are_inclusive_and_reject_missing_amounts() -> None:
    records = [
        _payment(ref="low", amount=99.99),
        _payment(ref="edge", amount="100"),
        _payment(ref="high", amount=500),
        _payment(ref="missing", amount="n/a"),
    ]

    result = filter_records(records, FilterCriteria(amount_min=100, amount_max="500"), "UTC")

    assert sorted(_refs(result)) == ["edge", "high"]


def test_missing_timestamp_fails_active_date_bound() -> None:
    records = [_payment(ref="undated", amount=1), _payment(ref="dated", createdAt="2024-01-05")]

    assert _refs(filter_records(records, FilterCriteria(date_from="2024-01-01"), "UTC")) == ["dated"]
    assert len(filter_records(records, FilterCriteria(), "UTC")) == 2


def test_filter_output_is_subset_and_idempotent() -> None:
    records = [
        _payment(ref=str(index), status="success" if index % 2 else "failed", amount=index)
        for index in range(10)
    ]
    criteria = FilterCriteria(status="success", amount_min=3)

    once = filter_records(records, criteria, "UTC")
    twice = filter_records(once, criteria, "UTC")

    assert all(record in records for record in once)
    assert once == twice


def test_sort_newest_first_is_stable_and_puts_undated_last() -> None:
    records = [
        _payment(ref="old", createdAt="2024-01-01T00:00:00Z"),
        _payment(ref="undated"),
        _payment(ref="new-a", createdAt="2024-01-02T00:00:00Z"),
        _payment(ref="new-b", createdAt="2024-01-02T00:00:00Z"),
    ]

    assert _refs(sort_newest_first(records)) == ["new-a", "new-b", "old", "undated"]


def test_empty_input_returns_empty() -> None:
    assert filter_records([], FilterCriteria(search="x"), "UTC") == []
