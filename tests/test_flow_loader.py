from __future__ import annotations

import asyncio
from datetime import date
from typing import Any, Mapping

import pytest

from txflow.models import FilterCriteria, FlowType, RangePreset, RangeSelection
from txflow.pipeline.flow_loader import FlowDatasetLoader, FlowDatasetState, build_upstream_filters

TODAY = date(2024, 1, 5)


class FakeSource:
    def __init__(self, pages: list[Any], total: int | None = None, total_pages: int | None = None) -> None:
        self.pages = pages
        self.total = total
        self.total_pages = total_pages
        self.calls: list[tuple[int, int, Mapping[str, Any] | None]] = []
        self.gate: asyncio.Event | None = None
        self.delay = 0.0

    async def get_all(self, page: int, limit: int, filters: Mapping[str, Any] | None = None) -> Any:
        self.calls.append((page, limit, filters))
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        data = self.pages[page - 1] if page <= len(self.pages) else []
        if not isinstance(data, list):
            return data
        payload: dict[str, Any] = {"data": data}
        if self.total is not None:
            payload["total"] = self.total
        if self.total_pages is not None:
            payload["totalPages"] = self.total_pages
        return payload


class FailingSource:
    async def get_all(self, page: int, limit: int, filters: Mapping[str, Any] | None = None) -> Any:
        raise RuntimeError("network down")


def _row(ref: str, created_at: str = "2024-01-05T10:00:30", amount: float = 10.0) -> dict[str, Any]:
    return {"ref": ref, "createdAt": created_at, "amount": amount, "status": "success"}


def _loader(sources: Mapping[FlowType, Any], **kwargs: Any) -> FlowDatasetLoader:
    return FlowDatasetLoader(sources, timezone_name="Asia/Bangkok", **kwargs)


def _refs(loader: FlowDatasetLoader) -> list[str]:
    return sorted(record.identifiers.ref for record in loader.records)


def _ref_set(state: FlowDatasetState) -> set[str]:
    return {record.identifiers.ref for record in state.records}


@pytest.mark.asyncio
async def test_payments_tab_loads_payments_and_transfers_tagged() -> None:
    payments = FakeSource([[_row("p1")]], total=1)
    transfers = FakeSource([[_row("t1")]], total=1)
    loader = _loader({FlowType.PAYMENT: payments, FlowType.TRANSFER: transfers})

    result = await loader.load(FlowType.PAYMENT, RangeSelection(RangePreset.TODAY), today=TODAY)

    assert result.status == "committed"
    assert {record.flow_type for record in loader.records} == {FlowType.PAYMENT, FlowType.TRANSFER}
    assert _refs(loader) == ["p1", "t1"]
    assert not loader.is_loading


@pytest.mark.asyncio
async def test_pages_until_total_is_exhausted() -> None:
    pages = [[_row(f"p{page}-{index}") for index in range(2)] for page in range(3)]
    payments = FakeSource(pages, total=5)
    transfers = FakeSource([[]], total=0)
    loader = _loader({FlowType.PAYMENT: payments, FlowType.TRANSFER: transfers}, page_limit=2)

    result = await loader.load(FlowType.PAYMENT, RangeSelection(RangePreset.TODAY), today=TODAY)

    assert [call[0] for call in payments.calls] == [1, 2, 3]
    assert result.fetched == 6
    assert [call[0] for call in transfers.calls] == [1]


@pytest.mark.asyncio
async def test_total_pages_fallback_and_page_cap() -> None:
    pages = [[_row(f"p{page}")] for page in range(10)]
    payments = FakeSource(pages, total_pages=10)
    transfers = FakeSource([[]])
    loader = _loader({FlowType.PAYMENT: payments, FlowType.TRANSFER: transfers}, page_limit=1, max_pages=4)

    result = await loader.load(FlowType.PAYMENT, RangeSelection(RangePreset.TODAY), today=TODAY)

    assert len(payments.calls) == 4
    assert result.capped == (FlowType.PAYMENT,)
    assert len(loader.records) == 4


@pytest.mark.asyncio
async def test_upstream_filters_use_chart_range_over_table_dates() -> None:
    payments = FakeSource([[]])
    transfers = FakeSource([[]])
    loader = _loader({FlowType.PAYMENT: payments, FlowType.TRANSFER: transfers})
    criteria = FilterCriteria(bank="014", status="success", date_from="2023-01-01", amount_min=5)

    await loader.load(
        FlowType.TRANSFER,
        RangeSelection(RangePreset.LAST_7D),
        {FlowType.PAYMENT: criteria},
        today=TODAY,
    )

    filters = payments.calls[0][2]
    assert filters is not None
    assert filters["bankCode"] == "014"
    assert filters["dateFrom"] == "2023-12-30"
    assert filters["dateTo"] == "2024-01-05"
    assert filters["amountMin"] == 5
    assert transfers.calls[0][2]["bankCode"] == "all"


@pytest.mark.asyncio
async def test_qr_tab_fetches_qr_only_without_filters() -> None:
    qr = FakeSource([[{"ref1": "q1", "createdAt": "2024-01-05T09:00:00", "amountInBaht": 5}]], total=1)
    payments = FakeSource([[]])
    loader = _loader({FlowType.QR_PAYMENT: qr, FlowType.PAYMENT: payments})

    result = await loader.load(FlowType.QR_PAYMENT, RangeSelection(RangePreset.TODAY), today=TODAY)

    assert result.status == "committed"
    assert qr.calls == [(1, 200, None)]
    assert payments.calls == []
    assert loader.records[0].flow_type == FlowType.QR_PAYMENT


@pytest.mark.asyncio
async def test_registrations_tab_skips_chart_load() -> None:
    loader = _loader({})

    result = await loader.load(FlowType.REGISTRATION, RangeSelection(RangePreset.TODAY), today=TODAY)

    assert result.status == "skipped"
    assert loader.latest_request_id == 0
    assert not loader.is_loading


@pytest.mark.asyncio
async def test_defensive_date_filter_drops_out_of_range_rows() -> None:
    payments = FakeSource(
        [
            [
                _row("inside", "2024-01-05T23:59:59"),
                _row("after", "2024-01-06T00:00:01"),
                {"ref": "undated", "amount": 3, "status": "success"},
            ]
        ],
        total=3,
    )
    transfers = FakeSource([[]])
    loader = _loader({FlowType.PAYMENT: payments, FlowType.TRANSFER: transfers})

    result = await loader.load(FlowType.PAYMENT, RangeSelection(RangePreset.TODAY), today=TODAY)

    assert _refs(loader) == ["inside"]
    assert result.fetched == 3
    assert result.kept == 1


@pytest.mark.asyncio
async def test_newer_load_wins_when_older_finishes_last() -> None:
    slow = FakeSource([[_row("old")]], total=1)
    slow.gate = asyncio.Event()
    fast = FakeSource([[_row("new")]], total=1)
    transfers = FakeSource([[]])
    sources = {FlowType.PAYMENT: slow, FlowType.TRANSFER: transfers}
    loader = _loader(sources)
    states: list[FlowDatasetState] = []
    loader.subscribe(states.append)

    first = asyncio.create_task(
        loader.load(FlowType.PAYMENT, RangeSelection(RangePreset.TODAY), today=TODAY)
    )
    while not slow.calls:
        await asyncio.sleep(0)
    loader._sources[FlowType.PAYMENT] = fast

    second = await loader.load(FlowType.PAYMENT, RangeSelection(RangePreset.TODAY), today=TODAY)
    assert second.status == "committed"
    assert _refs(loader) == ["new"]
    assert not loader.is_loading

    slow.gate.set()
    first_result = await first

    assert first_result.status == "superseded"
    assert _refs(loader) == ["new"]
    assert loader.state.request_id == second.request_id
    assert not loader.is_loading
    assert all(state.records == () or _ref_set(state) == {"new"} for state in states)


@pytest.mark.asyncio
async def test_fetch_failure_keeps_previous_data() -> None:
    payments = FakeSource([[_row("kept")]], total=1)
    transfers = FakeSource([[]])
    loader = _loader({FlowType.PAYMENT: payments, FlowType.TRANSFER: transfers})
    await loader.load(FlowType.PAYMENT, RangeSelection(RangePreset.TODAY), today=TODAY)

    loader._sources[FlowType.TRANSFER] = FailingSource()
    result = await loader.load(FlowType.PAYMENT, RangeSelection(RangePreset.TODAY), today=TODAY)

    assert result.status == "failed"
    assert _refs(loader) == ["kept"]
    assert not loader.is_loading


@pytest.mark.asyncio
async def test_superseded_load_stops_paging_after_current_page() -> None:
    slow = FakeSource([[_row(f"old{page}")] for page in range(3)], total=3)
    slow.gate = asyncio.Event()
    fast = FakeSource([[_row("new")]], total=1)
    transfers = FakeSource([[]])
    loader = _loader({FlowType.PAYMENT: slow, FlowType.TRANSFER: transfers}, page_limit=1)

    first = asyncio.create_task(
        loader.load(FlowType.PAYMENT, RangeSelection(RangePreset.TODAY), today=TODAY)
    )
    while not slow.calls:
        await asyncio.sleep(0)
    loader._sources[FlowType.PAYMENT] = fast
    second = await loader.load(FlowType.PAYMENT, RangeSelection(RangePreset.TODAY), today=TODAY)

    slow.gate.set()
    first_result = await first

    assert second.status == "committed"
    assert first_result.status == "superseded"
    assert [call[0] for call in slow.calls] == [1]
    assert _refs(loader) == ["new"]


@pytest.mark.asyncio
async def test_failed_source_cancels_sibling_paging() -> None:
    payments = FakeSource([[_row(f"p{page}")] for page in range(10)], total=10)
    payments.delay = 0.01
    loader = _loader({FlowType.PAYMENT: payments, FlowType.TRANSFER: FailingSource()}, page_limit=1)

    result = await loader.load(FlowType.PAYMENT, RangeSelection(RangePreset.TODAY), today=TODAY)
    calls_at_return = len(payments.calls)
    await asyncio.sleep(0.1)

    assert result.status == "failed"
    assert len(payments.calls) == calls_at_return
    assert calls_at_return < 10
    assert not loader.is_loading


@pytest.mark.asyncio
async def test_malformed_page_is_treated_as_empty() -> None:
    payments = FakeSource(["not a payload"])
    transfers = FakeSource([[]])
    loader = _loader({FlowType.PAYMENT: payments, FlowType.TRANSFER: transfers})

    result = await loader.load(FlowType.PAYMENT, RangeSelection(RangePreset.TODAY), today=TODAY)

    assert result.status == "committed"
    assert loader.records == ()


def test_build_upstream_filters_keeps_table_dates_without_range() -> None:
    criteria = FilterCriteria(date_from="2024-01-01", date_to="2024-01-02")

    filters = build_upstream_filters(criteria, None, None)

    assert filters["dateFrom"] == "2024-01-01"
    assert filters["dateTo"] == "2024-01-02"
