from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Coroutine, Literal, Mapping

from txflow.io.client import PagedSource
from txflow.models import FilterCriteria, FlowType, NormalizedRecord, RangeSelection
from txflow.preprocess.normalize import extract_rows, normalize_records
from txflow.preprocess.time import day_bounds, local_today, within_bounds

LOGGER = logging.getLogger(__name__)

DEFAULT_PAGE_LIMIT = 200
DEFAULT_MAX_PAGES = 50

# Sources whose flow data is charted for each dashboard tab.
TAB_FLOW_TYPES: dict[FlowType, tuple[FlowType, ...]] = {
    FlowType.PAYMENT: (FlowType.PAYMENT, FlowType.TRANSFER),
    FlowType.TRANSFER: (FlowType.PAYMENT, FlowType.TRANSFER),
    FlowType.QR_PAYMENT: (FlowType.QR_PAYMENT,),
    FlowType.REGISTRATION: (),
}

# Sources that accept upstream filter parameters.
FILTERABLE_FLOW_TYPES = frozenset({FlowType.PAYMENT, FlowType.TRANSFER, FlowType.REGISTRATION})

LoadStatus = Literal["committed", "superseded", "failed", "skipped"]


@dataclass(frozen=True)
class FlowDatasetState:
    records: tuple[NormalizedRecord, ...] = ()
    is_loading: bool = False
    request_id: int = 0
    date_from: date | None = None
    date_to: date | None = None


@dataclass(frozen=True)
class FlowLoadResult:
    request_id: int
    status: LoadStatus
    fetched: int = 0
    kept: int = 0
    capped: tuple[FlowType, ...] = ()


@dataclass
class _SourceFetch:
    records: list[NormalizedRecord] = field(default_factory=list)
    superseded: bool = False
    capped: bool = False


def build_upstream_filters(
    criteria: FilterCriteria,
    date_from: date | None,
    date_to: date | None,
) -> dict[str, Any]:
    """Request parameters for one source; the chart range overrides the table dates."""
    return {
        "bankCode": criteria.bank,
        "status": criteria.status,
        "search": criteria.search,
        "dateFrom": date_from.isoformat() if date_from else criteria.date_from,
        "dateTo": date_to.isoformat() if date_to else criteria.date_to,
        "amountMin": criteria.amount_min,
        "amountMax": criteria.amount_max,
    }


def next_total_pages(payload: Any, limit: int, current: int) -> int:
    if not isinstance(payload, Mapping):
        return current
    total = payload.get("total")
    if isinstance(total, (int, float)) and not isinstance(total, bool) and total > 0:
        return math.ceil(total / limit)
    total_pages = payload.get("totalPages")
    if isinstance(total_pages, int) and not isinstance(total_pages, bool):
        return total_pages
    return current


async def _gather_or_cancel(coroutines: list[Coroutine[Any, Any, _SourceFetch]]) -> list[_SourceFetch]:
    """Run source fetches concurrently; the first failure cancels the others and is re-raised."""
    tasks = [asyncio.ensure_future(coroutine) for coroutine in coroutines]
    try:
        await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    finally:
        unfinished = [task for task in tasks if not task.done()]
        for task in unfinished:
            task.cancel()
        if unfinished:
            await asyncio.gather(*unfinished, return_exceptions=True)
    return [task.result() for task in tasks]


class FlowDatasetLoader:
    """Loads the chart-only flow dataset independently of table pagination.

    Each ``load`` call takes the next request id. Results are committed only while that id
    is still the latest, so a slow superseded load can never overwrite fresher data.
    Superseded loads are not aborted; they stop paging and their results are dropped.
    A failing source cancels the sources still paging for the same load.
    """

    def __init__(
        self,
        sources: Mapping[FlowType, PagedSource],
        timezone_name: str,
        page_limit: int = DEFAULT_PAGE_LIMIT,
        max_pages: int = DEFAULT_MAX_PAGES,
    ) -> None:
        if page_limit < 1 or max_pages < 1:
            raise ValueError("page_limit and max_pages must be >= 1")
        self._sources = dict(sources)
        self.timezone_name = timezone_name
        self.page_limit = page_limit
        self.max_pages = max_pages
        self._latest_request_id = 0
        self._state = FlowDatasetState()
        self._listeners: list[Callable[[FlowDatasetState], None]] = []

    @property
    def state(self) -> FlowDatasetState:
        return self._state

    @property
    def records(self) -> tuple[NormalizedRecord, ...]:
        return self._state.records

    @property
    def is_loading(self) -> bool:
        return self._state.is_loading

    @property
    def latest_request_id(self) -> int:
        return self._latest_request_id

    def subscribe(self, listener: Callable[[FlowDatasetState], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def is_current(self, request_id: int) -> bool:
        return request_id == self._latest_request_id

    def _set_state(self, state: FlowDatasetState) -> None:
        self._state = state
        for listener in list(self._listeners):
            listener(state)

    async def _fetch_all_pages(
        self,
        request_id: int,
        flow_type: FlowType,
        filters: Mapping[str, Any] | None,
    ) -> _SourceFetch:
        source = self._sources[flow_type]
        fetch = _SourceFetch()
        page = 1
        total_pages = 1
        while page <= total_pages and page <= self.max_pages:
            payload = await source.get_all(page, self.page_limit, filters)
            if not self.is_current(request_id):
                LOGGER.debug("Flow load %d superseded while paging %s", request_id, flow_type.value)
                return _SourceFetch(superseded=True)

            fetch.records.extend(
                normalize_records(payload, flow_type=flow_type, timezone_name=self.timezone_name)
            )
            total_pages = next_total_pages(payload, self.page_limit, total_pages)
            if page == 1:
                LOGGER.info(
                    "Flow %s page 1: %d rows, %d pages",
                    flow_type.value,
                    len(extract_rows(payload)),
                    total_pages,
                )
            page += 1

        if total_pages > self.max_pages:
            fetch.capped = True
            LOGGER.warning(
                "Flow %s capped at %d pages (%d available)",
                flow_type.value,
                self.max_pages,
                total_pages,
            )
        return fetch

    async def load(
        self,
        tab: FlowType,
        selection: RangeSelection,
        criteria_by_flow: Mapping[FlowType, FilterCriteria] | None = None,
        today: date | None = None,
    ) -> FlowLoadResult:
        flow_types = TAB_FLOW_TYPES[tab]
        if not flow_types:
            return FlowLoadResult(request_id=self._latest_request_id, status="skipped")

        self._latest_request_id += 1
        request_id = self._latest_request_id
        self._set_state(
            FlowDatasetState(
                records=self._state.records,
                is_loading=True,
                request_id=self._state.request_id,
                date_from=self._state.date_from,
                date_to=self._state.date_to,
            )
        )

        criteria_by_flow = criteria_by_flow or {}
        date_from, date_to = selection.resolve(today or local_today(self.timezone_name))
        try:
            fetches = await _gather_or_cancel(
                [
                    self._fetch_all_pages(
                        request_id,
                        flow_type,
                        build_upstream_filters(
                            criteria_by_flow.get(flow_type, FilterCriteria()), date_from, date_to
                        )
                        if flow_type in FILTERABLE_FLOW_TYPES
                        else None,
                    )
                    for flow_type in flow_types
                ]
            )
            if not self.is_current(request_id) or any(fetch.superseded for fetch in fetches):
                return FlowLoadResult(request_id=request_id, status="superseded")

            collected = [record for fetch in fetches for record in fetch.records]
            start, end = day_bounds(date_from, date_to, self.timezone_name)
            kept = [record for record in collected if within_bounds(record.created_at, start, end)]
            LOGGER.info(
                "Flow load %d: %d rows fetched, %d within %s..%s",
                request_id,
                len(collected),
                len(kept),
                date_from,
                date_to,
            )
            self._set_state(
                FlowDatasetState(
                    records=tuple(kept),
                    is_loading=True,
                    request_id=request_id,
                    date_from=date_from,
                    date_to=date_to,
                )
            )
            return FlowLoadResult(
                request_id=request_id,
                status="committed",
                fetched=len(collected),
                kept=len(kept),
                capped=tuple(
                    flow_type for flow_type, fetch in zip(flow_types, fetches) if fetch.capped
                ),
            )
        except Exception:
            LOGGER.exception("Failed loading flow dataset (request %d)", request_id)
            return FlowLoadResult(request_id=request_id, status="failed")
        finally:
            if self.is_current(request_id):
                self._set_state(
                    FlowDatasetState(
                        records=self._state.records,
                        is_loading=False,
                        request_id=self._state.request_id,
                        date_from=self._state.date_from,
                        date_to=self._state.date_to,
                    )
                )
