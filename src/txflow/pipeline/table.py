from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Sequence

from txflow.features.filters import filter_records
from txflow.features.pagination import paginate
from txflow.models import FilterCriteria, FlowType, NormalizedRecord, PaginationState
from txflow.preprocess.normalize import normalize_records

LOGGER = logging.getLogger(__name__)


class TablePipeline:
    """Normalize -> Filter -> Sort -> Paginate for one dashboard tab.

    Every input change re-runs the stages synchronously. ``total`` and ``total_pages`` are
    derived from the filtered result; callers only move ``page`` and ``limit``.
    """

    def __init__(
        self,
        flow_type: FlowType,
        timezone_name: str,
        limit: int = 10,
        criteria: FilterCriteria | None = None,
    ) -> None:
        if limit < 1:
            raise ValueError(f"limit must be >= 1, got {limit!r}")
        self.flow_type = flow_type
        self.timezone_name = timezone_name
        self._criteria = criteria or FilterCriteria()
        self._records: list[NormalizedRecord] = []
        self._filtered: list[NormalizedRecord] = []
        self._rows: list[NormalizedRecord] = []
        self._pagination = PaginationState(page=1, limit=limit, total=0)

    @property
    def criteria(self) -> FilterCriteria:
        return self._criteria

    @property
    def pagination(self) -> PaginationState:
        return self._pagination

    @property
    def records(self) -> list[NormalizedRecord]:
        return list(self._records)

    @property
    def filtered(self) -> list[NormalizedRecord]:
        return list(self._filtered)

    @property
    def rows(self) -> list[NormalizedRecord]:
        return list(self._rows)

    def load_payload(self, payload: Any) -> None:
        self.set_records(
            normalize_records(payload, flow_type=self.flow_type, timezone_name=self.timezone_name)
        )

    def set_records(self, records: Sequence[NormalizedRecord]) -> None:
        self._records = list(records)
        self._refilter()

    def set_criteria(self, criteria: FilterCriteria) -> None:
        if criteria == self._criteria:
            return
        self._criteria = criteria
        self._pagination = replace(self._pagination, page=1)
        self._refilter()

    def update_criteria(self, **changes: Any) -> FilterCriteria:
        self.set_criteria(self._criteria.with_changes(**changes))
        return self._criteria

    def reset_criteria(self) -> None:
        self.set_criteria(FilterCriteria())

    def set_page(self, page: int) -> None:
        self._pagination = replace(self._pagination, page=int(page))
        self._repaginate()

    def set_limit(self, limit: int) -> None:
        if limit < 1:
            raise ValueError(f"limit must be >= 1, got {limit!r}")
        self._pagination = replace(self._pagination, limit=int(limit), page=1)
        self._repaginate()

    def _refilter(self) -> None:
        self._filtered = filter_records(self._records, self._criteria, self.timezone_name)
        self._repaginate()

    def _repaginate(self) -> None:
        page = paginate(self._filtered, self._pagination.page, self._pagination.limit)
        self._rows = page.items
        self._pagination = PaginationState(
            page=page.safe_page,
            limit=self._pagination.limit,
            total=page.total,
        )
        LOGGER.debug(
            "%s table: %d/%d rows match, page %d of %d",
            self.flow_type.value,
            page.total,
            len(self._records),
            page.safe_page,
            page.total_pages,
        )
