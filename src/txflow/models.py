from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import date, timedelta
from enum import Enum
from typing import Any, Mapping

import pandas as pd

from txflow.preprocess.time import parse_calendar_date

ALL = "all"


class FlowType(str, Enum):
    PAYMENT = "payments"
    TRANSFER = "fund-transfers"
    REGISTRATION = "bank-registrations"
    QR_PAYMENT = "qr-payments"


class Outcome(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    PENDING = "pending"


@dataclass(frozen=True)
class Identifiers:
    ref: str = ""
    ref1: str = ""
    ref2: str = ""
    internal_ref: str = ""
    transaction_id: str = ""
    record_id: str = ""

    @property
    def display_ref(self) -> str:
        for value in (self.ref, self.ref1, self.internal_ref, self.transaction_id, self.record_id):
            if value:
                return value
        return "-"


@dataclass(frozen=True)
class Member:
    name: str = ""
    citizen_id: str = ""


@dataclass(frozen=True)
class NormalizedRecord:
    flow_type: FlowType
    created_at: pd.Timestamp | None
    amount: float | None
    status: str
    bank_code: str
    identifiers: Identifiers = field(default_factory=Identifiers)
    member: Member | None = None
    search_values: tuple[str, ...] = ()
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def chart_amount(self) -> float:
        """Amount usable in chart sums: invalid or non-positive values count as zero."""
        if self.amount is None or not math.isfinite(self.amount) or self.amount <= 0:
            return 0.0
        return float(self.amount)


@dataclass(frozen=True)
class FilterCriteria:
    search: str = ""
    status: str = ALL
    bank: str = ALL
    date_from: str = ""
    date_to: str = ""
    amount_min: float | str | None = None
    amount_max: float | str | None = None

    def with_changes(self, **changes: Any) -> "FilterCriteria":
        return replace(self, **changes)


@dataclass(frozen=True)
class PaginationState:
    page: int = 1
    limit: int = 10
    total: int = 0

    @property
    def total_pages(self) -> int:
        return max(1, math.ceil(self.total / max(1, self.limit)))


class RangePreset(str, Enum):
    TODAY = "today"
    LAST_7D = "last7d"
    LAST_30D = "last30d"
    CUSTOM = "custom"


@dataclass(frozen=True)
class RangeSelection:
    preset: RangePreset = RangePreset.TODAY
    from_date: str = ""
    to_date: str = ""

    def resolve(self, today: date) -> tuple[date | None, date | None]:
        if self.preset == RangePreset.TODAY:
            return today, today
        if self.preset == RangePreset.LAST_7D:
            return today - timedelta(days=6), today
        if self.preset == RangePreset.LAST_30D:
            return today - timedelta(days=29), today
        return parse_calendar_date(self.from_date), parse_calendar_date(self.to_date)


@dataclass(frozen=True)
class SeriesPoint:
    time: int
    value: float


@dataclass(frozen=True)
class ChartSeries:
    name: str
    points: tuple[SeriesPoint, ...] = ()


@dataclass(frozen=True)
class OutcomeSums:
    success: float = 0.0
    failed: float = 0.0

    @property
    def has_value(self) -> bool:
        return self.success > 0 or self.failed > 0


@dataclass(frozen=True)
class Bucket:
    time: int
    per_flow_type: dict[FlowType, OutcomeSums]
    totals: OutcomeSums
    contributing_records: tuple[NormalizedRecord, ...] = ()

    def sums_for(self, flow_type: FlowType) -> OutcomeSums:
        return self.per_flow_type.get(flow_type, OutcomeSums())

    @property
    def has_value(self) -> bool:
        return self.totals.has_value
