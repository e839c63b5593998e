from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Callable, Sequence

import pandas as pd

from txflow.models import Bucket, FlowType, NormalizedRecord, Outcome, OutcomeSums, SeriesPoint
from txflow.preprocess.status import classify_outcome
from txflow.preprocess.time import minute_key

PAYMENTS_SUCCESS = "payments_success"
PAYMENTS_FAILED = "payments_failed"
TRANSFERS_SUCCESS = "transfers_success"
TRANSFERS_FAILED = "transfers_failed"
LEGACY_SUCCESS = "success"
LEGACY_FAILED = "failed"

COMBINED_FLOW_TYPES = (FlowType.PAYMENT, FlowType.TRANSFER)
COMBINED_SERIES: dict[str, tuple[FlowType, Outcome]] = {
    PAYMENTS_SUCCESS: (FlowType.PAYMENT, Outcome.SUCCESS),
    PAYMENTS_FAILED: (FlowType.PAYMENT, Outcome.FAILED),
    TRANSFERS_SUCCESS: (FlowType.TRANSFER, Outcome.SUCCESS),
    TRANSFERS_FAILED: (FlowType.TRANSFER, Outcome.FAILED),
}
LEGACY_SERIES: dict[str, Outcome] = {
    LEGACY_SUCCESS: Outcome.SUCCESS,
    LEGACY_FAILED: Outcome.FAILED,
}
SERIES_NAMES = tuple(COMBINED_SERIES) + tuple(LEGACY_SERIES)

FLOW_FRAME_COLUMNS = ["time", "flow_type", "outcome", "amount", "position"]

OutcomeResolver = Callable[[NormalizedRecord], Outcome]


def record_outcome(record: NormalizedRecord) -> Outcome:
    return classify_outcome(record.status)


@dataclass(frozen=True)
class FlowAggregation:
    combined: bool
    buckets: dict[int, Bucket] = field(default_factory=dict)
    groups: dict[int, tuple[NormalizedRecord, ...]] = field(default_factory=dict)
    series: dict[str, tuple[SeriesPoint, ...]] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.buckets

    def last_value(self, name: str) -> float | None:
        points = self.series.get(name, ())
        return points[-1].value if points else None


@dataclass(frozen=True)
class TooltipData:
    time: int
    combined: bool
    sums: dict[str, float]
    records: tuple[NormalizedRecord, ...]


def is_combined(records: Sequence[NormalizedRecord]) -> bool:
    return any(record.flow_type in COMBINED_FLOW_TYPES for record in records)


def _outcome_getter(outcome: Outcome):
    if outcome == Outcome.SUCCESS:
        return lambda sums: sums.success
    return lambda sums: sums.failed


def build_flow_frame(
    records: Sequence[NormalizedRecord],
    outcome_of: OutcomeResolver = record_outcome,
) -> pd.DataFrame:
    """Time-keyed records with their minute key, outcome and chart amount."""
    rows = [
        {
            "time": minute_key(record.created_at),
            "flow_type": record.flow_type.value,
            "outcome": outcome_of(record).value,
            "amount": record.chart_amount,
            "position": position,
        }
        for position, record in enumerate(records)
        if record.created_at is not None
    ]
    if not rows:
        return pd.DataFrame(columns=FLOW_FRAME_COLUMNS)
    return pd.DataFrame(rows, columns=FLOW_FRAME_COLUMNS)


def group_by_minute(records: Sequence[NormalizedRecord]) -> dict[int, tuple[NormalizedRecord, ...]]:
    """Records per minute key, largest chart amount first (stable for equal amounts)."""
    grouped: dict[int, list[NormalizedRecord]] = defaultdict(list)
    for record in records:
        if record.created_at is None:
            continue
        grouped[minute_key(record.created_at)].append(record)
    return {
        time: tuple(sorted(bucket, key=lambda record: record.chart_amount, reverse=True))
        for time, bucket in sorted(grouped.items())
    }


def _outcome_sums(frame: pd.DataFrame) -> pd.DataFrame:
    counted = frame[
        (frame["amount"] > 0) & (frame["outcome"] != Outcome.PENDING.value)
    ]
    if counted.empty:
        return pd.DataFrame(columns=[Outcome.SUCCESS.value, Outcome.FAILED.value])
    sums = (
        counted.groupby(["time", "flow_type", "outcome"])["amount"]
        .sum()
        .unstack("outcome", fill_value=0.0)
    )
    return sums.reindex(columns=[Outcome.SUCCESS.value, Outcome.FAILED.value], fill_value=0.0)


def aggregate(
    records: Sequence[NormalizedRecord],
    outcome_of: OutcomeResolver = record_outcome,
) -> dict[int, Bucket]:
    """Per-minute buckets split by flow type then outcome; all-zero buckets are dropped."""
    frame = build_flow_frame(records, outcome_of)
    if frame.empty:
        return {}
    sums = _outcome_sums(frame)
    groups = group_by_minute(records)

    per_time: dict[int, dict[FlowType, OutcomeSums]] = defaultdict(dict)
    for (time, flow_type), row in sums.iterrows():
        per_time[int(time)][FlowType(flow_type)] = OutcomeSums(
            success=float(row[Outcome.SUCCESS.value]),
            failed=float(row[Outcome.FAILED.value]),
        )

    buckets: dict[int, Bucket] = {}
    for time in sorted(per_time):
        per_flow_type = per_time[time]
        totals = OutcomeSums(
            success=sum(item.success for item in per_flow_type.values()),
            failed=sum(item.failed for item in per_flow_type.values()),
        )
        bucket = Bucket(
            time=time,
            per_flow_type=per_flow_type,
            totals=totals,
            contributing_records=groups.get(time, ()),
        )
        if bucket.has_value:
            buckets[time] = bucket
    return buckets


def build_series(
    buckets: dict[int, Bucket],
    combined: bool,
) -> dict[str, tuple[SeriesPoint, ...]]:
    """Every known series name; the inactive mode's series are empty."""
    times = sorted(buckets)

    def points(getter) -> tuple[SeriesPoint, ...]:
        values = ((time, getter(buckets[time])) for time in times)
        return tuple(SeriesPoint(time=time, value=value) for time, value in values if value > 0)

    series: dict[str, tuple[SeriesPoint, ...]] = {name: () for name in SERIES_NAMES}
    if combined:
        for name, (flow_type, outcome) in COMBINED_SERIES.items():
            read = _outcome_getter(outcome)
            series[name] = points(lambda bucket, f=flow_type, r=read: r(bucket.sums_for(f)))
    else:
        for name, outcome in LEGACY_SERIES.items():
            read = _outcome_getter(outcome)
            series[name] = points(lambda bucket, r=read: r(bucket.totals))
    return series


def aggregate_flow(
    records: Sequence[NormalizedRecord],
    outcome_of: OutcomeResolver = record_outcome,
) -> FlowAggregation:
    combined = is_combined(records)
    buckets = aggregate(records, outcome_of)
    return FlowAggregation(
        combined=combined,
        buckets=buckets,
        groups=group_by_minute(records),
        series=build_series(buckets, combined),
    )


def tooltip_sums(bucket: Bucket | None, combined: bool) -> dict[str, float]:
    if combined:
        return {
            name: _outcome_getter(outcome)(bucket.sums_for(flow_type)) if bucket else 0.0
            for name, (flow_type, outcome) in COMBINED_SERIES.items()
        }
    return {
        name: _outcome_getter(outcome)(bucket.totals) if bucket else 0.0
        for name, outcome in LEGACY_SERIES.items()
    }


def resolve_tooltip(
    aggregation: FlowAggregation,
    time: int | None,
    top_n: int = 5,
) -> TooltipData | None:
    """Top contributing records and bucket sums for the hovered minute."""
    if time is None:
        return None
    key = int(time) - int(time) % 60
    return TooltipData(
        time=key,
        combined=aggregation.combined,
        sums=tooltip_sums(aggregation.buckets.get(key), aggregation.combined),
        records=aggregation.groups.get(key, ())[:top_n],
    )


def series_frame(aggregation: FlowAggregation) -> pd.DataFrame:
    """Long-format series table (one row per plotted point)."""
    rows = [
        {
            "time": point.time,
            "bucket_start": pd.Timestamp(point.time, unit="s", tz="UTC"),
            "series": name,
            "value": point.value,
        }
        for name, points in aggregation.series.items()
        for point in points
    ]
    return pd.DataFrame(rows, columns=["time", "bucket_start", "series", "value"])
