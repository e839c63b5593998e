from __future__ import annotations

from typing import Sequence

import numpy as np
import pandas as pd

from txflow.models import ALL, FilterCriteria, NormalizedRecord
from txflow.preprocess.normalize import coerce_amount
from txflow.preprocess.time import day_bounds

# Records without a timestamp sort after every dated record.
_MISSING_TIMESTAMP_SORT_KEY = float("inf")


def build_record_frame(records: Sequence[NormalizedRecord]) -> pd.DataFrame:
    """One row per record with the columns the filter masks operate on."""
    return pd.DataFrame(
        {
            "created_at": pd.to_datetime(
                pd.Series([record.created_at for record in records], dtype="object"),
                utc=True,
                errors="coerce",
            ),
            "amount": pd.Series(
                [record.amount for record in records], dtype="float64"
            ),
            "status": pd.Series([record.status for record in records], dtype="object"),
            "bank_code": pd.Series([record.bank_code for record in records], dtype="object"),
        }
    )


def _search_mask(records: Sequence[NormalizedRecord], search: str) -> np.ndarray:
    needle = search.strip().lower()
    if not needle:
        return np.ones(len(records), dtype=bool)
    return np.array(
        [any(needle in value.lower() for value in record.search_values) for record in records],
        dtype=bool,
    )


def _is_active(value: str | None) -> bool:
    return bool(value) and str(value).strip().lower() != ALL


def build_filter_mask(
    records: Sequence[NormalizedRecord],
    criteria: FilterCriteria,
    timezone_name: str,
) -> np.ndarray:
    frame = build_record_frame(records)
    mask = _search_mask(records, criteria.search)

    if _is_active(criteria.status):
        wanted = str(criteria.status).strip().lower()
        mask &= (frame["status"].fillna("").str.lower() == wanted).to_numpy()

    if _is_active(criteria.bank):
        wanted_bank = str(criteria.bank).strip()
        mask &= (frame["bank_code"].fillna("").str.strip() == wanted_bank).to_numpy()

    start, end = day_bounds(criteria.date_from, criteria.date_to, timezone_name)
    if start is not None:
        mask &= (frame["created_at"] >= start).fillna(False).to_numpy(dtype=bool)
    if end is not None:
        mask &= (frame["created_at"] <= end).fillna(False).to_numpy(dtype=bool)

    amount_min = coerce_amount(criteria.amount_min)
    amount_max = coerce_amount(criteria.amount_max)
    if amount_min is not None:
        mask &= (frame["amount"] >= amount_min).to_numpy(dtype=bool)
    if amount_max is not None:
        mask &= (frame["amount"] <= amount_max).to_numpy(dtype=bool)
    return mask


def sort_newest_first(records: Sequence[NormalizedRecord]) -> list[NormalizedRecord]:
    """Descending by ``created_at``; ties keep their input order."""
    keys = pd.DataFrame(
        {
            "sort_key": [
                -record.created_at.timestamp()
                if record.created_at is not None
                else _MISSING_TIMESTAMP_SORT_KEY
                for record in records
            ],
        },
        dtype="float64",
    )
    order = keys.sort_values("sort_key", kind="mergesort").index
    return [records[position] for position in order]


def filter_records(
    records: Sequence[NormalizedRecord],
    criteria: FilterCriteria,
    timezone_name: str,
) -> list[NormalizedRecord]:
    if not records:
        return []
    mask = build_filter_mask(records, criteria, timezone_name)
    matching = [record for record, keep in zip(records, mask) if keep]
    return sort_newest_first(matching)
