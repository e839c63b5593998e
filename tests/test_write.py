from __future__ import annotations

import json
from pathlib import Path

import pandas as pd
import pytest

from txflow.io.write import RECORD_COLUMNS, records_to_frame, write_summary, write_table
from txflow.models import FlowType
from txflow.preprocess.normalize import normalize_record


def test_records_to_frame_flattens_identifiers_and_member() -> None:
    record = normalize_record(
        {
            "ref1": "T1",
            "createdAt": "2024-01-05T10:00:00Z",
            "amount": "80.5",
            "transferStatus": "success",
            "member": {"name": "Somchai", "citizenId": "123"},
        },
        flow_type=FlowType.TRANSFER,
        timezone_name="UTC",
    )

    frame = records_to_frame([record])

    assert list(frame.columns) == RECORD_COLUMNS
    row = frame.iloc[0]
    assert row["flow_type"] == "fund-transfers"
    assert row["ref1"] == "T1"
    assert row["amount"] == 80.5
    assert row["member_name"] == "Somchai"
    assert row["created_at"] == pd.Timestamp("2024-01-05T10:00:00Z")


def test_records_to_frame_empty() -> None:
    frame = records_to_frame([])

    assert frame.empty
    assert list(frame.columns) == RECORD_COLUMNS


def test_write_table_csv_and_unknown_format(tmp_path: Path) -> None:
    frame = pd.DataFrame({"series": ["success"], "value": [10.0]})

    path = write_table(frame, tmp_path / "nested" / "series.csv", fmt="csv")

    assert pd.read_csv(path).to_dict("records") == [{"series": "success", "value": 10.0}]
    with pytest.raises(ValueError):
        write_table(frame, tmp_path / "series.xlsx", fmt="xlsx")


def test_write_summary_serializes_dates(tmp_path: Path) -> None:
    path = write_summary({"date_from": pd.Timestamp("2024-01-05").date()}, tmp_path / "s.json")

    assert json.loads(path.read_text(encoding="utf-8")) == {"date_from": "2024-01-05"}
