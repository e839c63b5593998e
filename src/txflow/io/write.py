from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Sequence

import pandas as pd

from txflow.models import NormalizedRecord

RECORD_COLUMNS = [
    "flow_type",
    "created_at",
    "amount",
    "status",
    "bank_code",
    "ref",
    "ref1",
    "ref2",
    "internal_ref",
    "transaction_id",
    "record_id",
    "member_name",
    "member_citizen_id",
]


def records_to_frame(records: Sequence[NormalizedRecord]) -> pd.DataFrame:
    rows = [
        {
            "flow_type": record.flow_type.value,
            "created_at": record.created_at,
            "amount": record.amount,
            "status": record.status,
            "bank_code": record.bank_code,
            "ref": record.identifiers.ref,
            "ref1": record.identifiers.ref1,
            "ref2": record.identifiers.ref2,
            "internal_ref": record.identifiers.internal_ref,
            "transaction_id": record.identifiers.transaction_id,
            "record_id": record.identifiers.record_id,
            "member_name": record.member.name if record.member else "",
            "member_citizen_id": record.member.citizen_id if record.member else "",
        }
        for record in records
    ]
    frame = pd.DataFrame(rows, columns=RECORD_COLUMNS)
    frame["created_at"] = pd.to_datetime(frame["created_at"], utc=True, errors="coerce")
    frame["amount"] = pd.to_numeric(frame["amount"], errors="coerce")
    return frame


def write_table(df: pd.DataFrame, path: Path, fmt: str = "parquet") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    if fmt == "parquet":
        df.to_parquet(path, index=False)
        return path
    if fmt == "csv":
        df.to_csv(path, index=False)
        return path
    raise ValueError(f"Unsupported table format: {fmt}")


def write_summary(data: dict[str, Any], path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2, sort_keys=True, default=str), encoding="utf-8")
    return path
