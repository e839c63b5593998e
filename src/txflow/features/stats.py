from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

import pandas as pd

from txflow.models import NormalizedRecord
from txflow.preprocess.normalize import coerce_amount
from txflow.preprocess.status import is_pending, is_success

BANK_CODE_NAMES = {
    "014": "SCB",
    "004": "KBANK",
    "002": "BBL",
    "025": "BAY",
    "006": "KTB",
}

# Substrings that identify each standard bank name, checked in order.
BANK_NAME_VARIATIONS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("SCB", ("SCB", "SIAM COMMERCIAL", "014")),
    ("KBANK", ("KBANK", "KASIKORN", "004")),
    ("BBL", ("BBL", "BANGKOK BANK", "002")),
    ("BAY", ("BAY", "AYUDHYA", "025")),
    ("KTB", ("KTB", "KRUNGTHAI", "006")),
)

RAW_BANK_FIELDS = ("bankName", "serviceBankName", "serviceBank", "bankCode")

SUMMARY_TOTAL_KEYS = ("totalPayments", "totalTransfers", "totalRegistrations", "total")


@dataclass(frozen=True)
class BankStats:
    count: float = 0
    amount: float = 0.0
    success: float = 0


@dataclass(frozen=True)
class Metrics:
    total_amount: float = 0.0
    total_count: int = 0
    success_count: int = 0
    failed_count: int = 0
    pending_count: int = 0
    success_rate: float = 0.0
    bank_stats: dict[str, BankStats] = field(default_factory=dict)


@dataclass(frozen=True)
class NetTotals:
    buy: float
    sell: float

    @property
    def net(self) -> float:
        return self.sell - self.buy


def _number(value: Any) -> float:
    amount = coerce_amount(value)
    return amount if amount is not None else 0.0


def unwrap_stats(stats: Any) -> Mapping[str, Any]:
    """Stats responses may come wrapped in ``{"data": ...}``."""
    if not isinstance(stats, Mapping):
        return {}
    inner = stats.get("data")
    if isinstance(inner, Mapping):
        return inner
    return stats


def stats_summary(stats: Any) -> Mapping[str, Any]:
    summary = unwrap_stats(stats).get("summary")
    return summary if isinstance(summary, Mapping) else {}


def stats_banks(stats: Any) -> list[Mapping[str, Any]]:
    banks = unwrap_stats(stats).get("banks")
    if not isinstance(banks, list):
        return []
    return [bank for bank in banks if isinstance(bank, Mapping)]


def normalize_bank_name(name: Any, code: Any = None) -> str:
    name_text = "" if name is None else str(name).strip()
    code_text = "" if code is None else str(code).strip()
    if not name_text and not code_text:
        return "Unknown"
    if code_text in BANK_CODE_NAMES:
        return BANK_CODE_NAMES[code_text]
    if name_text in BANK_CODE_NAMES:
        return BANK_CODE_NAMES[name_text]

    upper = name_text.upper()
    if upper in BANK_CODE_NAMES.values():
        return upper
    for standard, needles in BANK_NAME_VARIATIONS:
        if any(needle in upper for needle in needles):
            return standard
    return name_text or "Unknown"


def bank_display_name(bank: Mapping[str, Any]) -> str:
    code = str(bank.get("bankCode") or "").strip()
    for key in ("bankNameThai", "bankNameEng"):
        label = str(bank.get(key) or "").strip()
        if label:
            return f"{label} ({code})" if code else label
    return str(bank.get("bankName") or code or "-")


def _record_bank(record: NormalizedRecord) -> str:
    raw_bank = next(
        (record.raw.get(key) for key in RAW_BANK_FIELDS if record.raw.get(key)),
        record.bank_code or None,
    )
    return normalize_bank_name(raw_bank, record.bank_code or None)


def compute_metrics(records: Sequence[NormalizedRecord]) -> Metrics:
    """Headline counts and per-bank totals computed from client-side records."""
    if not records:
        return Metrics()
    frame = pd.DataFrame(
        {
            "amount": [record.amount for record in records],
            "success": [is_success(record.status) for record in records],
            "pending": [is_pending(record.status) for record in records],
            "bank": [_record_bank(record) for record in records],
        }
    )
    frame["amount"] = pd.to_numeric(frame["amount"], errors="coerce").fillna(0.0)
    success_count = int(frame["success"].sum())
    pending_count = int(frame["pending"].sum())
    total_count = len(frame)

    grouped = frame.groupby("bank", sort=True).agg(
        count=("amount", "size"),
        amount=("amount", "sum"),
        success=("success", "sum"),
    )
    bank_stats = {
        str(bank): BankStats(
            count=int(row["count"]), amount=float(row["amount"]), success=int(row["success"])
        )
        for bank, row in grouped.iterrows()
    }
    return Metrics(
        total_amount=float(frame["amount"].sum()),
        total_count=total_count,
        success_count=success_count,
        failed_count=total_count - success_count - pending_count,
        pending_count=pending_count,
        success_rate=success_count / total_count * 100.0,
        bank_stats=bank_stats,
    )


def bank_stats_from_summary(stats: Any, sign: float = 1.0) -> dict[str, BankStats]:
    """Per-bank stats from a stats response, banks sharing a normalized name merged."""
    merged: dict[str, BankStats] = {}
    for bank in stats_banks(stats):
        code = bank.get("bankCode")
        if isinstance(code, int) and not isinstance(code, bool):
            code = f"{code:03d}"
        name = normalize_bank_name(bank.get("bankName"), code)
        current = merged.get(name, BankStats())
        merged[name] = BankStats(
            count=current.count + sign * _number(bank.get("total")),
            amount=current.amount + sign * _number(bank.get("totalAmount")),
            success=current.success + sign * _number(bank.get("success")),
        )
    return merged


def metrics_from_stats(stats: Any) -> Metrics:
    summary = stats_summary(stats)
    total_count = next(
        (int(_number(summary[key])) for key in SUMMARY_TOTAL_KEYS if key in summary), 0
    )
    return Metrics(
        total_amount=_number(summary.get("totalAmount")),
        total_count=total_count,
        success_count=int(_number(summary.get("successCount"))),
        failed_count=int(_number(summary.get("failedCount"))),
        pending_count=int(_number(summary.get("pendingCount"))),
        success_rate=_number(summary.get("successRate")),
        bank_stats=bank_stats_from_summary(stats),
    )


def registration_metrics(stats: Any) -> Metrics:
    """Registrations carry counts only, so every amount is zero."""
    metrics = metrics_from_stats(stats)
    return Metrics(
        total_amount=0.0,
        total_count=metrics.total_count,
        success_count=metrics.success_count,
        failed_count=metrics.failed_count,
        pending_count=metrics.pending_count,
        success_rate=metrics.success_rate,
        bank_stats={
            name: BankStats(count=item.count, amount=0.0, success=item.success)
            for name, item in metrics.bank_stats.items()
        },
    )


def net_totals(payment_stats: Any, transfer_stats: Any) -> NetTotals:
    """Buy is the payments total, sell the fund-transfers total."""
    return NetTotals(
        buy=_number(stats_summary(payment_stats).get("totalAmount")),
        sell=_number(stats_summary(transfer_stats).get("totalAmount")),
    )


def bank_distribution(payment_stats: Any, transfer_stats: Any) -> dict[str, BankStats]:
    """Per-bank fund transfers minus payments."""
    distribution = bank_stats_from_summary(payment_stats, sign=-1.0)
    for name, item in bank_stats_from_summary(transfer_stats).items():
        current = distribution.get(name, BankStats())
        distribution[name] = BankStats(
            count=current.count + item.count,
            amount=current.amount + item.amount,
            success=current.success + item.success,
        )
    return distribution


def metrics_frame(bank_stats: Mapping[str, BankStats]) -> pd.DataFrame:
    rows = [
        {"bank": name, "count": item.count, "amount": item.amount, "success": item.success}
        for name, item in sorted(bank_stats.items())
    ]
    return pd.DataFrame(rows, columns=["bank", "count", "amount", "success"])
