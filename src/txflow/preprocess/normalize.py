from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Mapping

from txflow.models import FlowType, Identifiers, Member, NormalizedRecord
from txflow.preprocess.time import parse_timestamp

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceSchema:
    """Field priorities for one record source; earlier names win."""

    status_fields: tuple[str, ...]
    amount_fields: tuple[str, ...]
    bank_fields: tuple[str, ...]
    timestamp_fields: tuple[str, ...]
    search_fields: tuple[str, ...]


SOURCE_SCHEMAS: dict[FlowType, SourceSchema] = {
    FlowType.PAYMENT: SourceSchema(
        status_fields=("status",),
        amount_fields=("amount", "amountInBaht"),
        bank_fields=("bankCode",),
        timestamp_fields=("createdAt",),
        search_fields=(
            "ref",
            "ref1",
            "txnNumber",
            "transactionId",
            "member.name",
            "member.citizenId",
        ),
    ),
    FlowType.TRANSFER: SourceSchema(
        status_fields=("transferStatus", "inquiryStatus", "status"),
        amount_fields=("amount", "amountInBaht"),
        bank_fields=("serviceBankCode", "bankCode"),
        timestamp_fields=("createdAt", "requestDateTime"),
        search_fields=(
            "ref1",
            "rsTransID",
            "transactionId",
            "member.name",
            "member.citizenId",
        ),
    ),
    FlowType.REGISTRATION: SourceSchema(
        status_fields=("status",),
        amount_fields=("amount",),
        bank_fields=("bankCode",),
        timestamp_fields=("createdAt",),
        search_fields=("regRef", "ref", "member.name", "member.citizenId"),
    ),
    FlowType.QR_PAYMENT: SourceSchema(
        status_fields=("status",),
        amount_fields=("amountInBaht", "amount"),
        bank_fields=("bankCode",),
        timestamp_fields=("createdAt",),
        search_fields=("ref1", "ref2", "internalRef", "serviceCode", "id"),
    ),
}

TRANSACTION_ID_FIELDS = ("rsTransID", "transactionId", "txnNumber")


def _lookup(raw: Mapping[str, Any], path: str) -> Any:
    current: Any = raw
    for part in path.split("."):
        if not isinstance(current, Mapping):
            return None
        current = current.get(part)
    return current


def _as_text(value: Any) -> str:
    if value is None or isinstance(value, (dict, list)):
        return ""
    return str(value).strip()


def _first_text(raw: Mapping[str, Any], fields: tuple[str, ...]) -> str:
    for name in fields:
        text = _as_text(_lookup(raw, name))
        if text:
            return text
    return ""


def _first_present(raw: Mapping[str, Any], fields: tuple[str, ...]) -> Any:
    for name in fields:
        value = _lookup(raw, name)
        if value is not None:
            return value
    return None


def coerce_amount(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip().replace(",", "")
        if not value:
            return None
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(amount):
        return None
    return amount


def _member(raw: Mapping[str, Any]) -> Member | None:
    member = raw.get("member")
    if not isinstance(member, Mapping):
        return None
    return Member(name=_as_text(member.get("name")), citizen_id=_as_text(member.get("citizenId")))


def normalize_record(
    raw: Mapping[str, Any],
    flow_type: FlowType,
    timezone_name: str,
) -> NormalizedRecord:
    schema = SOURCE_SCHEMAS[flow_type]
    identifiers = Identifiers(
        ref=_as_text(raw.get("ref")),
        ref1=_as_text(raw.get("ref1")),
        ref2=_as_text(raw.get("ref2")),
        internal_ref=_as_text(raw.get("internalRef")),
        transaction_id=_first_text(raw, TRANSACTION_ID_FIELDS),
        record_id=_as_text(raw.get("id")),
    )
    search_values = tuple(_as_text(_lookup(raw, name)) for name in schema.search_fields)
    return NormalizedRecord(
        flow_type=flow_type,
        created_at=parse_timestamp(_first_present(raw, schema.timestamp_fields), timezone_name),
        amount=coerce_amount(_first_present(raw, schema.amount_fields)),
        status=_first_text(raw, schema.status_fields),
        bank_code=_first_text(raw, schema.bank_fields),
        identifiers=identifiers,
        member=_member(raw),
        search_values=tuple(value for value in search_values if value),
        raw=raw,
    )


def extract_rows(payload: Any) -> list[Any]:
    """Return the record list of a list response, tolerating ``{"data": [...]}`` wrappers."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, Mapping) and isinstance(payload.get("data"), list):
        return payload["data"]
    return []


def normalize_records(
    payload: Any,
    flow_type: FlowType,
    timezone_name: str,
) -> list[NormalizedRecord]:
    rows = extract_rows(payload)
    records = [
        normalize_record(row, flow_type=flow_type, timezone_name=timezone_name)
        for row in rows
        if isinstance(row, Mapping)
    ]
    skipped = len(rows) - len(records)
    if skipped:
        LOGGER.warning("Skipped %d malformed %s rows", skipped, flow_type.value)
    return records
