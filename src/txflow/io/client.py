"""Async HTTP client for the dashboard backend."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Protocol

import httpx

from txflow.models import FlowType

LOGGER = logging.getLogger(__name__)


class PagedSource(Protocol):
    async def get_all(
        self,
        page: int,
        limit: int,
        filters: Mapping[str, Any] | None = None,
    ) -> Any: ...


def normalize_token(token: str | None) -> str | None:
    if not token:
        return None
    return token if token.startswith("Basic ") else f"Basic {token}"


def clean_params(params: Mapping[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in params.items() if value is not None and value != ""}


class ListEndpoint:
    """Paged list + stats endpoint pair for one record source."""

    def __init__(self, api: "DashboardAPI", path: str, stats_path: str | None = None) -> None:
        self._api = api
        self.path = path
        self.stats_path = stats_path

    async def get_all(
        self,
        page: int = 1,
        limit: int = 10,
        filters: Mapping[str, Any] | None = None,
    ) -> Any:
        params = {"page": page, "limit": limit, **dict(filters or {})}
        return await self._api.get_json(self.path, params=clean_params(params))

    async def get_stats(self) -> Any:
        if self.stats_path is None:
            raise ValueError(f"{self.path} has no stats endpoint")
        return await self._api.get_json(self.stats_path)


class QrPaymentEndpoint:
    """QR payments accept paging and an ``all`` switch, but no filter parameters."""

    def __init__(self, api: "DashboardAPI", path: str) -> None:
        self._api = api
        self.path = path

    async def get_all(
        self,
        page: int = 1,
        limit: int = 10,
        filters: Mapping[str, Any] | None = None,
        *,
        all_records: bool = False,
    ) -> Any:
        params: dict[str, Any] = {"page": page, "limit": limit}
        if all_records:
            params["all"] = "true"
        return await self._api.get_json(self.path, params=params)


class DashboardAPI:
    """Thin async wrapper around the dashboard REST API."""

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Content-Type": "application/json"}
        authorization = normalize_token(token)
        if authorization:
            headers["Authorization"] = authorization
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers=headers,
            transport=transport,
        )
        self.payments = ListEndpoint(
            self, "/bank-registrations/payments", "/bank-registrations/payments/stats"
        )
        self.fund_transfers = ListEndpoint(
            self, "/bank-registrations/fund-transfers", "/bank-registrations/fund-transfers/stats"
        )
        self.bank_registrations = ListEndpoint(
            self, "/bank-registrations", "/bank-registrations/stats"
        )
        self.qr_payments = QrPaymentEndpoint(self, "/transfer/generate-qr")

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "DashboardAPI":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def get_json(self, path: str, params: Mapping[str, Any] | None = None) -> Any:
        try:
            response = await self._client.get(path, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            LOGGER.error("API error %s for %s: %s", exc.response.status_code, path, exc.response.text)
            raise
        return response.json()

    async def get_bank_list(self, show_all: bool = True) -> Any:
        params = {"showAll": "true"} if show_all else None
        return await self.get_json("/transfer-config/bank-list", params=params)

    def source_for(self, flow_type: FlowType) -> ListEndpoint | QrPaymentEndpoint:
        return {
            FlowType.PAYMENT: self.payments,
            FlowType.TRANSFER: self.fund_transfers,
            FlowType.REGISTRATION: self.bank_registrations,
            FlowType.QR_PAYMENT: self.qr_payments,
        }[flow_type]

    def sources(self) -> dict[FlowType, ListEndpoint | QrPaymentEndpoint]:
        return {flow_type: self.source_for(flow_type) for flow_type in FlowType}
