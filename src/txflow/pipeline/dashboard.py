from __future__ import annotations

import asyncio
import logging
from typing import Any

from txflow.chart.adapter import ChartRenderingAdapter
from txflow.config import AppConfig
from txflow.features.stats import (
    BankStats,
    Metrics,
    NetTotals,
    bank_distribution,
    compute_metrics,
    metrics_from_stats,
    net_totals,
    registration_metrics,
)
from txflow.io.client import DashboardAPI
from txflow.models import FlowType, RangePreset, RangeSelection
from txflow.pipeline.flow_loader import TAB_FLOW_TYPES, FlowDatasetLoader, FlowDatasetState, FlowLoadResult
from txflow.pipeline.table import TablePipeline
from txflow.preprocess.normalize import extract_rows

LOGGER = logging.getLogger(__name__)

STATS_FLOW_TYPES = (FlowType.PAYMENT, FlowType.TRANSFER, FlowType.REGISTRATION)


class Dashboard:
    """One table pipeline per tab, the chart-only flow loader and the chart adapter.

    Switching tab, changing the active tab's criteria or the chart range re-runs the flow
    load for the active tab. Table, stats and bank-list loads degrade to empty state on
    failure.
    """

    def __init__(
        self,
        api: DashboardAPI,
        config: AppConfig | None = None,
        adapter: ChartRenderingAdapter | None = None,
    ) -> None:
        self.api = api
        self.config = config or AppConfig()
        timezone_name = self.config.time.timezone
        self.tables = {
            flow_type: TablePipeline(
                flow_type, timezone_name=timezone_name, limit=self.config.table.page_limit
            )
            for flow_type in FlowType
        }
        self.loader = FlowDatasetLoader(
            {flow_type: api.source_for(flow_type) for flow_type in FlowType},
            timezone_name=timezone_name,
            page_limit=self.config.flow.page_limit,
            max_pages=self.config.flow.max_pages,
        )
        self.adapter = adapter
        self.active_tab = FlowType.PAYMENT
        self.range_selection = RangeSelection(preset=RangePreset(self.config.flow.default_preset))
        self.stats: dict[FlowType, Any] = {}
        self.bank_list: list[Any] = []
        self._rendered_request_id = -1
        self.loader.subscribe(self._on_flow_state)

    def _on_flow_state(self, state: FlowDatasetState) -> None:
        if self.adapter is None:
            return
        self.adapter.set_loading(state.is_loading)
        if state.request_id != self._rendered_request_id:
            self._rendered_request_id = state.request_id
            self.adapter.update(state.records)

    async def load_table(self, flow_type: FlowType) -> int:
        table = self.tables[flow_type]
        source = self.api.source_for(flow_type)
        try:
            if flow_type == FlowType.QR_PAYMENT:
                payload = await source.get_all(1, self.config.table.page_limit, all_records=True)
            else:
                payload = await source.get_all(1, self.config.table.preload_limit, {})
        except Exception:
            LOGGER.exception("Failed loading %s table", flow_type.value)
            table.set_records([])
            return 0
        table.load_payload(payload)
        return len(table.records)

    async def load_stats(self) -> dict[FlowType, Any]:
        async def fetch(flow_type: FlowType) -> Any:
            try:
                return await self.api.source_for(flow_type).get_stats()
            except Exception:
                LOGGER.exception("Failed loading %s stats", flow_type.value)
                return {}

        results = await asyncio.gather(*(fetch(flow_type) for flow_type in STATS_FLOW_TYPES))
        self.stats = dict(zip(STATS_FLOW_TYPES, results))
        return self.stats

    async def load_bank_list(self) -> list[Any]:
        try:
            payload = await self.api.get_bank_list()
        except Exception:
            LOGGER.exception("Failed loading bank list")
            payload = []
        self.bank_list = extract_rows(payload)
        return self.bank_list

    async def reload_flow(self) -> FlowLoadResult:
        criteria_by_flow = {flow_type: table.criteria for flow_type, table in self.tables.items()}
        return await self.loader.load(self.active_tab, self.range_selection, criteria_by_flow)

    async def refresh(self) -> FlowLoadResult:
        await asyncio.gather(
            *(self.load_table(flow_type) for flow_type in FlowType),
            self.load_stats(),
            self.load_bank_list(),
        )
        return await self.reload_flow()

    async def set_active_tab(self, tab: FlowType) -> FlowLoadResult:
        self.active_tab = tab
        return await self.reload_flow()

    async def set_filters(self, flow_type: FlowType, **changes: Any) -> FlowLoadResult | None:
        table = self.tables[flow_type]
        before = table.criteria
        after = table.update_criteria(**changes)
        if after == before or flow_type not in TAB_FLOW_TYPES[self.active_tab]:
            return None
        return await self.reload_flow()

    async def set_range(self, selection: RangeSelection) -> FlowLoadResult:
        self.range_selection = selection
        return await self.reload_flow()

    def metrics(self) -> Metrics:
        """Headline metrics for the active tab; stats endpoints win over client-side counts."""
        tab = self.active_tab
        stats = self.stats.get(tab)
        if tab == FlowType.REGISTRATION and stats:
            return registration_metrics(stats)
        if tab == FlowType.PAYMENT and stats:
            metrics = metrics_from_stats(stats)
            return Metrics(
                total_amount=self.net_totals().net,
                total_count=metrics.total_count,
                success_count=metrics.success_count,
                failed_count=metrics.failed_count,
                pending_count=metrics.pending_count,
                success_rate=metrics.success_rate,
                bank_stats=metrics.bank_stats,
            )
        if tab == FlowType.TRANSFER and stats:
            return metrics_from_stats(stats)
        return compute_metrics(self.tables[tab].records)

    def net_totals(self) -> NetTotals:
        return net_totals(self.stats.get(FlowType.PAYMENT), self.stats.get(FlowType.TRANSFER))

    def bank_distribution(self) -> dict[str, BankStats]:
        return bank_distribution(self.stats.get(FlowType.PAYMENT), self.stats.get(FlowType.TRANSFER))
