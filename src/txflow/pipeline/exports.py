from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import date
from pathlib import Path
from typing import Any

from txflow.chart.adapter import ChartRenderingAdapter
from txflow.chart.surface import MatplotlibSurface
from txflow.chart.tooltip import TooltipState, TooltipView
from txflow.config import AppConfig
from txflow.features.buckets import series_frame
from txflow.features.stats import metrics_frame
from txflow.io.client import DashboardAPI
from txflow.io.write import records_to_frame, write_summary, write_table
from txflow.models import FilterCriteria, FlowType, RangeSelection
from txflow.paths import OutputPaths
from txflow.pipeline.dashboard import Dashboard
from txflow.pipeline.flow_loader import FlowLoadResult

LOGGER = logging.getLogger(__name__)


def _table_path(paths: OutputPaths, name: str, config: AppConfig) -> Path:
    return paths.tables / f"{name}.{config.outputs.tables_format}"


def build_chart(config: AppConfig, width: int = 1200, height: int = 420) -> tuple[MatplotlibSurface, ChartRenderingAdapter]:
    surface = MatplotlibSurface(width=width, height=height, timezone_name=config.time.timezone)
    adapter = ChartRenderingAdapter(
        surface,
        tooltip_view=TooltipView(
            timezone_name=config.time.timezone,
            width=config.tooltip.width,
            fullscreen_width=config.tooltip.fullscreen_width,
        ),
        tooltip_top_n=config.tooltip.top_n,
        animation=config.animation,
    )
    return surface, adapter


async def export_table(
    api: DashboardAPI,
    config: AppConfig,
    paths: OutputPaths,
    flow_type: FlowType,
    criteria: FilterCriteria,
    page: int = 1,
    limit: int | None = None,
) -> dict[str, Any]:
    dashboard = Dashboard(api, config)
    await dashboard.load_table(flow_type)
    table = dashboard.tables[flow_type]
    table.set_criteria(criteria)
    if limit is not None:
        table.set_limit(limit)
    table.set_page(page)

    name = f"{flow_type.value}_page"
    write_table(records_to_frame(table.rows), _table_path(paths, name, config), config.outputs.tables_format)
    pagination = table.pagination
    summary = {
        "flow_type": flow_type.value,
        "criteria": asdict(criteria),
        "loaded": len(table.records),
        "total": pagination.total,
        "page": pagination.page,
        "limit": pagination.limit,
        "total_pages": pagination.total_pages,
        "rows": len(table.rows),
    }
    write_summary(summary, paths.summary / f"{name}.json")
    return summary


async def _load_chart(
    api: DashboardAPI,
    config: AppConfig,
    tab: FlowType,
    selection: RangeSelection,
    criteria: FilterCriteria,
    today: date | None = None,
) -> tuple[Dashboard, MatplotlibSurface, ChartRenderingAdapter, FlowLoadResult]:
    surface, adapter = build_chart(config)
    dashboard = Dashboard(api, config, adapter=adapter)
    dashboard.active_tab = tab
    dashboard.range_selection = selection
    for flow_type in (FlowType.PAYMENT, FlowType.TRANSFER):
        dashboard.tables[flow_type].set_criteria(criteria)
    result = await dashboard.loader.load(
        tab,
        selection,
        {flow_type: table.criteria for flow_type, table in dashboard.tables.items()},
        today=today,
    )
    return dashboard, surface, adapter, result


async def export_flow(
    api: DashboardAPI,
    config: AppConfig,
    paths: OutputPaths,
    tab: FlowType,
    selection: RangeSelection,
    criteria: FilterCriteria | None = None,
    today: date | None = None,
) -> dict[str, Any]:
    dashboard, surface, adapter, result = await _load_chart(
        api, config, tab, selection, criteria or FilterCriteria(), today=today
    )
    aggregation = adapter.aggregation
    name = f"flow_{tab.value}"
    write_table(series_frame(aggregation), _table_path(paths, f"{name}_series", config), config.outputs.tables_format)
    write_table(
        records_to_frame(dashboard.loader.records),
        _table_path(paths, f"{name}_records", config),
        config.outputs.tables_format,
    )
    figure = surface.render(paths.figures / f"{name}.{config.outputs.figures_format}")
    state = dashboard.loader.state
    summary = {
        "tab": tab.value,
        "status": result.status,
        "request_id": result.request_id,
        "date_from": state.date_from,
        "date_to": state.date_to,
        "fetched": result.fetched,
        "records": len(state.records),
        "capped": [flow_type.value for flow_type in result.capped],
        "combined": aggregation.combined,
        "buckets": len(aggregation.buckets),
        "series_points": {name: len(points) for name, points in aggregation.series.items()},
        "figure": figure,
    }
    write_summary(summary, paths.summary / f"{name}.json")
    return summary


async def resolve_flow_tooltip(
    api: DashboardAPI,
    config: AppConfig,
    tab: FlowType,
    selection: RangeSelection,
    time: int,
    is_fullscreen: bool = False,
    theme: str = "light",
    today: date | None = None,
) -> TooltipState:
    _, surface, adapter, _ = await _load_chart(api, config, tab, selection, FilterCriteria(), today=today)
    adapter.set_theme(theme)
    adapter.set_fullscreen(is_fullscreen)
    surface.move_crosshair(time, point=(0.0, 0.0))
    return adapter.tooltip


async def export_stats(api: DashboardAPI, config: AppConfig, paths: OutputPaths) -> dict[str, Any]:
    dashboard = Dashboard(api, config)
    await dashboard.load_stats()
    totals = dashboard.net_totals()
    distribution = dashboard.bank_distribution()
    write_table(
        metrics_frame(distribution),
        _table_path(paths, "bank_distribution", config),
        config.outputs.tables_format,
    )
    summary: dict[str, Any] = {
        "net_totals": {"buy": totals.buy, "sell": totals.sell, "net": totals.net},
        "bank_distribution": {name: asdict(item) for name, item in sorted(distribution.items())},
    }
    for tab in (FlowType.PAYMENT, FlowType.TRANSFER, FlowType.REGISTRATION):
        dashboard.active_tab = tab
        metrics = dashboard.metrics()
        summary[tab.value] = {
            "total_amount": metrics.total_amount,
            "total_count": metrics.total_count,
            "success_count": metrics.success_count,
            "failed_count": metrics.failed_count,
            "pending_count": metrics.pending_count,
            "success_rate": metrics.success_rate,
        }
    write_summary(summary, paths.summary / "stats.json")
    LOGGER.info("Stats exported: net %.2f across %d banks", totals.net, len(distribution))
    return summary
