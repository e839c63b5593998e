from __future__ import annotations

import asyncio
from pathlib import Path

import typer

from txflow.config import DEFAULT_CONFIG_PATH, AppConfig, load_config
from txflow.io.client import DashboardAPI
from txflow.logging import configure_logging
from txflow.models import FilterCriteria, FlowType, RangePreset, RangeSelection
from txflow.paths import build_output_paths
from txflow.pipeline.exports import export_flow, export_stats, export_table, resolve_flow_tooltip
from txflow.preprocess.time import parse_timestamp

app = typer.Typer(no_args_is_help=True, add_completion=False)


def _load_app_config(config_path: Path) -> AppConfig:
    return load_config(config_path)


def _build_api(cfg: AppConfig) -> DashboardAPI:
    return DashboardAPI(cfg.api.base_url, token=cfg.api.token, timeout=cfg.api.timeout)


def _parse_flow_type(value: str) -> FlowType:
    try:
        return FlowType(value)
    except ValueError as exc:
        choices = ", ".join(flow_type.value for flow_type in FlowType)
        raise typer.BadParameter(f"Unknown tab {value!r}. Expected one of: {choices}") from exc


def _range_selection(preset: str | None, date_from: str, date_to: str, cfg: AppConfig) -> RangeSelection:
    try:
        resolved = RangePreset(preset or cfg.flow.default_preset)
    except ValueError as exc:
        choices = ", ".join(item.value for item in RangePreset)
        raise typer.BadParameter(f"Unknown preset {preset!r}. Expected one of: {choices}") from exc
    if resolved == RangePreset.CUSTOM and not (date_from or date_to):
        raise typer.BadParameter("--from/--to are required when --preset=custom.")
    return RangeSelection(preset=resolved, from_date=date_from, to_date=date_to)


@app.command()
def table(
    tab: str = typer.Option(FlowType.PAYMENT.value, help="payments, fund-transfers, bank-registrations or qr-payments."),
    search: str = typer.Option("", help="Case-insensitive substring over the source's search fields."),
    status: str = typer.Option("all"),
    bank: str = typer.Option("all", help="Exact bank code."),
    date_from: str = typer.Option("", "--from", help="Inclusive local start date (YYYY-MM-DD)."),
    date_to: str = typer.Option("", "--to", help="Inclusive local end date (YYYY-MM-DD)."),
    amount_min: float | None = typer.Option(None),
    amount_max: float | None = typer.Option(None),
    page: int = typer.Option(1),
    limit: int | None = typer.Option(None, min=1),
    out: Path = typer.Option(Path("out"), resolve_path=True),
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, exists=True, readable=True, resolve_path=True),
) -> None:
    """Filter, sort and paginate one source and export the visible page."""
    cfg = _load_app_config(config)
    configure_logging(cfg.logging)
    flow_type = _parse_flow_type(tab)
    criteria = FilterCriteria(
        search=search,
        status=status,
        bank=bank,
        date_from=date_from,
        date_to=date_to,
        amount_min=amount_min,
        amount_max=amount_max,
    )
    paths = build_output_paths(out)

    async def _run() -> dict:
        async with _build_api(cfg) as api:
            return await export_table(api, cfg, paths, flow_type, criteria, page=page, limit=limit)

    summary = asyncio.run(_run())
    typer.echo(
        f"Table complete. {summary['total']} matching rows, "
        f"page {summary['page']} of {summary['total_pages']}."
    )


@app.command()
def flow(
    tab: str = typer.Option(FlowType.PAYMENT.value),
    preset: str | None = typer.Option(None, help="today, last7d, last30d or custom."),
    date_from: str = typer.Option("", "--from", help="Custom range start (YYYY-MM-DD)."),
    date_to: str = typer.Option("", "--to", help="Custom range end (YYYY-MM-DD)."),
    out: Path = typer.Option(Path("out"), resolve_path=True),
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, exists=True, readable=True, resolve_path=True),
) -> None:
    """Load the chart flow dataset and export per-minute series plus a figure."""
    cfg = _load_app_config(config)
    configure_logging(cfg.logging)
    flow_type = _parse_flow_type(tab)
    selection = _range_selection(preset, date_from, date_to, cfg)
    paths = build_output_paths(out)

    async def _run() -> dict:
        async with _build_api(cfg) as api:
            return await export_flow(api, cfg, paths, flow_type, selection)

    summary = asyncio.run(_run())
    if summary["status"] == "skipped":
        typer.echo(f"No flow chart for {flow_type.value}.")
        return
    typer.echo(
        f"Flow complete ({summary['status']}). {summary['records']} records, "
        f"{summary['buckets']} buckets."
    )


@app.command()
def tooltip(
    at: str = typer.Option(..., help="Timestamp inside the minute to inspect."),
    tab: str = typer.Option(FlowType.PAYMENT.value),
    preset: str | None = typer.Option(None),
    date_from: str = typer.Option("", "--from"),
    date_to: str = typer.Option("", "--to"),
    fullscreen: bool = typer.Option(False, help="Use the wide tooltip layout."),
    theme: str = typer.Option("light"),
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, exists=True, readable=True, resolve_path=True),
) -> None:
    """Print the tooltip HTML for the minute bucket containing --at."""
    cfg = _load_app_config(config)
    configure_logging(cfg.logging)
    flow_type = _parse_flow_type(tab)
    selection = _range_selection(preset, date_from, date_to, cfg)
    timestamp = parse_timestamp(at, cfg.time.timezone)
    if timestamp is None:
        raise typer.BadParameter(f"Unparsable timestamp: {at!r}")
    if theme not in ("light", "dark"):
        raise typer.BadParameter("--theme must be light or dark.")

    async def _run():
        async with _build_api(cfg) as api:
            return await resolve_flow_tooltip(
                api,
                cfg,
                flow_type,
                selection,
                int(timestamp.timestamp()),
                is_fullscreen=fullscreen,
                theme=theme,
            )

    state = asyncio.run(_run())
    typer.echo(state.html if state.visible else "No data at this time.")


@app.command()
def stats(
    out: Path = typer.Option(Path("out"), resolve_path=True),
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, exists=True, readable=True, resolve_path=True),
) -> None:
    """Export headline metrics, net totals and the per-bank distribution."""
    cfg = _load_app_config(config)
    configure_logging(cfg.logging)
    paths = build_output_paths(out)

    async def _run() -> dict:
        async with _build_api(cfg) as api:
            return await export_stats(api, cfg, paths)

    summary = asyncio.run(_run())
    typer.echo(f"Stats complete. Net total: {summary['net_totals']['net']:,.2f}")


if __name__ == "__main__":
    app()
